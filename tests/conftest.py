"""Shared fixtures for the core tests."""

import os
from types import SimpleNamespace

import pytest

# Keep test runs from writing log files
os.environ.setdefault('LOG_FILE', '')


@pytest.fixture
def settings():
    return SimpleNamespace(
        VOICE_ENABLED=True,
        VOICE_GREETING="Hello, you have reached Agent Zero. How can I help you?",
        SMS_SESSION_KEY='sms',
        SMS_REPLY_MODE='final',
        SMS_HISTORY_DEPTH=10
    )
