"""Tests for the call session registry."""

from datetime import datetime

from models.call import CallSession, Speaker
from services.session_manager import CallSessionRegistry


def make_session(call_id):
    return CallSession(
        call_id=call_id,
        call_log_id=f"log-{call_id}",
        contact_id="contact-1",
        caller_number="+15551234567",
        started_at=datetime(2026, 3, 1, 12, 0)
    )


def test_add_get_remove():
    registry = CallSessionRegistry()
    session = make_session("cc-1")

    registry.add(session)

    assert registry.get("cc-1") is session
    assert "cc-1" in registry
    assert registry.remove("cc-1") is session
    assert registry.get("cc-1") is None
    assert len(registry) == 0


def test_remove_unknown_returns_none():
    assert CallSessionRegistry().remove("ghost") is None


def test_transcript_format():
    session = make_session("cc-1")
    session.add_turn(Speaker.AGENT, "Hello")
    session.add_turn(Speaker.CALLER, "Hi")

    assert session.transcript() == "Agent: Hello\nCaller: Hi"
    assert session.to_dict()['turns'][1]['speaker'] == 'caller'
