"""Configuration settings for the Agent Zero gateway and telephony core."""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration from environment variables."""

    # Gateway Configuration
    GATEWAY_URL: str = os.getenv('GATEWAY_URL', 'ws://localhost:18789')
    GATEWAY_TOKEN: str = os.getenv('GATEWAY_TOKEN', '')
    DAILY_COST_LIMIT: float = float(os.getenv('DAILY_COST_LIMIT', '25'))

    # Telnyx Configuration
    TELNYX_API_KEY: str = os.getenv('TELNYX_API_KEY', '')
    TELNYX_PHONE_NUMBER: str = os.getenv('TELNYX_PHONE_NUMBER', '')
    TELNYX_API_BASE: str = os.getenv('TELNYX_API_BASE', 'https://api.telnyx.com/v2')
    TELNYX_VOICE: str = os.getenv('TELNYX_VOICE', 'female')
    TELNYX_LANGUAGE: str = os.getenv('TELNYX_LANGUAGE', 'en-US')

    # Voice Configuration
    VOICE_ENABLED: bool = _env_bool('VOICE_ENABLED')
    VOICE_GREETING: str = os.getenv(
        'VOICE_GREETING',
        'Hello, you have reached Agent Zero. How can I help you?'
    )

    # SMS Configuration
    SMS_HISTORY_DEPTH: int = int(os.getenv('SMS_HISTORY_DEPTH', '10'))
    SMS_SESSION_KEY: str = os.getenv('SMS_SESSION_KEY', 'sms')
    SMS_REPLY_MODE: str = os.getenv('SMS_REPLY_MODE', 'final')  # final, stream

    # OpenAI Configuration
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    RESPONSE_MODEL: str = os.getenv('RESPONSE_MODEL', 'gpt-4.1-mini')

    # Server Configuration
    PORT: int = int(os.getenv('PORT', '5000'))

    # Logging Configuration
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = os.getenv('LOG_FILE', 'logs/app.log')

    @classmethod
    def validate(cls) -> bool:
        """Validate that all required configuration is set."""
        required_fields = [
            'GATEWAY_URL',
            'TELNYX_API_KEY',
            'TELNYX_PHONE_NUMBER',
        ]

        missing = []
        for field in required_fields:
            value = getattr(cls, field, '')
            if not value:
                missing.append(field)

        if missing:
            print(f"ERROR: Missing required configuration: {', '.join(missing)}")
            return False

        return True

    @classmethod
    def to_dict(cls) -> dict:
        """Convert configuration to dictionary (excluding sensitive data)."""
        return {
            'GATEWAY_URL': cls.GATEWAY_URL,
            'DAILY_COST_LIMIT': cls.DAILY_COST_LIMIT,
            'VOICE_ENABLED': cls.VOICE_ENABLED,
            'VOICE_GREETING': cls.VOICE_GREETING,
            'SMS_HISTORY_DEPTH': cls.SMS_HISTORY_DEPTH,
            'SMS_SESSION_KEY': cls.SMS_SESSION_KEY,
            'SMS_REPLY_MODE': cls.SMS_REPLY_MODE,
            'RESPONSE_MODEL': cls.RESPONSE_MODEL,
            'LOG_LEVEL': cls.LOG_LEVEL,
            'PORT': cls.PORT,
        }


# Global config instance
config = Config()
