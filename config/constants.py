"""Protocol, pricing and status constants for the Agent Zero core."""

# Gateway protocol
PROTOCOL_VERSION_MIN = 3
PROTOCOL_VERSION_MAX = 3
CLIENT_ID = "agent-zero-dashboard"
CLIENT_DISPLAY_NAME = "Agent Zero Mission Control"
CLIENT_VERSION = "1.0.0"
CLIENT_ROLE = "operator"
CLIENT_SCOPES = ["operator.read", "operator.write"]

METHOD_CONNECT = "connect"
METHOD_CHAT_SEND = "chat.send"

# Reconnect backoff (seconds)
RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_QUIET_AFTER_ATTEMPTS = 3

# Pricing (USD per token)
INPUT_TOKEN_PRICE = 3.00 / 1_000_000
OUTPUT_TOKEN_PRICE = 15.00 / 1_000_000
COST_WARNING_RATIO = 0.8

LIMIT_REACHED_NOTICE = (
    "Daily cost limit of ${limit:.2f} reached (spent ${spend:.2f} today). "
    "Commands are paused until tomorrow or until the limit is raised."
)

# SMS correlation
PENDING_REPLY_TTL_SECONDS = 5 * 60
REPLY_BUFFER_QUIET_SECONDS = 3.0
REPLY_MODE_FINAL = "final"
REPLY_MODE_STREAM = "stream"

# Voice prompts
NO_SPEECH_PROMPT = "Are you still there?"
GATHER_TIMEOUT_SECS = 15

# Call log statuses
CALL_STATUS_INITIATED = "initiated"
CALL_STATUS_ANSWERED = "answered"
CALL_STATUS_ACTIVE = "active"
CALL_STATUS_COMPLETED = "completed"
CALL_STATUS_FAILED = "failed"

# Message roles and channels
ROLE_USER = "user"
ROLE_AGENT = "agent"
CHANNEL_SMS = "sms"
CHANNEL_VOICE = "voice"

# Telnyx webhook event types
EVENT_CALL_INITIATED = "call.initiated"
EVENT_CALL_ANSWERED = "call.answered"
EVENT_GATHER_ENDED = "call.gather.ended"
EVENT_CALL_HANGUP = "call.hangup"
EVENT_MESSAGE_RECEIVED = "message.received"

NO_SPEECH_STATUSES = ("no_speech_detected", "timeout", "no_input")
