"""Gateway connection state and event data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ConnectionState(str, Enum):
    """Lifecycle of the single gateway connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


@dataclass
class PendingRequest:
    """Outstanding request awaiting a `res` frame with the same id."""

    id: str
    method: str
    run_id: Optional[str] = None
    session_key: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ResponseFrame:
    """Reply to a prior `req` frame."""

    id: str
    ok: bool
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None


@dataclass
class EventFrame:
    """Unsolicited server-pushed frame."""

    event: str
    payload: Dict[str, Any] = field(default_factory=dict)
    seq: Optional[int] = None


Frame = Union[ResponseFrame, EventFrame]


# Events delivered to subscribers. Each gateway event kind maps to exactly
# one of these; handlers branch on the class.

@dataclass
class ConnectChallenge:
    """Server asks the client to authenticate (consumed internally)."""

    nonce: Optional[str] = None


@dataclass
class StatusEvent:
    """Agent connectivity changed."""

    online: bool
    reason: str = ""


@dataclass
class LogEvent:
    """Log line for the dashboard activity feed."""

    level: str
    message: str
    source: str = "gateway"


@dataclass
class MessageEvent:
    """Streamed assistant text (or a locally synthesized agent notice)."""

    content: str
    role: str = "agent"
    session_key: Optional[str] = None
    run_id: Optional[str] = None


@dataclass
class LifecycleEvent:
    """Run lifecycle transition, used to reconcile task status."""

    run_id: Optional[str]
    phase: str  # start, end, error
    session_key: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ToolEvent:
    """Tool invocation progress for a run."""

    run_id: Optional[str]
    name: str
    phase: str
    session_key: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatFinalEvent:
    """A session's final assembled answer."""

    session_key: Optional[str]
    text: str
    run_id: Optional[str] = None


@dataclass
class PresenceEvent:
    """Connected clients/agents as reported by the gateway."""

    entries: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class TickEvent:
    """Keepalive."""

    ts: Optional[int] = None


@dataclass
class ShutdownEvent:
    """Server is about to close the connection."""

    reason: str = ""


GatewayEvent = Union[
    StatusEvent,
    LogEvent,
    MessageEvent,
    LifecycleEvent,
    ToolEvent,
    ChatFinalEvent,
    PresenceEvent,
]

InboundEvent = Union[
    ConnectChallenge,
    MessageEvent,
    LifecycleEvent,
    ToolEvent,
    ChatFinalEvent,
    PresenceEvent,
    TickEvent,
    ShutdownEvent,
]
