"""Voice call session data models."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Speaker(str, Enum):
    CALLER = "caller"
    AGENT = "agent"


class CallState(str, Enum):
    """Per-call IVR state."""

    INITIATED = "initiated"
    ANSWERED = "answered"
    GATHERING = "gathering"
    RESPONDING = "responding"
    ENDED = "ended"
    FAILED = "failed"


@dataclass
class Turn:
    """One utterance in a call."""

    speaker: Speaker
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'speaker': self.speaker.value,
            'text': self.text,
            'timestamp': self.timestamp.isoformat()
        }


@dataclass
class CallSession:
    """In-memory state for one active inbound call."""

    call_id: str  # provider call-control id
    call_log_id: str
    contact_id: str
    caller_number: str
    started_at: datetime
    state: CallState = CallState.INITIATED
    answered_at: Optional[datetime] = None
    turns: List[Turn] = field(default_factory=list)
    # Serializes gather/respond cycles within this call only
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def add_turn(self, speaker: Speaker, text: str, timestamp: Optional[datetime] = None) -> Turn:
        """Append a turn and return it."""
        turn = Turn(speaker=speaker, text=text, timestamp=timestamp or datetime.now())
        self.turns.append(turn)
        return turn

    def transcript(self) -> str:
        """Human-readable transcript, one line per turn."""
        return "\n".join(
            f"{turn.speaker.value.capitalize()}: {turn.text}" for turn in self.turns
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'call_id': self.call_id,
            'call_log_id': self.call_log_id,
            'contact_id': self.contact_id,
            'caller_number': self.caller_number,
            'started_at': self.started_at.isoformat(),
            'state': self.state.value,
            'answered_at': self.answered_at.isoformat() if self.answered_at else None,
            'turns': [turn.to_dict() for turn in self.turns]
        }
