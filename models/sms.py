"""SMS reply correlation and contact data models."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class Contact:
    """Person reachable by SMS and/or voice."""

    id: str
    phone_number: str
    type: str  # sms, voice, both
    name: Optional[str] = None
    unread_count: int = 0
    last_interaction_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'id': self.id,
            'phone_number': self.phone_number,
            'type': self.type,
            'name': self.name,
            'unread_count': self.unread_count,
            'last_interaction_at': self.last_interaction_at.isoformat()
        }


@dataclass
class PendingReplyClaim:
    """A phone number that is owed a reply from the gateway."""

    target_number: str
    contact_id: str
    created_at: float  # monotonic seconds
    run_id: Optional[str] = None

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.created_at >= ttl


@dataclass
class ReplyBuffer:
    """Streamed agent text accumulating for one claimed number."""

    target_number: str
    contact_id: str
    accumulated_text: str = ""
    idle_timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False, compare=False)

    def append(self, delta: str):
        self.accumulated_text += delta

    def cancel_timer(self):
        if self.idle_timer is not None:
            self.idle_timer.cancel()
            self.idle_timer = None
