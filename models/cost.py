"""Daily spend tracking model."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict


@dataclass
class CostTracker:
    """Token usage and estimated spend for the current calendar day."""

    daily_limit: float
    last_reset_date: date
    spend_today: float = 0.0
    tokens_in_session: int = 0
    tokens_out_session: int = 0

    def reset(self, today: date):
        """Zero the counters for a new day."""
        self.spend_today = 0.0
        self.tokens_in_session = 0
        self.tokens_out_session = 0
        self.last_reset_date = today

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'daily_limit': self.daily_limit,
            'spend_today': round(self.spend_today, 6),
            'tokens_in_session': self.tokens_in_session,
            'tokens_out_session': self.tokens_out_session,
            'last_reset_date': self.last_reset_date.isoformat()
        }
