"""Cost circuit breaker for outbound agent commands."""

from datetime import date
from typing import Callable, Dict, Any, Optional
from models.cost import CostTracker
from config.constants import INPUT_TOKEN_PRICE, OUTPUT_TOKEN_PRICE, COST_WARNING_RATIO
from utils.logger import setup_logger

logger = setup_logger(__name__)

AlertCallback = Callable[[str, str], None]


class CostGuard:
    """
    Estimate spend from token counts and enforce a daily ceiling.

    The day rolls over lazily: every read and write first compares the
    stored reset date with today and zeroes the counters when they differ.
    Nothing is persisted, so a restart starts the day at zero.
    """

    def __init__(
        self,
        daily_limit: float,
        input_price: float = INPUT_TOKEN_PRICE,
        output_price: float = OUTPUT_TOKEN_PRICE,
        today: Callable[[], date] = date.today,
        on_alert: Optional[AlertCallback] = None
    ):
        self.input_price = input_price
        self.output_price = output_price
        self._today = today
        self.on_alert = on_alert
        self.tracker = CostTracker(daily_limit=daily_limit, last_reset_date=today())

    @property
    def spend_today(self) -> float:
        self._roll_over()
        return self.tracker.spend_today

    @property
    def daily_limit(self) -> float:
        return self.tracker.daily_limit

    def set_daily_limit(self, limit: float):
        """Apply a limit change from the settings layer."""
        logger.info(f"Daily cost limit changed: ${self.tracker.daily_limit:.2f} -> ${limit:.2f}")
        self.tracker.daily_limit = limit

    def cost_of(self, tokens_in: int, tokens_out: int) -> float:
        """Incremental dollar cost of one usage record."""
        return max(tokens_in, 0) * self.input_price + max(tokens_out, 0) * self.output_price

    def record_usage(self, tokens_in: int, tokens_out: int) -> float:
        """
        Add token usage to today's totals.

        Args:
            tokens_in: Input (prompt) tokens
            tokens_out: Output (completion) tokens

        Returns:
            Incremental cost of this record
        """
        self._roll_over()

        tokens_in = max(int(tokens_in or 0), 0)
        tokens_out = max(int(tokens_out or 0), 0)
        cost = self.cost_of(tokens_in, tokens_out)

        tracker = self.tracker
        tracker.tokens_in_session += tokens_in
        tracker.tokens_out_session += tokens_out
        tracker.spend_today += cost

        spend, limit = tracker.spend_today, tracker.daily_limit
        if spend >= limit:
            self._alert(
                'error',
                f"Cost limit reached: ${spend:.2f} of ${limit:.2f}. Blocking new commands."
            )
        elif spend >= limit * COST_WARNING_RATIO:
            self._alert(
                'warning',
                f"Approaching cost limit: ${spend:.2f} of ${limit:.2f} ({spend / limit:.0%})"
            )

        return cost

    def limit_reached(self) -> bool:
        """True once today's estimated spend has reached the limit."""
        self._roll_over()
        return self.tracker.spend_today >= self.tracker.daily_limit

    def snapshot(self) -> Dict[str, Any]:
        """Current totals for status reporting."""
        self._roll_over()
        data = self.tracker.to_dict()
        data['limit_reached'] = self.tracker.spend_today >= self.tracker.daily_limit
        return data

    def _roll_over(self):
        today = self._today()
        if today != self.tracker.last_reset_date:
            logger.info(
                f"New day {today.isoformat()}: resetting spend "
                f"(was ${self.tracker.spend_today:.2f})"
            )
            self.tracker.reset(today)

    def _alert(self, level: str, message: str):
        if level == 'error':
            logger.error(message)
        else:
            logger.warning(message)

        if self.on_alert:
            self.on_alert(level, message)
