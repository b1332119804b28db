"""Real-time notification fan-out to the dashboard."""

from typing import Any, Callable, Dict, List
from utils.logger import setup_logger

logger = setup_logger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]


class Notifier:
    """Pushes named events (call:new, call:turn, call:ended, message) to listeners."""

    def __init__(self):
        self.listeners: List[Listener] = []

    def subscribe(self, listener: Listener):
        self.listeners.append(listener)

    def emit(self, event: str, data: Dict[str, Any]):
        logger.debug(f"notify {event}")
        for listener in list(self.listeners):
            try:
                listener(event, data)
            except Exception:
                logger.exception(f"Notification listener failed on {event}")
