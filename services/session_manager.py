"""In-memory registry of active call sessions."""

from typing import Dict, List, Optional
from models.call import CallSession
from utils.logger import setup_logger

logger = setup_logger(__name__)


class CallSessionRegistry:
    """Active calls keyed by provider call-control id."""

    def __init__(self):
        self.sessions: Dict[str, CallSession] = {}

    def add(self, session: CallSession) -> str:
        """
        Store a new session.

        Args:
            session: CallSession object

        Returns:
            Call id
        """
        self.sessions[session.call_id] = session
        logger.info(f"Call session registered: {session.call_id}")
        return session.call_id

    def get(self, call_id: str) -> Optional[CallSession]:
        return self.sessions.get(call_id)

    def remove(self, call_id: str) -> Optional[CallSession]:
        """
        Remove and return a session.

        Args:
            call_id: Call control id

        Returns:
            The removed CallSession, or None if it was not registered
        """
        session = self.sessions.pop(call_id, None)
        if session is not None:
            logger.info(f"Call session removed: {call_id}")
        return session

    def list_active(self) -> List[CallSession]:
        return list(self.sessions.values())

    def __contains__(self, call_id: str) -> bool:
        return call_id in self.sessions

    def __len__(self) -> int:
        return len(self.sessions)
