"""
In-memory persistence for call logs, transcript turns, messages and contacts.

Stands in for the dashboard database: the core only inserts rows and
updates them by id, so any store offering these methods can be swapped in.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from models.sms import Contact
from utils.logger import setup_logger

logger = setup_logger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


class MemoryStore:
    """Dict-backed rows."""

    def __init__(self):
        self.call_logs: Dict[str, Dict[str, Any]] = {}
        self.call_turns: List[Dict[str, Any]] = []
        self.messages: List[Dict[str, Any]] = []
        self.contacts: Dict[str, Contact] = {}

    # Call logs

    def create_call_log(self, call_id: str, contact_id: str, caller_number: str, status: str) -> str:
        log_id = _new_id()
        self.call_logs[log_id] = {
            'id': log_id,
            'call_control_id': call_id,
            'contact_id': contact_id,
            'caller_number': caller_number,
            'direction': 'inbound',
            'status': status,
            'duration': 0,
            'transcript': None,
            'started_at': datetime.now(),
            'answered_at': None,
            'ended_at': None
        }
        return log_id

    def update_call_log(self, log_id: str, **fields):
        row = self.call_logs.get(log_id)
        if row is None:
            logger.warning(f"Update for unknown call log {log_id}")
            return
        row.update(fields)

    def add_call_turn(self, log_id: str, speaker: str, text: str, timestamp: datetime) -> str:
        turn_id = _new_id()
        self.call_turns.append({
            'id': turn_id,
            'call_log_id': log_id,
            'speaker': speaker,
            'content': text,
            'created_at': timestamp
        })
        return turn_id

    def turns_for_call(self, log_id: str) -> List[Dict[str, Any]]:
        return [turn for turn in self.call_turns if turn['call_log_id'] == log_id]

    # Messages

    def add_message(
        self,
        role: str,
        content: str,
        channel: str,
        contact_id: Optional[str] = None
    ) -> Dict[str, Any]:
        row = {
            'id': _new_id(),
            'role': role,
            'content': content,
            'channel': channel,
            'contact_id': contact_id,
            'created_at': datetime.now()
        }
        self.messages.append(row)
        return row

    def recent_messages(self, contact_id: str, channel: str, limit: int) -> List[Dict[str, Any]]:
        """Most recent `limit` messages with a contact, oldest first."""
        if limit <= 0:
            return []
        rows = [
            row for row in self.messages
            if row['contact_id'] == contact_id and row['channel'] == channel
        ]
        return rows[-limit:]

    # Contacts

    def get_or_create_contact(self, phone_number: str, interaction_type: str) -> Contact:
        """
        Find a contact by number, creating it on first contact.

        A contact reached on a second channel becomes type 'both'.
        """
        for contact in self.contacts.values():
            if contact.phone_number == phone_number:
                if contact.type not in ('both', interaction_type):
                    contact.type = 'both'
                contact.last_interaction_at = datetime.now()
                return contact

        contact = Contact(id=_new_id(), phone_number=phone_number, type=interaction_type)
        self.contacts[contact.id] = contact
        logger.info(f"New {interaction_type} contact: {phone_number}")
        return contact

    def increment_unread(self, contact_id: str):
        contact = self.contacts.get(contact_id)
        if contact is not None:
            contact.unread_count += 1
