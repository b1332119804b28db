"""Inbound voice call state machine (greet, listen, reply, repeat)."""

from datetime import datetime
from typing import Any, Callable, Dict, Optional
import aiohttp
from models.call import CallSession, CallState, Speaker
from layers.telnyx_client import TelnyxClient, TelephonyError
from layers.response_generator import ResponseGenerator
from services.session_manager import CallSessionRegistry
from services.store import MemoryStore
from services.notifier import Notifier
from config.settings import config as default_config
from config.constants import (
    EVENT_CALL_INITIATED, EVENT_CALL_ANSWERED, EVENT_GATHER_ENDED, EVENT_CALL_HANGUP,
    CALL_STATUS_INITIATED, CALL_STATUS_ANSWERED, CALL_STATUS_ACTIVE,
    CALL_STATUS_COMPLETED, CALL_STATUS_FAILED, NO_SPEECH_PROMPT, NO_SPEECH_STATUSES,
)
from utils.validators import normalize_phone_number, sanitize_input
from utils.logger import setup_logger, ContextLogger

logger = setup_logger(__name__)

TELEPHONY_ERRORS = (TelephonyError, aiohttp.ClientError)


def extract_speech(payload: Dict[str, Any]) -> str:
    """
    Pull the caller's input out of a gather-ended payload.

    Recognized speech wins over dialed digits. Returns "" when the provider
    reports no input.
    """
    if payload.get('status') in NO_SPEECH_STATUSES:
        return ""

    speech = payload.get('speech')
    if isinstance(speech, dict):
        speech = speech.get('result') or speech.get('transcript')
    text = speech or payload.get('transcription') or payload.get('digits') or ""
    return sanitize_input(str(text))


class CallStateMachine:
    """
    Drives one IVR dialogue per inbound call.

    Each provider webhook moves one call forward. Sessions live in the
    registry from initiation until hangup; events for calls that are not
    registered are ignored, so duplicate or late webhooks are harmless.

    The greeting turn is recorded when the gather is requested, not when the
    provider confirms playback, so a transcript can contain a greeting the
    caller never heard.
    """

    def __init__(
        self,
        registry: CallSessionRegistry,
        telephony: TelnyxClient,
        generator: ResponseGenerator,
        store: MemoryStore,
        notifier: Optional[Notifier] = None,
        settings=default_config,
        now: Callable[[], datetime] = datetime.now
    ):
        self.registry = registry
        self.telephony = telephony
        self.generator = generator
        self.store = store
        self.notifier = notifier or Notifier()
        self.settings = settings
        self._now = now

        self._handlers = {
            EVENT_CALL_INITIATED: self.on_initiated,
            EVENT_CALL_ANSWERED: self.on_answered,
            EVENT_GATHER_ENDED: self.on_gather_ended,
            EVENT_CALL_HANGUP: self.on_hangup,
        }

    def handles(self, event_type: str) -> bool:
        return event_type in self._handlers

    async def handle_event(self, event_type: str, payload: Dict[str, Any]):
        """
        Dispatch one call-control webhook.

        Args:
            event_type: Provider event type (call.initiated, call.hangup, ...)
            payload: Event payload
        """
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug(f"Ignoring call event {event_type}")
            return

        call_id = payload.get('call_control_id')
        if not call_id:
            logger.warning(f"{event_type} without call_control_id")
            return

        await handler(call_id, payload)

    async def on_initiated(self, call_id: str, payload: Dict[str, Any]):
        ctx_logger = ContextLogger(logger, call_id=call_id)

        if payload.get('direction') != 'incoming':
            ctx_logger.debug("Ignoring non-incoming call")
            return

        if not self.settings.VOICE_ENABLED:
            ctx_logger.info("Voice handling disabled, not answering")
            return

        if call_id in self.registry:
            ctx_logger.debug("Duplicate call.initiated")
            return

        caller = normalize_phone_number(str(payload.get('from') or 'unknown'))
        contact = self.store.get_or_create_contact(caller, 'voice')
        started_at = self._now()

        log_id = self.store.create_call_log(call_id, contact.id, caller, CALL_STATUS_INITIATED)
        session = CallSession(
            call_id=call_id,
            call_log_id=log_id,
            contact_id=contact.id,
            caller_number=caller,
            started_at=started_at
        )
        self.registry.add(session)
        ctx_logger.info(f"Incoming call from {caller}")

        self.notifier.emit('call:new', {
            'call_log_id': log_id,
            'caller_number': caller,
            'contact_id': contact.id,
            'status': CALL_STATUS_INITIATED
        })

        try:
            await self.telephony.answer_call(call_id)
        except TELEPHONY_ERRORS as e:
            ctx_logger.error(f"Failed to answer call: {e}")
            session.state = CallState.FAILED
            self.store.update_call_log(log_id, status=CALL_STATUS_FAILED, ended_at=self._now())
            self.registry.remove(call_id)

    async def on_answered(self, call_id: str, payload: Dict[str, Any]):
        ctx_logger = ContextLogger(logger, call_id=call_id)

        session = self.registry.get(call_id)
        if session is None:
            return
        if session.state != CallState.INITIATED:
            ctx_logger.debug(f"Duplicate call.answered in state {session.state.value}")
            return

        session.answered_at = self._now()
        session.state = CallState.ANSWERED
        self.store.update_call_log(
            session.call_log_id,
            status=CALL_STATUS_ANSWERED,
            answered_at=session.answered_at
        )
        ctx_logger.info("Call answered")

        greeting = self.settings.VOICE_GREETING
        self._record_turn(session, Speaker.AGENT, greeting)
        session.state = CallState.GATHERING
        await self._gather(session, greeting)

    async def on_gather_ended(self, call_id: str, payload: Dict[str, Any]):
        ctx_logger = ContextLogger(logger, call_id=call_id)

        session = self.registry.get(call_id)
        if session is None:
            return

        speech = extract_speech(payload)
        if not speech:
            ctx_logger.info("No speech detected, re-prompting")
            await self._gather(session, NO_SPEECH_PROMPT)
            return

        async with session.lock:
            self._record_turn(session, Speaker.CALLER, speech)
            session.state = CallState.RESPONDING

            reply = await self.generator.generate(list(session.turns), channel='voice')

            if self.registry.get(call_id) is not session:
                ctx_logger.info("Call ended while generating reply, not speaking it")
                session.add_turn(Speaker.AGENT, reply, self._now())
                return

            self._record_turn(session, Speaker.AGENT, reply)
            self.store.update_call_log(session.call_log_id, status=CALL_STATUS_ACTIVE)
            session.state = CallState.GATHERING
            await self._gather(session, reply)

    async def on_hangup(self, call_id: str, payload: Dict[str, Any]):
        ctx_logger = ContextLogger(logger, call_id=call_id)

        session = self.registry.remove(call_id)
        if session is None:
            return

        ended_at = self._now()
        duration = 0
        if session.answered_at is not None:
            duration = max(int((ended_at - session.answered_at).total_seconds()), 0)

        status = CALL_STATUS_COMPLETED if session.answered_at is not None else CALL_STATUS_FAILED
        session.state = CallState.ENDED if session.answered_at is not None else CallState.FAILED

        self.store.update_call_log(
            session.call_log_id,
            status=status,
            duration=duration,
            transcript=session.transcript(),
            ended_at=ended_at
        )
        ctx_logger.info(f"Call ended - Duration: {duration}s, Turns: {len(session.turns)}")

        self.notifier.emit('call:ended', {
            'call_log_id': session.call_log_id,
            'status': status,
            'duration': duration,
            'turns': len(session.turns)
        })

    def _record_turn(self, session: CallSession, speaker: Speaker, text: str):
        turn = session.add_turn(speaker, text, self._now())
        self.store.add_call_turn(session.call_log_id, speaker.value, text, turn.timestamp)
        self.notifier.emit('call:turn', {
            'call_log_id': session.call_log_id,
            'speaker': speaker.value,
            'content': text
        })

    async def _gather(self, session: CallSession, text: str):
        try:
            await self.telephony.gather_using_speak(session.call_id, text)
        except TELEPHONY_ERRORS as e:
            ContextLogger(logger, call_id=session.call_id).error(f"Gather failed: {e}")
