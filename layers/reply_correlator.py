"""Routes gateway replies back to the SMS sender that is owed them."""

import asyncio
import time
from typing import Callable, Dict, Optional
import aiohttp
from models.call import Speaker, Turn
from models.gateway import GatewayEvent, ChatFinalEvent, MessageEvent, LifecycleEvent
from models.sms import PendingReplyClaim, ReplyBuffer
from layers.gateway_client import GatewayClient
from layers.telnyx_client import TelnyxClient, TelephonyError
from layers.response_generator import ResponseGenerator
from services.store import MemoryStore
from services.notifier import Notifier
from config.settings import config as default_config
from config.constants import (
    PENDING_REPLY_TTL_SECONDS, REPLY_BUFFER_QUIET_SECONDS,
    REPLY_MODE_FINAL, REPLY_MODE_STREAM, ROLE_USER, ROLE_AGENT, CHANNEL_SMS,
)
from utils.validators import normalize_phone_number, sanitize_input
from utils.logger import setup_logger, ContextLogger

logger = setup_logger(__name__)


class ReplyCorrelator:
    """
    SMS auto-reply through the gateway.

    Inbound SMS text is forwarded on a reserved session key and the sender
    is recorded as owed a reply. Two delivery paths exist, chosen by mode:

    - final: a `chat` final event on the reserved key is sent to the
      oldest pending claim.
    - stream: assistant deltas are buffered for the oldest claim and sent
      as one SMS after a quiet period.

    A claim exists only for an SMS the gateway accepted, and is dropped if
    its run fails. Replies themselves are matched by age rather than run, so
    only one SMS exchange should be in flight on the reserved key at a time. When the gateway is not
    authenticated the reply is generated locally instead.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        telephony: TelnyxClient,
        generator: ResponseGenerator,
        store: MemoryStore,
        notifier: Optional[Notifier] = None,
        settings=default_config,
        mode: Optional[str] = None,
        ttl: float = PENDING_REPLY_TTL_SECONDS,
        quiet_period: float = REPLY_BUFFER_QUIET_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.gateway = gateway
        self.telephony = telephony
        self.generator = generator
        self.store = store
        self.notifier = notifier or Notifier()
        self.settings = settings
        self.mode = mode or settings.SMS_REPLY_MODE
        self.ttl = ttl
        self.quiet_period = quiet_period
        self._clock = clock

        self.pending: Dict[str, PendingReplyClaim] = {}
        self.buffer: Optional[ReplyBuffer] = None
        self._tasks = set()

        if self.mode not in (REPLY_MODE_FINAL, REPLY_MODE_STREAM):
            raise ValueError(f"Unknown SMS reply mode: {self.mode}")

        gateway.on_event(self.handle_gateway_event)

    @property
    def session_key(self) -> str:
        return self.settings.SMS_SESSION_KEY

    async def handle_inbound_sms(self, from_number: str, text: str) -> Optional[str]:
        """
        Store an inbound SMS and arrange for it to be answered.

        Args:
            from_number: Sender number
            text: Message body

        Returns:
            Gateway run id when forwarded, otherwise None
        """
        number = normalize_phone_number(from_number or 'unknown')
        body = sanitize_input(text)
        ctx_logger = ContextLogger(logger, phone=number)
        if not body:
            ctx_logger.debug("Ignoring empty SMS")
            return None

        contact = self.store.get_or_create_contact(number, 'sms')
        history = self.store.recent_messages(contact.id, CHANNEL_SMS, self.settings.SMS_HISTORY_DEPTH)

        content = f"[SMS from {number}] {body}"
        self.store.add_message(ROLE_USER, content, CHANNEL_SMS, contact.id)
        self.store.increment_unread(contact.id)
        self.notifier.emit('message', {
            'role': ROLE_USER,
            'content': content,
            'channel': CHANNEL_SMS,
            'contact_id': contact.id
        })

        if self.gateway.authenticated:
            self._prune_expired()
            # Replacing a claim also moves it to the back of the match order
            self.pending.pop(number, None)
            claim = PendingReplyClaim(
                target_number=number,
                contact_id=contact.id,
                created_at=self._clock()
            )
            self.pending[number] = claim
            ctx_logger.info("Forwarding SMS to gateway")

            run_id = self.gateway.send_command(content, self.session_key)
            if run_id is None:
                # A synthesized limit notice may already have taken the claim
                if self.pending.get(number) is claim:
                    del self.pending[number]
                ctx_logger.warning("Gateway did not accept the SMS, no reply pending")
            else:
                claim.run_id = run_id
            return run_id

        ctx_logger.info("Gateway offline, replying directly")
        turns = [
            Turn(speaker=Speaker.CALLER if row['role'] == ROLE_USER else Speaker.AGENT, text=row['content'])
            for row in history
        ]
        turns.append(Turn(speaker=Speaker.CALLER, text=body))

        reply = await self.generator.generate(turns, channel='sms')
        await self._deliver(number, contact.id, reply)
        return None

    def handle_gateway_event(self, event: GatewayEvent):
        """Gateway subscriber: pick out events that answer a pending SMS."""
        if isinstance(event, LifecycleEvent) and event.phase == 'error':
            self._on_run_failed(event)
        elif self.mode == REPLY_MODE_FINAL and isinstance(event, ChatFinalEvent):
            self._on_chat_final(event)
        elif self.mode == REPLY_MODE_STREAM and isinstance(event, MessageEvent):
            self._on_stream_delta(event)

    async def wait_for_deliveries(self):
        """Wait until every scheduled SMS send has finished."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"SMS delivery failed: {result}")

    async def close(self):
        """Flush any buffered reply and wait for outstanding sends."""
        if self.buffer is not None:
            self._flush_buffer()
        await self.wait_for_deliveries()

    def _on_run_failed(self, event: LifecycleEvent):
        if event.run_id is None:
            return
        for number, claim in list(self.pending.items()):
            if claim.run_id == event.run_id:
                logger.info(f"Run {event.run_id} failed ({event.error}), dropping reply claim for {number}")
                del self.pending[number]

    def _on_chat_final(self, event: ChatFinalEvent):
        if event.session_key != self.session_key or not self.pending:
            return

        claim = self._take_oldest_claim()
        if claim is None:
            return

        text = event.text.strip()
        if not text:
            logger.warning(f"Empty final reply for {claim.target_number}, nothing to send")
            return

        self._spawn(self._deliver(claim.target_number, claim.contact_id, text))

    def _on_stream_delta(self, event: MessageEvent):
        if event.role != ROLE_AGENT or not event.content:
            return
        # Deltas without a session key come from gateways that do not tag them
        if event.session_key is not None and event.session_key != self.session_key:
            return

        if self.buffer is None:
            if not self.pending:
                return
            claim = self._take_oldest_claim()
            if claim is None:
                return
            self.buffer = ReplyBuffer(target_number=claim.target_number, contact_id=claim.contact_id)
            logger.info(f"Buffering agent response for {claim.target_number}")

        self.buffer.append(event.content)
        self.buffer.cancel_timer()
        self.buffer.idle_timer = asyncio.get_running_loop().call_later(
            self.quiet_period, self._flush_buffer
        )

    def _flush_buffer(self):
        buffer, self.buffer = self.buffer, None
        if buffer is None:
            return
        buffer.cancel_timer()

        self.pending.pop(buffer.target_number, None)
        text = buffer.accumulated_text.strip()
        if not text:
            return

        logger.info(f"Stream complete, sending SMS to {buffer.target_number} ({len(text)} chars)")
        self._spawn(self._deliver(buffer.target_number, buffer.contact_id, text))

    def _take_oldest_claim(self) -> Optional[PendingReplyClaim]:
        number = next(iter(self.pending))
        claim = self.pending.pop(number)
        if claim.is_expired(self._clock(), self.ttl):
            logger.info(f"Discarding expired reply claim for {number}")
            return None
        return claim

    def _prune_expired(self):
        now = self._clock()
        for number in [n for n, c in self.pending.items() if c.is_expired(now, self.ttl)]:
            logger.info(f"Discarding expired reply claim for {number}")
            del self.pending[number]

    async def _deliver(self, number: str, contact_id: str, text: str):
        ctx_logger = ContextLogger(logger, phone=number)

        self.store.add_message(ROLE_AGENT, text, CHANNEL_SMS, contact_id)
        self.notifier.emit('message', {
            'role': ROLE_AGENT,
            'content': text,
            'channel': CHANNEL_SMS,
            'contact_id': contact_id
        })

        try:
            await self.telephony.send_sms(number, text)
            ctx_logger.info(f"Auto-replied: \"{text[:80]}\"")
        except (TelephonyError, aiohttp.ClientError) as e:
            ctx_logger.error(f"Failed to auto-reply: {e}")

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
