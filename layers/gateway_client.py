"""Long-lived client for the remote agent gateway."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from models.gateway import (
    ConnectionState, PendingRequest, GatewayEvent, ResponseFrame, EventFrame,
    ConnectChallenge, StatusEvent, LogEvent, MessageEvent, LifecycleEvent,
    TickEvent, ShutdownEvent,
)
from layers.cost_guard import CostGuard
from layers import gateway_protocol as protocol
from config.constants import (
    METHOD_CONNECT, METHOD_CHAT_SEND, LIMIT_REACHED_NOTICE,
    RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY, RECONNECT_QUIET_AFTER_ATTEMPTS,
)
from utils.logger import setup_logger

logger = setup_logger(__name__)

EventHandler = Callable[[GatewayEvent], None]


class GatewayClient:
    """
    One logical, self-healing connection to the agent gateway.

    The client never starts the handshake itself: once the socket opens it
    waits for a `connect.challenge` event and answers with a `connect`
    request. Commands are fire-and-forget; their outcome arrives later as
    events. Every decoded event, plus a few synthetic ones (status, log,
    limit notice), is pushed to subscribers in arrival order.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        cost_guard: Optional[CostGuard] = None,
        connector: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.url = url
        self.token = token
        self.cost_guard = cost_guard
        self.state = ConnectionState.DISCONNECTED

        self._connector = connector or websockets.connect
        self._sleep = sleep
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._handlers: List[EventHandler] = []
        self._pending: Dict[str, PendingRequest] = {}
        self._send_tasks = set()

        self._reconnect_delay = RECONNECT_INITIAL_DELAY
        self._reconnect_attempts = 0

        if cost_guard is not None and cost_guard.on_alert is None:
            cost_guard.on_alert = self._on_cost_alert

    @property
    def authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    @property
    def transport_open(self) -> bool:
        return self._ws is not None and self.state in (
            ConnectionState.CONNECTED, ConnectionState.AUTHENTICATED
        )

    def on_event(self, handler: EventHandler) -> EventHandler:
        """Register a subscriber; handlers run in registration order."""
        self._handlers.append(handler)
        return handler

    def connect(self):
        """Start the connection loop. Safe to call repeatedly."""
        if self._task is not None and not self._task.done():
            return

        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self):
        """Stop reconnecting, close the socket and reset state."""
        self._running = False
        task, self._task = self._task, None

        ws = self._ws
        if ws is not None:
            await ws.close()

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._on_transport_closed()
        logger.info("Disconnected from gateway")

    def send_command(self, text: str, session_key: str) -> Optional[str]:
        """
        Dispatch a `chat.send` request.

        Args:
            text: Message for the agent
            session_key: Gateway conversation partition

        Returns:
            Run id for tracking the command, or None if it was not sent
        """
        if not self.authenticated or not self.transport_open:
            logger.debug(f"Dropping command for session '{session_key}': gateway not authenticated")
            return None

        if self.cost_guard is not None and self.cost_guard.limit_reached():
            logger.warning(f"Refusing command for session '{session_key}': daily cost limit reached")
            notice = LIMIT_REACHED_NOTICE.format(
                limit=self.cost_guard.daily_limit,
                spend=self.cost_guard.spend_today
            )
            self._emit(MessageEvent(content=notice, session_key=session_key))
            return None

        request_id = protocol.new_id()
        run_id = protocol.new_id()
        self._pending[request_id] = PendingRequest(
            id=request_id,
            method=METHOD_CHAT_SEND,
            run_id=run_id,
            session_key=session_key
        )
        self._transmit(protocol.encode_request(
            request_id,
            METHOD_CHAT_SEND,
            protocol.chat_send_params(text, session_key, run_id)
        ))
        logger.info(f"Sent command to session '{session_key}' (run {run_id})")
        return run_id

    def status(self) -> Dict[str, Any]:
        """Connection snapshot for health reporting."""
        return {
            'state': self.state.value,
            'authenticated': self.authenticated,
            'reconnect_attempts': self._reconnect_attempts,
            'pending_requests': len(self._pending),
            'cost': self.cost_guard.snapshot() if self.cost_guard else None
        }

    async def _run(self):
        while self._running:
            self.state = ConnectionState.CONNECTING
            try:
                ws = await self._connector(self.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self._log_connect_failure(e)
            else:
                self._on_transport_open(ws)
                try:
                    async for raw in ws:
                        self._handle_raw(raw)
                except ConnectionClosed as e:
                    self._log_connect_failure(e)
                finally:
                    self._on_transport_closed()

            if not self._running:
                break

            await self._sleep(self._next_reconnect_delay())

    def _next_reconnect_delay(self) -> float:
        delay = self._reconnect_delay
        self._reconnect_delay = min(self._reconnect_delay * 2, RECONNECT_MAX_DELAY)
        self._reconnect_attempts += 1
        return delay

    def _on_transport_open(self, ws):
        self._ws = ws
        self.state = ConnectionState.CONNECTED
        self._reconnect_delay = RECONNECT_INITIAL_DELAY
        self._reconnect_attempts = 0
        logger.info(f"Connected to gateway: {self.url} (awaiting challenge)")

    def _on_transport_closed(self):
        was_authenticated = self.authenticated
        self._ws = None
        self.state = ConnectionState.DISCONNECTED
        self._fail_pending("gateway connection closed")

        if was_authenticated:
            self._emit(StatusEvent(online=False, reason="disconnected"))

    def _log_connect_failure(self, error: Exception):
        attempts = self._reconnect_attempts
        if attempts < RECONNECT_QUIET_AFTER_ATTEMPTS:
            logger.warning(f"Gateway unavailable ({error}), retrying in {self._reconnect_delay:.0f}s")
        elif attempts == RECONNECT_QUIET_AFTER_ATTEMPTS:
            logger.warning("Gateway offline. Will keep retrying silently.")
        else:
            logger.debug(f"Gateway still unavailable after {attempts} attempts: {error}")

    def _fail_pending(self, reason: str):
        pending, self._pending = self._pending, {}
        for request in pending.values():
            logger.debug(f"Request {request.id} ({request.method}) failed: {reason}")
            if request.method == METHOD_CHAT_SEND:
                self._emit(LifecycleEvent(
                    run_id=request.run_id,
                    phase='error',
                    session_key=request.session_key,
                    error=reason
                ))

    def _transmit(self, text: str):
        task = asyncio.ensure_future(self._ws.send(text))
        self._send_tasks.add(task)
        task.add_done_callback(self._on_send_done)

    def _on_send_done(self, task: asyncio.Task):
        self._send_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Gateway send failed: {task.exception()}")

    def _handle_raw(self, raw):
        frame = protocol.decode_frame(raw)
        if frame is None:
            logger.debug("Dropped undecodable gateway frame")
            return

        usage = protocol.extract_usage(frame.payload)
        if usage is not None and self.cost_guard is not None:
            self.cost_guard.record_usage(*usage)

        if isinstance(frame, ResponseFrame):
            self._handle_response(frame)
        elif isinstance(frame, EventFrame):
            self._handle_event(frame)

    def _handle_response(self, frame: ResponseFrame):
        request = self._pending.pop(frame.id, None)
        if request is None:
            logger.debug(f"Response for unknown request {frame.id}")
            return

        error_message = (frame.error or {}).get('message', 'unknown error')

        if request.method == METHOD_CONNECT:
            if frame.ok:
                self.state = ConnectionState.AUTHENTICATED
                logger.info("Gateway handshake complete")
                self._emit(StatusEvent(online=True))
            else:
                logger.error(f"Gateway handshake rejected: {error_message}")
                self._emit(LogEvent(level='error', message=f"Gateway handshake rejected: {error_message}"))
            return

        if not frame.ok:
            logger.error(f"Gateway {request.method} failed (run {request.run_id}): {error_message}")
            self._emit(LogEvent(level='error', message=f"Command failed: {error_message}"))

    def _handle_event(self, frame: EventFrame):
        event = protocol.parse_event(frame)
        if event is None:
            logger.debug(f"Ignoring gateway event '{frame.event}'")
            return

        if isinstance(event, ConnectChallenge):
            self._answer_challenge(event)
        elif isinstance(event, TickEvent):
            pass
        elif isinstance(event, ShutdownEvent):
            logger.info(f"Gateway shutting down: {event.reason or 'no reason given'}")
            self._emit(StatusEvent(online=False, reason=event.reason or "shutdown"))
        else:
            self._emit(event)

    def _answer_challenge(self, challenge: ConnectChallenge):
        if not self.transport_open:
            return

        request_id = protocol.new_id()
        self._pending[request_id] = PendingRequest(id=request_id, method=METHOD_CONNECT)
        self._transmit(protocol.encode_request(
            request_id,
            METHOD_CONNECT,
            protocol.connect_params(self.token, challenge.nonce)
        ))
        logger.debug("Answered gateway challenge")

    def _emit(self, event: GatewayEvent):
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Gateway event handler failed on {type(event).__name__}")

    def _on_cost_alert(self, level: str, message: str):
        self._emit(LogEvent(level=level, message=message, source="cost-guard"))
