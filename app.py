"""
Main Application

Async web app (Quart) that:
1. Keeps the agent gateway connection alive
2. Receives Telnyx call and SMS webhooks
3. Routes them to the call state machine and the SMS reply correlator
"""

from quart import Quart, request

from config.settings import config
from config.constants import EVENT_MESSAGE_RECEIVED
from layers.cost_guard import CostGuard
from layers.gateway_client import GatewayClient
from layers.telnyx_client import TelnyxClient
from layers.response_generator import ResponseGenerator
from layers.call_state_machine import CallStateMachine
from layers.reply_correlator import ReplyCorrelator
from models.gateway import StatusEvent, LogEvent
from services.session_manager import CallSessionRegistry
from services.store import MemoryStore
from services.notifier import Notifier
from utils.logger import setup_logger

logger = setup_logger(__name__)

app = Quart(__name__)

# Wire components
store = MemoryStore()
notifier = Notifier()
registry = CallSessionRegistry()
cost_guard = CostGuard(config.DAILY_COST_LIMIT)
gateway = GatewayClient(config.GATEWAY_URL, token=config.GATEWAY_TOKEN or None, cost_guard=cost_guard)
telephony = TelnyxClient()
generator = ResponseGenerator()
call_machine = CallStateMachine(registry, telephony, generator, store, notifier)
correlator = ReplyCorrelator(gateway, telephony, generator, store, notifier)


@gateway.on_event
def log_gateway_event(event):
    """Mirror connectivity and log events into the application log."""
    if isinstance(event, StatusEvent):
        logger.info(f"Agent {'online' if event.online else 'offline'} {event.reason}".rstrip())
    elif isinstance(event, LogEvent):
        logger.info(f"[{event.source}] {event.level}: {event.message}")


@app.before_serving
async def startup():
    """Open the gateway connection (does not wait for the handshake)."""
    logger.info(f"Connecting to gateway {config.GATEWAY_URL}")
    gateway.connect()


@app.after_serving
async def shutdown():
    """Flush pending SMS replies and close the gateway connection."""
    try:
        await correlator.close()
    finally:
        await gateway.disconnect()


@app.route('/webhook/telnyx', methods=['POST'])
async def telnyx_webhook():
    """
    Telnyx webhook for calls and messages
    """
    body = await request.get_json(silent=True)
    if not isinstance(body, dict):
        return {"ok": True, "skipped": True}

    # Telnyx wraps events as {data: {event_type, payload}}
    envelope = body.get('data', body)
    if not isinstance(envelope, dict):
        return {"ok": True, "skipped": True}
    event_type = envelope.get('event_type')
    payload = envelope.get('payload') or {}

    try:
        if event_type == EVENT_MESSAGE_RECEIVED:
            text = payload.get('text')
            sender = (payload.get('from') or {}).get('phone_number')
            if not text:
                return {"ok": True, "skipped": True}
            await correlator.handle_inbound_sms(sender, text)
            return {"ok": True}

        if call_machine.handles(event_type):
            await call_machine.handle_event(event_type, payload)
            return {"ok": True}

    except Exception:
        logger.exception(f"Telnyx webhook error ({event_type})")
        return {"error": "internal error"}, 500

    return {"ok": True, "skipped": True}


@app.route('/command', methods=['POST'])
async def command():
    """Send a dashboard command to the agent."""
    body = await request.get_json(silent=True) or {}
    text = body.get('text')
    if not text:
        return {"error": "text is required"}, 400

    run_id = gateway.send_command(text, body.get('session_key') or 'main')
    return {"run_id": run_id, "delivered": run_id is not None}


@app.route('/health', methods=['GET'])
async def health():
    """Health check"""
    return {
        "status": "healthy",
        "gateway": gateway.status(),
        "active_calls": len(registry)
    }


if __name__ == '__main__':
    logger.info(f"Starting server on port {config.PORT}...")
    app.run(host='0.0.0.0', port=config.PORT)
