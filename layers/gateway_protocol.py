"""
Gateway wire protocol

Frames are JSON objects:
- {"type": "req", "id", "method", "params"}      client -> gateway
- {"type": "res", "id", "ok", "payload"|"error"}  gateway -> client
- {"type": "event", "event", "payload", "seq"?}  gateway -> client

This module only converts between raw text and typed values; it holds no
connection state.
"""

import json
import uuid
from typing import Any, Dict, Optional, Tuple
from models.gateway import (
    Frame, ResponseFrame, EventFrame, InboundEvent,
    ConnectChallenge, MessageEvent, LifecycleEvent, ToolEvent,
    ChatFinalEvent, PresenceEvent, TickEvent, ShutdownEvent,
)
from config.constants import (
    PROTOCOL_VERSION_MIN, PROTOCOL_VERSION_MAX,
    CLIENT_ID, CLIENT_DISPLAY_NAME, CLIENT_VERSION, CLIENT_ROLE, CLIENT_SCOPES,
)

_INPUT_KEYS = ('input_tokens', 'inputTokens', 'input', 'prompt_tokens', 'promptTokens')
_OUTPUT_KEYS = ('output_tokens', 'outputTokens', 'output', 'completion_tokens', 'completionTokens')


def new_id() -> str:
    return uuid.uuid4().hex


def encode_request(request_id: str, method: str, params: Dict[str, Any]) -> str:
    """Serialize a request frame."""
    return json.dumps({
        'type': 'req',
        'id': request_id,
        'method': method,
        'params': params
    })


def connect_params(token: Optional[str] = None, nonce: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the `connect` handshake parameters.

    Args:
        token: Optional bearer credential
        nonce: Challenge nonce pushed by the gateway, echoed back

    Returns:
        Params dict for a `connect` request
    """
    params: Dict[str, Any] = {
        'minProtocol': PROTOCOL_VERSION_MIN,
        'maxProtocol': PROTOCOL_VERSION_MAX,
        'client': {
            'id': CLIENT_ID,
            'displayName': CLIENT_DISPLAY_NAME,
            'version': CLIENT_VERSION,
            'platform': 'python',
            'mode': 'backend'
        },
        'role': CLIENT_ROLE,
        'scopes': list(CLIENT_SCOPES)
    }
    if token:
        params['auth'] = {'token': token}
    if nonce:
        params['nonce'] = nonce
    return params


def chat_send_params(message: str, session_key: str, idempotency_key: str) -> Dict[str, Any]:
    return {
        'message': message,
        'sessionKey': session_key,
        'idempotencyKey': idempotency_key
    }


def decode_frame(raw) -> Optional[Frame]:
    """
    Parse raw socket data into a frame.

    Returns None for undecodable JSON, non-object payloads and frame types
    the client does not consume (including `req`).
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError:
            return None

    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None

    if not isinstance(data, dict):
        return None

    frame_type = data.get('type')
    payload = data.get('payload')
    if not isinstance(payload, dict):
        payload = {} if payload is None else {'value': payload}

    if frame_type == 'res':
        error = data.get('error')
        if error is not None and not isinstance(error, dict):
            error = {'message': str(error)}
        return ResponseFrame(
            id=str(data.get('id', '')),
            ok=bool(data.get('ok')),
            payload=payload,
            error=error
        )

    if frame_type == 'event':
        return EventFrame(event=str(data.get('event', '')), payload=payload, seq=data.get('seq'))

    return None


def extract_usage(payload: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    """
    Find a token usage object on a payload.

    Looks at `payload.usage` and `payload.data.usage`.

    Returns:
        (tokens_in, tokens_out) or None when no usage is attached
    """
    usage = payload.get('usage')
    if not isinstance(usage, dict):
        data = payload.get('data')
        usage = data.get('usage') if isinstance(data, dict) else None
    if not isinstance(usage, dict):
        return None

    return _first_int(usage, _INPUT_KEYS), _first_int(usage, _OUTPUT_KEYS)


def parse_event(frame: EventFrame) -> Optional[InboundEvent]:
    """
    Map an event frame onto its typed event.

    Returns None for event kinds and agent streams the client ignores.
    """
    payload = frame.payload
    name = frame.event

    if name == 'connect.challenge':
        return ConnectChallenge(nonce=payload.get('nonce'))

    if name == 'agent':
        return _parse_agent(payload)

    if name == 'chat':
        if payload.get('state') != 'final':
            return None
        return ChatFinalEvent(
            session_key=payload.get('sessionKey'),
            text=_message_text(payload),
            run_id=payload.get('runId')
        )

    if name == 'presence':
        entries = payload.get('presence', payload.get('entries', []))
        return PresenceEvent(entries=entries if isinstance(entries, list) else [])

    if name == 'tick':
        return TickEvent(ts=payload.get('ts'))

    if name == 'shutdown':
        return ShutdownEvent(reason=str(payload.get('reason', '')))

    return None


def _parse_agent(payload: Dict[str, Any]) -> Optional[InboundEvent]:
    stream = payload.get('stream')
    data = payload.get('data') if isinstance(payload.get('data'), dict) else {}
    run_id = payload.get('runId')
    session_key = payload.get('sessionKey')

    if stream == 'assistant':
        delta = data.get('delta')
        if delta is None:
            delta = data.get('text', '')
        if not delta:
            return None
        return MessageEvent(content=str(delta), session_key=session_key, run_id=run_id)

    if stream == 'lifecycle':
        phase = data.get('phase', '')
        error = data.get('error')
        return LifecycleEvent(
            run_id=run_id,
            phase=phase,
            session_key=session_key,
            error=str(error) if error else None
        )

    if stream == 'tool':
        return ToolEvent(
            run_id=run_id,
            name=str(data.get('name', data.get('tool', ''))),
            phase=str(data.get('phase', '')),
            session_key=session_key,
            data=data
        )

    return None


def _message_text(payload: Dict[str, Any]) -> str:
    message = payload.get('message')
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        content = message.get('content')
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return ''.join(
                part.get('text', '') for part in content
                if isinstance(part, dict) and part.get('type', 'text') == 'text'
            )
        if 'text' in message:
            return str(message['text'])
    return str(payload.get('text', ''))


def _first_int(source: Dict[str, Any], keys) -> int:
    for key in keys:
        value = source.get(key)
        if isinstance(value, (int, float)):
            return int(value)
    return 0
