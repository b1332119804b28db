"""Tests for the gateway client lifecycle, handshake and command path."""

import asyncio
from datetime import date

import pytest
from layers.cost_guard import CostGuard
from layers.gateway_client import GatewayClient
from models.gateway import (
    ConnectionState, StatusEvent, LogEvent, MessageEvent, LifecycleEvent, ChatFinalEvent,
)
from helpers import FakeSocket, settle, wait_forever


def make_client(socket, cost_guard=None, sleep=wait_forever):
    async def connector(url):
        return socket
    return GatewayClient("ws://gateway.test", token="tok", cost_guard=cost_guard,
                         connector=connector, sleep=sleep)


async def open_client(client, socket):
    client.connect()
    await settle()
    assert client.state == ConnectionState.CONNECTED


async def authenticate(client, socket, ok=True):
    socket.push({'type': 'event', 'event': 'connect.challenge', 'payload': {'nonce': 'n1'}})
    await settle()
    request = socket.sent[-1]
    assert request['method'] == 'connect'
    response = {'type': 'res', 'id': request['id'], 'ok': ok}
    if not ok:
        response['error'] = {'message': 'unauthorized'}
    socket.push(response)
    await settle()


class TestHandshake:
    """Challenge/response authentication."""

    @pytest.mark.asyncio
    async def test_waits_for_challenge(self):
        """Opening the socket sends nothing until challenged."""
        socket = FakeSocket()
        client = make_client(socket)

        await open_client(client, socket)

        assert socket.sent == []
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_challenge_then_ok_authenticates(self):
        """ok=true reaches Authenticated and emits exactly one online event."""
        socket = FakeSocket()
        client = make_client(socket)
        events = []
        client.on_event(events.append)

        await open_client(client, socket)
        await authenticate(client, socket)

        connect_req = socket.sent[0]
        assert connect_req['params']['auth'] == {'token': 'tok'}
        assert connect_req['params']['nonce'] == 'n1'
        assert client.state == ConnectionState.AUTHENTICATED
        assert [e for e in events if isinstance(e, StatusEvent)] == [StatusEvent(online=True)]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_rejected_handshake_keeps_transport(self):
        """ok=false logs an error event and leaves the socket open."""
        socket = FakeSocket()
        client = make_client(socket)
        events = []
        client.on_event(events.append)

        await open_client(client, socket)
        await authenticate(client, socket, ok=False)

        assert client.state == ConnectionState.CONNECTED
        assert socket.closed is False
        assert not any(isinstance(e, StatusEvent) for e in events)
        assert any(isinstance(e, LogEvent) and e.level == 'error' for e in events)
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self):
        """A second connect() does not open another socket."""
        calls = []
        socket = FakeSocket()

        async def connector(url):
            calls.append(url)
            return socket

        client = GatewayClient("ws://gateway.test", connector=connector, sleep=wait_forever)
        client.connect()
        client.connect()
        await settle()

        assert calls == ["ws://gateway.test"]
        await client.disconnect()


class TestSendCommand:
    """Command dispatch guards."""

    @pytest.mark.asyncio
    async def test_before_authentication_returns_none(self):
        """No frame is transmitted before the handshake completes."""
        socket = FakeSocket()
        client = make_client(socket)

        assert client.send_command("hi", "main") is None

        await open_client(client, socket)
        assert client.send_command("hi", "main") is None
        await settle()

        assert socket.sent == []
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_sends_chat_request_with_run_id(self):
        """An authenticated send returns a run id distinct from the wire id."""
        socket = FakeSocket()
        client = make_client(socket)
        await open_client(client, socket)
        await authenticate(client, socket)

        run_id = client.send_command("status report", "main")
        await settle()

        frame = socket.sent[-1]
        assert run_id is not None
        assert frame['type'] == 'req'
        assert frame['method'] == 'chat.send'
        assert frame['params'] == {'message': 'status report', 'sessionKey': 'main', 'idempotencyKey': run_id}
        assert frame['id'] != run_id
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_cost_limit_synthesizes_agent_message(self):
        """Over the limit, nothing is sent and a notice is emitted as an agent message."""
        socket = FakeSocket()
        guard = CostGuard(daily_limit=0.0, today=lambda: date(2026, 3, 1))
        client = make_client(socket, cost_guard=guard)
        events = []
        client.on_event(events.append)
        await open_client(client, socket)
        await authenticate(client, socket)
        sent_before = len(socket.sent)

        assert client.send_command("do work", "sms") is None
        await settle()

        assert len(socket.sent) == sent_before
        notices = [e for e in events if isinstance(e, MessageEvent)]
        assert len(notices) == 1
        assert notices[0].role == 'agent'
        assert notices[0].session_key == 'sms'
        assert 'cost limit' in notices[0].content.lower()
        await client.disconnect()


class TestEvents:
    """Inbound event delivery."""

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_block_others(self):
        """A failing handler does not stop later handlers."""
        socket = FakeSocket()
        client = make_client(socket)
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        client.on_event(broken)
        client.on_event(received.append)
        await open_client(client, socket)
        await authenticate(client, socket)

        assert StatusEvent(online=True) in received
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        """Deltas and finals reach subscribers in wire order; ticks are dropped."""
        socket = FakeSocket()
        client = make_client(socket)
        received = []
        client.on_event(received.append)
        await open_client(client, socket)

        socket.push({'type': 'event', 'event': 'agent', 'payload': {'stream': 'assistant', 'sessionKey': 'sms', 'data': {'delta': 'A'}}})
        socket.push({'type': 'event', 'event': 'tick', 'payload': {'ts': 1}})
        socket.push({'type': 'event', 'event': 'agent', 'payload': {'stream': 'assistant', 'sessionKey': 'sms', 'data': {'delta': 'B'}}})
        socket.push({'type': 'event', 'event': 'chat', 'payload': {'state': 'final', 'sessionKey': 'sms', 'message': 'AB'}})
        await settle()

        assert received == [
            MessageEvent(content='A', session_key='sms'),
            MessageEvent(content='B', session_key='sms'),
            ChatFinalEvent(session_key='sms', text='AB'),
        ]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self):
        """Undecodable frames never break the connection."""
        socket = FakeSocket()
        client = make_client(socket)
        await open_client(client, socket)

        socket.push_raw("{oops")
        await settle()

        assert client.state == ConnectionState.CONNECTED
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_usage_forwarded_to_cost_guard(self):
        """Usage attached to any event is recorded."""
        socket = FakeSocket()
        guard = CostGuard(daily_limit=100.0, today=lambda: date(2026, 3, 1))
        client = make_client(socket, cost_guard=guard)
        await open_client(client, socket)

        socket.push({'type': 'event', 'event': 'agent', 'payload': {
            'stream': 'lifecycle', 'data': {'phase': 'end', 'usage': {'input_tokens': 1000, 'output_tokens': 200}}
        }})
        socket.push({'type': 'event', 'event': 'presence', 'payload': {'usage': {'input': 5, 'output': 5}}})
        await settle()

        assert guard.tracker.tokens_in_session == 1005
        assert guard.tracker.tokens_out_session == 205
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_shutdown_emits_offline(self):
        """A shutdown notice is reported as offline status."""
        socket = FakeSocket()
        client = make_client(socket)
        received = []
        client.on_event(received.append)
        await open_client(client, socket)

        socket.push({'type': 'event', 'event': 'shutdown', 'payload': {'reason': 'restart'}})
        await settle()

        assert received == [StatusEvent(online=False, reason='restart')]
        await client.disconnect()


class TestDisconnectAndReconnect:
    """Transport loss and backoff."""

    @pytest.mark.asyncio
    async def test_pending_commands_fail_on_close(self):
        """Outstanding chat requests are reported failed when the socket closes."""
        socket = FakeSocket()
        client = make_client(socket)
        received = []
        client.on_event(received.append)
        await open_client(client, socket)
        await authenticate(client, socket)
        run_id = client.send_command("long task", "main")
        await settle()

        socket.server_close()
        await settle()

        assert LifecycleEvent(run_id=run_id, phase='error', session_key='main',
                              error='gateway connection closed') in received
        assert StatusEvent(online=False, reason='disconnected') in received
        assert client.state == ConnectionState.DISCONNECTED
        assert client.send_command("again", "main") is None
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_backoff_doubles_to_ceiling(self):
        """Repeated failures wait 1, 2, 4, 8, 16, 30, 30... seconds."""
        delays = []

        async def refuse(url):
            raise OSError("connection refused")

        async def record_sleep(delay):
            delays.append(delay)
            if len(delays) >= 8:
                client._running = False

        client = GatewayClient("ws://gateway.test", connector=refuse, sleep=record_sleep)
        client.connect()
        await asyncio.wait_for(client._task, timeout=1)

        assert delays == [1, 2, 4, 8, 16, 30, 30, 30]

    @pytest.mark.asyncio
    async def test_backoff_resets_after_open(self):
        """A successful open restarts the delay sequence at 1 second."""
        delays = []
        closed_socket = FakeSocket()
        closed_socket.server_close()
        outcomes = [OSError("down"), OSError("down"), closed_socket]

        async def connector(url):
            outcome = outcomes.pop(0) if outcomes else OSError("down")
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        async def record_sleep(delay):
            delays.append(delay)
            if len(delays) >= 4:
                client._running = False

        client = GatewayClient("ws://gateway.test", connector=connector, sleep=record_sleep)
        client.connect()
        await asyncio.wait_for(client._task, timeout=1)

        assert delays == [1, 2, 1, 2]

    @pytest.mark.asyncio
    async def test_disconnect_resets_state(self):
        """disconnect() closes the socket and stops reconnecting."""
        socket = FakeSocket()
        client = make_client(socket)
        await open_client(client, socket)
        await authenticate(client, socket)

        await client.disconnect()

        assert socket.closed is True
        assert client.state == ConnectionState.DISCONNECTED
        assert client.authenticated is False
