"""Tests for webhook routing in the Quart app."""

from unittest.mock import AsyncMock, patch

import pytest
import app as app_module


@pytest.fixture
def client():
    return app_module.app.test_client()


class TestTelnyxWebhook:
    """Envelope parsing and dispatch."""

    @pytest.mark.asyncio
    async def test_inbound_sms_routed_to_correlator(self, client):
        with patch.object(app_module.correlator, 'handle_inbound_sms', new_callable=AsyncMock) as handler:
            response = await client.post('/webhook/telnyx', json={
                'data': {
                    'event_type': 'message.received',
                    'payload': {'text': 'Hello?', 'from': {'phone_number': '+15551234567'}}
                }
            })

        assert response.status_code == 200
        assert await response.get_json() == {'ok': True}
        handler.assert_awaited_once_with('+15551234567', 'Hello?')

    @pytest.mark.asyncio
    async def test_call_event_routed_to_state_machine(self, client):
        payload = {'call_control_id': 'cc-1', 'direction': 'incoming', 'from': '+15551234567'}
        with patch.object(app_module.call_machine, 'handle_event', new_callable=AsyncMock) as handler:
            response = await client.post('/webhook/telnyx', json={'event_type': 'call.initiated', 'payload': payload})

        assert response.status_code == 200
        handler.assert_awaited_once_with('call.initiated', payload)

    @pytest.mark.asyncio
    async def test_unknown_event_skipped(self, client):
        response = await client.post('/webhook/telnyx', json={'data': {'event_type': 'message.sent', 'payload': {}}})

        assert await response.get_json() == {'ok': True, 'skipped': True}

    @pytest.mark.asyncio
    async def test_handler_error_returns_500(self, client):
        with patch.object(app_module.call_machine, 'handle_event', new_callable=AsyncMock, side_effect=RuntimeError("boom")):
            response = await client.post('/webhook/telnyx', json={'event_type': 'call.hangup', 'payload': {'call_control_id': 'cc-1'}})

        assert response.status_code == 500


class TestCommandAndHealth:
    """Dashboard-facing endpoints."""

    @pytest.mark.asyncio
    async def test_command_not_delivered_when_offline(self, client):
        response = await client.post('/command', json={'text': 'status?'})

        assert await response.get_json() == {'run_id': None, 'delivered': False}

    @pytest.mark.asyncio
    async def test_command_requires_text(self, client):
        response = await client.post('/command', json={})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_health_reports_gateway(self, client):
        response = await client.get('/health')
        data = await response.get_json()

        assert data['status'] == 'healthy'
        assert data['gateway']['state'] == 'disconnected'
        assert data['active_calls'] == 0


class TestShutdown:
    """after_serving hook."""

    @pytest.mark.asyncio
    async def test_gateway_disconnects_even_if_correlator_close_fails(self):
        with patch.object(app_module.correlator, 'close', new_callable=AsyncMock, side_effect=RuntimeError("boom")), \
                patch.object(app_module.gateway, 'disconnect', new_callable=AsyncMock) as disconnect:
            with pytest.raises(RuntimeError):
                await app_module.shutdown()

        disconnect.assert_awaited_once()
