"""HTTP client for Telnyx call control and messaging."""

import base64
import aiohttp
from typing import Any, Dict, Optional
from config.settings import config
from config.constants import GATHER_TIMEOUT_SECS
from utils.logger import setup_logger

logger = setup_logger(__name__)


class TelephonyError(Exception):
    """Raised when a Telnyx request cannot be made or is rejected."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TelnyxClient:
    """Issues call-control actions and SMS sends against the Telnyx v2 API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        phone_number: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: float = 15
    ):
        self.api_key = api_key if api_key is not None else config.TELNYX_API_KEY
        self.phone_number = phone_number if phone_number is not None else config.TELNYX_PHONE_NUMBER
        self.api_base = (api_base or config.TELNYX_API_BASE).rstrip('/')
        self.timeout = timeout

    async def answer_call(self, call_id: str, client_state: Optional[str] = None) -> Dict[str, Any]:
        """Answer an inbound call."""
        body = {}
        if client_state:
            body['client_state'] = base64.b64encode(client_state.encode('utf-8')).decode('ascii')
        return await self._request(f"/calls/{call_id}/actions/answer", body)

    async def gather_using_speak(
        self,
        call_id: str,
        text: str,
        voice: Optional[str] = None,
        language: Optional[str] = None,
        timeout_secs: int = GATHER_TIMEOUT_SECS
    ) -> Dict[str, Any]:
        """
        Speak text, then listen for the caller.

        Args:
            call_id: Call control id
            text: Prompt to speak
            voice: TTS voice (defaults to configured voice)
            language: TTS language (defaults to configured language)
            timeout_secs: How long to wait for input

        Returns:
            Provider response body
        """
        return await self._request(f"/calls/{call_id}/actions/gather_using_speak", {
            'payload': text,
            'voice': voice or config.TELNYX_VOICE,
            'language': language or config.TELNYX_LANGUAGE,
            'minimum_digits': 0,
            'maximum_digits': 0,
            'inter_digit_timeout_secs': 3,
            'timeout_secs': timeout_secs
        })

    async def speak(
        self,
        call_id: str,
        text: str,
        voice: Optional[str] = None,
        language: Optional[str] = None
    ) -> Dict[str, Any]:
        """Speak text without listening afterwards."""
        return await self._request(f"/calls/{call_id}/actions/speak", {
            'payload': text,
            'voice': voice or config.TELNYX_VOICE,
            'language': language or config.TELNYX_LANGUAGE
        })

    async def hangup_call(self, call_id: str) -> Dict[str, Any]:
        return await self._request(f"/calls/{call_id}/actions/hangup", {})

    async def send_sms(self, to: str, text: str) -> Dict[str, Any]:
        """
        Send an SMS from the configured number.

        Args:
            to: Destination number (E.164)
            text: Message body

        Returns:
            Provider response body
        """
        if not self.phone_number:
            raise TelephonyError("Telnyx phone number not configured")

        return await self._request('/messages', {
            'from': self.phone_number,
            'to': to,
            'text': text,
            'type': 'SMS'
        })

    async def _request(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise TelephonyError("Telnyx API key not configured")

        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}'
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.api_base}{path}",
                json=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.error(f"Telnyx API error {response.status} on {path}: {text}")
                    raise TelephonyError(f"Telnyx API error {response.status}: {text}", response.status)

                logger.debug(f"Telnyx {path} -> {response.status}")
                return await response.json(content_type=None)
