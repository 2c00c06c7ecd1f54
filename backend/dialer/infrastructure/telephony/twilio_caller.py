"""
Twilio Call Origination Service
Places outbound calls via the Twilio REST API
"""
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from dialer.core.exceptions import CallPlacementError
from dialer.domain.interfaces.telephony_provider import CallPlacer

logger = logging.getLogger(__name__)

# Sent as repeated StatusCallbackEvent fields, one per event
STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


class TwilioCaller(CallPlacer):
    """
    Twilio Voice API client for outbound call origination.

    One instance per request, built from the tenant's credentials; the
    underlying httpx client is opened lazily and released by close().
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.account_sid = account_sid
        self._auth_token = auth_token
        self.base_url = f"{api_base.rstrip('/')}/Accounts/{account_sid}"
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                auth=(self.account_sid, self._auth_token),
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def _post(self, path: str, data: Dict[str, Union[str, List[str]]]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}.json"
        try:
            resp = await self._get_client().post(url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Twilio request to {path} failed: {e}")
            raise CallPlacementError("provider_unreachable", str(e)) from e

        if resp.status_code >= 400:
            logger.error(f"Twilio API error {resp.status_code} on {path}: {resp.text[:500]}")
            raise CallPlacementError(f"provider_http_{resp.status_code}", resp.text[:500])

        try:
            return resp.json()
        except ValueError as e:
            raise CallPlacementError("provider_bad_response", str(e)) from e

    async def place_call(
        self,
        to_number: str,
        from_number: str,
        status_callback_url: str,
        voice_url: str
    ) -> str:
        if not to_number:
            raise CallPlacementError("lead_phone_missing")

        # Twilio uses form-encoded POST, not JSON
        payload = {
            "To": to_number,
            "From": from_number,
            "Url": voice_url,
            "Method": "GET",
            "StatusCallback": status_callback_url,
            "StatusCallbackEvent": STATUS_CALLBACK_EVENTS,
            "StatusCallbackMethod": "POST",
        }

        logger.info(f"Initiating call: {from_number} -> {to_number}")
        result = await self._post("/Calls", payload)

        call_sid = result.get("sid")
        if not call_sid:
            raise CallPlacementError("provider_missing_sid")

        logger.info(f"Call initiated: sid={call_sid}")
        return call_sid

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
