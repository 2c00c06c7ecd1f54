"""
TaskRouter Client
Activity lookups and worker availability updates against the Twilio TaskRouter workspace
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from dialer.core.exceptions import RoutingError
from dialer.domain.interfaces.telephony_provider import RoutingProvider

logger = logging.getLogger(__name__)


class TaskRouterClient(RoutingProvider):
    """Looks up workspace resources per request; nothing is cached across calls."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        api_base: str = "https://taskrouter.twilio.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._api_base = api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            auth=(account_sid, auth_token),
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"TaskRouter {method} {url} failed: {e}")
            raise RoutingError("routing_unreachable", str(e)) from e

        if resp.status_code >= 400:
            logger.error(f"TaskRouter API error {resp.status_code} on {method} {url}: {resp.text[:500]}")
            raise RoutingError(f"routing_http_{resp.status_code}", resp.text[:500])

        try:
            return resp.json()
        except ValueError as e:
            raise RoutingError("routing_bad_response", str(e)) from e

    async def find_activity_sid(self, workspace_sid: str, friendly_name: str) -> Optional[str]:
        url = f"{self._api_base}/Workspaces/{workspace_sid}/Activities"
        resp = await self._client.get(url, params={"FriendlyName": friendly_name})
        if resp.status_code >= 400:
            logger.warning(f"TaskRouter activity lookup failed ({resp.status_code}) for {friendly_name}")
            return None

        for activity in resp.json().get("activities", []):
            if activity.get("friendly_name") == friendly_name:
                return activity.get("sid")
        return None

    async def set_worker_availability(
        self,
        workspace_sid: str,
        worker_sid: str,
        tenant_id: str,
        available: bool,
        activity_name: str
    ) -> Dict[str, Any]:
        worker_url = f"{self._api_base}/Workspaces/{workspace_sid}/Workers/{worker_sid}"
        worker = await self._request("GET", worker_url)

        # Unparseable attributes are replaced rather than blocking the update
        try:
            attributes = json.loads(worker.get("attributes") or "{}")
        except ValueError:
            attributes = {}
        if not isinstance(attributes, dict):
            attributes = {}

        attributes["tenant_id"] = tenant_id
        attributes["is_available"] = bool(available)

        activity_sid = await self.find_activity_sid(workspace_sid, activity_name)
        if not activity_sid:
            raise RoutingError("routing_activity_missing", f"Activity not found: {activity_name}")

        await self._request(
            "POST",
            worker_url,
            data={"ActivitySid": activity_sid, "Attributes": json.dumps(attributes)},
        )
        logger.info(f"Worker {worker_sid} moved to {activity_name} (available={attributes['is_available']})")
        return attributes

    async def close(self) -> None:
        await self._client.aclose()
