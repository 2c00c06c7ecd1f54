"""
Telephony Provider Factory
"""
from typing import Dict, Optional, Type

import httpx

from dialer.core.config import Settings
from dialer.domain.interfaces.telephony_provider import (
    CallPlacer,
    CallPlacerFactory,
    RoutingProvider,
    RoutingProviderFactory,
)
from dialer.domain.models.dispatch import CallCredentials
from dialer.infrastructure.telephony.taskrouter_client import TaskRouterClient
from dialer.infrastructure.telephony.twilio_caller import TwilioCaller


class TelephonyFactory(CallPlacerFactory):
    """Factory for creating request-scoped call placers from tenant credentials"""

    _providers: Dict[str, Type[TwilioCaller]] = {"twilio": TwilioCaller}

    def __init__(
        self,
        settings: Settings,
        provider_name: str = "twilio",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if provider_name not in self._providers:
            available = ", ".join(self._providers.keys())
            raise ValueError(f"Unknown Telephony provider: {provider_name}. Available: {available}")
        self._provider_class = self._providers[provider_name]
        self._settings = settings
        self._transport = transport

    def create(self, credentials: CallCredentials) -> CallPlacer:
        """Create provider instance"""
        return self._provider_class(
            account_sid=credentials.account_sid,
            auth_token=credentials.auth_token,
            api_base=self._settings.provider_api_base,
            timeout=self._settings.provider_timeout_seconds,
            transport=self._transport,
        )


class RoutingFactory(RoutingProviderFactory):
    """Factory for creating request-scoped task router clients"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    def create(self, credentials: CallCredentials) -> RoutingProvider:
        return TaskRouterClient(
            account_sid=credentials.account_sid,
            auth_token=credentials.auth_token,
            api_base=self._settings.routing_api_base,
            timeout=self._settings.provider_timeout_seconds,
            transport=self._transport,
        )
