"""
Telephony Provider Interfaces
Abstract collaborators for call placement, credentials and task routing
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from dialer.domain.models.dispatch import CallCredentials
from dialer.domain.models.routing import RoutingConfig


class CallPlacer(ABC):
    """Places outbound calls through the calling provider"""

    @abstractmethod
    async def place_call(
        self,
        to_number: str,
        from_number: str,
        status_callback_url: str,
        voice_url: str
    ) -> str:
        """
        Initiate an outbound call

        Args:
            to_number: Destination phone number (E.164)
            from_number: Caller ID number
            status_callback_url: URL receiving asynchronous status events
            voice_url: URL serving the call-control script

        Returns:
            call_handle: Provider call identifier

        Raises:
            CallPlacementError: If the provider rejects the call
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources"""
        pass


class CredentialResolver(ABC):
    """Looks up a tenant's calling credentials"""

    @abstractmethod
    def resolve(self, tenant_id: str) -> CallCredentials:
        """
        Raises:
            ConfigurationError: If the tenant has no calling credentials
        """
        pass


class CallPlacerFactory(ABC):
    """Builds a request-scoped call placer from tenant credentials"""

    @abstractmethod
    def create(self, credentials: CallCredentials) -> CallPlacer:
        pass


class RoutingProvider(ABC):
    """Task-routing service that hands answered calls to human agents"""

    @abstractmethod
    async def find_activity_sid(self, workspace_sid: str, friendly_name: str) -> Optional[str]:
        """Look up an activity (e.g. WrapUp) by name. Returns None if absent."""
        pass

    @abstractmethod
    async def set_worker_availability(
        self,
        workspace_sid: str,
        worker_sid: str,
        tenant_id: str,
        available: bool,
        activity_name: str
    ) -> Dict[str, Any]:
        """
        Move a worker to the named activity and flag it (un)available for routing

        Existing worker attributes (contact URI and the like) are preserved;
        only tenant_id and is_available are overwritten.

        Returns:
            The worker attributes as written

        Raises:
            RoutingError: If the worker or activity cannot be found or updated
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class RoutingProviderFactory(ABC):
    """Builds a request-scoped routing client from tenant credentials"""

    @abstractmethod
    def create(self, credentials: CallCredentials) -> RoutingProvider:
        pass


class RoutingConfigResolver(ABC):
    """Looks up tenant routing resources and campaign routing settings"""

    @abstractmethod
    def resolve_routing(self, tenant_id: str) -> Optional[RoutingConfig]:
        """Routing config for the tenant, or None if not bootstrapped."""
        pass

    @abstractmethod
    def waiting_message(self, tenant_id: str, campaign_id: str) -> Optional[str]:
        """Message played to an answered lead while waiting for an agent."""
        pass
