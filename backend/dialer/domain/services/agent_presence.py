"""
Agent Presence Service
Switches agents in and out of the routing pool used by parallel dialing
"""
import logging
from typing import Optional

from dialer.core.exceptions import ConfigurationError, ValidationError
from dialer.domain.interfaces.agent_repository import AgentRepository
from dialer.domain.interfaces.telephony_provider import (
    CredentialResolver,
    RoutingConfigResolver,
    RoutingProvider,
    RoutingProviderFactory,
)
from dialer.domain.models.agent import AgentStatus, AvailabilityResult

logger = logging.getLogger(__name__)


class AgentPresenceService:
    """
    Answered parallel-mode calls are only offered to workers flagged
    is_available, so an agent must be made ready before taking calls.

    The task router is updated first; the local presence row is written
    only once the worker update succeeded.
    """

    def __init__(
        self,
        agents: AgentRepository,
        credentials: CredentialResolver,
        routing_configs: RoutingConfigResolver,
        routing_providers: RoutingProviderFactory,
        ready_activity: str = "Available",
        offline_activity: str = "Offline"
    ):
        self._agents = agents
        self._credentials = credentials
        self._routing_configs = routing_configs
        self._routing_providers = routing_providers
        self._activities = {
            AgentStatus.READY: ready_activity,
            AgentStatus.OFFLINE: offline_activity,
        }

    async def set_status(self, tenant_id: str, user_id: Optional[str], status: AgentStatus) -> AvailabilityResult:
        """
        Raises:
            ValidationError: No user to update
            ConfigurationError: Routing not bootstrapped, no worker for the user, or no credentials
            RoutingError: The task router rejected the update
        """
        if not user_id:
            raise ValidationError("user_id_required")

        config = self._routing_configs.resolve_routing(tenant_id)
        if config is None:
            raise ConfigurationError("routing_not_configured")

        worker_sid = self._agents.find_worker_sid(tenant_id, user_id)
        if not worker_sid:
            logger.warning(f"No routing worker provisioned for user {user_id} (tenant={tenant_id})")
            raise ConfigurationError("worker_missing_for_user")

        credentials = self._credentials.resolve(tenant_id)

        provider: Optional[RoutingProvider] = None
        try:
            provider = self._routing_providers.create(credentials)
            attrs = await provider.set_worker_availability(
                config.workspace_sid,
                worker_sid,
                tenant_id,
                available=status == AgentStatus.READY,
                activity_name=self._activities[status],
            )
        finally:
            if provider is not None:
                await provider.close()

        self._agents.set_presence(tenant_id, user_id, status)
        return AvailabilityResult(status=status, worker_sid=worker_sid, attrs=attrs)
