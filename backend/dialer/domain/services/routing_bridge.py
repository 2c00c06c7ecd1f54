"""
Routing Bridge
Hands answered parallel-mode calls to the task router and answers its assignment callbacks
"""
import logging
from typing import Optional, Union

from dialer.core.config import Settings
from dialer.core.exceptions import CorrelationError, DialerError
from dialer.domain.interfaces.queue_repository import QueueRepository
from dialer.domain.interfaces.telephony_provider import (
    CredentialResolver,
    RoutingConfigResolver,
    RoutingProviderFactory,
)
from dialer.domain.models.dispatch import CallCredentials
from dialer.domain.models.routing import AssignmentAction, AssignmentInstruction, RoutingConfig, RoutingCorrelation
from dialer.infrastructure.telephony import twiml

logger = logging.getLogger(__name__)


class RoutingBridge:
    """
    Parallel mode routing.

    - When a lead answers, the voice URL returns a script that enqueues the call
      into the tenant's workflow with a typed correlation as task attributes.
    - When a worker is reserved, the assignment callback maps the attributes back
      to the queue item, records the routing handles and replies dequeue.
    - Anything that cannot be correlated is rejected, never errored.
    """

    def __init__(
        self,
        repository: QueueRepository,
        credentials: CredentialResolver,
        routing_configs: RoutingConfigResolver,
        routing_providers: RoutingProviderFactory,
        settings: Settings,
        wrap_up_activity: str = "WrapUp",
        waiting_language: Optional[str] = None
    ):
        self._repository = repository
        self._credentials = credentials
        self._routing_configs = routing_configs
        self._routing_providers = routing_providers
        self._settings = settings
        self._wrap_up_activity = wrap_up_activity
        self._waiting_language = waiting_language

    def routing_script(self, tenant_id: str, campaign_id: str, queue_id: str) -> str:
        """
        Call-control script creating the routing task for an answered call.

        Returns a hangup script when the correlation is incomplete, routing is
        not configured for the tenant, or the lookup fails.
        """
        try:
            correlation = RoutingCorrelation(tenant_id=tenant_id, campaign_id=campaign_id, queue_id=queue_id)
        except ValueError:
            logger.warning(f"Parallel script requested with incomplete correlation (queue={queue_id})")
            return twiml.hangup_script()

        try:
            config = self._routing_configs.resolve_routing(tenant_id)
            if config is None:
                logger.warning(f"Routing not configured for tenant {tenant_id}; hanging up {queue_id}")
                return twiml.hangup_script()

            waiting_message = self._routing_configs.waiting_message(tenant_id, campaign_id)
            return twiml.parallel_enqueue_script(
                correlation,
                config.workflow_sid,
                waiting_message=waiting_message,
                language=self._waiting_language,
            )
        except Exception as e:
            logger.error(f"Failed to build routing script for {queue_id}: {e}", exc_info=True)
            return twiml.hangup_script()

    async def on_assignment(
        self,
        task_handle: Optional[str],
        assignment_handle: Optional[str],
        worker_handle: Optional[str],
        task_attributes: Union[str, dict, None]
    ) -> AssignmentInstruction:
        """Record the assignment and tell the router what to do. Never raises."""
        try:
            correlation = RoutingCorrelation.from_attributes(task_attributes)
        except CorrelationError as e:
            logger.warning(f"Rejecting task {task_handle}: {e.code}")
            return AssignmentInstruction.reject()

        try:
            item = self._repository.record_assignment(correlation, task_handle, assignment_handle, worker_handle)
            if item is None:
                logger.warning(
                    f"Rejecting task {task_handle}: no queue item {correlation.queue_id} "
                    f"for tenant {correlation.tenant_id}"
                )
                return AssignmentInstruction.reject()

            logger.info(
                f"Task {task_handle} assigned to worker {worker_handle} (queue item {correlation.queue_id})"
            )
            return await self._dequeue_instruction(correlation.tenant_id)
        except Exception as e:
            logger.error(f"Assignment handling failed for task {task_handle}: {e}", exc_info=True)
            return AssignmentInstruction.reject()

    async def _dequeue_instruction(self, tenant_id: str) -> AssignmentInstruction:
        credentials: Optional[CallCredentials] = None
        try:
            credentials = self._credentials.resolve(tenant_id)
        except DialerError as e:
            logger.warning(f"No calling credentials for tenant {tenant_id} ({e.code}); omitting caller id")

        from_number = self._settings.caller_id_override
        if not from_number and credentials is not None:
            from_number = credentials.default_from_number

        wrap_up_sid = None
        if credentials is not None:
            wrap_up_sid = await self._wrap_up_activity_sid(tenant_id, credentials)

        return AssignmentInstruction(
            instruction=AssignmentAction.DEQUEUE,
            from_number=from_number,
            post_work_activity_sid=wrap_up_sid,
        )

    async def _wrap_up_activity_sid(self, tenant_id: str, credentials: CallCredentials) -> Optional[str]:
        """Looked up per assignment; optional, so failures are logged and omitted."""
        try:
            config: Optional[RoutingConfig] = self._routing_configs.resolve_routing(tenant_id)
            if config is None:
                return None

            provider = self._routing_providers.create(credentials)
            try:
                return await provider.find_activity_sid(config.workspace_sid, self._wrap_up_activity)
            finally:
                await provider.close()
        except Exception as e:
            logger.warning(f"WrapUp activity lookup failed for tenant {tenant_id}: {e}")
            return None
