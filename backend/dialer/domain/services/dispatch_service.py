"""
Dispatch Orchestrator
Claims queue items and places their calls outside the claiming transaction
"""
import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlencode

from dialer.core.config import ConfigManager, Settings
from dialer.core.exceptions import BatchAbortedError, CallPlacementError, ValidationError
from dialer.domain.interfaces.queue_repository import QueueRepository
from dialer.domain.interfaces.telephony_provider import CallPlacer, CallPlacerFactory, CredentialResolver
from dialer.domain.models.dispatch import DispatchResult
from dialer.domain.models.parallel_run import ItemError, ParallelRunResult, resolve_batch_size
from dialer.domain.models.queue_item import QueueItem

logger = logging.getLogger(__name__)


def _first_set(*values):
    # An explicit 0 is kept so validation can reject it
    return next((value for value in values if value is not None), None)


class DispatchOrchestrator:
    """
    Sequential (power) and bounded-parallel dispatch strategies.

    Every claim commits before a call is placed. Any item whose call cannot
    be placed is compensated to done/failed before the method returns, so no
    claimed item is left queued or abandoned in_progress.

    Usage:
        orchestrator = DispatchOrchestrator(repository, credentials, placers, settings)
        result = await orchestrator.dispatch_next_and_call(tenant_id, campaign_id)
        if result.nothing_to_dial:
            ...
    """

    def __init__(
        self,
        repository: QueueRepository,
        credentials: CredentialResolver,
        placers: CallPlacerFactory,
        settings: Settings,
        config: Optional[ConfigManager] = None
    ):
        self._repository = repository
        self._credentials = credentials
        self._placers = placers
        self._settings = settings

        # YAML may override the environment defaults for campaigns without their own values
        self._default_concurrency = settings.default_parallel_concurrency
        self._default_dial_ratio = settings.default_dial_ratio
        if config is not None:
            self._default_concurrency = int(
                config.get("dialer.parallel.default_concurrency", self._default_concurrency)
            )
            self._default_dial_ratio = float(
                config.get("dialer.parallel.default_dial_ratio", self._default_dial_ratio)
            )

    # ------------------------------------------------------------------
    # Callback URLs
    # ------------------------------------------------------------------

    def _webhook_url(self, base: str, path: str, **params: str) -> str:
        return f"{base}{self._settings.api_prefix}/webhooks/{path}?{urlencode(params)}"

    def status_callback_url(self, base: str, item: QueueItem) -> str:
        return self._webhook_url(base, "voice/status", queue_id=item.id)

    def power_voice_url(self, base: str, item: QueueItem) -> str:
        return self._webhook_url(base, "voice/twiml", queue_id=item.id)

    def parallel_voice_url(self, base: str, item: QueueItem) -> str:
        return self._webhook_url(
            base,
            "parallel/twiml",
            tenant_id=item.tenant_id,
            campaign_id=item.campaign_id,
            queue_id=item.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _compensate(self, item: QueueItem, error: str) -> None:
        """Best-effort done/failed transition; its own failure never masks the original error."""
        try:
            self._repository.mark_failed(item.tenant_id, item.id, error)
        except Exception as e:
            logger.error(f"Compensation failed for queue item {item.id}: {e}", exc_info=True)

    async def _place(
        self,
        placer: CallPlacer,
        item: QueueItem,
        from_number: str,
        status_url: str,
        voice_url: str
    ) -> str:
        if not item.phone_e164:
            raise CallPlacementError("lead_phone_missing")

        call_handle = await placer.place_call(
            to_number=item.phone_e164,
            from_number=from_number,
            status_callback_url=status_url,
            voice_url=voice_url,
        )

        try:
            self._repository.attach_call_handle(item.tenant_id, item.id, call_handle)
        except Exception as e:
            # The call is live; the status callback records the handle instead
            logger.error(f"Failed to persist call handle {call_handle} on {item.id}: {e}", exc_info=True)

        return call_handle

    # ------------------------------------------------------------------
    # Sequential strategy
    # ------------------------------------------------------------------

    def dispatch_next(self, tenant_id: str, campaign_id: str) -> DispatchResult:
        """Claim the next item without placing a call (agent dials from the console)."""
        item = self._repository.claim_next(tenant_id, campaign_id)
        return DispatchResult(item=item)

    async def dispatch_next_and_call(self, tenant_id: str, campaign_id: str) -> DispatchResult:
        """
        Claim the next item and call it.

        Configuration is checked before the claim so a misconfigured tenant
        never consumes queue items.

        Raises:
            ConfigurationError: Base URL, credentials or caller number missing (nothing claimed)
            CallPlacementError: Provider failed; the item is already done/failed
        """
        base = self._settings.require_public_base_url()
        credentials = self._credentials.resolve(tenant_id)
        from_number = credentials.require_from_number()

        item = self._repository.claim_next(tenant_id, campaign_id)
        if item is None:
            return DispatchResult()

        placer: Optional[CallPlacer] = None
        try:
            placer = self._placers.create(credentials)
            call_handle = await self._place(
                placer,
                item,
                from_number,
                self.status_callback_url(base, item),
                self.power_voice_url(base, item),
            )
        except Exception as e:
            logger.error(f"Call placement failed for queue item {item.id}: {e}")
            self._compensate(item, getattr(e, "code", None) or str(e))
            raise
        finally:
            if placer is not None:
                await placer.close()

        logger.info(f"Dispatched queue item {item.id} (campaign={campaign_id}, call={call_handle})")
        return DispatchResult(
            item=item.model_copy(update={"call_handle": item.call_handle or call_handle}),
            call_handle=call_handle,
        )

    # ------------------------------------------------------------------
    # Parallel strategy
    # ------------------------------------------------------------------

    def resolve_run_shape(
        self,
        tenant_id: str,
        campaign_id: str,
        concurrency: Optional[int] = None,
        dial_ratio: Optional[float] = None
    ) -> tuple:
        """Per-call values win over campaign configuration, which wins over defaults."""
        campaign_concurrency, campaign_ratio = self._repository.get_campaign_dial_settings(tenant_id, campaign_id)

        concurrency = _first_set(concurrency, campaign_concurrency, self._default_concurrency)
        dial_ratio = _first_set(dial_ratio, campaign_ratio, self._default_dial_ratio)

        if concurrency < 1:
            raise ValidationError("concurrency_invalid")
        if dial_ratio <= 0:
            raise ValidationError("dial_ratio_invalid")
        return int(concurrency), float(dial_ratio)

    async def start_parallel_run(
        self,
        tenant_id: str,
        campaign_id: str,
        concurrency: Optional[int] = None,
        dial_ratio: Optional[float] = None,
        started_by: Optional[str] = None
    ) -> ParallelRunResult:
        """
        Claim ceil(concurrency x dial_ratio) items under one run and call them.

        Per-item placement failures are compensated individually and reported
        in the result; sibling calls proceed.

        Raises:
            ConfigurationError: Base URL missing or not https (nothing claimed)
            NotFoundError: Campaign does not belong to the tenant
            BatchAbortedError: Credentials unavailable after the claim; all items compensated
        """
        base = self._settings.require_public_base_url(https_only=True)
        concurrency, dial_ratio = self.resolve_run_shape(tenant_id, campaign_id, concurrency, dial_ratio)
        want = resolve_batch_size(concurrency, dial_ratio)

        run, items = self._repository.start_parallel_run(
            tenant_id, campaign_id, concurrency, dial_ratio, want, started_by
        )
        result = ParallelRunResult(run_id=run.id, picked=len(items))
        if not items:
            return result

        try:
            credentials = self._credentials.resolve(tenant_id)
            from_number = credentials.require_from_number()
            placer = self._placers.create(credentials)
        except Exception as e:
            code = getattr(e, "code", None) or "call_setup_failed"
            logger.error(f"Run {run.id} aborted before placing calls ({code}); compensating {len(items)} items")
            for item in items:
                self._compensate(item, code)
            raise BatchAbortedError(code, run_id=run.id, picked=len(items)) from e

        try:
            outcomes = await asyncio.gather(
                *(self._launch(placer, base, item, from_number) for item in items)
            )
        finally:
            await placer.close()

        errors: List[ItemError] = [error for error in outcomes if error is not None]
        result.launched = len(items) - len(errors)
        result.errors = errors

        logger.info(
            f"Run {run.id}: picked={result.picked} launched={result.launched} errors={len(errors)}"
        )
        return result

    async def _launch(self, placer: CallPlacer, base: str, item: QueueItem, from_number: str) -> Optional[ItemError]:
        try:
            await self._place(
                placer,
                item,
                from_number,
                self.status_callback_url(base, item),
                self.parallel_voice_url(base, item),
            )
            return None
        except Exception as e:
            error = getattr(e, "code", None) or str(e) or e.__class__.__name__
            logger.warning(f"Parallel placement failed for queue item {item.id}: {error}")
            self._compensate(item, error)
            return ItemError(queue_id=item.id, error=error)
