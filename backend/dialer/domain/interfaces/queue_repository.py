"""
Queue Repository Interface
Durable, position-ordered queue storage with exactly-once claiming
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from dialer.domain.models.queue_item import QueueItem
from dialer.domain.models.parallel_run import ParallelRun
from dialer.domain.models.routing import RoutingCorrelation


class QueueRepository(ABC):
    """
    Storage contract used by the dispatch orchestrator and reconcilers.

    Every method runs in its own short transaction. Claiming methods must
    skip rows locked by concurrent claimants instead of waiting on them.
    """

    @abstractmethod
    def enqueue(self, tenant_id: str, campaign_id: str, lead_ids: Sequence[str]) -> int:
        """Append leads in input order; already-enqueued leads are skipped. Returns inserted count."""
        pass

    @abstractmethod
    def claim_next(self, tenant_id: str, campaign_id: str) -> Optional[QueueItem]:
        """Claim the lowest-position queued item, or None when nothing is queued."""
        pass

    @abstractmethod
    def claim_batch(
        self,
        tenant_id: str,
        campaign_id: str,
        want: int,
        run_id: str
    ) -> List[QueueItem]:
        """Claim up to `want` queued items, stamping them with the run id and parallel dial mode."""
        pass

    @abstractmethod
    def get_campaign_dial_settings(self, tenant_id: str, campaign_id: str) -> Tuple[Optional[int], Optional[float]]:
        """Configured (concurrency, dial_ratio) for a campaign. Raises NotFoundError."""
        pass

    @abstractmethod
    def start_parallel_run(
        self,
        tenant_id: str,
        campaign_id: str,
        concurrency: int,
        dial_ratio: float,
        want: int,
        started_by: Optional[str] = None
    ) -> Tuple[ParallelRun, List[QueueItem]]:
        """Create the run record and claim its batch in one transaction."""
        pass

    @abstractmethod
    def attach_call_handle(self, tenant_id: str, item_id: str, call_handle: str) -> None:
        """Record the provider call id unless a handle is already recorded."""
        pass

    @abstractmethod
    def mark_failed(self, tenant_id: str, item_id: str, error: Optional[str] = None) -> None:
        """Compensate an item whose call could not be placed: done / failed."""
        pass

    @abstractmethod
    def apply_call_status(
        self,
        item_id: str,
        call_handle: Optional[str],
        raw_status: Optional[str]
    ) -> Optional[QueueItem]:
        """Fold a provider status event onto an item. Returns the item, or None if unknown."""
        pass

    @abstractmethod
    def record_assignment(
        self,
        correlation: RoutingCorrelation,
        task_handle: Optional[str],
        assignment_handle: Optional[str],
        worker_handle: Optional[str]
    ) -> Optional[QueueItem]:
        """Persist routing handles on the correlated item. Returns None if no item matches."""
        pass

    @abstractmethod
    def reset_in_progress(self, tenant_id: str, campaign_id: str, actor: Optional[str] = None) -> int:
        """Administrative override: return in_progress items to queued. Audited."""
        pass

    @abstractmethod
    def sweep_stale_in_progress(self, older_than: datetime, actor: str = "reaper") -> int:
        """Fail items left in_progress since before `older_than`. Audited."""
        pass

    @abstractmethod
    def queue_stats(self, tenant_id: str, campaign_id: str) -> dict:
        pass
