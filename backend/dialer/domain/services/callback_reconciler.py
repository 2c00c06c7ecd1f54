"""
Callback Reconciler
Folds provider status events onto queue items
"""
import logging
from typing import Dict, Optional

from dialer.domain.interfaces.queue_repository import QueueRepository

logger = logging.getLogger(__name__)


class CallbackReconciler:
    """
    Applies at-least-once, possibly out-of-order call status events.

    The fold itself is idempotent (see QueueItem.status_changes); this class
    normalizes the provider vocabulary and guarantees the caller always gets
    an acknowledgement, because a non-2xx reply makes the provider redeliver.
    """

    def __init__(self, repository: QueueRepository, status_aliases: Optional[Dict[str, str]] = None):
        self._repository = repository
        self._aliases = {k.lower(): v.lower() for k, v in (status_aliases or {}).items()}

    def normalize_status(self, raw_status: Optional[str]) -> Optional[str]:
        if not raw_status:
            return None
        status = str(raw_status).strip().lower()
        return self._aliases.get(status, status)

    def on_call_status(
        self,
        queue_id: Optional[str],
        call_handle: Optional[str],
        raw_status: Optional[str]
    ) -> bool:
        """
        Apply one status event. Never raises.

        Returns:
            True if the event matched a queue item, False otherwise
        """
        if not queue_id:
            logger.warning(f"Status callback without queue_id (call={call_handle}, status={raw_status})")
            return False

        status = self.normalize_status(raw_status)
        try:
            item = self._repository.apply_call_status(queue_id, call_handle, status)
        except Exception as e:
            logger.error(f"Failed to apply status {status} to queue item {queue_id}: {e}", exc_info=True)
            return False

        if item is None:
            logger.warning(f"Status callback for unknown queue item {queue_id} (call={call_handle})")
            return False

        logger.debug(f"Queue item {queue_id} now {item.state.value} (status={status})")
        return True
