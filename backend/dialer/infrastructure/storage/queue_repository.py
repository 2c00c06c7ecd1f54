"""
SQL Queue Repository
Position-ordered dispatch queue over SQLAlchemy with skip-locked claiming
"""
import logging
import uuid
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Generator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from dialer.core.exceptions import NotFoundError, ValidationError
from dialer.domain.interfaces.queue_repository import QueueRepository
from dialer.domain.models.parallel_run import ParallelRun, RunStatus
from dialer.domain.models.queue_item import CallOutcome, DialMode, QueueItem, QueueState
from dialer.domain.models.routing import RoutingCorrelation
from dialer.infrastructure.storage.database import get_db
from dialer.infrastructure.storage.models import (
    CampaignRow,
    DialerQueueRow,
    LeadRow,
    ParallelRunRow,
    QueueAuditRow,
    utcnow,
)

logger = logging.getLogger(__name__)

# Concurrent enqueues into one campaign can race on max(position)+1
ENQUEUE_MAX_RETRIES = 3

# Re-reads after every candidate was taken by another claimant
CLAIM_MAX_ATTEMPTS = 3


def _require(tenant_id: Optional[str], campaign_id: Optional[str]) -> None:
    if not tenant_id:
        raise ValidationError("tenant_id_required")
    if not campaign_id:
        raise ValidationError("campaign_id_required")


def _to_item(row: DialerQueueRow, phone_e164: Optional[str] = None, full_name: Optional[str] = None) -> QueueItem:
    item = QueueItem.model_validate(row)
    if phone_e164 is not None or full_name is not None:
        item = item.model_copy(update={"phone_e164": phone_e164, "full_name": full_name})
    return item


def _column_value(value):
    # Enum members are stored by value
    return value.value if hasattr(value, "value") else value


class SqlQueueRepository(QueueRepository):
    """
    QueueRepository backed by a relational database.

    Claims use SELECT ... FOR UPDATE SKIP LOCKED so concurrent dispatchers
    partition queued rows instead of waiting on each other. Each public method
    opens and commits its own session; nothing is held across provider calls.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        with get_db(self._session_factory) as session:
            yield session

    # ------------------------------------------------------------------
    # Queue store
    # ------------------------------------------------------------------

    def enqueue(self, tenant_id: str, campaign_id: str, lead_ids: Sequence[str]) -> int:
        _require(tenant_id, campaign_id)
        lead_ids = [str(lead_id) for lead_id in (lead_ids or []) if lead_id]
        if not lead_ids:
            raise ValidationError("lead_ids_required")

        for attempt in range(1, ENQUEUE_MAX_RETRIES + 1):
            try:
                with self._session() as session:
                    inserted = self._enqueue_in(session, tenant_id, campaign_id, lead_ids)
                logger.info(
                    f"Enqueued {inserted}/{len(lead_ids)} leads "
                    f"(tenant={tenant_id}, campaign={campaign_id})"
                )
                return inserted
            except IntegrityError:
                if attempt == ENQUEUE_MAX_RETRIES:
                    raise
                logger.warning(
                    f"Enqueue position conflict for campaign {campaign_id}, "
                    f"retrying ({attempt}/{ENQUEUE_MAX_RETRIES})"
                )
        return 0

    def _enqueue_in(self, session: Session, tenant_id: str, campaign_id: str, lead_ids: List[str]) -> int:
        scope = and_(
            DialerQueueRow.tenant_id == tenant_id,
            DialerQueueRow.campaign_id == campaign_id,
        )
        position = session.execute(
            select(func.coalesce(func.max(DialerQueueRow.position), 0)).where(scope)
        ).scalar_one()

        present = set(session.scalars(
            select(DialerQueueRow.lead_id).where(scope, DialerQueueRow.lead_id.in_(lead_ids))
        ))

        now = utcnow()
        inserted = 0
        for lead_id in lead_ids:
            if lead_id in present:
                continue
            position += 1
            session.add(DialerQueueRow(
                id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                campaign_id=campaign_id,
                lead_id=lead_id,
                position=position,
                state=QueueState.QUEUED.value,
                attempts=0,
                created_at=now,
                updated_at=now,
            ))
            present.add(lead_id)
            inserted += 1

        session.flush()
        return inserted

    # ------------------------------------------------------------------
    # Lease manager
    # ------------------------------------------------------------------

    def _claim_statement(self, tenant_id: str, campaign_id: str, limit: int):
        return (
            select(DialerQueueRow, LeadRow.phone_e164, LeadRow.full_name)
            .outerjoin(
                LeadRow,
                and_(LeadRow.id == DialerQueueRow.lead_id, LeadRow.tenant_id == DialerQueueRow.tenant_id),
            )
            .where(
                DialerQueueRow.tenant_id == tenant_id,
                DialerQueueRow.campaign_id == campaign_id,
                DialerQueueRow.state == QueueState.QUEUED.value,
            )
            .order_by(DialerQueueRow.position)
            .limit(limit)
            .with_for_update(skip_locked=True, of=DialerQueueRow)
        )

    def _claim_candidates(self, session: Session, tenant_id: str, campaign_id: str, limit: int) -> list:
        return session.execute(self._claim_statement(tenant_id, campaign_id, limit)).all()

    def _mark_claimed(
        self,
        session: Session,
        candidates: list,
        dial_mode: DialMode,
        run_id: Optional[str] = None
    ) -> List[QueueItem]:
        """
        Move candidates to in_progress, keeping only rows still queued.

        The state guard makes the write itself the arbiter: a candidate taken
        by another claimant between the read and this update is dropped.
        """
        if not candidates:
            return []

        contact = {row.id: (phone, name) for row, phone, name in candidates}
        won = list(session.scalars(
            update(DialerQueueRow)
            .where(
                DialerQueueRow.id.in_(list(contact)),
                DialerQueueRow.state == QueueState.QUEUED.value,
            )
            .values(
                state=QueueState.IN_PROGRESS.value,
                attempts=DialerQueueRow.attempts + 1,
                dial_mode=dial_mode.value,
                parallel_run_id=run_id,
                updated_at=utcnow(),
            )
            .returning(DialerQueueRow.id)
            .execution_options(synchronize_session=False)
        ))

        if len(won) < len(contact):
            logger.warning(f"Lost {len(contact) - len(won)} claim candidates to a concurrent claimant")
        if not won:
            return []

        rows = session.scalars(
            select(DialerQueueRow)
            .where(DialerQueueRow.id.in_(won))
            .order_by(DialerQueueRow.position)
            .execution_options(populate_existing=True)
        ).all()
        return [_to_item(row, *contact[row.id]) for row in rows]

    def _claim_in(
        self,
        session: Session,
        tenant_id: str,
        campaign_id: str,
        limit: int,
        dial_mode: DialMode,
        run_id: Optional[str] = None
    ) -> List[QueueItem]:
        for _ in range(CLAIM_MAX_ATTEMPTS):
            candidates = self._claim_candidates(session, tenant_id, campaign_id, limit)
            if not candidates:
                return []
            claimed = self._mark_claimed(session, candidates, dial_mode, run_id)
            if claimed:
                return claimed
        return []

    def claim_next(self, tenant_id: str, campaign_id: str) -> Optional[QueueItem]:
        _require(tenant_id, campaign_id)
        with self._session() as session:
            items = self._claim_in(session, tenant_id, campaign_id, 1, DialMode.POWER)

        if not items:
            logger.debug(f"Nothing queued (tenant={tenant_id}, campaign={campaign_id})")
            return None

        item = items[0]
        logger.info(f"Claimed queue item {item.id} (position={item.position}, attempts={item.attempts})")
        return item

    def claim_batch(self, tenant_id: str, campaign_id: str, want: int, run_id: str) -> List[QueueItem]:
        _require(tenant_id, campaign_id)
        if want < 1:
            return []
        with self._session() as session:
            items = self._claim_in(session, tenant_id, campaign_id, want, DialMode.PARALLEL, run_id)
        logger.info(f"Claimed {len(items)}/{want} items for run {run_id}")
        return items

    def get_campaign_dial_settings(self, tenant_id: str, campaign_id: str) -> Tuple[Optional[int], Optional[float]]:
        _require(tenant_id, campaign_id)
        with self._session() as session:
            row = session.execute(
                select(CampaignRow.parallel_concurrency, CampaignRow.parallel_dial_ratio).where(
                    CampaignRow.id == campaign_id,
                    CampaignRow.tenant_id == tenant_id,
                )
            ).first()
        if row is None:
            raise NotFoundError("campaign_not_found")
        return row[0], row[1]

    def start_parallel_run(
        self,
        tenant_id: str,
        campaign_id: str,
        concurrency: int,
        dial_ratio: float,
        want: int,
        started_by: Optional[str] = None
    ) -> Tuple[ParallelRun, List[QueueItem]]:
        _require(tenant_id, campaign_id)
        with self._session() as session:
            run_row = ParallelRunRow(
                id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                campaign_id=campaign_id,
                concurrency=concurrency,
                dial_ratio=dial_ratio,
                status=RunStatus.RUNNING.value,
                started_by=started_by,
                created_at=utcnow(),
            )
            session.add(run_row)
            session.flush()

            items = self._claim_in(session, tenant_id, campaign_id, want, DialMode.PARALLEL, run_row.id)
            run = ParallelRun.model_validate(run_row)

        logger.info(
            f"Parallel run {run.id} started by {started_by}: "
            f"claimed {len(items)}/{want} (concurrency={concurrency}, ratio={dial_ratio})"
        )
        return run, items

    # ------------------------------------------------------------------
    # Placement bookkeeping
    # ------------------------------------------------------------------

    def attach_call_handle(self, tenant_id: str, item_id: str, call_handle: str) -> None:
        with self._session() as session:
            session.execute(
                update(DialerQueueRow)
                .where(
                    DialerQueueRow.id == item_id,
                    DialerQueueRow.tenant_id == tenant_id,
                    DialerQueueRow.call_handle.is_(None),
                )
                .values(call_handle=call_handle, updated_at=utcnow())
            )

    def mark_failed(self, tenant_id: str, item_id: str, error: Optional[str] = None) -> None:
        now = utcnow()
        with self._session() as session:
            result = session.execute(
                update(DialerQueueRow)
                .where(
                    DialerQueueRow.id == item_id,
                    DialerQueueRow.tenant_id == tenant_id,
                    DialerQueueRow.state != QueueState.DONE.value,
                )
                .values(
                    state=QueueState.DONE.value,
                    outcome=CallOutcome.FAILED.value,
                    ended_at=now,
                    updated_at=now,
                    last_error=(error or "")[:1000] or None,
                )
            )
        logger.warning(f"Queue item {item_id} compensated to done/failed ({error}), rows={result.rowcount}")

    # ------------------------------------------------------------------
    # Callback reconciliation
    # ------------------------------------------------------------------

    def _apply(self, row: DialerQueueRow, changes: Dict, now: datetime) -> None:
        for field, value in changes.items():
            setattr(row, field, _column_value(value))
        row.updated_at = now

    def apply_call_status(
        self,
        item_id: str,
        call_handle: Optional[str],
        raw_status: Optional[str]
    ) -> Optional[QueueItem]:
        now = utcnow()
        with self._session() as session:
            row = session.execute(
                select(DialerQueueRow).where(DialerQueueRow.id == item_id).with_for_update()
            ).scalar_one_or_none()
            if row is None:
                return None

            changes = _to_item(row).status_changes(call_handle, raw_status, now)
            if changes:
                self._apply(row, changes, now)
                session.flush()
            item = _to_item(row)

        if changes:
            logger.info(f"Queue item {item_id} status={raw_status} applied: {sorted(changes)}")
        return item

    def record_assignment(
        self,
        correlation: RoutingCorrelation,
        task_handle: Optional[str],
        assignment_handle: Optional[str],
        worker_handle: Optional[str]
    ) -> Optional[QueueItem]:
        now = utcnow()
        with self._session() as session:
            row = session.execute(
                select(DialerQueueRow)
                .where(
                    DialerQueueRow.id == correlation.queue_id,
                    DialerQueueRow.tenant_id == correlation.tenant_id,
                    DialerQueueRow.campaign_id == correlation.campaign_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            if row is None:
                return None

            changes = _to_item(row).assignment_changes(task_handle, assignment_handle, worker_handle, now)
            if changes:
                self._apply(row, changes, now)
                session.flush()
            return _to_item(row)

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    def reset_in_progress(self, tenant_id: str, campaign_id: str, actor: Optional[str] = None) -> int:
        _require(tenant_id, campaign_id)
        with self._session() as session:
            result = session.execute(
                update(DialerQueueRow)
                .where(
                    DialerQueueRow.tenant_id == tenant_id,
                    DialerQueueRow.campaign_id == campaign_id,
                    DialerQueueRow.state == QueueState.IN_PROGRESS.value,
                )
                .values(
                    state=QueueState.QUEUED.value,
                    call_handle=None,
                    task_handle=None,
                    assignment_handle=None,
                    worker_handle=None,
                    started_at=None,
                    waiting_started_at=None,
                    dial_mode=None,
                    parallel_run_id=None,
                    updated_at=utcnow(),
                )
            )
            count = result.rowcount or 0
            session.add(QueueAuditRow(
                tenant_id=tenant_id,
                campaign_id=campaign_id,
                action="reset_in_progress",
                actor=actor,
                item_count=count,
                created_at=utcnow(),
            ))

        logger.warning(f"Reset {count} in-progress items to queued (campaign={campaign_id}, actor={actor})")
        return count

    def sweep_stale_in_progress(self, older_than: datetime, actor: str = "reaper") -> int:
        now = utcnow()
        swept: Dict[Tuple[str, str], List[str]] = defaultdict(list)

        with self._session() as session:
            rows = session.scalars(
                select(DialerQueueRow)
                .where(
                    DialerQueueRow.state == QueueState.IN_PROGRESS.value,
                    DialerQueueRow.updated_at < older_than,
                )
                .with_for_update(skip_locked=True)
            ).all()

            for row in rows:
                row.state = QueueState.DONE.value
                row.outcome = CallOutcome.FAILED.value
                row.ended_at = now
                row.updated_at = now
                row.last_error = "stale_in_progress"
                swept[(row.tenant_id, row.campaign_id)].append(row.id)

            for (tenant_id, campaign_id), ids in swept.items():
                session.add(QueueAuditRow(
                    tenant_id=tenant_id,
                    campaign_id=campaign_id,
                    action="sweep_stale_in_progress",
                    actor=actor,
                    item_count=len(ids),
                    meta={"queue_ids": ids, "older_than": older_than.isoformat()},
                    created_at=now,
                ))

        total = sum(len(ids) for ids in swept.values())
        if total:
            logger.warning(f"Swept {total} stale in-progress items across {len(swept)} campaigns")
        return total

    def queue_stats(self, tenant_id: str, campaign_id: str) -> dict:
        _require(tenant_id, campaign_id)
        scope = (
            DialerQueueRow.tenant_id == tenant_id,
            DialerQueueRow.campaign_id == campaign_id,
        )
        with self._session() as session:
            by_state = dict(session.execute(
                select(DialerQueueRow.state, func.count()).where(*scope).group_by(DialerQueueRow.state)
            ).all())
            by_outcome = dict(session.execute(
                select(DialerQueueRow.outcome, func.count())
                .where(*scope, DialerQueueRow.outcome.is_not(None))
                .group_by(DialerQueueRow.outcome)
            ).all())

        states = {state.value: by_state.get(state.value, 0) for state in QueueState}
        return {
            "total": sum(states.values()),
            "states": states,
            "outcomes": {outcome.value: by_outcome.get(outcome.value, 0) for outcome in CallOutcome},
        }
