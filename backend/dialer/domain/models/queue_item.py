"""
Queue Item Model
One lead's pending / in-flight / completed dial attempt within a campaign
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Set
from datetime import datetime
from enum import Enum


class QueueState(str, Enum):
    """Lifecycle state of a queue item (queued -> in_progress -> done)"""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class DialMode(str, Enum):
    """Dispatch strategy that claimed the item"""
    POWER = "power"
    PARALLEL = "parallel"


class CallOutcome(str, Enum):
    """Terminal outcome of a call attempt"""
    COMPLETED = "completed"
    BUSY = "busy"
    FAILED = "failed"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"


# Provider statuses that mean the callee picked up
ANSWERED_STATUSES: Set[str] = {"answered", "in-progress"}

# Provider statuses that end the call
TERMINAL_STATUSES: Set[str] = {outcome.value for outcome in CallOutcome}


def outcome_for_status(raw_status: Optional[str]) -> Optional[CallOutcome]:
    """
    Map a raw provider call status onto the closed outcome set.

    Returns None for non-terminal statuses (queued, initiated, ringing,
    answered, in-progress) and for anything unrecognised.
    """
    if not raw_status:
        return None
    status = raw_status.strip().lower()
    if status in TERMINAL_STATUSES:
        return CallOutcome(status)
    return None


def is_answered_status(raw_status: Optional[str]) -> bool:
    return bool(raw_status) and raw_status.strip().lower() in ANSWERED_STATUSES


class QueueItem(BaseModel):
    """
    A dispatchable work item for a (tenant, campaign, lead).

    Ordered by `position` within the tenant/campaign pair. Claimed items carry
    the lead's phone number so the orchestrator can dial without a second read.
    """

    model_config = ConfigDict(from_attributes=True)

    # Identity
    id: str
    tenant_id: str
    campaign_id: str
    lead_id: str

    # Ordering / lifecycle
    position: int
    state: QueueState = QueueState.QUEUED
    attempts: int = 0

    # Dispatch metadata
    dial_mode: Optional[DialMode] = None
    parallel_run_id: Optional[str] = None
    call_handle: Optional[str] = None
    task_handle: Optional[str] = None
    assignment_handle: Optional[str] = None
    worker_handle: Optional[str] = None

    # Timing
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    waiting_started_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Outcome
    outcome: Optional[CallOutcome] = None
    last_error: Optional[str] = None

    # Lead details joined at claim time
    phone_e164: Optional[str] = Field(default=None, description="Lead number to dial")
    full_name: Optional[str] = None

    def status_changes(
        self,
        call_handle: Optional[str],
        raw_status: Optional[str],
        now: datetime
    ) -> Dict[str, Any]:
        """
        Field changes produced by a provider status event.

        Applying the same event twice yields no changes the second time:
        - call_handle is only filled when empty
        - started_at is stamped once, on an answered / in-progress status
        - ended_at, outcome and state=done are applied by the first terminal status only

        Events for queued items, or carrying a call handle different from the
        one already recorded, belong to another attempt and are ignored.
        """
        if self.state == QueueState.QUEUED:
            return {}
        if call_handle and self.call_handle and call_handle != self.call_handle:
            return {}

        changes: Dict[str, Any] = {}

        if call_handle and not self.call_handle:
            changes["call_handle"] = call_handle

        if self.started_at is None and is_answered_status(raw_status):
            changes["started_at"] = now

        outcome = outcome_for_status(raw_status)
        if outcome is not None and self.state != QueueState.DONE:
            changes["outcome"] = outcome
            changes["ended_at"] = now
            changes["state"] = QueueState.DONE

        return changes

    def assignment_changes(
        self,
        task_handle: Optional[str],
        assignment_handle: Optional[str],
        worker_handle: Optional[str],
        now: datetime
    ) -> Dict[str, Any]:
        """Field changes produced by a routing assignment; first assignment stamps the wait start."""
        changes: Dict[str, Any] = {}
        for field, value in (
            ("task_handle", task_handle),
            ("assignment_handle", assignment_handle),
            ("worker_handle", worker_handle),
        ):
            if value and getattr(self, field) != value:
                changes[field] = value

        if self.waiting_started_at is None:
            changes["waiting_started_at"] = now

        return changes

    def to_response(self) -> dict:
        """Serialize for API responses."""
        return {
            "queue_id": self.id,
            "campaign_id": self.campaign_id,
            "lead_id": self.lead_id,
            "position": self.position,
            "state": self.state.value,
            "attempts": self.attempts,
            "dial_mode": self.dial_mode.value if self.dial_mode else None,
            "parallel_run_id": self.parallel_run_id,
            "call_sid": self.call_handle,
            "outcome": self.outcome.value if self.outcome else None,
            "full_name": self.full_name,
            "phone_e164": self.phone_e164,
        }
