"""
Parallel Run Models
One invocation of bounded-concurrency dispatch and its result
"""
import math
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Runs are recorded as running; closing them out belongs to reporting"""
    RUNNING = "running"


def resolve_batch_size(concurrency: int, dial_ratio: float) -> int:
    """
    Number of items to claim for a run: ceil(concurrency x dial_ratio), at least 1.

    The ratio over-dials to compensate for expected no-answers.
    """
    return max(1, math.ceil(concurrency * dial_ratio))


class ParallelRun(BaseModel):
    """A bounded-concurrency dispatch invocation"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    campaign_id: str
    concurrency: int = Field(..., ge=1)
    dial_ratio: float = Field(..., gt=0)
    status: RunStatus = RunStatus.RUNNING
    started_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ItemError(BaseModel):
    """Per-item placement failure inside a run"""
    queue_id: str
    error: str


class ParallelRunResult(BaseModel):
    """Counts returned by startParallelRun"""
    run_id: str
    picked: int = 0
    launched: int = 0
    errors: List[ItemError] = Field(default_factory=list)
