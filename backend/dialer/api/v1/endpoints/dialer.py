"""
Dialer API Endpoints
Queue management and dispatch for agent consoles and operator tools
"""
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from dialer.api.v1.dependencies import (
    CurrentUser,
    get_current_user,
    get_dispatch_service,
    get_repository,
    require_admin,
)
from dialer.core.exceptions import BatchAbortedError, DialerError
from dialer.domain.interfaces.queue_repository import QueueRepository
from dialer.domain.services.dispatch_service import DispatchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dialer", tags=["dialer"])


class EnqueueRequest(BaseModel):
    """Request body for adding leads to a campaign queue"""
    campaign_id: Optional[str] = None
    lead_ids: List[str] = Field(default_factory=list)


class CampaignRequest(BaseModel):
    campaign_id: Optional[str] = None


class ParallelStartRequest(BaseModel):
    """Request body for starting a parallel run; omitted values come from the campaign"""
    campaign_id: Optional[str] = None
    concurrency: Optional[int] = Field(None, ge=1, le=500)
    dial_ratio: Optional[float] = Field(None, gt=0, le=10)


def _raise_http(error: DialerError) -> NoReturn:
    detail = {"ok": False, "error": error.code}
    if isinstance(error, BatchAbortedError):
        detail.update(run_id=error.run_id, picked=error.picked, launched=0)
    raise HTTPException(status_code=error.status_code, detail=detail)


@router.post("/enqueue")
async def enqueue(
    body: EnqueueRequest,
    current_user: CurrentUser = Depends(get_current_user),
    repository: QueueRepository = Depends(get_repository),
):
    """Append leads to the campaign queue in the order given. Already-queued leads are skipped."""
    try:
        inserted = repository.enqueue(current_user.tenant_id, body.campaign_id, body.lead_ids)
    except DialerError as e:
        _raise_http(e)
    return {"ok": True, "inserted": inserted}


@router.post("/next")
async def dispatch_next(
    body: CampaignRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: DispatchOrchestrator = Depends(get_dispatch_service),
):
    """Claim the next lead for manual dialing. `next` is null when nothing is queued."""
    try:
        result = service.dispatch_next(current_user.tenant_id, body.campaign_id)
    except DialerError as e:
        _raise_http(e)
    return result.to_response()


@router.post("/next_and_call")
async def dispatch_next_and_call(
    body: CampaignRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: DispatchOrchestrator = Depends(get_dispatch_service),
):
    try:
        result = await service.dispatch_next_and_call(current_user.tenant_id, body.campaign_id)
    except DialerError as e:
        _raise_http(e)
    return result.to_response()


@router.post("/parallel/start")
async def start_parallel(
    body: ParallelStartRequest,
    current_user: CurrentUser = Depends(require_admin),
    service: DispatchOrchestrator = Depends(get_dispatch_service),
):
    """
    Start a parallel run.

    Claims ceil(concurrency x dial_ratio) leads and calls them; per-lead
    placement failures are reported in `errors` without failing the run.
    """
    try:
        result = await service.start_parallel_run(
            current_user.tenant_id,
            body.campaign_id,
            concurrency=body.concurrency,
            dial_ratio=body.dial_ratio,
            started_by=current_user.id or None,
        )
    except DialerError as e:
        _raise_http(e)

    return {"ok": True, **result.model_dump()}


@router.post("/reset")
async def reset_in_progress(
    body: CampaignRequest,
    current_user: CurrentUser = Depends(require_admin),
    repository: QueueRepository = Depends(get_repository),
):
    """Administrative override: return in-progress leads to the queue. Audited."""
    try:
        count = repository.reset_in_progress(current_user.tenant_id, body.campaign_id, actor=current_user.id or None)
    except DialerError as e:
        _raise_http(e)
    return {"ok": True, "reset": count}


@router.get("/stats")
async def queue_stats(
    campaign_id: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    repository: QueueRepository = Depends(get_repository),
):
    try:
        stats = repository.queue_stats(current_user.tenant_id, campaign_id)
    except DialerError as e:
        _raise_http(e)
    return {"ok": True, "campaign_id": campaign_id, **stats}
