"""
Agent Presence Endpoints
Agents (or admins on their behalf) switch routing availability
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from dialer.api.v1.dependencies import CurrentUser, get_agent_presence_service, get_current_user
from dialer.core.exceptions import DialerError
from dialer.domain.models.agent import AgentStatus
from dialer.domain.services.agent_presence import AgentPresenceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentStatusRequest(BaseModel):
    """Admins may name another agent; everyone else updates themselves"""
    user_id: Optional[str] = None


async def _switch(
    status: AgentStatus,
    body: Optional[AgentStatusRequest],
    current_user: CurrentUser,
    service: AgentPresenceService,
) -> dict:
    user_id = current_user.id
    if current_user.role == "admin" and body is not None and body.user_id:
        user_id = body.user_id

    try:
        result = await service.set_status(current_user.tenant_id, user_id, status)
    except DialerError as e:
        raise HTTPException(status_code=e.status_code, detail={"ok": False, "error": e.code})
    return result.to_response()


@router.post("/ready")
async def agent_ready(
    body: Optional[AgentStatusRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: AgentPresenceService = Depends(get_agent_presence_service),
):
    """Make the agent's worker available for routed calls."""
    return await _switch(AgentStatus.READY, body, current_user, service)


@router.post("/offline")
async def agent_offline(
    body: Optional[AgentStatusRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: AgentPresenceService = Depends(get_agent_presence_service),
):
    """Take the agent's worker out of routing."""
    return await _switch(AgentStatus.OFFLINE, body, current_user, service)
