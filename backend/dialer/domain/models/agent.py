"""
Agent Presence Models
"""
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class AgentStatus(str, Enum):
    READY = "ready"
    OFFLINE = "offline"


class AvailabilityResult(BaseModel):
    """Outcome of switching an agent's routing availability"""
    status: AgentStatus
    worker_sid: str
    attrs: Dict[str, Any] = Field(default_factory=dict)

    def to_response(self) -> dict:
        return {
            "ok": True,
            "status": self.status.value,
            "worker_sid": self.worker_sid,
            "attrs": self.attrs,
        }
