"""
Agent Repository Interface
Worker lookups and presence records for agents taking routed calls
"""
from abc import ABC, abstractmethod
from typing import Optional

from dialer.domain.models.agent import AgentStatus


class AgentRepository(ABC):

    @abstractmethod
    def find_worker_sid(self, tenant_id: str, user_id: str) -> Optional[str]:
        """Task router worker provisioned for the user, or None."""
        pass

    @abstractmethod
    def set_presence(self, tenant_id: str, user_id: str, status: AgentStatus) -> None:
        """Record the agent's status, creating the presence row on first use."""
        pass
