"""
SQL Agent Repository
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from dialer.domain.interfaces.agent_repository import AgentRepository
from dialer.domain.models.agent import AgentStatus
from dialer.infrastructure.storage.database import get_db
from dialer.infrastructure.storage.models import AgentPresenceRow, TaskRouterWorkerRow, utcnow

logger = logging.getLogger(__name__)


class SqlAgentRepository(AgentRepository):

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def find_worker_sid(self, tenant_id: str, user_id: str) -> Optional[str]:
        with get_db(self._session_factory) as session:
            return session.scalar(
                select(TaskRouterWorkerRow.worker_sid).where(
                    TaskRouterWorkerRow.tenant_id == tenant_id,
                    TaskRouterWorkerRow.user_id == user_id,
                ).limit(1)
            )

    def set_presence(self, tenant_id: str, user_id: str, status: AgentStatus) -> None:
        now = utcnow()
        with get_db(self._session_factory) as session:
            row = session.get(AgentPresenceRow, (tenant_id, user_id))
            if row is None:
                session.add(AgentPresenceRow(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    status=status.value,
                    updated_at=now,
                    last_seen_at=now,
                ))
            else:
                row.status = status.value
                row.updated_at = now
                row.last_seen_at = now
        logger.info(f"Agent {user_id} (tenant={tenant_id}) is {status.value}")
