"""
Tenant Telephony Configuration
Per-request lookups of tenant calling credentials and routing resources
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from dialer.core.exceptions import ConfigurationError
from dialer.domain.interfaces.telephony_provider import CredentialResolver, RoutingConfigResolver
from dialer.domain.models.dispatch import CallCredentials
from dialer.domain.models.routing import RoutingConfig
from dialer.infrastructure.storage.database import get_db
from dialer.infrastructure.storage.models import (
    CampaignRow,
    TenantRoutingConfigRow,
    TenantTelephonyConfigRow,
)

logger = logging.getLogger(__name__)


class SqlCredentialResolver(CredentialResolver):

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def resolve(self, tenant_id: str) -> CallCredentials:
        with get_db(self._session_factory) as session:
            row = session.scalars(
                select(TenantTelephonyConfigRow).where(TenantTelephonyConfigRow.tenant_id == tenant_id)
            ).first()
            if row is None or not row.account_sid or not row.auth_token:
                logger.warning(f"No calling credentials configured for tenant {tenant_id}")
                raise ConfigurationError("telephony_config_missing")

            return CallCredentials(
                account_sid=row.account_sid,
                auth_token=row.auth_token,
                default_from_number=row.default_from_number,
            )


class SqlRoutingConfigResolver(RoutingConfigResolver):

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def resolve_routing(self, tenant_id: str) -> Optional[RoutingConfig]:
        with get_db(self._session_factory) as session:
            row = session.scalars(
                select(TenantRoutingConfigRow).where(TenantRoutingConfigRow.tenant_id == tenant_id)
            ).first()
            if row is None:
                return None
            return RoutingConfig(
                workspace_sid=row.workspace_sid,
                workflow_sid=row.workflow_sid,
                taskqueue_sid=row.taskqueue_sid,
            )

    def waiting_message(self, tenant_id: str, campaign_id: str) -> Optional[str]:
        with get_db(self._session_factory) as session:
            return session.scalar(
                select(CampaignRow.waiting_message).where(
                    CampaignRow.id == campaign_id,
                    CampaignRow.tenant_id == tenant_id,
                )
            )
