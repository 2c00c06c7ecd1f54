"""
API Dependencies
Shared dependencies for authentication, authorization and per-request services
"""
from functools import lru_cache
from typing import Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from dialer.core.config import ConfigManager, Settings, get_settings
from dialer.core.security import bearer_token, decode_token, tenant_from_claims
from dialer.domain.interfaces.agent_repository import AgentRepository
from dialer.domain.interfaces.queue_repository import QueueRepository
from dialer.domain.interfaces.telephony_provider import (
    CallPlacerFactory,
    CredentialResolver,
    RoutingConfigResolver,
    RoutingProviderFactory,
)
from dialer.domain.services.agent_presence import AgentPresenceService
from dialer.domain.services.callback_reconciler import CallbackReconciler
from dialer.domain.services.dispatch_service import DispatchOrchestrator
from dialer.domain.services.routing_bridge import RoutingBridge
from dialer.infrastructure.storage.agent_repository import SqlAgentRepository
from dialer.infrastructure.storage.queue_repository import SqlQueueRepository
from dialer.infrastructure.telephony.factory import RoutingFactory, TelephonyFactory
from dialer.infrastructure.telephony.tenant_config import SqlCredentialResolver, SqlRoutingConfigResolver


class CurrentUser(BaseModel):
    """Current authenticated user model"""
    id: str
    tenant_id: str
    role: str = "agent"


@lru_cache
def get_config() -> ConfigManager:
    return ConfigManager()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings)
) -> CurrentUser:
    """
    Dependency to get the current authenticated user from the JWT token.

    Raises:
        HTTPException: 401 if the token is missing or invalid, or carries no tenant
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = decode_token(token, settings)
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant_id = tenant_from_claims(claims)
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no tenant",
        )

    return CurrentUser(
        id=str(claims.get("user_id") or claims.get("sub") or ""),
        tenant_id=str(tenant_id),
        role=claims.get("role") or "agent",
    )


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user)
) -> CurrentUser:
    """
    Dependency to require admin role.

    Raises:
        HTTPException: If user is not an admin
    """
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


# ---------------------------------------------------------------------------
# Collaborators (request-scoped; overridden in tests)
# ---------------------------------------------------------------------------

def get_repository() -> QueueRepository:
    return SqlQueueRepository()


def get_agent_repository() -> AgentRepository:
    return SqlAgentRepository()


def get_credential_resolver() -> CredentialResolver:
    return SqlCredentialResolver()


def get_routing_config_resolver() -> RoutingConfigResolver:
    return SqlRoutingConfigResolver()


def get_call_placer_factory(settings: Settings = Depends(get_settings)) -> CallPlacerFactory:
    return TelephonyFactory(settings)


def get_routing_provider_factory(settings: Settings = Depends(get_settings)) -> RoutingProviderFactory:
    return RoutingFactory(settings)


def get_dispatch_service(
    repository: QueueRepository = Depends(get_repository),
    credentials: CredentialResolver = Depends(get_credential_resolver),
    placers: CallPlacerFactory = Depends(get_call_placer_factory),
    settings: Settings = Depends(get_settings),
    config: ConfigManager = Depends(get_config),
) -> DispatchOrchestrator:
    return DispatchOrchestrator(repository, credentials, placers, settings, config)


def get_callback_reconciler(
    repository: QueueRepository = Depends(get_repository),
    config: ConfigManager = Depends(get_config),
) -> CallbackReconciler:
    aliases: Dict[str, str] = config.get("dialer.status_aliases", {}) or {}
    return CallbackReconciler(repository, status_aliases=aliases)


def get_routing_bridge(
    repository: QueueRepository = Depends(get_repository),
    credentials: CredentialResolver = Depends(get_credential_resolver),
    routing_configs: RoutingConfigResolver = Depends(get_routing_config_resolver),
    routing_providers: RoutingProviderFactory = Depends(get_routing_provider_factory),
    settings: Settings = Depends(get_settings),
    config: ConfigManager = Depends(get_config),
) -> RoutingBridge:
    return RoutingBridge(
        repository,
        credentials,
        routing_configs,
        routing_providers,
        settings,
        wrap_up_activity=config.get("dialer.routing.wrap_up_activity", "WrapUp"),
        waiting_language=config.get("dialer.scripts.waiting_language"),
    )


def get_agent_presence_service(
    agents: AgentRepository = Depends(get_agent_repository),
    credentials: CredentialResolver = Depends(get_credential_resolver),
    routing_configs: RoutingConfigResolver = Depends(get_routing_config_resolver),
    routing_providers: RoutingProviderFactory = Depends(get_routing_provider_factory),
    config: ConfigManager = Depends(get_config),
) -> AgentPresenceService:
    return AgentPresenceService(
        agents,
        credentials,
        routing_configs,
        routing_providers,
        ready_activity=config.get("dialer.routing.ready_activity", "Available"),
        offline_activity=config.get("dialer.routing.offline_activity", "Offline"),
    )
