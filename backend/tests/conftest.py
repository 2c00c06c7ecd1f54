"""
Shared fixtures: in-memory database, seeded campaign and leads, test settings
"""
import os

# Set test environment variables before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PUBLIC_BASE_URL", "https://dialer.example.com")
os.environ.setdefault("JWT_SECRET", "test-secret")

from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from dialer.core.config import Settings
from dialer.domain.models.dispatch import CallCredentials
from dialer.infrastructure.storage.database import create_session_factory
from dialer.infrastructure.storage.models import (
    Base,
    CampaignRow,
    LeadRow,
    TaskRouterWorkerRow,
    TenantRoutingConfigRow,
    TenantTelephonyConfigRow,
)
from dialer.infrastructure.storage.queue_repository import SqlQueueRepository

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
CAMPAIGN = "campaign-1"
LEADS = [f"lead-{i}" for i in range(1, 6)]
JWT_SECRET = "test-secret"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        public_base_url="https://dialer.example.com",
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def seeded(session_factory):
    """One campaign with five leads for TENANT, telephony and routing config, and a worker for user-1."""
    with session_factory() as session:
        session.add(CampaignRow(
            id=CAMPAIGN,
            tenant_id=TENANT,
            name="Spring outreach",
            parallel_concurrency=3,
            parallel_dial_ratio=1.0,
            waiting_message="Un momento por favor",
        ))
        for i, lead_id in enumerate(LEADS, start=1):
            session.add(LeadRow(
                id=lead_id,
                tenant_id=TENANT,
                full_name=f"Lead {i}",
                phone_e164=f"+1555000000{i}",
            ))
        session.add(TenantTelephonyConfigRow(
            tenant_id=TENANT,
            account_sid="AC123",
            auth_token="secret-token",
            default_from_number="+15559999999",
        ))
        session.add(TenantRoutingConfigRow(
            tenant_id=TENANT,
            workspace_sid="WS123",
            workflow_sid="WW123",
            taskqueue_sid="WQ123",
        ))
        session.add(TaskRouterWorkerRow(
            tenant_id=TENANT,
            user_id="user-1",
            worker_sid="WK-1",
            contact_uri="client:user-1",
        ))
        session.commit()
    return session_factory


@pytest.fixture
def repository(seeded):
    return SqlQueueRepository(seeded)


@pytest.fixture
def credentials():
    return CallCredentials(account_sid="AC123", auth_token="secret-token", default_from_number="+15559999999")


@pytest.fixture
def credential_resolver(credentials):
    resolver = MagicMock()
    resolver.resolve.return_value = credentials
    return resolver


@pytest.fixture
def call_placer():
    """Placer returning CA-1, CA-2, ... for successive calls."""
    placer = AsyncMock()
    counter = {"n": 0}

    async def place_call(**kwargs):
        counter["n"] += 1
        return f"CA-{counter['n']}"

    placer.place_call = AsyncMock(side_effect=place_call)
    placer.close = AsyncMock()
    return placer


@pytest.fixture
def placer_factory(call_placer):
    factory = MagicMock()
    factory.create.return_value = call_placer
    return factory


@pytest.fixture
def auth_header():
    """Build an Authorization header for a signed token: auth_header(role="admin")."""
    def build(role: str = "agent", tenant_id: str = TENANT, user_id: str = "user-1") -> dict:
        token = jwt.encode(
            {"tenant_id": tenant_id, "user_id": user_id, "role": role},
            JWT_SECRET,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}
    return build
