"""
SQLAlchemy Database Models
Dispatch queue and agent presence tables plus read-only views of collaborator tables
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Collaborator tables (owned by campaign / lead / tenant management)
# ---------------------------------------------------------------------------

class CampaignRow(Base):
    """Campaign settings read by the dispatcher"""
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    parallel_concurrency = Column(Integer)
    parallel_dial_ratio = Column(Float)
    waiting_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class LeadRow(Base):
    """Lead contact details joined at claim time"""
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String(255))
    phone_e164 = Column(String(20), nullable=False)
    email = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)


class TenantTelephonyConfigRow(Base):
    """Per-tenant calling provider credentials"""
    __tablename__ = "tenant_telephony_config"

    tenant_id = Column(String(36), primary_key=True)
    account_sid = Column(String(64), nullable=False)
    auth_token = Column(String(255), nullable=False)
    default_from_number = Column(String(20))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TenantRoutingConfigRow(Base):
    """Per-tenant task router resources"""
    __tablename__ = "tenant_routing_config"

    tenant_id = Column(String(36), primary_key=True)
    workspace_sid = Column(String(64), nullable=False)
    workflow_sid = Column(String(64), nullable=False)
    taskqueue_sid = Column(String(64))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TaskRouterWorkerRow(Base):
    """Task router worker provisioned for an agent"""
    __tablename__ = "taskrouter_workers"

    tenant_id = Column(String(36), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    worker_sid = Column(String(64), nullable=False)
    contact_uri = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ---------------------------------------------------------------------------
# Agent presence
# ---------------------------------------------------------------------------

class AgentPresenceRow(Base):
    """Last availability an agent switched to"""
    __tablename__ = "agent_presence"

    tenant_id = Column(String(36), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    status = Column(String(20), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    last_seen_at = Column(DateTime(timezone=True), default=utcnow)


# ---------------------------------------------------------------------------
# Dispatch queue
# ---------------------------------------------------------------------------

class ParallelRunRow(Base):
    """One bounded-concurrency dispatch invocation"""
    __tablename__ = "dialer_parallel_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    campaign_id = Column(String(36), nullable=False)
    concurrency = Column(Integer, nullable=False)
    dial_ratio = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="running")
    started_by = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow)


class DialerQueueRow(Base):
    """Position-ordered dispatch queue, one row per (tenant, campaign, lead)"""
    __tablename__ = "dialer_queue"
    __table_args__ = (
        UniqueConstraint("tenant_id", "campaign_id", "lead_id", name="uq_dialer_queue_lead"),
        UniqueConstraint("tenant_id", "campaign_id", "position", name="uq_dialer_queue_position"),
        Index("ix_dialer_queue_claim", "tenant_id", "campaign_id", "state", "position"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False)
    campaign_id = Column(String(36), nullable=False)
    lead_id = Column(String(36), nullable=False)
    position = Column(Integer, nullable=False)
    state = Column(String(20), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)

    dial_mode = Column(String(20))
    parallel_run_id = Column(String(36), ForeignKey("dialer_parallel_runs.id"))
    call_handle = Column(String(64), index=True)
    task_handle = Column(String(64))
    assignment_handle = Column(String(64))
    worker_handle = Column(String(64))

    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    waiting_started_at = Column(DateTime(timezone=True))

    outcome = Column(String(20))
    last_error = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class QueueAuditRow(Base):
    """Administrative actions on the queue (reset, stale sweeps)"""
    __tablename__ = "dialer_queue_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    campaign_id = Column(String(36))
    action = Column(String(64), nullable=False)
    actor = Column(String(64))
    item_count = Column(Integer, nullable=False, default=0)
    meta = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)
