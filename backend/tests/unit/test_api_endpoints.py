"""
Tests for the Dialer and Webhook API Endpoints
FastAPI TestClient with dependency overrides over an in-memory database
"""
from unittest.mock import AsyncMock, MagicMock
from xml.etree import ElementTree as ET

import pytest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient

from dialer.api.v1 import dependencies
from dialer.core.config import get_settings
from dialer.core.exceptions import ConfigurationError, RoutingError
from dialer.domain.models import RoutingCorrelation
from dialer.infrastructure.storage.agent_repository import SqlAgentRepository
from dialer.infrastructure.storage.queue_repository import SqlQueueRepository
from dialer.infrastructure.telephony.tenant_config import SqlRoutingConfigResolver
from dialer.main import app

TENANT = "tenant-a"
CAMPAIGN = "campaign-1"


@pytest.fixture
def routing_factory():
    provider = AsyncMock()
    provider.find_activity_sid = AsyncMock(return_value="WA-wrapup")
    provider.set_worker_availability = AsyncMock(return_value={"tenant_id": "tenant-a", "is_available": True})
    factory = MagicMock()
    factory.create.return_value = provider
    return factory


@pytest.fixture
def client(settings, seeded, credential_resolver, placer_factory, routing_factory):
    app.dependency_overrides.update({
        get_settings: lambda: settings,
        dependencies.get_repository: lambda: SqlQueueRepository(seeded),
        dependencies.get_agent_repository: lambda: SqlAgentRepository(seeded),
        dependencies.get_credential_resolver: lambda: credential_resolver,
        dependencies.get_call_placer_factory: lambda: placer_factory,
        dependencies.get_routing_config_resolver: lambda: SqlRoutingConfigResolver(seeded),
        dependencies.get_routing_provider_factory: lambda: routing_factory,
    })
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def repository(seeded):
    return SqlQueueRepository(seeded)


class TestAuthentication:
    """Tests for bearer token enforcement"""

    def test_missing_token(self, client):
        response = client.post("/api/v1/dialer/next", json={"campaign_id": CAMPAIGN})

        assert response.status_code == 401

    def test_bad_signature(self, client):
        response = client.post(
            "/api/v1/dialer/next",
            json={"campaign_id": CAMPAIGN},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    def test_admin_required_for_parallel_start(self, client, auth_header):
        response = client.post(
            "/api/v1/dialer/parallel/start",
            json={"campaign_id": CAMPAIGN},
            headers=auth_header(role="agent"),
        )

        assert response.status_code == 403

    def test_admin_required_for_reset(self, client, auth_header):
        response = client.post("/api/v1/dialer/reset", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 403


class TestDialerEndpoints:
    """Tests for /api/v1/dialer"""

    def test_enqueue(self, client, auth_header):
        response = client.post(
            "/api/v1/dialer/enqueue",
            json={"campaign_id": CAMPAIGN, "lead_ids": ["lead-1", "lead-2", "lead-1"]},
            headers=auth_header(),
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "inserted": 2}

    def test_enqueue_without_leads(self, client, auth_header):
        response = client.post("/api/v1/dialer/enqueue", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 400
        assert response.json()["detail"] == {"ok": False, "error": "lead_ids_required"}

    def test_next_returns_null_when_empty(self, client, auth_header):
        response = client.post("/api/v1/dialer/next", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 200
        assert response.json() == {"ok": True, "next": None}

    def test_next_without_campaign(self, client, auth_header):
        response = client.post("/api/v1/dialer/next", json={}, headers=auth_header())

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "campaign_id_required"

    def test_next_claims_in_order(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1", "lead-2"])

        body = client.post("/api/v1/dialer/next", json={"campaign_id": CAMPAIGN}, headers=auth_header()).json()

        assert body["next"]["lead_id"] == "lead-1"
        assert body["next"]["state"] == "in_progress"
        assert body["next"]["phone_e164"] == "+15550000001"

    def test_next_is_tenant_scoped(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])

        body = client.post(
            "/api/v1/dialer/next",
            json={"campaign_id": CAMPAIGN},
            headers=auth_header(tenant_id="tenant-b"),
        ).json()

        assert body["next"] is None

    def test_next_and_call(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])

        response = client.post("/api/v1/dialer/next_and_call", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 200
        body = response.json()
        assert body["call_sid"] == "CA-1"
        assert body["next"]["call_sid"] == "CA-1"

    def test_next_and_call_placement_failure(self, client, auth_header, repository, call_placer):
        from dialer.core.exceptions import CallPlacementError

        call_placer.place_call.side_effect = CallPlacementError("provider_http_500")
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])

        response = client.post("/api/v1/dialer/next_and_call", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 502
        assert response.json()["detail"] == {"ok": False, "error": "provider_http_500"}
        assert repository.queue_stats(TENANT, CAMPAIGN)["outcomes"]["failed"] == 1

    def test_next_and_call_without_credentials(self, client, auth_header, repository, credential_resolver):
        credential_resolver.resolve.side_effect = ConfigurationError("telephony_config_missing")
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])

        response = client.post("/api/v1/dialer/next_and_call", json={"campaign_id": CAMPAIGN}, headers=auth_header())

        assert response.status_code == 400
        assert repository.queue_stats(TENANT, CAMPAIGN)["states"]["queued"] == 1

    def test_parallel_start(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, [f"lead-{i}" for i in range(1, 6)])

        response = client.post(
            "/api/v1/dialer/parallel/start",
            json={"campaign_id": CAMPAIGN, "concurrency": 2},
            headers=auth_header(role="admin"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["run_id"]
        assert body["picked"] == 2
        assert body["launched"] == 2
        assert body["errors"] == []

    def test_parallel_start_credentials_failure(self, client, auth_header, repository, credential_resolver):
        credential_resolver.resolve.side_effect = ConfigurationError("telephony_config_missing")
        repository.enqueue(TENANT, CAMPAIGN, [f"lead-{i}" for i in range(1, 5)])

        response = client.post(
            "/api/v1/dialer/parallel/start",
            json={"campaign_id": CAMPAIGN, "concurrency": 4},
            headers=auth_header(role="admin"),
        )

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error"] == "telephony_config_missing"
        assert detail["picked"] == 4
        assert detail["launched"] == 0
        assert repository.queue_stats(TENANT, CAMPAIGN)["outcomes"]["failed"] == 4

    def test_parallel_start_unknown_campaign(self, client, auth_header):
        response = client.post(
            "/api/v1/dialer/parallel/start",
            json={"campaign_id": "nope"},
            headers=auth_header(role="admin"),
        )

        assert response.status_code == 404

    def test_parallel_start_rejects_bad_concurrency(self, client, auth_header):
        response = client.post(
            "/api/v1/dialer/parallel/start",
            json={"campaign_id": CAMPAIGN, "concurrency": 0},
            headers=auth_header(role="admin"),
        )

        assert response.status_code == 422

    def test_reset(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1", "lead-2"])
        repository.claim_next(TENANT, CAMPAIGN)

        response = client.post("/api/v1/dialer/reset", json={"campaign_id": CAMPAIGN}, headers=auth_header(role="admin"))

        assert response.json() == {"ok": True, "reset": 1}
        assert repository.queue_stats(TENANT, CAMPAIGN)["states"]["queued"] == 2

    def test_stats(self, client, auth_header, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1", "lead-2"])
        repository.claim_next(TENANT, CAMPAIGN)

        body = client.get(f"/api/v1/dialer/stats?campaign_id={CAMPAIGN}", headers=auth_header()).json()

        assert body["total"] == 2
        assert body["states"] == {"queued": 1, "in_progress": 1, "done": 0}


class TestWebhookEndpoints:
    """Provider callbacks always answer 200"""

    def test_status_callback_form(self, client, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])
        item = repository.claim_next(TENANT, CAMPAIGN)

        response = client.post(
            f"/api/v1/webhooks/voice/status?queue_id={item.id}",
            data={"CallSid": "CA-1", "CallStatus": "busy"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert repository.queue_stats(TENANT, CAMPAIGN)["outcomes"]["busy"] == 1

    def test_status_callback_json(self, client, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])
        item = repository.claim_next(TENANT, CAMPAIGN)

        client.post(
            f"/api/v1/webhooks/voice/status?queue_id={item.id}",
            json={"CallSid": "CA-1", "CallStatus": "no-answer"},
        )

        assert repository.queue_stats(TENANT, CAMPAIGN)["outcomes"]["no-answer"] == 1

    @pytest.mark.parametrize("url,kwargs", [
        ("/api/v1/webhooks/voice/status", {"data": {"CallSid": "CA-1", "CallStatus": "completed"}}),
        ("/api/v1/webhooks/voice/status?queue_id=missing", {"data": {}}),
        ("/api/v1/webhooks/voice/status?queue_id=missing", {"content": b"\x00garbage",
                                                             "headers": {"content-type": "application/json"}}),
    ])
    def test_status_callback_never_fails(self, client, url, kwargs):
        response = client.post(url, **kwargs)

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_status_callback_survives_repository_failure(self, client):
        broken = MagicMock()
        broken.apply_call_status.side_effect = RuntimeError("db down")
        app.dependency_overrides[dependencies.get_repository] = lambda: broken

        response = client.post("/api/v1/webhooks/voice/status?queue_id=q-1", data={"CallStatus": "completed"})

        assert response.status_code == 200

    def test_voice_twiml_dials_to(self, client):
        response = client.get("/api/v1/webhooks/voice/twiml?queue_id=q-1&To=%2B15550000001")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert ET.fromstring(response.text).find("Dial").text == "+15550000001"

    def test_voice_twiml_without_to(self, client):
        response = client.post("/api/v1/webhooks/voice/twiml?queue_id=q-1", data={})

        root = ET.fromstring(response.text)
        assert root.find("Hangup") is not None
        assert root.find("Say").text == "Hola, te habla un asesor. Un momento por favor."

    def test_parallel_twiml(self, client):
        response = client.get(
            f"/api/v1/webhooks/parallel/twiml?tenant_id={TENANT}&campaign_id={CAMPAIGN}&queue_id=q-1"
        )

        assert response.status_code == 200
        enqueue = ET.fromstring(response.text).find("Enqueue")
        assert enqueue.get("workflowSid") == "WW123"

    def test_parallel_twiml_without_routing(self, client):
        response = client.get(f"/api/v1/webhooks/parallel/twiml?tenant_id=tenant-b&campaign_id={CAMPAIGN}&queue_id=q-1")

        assert response.status_code == 200
        assert ET.fromstring(response.text).find("Hangup") is not None

    def test_assignment_dequeue(self, client, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])
        item = repository.claim_next(TENANT, CAMPAIGN)
        attributes = RoutingCorrelation(tenant_id=TENANT, campaign_id=CAMPAIGN, queue_id=item.id).to_attributes()

        response = client.post(
            "/api/v1/webhooks/routing/assignment",
            data={"TaskSid": "WT-1", "ReservationSid": "WR-1", "WorkerSid": "WK-1", "TaskAttributes": attributes},
        )

        assert response.status_code == 200
        assert response.json() == {
            "instruction": "dequeue",
            "from": "+15559999999",
            "post_work_activity_sid": "WA-wrapup",
        }

    def test_assignment_malformed_attributes(self, client):
        response = client.post(
            "/api/v1/webhooks/routing/assignment",
            data={"TaskSid": "WT-1", "TaskAttributes": "{oops"},
        )

        assert response.status_code == 200
        assert response.json() == {"instruction": "reject"}


class TestAgentEndpoints:
    """Tests for routing availability switches"""

    def test_ready_updates_own_worker(self, client, auth_header, routing_factory):
        response = client.post("/api/v1/agents/ready", headers=auth_header())

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "status": "ready",
            "worker_sid": "WK-1",
            "attrs": {"tenant_id": "tenant-a", "is_available": True},
        }
        provider = routing_factory.create.return_value
        provider.set_worker_availability.assert_awaited_once_with(
            "WS123", "WK-1", TENANT, available=True, activity_name="Available"
        )

    def test_offline(self, client, auth_header, routing_factory):
        response = client.post("/api/v1/agents/offline", json={}, headers=auth_header())

        assert response.status_code == 200
        assert response.json()["status"] == "offline"
        provider = routing_factory.create.return_value
        assert provider.set_worker_availability.call_args.kwargs == {"available": False, "activity_name": "Offline"}

    def test_admin_may_switch_another_agent(self, client, auth_header):
        response = client.post(
            "/api/v1/agents/ready",
            json={"user_id": "user-1"},
            headers=auth_header(role="admin", user_id="admin-1"),
        )

        assert response.status_code == 200
        assert response.json()["worker_sid"] == "WK-1"

    def test_agent_cannot_switch_another_agent(self, client, auth_header):
        """A non-admin naming someone else still updates only themselves"""
        response = client.post(
            "/api/v1/agents/ready",
            json={"user_id": "user-1"},
            headers=auth_header(user_id="user-2"),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {"ok": False, "error": "worker_missing_for_user"}

    def test_routing_not_configured(self, client, auth_header):
        response = client.post("/api/v1/agents/ready", headers=auth_header(tenant_id="tenant-b"))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "routing_not_configured"

    def test_router_failure(self, client, auth_header, routing_factory):
        provider = routing_factory.create.return_value
        provider.set_worker_availability.side_effect = RoutingError("routing_http_404")

        response = client.post("/api/v1/agents/ready", headers=auth_header())

        assert response.status_code == 502
        assert response.json()["detail"] == {"ok": False, "error": "routing_http_404"}

    def test_requires_token(self, client):
        assert client.post("/api/v1/agents/ready").status_code == 401


class TestRootEndpoints:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["database"] == {"ok": True}

    def test_auth_runs_in_dependencies_only(self):
        """Tokens are decoded once, by get_current_user; only CORS wraps the app"""
        assert [middleware.cls for middleware in app.user_middleware] == [CORSMiddleware]
