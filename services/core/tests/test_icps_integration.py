"""Integration tests for the ICP API."""

from datetime import timedelta

import pytest

from coldai_core.domain.models import ICP, WebhookEvent
from tests.conftest import TEST_USER_ID
from tests.factories import create_icp, utcnow

ENDPOINT = "n8n-icp-action"


class TestCreate:
    @pytest.mark.asyncio
    async def test_starts_generation(self, authenticated_client, edge_stub):
        edge_stub.on(ENDPOINT, {"success": True})

        response = await authenticated_client.post(
            "/icps",
            json={"icp_name": "Engineering leaders", "job_titles": ["CTO", "VP Engineering"]},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["workflow_status"] == "generating"
        assert data["review_status"] == "pending"
        assert data["is_active"] is True

        (payload,) = edge_stub.calls(ENDPOINT)
        assert payload["action"] == "create_icp"
        assert payload["data"]["job_titles"] == ["CTO", "VP Engineering"]

    @pytest.mark.asyncio
    async def test_no_fallback_when_unavailable(self, authenticated_client, db_session):
        response = await authenticated_client.post("/icps", json={"icp_name": "Founders"})

        assert response.status_code == 503
        assert db_session.query(ICP).count() == 0
        events = [e.event_type for e in db_session.query(WebhookEvent).all()]
        assert events == ["create_icp", "create_icp_local"]

    @pytest.mark.asyncio
    async def test_automation_error(self, authenticated_client, db_session, edge_stub):
        edge_stub.on(ENDPOINT, {"error": "Workflow crashed"}, status_code=500)

        response = await authenticated_client.post("/icps", json={"icp_name": "Founders"})

        assert response.status_code == 502
        assert db_session.query(ICP).count() == 0

    @pytest.mark.asyncio
    async def test_free_tier_limit(self, authenticated_client, db_session, edge_stub):
        create_icp(db_session, TEST_USER_ID)
        db_session.commit()
        edge_stub.on(ENDPOINT, {"success": True})

        response = await authenticated_client.post("/icps", json={"icp_name": "Second"})

        assert response.status_code == 402
        assert edge_stub.calls(ENDPOINT) == []

    @pytest.mark.asyncio
    async def test_name_required(self, authenticated_client):
        response = await authenticated_client.post("/icps", json={"icp_name": ""})

        assert response.status_code == 422


class TestLifecycle:
    @pytest.fixture
    def icp(self, db_session):
        icp = create_icp(db_session, TEST_USER_ID, workflow_status="draft")
        db_session.commit()
        return icp

    @pytest.mark.asyncio
    async def test_list_and_get(self, authenticated_client, icp):
        listing = await authenticated_client.get("/icps")
        assert listing.json()["total"] == 1

        response = await authenticated_client.get(f"/icps/{icp.id}")
        assert response.status_code == 200
        assert response.json()["icp_name"] == "Engineering leaders"

    @pytest.mark.asyncio
    async def test_update(self, authenticated_client, edge_stub, icp):
        edge_stub.on(ENDPOINT, {"success": True})

        response = await authenticated_client.patch(
            f"/icps/{icp.id}", json={"pain_points": ["Hiring"]}
        )

        assert response.status_code == 200
        assert response.json()["pain_points"] == ["Hiring"]
        (payload,) = edge_stub.calls(ENDPOINT)
        assert payload["data"]["updates"] == {"pain_points": ["Hiring"]}

    @pytest.mark.asyncio
    async def test_submit_approve(self, authenticated_client, edge_stub, icp):
        edge_stub.on(ENDPOINT, {"success": True})

        submitted = await authenticated_client.post(
            f"/icps/{icp.id}/submit", json={"changes_summary": ["Narrowed titles"]}
        )
        assert submitted.json()["workflow_status"] == "reviewing"

        approved = await authenticated_client.post(
            f"/icps/{icp.id}/approve", json={"review_notes": "Looks right"}
        )
        assert approved.json()["workflow_status"] == "active"
        assert approved.json()["review_status"] == "approved"

        actions = [p["action"] for p in edge_stub.calls(ENDPOINT)]
        assert actions == ["submit_for_review", "approve_icp"]

    @pytest.mark.asyncio
    async def test_regenerate(self, authenticated_client, edge_stub, icp):
        edge_stub.on(ENDPOINT, {"success": True})

        response = await authenticated_client.post(
            f"/icps/{icp.id}/regenerate", json={"feedback": "More startups"}
        )

        assert response.status_code == 200
        assert response.json()["workflow_status"] == "generating"
        (payload,) = edge_stub.calls(ENDPOINT)
        assert payload["data"]["feedback"] == "More startups"

    @pytest.mark.asyncio
    async def test_archive_and_restore(self, authenticated_client, edge_stub, icp):
        edge_stub.on(ENDPOINT, {"success": True})

        archived = await authenticated_client.delete(f"/icps/{icp.id}")
        assert archived.status_code == 200
        assert archived.json()["deleted_at"] is not None

        again = await authenticated_client.delete(f"/icps/{icp.id}")
        assert again.status_code == 404

        restored = await authenticated_client.post(f"/icps/{icp.id}/restore")
        assert restored.status_code == 200
        assert restored.json()["deleted_at"] is None

    @pytest.mark.asyncio
    async def test_restore_expired(self, authenticated_client, db_session, edge_stub):
        icp = create_icp(
            db_session,
            TEST_USER_ID,
            deleted_at=utcnow() - timedelta(days=31),
            can_restore_until=utcnow() - timedelta(days=1),
        )
        db_session.commit()
        edge_stub.on(ENDPOINT, {"success": True})

        response = await authenticated_client.post(f"/icps/{icp.id}/restore")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown(self, authenticated_client):
        response = await authenticated_client.get("/icps/9999")

        assert response.status_code == 404
