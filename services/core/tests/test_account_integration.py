"""Integration tests for the account API."""

import pytest

from tests.conftest import TEST_USER_ID
from tests.factories import create_usage, utcnow


class TestDeletion:
    @pytest.mark.asyncio
    async def test_schedules_deletion(self, authenticated_client, edge_stub):
        edge_stub.on(
            "request-account-deletion",
            {
                "success": True,
                "data": {
                    "soft_delete_until": "2026-04-14T12:00:00+00:00",
                    "days_until_permanent": 30,
                },
            },
        )

        response = await authenticated_client.post(
            "/account/deletion", json={"reason": "Switching tools"}
        )

        assert response.status_code == 200
        assert response.json()["days_until_permanent"] == 30
        assert edge_stub.calls("request-account-deletion") == [
            {"user_id": TEST_USER_ID, "deletion_reason": "Switching tools"}
        ]

    @pytest.mark.asyncio
    async def test_collaborator_failure(self, authenticated_client, edge_stub):
        edge_stub.on("request-account-deletion", {"success": False, "error": "Locked"})

        response = await authenticated_client.post("/account/deletion", json={})

        assert response.status_code == 502
        assert response.json()["detail"] == "Locked"


class TestDeletionHistory:
    @pytest.mark.asyncio
    async def test_found(self, authenticated_client, edge_stub):
        edge_stub.on(
            "check-email-deletion-history",
            {"data": [{"deleted_at": "2025-11-01T00:00:00+00:00", "deletion_count": 2}]},
        )

        response = await authenticated_client.get(
            "/account/deletion-history", params={"email": "old@example.com"}
        )

        data = response.json()
        assert data["found"] is True
        assert data["deletion_count"] == 2
        assert edge_stub.calls("check-email-deletion-history") == [{"p_email": "old@example.com"}]

    @pytest.mark.asyncio
    async def test_not_found(self, authenticated_client, edge_stub):
        edge_stub.on("check-email-deletion-history", {"data": []})

        response = await authenticated_client.get(
            "/account/deletion-history", params={"email": "new@example.com"}
        )

        assert response.json() == {
            "found": False,
            "email": "new@example.com",
            "deleted_at": None,
            "deletion_count": 0,
            "details": None,
        }


class TestUsage:
    @pytest.mark.asyncio
    async def test_monthly_totals(self, authenticated_client, db_session):
        today = utcnow().date()
        create_usage(db_session, TEST_USER_ID, today, messages_generated=4, messages_sent=2)
        db_session.commit()

        response = await authenticated_client.get("/account/usage")

        assert response.status_code == 200
        data = response.json()
        assert data["month"] == today.replace(day=1).isoformat()
        assert data["messages_generated"] == 4
        assert data["messages_sent"] == 2
        assert data["messages_limit"] == 25
        assert data["messages_remaining"] == 21
