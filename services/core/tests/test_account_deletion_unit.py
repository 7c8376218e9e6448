"""Unit tests for account deletion requests."""

from datetime import datetime, timezone

import httpx
import pytest

from coldai_core.domain.services.account_deletion import (
    AccountDeletionError,
    AccountDeletionService,
)
from tests.conftest import TEST_USER_ID


@pytest.fixture
def service(edge_client) -> AccountDeletionService:
    return AccountDeletionService(edge_client)


class TestRequestDeletion:
    @pytest.mark.asyncio
    async def test_schedules_deletion(self, service, edge_stub):
        edge_stub.on("request-account-deletion", {
            "success": True,
            "data": {"soft_delete_until": "2026-04-14T12:00:00+00:00", "days_until_permanent": 30},
        })

        scheduled = await service.request_deletion(TEST_USER_ID, reason="Too many emails")

        assert scheduled.soft_delete_until == datetime(2026, 4, 14, 12, 0, tzinfo=timezone.utc)
        assert scheduled.days_until_permanent == 30
        assert edge_stub.calls("request-account-deletion") == [
            {"user_id": TEST_USER_ID, "deletion_reason": "Too many emails"}
        ]

    @pytest.mark.asyncio
    async def test_refused(self, service, edge_stub):
        edge_stub.on("request-account-deletion", {"success": False, "error": "Active subscription"})

        with pytest.raises(AccountDeletionError, match="Active subscription"):
            await service.request_deletion(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_unreachable(self, service, edge_stub):
        edge_stub.fail("request-account-deletion", httpx.ConnectError("refused"))

        with pytest.raises(AccountDeletionError):
            await service.request_deletion(TEST_USER_ID)


class TestDeletionHistory:
    @pytest.mark.asyncio
    async def test_previous_deletion(self, service, edge_stub):
        edge_stub.on("check-email-deletion-history", {
            "data": [{"deleted_at": "2025-12-01T00:00:00+00:00", "deletion_count": 2}],
        })

        history = await service.check_deletion_history("ada@example.com")

        assert history.deletion_count == 2
        assert history.deleted_at.year == 2025
        assert edge_stub.calls("check-email-deletion-history") == [{"p_email": "ada@example.com"}]

    @pytest.mark.asyncio
    async def test_no_history(self, service, edge_stub):
        edge_stub.on("check-email-deletion-history", {"data": []})

        assert await service.check_deletion_history("new@example.com") is None
