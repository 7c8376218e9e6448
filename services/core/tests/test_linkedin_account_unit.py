"""Unit tests for LinkedIn account linking."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from coldai_core.domain.models import UserProfile
from coldai_core.domain.services.linkedin_account import (
    AuthLinkError,
    ConnectionSignal,
    LinkedAccount,
    LinkedInAccountService,
    LinkedInAlreadyLinkedError,
    describe_account,
)
from tests.conftest import OTHER_USER_ID, TEST_USER_ID
from tests.factories import create_user_profile

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session, edge_client) -> LinkedInAccountService:
    return LinkedInAccountService(
        db_session,
        edge_client,
        web_base_url="https://app.coldai.test/",
        notify_url="https://api.coldai.test/linkedin/notify",
    )


def linked_account(public_identifier="ada-lovelace", account_id="acc-1") -> LinkedAccount:
    return LinkedAccount(
        account_id=account_id,
        public_identifier=public_identifier,
        profile_url=f"https://www.linkedin.com/in/{public_identifier}",
        profile_data={
            "first_name": "Ada",
            "last_name": "Lovelace",
            "occupation": "Engineer",
            "organizations": [{"name": "Analytical Engines Ltd"}],
        },
    )


class TestGenerateAuthLink:
    @pytest.mark.asyncio
    async def test_requests_hosted_link(self, service, edge_stub):
        edge_stub.on("unipile-auth", {"success": True, "data": {"url": "https://auth.test/x"}})

        link = await service.generate_auth_link(TEST_USER_ID, now=NOW)

        assert link.url == "https://auth.test/x"
        assert link.expires_on == NOW + timedelta(minutes=30)
        payload = edge_stub.calls("unipile-auth")[0]
        assert payload["type"] == "create"
        assert payload["providers"] == ["LINKEDIN"]
        assert payload["userId"] == TEST_USER_ID
        assert payload["success_url"] == "https://app.coldai.test/auth/unipile/success"
        assert payload["webhook_url"] == "https://api.coldai.test/linkedin/notify"

    @pytest.mark.asyncio
    async def test_provider_expiry_wins(self, service, edge_stub):
        edge_stub.on("unipile-auth", {
            "success": True,
            "data": {"url": "https://auth.test/x", "expiresOn": "2026-03-15T12:10:00+00:00"},
        })

        link = await service.generate_auth_link(TEST_USER_ID, "reconnect", now=NOW)

        assert link.expires_on == NOW + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_missing_url(self, service, edge_stub):
        edge_stub.on("unipile-auth", {"success": True, "data": {}})

        with pytest.raises(AuthLinkError):
            await service.generate_auth_link(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_collaborator_unreachable(self, service, edge_stub):
        edge_stub.fail("unipile-auth", httpx.ConnectError("refused"))

        with pytest.raises(AuthLinkError):
            await service.generate_auth_link(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_unknown_type(self, service):
        with pytest.raises(ValueError):
            await service.generate_auth_link(TEST_USER_ID, "upgrade")


class TestStatus:
    def test_no_profile(self, service):
        assert service.check_status(TEST_USER_ID).connected is False

    def test_connected(self, service, db_session):
        create_user_profile(
            db_session,
            TEST_USER_ID,
            linkedin_connected=True,
            unipile_account_id="acc-1",
            linkedin_public_identifier="ada-lovelace",
            linkedin_profile_data={"first_name": "Ada", "last_name": "Lovelace"},
        )

        status = service.check_status(TEST_USER_ID)

        assert status.connected is True
        assert status.account["username"] == "Ada Lovelace"
        assert status.account["metadata"]["profile_url"] == "https://www.linkedin.com/in/ada-lovelace"

    def test_success_message_rechecks(self, service):
        signal = ConnectionSignal("message", {"type": "UNIPILE_AUTH_SUCCESS"})

        assert service.complete_connection(TEST_USER_ID, signal).connected is False

    def test_other_message_is_ignored(self, service):
        assert service.complete_connection(
            TEST_USER_ID, ConnectionSignal("message", {"type": "resize"})
        ) is None

    def test_window_closed_rechecks(self, service):
        assert service.complete_connection(TEST_USER_ID, ConnectionSignal("closed")) is not None

    def test_unknown_signal(self, service):
        with pytest.raises(ValueError):
            service.complete_connection(TEST_USER_ID, ConnectionSignal("focus"))


class TestRecordConnection:
    @pytest.mark.asyncio
    async def test_creates_profile(self, service, db_session):
        status = await service.record_connection(TEST_USER_ID, linked_account())

        profile = db_session.get(UserProfile, TEST_USER_ID)
        assert profile.linkedin_connected is True
        assert profile.unipile_account_id == "acc-1"
        assert profile.linkedin_public_identifier == "ada-lovelace"
        assert status.account["metadata"]["organization"] == "Analytical Engines Ltd"

    @pytest.mark.asyncio
    async def test_profile_linked_elsewhere_is_rolled_back(self, service, edge_stub, db_session):
        create_user_profile(
            db_session,
            OTHER_USER_ID,
            linkedin_connected=True,
            unipile_account_id="acc-0",
            linkedin_public_identifier="ada-lovelace",
        )
        edge_stub.on("unipile-delete-account", {"success": True})

        with pytest.raises(LinkedInAlreadyLinkedError):
            await service.record_connection(TEST_USER_ID, linked_account(account_id="acc-2"))

        assert edge_stub.calls("unipile-delete-account") == [
            {"account_id": "acc-2", "user_id": TEST_USER_ID}
        ]
        assert db_session.get(UserProfile, TEST_USER_ID) is None

    @pytest.mark.asyncio
    async def test_relinking_own_profile(self, service, db_session):
        create_user_profile(
            db_session,
            TEST_USER_ID,
            linkedin_connected=True,
            unipile_account_id="acc-0",
            linkedin_public_identifier="ada-lovelace",
        )

        await service.record_connection(TEST_USER_ID, linked_account(account_id="acc-3"))

        assert db_session.get(UserProfile, TEST_USER_ID).unipile_account_id == "acc-3"


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_clears_local_state_even_if_remote_fails(self, service, edge_stub, db_session):
        create_user_profile(
            db_session, TEST_USER_ID, linkedin_connected=True, unipile_account_id="acc-1"
        )
        edge_stub.on("unipile-delete-account", {"error": "gone"}, status_code=500)

        status = await service.disconnect(TEST_USER_ID)

        profile = db_session.get(UserProfile, TEST_USER_ID)
        assert status.connected is False
        assert profile.linkedin_connected is False
        assert profile.unipile_account_id is None

    @pytest.mark.asyncio
    async def test_no_profile(self, service, edge_stub):
        assert (await service.disconnect(TEST_USER_ID)).connected is False
        assert edge_stub.requests == []

    @pytest.mark.asyncio
    async def test_without_edge_client(self, db_session):
        create_user_profile(
            db_session, TEST_USER_ID, linkedin_connected=True, unipile_account_id="acc-1"
        )
        service = LinkedInAccountService(db_session, None)

        status = await service.disconnect(TEST_USER_ID)

        profile = db_session.get(UserProfile, TEST_USER_ID)
        assert status.connected is False
        assert profile.linkedin_connected is False
        assert profile.unipile_account_id is None


class TestDescribeAccount:
    def test_defaults(self):
        profile = UserProfile(user_id=TEST_USER_ID, unipile_account_id="acc-1")

        account = describe_account(profile)

        assert account["username"] == "LinkedIn User"
        assert account["provider"] == "LINKEDIN"
        assert account["metadata"]["profile_url"] == ""
