"""Unit tests for widget status derivation and the generating flag."""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from coldai_core.domain.services.widget_status import (
    GeneratingFlag,
    GeneratingFlagStore,
    LinkedInState,
    SettingsCompleteness,
    SettingsState,
    Widget,
    WidgetState,
    WidgetStatusService,
    derive_icp_state,
    derive_knowledge_state,
    resolve_widget,
)
from tests.conftest import TEST_USER_ID
from tests.factories import (
    create_business_profile,
    create_communication_preferences,
    create_icp,
    create_knowledge_entry,
    create_user_profile,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def entity(workflow_status, review_status=None):
    return SimpleNamespace(workflow_status=workflow_status, review_status=review_status)


class TestIcpState:
    @pytest.mark.parametrize(
        "workflow,review,expected",
        [
            ("generating", "pending", WidgetState.GENERATING),
            ("form", None, WidgetState.GENERATING),
            ("processing", "pending", WidgetState.REVIEWING),
            ("reviewing", "approved", WidgetState.REVIEWING),
            ("active", "approved", WidgetState.ACTIVE),
            ("draft", "approved", WidgetState.ACTIVE),
            ("draft", "pending", WidgetState.DRAFT),
            (None, None, WidgetState.DRAFT),
        ],
    )
    def test_priority_order(self, workflow, review, expected):
        assert derive_icp_state(entity(workflow, review)) is expected

    def test_missing_icp_is_empty(self):
        assert derive_icp_state(None) is WidgetState.EMPTY


class TestKnowledgeState:
    @pytest.mark.parametrize(
        "workflow,review,expected",
        [
            ("processing", "approved", WidgetState.GENERATING),
            ("reviewing", "approved", WidgetState.REVIEWING),
            ("reviewing", "pending", WidgetState.ACTIVE),
            ("draft", "pending", WidgetState.DRAFT_PENDING),
            ("active", "approved", WidgetState.ACTIVE),
        ],
    )
    def test_priority_order(self, workflow, review, expected):
        assert derive_knowledge_state(entity(workflow, review)) is expected

    def test_missing_entry_is_empty(self):
        assert derive_knowledge_state(None) is WidgetState.EMPTY


class TestSettingsCompleteness:
    @pytest.mark.parametrize(
        "flags,expected",
        [
            ((False, False, False), SettingsState.EMPTY),
            ((True, False, True), SettingsState.PARTIAL),
            ((True, True, True), SettingsState.COMPLETE),
        ],
    )
    def test_state(self, flags, expected):
        completeness = SettingsCompleteness(*flags)

        assert completeness.state is expected
        assert completeness.configured_count == sum(flags)


class TestGeneratingFlag:
    def test_progress_capped_at_95(self):
        flag = GeneratingFlag(Widget.ICP, "ICP", started_at=NOW - timedelta(seconds=59))

        assert flag.progress(NOW, ttl_seconds=60) == 95.0

    def test_progress_grows_with_time(self):
        flag = GeneratingFlag(Widget.ICP, "ICP", started_at=NOW - timedelta(seconds=30))

        assert flag.progress(NOW, ttl_seconds=60) == 50.0

    def test_expiry(self):
        flag = GeneratingFlag(Widget.ICP, "ICP", started_at=NOW - timedelta(seconds=61))

        assert flag.is_expired(NOW, ttl_seconds=60)


class TestGeneratingFlagStore:
    @pytest.mark.asyncio
    async def test_start_and_get(self, fake_redis):
        store = GeneratingFlagStore(fake_redis, ttl_seconds=60)
        await store.start(TEST_USER_ID, Widget.KNOWLEDGE, "Product sheet", now=NOW)

        flag = await store.get(TEST_USER_ID, Widget.KNOWLEDGE, now=NOW + timedelta(seconds=10))

        assert flag is not None
        assert flag.title == "Product sheet"
        assert flag.started_at == NOW

    @pytest.mark.asyncio
    async def test_flags_are_per_widget(self, fake_redis):
        store = GeneratingFlagStore(fake_redis)
        await store.start(TEST_USER_ID, Widget.ICP, "ICP", now=NOW)

        assert await store.get(TEST_USER_ID, Widget.KNOWLEDGE, now=NOW) is None

    @pytest.mark.asyncio
    async def test_expired_flag_is_removed(self, fake_redis):
        store = GeneratingFlagStore(fake_redis, ttl_seconds=60)
        await store.start(TEST_USER_ID, Widget.ICP, "ICP", now=NOW)

        flag = await store.get(TEST_USER_ID, Widget.ICP, now=NOW + timedelta(seconds=61))

        assert flag is None
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_malformed_flag_is_removed(self, fake_redis):
        store = GeneratingFlagStore(fake_redis)
        fake_redis.store[f"coldai:generating:{TEST_USER_ID}:icp"] = json.dumps({"title": "x"})

        assert await store.get(TEST_USER_ID, Widget.ICP, now=NOW) is None
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_clear(self, fake_redis):
        store = GeneratingFlagStore(fake_redis)
        await store.start(TEST_USER_ID, Widget.ICP, "ICP", now=NOW)

        await store.clear(TEST_USER_ID, Widget.ICP)

        assert await store.get(TEST_USER_ID, Widget.ICP, now=NOW) is None


class TestResolveWidget:
    def test_flag_shows_generating_while_database_is_empty(self):
        flag = GeneratingFlag(Widget.ICP, "ICP", started_at=NOW - timedelta(seconds=6))

        view = resolve_widget(WidgetState.EMPTY, flag, now=NOW, ttl_seconds=60)

        assert view.state is WidgetState.GENERATING
        assert view.optimistic is True
        assert view.progress == pytest.approx(10.0)

    def test_database_state_wins_over_flag(self):
        flag = GeneratingFlag(Widget.ICP, "ICP", started_at=NOW)

        view = resolve_widget(WidgetState.REVIEWING, flag, now=NOW)

        assert view.state is WidgetState.REVIEWING
        assert view.optimistic is False

    def test_no_flag(self):
        assert resolve_widget(WidgetState.EMPTY, None).state is WidgetState.EMPTY


class TestWidgetStatusService:
    def test_active_icp_ignores_archived_and_inactive(self, db_session):
        create_icp(db_session, TEST_USER_ID, workflow_status="active", review_status="approved",
                   deleted_at=datetime(2026, 1, 1))
        create_icp(db_session, TEST_USER_ID, is_active=False)
        service = WidgetStatusService(db_session)

        assert service.icp_state(TEST_USER_ID) is WidgetState.EMPTY

    def test_icp_state_from_database(self, db_session):
        create_icp(db_session, TEST_USER_ID, workflow_status="reviewing")

        assert WidgetStatusService(db_session).icp_state(TEST_USER_ID) is WidgetState.REVIEWING

    def test_knowledge_state_from_database(self, db_session):
        create_knowledge_entry(db_session, TEST_USER_ID, workflow_status="processing")

        state = WidgetStatusService(db_session).knowledge_state(TEST_USER_ID)

        assert state is WidgetState.GENERATING

    def test_settings_completeness(self, db_session):
        create_user_profile(db_session, TEST_USER_ID)
        create_communication_preferences(db_session, TEST_USER_ID)

        completeness = WidgetStatusService(db_session).settings_completeness(TEST_USER_ID)

        assert completeness.state is SettingsState.PARTIAL
        assert completeness.company is False

        create_business_profile(db_session, TEST_USER_ID)
        completeness = WidgetStatusService(db_session).settings_completeness(TEST_USER_ID)
        assert completeness.state is SettingsState.COMPLETE

    def test_linkedin_requires_account_id(self, db_session):
        create_user_profile(db_session, TEST_USER_ID, linkedin_connected=True)
        service = WidgetStatusService(db_session)

        assert service.linkedin_state(TEST_USER_ID) is LinkedInState.DISCONNECTED

    def test_linkedin_connected(self, db_session):
        create_user_profile(
            db_session, TEST_USER_ID, linkedin_connected=True, unipile_account_id="acc-1"
        )

        state = WidgetStatusService(db_session).linkedin_state(TEST_USER_ID)

        assert state is LinkedInState.CONNECTED
