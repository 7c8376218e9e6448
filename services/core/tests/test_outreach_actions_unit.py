"""Unit tests for prospect write actions.

Tests cover:
- Sending through the send collaborator
- Scheduling into the manual sequence
- Regeneration and new generation requests
- The per-prospect in-flight guard
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from coldai_core.domain.models import OutreachSequence, SequenceProspect
from coldai_core.domain.services.outreach_actions import (
    ActionInProgressError,
    EmptyMessageError,
    InFlightGuard,
    InvalidRecipientError,
    InvalidScheduleError,
    InvalidStatusError,
    MessageLogNotFoundError,
    OutreachActionService,
    SendFailedError,
    linkedin_public_id,
)
from coldai_core.domain.services.prospects import ProspectNotFoundError
from coldai_core.domain.services.usage import FreeTierLimits, UsageLimitError, UsageService
from coldai_core.infrastructure.tasks import GENERATE_MESSAGE_TASK, REGENERATE_MESSAGE_TASK
from tests.conftest import OTHER_USER_ID, TEST_USER_ID
from tests.factories import create_message_log, create_prospect, create_usage, utcnow

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def guard() -> InFlightGuard:
    return InFlightGuard()


@pytest.fixture
def service(db_session, edge_client, task_queue, guard) -> OutreachActionService:
    return OutreachActionService(
        db=db_session, edge_client=edge_client, tasks=task_queue, guard=guard
    )


@pytest.fixture
def generated_log(db_session):
    _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("generated",))
    return logs[0]


class TestLinkedInPublicId:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.linkedin.com/in/ada-lovelace", "ada-lovelace"),
            ("https://linkedin.com/in/ada_l/", "ada_l"),
            ("linkedin.com/in/J%C3%BCrgen", "J%C3%BCrgen"),
            ("https://example.com/in/ada", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extracts_public_id(self, url, expected):
        assert linkedin_public_id(url) == expected


class TestInFlightGuard:
    def test_second_hold_fails_fast(self, guard):
        with guard.hold("u1", 1):
            assert guard.is_held("u1", 1)
            with pytest.raises(ActionInProgressError):
                with guard.hold("u1", 1):
                    pass

        assert not guard.is_held("u1", 1)

    def test_other_prospects_are_independent(self, guard):
        with guard.hold("u1", 1):
            with guard.hold("u1", 2):
                with guard.hold("u2", 1):
                    assert guard.is_held("u2", 1)

    def test_released_on_error(self, guard):
        with pytest.raises(RuntimeError):
            with guard.hold("u1", 1):
                raise RuntimeError("boom")

        assert not guard.is_held("u1", 1)


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_send_calls_collaborator(self, service, edge_stub, generated_log):
        edge_stub.on("linkedin-send-message", {"success": True})

        result = await service.send_message(TEST_USER_ID, generated_log.id)

        assert result.message_log_id == generated_log.id
        assert result.prospect_id == generated_log.research_cache_id
        assert edge_stub.calls("linkedin-send-message") == [{
            "user_id": TEST_USER_ID,
            "message_log_id": generated_log.id,
            "recipient_linkedin_url": "https://www.linkedin.com/in/ada-lovelace",
            "message_text": "Hi Ada, loved your talk on engines.",
        }]

    @pytest.mark.asyncio
    async def test_status_is_not_assumed(self, service, edge_stub, generated_log):
        edge_stub.on("linkedin-send-message", {"success": True})

        await service.send_message(TEST_USER_ID, generated_log.id)

        assert generated_log.message_status == "generated"

    @pytest.mark.asyncio
    async def test_edited_message_preferred(self, service, edge_stub, generated_log):
        edge_stub.on("linkedin-send-message", {"success": True})
        generated_log.edited_message = "  Edited text  "

        await service.send_message(TEST_USER_ID, generated_log.id)

        assert edge_stub.calls("linkedin-send-message")[0]["message_text"] == "Edited text"

    @pytest.mark.asyncio
    async def test_other_users_log_not_found(self, service, generated_log):
        with pytest.raises(MessageLogNotFoundError):
            await service.send_message(OTHER_USER_ID, generated_log.id)

    @pytest.mark.asyncio
    async def test_wrong_status_rejected_before_network(self, service, edge_stub, db_session):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("sent",))

        with pytest.raises(InvalidStatusError):
            await service.send_message(TEST_USER_ID, logs[0].id)
        assert edge_stub.requests == []

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, service, edge_stub, db_session):
        _cache, logs = create_prospect(db_session, TEST_USER_ID)
        logs[0].generated_message = "   "

        with pytest.raises(EmptyMessageError):
            await service.send_message(TEST_USER_ID, logs[0].id)
        assert edge_stub.requests == []

    @pytest.mark.asyncio
    async def test_invalid_recipient_rejected(self, service, db_session):
        _cache, logs = create_prospect(
            db_session, TEST_USER_ID, profile_url="https://example.com/ada"
        )

        with pytest.raises(InvalidRecipientError):
            await service.send_message(TEST_USER_ID, logs[0].id)

    @pytest.mark.asyncio
    async def test_collaborator_refusal(self, service, edge_stub, generated_log):
        edge_stub.on("linkedin-send-message", {"success": False, "error": "Daily limit reached"})

        with pytest.raises(SendFailedError, match="Daily limit reached"):
            await service.send_message(TEST_USER_ID, generated_log.id)

    @pytest.mark.asyncio
    async def test_collaborator_unreachable(self, service, edge_stub, generated_log, guard):
        edge_stub.fail("linkedin-send-message", httpx.ConnectError("down"))

        with pytest.raises(SendFailedError):
            await service.send_message(TEST_USER_ID, generated_log.id)
        assert not guard.is_held(TEST_USER_ID, generated_log.research_cache_id)

    @pytest.mark.asyncio
    async def test_concurrent_action_rejected(self, service, edge_stub, generated_log, guard):
        edge_stub.on("linkedin-send-message", {"success": True})

        with guard.hold(TEST_USER_ID, generated_log.research_cache_id):
            with pytest.raises(ActionInProgressError):
                await service.send_message(TEST_USER_ID, generated_log.id)
        assert edge_stub.requests == []

    @pytest.mark.asyncio
    async def test_not_configured(self, db_session, generated_log):
        service = OutreachActionService(db=db_session, edge_client=None)

        with pytest.raises(SendFailedError, match="not configured"):
            await service.send_message(TEST_USER_ID, generated_log.id)


class TestScheduleMessage:
    def test_default_is_one_minute_from_now(self, service, db_session, generated_log):
        result = service.schedule_message(TEST_USER_ID, generated_log.id, now=NOW)

        assert result.scheduled_for == NOW + timedelta(minutes=1)
        assert generated_log.message_status == "pending_scheduled"

        entry = db_session.get(SequenceProspect, result.sequence_prospect_id)
        assert entry.status == "pending_scheduled"
        assert entry.linkedin_public_id == "ada-lovelace"
        assert entry.prospect_name == "Ada Lovelace"
        assert entry.message_log_id == generated_log.id
        assert entry.scheduled_for == datetime(2026, 3, 15, 12, 1)

    def test_manual_sequence_created_once(self, service, db_session):
        _c1, first = create_prospect(
            db_session, TEST_USER_ID, profile_url="https://www.linkedin.com/in/one"
        )
        _c2, second = create_prospect(
            db_session, TEST_USER_ID, profile_url="https://www.linkedin.com/in/two"
        )

        a = service.schedule_message(TEST_USER_ID, first[0].id, now=NOW)
        b = service.schedule_message(TEST_USER_ID, second[0].id, now=NOW)

        assert a.sequence_id == b.sequence_id
        sequences = db_session.query(OutreachSequence).filter_by(user_id=TEST_USER_ID).all()
        assert [s.sequence_name for s in sequences] == ["Manual Sends"]

    def test_rescheduling_same_recipient_updates_entry(self, service, db_session, generated_log):
        first = service.schedule_message(TEST_USER_ID, generated_log.id, now=NOW)
        newer = create_message_log(
            db_session, TEST_USER_ID, generated_log.research_cache_id, message_status="generated"
        )

        second = service.schedule_message(
            TEST_USER_ID, newer.id, scheduled_for=NOW + timedelta(days=1), now=NOW
        )

        assert second.sequence_prospect_id == first.sequence_prospect_id
        entry = db_session.get(SequenceProspect, second.sequence_prospect_id)
        assert entry.message_log_id == newer.id
        assert entry.scheduled_for == datetime(2026, 3, 16, 12, 0)

    def test_past_time_rejected(self, service, generated_log):
        with pytest.raises(InvalidScheduleError):
            service.schedule_message(
                TEST_USER_ID, generated_log.id, scheduled_for=NOW - timedelta(hours=1), now=NOW
            )
        assert generated_log.message_status == "generated"

    def test_naive_time_is_treated_as_utc(self, service, generated_log):
        result = service.schedule_message(
            TEST_USER_ID, generated_log.id, scheduled_for=datetime(2026, 3, 20, 9, 0), now=NOW
        )

        assert result.scheduled_for == datetime(2026, 3, 20, 9, 0, tzinfo=timezone.utc)

    def test_wrong_status_rejected(self, service, db_session):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("failed",))

        with pytest.raises(InvalidStatusError):
            service.schedule_message(TEST_USER_ID, logs[0].id, now=NOW)


class TestRegenerate:
    def test_failed_message_is_requeued(self, service, db_session, task_queue):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("failed",))

        action = service.regenerate(TEST_USER_ID, logs[0].id)

        assert action.task_id == "task-123"
        assert logs[0].message_status == "analysing_prospect"
        task_queue.enqueue.assert_called_once_with(
            REGENERATE_MESSAGE_TASK,
            {
                "user_id": TEST_USER_ID,
                "message_log_id": logs[0].id,
                "linkedin_url": "https://www.linkedin.com/in/ada-lovelace",
            },
        )

    def test_status_committed_before_enqueue(self, service, db_session, task_queue, monkeypatch):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("failed",))
        order = []
        real_commit = db_session.commit

        def commit():
            order.append(("commit", logs[0].message_status))
            real_commit()

        def enqueue(task_name, payload):
            order.append(("enqueue", task_name))
            return "task-123"

        monkeypatch.setattr(db_session, "commit", commit)
        task_queue.enqueue.side_effect = enqueue

        service.regenerate(TEST_USER_ID, logs[0].id)

        assert order == [
            ("commit", "analysing_prospect"),
            ("enqueue", REGENERATE_MESSAGE_TASK),
        ]

    def test_enqueue_failure_restores_failed(self, service, db_session, task_queue):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("failed",))
        task_queue.enqueue.side_effect = ConnectionError("broker down")

        with pytest.raises(ConnectionError):
            service.regenerate(TEST_USER_ID, logs[0].id)

        db_session.expire_all()
        assert logs[0].message_status == "failed"

    def test_only_failed_can_regenerate(self, service, generated_log, task_queue):
        with pytest.raises(InvalidStatusError):
            service.regenerate(TEST_USER_ID, generated_log.id)
        task_queue.enqueue.assert_not_called()

    def test_monthly_limit(self, db_session, task_queue):
        _cache, logs = create_prospect(db_session, TEST_USER_ID, statuses=("failed",))
        create_usage(db_session, TEST_USER_ID, utcnow().date(), messages_generated=25)
        service = OutreachActionService(db=db_session, tasks=task_queue)

        with pytest.raises(UsageLimitError):
            service.regenerate(TEST_USER_ID, logs[0].id)
        assert logs[0].message_status == "failed"


class TestRequestGeneration:
    def test_enqueues_generation(self, service, task_queue):
        action = service.request_generation(
            TEST_USER_ID, "https://www.linkedin.com/in/grace-hopper", icp_id=4
        )

        assert action.task_id == "task-123"
        task_queue.enqueue.assert_called_once_with(
            GENERATE_MESSAGE_TASK,
            {
                "user_id": TEST_USER_ID,
                "linkedin_url": "https://www.linkedin.com/in/grace-hopper",
                "message_type": "first_message",
                "outreach_goal": "meeting",
                "icp_id": 4,
                "product_id": None,
            },
        )

    def test_rejects_non_profile_url(self, service, task_queue):
        with pytest.raises(InvalidRecipientError):
            service.request_generation(TEST_USER_ID, "https://www.linkedin.com/company/acme")
        task_queue.enqueue.assert_not_called()

    def test_prospect_limit(self, db_session, task_queue):
        usage = UsageService(db_session, limits=FreeTierLimits(prospects=1))
        service = OutreachActionService(db=db_session, tasks=task_queue, usage=usage)
        create_prospect(db_session, TEST_USER_ID)

        with pytest.raises(UsageLimitError) as exc_info:
            service.request_generation(TEST_USER_ID, "https://www.linkedin.com/in/grace")
        assert exc_info.value.resource == "prospects"


class TestRemoveProspect:
    def test_soft_deletes_cache(self, service, generated_log, db_session):
        cache = service.remove_prospect(TEST_USER_ID, generated_log.research_cache_id)

        assert cache.deleted_at is not None

    def test_already_removed(self, service, generated_log):
        service.remove_prospect(TEST_USER_ID, generated_log.research_cache_id)

        with pytest.raises(ProspectNotFoundError):
            service.remove_prospect(TEST_USER_ID, generated_log.research_cache_id)

    def test_other_users_prospect(self, service, generated_log):
        with pytest.raises(ProspectNotFoundError):
            service.remove_prospect(OTHER_USER_ID, generated_log.research_cache_id)
