"""Prospect write actions: send, schedule, regenerate, remove, create.

Actions validate locally before any network call and never assume the
resulting status; the caller refreshes the prospect feed afterwards. Writes
on the same prospect are serialized by an in-flight guard so a second
concurrent action fails fast instead of racing the first.

Usage:
    service = OutreachActionService(db=session, edge_client=client, tasks=queue)
    await service.send_message(user_id, message_log_id=42)
    service.schedule_message(user_id, message_log_id=42)
    db.commit()
"""

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from coldai_core.domain.message_status import MessageStatus, can_schedule, can_send
from coldai_core.domain.models import (
    MessageGenerationLog,
    OutreachSequence,
    ResearchCache,
    SequenceProspect,
    SequenceProspectStatus,
)
from coldai_core.domain.services.prospects import ProspectService, parse_research_data
from coldai_core.domain.services.usage import UsageService
from coldai_core.domain.timestamps import as_utc, to_naive_utc, utcnow
from coldai_core.infrastructure.edge_functions import EdgeFunctionClient, EdgeFunctionError
from coldai_core.infrastructure.tasks import (
    GENERATE_MESSAGE_TASK,
    REGENERATE_MESSAGE_TASK,
    TaskQueue,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class OutreachActionError(Exception):
    """Base exception for prospect actions."""
    pass


class MessageLogNotFoundError(OutreachActionError):
    """Raised when the message log does not exist or belongs to another user."""
    pass


class InvalidStatusError(OutreachActionError):
    """Raised when the message status does not allow the action."""
    pass


class EmptyMessageError(OutreachActionError):
    """Raised when there is no message text to send."""
    pass


class InvalidRecipientError(OutreachActionError):
    """Raised when the recipient URL is not a LinkedIn profile URL."""
    pass


class InvalidScheduleError(OutreachActionError):
    """Raised when the requested send time is in the past."""
    pass


class SendFailedError(OutreachActionError):
    """Raised when the send collaborator refuses or cannot be reached."""
    pass


class ActionInProgressError(OutreachActionError):
    """Raised when another write action on the same prospect is running."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================


SEND_FUNCTION = "linkedin-send-message"
MANUAL_SEQUENCE_NAME = "Manual Sends"
DEFAULT_SCHEDULE_DELAY = timedelta(minutes=1)
GENERIC_SEND_ERROR = "Failed to send message. Please try again."

LINKEDIN_PROFILE_RE = re.compile(r"linkedin\.com/in/([\w%-]+)/?", re.IGNORECASE)


def linkedin_public_id(url: Optional[str]) -> Optional[str]:
    """Extract the public identifier from a LinkedIn profile URL."""
    if not url:
        return None
    match = LINKEDIN_PROFILE_RE.search(url)
    return match.group(1) if match else None


# =============================================================================
# IN-FLIGHT GUARD
# =============================================================================


class InFlightGuard:
    """Rejects a second concurrent write on the same (user, prospect)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._held: set[tuple[str, int]] = set()

    def is_held(self, user_id: str, prospect_id: int) -> bool:
        with self._lock:
            return (user_id, prospect_id) in self._held

    @contextmanager
    def hold(self, user_id: str, prospect_id: int) -> Iterator[None]:
        key = (user_id, prospect_id)
        with self._lock:
            if key in self._held:
                raise ActionInProgressError(
                    f"Another action on prospect {prospect_id} is still running"
                )
            self._held.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._held.discard(key)


_default_guard = InFlightGuard()


def get_in_flight_guard() -> InFlightGuard:
    return _default_guard


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class SendResult:
    message_log_id: int
    prospect_id: int


@dataclass
class ScheduleResult:
    message_log_id: int
    prospect_id: int
    sequence_id: int
    sequence_prospect_id: int
    scheduled_for: datetime


@dataclass
class EnqueuedAction:
    task_id: str
    message_log_id: Optional[int] = None


# =============================================================================
# SERVICE
# =============================================================================


class OutreachActionService:
    """Write actions on prospects and their message logs."""

    def __init__(
        self,
        db: Session,
        edge_client: Optional[EdgeFunctionClient] = None,
        tasks: Optional[TaskQueue] = None,
        guard: Optional[InFlightGuard] = None,
        usage: Optional[UsageService] = None,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session.
            edge_client: Client for the send collaborator.
            tasks: Producer for worker tasks.
            guard: In-flight guard shared across requests.
            usage: Usage service for free-tier checks.
        """
        self.db = db
        self.edge_client = edge_client
        self.tasks = tasks
        self.guard = guard or get_in_flight_guard()
        self.usage = usage or UsageService(db)

    def _get_log(self, user_id: str, message_log_id: int) -> MessageGenerationLog:
        log = (
            self.db.query(MessageGenerationLog)
            .filter(
                MessageGenerationLog.id == message_log_id,
                MessageGenerationLog.user_id == user_id,
            )
            .first()
        )
        if log is None or log.research_cache_id is None:
            raise MessageLogNotFoundError(f"Message {message_log_id} not found")
        return log

    @staticmethod
    def _message_text(log: MessageGenerationLog) -> str:
        text = (log.edited_message or log.generated_message or "").strip()
        if not text:
            raise EmptyMessageError("There is no message text to send")
        return text

    @staticmethod
    def _recipient(log: MessageGenerationLog) -> tuple[str, str]:
        url = log.research_cache.profile_url if log.research_cache else None
        public_id = linkedin_public_id(url)
        if public_id is None:
            raise InvalidRecipientError("No valid recipient LinkedIn URL found")
        return url, public_id

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    async def send_message(self, user_id: str, message_log_id: int) -> SendResult:
        """Send a generated message now through the send collaborator.

        Raises:
            MessageLogNotFoundError: Unknown or foreign message log.
            InvalidStatusError: Message is not in a sendable status.
            EmptyMessageError: No message text.
            InvalidRecipientError: Recipient URL is not a LinkedIn profile.
            ActionInProgressError: Another action on the prospect is running.
            SendFailedError: The collaborator refused or was unreachable.
        """
        log = self._get_log(user_id, message_log_id)
        if not can_send(log.message_status):
            raise InvalidStatusError(
                f"Cannot send a message with status '{log.message_status}'"
            )
        text = self._message_text(log)
        recipient_url, _public_id = self._recipient(log)
        prospect_id = log.research_cache_id
        if self.edge_client is None:
            raise SendFailedError("Sending is not configured")

        with self.guard.hold(user_id, prospect_id):
            try:
                result = await self.edge_client.invoke(
                    SEND_FUNCTION,
                    {
                        "user_id": user_id,
                        "message_log_id": message_log_id,
                        "recipient_linkedin_url": recipient_url,
                        "message_text": text,
                    },
                )
            except EdgeFunctionError as e:
                logger.warning(f"Send of message {message_log_id} failed: {e}")
                raise SendFailedError(str(e) or GENERIC_SEND_ERROR) from e

        if not result.get("success"):
            raise SendFailedError(result.get("error") or GENERIC_SEND_ERROR)

        logger.info(f"Message {message_log_id} sent for user {user_id}")
        return SendResult(message_log_id=message_log_id, prospect_id=prospect_id)

    # -------------------------------------------------------------------------
    # Schedule
    # -------------------------------------------------------------------------

    def get_or_create_manual_sequence(self, user_id: str) -> OutreachSequence:
        sequence = (
            self.db.query(OutreachSequence)
            .filter(
                OutreachSequence.user_id == user_id,
                OutreachSequence.sequence_name == MANUAL_SEQUENCE_NAME,
                OutreachSequence.status == "active",
            )
            .order_by(OutreachSequence.id)
            .first()
        )
        if sequence is None:
            sequence = OutreachSequence(
                user_id=user_id,
                sequence_name=MANUAL_SEQUENCE_NAME,
                sequence_type="message",
                status="active",
            )
            self.db.add(sequence)
            self.db.flush()
        return sequence

    def schedule_message(
        self,
        user_id: str,
        message_log_id: int,
        scheduled_for: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        """Queue a generated message for the scheduler.

        Defaults to one minute from now. The caller commits.
        """
        log = self._get_log(user_id, message_log_id)
        if not can_schedule(log.message_status):
            raise InvalidStatusError(
                f"Cannot schedule a message with status '{log.message_status}'"
            )
        self._message_text(log)
        recipient_url, public_id = self._recipient(log)

        now = now or utcnow()
        when = as_utc(scheduled_for) if scheduled_for else now + DEFAULT_SCHEDULE_DELAY
        if when < now:
            raise InvalidScheduleError("Scheduled time must be in the future")

        prospect_id = log.research_cache_id
        with self.guard.hold(user_id, prospect_id):
            sequence = self.get_or_create_manual_sequence(user_id)
            data = parse_research_data(log.research_cache.research_data)

            entry = (
                self.db.query(SequenceProspect)
                .filter(
                    SequenceProspect.sequence_id == sequence.id,
                    SequenceProspect.linkedin_public_id == public_id,
                )
                .first()
            )
            if entry is None:
                entry = SequenceProspect(
                    sequence_id=sequence.id,
                    user_id=user_id,
                    linkedin_url=recipient_url,
                    linkedin_public_id=public_id,
                )
                self.db.add(entry)
            entry.message_log_id = log.id
            entry.prospect_name = data.get("name") or None
            entry.status = SequenceProspectStatus.PENDING_SCHEDULED
            entry.scheduled_for = to_naive_utc(when)
            entry.error_message = None

            log.message_status = MessageStatus.PENDING_SCHEDULED.value
            self.db.flush()

        logger.info(f"Message {message_log_id} scheduled for {when.isoformat()}")
        return ScheduleResult(
            message_log_id=log.id,
            prospect_id=prospect_id,
            sequence_id=sequence.id,
            sequence_prospect_id=entry.id,
            scheduled_for=when,
        )

    # -------------------------------------------------------------------------
    # Regenerate / create
    # -------------------------------------------------------------------------

    def regenerate(self, user_id: str, message_log_id: int) -> EnqueuedAction:
        """Retry generation for a failed message. Fire-and-forget.

        The status change is committed before the task is enqueued; the worker
        only regenerates logs it finds in ``analysing_prospect``.
        """
        log = self._get_log(user_id, message_log_id)
        if log.message_status != MessageStatus.FAILED.value:
            raise InvalidStatusError("Only failed messages can be regenerated")
        self.usage.ensure_can_generate_message(user_id)

        with self.guard.hold(user_id, log.research_cache_id):
            payload = {
                "user_id": user_id,
                "message_log_id": log.id,
                "linkedin_url": log.research_cache.profile_url,
            }
            log.message_status = MessageStatus.ANALYSING_PROSPECT.value
            self.db.commit()
            try:
                task_id = self.tasks.enqueue(REGENERATE_MESSAGE_TASK, payload)
            except Exception:
                log.message_status = MessageStatus.FAILED.value
                self.db.commit()
                raise
        return EnqueuedAction(task_id=task_id, message_log_id=log.id)

    def request_generation(
        self,
        user_id: str,
        linkedin_url: str,
        message_type: str = "first_message",
        outreach_goal: str = "meeting",
        icp_id: Optional[int] = None,
        product_id: Optional[int] = None,
    ) -> EnqueuedAction:
        """Ask the automation to research a new prospect and draft a message."""
        if linkedin_public_id(linkedin_url) is None:
            raise InvalidRecipientError("Enter a LinkedIn profile URL (linkedin.com/in/...)")
        self.usage.ensure_can_add_prospect(user_id)
        self.usage.ensure_can_generate_message(user_id)

        task_id = self.tasks.enqueue(
            GENERATE_MESSAGE_TASK,
            {
                "user_id": user_id,
                "linkedin_url": linkedin_url,
                "message_type": message_type,
                "outreach_goal": outreach_goal,
                "icp_id": icp_id,
                "product_id": product_id,
            },
        )
        return EnqueuedAction(task_id=task_id)

    # -------------------------------------------------------------------------
    # Remove
    # -------------------------------------------------------------------------

    def remove_prospect(self, user_id: str, research_cache_id: int) -> ResearchCache:
        """Soft-delete the prospect's research cache row. The caller commits."""
        with self.guard.hold(user_id, research_cache_id):
            return ProspectService(self.db).remove_prospect(user_id, research_cache_id)


__all__ = [
    "ActionInProgressError",
    "EmptyMessageError",
    "EnqueuedAction",
    "InFlightGuard",
    "InvalidRecipientError",
    "InvalidScheduleError",
    "InvalidStatusError",
    "MessageLogNotFoundError",
    "OutreachActionError",
    "OutreachActionService",
    "ScheduleResult",
    "SendFailedError",
    "SendResult",
    "get_in_flight_guard",
    "linkedin_public_id",
]
