"""Automation tasks.

These tasks trigger message generation in the automation backend and send
scheduled messages once they are due. The dashboard API only enqueues them;
progress reaches the dashboard through the message log rows the backend
updates.

Generation requests are retried on connection errors and timeouts and are
deduplicated by a key derived from the task name and payload. Scheduled
sends are at-most-once: a row is claimed (moved to ``sending``) and
committed before the send call, and is never retried automatically.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Optional

from coldai_worker.celery_app import app
from coldai_worker.util.db import get_session_factory
from coldai_worker.util.idempotency import compute_dedupe_key, get_idempotency_manager
from coldai_worker.util.retry import edge_function_retry, with_retry

logger = logging.getLogger(__name__)

GENERATE_FUNCTION = "message-generate"
SEND_FUNCTION = "linkedin-send-message"

DUE_STATUSES = ("pending_scheduled", "scheduled")
DEFAULT_BATCH_SIZE = 50

# Messages per LinkedIn account per day, whatever the sequence allows
DAILY_MESSAGE_LIMIT = 100
DEFAULT_DAILY_LIMIT = 50

# Rows left in "sending" longer than this are reported as stuck
STUCK_SENDING_AFTER = timedelta(minutes=15)


def invoke_edge_function(name: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Call an edge function from synchronous task code."""
    from coldai_core.infrastructure.edge_functions import get_edge_function_client

    async def _call() -> dict[str, Any]:
        client = get_edge_function_client()
        try:
            return await client.invoke(name, payload)
        finally:
            await client.close()

    return asyncio.run(_call())


def invoke_with_retry(name: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Call an edge function, retrying connection errors and timeouts."""
    return with_retry(edge_function_retry())(invoke_edge_function)(name, payload)


def _generation_request(payload: dict[str, Any]) -> dict[str, Any]:
    request = {
        "user_id": payload["user_id"],
        "prospect_data": {"linkedin_url": payload["linkedin_url"]},
        "message_type": payload.get("message_type") or "first_message",
        "outreach_goal": payload.get("outreach_goal") or "meeting",
    }
    for key in ("icp_id", "product_id", "message_log_id"):
        if payload.get(key) is not None:
            request[key] = payload[key]
    return request


# =============================================================================
# GENERATION
# =============================================================================


@app.task(name="automation.generate_message", bind=True, max_retries=0)
def generate_message(self, payload: dict[str, Any]) -> dict:
    """Ask the backend to research a prospect and draft a first message.

    Args:
        payload: Dictionary containing:
            - user_id: Dashboard user ID
            - linkedin_url: Prospect's LinkedIn profile URL
            - message_type, outreach_goal: Generation options
            - icp_id, product_id: Optional targeting context

    Returns:
        Dictionary with status and the created message log ID.
    """
    from coldai_core.infrastructure.edge_functions import EdgeFunctionError

    user_id = payload.get("user_id")
    linkedin_url = payload.get("linkedin_url")
    if not user_id or not linkedin_url:
        return {"status": "error", "error": "Missing required payload fields"}

    dedupe_key = compute_dedupe_key("automation.generate_message", payload)
    idempotency = get_idempotency_manager()
    if not idempotency.acquire_lock(dedupe_key):
        logger.info(f"Skipping duplicate generation request {dedupe_key}")
        return {"status": "skipped", "reason": "duplicate", "dedupe_key": dedupe_key}

    try:
        try:
            result = invoke_with_retry(GENERATE_FUNCTION, _generation_request(payload))
        except EdgeFunctionError as e:
            logger.error(f"Message generation failed for user {user_id}: {e}")
            return {"status": "error", "error": str(e), "user_id": user_id}

        if result.get("success") is False:
            return {
                "status": "error",
                "error": result.get("error") or "Message generation failed",
                "user_id": user_id,
            }

        idempotency.mark_complete(dedupe_key)
        message_log_id = result.get("log_id") or result.get("message_log_id")
        logger.info(f"Generation started for user {user_id}: log {message_log_id}")
        return {"status": "success", "user_id": user_id, "message_log_id": message_log_id}
    finally:
        idempotency.release_lock(dedupe_key)


@app.task(name="automation.regenerate_message", bind=True, max_retries=0)
def regenerate_message(self, payload: dict[str, Any]) -> dict:
    """Re-run generation for a failed message.

    The API has already moved the log back to ``analysing_prospect``. A
    permanent failure marks it ``failed`` again with the error recorded in
    ``message_metadata``.

    Args:
        payload: Dictionary containing:
            - user_id: Dashboard user ID
            - message_log_id: Log to regenerate
            - linkedin_url: Prospect's LinkedIn profile URL

    Returns:
        Dictionary with status and details.
    """
    from coldai_core.domain.message_status import MessageStatus
    from coldai_core.domain.models import MessageGenerationLog
    from coldai_core.domain.timestamps import utcnow
    from coldai_core.infrastructure.edge_functions import EdgeFunctionError

    user_id = payload.get("user_id")
    message_log_id = payload.get("message_log_id")
    if not user_id or not message_log_id or not payload.get("linkedin_url"):
        return {"status": "error", "error": "Missing required payload fields"}

    session_factory = get_session_factory()
    session = session_factory()

    try:
        log = (
            session.query(MessageGenerationLog)
            .filter(
                MessageGenerationLog.id == message_log_id,
                MessageGenerationLog.user_id == user_id,
            )
            .first()
        )
        if log is None:
            return {
                "status": "error",
                "error": f"Message log {message_log_id} not found",
                "message_log_id": message_log_id,
            }
        if log.message_status != MessageStatus.ANALYSING_PROSPECT.value:
            # Status moved on (or was archived) since the request was queued
            return {
                "status": "skipped",
                "reason": f"status is {log.message_status}",
                "message_log_id": message_log_id,
            }

        error = None
        try:
            result = invoke_with_retry(GENERATE_FUNCTION, _generation_request(payload))
            if result.get("success") is False:
                error = result.get("error") or "Message generation failed"
        except EdgeFunctionError as e:
            error = str(e) or "Message generation failed"

        if error:
            log.message_status = MessageStatus.FAILED.value
            log.message_metadata = {
                **(log.message_metadata or {}),
                "error": error,
                "failed_at": utcnow().isoformat(),
            }
            session.commit()
            logger.error(f"Regeneration of message {message_log_id} failed: {error}")
            return {"status": "error", "error": error, "message_log_id": message_log_id}

        logger.info(f"Regeneration started for message {message_log_id}")
        return {"status": "success", "message_log_id": message_log_id}

    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================================
# SCHEDULED SENDS
# =============================================================================


def _has_linked_account(session, user_id: str) -> bool:
    from coldai_core.domain.models import UserProfile

    profile = session.get(UserProfile, user_id)
    return bool(profile and profile.linkedin_connected and profile.unipile_account_id)


def _stale_reason(log) -> Optional[str]:
    """Why a scheduled row's message must no longer be sent, if it must not."""
    if log.research_cache is not None and log.research_cache.deleted_at is not None:
        return "Prospect was removed"
    if log.message_status not in DUE_STATUSES:
        return f"Message is {log.message_status}"
    return None


@app.task(name="automation.dispatch_scheduled", bind=True, max_retries=0)
def dispatch_scheduled(self, batch_size: int = DEFAULT_BATCH_SIZE) -> dict:
    """Send every scheduled message that is due.

    Rows whose message was archived, sent or removed since scheduling are
    marked ``skipped``. Rows of users without a linked LinkedIn account, or
    past their daily limit, stay due for a later run.

    Returns:
        Dictionary with counts of claimed, sent, failed, skipped and
        deferred rows.
    """
    from coldai_core.domain.message_status import MessageStatus
    from coldai_core.domain.models import SequenceProspect, SequenceProspectStatus
    from coldai_core.domain.services.usage import UsageService
    from coldai_core.domain.timestamps import to_naive_utc, utcnow
    from coldai_core.infrastructure.edge_functions import EdgeFunctionError

    session_factory = get_session_factory()
    session = session_factory()
    now = to_naive_utc(utcnow())
    today = now.date()
    usage = UsageService(session)

    sent = 0
    failed = 0
    skipped = 0
    deferred = 0

    try:
        due = (
            session.query(SequenceProspect)
            .filter(
                SequenceProspect.status.in_(DUE_STATUSES),
                SequenceProspect.scheduled_for.isnot(None),
                SequenceProspect.scheduled_for <= now,
            )
            .order_by(SequenceProspect.scheduled_for, SequenceProspect.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
            .all()
        )

        # Claim the batch before any send
        linked: dict[str, bool] = {}
        sent_today: dict[str, int] = {}
        claimed = []
        for row in due:
            log = row.message_log
            reason = _stale_reason(log) if log is not None else None
            if reason:
                row.status = SequenceProspectStatus.SKIPPED
                row.error_message = reason
                skipped += 1
                logger.info(f"Skipping scheduled send {row.id}: {reason}")
                continue

            if row.user_id not in linked:
                linked[row.user_id] = _has_linked_account(session, row.user_id)
                sent_today[row.user_id] = usage.messages_sent_on(row.user_id, today)
                if not linked[row.user_id]:
                    logger.warning(f"No linked LinkedIn account for user {row.user_id}")
            if not linked[row.user_id]:
                deferred += 1
                continue

            daily_limit = min(
                (row.sequence.daily_limit if row.sequence else None) or DEFAULT_DAILY_LIMIT,
                DAILY_MESSAGE_LIMIT,
            )
            if sent_today[row.user_id] >= daily_limit:
                deferred += 1
                logger.info(f"Daily limit of {daily_limit} reached for user {row.user_id}")
                continue

            sent_today[row.user_id] += 1
            row.status = SequenceProspectStatus.SENDING
            claimed.append(row)
        session.commit()

        for row in claimed:
            log = row.message_log
            text = ""
            if log is not None:
                text = (log.edited_message or "").strip() or (log.generated_message or "").strip()

            error = None
            if log is None or not text:
                error = "Message text is missing"
            else:
                try:
                    result = invoke_edge_function(
                        SEND_FUNCTION,
                        {
                            "user_id": row.user_id,
                            "message_log_id": log.id,
                            "recipient_linkedin_url": row.linkedin_url,
                            "message_text": text,
                        },
                    )
                    if not result.get("success"):
                        error = result.get("error") or "Failed to send message"
                except EdgeFunctionError as e:
                    error = str(e) or "Failed to send message"

            sent_at = to_naive_utc(utcnow())
            if error:
                row.status = SequenceProspectStatus.FAILED
                row.error_message = error
                if log is not None:
                    log.message_status = MessageStatus.FAILED.value
                failed += 1
                logger.warning(f"Scheduled send {row.id} failed: {error}")
            else:
                row.status = SequenceProspectStatus.SENT
                row.sent_at = sent_at
                if log.message_status != MessageStatus.SENT.value:
                    log.message_status = MessageStatus.SENT.value
                    log.sent_at = sent_at
                usage.record_message_sent(row.user_id, today)
                sent += 1
            session.commit()

        stuck = (
            session.query(SequenceProspect)
            .filter(
                SequenceProspect.status == SequenceProspectStatus.SENDING,
                SequenceProspect.updated_at < now - STUCK_SENDING_AFTER,
            )
            .count()
        )
        if stuck:
            logger.warning(f"{stuck} scheduled sends have been in 'sending' for over 15 minutes")

        return {
            "status": "success",
            "claimed": len(claimed),
            "sent": sent,
            "failed": failed,
            "skipped": skipped,
            "deferred": deferred,
        }

    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
