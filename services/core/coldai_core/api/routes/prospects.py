"""Prospects API routes.

Provides endpoints for:
- GET /prospects - Filtered, sorted, paginated prospect list
- GET /prospects/summary - Needs-attention list and counters for the widget
- GET /prospects/stream - Server-sent snapshots kept converged in realtime
- POST /prospects - Request research and a first message for a new prospect
- DELETE /prospects/{research_cache_id} - Remove a prospect (soft delete)
- GET/PUT/DELETE /prospects/rules - Persistent rule set
- POST /prospects/rules/preset - Toggle a quick preset
- POST /prospects/messages/{id}/send - Send a generated message now
- POST /prospects/messages/{id}/schedule - Queue a generated message
- POST /prospects/messages/{id}/regenerate - Retry a failed generation
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from coldai_core.api.deps import (
    ChangeBusDep,
    CurrentUser,
    DBSession,
    OutreachServiceDep,
    ProspectServiceDep,
    RulesStoreDep,
    SessionFactoryDep,
    SettingsDep,
)
from coldai_core.api.schemas.prospects import (
    CreateProspectRequest,
    DashboardSummaryResponse,
    EnqueuedResponse,
    ListProspectsResponse,
    ProspectResponse,
    ProspectRulesSchema,
    ProspectStatsResponse,
    RulesResponse,
    ScheduleMessageRequest,
    ScheduleMessageResponse,
    SendMessageResponse,
    TogglePresetRequest,
)
from coldai_core.domain.services.outreach_actions import (
    ActionInProgressError,
    EmptyMessageError,
    InvalidRecipientError,
    InvalidScheduleError,
    InvalidStatusError,
    MessageLogNotFoundError,
    OutreachActionError,
    SendFailedError,
)
from coldai_core.domain.services.prospect_rules import (
    InvalidRuleError,
    ProspectRules,
)
from coldai_core.domain.services.prospects import (
    ALL_STATUSES,
    DashboardSummary,
    ProspectNotFoundError,
    ProspectPage,
    ProspectQuery,
    SortColumn,
    SortDirection,
    list_prospects as build_page,
    summarize,
)
from coldai_core.domain.services.reconciliation import (
    FeedSnapshot,
    ProspectFeed,
    RefreshTrigger,
    make_db_fetcher,
)
from coldai_core.domain.services.usage import UsageLimitError

router = APIRouter(prefix="/prospects", tags=["prospects"])
logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


# =============================================================================
# HELPERS
# =============================================================================


def build_query(
    search: str,
    statuses: Optional[list[str]],
    sort: SortColumn,
    direction: SortDirection,
    page: int,
) -> ProspectQuery:
    return ProspectQuery(
        search=search,
        statuses=frozenset(statuses) if statuses else frozenset({ALL_STATUSES}),
        sort_column=sort,
        sort_direction=direction,
        page=page,
    )


def page_response(page: ProspectPage) -> ListProspectsResponse:
    result = page.result
    return ListProspectsResponse(
        prospects=[ProspectResponse.from_prospect(p) for p in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        page_reset=result.page_reset,
        status_counts=page.status_counts,
        active_rules_count=page.active_rules_count,
        ordered_ids=page.ordered_ids,
    )


def summary_response(summary: DashboardSummary) -> DashboardSummaryResponse:
    return DashboardSummaryResponse(
        needs_attention=[ProspectResponse.from_prospect(p) for p in summary.needs_attention],
        stats=ProspectStatsResponse(
            generated=summary.stats.generated,
            scheduled=summary.stats.scheduled,
            sent=summary.stats.sent,
        ),
        total_prospects=summary.total_prospects,
    )


def rules_response(rules: ProspectRules) -> RulesResponse:
    return RulesResponse(
        rules=ProspectRulesSchema(**rules.to_dict()),
        active_preset=rules.active_preset,
        active_count=rules.active_count(),
    )


def action_error_to_http(error: OutreachActionError) -> HTTPException:
    """Map an action failure to an HTTP error with a user-facing detail."""
    if isinstance(error, MessageLogNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ActionInProgressError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, (InvalidStatusError, EmptyMessageError, InvalidRecipientError,
                            InvalidScheduleError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, SendFailedError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(error) or "Action failed")


def limit_to_http(error: UsageLimitError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(error))


# =============================================================================
# LIST AND SUMMARY
# =============================================================================


@router.get(
    "",
    response_model=ListProspectsResponse,
    summary="List prospects",
    description="Aggregate the user's message logs into prospects, then filter, sort and paginate.",
)
async def list_prospects(
    current_user: CurrentUser,
    service: ProspectServiceDep,
    rules_store: RulesStoreDep,
    search: str = Query(default="", description="Case-insensitive name or job title search"),
    statuses: Optional[list[str]] = Query(default=None, alias="status"),
    sort: SortColumn = Query(default=SortColumn.CREATED_AT),
    direction: SortDirection = Query(default=SortDirection.DESC),
    page: int = Query(default=1, ge=1),
):
    query = build_query(search, statuses, sort, direction, page)
    result = service.list_prospects(current_user.id, query, rules_store.load())
    return page_response(result)


@router.get(
    "/summary",
    response_model=DashboardSummaryResponse,
    summary="Prospect widget summary",
)
async def get_summary(current_user: CurrentUser, service: ProspectServiceDep):
    return summary_response(service.get_summary(current_user.id))


@router.get(
    "/stream",
    summary="Stream prospect snapshots",
    description=(
        "Server-sent events. Emits a snapshot on connect, on every change to the "
        "user's rows, and every few seconds while any prospect is generating."
    ),
)
async def stream_prospects(
    request: Request,
    current_user: CurrentUser,
    bus: ChangeBusDep,
    rules_store: RulesStoreDep,
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
    search: str = Query(default=""),
    statuses: Optional[list[str]] = Query(default=None, alias="status"),
    sort: SortColumn = Query(default=SortColumn.CREATED_AT),
    direction: SortDirection = Query(default=SortDirection.DESC),
    page: int = Query(default=1, ge=1),
):
    query = build_query(search, statuses, sort, direction, page)
    rules = rules_store.load()
    page_size = settings.prospects_page_size
    queue: asyncio.Queue[FeedSnapshot] = asyncio.Queue()

    async def on_snapshot(snapshot: FeedSnapshot) -> None:
        await queue.put(snapshot)

    feed = ProspectFeed(
        make_db_fetcher(session_factory),
        poll_interval=settings.poll_interval_seconds,
        listener=on_snapshot,
    )
    feed.set_identity(current_user.id)
    await feed.refresh(RefreshTrigger.INITIAL)

    def encode(snapshot: FeedSnapshot) -> str:
        listing = page_response(
            build_page(snapshot.prospects, query, rules, page_size=page_size)
        )
        summary = summary_response(
            summarize(snapshot.prospects, snapshot.row_statuses.values())
        )
        data = {
            "generation": snapshot.generation,
            "trigger": snapshot.trigger.value,
            "list": listing.model_dump(mode="json"),
            "summary": summary.model_dump(mode="json"),
        }
        return f"event: snapshot\ndata: {json.dumps(data)}\n\n"

    async def event_generator():
        listener = asyncio.create_task(feed.listen(bus))
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    snapshot = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield encode(snapshot)
        finally:
            listener.cancel()
            await feed.close()

    return StreamingResponse(event_generator(), media_type="text/event-stream")


# =============================================================================
# RULES
# =============================================================================


@router.get("/rules", response_model=RulesResponse, summary="Get the active rule set")
async def get_rules(current_user: CurrentUser, rules_store: RulesStoreDep):
    return rules_response(rules_store.load())


@router.put("/rules", response_model=RulesResponse, summary="Replace the active rule set")
async def put_rules(
    request: ProspectRulesSchema,
    current_user: CurrentUser,
    rules_store: RulesStoreDep,
):
    try:
        rules = ProspectRules.from_dict(request.model_dump())
    except InvalidRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    rules_store.save(rules)
    return rules_response(rules)


@router.post("/rules/preset", response_model=RulesResponse, summary="Toggle a quick preset")
async def toggle_preset(
    request: TogglePresetRequest,
    current_user: CurrentUser,
    rules_store: RulesStoreDep,
):
    try:
        rules = rules_store.load().toggle_preset(request.preset)
    except InvalidRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    rules_store.save(rules)
    return rules_response(rules)


@router.delete("/rules", response_model=RulesResponse, summary="Clear all rules")
async def reset_rules(current_user: CurrentUser, rules_store: RulesStoreDep):
    return rules_response(rules_store.reset())


# =============================================================================
# PROSPECT ACTIONS
# =============================================================================


@router.post(
    "",
    response_model=EnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Add a prospect",
    description="Queue research and first-message generation for a LinkedIn profile.",
)
async def create_prospect(
    request: CreateProspectRequest,
    current_user: CurrentUser,
    service: OutreachServiceDep,
):
    try:
        result = service.request_generation(
            current_user.id,
            request.linkedin_url,
            message_type=request.message_type,
            outreach_goal=request.outreach_goal,
            icp_id=request.icp_id,
            product_id=request.product_id,
        )
    except UsageLimitError as e:
        raise limit_to_http(e)
    except OutreachActionError as e:
        raise action_error_to_http(e)
    return EnqueuedResponse(task_id=result.task_id)


@router.delete(
    "/{research_cache_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a prospect",
)
async def remove_prospect(
    research_cache_id: int,
    current_user: CurrentUser,
    service: OutreachServiceDep,
    db: DBSession,
):
    try:
        service.remove_prospect(current_user.id, research_cache_id)
    except ProspectNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except OutreachActionError as e:
        raise action_error_to_http(e)
    db.commit()


@router.post(
    "/messages/{message_log_id}/send",
    response_model=SendMessageResponse,
    summary="Send a message now",
)
async def send_message(
    message_log_id: int,
    current_user: CurrentUser,
    service: OutreachServiceDep,
):
    try:
        result = await service.send_message(current_user.id, message_log_id)
    except OutreachActionError as e:
        raise action_error_to_http(e)
    return SendMessageResponse(
        message_log_id=result.message_log_id,
        prospect_id=result.prospect_id,
    )


@router.post(
    "/messages/{message_log_id}/schedule",
    response_model=ScheduleMessageResponse,
    summary="Schedule a message",
)
async def schedule_message(
    message_log_id: int,
    current_user: CurrentUser,
    service: OutreachServiceDep,
    db: DBSession,
    request: Optional[ScheduleMessageRequest] = None,
):
    try:
        result = service.schedule_message(
            current_user.id,
            message_log_id,
            scheduled_for=request.scheduled_for if request else None,
        )
    except OutreachActionError as e:
        raise action_error_to_http(e)
    db.commit()
    return ScheduleMessageResponse(
        message_log_id=result.message_log_id,
        prospect_id=result.prospect_id,
        sequence_id=result.sequence_id,
        sequence_prospect_id=result.sequence_prospect_id,
        scheduled_for=result.scheduled_for,
    )


@router.post(
    "/messages/{message_log_id}/regenerate",
    response_model=EnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Regenerate a failed message",
)
async def regenerate_message(
    message_log_id: int,
    current_user: CurrentUser,
    service: OutreachServiceDep,
    db: DBSession,
):
    try:
        result = service.regenerate(current_user.id, message_log_id)
    except UsageLimitError as e:
        raise limit_to_http(e)
    except OutreachActionError as e:
        raise action_error_to_http(e)
    db.commit()
    return EnqueuedResponse(task_id=result.task_id, message_log_id=result.message_log_id)
