"""Account API routes.

Provides endpoints for:
- GET /auth/me - Current user
- POST /auth/logout - End the current session
- POST /account/deletion - Request account deletion
- GET /account/deletion-history - Prior deletions of an email
- GET /account/usage - Monthly usage against the free tier
"""

from fastapi import APIRouter, HTTPException, Query, Response, status

from coldai_core.api.deps import (
    AccountDeletionServiceDep,
    AuthServiceDep,
    CurrentUser,
    DBSession,
    SessionId,
    UsageServiceDep,
)
from coldai_core.api.schemas.account import (
    DeletionHistoryResponse,
    DeletionRequest,
    DeletionScheduledResponse,
    LogoutResponse,
    UsageResponse,
    UserInfo,
)
from coldai_core.domain.services.account_deletion import AccountDeletionError

auth_router = APIRouter(prefix="/auth", tags=["auth"])
router = APIRouter(prefix="/account", tags=["account"])


@auth_router.get("/me", response_model=UserInfo)
async def get_me(current_user: CurrentUser) -> UserInfo:
    """Get current authenticated user info."""
    return UserInfo.model_validate(current_user)


@auth_router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    current_user: CurrentUser,
    auth_service: AuthServiceDep,
    session_id: SessionId,
    db: DBSession,
) -> LogoutResponse:
    """Invalidate the session and clear the cookie."""
    if session_id:
        auth_service.invalidate_session(session_id)
    db.commit()
    response.delete_cookie(key="session", path="/")
    return LogoutResponse()


@router.post(
    "/deletion",
    response_model=DeletionScheduledResponse,
    summary="Request account deletion",
    description="Schedules the account for permanent deletion after a grace period.",
)
async def request_deletion(
    request: DeletionRequest,
    current_user: CurrentUser,
    service: AccountDeletionServiceDep,
):
    try:
        result = await service.request_deletion(current_user.id, request.reason)
    except AccountDeletionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return DeletionScheduledResponse(
        soft_delete_until=result.soft_delete_until,
        days_until_permanent=result.days_until_permanent,
    )


@router.get(
    "/deletion-history",
    response_model=DeletionHistoryResponse,
    summary="Check deletion history",
)
async def deletion_history(
    current_user: CurrentUser,
    service: AccountDeletionServiceDep,
    email: str = Query(..., min_length=3),
):
    try:
        history = await service.check_deletion_history(email)
    except AccountDeletionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    if history is None:
        return DeletionHistoryResponse(found=False, email=email)
    return DeletionHistoryResponse(
        found=True,
        email=history.email,
        deleted_at=history.deleted_at,
        deletion_count=history.deletion_count,
        details=history.details,
    )


@router.get("/usage", response_model=UsageResponse, summary="Monthly usage")
async def get_usage(current_user: CurrentUser, service: UsageServiceDep):
    usage = service.monthly_usage(current_user.id)
    return UsageResponse(
        month=usage.month,
        messages_generated=usage.messages_generated,
        messages_sent=usage.messages_sent,
        messages_archived=usage.messages_archived,
        research_performed=usage.research_performed,
        messages_limit=usage.messages_limit,
        messages_remaining=usage.messages_remaining,
    )
