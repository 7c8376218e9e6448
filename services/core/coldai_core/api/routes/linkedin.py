"""LinkedIn account linking API routes.

Provides endpoints for:
- POST /linkedin/auth-link - Generate a hosted auth link
- POST /linkedin/complete - Re-check status after the auth window reported back
- POST /linkedin/notify - Provider callback recording a linked account
- GET /linkedin/status - Connection status of the current user
- DELETE /linkedin - Disconnect the linked account
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException, status

from coldai_core.api.deps import CurrentUser, DBSession, LinkedInServiceDep, SettingsDep
from coldai_core.api.schemas.linkedin import (
    AuthLinkRequest,
    AuthLinkResponse,
    CompleteConnectionRequest,
    CompleteConnectionResponse,
    LinkedInStatusResponse,
    NotifyRequest,
)
from coldai_core.domain.services.linkedin_account import (
    AuthLinkError,
    ConnectionSignal,
    LinkedAccount,
    LinkedInAlreadyLinkedError,
    LinkedInStatus,
)
from coldai_core.infrastructure.edge_functions import EdgeFunctionNotConfiguredError

router = APIRouter(prefix="/linkedin", tags=["linkedin"])
logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("CREATION_SUCCESS", "RECONNECTED")


def status_response(result: LinkedInStatus) -> LinkedInStatusResponse:
    return LinkedInStatusResponse(connected=result.connected, account=result.account)


@router.post("/auth-link", response_model=AuthLinkResponse, summary="Generate an auth link")
async def create_auth_link(
    request: AuthLinkRequest,
    current_user: CurrentUser,
    service: LinkedInServiceDep,
):
    try:
        link = await service.generate_auth_link(current_user.id, request.auth_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AuthLinkError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except EdgeFunctionNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return AuthLinkResponse(url=link.url, token=link.token, expires_on=link.expires_on)


@router.post(
    "/complete",
    response_model=CompleteConnectionResponse,
    summary="Complete a connection attempt",
)
async def complete_connection(
    request: CompleteConnectionRequest,
    current_user: CurrentUser,
    service: LinkedInServiceDep,
):
    try:
        result = service.complete_connection(
            current_user.id, ConnectionSignal(kind=request.kind, data=request.data)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if result is None:
        return CompleteConnectionResponse(handled=False)
    return CompleteConnectionResponse(handled=True, status=status_response(result))


@router.post(
    "/notify",
    response_model=LinkedInStatusResponse,
    summary="Provider account notification",
)
async def notify(
    request: NotifyRequest,
    service: LinkedInServiceDep,
    settings: SettingsDep,
    db: DBSession,
    x_notify_secret: Annotated[Optional[str], Header()] = None,
):
    if settings.linkedin_notify_secret and x_notify_secret != settings.linkedin_notify_secret:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid secret")

    if request.status not in SUCCESS_STATUSES:
        logger.info(f"Ignoring provider notification {request.status} for user {request.name}")
        return status_response(service.check_status(request.name))

    account = LinkedAccount(
        account_id=request.account_id,
        public_identifier=request.public_identifier,
        profile_url=request.profile_url,
        profile_data=request.profile_data,
    )
    try:
        result = await service.record_connection(request.name, account)
    except LinkedInAlreadyLinkedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    db.commit()
    return status_response(result)


@router.get("/status", response_model=LinkedInStatusResponse, summary="Connection status")
async def get_status(current_user: CurrentUser, service: LinkedInServiceDep):
    return status_response(service.check_status(current_user.id))


@router.delete("", response_model=LinkedInStatusResponse, summary="Disconnect LinkedIn")
async def disconnect(current_user: CurrentUser, service: LinkedInServiceDep, db: DBSession):
    result = await service.disconnect(current_user.id)
    db.commit()
    return status_response(result)
