"""ICP API routes.

Provides endpoints for:
- GET /icps - List ICPs
- POST /icps - Create an ICP and start generation
- GET /icps/{icp_id} - Get one ICP
- PATCH /icps/{icp_id} - Update an ICP
- DELETE /icps/{icp_id} - Archive (soft delete) an ICP
- POST /icps/{icp_id}/restore - Restore within the grace window
- POST /icps/{icp_id}/submit - Submit for review
- POST /icps/{icp_id}/approve - Approve
- POST /icps/{icp_id}/regenerate - Regenerate with feedback
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from coldai_core.api.deps import CurrentUser, DBSession, IcpServiceDep
from coldai_core.api.routes.knowledge import SERVICE_ERRORS, gateway_error_to_http
from coldai_core.api.schemas.icps import (
    ApproveIcpRequest,
    CreateIcpRequest,
    IcpListResponse,
    IcpResponse,
    RegenerateIcpRequest,
    SubmitForReviewRequest,
    UpdateIcpRequest,
)
from coldai_core.domain.services.automation_gateway import EntityNotFoundError

router = APIRouter(prefix="/icps", tags=["icps"])


@router.get("", response_model=IcpListResponse, summary="List ICPs")
async def list_icps(
    current_user: CurrentUser,
    service: IcpServiceDep,
    include_deleted: bool = Query(default=False),
):
    icps = service.list_icps(current_user.id, include_deleted=include_deleted)
    return IcpListResponse(icps=[IcpResponse.model_validate(i) for i in icps], total=len(icps))


@router.post(
    "",
    response_model=IcpResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an ICP",
)
async def create_icp(
    request: CreateIcpRequest,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
):
    try:
        icp = await service.create_icp(current_user.id, request.model_dump())
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.get("/{icp_id}", response_model=IcpResponse, summary="Get an ICP")
async def get_icp(icp_id: int, current_user: CurrentUser, service: IcpServiceDep):
    try:
        icp = service.get_icp(current_user.id, icp_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return IcpResponse.model_validate(icp)


@router.patch("/{icp_id}", response_model=IcpResponse, summary="Update an ICP")
async def update_icp(
    icp_id: int,
    request: UpdateIcpRequest,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
):
    try:
        icp = await service.update_icp(current_user.id, icp_id, request.to_updates())
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.delete("/{icp_id}", response_model=IcpResponse, summary="Archive an ICP")
async def delete_icp(icp_id: int, current_user: CurrentUser, service: IcpServiceDep, db: DBSession):
    try:
        icp = await service.delete_icp(current_user.id, icp_id)
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.post("/{icp_id}/restore", response_model=IcpResponse, summary="Restore an ICP")
async def restore_icp(
    icp_id: int,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
):
    try:
        icp = await service.restore_icp(current_user.id, icp_id)
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.post("/{icp_id}/submit", response_model=IcpResponse, summary="Submit an ICP for review")
async def submit_for_review(
    icp_id: int,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
    request: Optional[SubmitForReviewRequest] = None,
):
    try:
        icp = await service.submit_for_review(
            current_user.id,
            icp_id,
            changes_summary=request.changes_summary if request else None,
        )
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.post("/{icp_id}/approve", response_model=IcpResponse, summary="Approve an ICP")
async def approve_icp(
    icp_id: int,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
    request: Optional[ApproveIcpRequest] = None,
):
    try:
        icp = await service.approve_icp(
            current_user.id, icp_id, review_notes=request.review_notes if request else None
        )
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)


@router.post("/{icp_id}/regenerate", response_model=IcpResponse, summary="Regenerate an ICP")
async def regenerate_icp(
    icp_id: int,
    current_user: CurrentUser,
    service: IcpServiceDep,
    db: DBSession,
    request: Optional[RegenerateIcpRequest] = None,
):
    try:
        icp = await service.regenerate_icp(
            current_user.id, icp_id, feedback=request.feedback if request else None
        )
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return IcpResponse.model_validate(icp)
