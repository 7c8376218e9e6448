"""Knowledge base API routes.

Provides endpoints for:
- GET /knowledge - List entries
- POST /knowledge - Create an entry and start enrichment
- GET /knowledge/{entry_id} - Get one entry
- PATCH /knowledge/{entry_id} - Update an entry
- DELETE /knowledge/{entry_id} - Soft delete an entry
- POST /knowledge/{entry_id}/restore - Restore within the grace window
- POST /knowledge/{entry_id}/approve - Approve a reviewed entry
"""

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.orm import Session

from coldai_core.api.deps import CurrentUser, DBSession, KnowledgeServiceDep
from coldai_core.api.schemas.knowledge import (
    CreateKnowledgeRequest,
    KnowledgeActionResponse,
    KnowledgeEntryResponse,
    KnowledgeListResponse,
    UpdateKnowledgeRequest,
)
from coldai_core.domain.services.automation_gateway import (
    AutomationActionError,
    EntityNotFoundError,
    FeatureNotConfiguredError,
    GatewayError,
    RestoreNotAllowedError,
)
from coldai_core.domain.services.usage import UsageLimitError

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


def gateway_error_to_http(db: Session, error: Exception) -> HTTPException:
    """Map a service failure to an HTTP error.

    Services leave no partial row changes behind on failure, so the session
    is committed to keep the recorded dispatch event.
    """
    db.commit()
    if isinstance(error, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, RestoreNotAllowedError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, FeatureNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    if isinstance(error, AutomationActionError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    if isinstance(error, UsageLimitError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


SERVICE_ERRORS = (GatewayError, UsageLimitError, ValueError)


@router.get("", response_model=KnowledgeListResponse, summary="List knowledge entries")
async def list_entries(
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    include_deleted: bool = Query(default=False),
):
    entries = service.list_entries(current_user.id, include_deleted=include_deleted)
    return KnowledgeListResponse(
        entries=[KnowledgeEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.post(
    "",
    response_model=KnowledgeActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a knowledge entry",
)
async def create_entry(
    request: CreateKnowledgeRequest,
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    db: DBSession,
):
    try:
        entry, result = await service.create_entry(
            current_user.id,
            title=request.title,
            content=request.content,
            knowledge_type=request.knowledge_type,
            metadata=request.metadata,
        )
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return KnowledgeActionResponse(
        entry=KnowledgeEntryResponse.model_validate(entry),
        local=result.local,
        message=result.message,
    )


@router.get("/{entry_id}", response_model=KnowledgeEntryResponse, summary="Get a knowledge entry")
async def get_entry(entry_id: int, current_user: CurrentUser, service: KnowledgeServiceDep):
    try:
        entry = service.get_entry(current_user.id, entry_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return KnowledgeEntryResponse.model_validate(entry)


@router.patch("/{entry_id}", response_model=KnowledgeEntryResponse, summary="Update an entry")
async def update_entry(
    entry_id: int,
    request: UpdateKnowledgeRequest,
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    db: DBSession,
):
    try:
        entry = await service.update_entry(current_user.id, entry_id, request.to_updates())
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return KnowledgeEntryResponse.model_validate(entry)


@router.delete("/{entry_id}", response_model=KnowledgeEntryResponse, summary="Delete an entry")
async def delete_entry(
    entry_id: int,
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    db: DBSession,
):
    try:
        entry = await service.delete_entry(current_user.id, entry_id)
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return KnowledgeEntryResponse.model_validate(entry)


@router.post(
    "/{entry_id}/restore",
    response_model=KnowledgeEntryResponse,
    summary="Restore a deleted entry",
)
async def restore_entry(
    entry_id: int,
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    db: DBSession,
):
    try:
        entry = await service.restore_entry(current_user.id, entry_id)
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return KnowledgeEntryResponse.model_validate(entry)


@router.post(
    "/{entry_id}/approve",
    response_model=KnowledgeEntryResponse,
    summary="Approve an entry",
)
async def approve_entry(
    entry_id: int,
    current_user: CurrentUser,
    service: KnowledgeServiceDep,
    db: DBSession,
):
    try:
        entry = await service.approve_entry(current_user.id, entry_id)
    except SERVICE_ERRORS as e:
        raise gateway_error_to_http(db, e)
    db.commit()
    return KnowledgeEntryResponse.model_validate(entry)
