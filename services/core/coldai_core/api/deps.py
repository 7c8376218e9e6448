"""API dependencies for dependency injection."""

from functools import lru_cache
from typing import Annotated, AsyncIterator, Optional

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy.orm import Session, sessionmaker

from coldai_core.config import Settings, get_settings
from coldai_core.domain.models import DashboardUser
from coldai_core.domain.services.account_deletion import AccountDeletionService
from coldai_core.domain.services.auth import AuthService
from coldai_core.domain.services.automation_gateway import (
    get_icp_gateway,
    get_knowledge_gateway,
)
from coldai_core.domain.services.icps import IcpService
from coldai_core.domain.services.knowledge import KnowledgeService
from coldai_core.domain.services.linkedin_account import LinkedInAccountService
from coldai_core.domain.services.outreach_actions import (
    OutreachActionService,
    get_in_flight_guard,
)
from coldai_core.domain.services.prospect_rules import RulesStore
from coldai_core.domain.services.prospects import ProspectService
from coldai_core.domain.services.usage import UsageService, get_free_tier_limits
from coldai_core.domain.services.widget_status import GeneratingFlagStore, WidgetStatusService
from coldai_core.infra.db import get_sync_session_factory
from coldai_core.infrastructure.edge_functions import (
    EdgeFunctionClient,
    EdgeFunctionNotConfiguredError,
    get_edge_function_client,
)
from coldai_core.infrastructure.realtime import ChangeBus
from coldai_core.infrastructure.tasks import TaskQueue, get_task_queue


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_auth_service(db: Annotated[Session, Depends(get_db)]) -> AuthService:
    """Get the authentication service."""
    return AuthService(db)


def get_session_id(session: Annotated[Optional[str], Cookie()] = None) -> Optional[str]:
    """Get the session ID from cookie."""
    return session


def get_current_user_optional(
    session_id: Annotated[Optional[str], Depends(get_session_id)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> Optional[DashboardUser]:
    """Get the current user if authenticated, None otherwise."""
    if not session_id:
        return None
    return auth_service.validate_session(session_id)


def get_current_user(
    user: Annotated[Optional[DashboardUser], Depends(get_current_user_optional)],
) -> DashboardUser:
    """Get the current authenticated user.

    Raises:
        HTTPException: If user is not authenticated.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Cookie"},
        )
    return user


# =============================================================================
# INFRASTRUCTURE
# =============================================================================


async def get_edge_client_optional() -> AsyncIterator[Optional[EdgeFunctionClient]]:
    """Edge function client for this request, or None when not configured."""
    try:
        client = get_edge_function_client()
    except EdgeFunctionNotConfiguredError:
        yield None
        return
    try:
        yield client
    finally:
        await client.close()


def get_edge_client(
    client: Annotated[Optional[EdgeFunctionClient], Depends(get_edge_client_optional)],
) -> EdgeFunctionClient:
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend functions are not configured",
        )
    return client


@lru_cache
def get_async_redis():
    import redis.asyncio as aioredis

    return aioredis.from_url(get_settings().redis_url)


def get_flag_store(settings: Annotated[Settings, Depends(get_settings)]) -> GeneratingFlagStore:
    return GeneratingFlagStore(get_async_redis(), ttl_seconds=settings.generating_flag_ttl_seconds)


def get_change_bus() -> ChangeBus:
    return ChangeBus(get_async_redis())


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for work that outlives the request, such as streams."""
    return get_sync_session_factory()


def get_tasks() -> TaskQueue:
    return get_task_queue()


def get_rules_store(settings: Annotated[Settings, Depends(get_settings)]) -> RulesStore:
    return RulesStore(settings.prospect_rules_path, settings.installation_id)


# =============================================================================
# SERVICES
# =============================================================================


def get_usage_service(db: Annotated[Session, Depends(get_db)]) -> UsageService:
    return UsageService(db, limits=get_free_tier_limits())


def get_prospect_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProspectService:
    return ProspectService(db, page_size=settings.prospects_page_size)


def get_outreach_service(
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[Optional[EdgeFunctionClient], Depends(get_edge_client_optional)],
    tasks: Annotated[TaskQueue, Depends(get_tasks)],
    usage: Annotated[UsageService, Depends(get_usage_service)],
) -> OutreachActionService:
    return OutreachActionService(
        db,
        edge_client=client,
        tasks=tasks,
        guard=get_in_flight_guard(),
        usage=usage,
    )


def get_widget_service(db: Annotated[Session, Depends(get_db)]) -> WidgetStatusService:
    return WidgetStatusService(db)


def get_knowledge_service(
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[Optional[EdgeFunctionClient], Depends(get_edge_client_optional)],
    usage: Annotated[UsageService, Depends(get_usage_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> KnowledgeService:
    return KnowledgeService(
        db,
        get_knowledge_gateway(db, client),
        usage=usage,
        restore_grace_days=settings.restore_grace_days,
    )


def get_icp_service(
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[Optional[EdgeFunctionClient], Depends(get_edge_client_optional)],
    usage: Annotated[UsageService, Depends(get_usage_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IcpService:
    return IcpService(
        db,
        get_icp_gateway(db, client),
        usage=usage,
        restore_grace_days=settings.restore_grace_days,
    )


def get_linkedin_service(
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[Optional[EdgeFunctionClient], Depends(get_edge_client_optional)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LinkedInAccountService:
    return LinkedInAccountService(
        db,
        client,
        web_base_url=settings.web_base_url,
        notify_url=settings.linkedin_notify_url,
        expiry_minutes=settings.linkedin_auth_expiry_minutes,
    )


def get_account_deletion_service(
    client: Annotated[EdgeFunctionClient, Depends(get_edge_client)],
) -> AccountDeletionService:
    return AccountDeletionService(client)


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[DashboardUser, Depends(get_current_user)]
CurrentUserOptional = Annotated[Optional[DashboardUser], Depends(get_current_user_optional)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
SessionId = Annotated[Optional[str], Depends(get_session_id)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
FlagStoreDep = Annotated[GeneratingFlagStore, Depends(get_flag_store)]
ChangeBusDep = Annotated[ChangeBus, Depends(get_change_bus)]
SessionFactoryDep = Annotated[sessionmaker[Session], Depends(get_session_factory)]
RulesStoreDep = Annotated[RulesStore, Depends(get_rules_store)]
UsageServiceDep = Annotated[UsageService, Depends(get_usage_service)]
ProspectServiceDep = Annotated[ProspectService, Depends(get_prospect_service)]
OutreachServiceDep = Annotated[OutreachActionService, Depends(get_outreach_service)]
WidgetServiceDep = Annotated[WidgetStatusService, Depends(get_widget_service)]
KnowledgeServiceDep = Annotated[KnowledgeService, Depends(get_knowledge_service)]
IcpServiceDep = Annotated[IcpService, Depends(get_icp_service)]
LinkedInServiceDep = Annotated[LinkedInAccountService, Depends(get_linkedin_service)]
AccountDeletionServiceDep = Annotated[
    AccountDeletionService, Depends(get_account_deletion_service)
]
