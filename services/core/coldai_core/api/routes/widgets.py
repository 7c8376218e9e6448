"""Dashboard widget API routes.

Provides endpoints for:
- GET /widgets - Derived state of the ICP, knowledge, settings and LinkedIn widgets
- POST /widgets/{widget}/generating - Set the optimistic generating flag
- DELETE /widgets/{widget}/generating - Clear the generating flag
"""

from fastapi import APIRouter, status

from coldai_core.api.deps import CurrentUser, FlagStoreDep, WidgetServiceDep
from coldai_core.api.schemas.widgets import (
    GeneratingFlagResponse,
    SettingsWidgetResponse,
    StartGeneratingRequest,
    WidgetsResponse,
    WidgetViewResponse,
)
from coldai_core.domain.services.widget_status import Widget, WidgetView, resolve_widget
from coldai_core.domain.timestamps import utcnow

router = APIRouter(prefix="/widgets", tags=["widgets"])


def view_response(view: WidgetView) -> WidgetViewResponse:
    return WidgetViewResponse(
        state=view.state.value,
        progress=view.progress,
        optimistic=view.optimistic,
    )


@router.get("", response_model=WidgetsResponse, summary="Get widget states")
async def get_widgets(
    current_user: CurrentUser,
    service: WidgetServiceDep,
    flags: FlagStoreDep,
):
    now = utcnow()
    icp_flag = await flags.get(current_user.id, Widget.ICP, now=now)
    knowledge_flag = await flags.get(current_user.id, Widget.KNOWLEDGE, now=now)

    icp = resolve_widget(service.icp_state(current_user.id), icp_flag, now, flags.ttl_seconds)
    knowledge = resolve_widget(
        service.knowledge_state(current_user.id), knowledge_flag, now, flags.ttl_seconds
    )
    completeness = service.settings_completeness(current_user.id)

    return WidgetsResponse(
        icp=view_response(icp),
        knowledge=view_response(knowledge),
        settings=SettingsWidgetResponse(
            state=completeness.state.value,
            configured_count=completeness.configured_count,
            personal=completeness.personal,
            company=completeness.company,
            communication=completeness.communication,
        ),
        linkedin=service.linkedin_state(current_user.id).value,
    )


@router.post(
    "/{widget}/generating",
    response_model=GeneratingFlagResponse,
    summary="Mark a widget as generating",
)
async def start_generating(
    widget: Widget,
    request: StartGeneratingRequest,
    current_user: CurrentUser,
    flags: FlagStoreDep,
):
    flag = await flags.start(current_user.id, widget, request.title)
    return GeneratingFlagResponse(
        widget=flag.widget.value,
        title=flag.title,
        started_at=flag.started_at,
    )


@router.delete(
    "/{widget}/generating",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear a generating flag",
)
async def clear_generating(widget: Widget, current_user: CurrentUser, flags: FlagStoreDep):
    await flags.clear(current_user.id, widget)
