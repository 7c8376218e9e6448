"""Domain services for the Cold AI dashboard."""

from coldai_core.domain.services.auth import AuthService
from coldai_core.domain.services.outreach_actions import OutreachActionService
from coldai_core.domain.services.prospects import ProspectService
from coldai_core.domain.services.usage import UsageService
from coldai_core.domain.services.widget_status import WidgetStatusService

__all__ = [
    "AuthService",
    "OutreachActionService",
    "ProspectService",
    "UsageService",
    "WidgetStatusService",
]
