"""API schemas."""

from coldai_core.api.schemas.account import (
    DeletionHistoryResponse,
    DeletionScheduledResponse,
    UsageResponse,
    UserInfo,
)
from coldai_core.api.schemas.prospects import (
    DashboardSummaryResponse,
    ListProspectsResponse,
    ProspectResponse,
    RulesResponse,
)
from coldai_core.api.schemas.widgets import WidgetsResponse

__all__ = [
    # Account schemas
    "DeletionHistoryResponse",
    "DeletionScheduledResponse",
    "UsageResponse",
    "UserInfo",
    # Prospect schemas
    "DashboardSummaryResponse",
    "ListProspectsResponse",
    "ProspectResponse",
    "RulesResponse",
    # Widget schemas
    "WidgetsResponse",
]
