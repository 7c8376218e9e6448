"""Gateway to the knowledge and ICP automation workflows.

Every knowledge or ICP action is posted to an action endpoint as
``{action, userId, teamId, data}`` and recorded in ``webhook_events``.

Availability of an endpoint is probed once per process with an OPTIONS
request. When the endpoint is not configured, unreachable, or answers
400/406, the gateway falls back to local handling: the row writes the
dashboard already performs count as success for the basic entry actions,
and anything else fails with "feature not configured".

Usage:
    gateway = AutomationGateway(db, client, endpoint="n8n-knowledge-action",
                                source="knowledge_base", local_fallback=True)
    result = await gateway.dispatch("add_entry", user_id, {"title": "..."})
    if not result.success:
        ...
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from coldai_core.domain.models import WebhookEvent
from coldai_core.domain.timestamps import as_utc, to_naive_utc, utcnow
from coldai_core.infrastructure.edge_functions import (
    EdgeFunctionClient,
    EdgeFunctionError,
    EdgeFunctionResponseError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class GatewayError(Exception):
    """Base exception for automation gateway operations."""
    pass


class AutomationActionError(GatewayError):
    """Raised by services when the automation rejected an action."""

    def __init__(self, message: str, result: Optional["GatewayResult"] = None):
        super().__init__(message)
        self.result = result


class FeatureNotConfiguredError(AutomationActionError):
    """Raised when an action needs an automation that is not configured."""
    pass


class EntityNotFoundError(GatewayError):
    """Raised when a knowledge entry or ICP does not exist for the user."""
    pass


class RestoreNotAllowedError(GatewayError):
    """Raised when an entity is not deleted or its restore window has passed."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================


LOCAL_ACTIONS = frozenset({
    "add_entry",
    "update_entry",
    "delete_entry",
    "restore_entry",
    "approve_entry",
})

# Statuses meaning the endpoint exists but is not wired to a workflow
FALLBACK_STATUS_CODES = frozenset({400, 406})

GENERIC_ERROR = "Something went wrong. Please try again."
NOT_CONFIGURED_MESSAGE = "This feature requires the automation integration to be configured"

# endpoint -> available; filled by the first probe in this process
_availability: dict[str, bool] = {}


def reset_availability_cache() -> None:
    _availability.clear()


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class GatewayResult:
    """Outcome of one dispatch."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    message: Optional[str] = None
    local: bool = False

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "GatewayResult":
        data = body.get("data")
        return cls(
            success=bool(body.get("success")),
            data=data if isinstance(data, dict) else {},
            error=body.get("error"),
            message=body.get("message"),
        )

    @property
    def user_message(self) -> str:
        return self.message or self.error or GENERIC_ERROR


# =============================================================================
# GATEWAY
# =============================================================================


class AutomationGateway:
    """Dispatches actions to one automation endpoint."""

    def __init__(
        self,
        db: Session,
        client: Optional[EdgeFunctionClient],
        endpoint: str,
        source: str,
        local_fallback: bool = False,
    ):
        """Initialize the gateway.

        Args:
            db: Session the webhook events are written to. The caller commits.
            client: Edge function client, or None when not configured.
            endpoint: Action endpoint name.
            source: Source recorded on webhook events.
            local_fallback: Whether basic entry actions may complete locally.
        """
        self.db = db
        self.client = client
        self.endpoint = endpoint
        self.source = source
        self.local_fallback = local_fallback

    async def is_available(self) -> bool:
        if self.client is None:
            return False
        if self.endpoint not in _availability:
            available = await self.client.probe(self.endpoint)
            if not available:
                logger.warning(f"Automation endpoint {self.endpoint} unavailable, using fallback")
            _availability[self.endpoint] = available
        return _availability[self.endpoint]

    async def dispatch(
        self,
        action: str,
        user_id: str,
        data: dict[str, Any],
        team_id: Optional[str] = None,
    ) -> GatewayResult:
        """Post an action and return its result. Never raises for remote failures."""
        payload = {
            "action": action,
            "userId": user_id,
            "teamId": team_id,
            "data": {**data, "timestamp": utcnow().isoformat()},
        }
        self._track(action, payload)

        if not await self.is_available():
            return self._handle_locally(payload)

        try:
            body = await self.client.invoke(self.endpoint, payload)
        except EdgeFunctionResponseError as e:
            if e.status_code in FALLBACK_STATUS_CODES:
                logger.warning(f"{self.endpoint} returned {e.status_code}, using fallback")
                return self._handle_locally(payload)
            self._track(f"{action}_error", payload, error=str(e))
            if isinstance(e.body, dict) and "success" in e.body:
                return GatewayResult.from_body(e.body)
            return GatewayResult(success=False, error=str(e))
        except EdgeFunctionError as e:
            logger.error(f"{self.endpoint} {action} failed: {e}")
            self._track(f"{action}_error", payload, error=str(e))
            return GatewayResult(success=False, error=str(e))

        self._track(f"{action}_success", {"request": payload, "response": body})
        return GatewayResult.from_body(body)

    def _handle_locally(self, payload: dict[str, Any]) -> GatewayResult:
        action = payload["action"]
        if self.local_fallback and action in LOCAL_ACTIONS:
            self._track(f"{action}_local", payload)
            return GatewayResult(
                success=True,
                data={**payload["data"], "local": True},
                message=f"{action} completed locally",
                local=True,
            )
        error = f"Action {action} not supported without the automation integration"
        self._track(f"{action}_local", payload, error=error)
        return GatewayResult(success=False, error=error, message=NOT_CONFIGURED_MESSAGE, local=True)

    def _track(self, event_type: str, payload: dict[str, Any], error: Optional[str] = None) -> None:
        self.db.add(
            WebhookEvent(
                event_type=event_type,
                source=self.source,
                payload=payload,
                processed=error is None,
                error_message=error,
                retry_count=0,
            )
        )


def raise_for_result(result: GatewayResult) -> GatewayResult:
    """Turn an unsuccessful result into an exception for service callers."""
    if result.success:
        return result
    if result.local:
        raise FeatureNotConfiguredError(result.user_message, result)
    raise AutomationActionError(result.user_message, result)


# =============================================================================
# RESTORE WINDOW
# =============================================================================


def soft_delete(entity: Any, grace_days: int, now: Optional[datetime] = None) -> None:
    """Stamp ``deleted_at`` and the restore deadline."""
    now = now or utcnow()
    entity.deleted_at = to_naive_utc(now)
    entity.can_restore_until = to_naive_utc(now + timedelta(days=grace_days))


def check_restorable(entity: Any, now: Optional[datetime] = None) -> None:
    if entity.deleted_at is None:
        raise RestoreNotAllowedError("This entry is not deleted and cannot be restored")
    deadline = as_utc(entity.can_restore_until)
    if deadline is not None and deadline < (now or utcnow()):
        raise RestoreNotAllowedError("The restoration period for this entry has expired")


def clear_soft_delete(entity: Any) -> None:
    entity.deleted_at = None
    entity.can_restore_until = None


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def get_knowledge_gateway(db: Session, client: Optional[EdgeFunctionClient]) -> AutomationGateway:
    from coldai_core.config import get_settings

    return AutomationGateway(
        db,
        client,
        endpoint=get_settings().knowledge_action_path,
        source="knowledge_base",
        local_fallback=True,
    )


def get_icp_gateway(db: Session, client: Optional[EdgeFunctionClient]) -> AutomationGateway:
    from coldai_core.config import get_settings

    return AutomationGateway(
        db,
        client,
        endpoint=get_settings().icp_action_path,
        source="icp",
        local_fallback=False,
    )


__all__ = [
    "AutomationActionError",
    "AutomationGateway",
    "EntityNotFoundError",
    "FeatureNotConfiguredError",
    "GatewayError",
    "GatewayResult",
    "RestoreNotAllowedError",
    "check_restorable",
    "clear_soft_delete",
    "get_icp_gateway",
    "get_knowledge_gateway",
    "raise_for_result",
    "reset_availability_cache",
    "soft_delete",
]
