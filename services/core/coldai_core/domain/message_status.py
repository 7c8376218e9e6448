"""Message status model.

The automation layer moves every message generation log through a closed
set of statuses:

    analysing_prospect -> researching_product -> analysing_icp
      -> generating_message -> generated -> pending_scheduled -> scheduled
      -> sent -> reply_received -> reply_sent
    (any state) -> archived
    (any state) -> failed

The dashboard never enforces these transitions (the backend owns the
column), but it classifies every status into exactly one group and audits
observed transitions against the table below. Values outside the known set
are parsed into ``MessageStatus.UNKNOWN`` rather than silently dropped.

Usage:
    status = MessageStatus.parse(row.message_status)
    if classify(status) is StatusGroup.ACTIONABLE:
        ...
    if not is_legal_transition(old, new):
        logger.warning(...)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MessageStatus(str, Enum):
    """Status of one message generation log."""

    ANALYSING_PROSPECT = "analysing_prospect"
    RESEARCHING_PRODUCT = "researching_product"
    ANALYSING_ICP = "analysing_icp"
    GENERATING_MESSAGE = "generating_message"
    GENERATED = "generated"
    PENDING_SCHEDULED = "pending_scheduled"
    SCHEDULED = "scheduled"
    SENT = "sent"
    REPLY_RECEIVED = "reply_received"
    REPLY_SENT = "reply_sent"
    ARCHIVED = "archived"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MessageStatus":
        """Parse a raw status value, mapping anything unrecognised to UNKNOWN."""
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


KNOWN_STATUSES: tuple[MessageStatus, ...] = tuple(
    s for s in MessageStatus if s is not MessageStatus.UNKNOWN
)


class StatusGroup(str, Enum):
    """Mutually exclusive groups that drive every dashboard derivation."""

    GENERATING = "generating"
    ACTIONABLE = "actionable"
    PIPELINE = "pipeline"
    TERMINAL_SUCCESS = "terminal_success"
    TERMINAL_OTHER = "terminal_other"
    UNKNOWN = "unknown"


GENERATING_STATUSES = frozenset({
    MessageStatus.ANALYSING_PROSPECT,
    MessageStatus.RESEARCHING_PRODUCT,
    MessageStatus.ANALYSING_ICP,
    MessageStatus.GENERATING_MESSAGE,
})
ACTIONABLE_STATUSES = frozenset({MessageStatus.GENERATED})
PIPELINE_STATUSES = frozenset({
    MessageStatus.PENDING_SCHEDULED,
    MessageStatus.SCHEDULED,
})
TERMINAL_SUCCESS_STATUSES = frozenset({
    MessageStatus.SENT,
    MessageStatus.REPLY_RECEIVED,
    MessageStatus.REPLY_SENT,
})
TERMINAL_OTHER_STATUSES = frozenset({
    MessageStatus.ARCHIVED,
    MessageStatus.FAILED,
})

# A prospect with any of these statuses has an active pipeline; its archived
# attempts are superseded and never chosen as representative.
ACTIVE_PIPELINE_STATUSES = PIPELINE_STATUSES | TERMINAL_SUCCESS_STATUSES

# Statuses that count as "was contacted or queued for contact".
CONTACTED_STATUSES = frozenset({
    MessageStatus.PENDING_SCHEDULED,
    MessageStatus.SCHEDULED,
    MessageStatus.SENT,
})

REPLIED_STATUSES = frozenset({
    MessageStatus.REPLY_RECEIVED,
    MessageStatus.REPLY_SENT,
})

_GROUPS: tuple[tuple[frozenset, StatusGroup], ...] = (
    (GENERATING_STATUSES, StatusGroup.GENERATING),
    (ACTIONABLE_STATUSES, StatusGroup.ACTIONABLE),
    (PIPELINE_STATUSES, StatusGroup.PIPELINE),
    (TERMINAL_SUCCESS_STATUSES, StatusGroup.TERMINAL_SUCCESS),
    (TERMINAL_OTHER_STATUSES, StatusGroup.TERMINAL_OTHER),
)


def classify(status: MessageStatus | str | None) -> StatusGroup:
    """Return the single group a status belongs to."""
    if not isinstance(status, MessageStatus):
        status = MessageStatus.parse(status)
    for members, group in _GROUPS:
        if status in members:
            return group
    return StatusGroup.UNKNOWN


# =============================================================================
# TRANSITIONS
# =============================================================================


_FORWARD: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.ANALYSING_PROSPECT: frozenset({MessageStatus.RESEARCHING_PRODUCT}),
    MessageStatus.RESEARCHING_PRODUCT: frozenset({MessageStatus.ANALYSING_ICP}),
    MessageStatus.ANALYSING_ICP: frozenset({MessageStatus.GENERATING_MESSAGE}),
    MessageStatus.GENERATING_MESSAGE: frozenset({MessageStatus.GENERATED}),
    MessageStatus.GENERATED: frozenset({
        MessageStatus.PENDING_SCHEDULED,
        # direct send skips the scheduling queue
        MessageStatus.SENT,
    }),
    MessageStatus.PENDING_SCHEDULED: frozenset({MessageStatus.SCHEDULED}),
    MessageStatus.SCHEDULED: frozenset({MessageStatus.SENT}),
    MessageStatus.SENT: frozenset({MessageStatus.REPLY_RECEIVED}),
    MessageStatus.REPLY_RECEIVED: frozenset({MessageStatus.REPLY_SENT}),
    MessageStatus.REPLY_SENT: frozenset({MessageStatus.REPLY_RECEIVED}),
    MessageStatus.ARCHIVED: frozenset(),
    # regenerate restarts the workflow
    MessageStatus.FAILED: frozenset({MessageStatus.ANALYSING_PROSPECT}),
}

TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    status: targets | TERMINAL_OTHER_STATUSES
    for status, targets in _FORWARD.items()
}


def is_legal_transition(
    old: MessageStatus | str | None,
    new: MessageStatus | str | None,
) -> bool:
    """Check an observed status change against the transition table.

    Staying in the same status is legal. Any transition into or out of
    UNKNOWN is illegal, since it cannot be checked.
    """
    old_status = old if isinstance(old, MessageStatus) else MessageStatus.parse(old)
    new_status = new if isinstance(new, MessageStatus) else MessageStatus.parse(new)

    if MessageStatus.UNKNOWN in (old_status, new_status):
        return False
    if old_status is new_status:
        return True
    return new_status in TRANSITIONS[old_status]


# =============================================================================
# PREDICATES
# =============================================================================


def is_generating(status: MessageStatus | str | None) -> bool:
    return classify(status) is StatusGroup.GENERATING


def is_actionable(status: MessageStatus | str | None) -> bool:
    return classify(status) is StatusGroup.ACTIONABLE


def in_pipeline(status: MessageStatus | str | None) -> bool:
    return classify(status) is StatusGroup.PIPELINE


def can_send(status: MessageStatus | str | None) -> bool:
    """Only a generated message can be sent or scheduled."""
    return is_actionable(status)


can_schedule = can_send


def is_polling_eligible(status: MessageStatus | str | None) -> bool:
    """Prospects still being worked on by the automation keep polling alive."""
    return is_generating(status)


# =============================================================================
# PRESENTATION
# =============================================================================


@dataclass(frozen=True)
class StatusBadge:
    """Label and colour token shown for a status."""

    label: str
    color: str


_GENERATING_BADGE = StatusBadge(label="Generating", color="purple")

_BADGES: dict[MessageStatus, StatusBadge] = {
    MessageStatus.GENERATED: StatusBadge(label="Generated", color="blue"),
    MessageStatus.PENDING_SCHEDULED: StatusBadge(label="Pending", color="gray"),
    MessageStatus.SCHEDULED: StatusBadge(label="Scheduled", color="orange"),
    MessageStatus.SENT: StatusBadge(label="Sent", color="green"),
    MessageStatus.REPLY_RECEIVED: StatusBadge(label="Reply Received", color="yellow"),
    MessageStatus.REPLY_SENT: StatusBadge(label="Reply Sent", color="green"),
    MessageStatus.ARCHIVED: StatusBadge(label="Archived", color="gray"),
    MessageStatus.FAILED: StatusBadge(label="Failed", color="red"),
}


def badge_for(raw_status: Optional[str]) -> StatusBadge:
    """Badge for a raw status value; unknown values show their raw text."""
    status = MessageStatus.parse(raw_status)
    if status in GENERATING_STATUSES:
        return _GENERATING_BADGE
    if status is MessageStatus.UNKNOWN:
        return StatusBadge(label=raw_status or "Unknown", color="gray")
    return _BADGES[status]


__all__ = [
    "ACTIVE_PIPELINE_STATUSES",
    "CONTACTED_STATUSES",
    "GENERATING_STATUSES",
    "KNOWN_STATUSES",
    "MessageStatus",
    "REPLIED_STATUSES",
    "StatusBadge",
    "StatusGroup",
    "TRANSITIONS",
    "badge_for",
    "can_schedule",
    "can_send",
    "classify",
    "in_pipeline",
    "is_actionable",
    "is_generating",
    "is_legal_transition",
    "is_polling_eligible",
]
