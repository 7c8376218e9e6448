"""Prospect rules: saved view predicates for the prospect list.

Rules are evaluated per prospect, independently of the status chips. There
are two mutually exclusive modes:

1. One quick preset (hot leads, active outreach, ready to schedule, cold
   leads, clean view). An active preset fully overrides every granular field.
2. The granular rule set: time windows, status toggles, message count
   thresholds and "action required" toggles, all of which must hold.

Enabling a preset clears the granular fields; setting a granular field
clears the preset. The active rule set is persisted per installation (not
per user) in a versioned JSON document.

Usage:
    store = RulesStore(path, installation_id="default")
    rules = store.load().with_preset("hot_leads")
    store.save(rules)
    visible = [p for p in prospects if rules.matches(p, now)]
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from coldai_core.domain.message_status import (
    ACTIVE_PIPELINE_STATUSES,
    MessageStatus,
    REPLIED_STATUSES,
)

if TYPE_CHECKING:
    from coldai_core.domain.services.prospects import Prospect

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


PRESETS = ("hot_leads", "active_outreach", "ready_to_schedule", "cold_leads", "clean_view")

DAY_FIELDS = ("activity_days", "added_days", "hide_inactive_days")
COUNT_FIELDS = ("min_messages", "max_messages", "hide_failed_threshold")
TOGGLE_FIELDS = (
    "hide_all_archived",
    "only_awaiting_reply",
    "only_replied",
    "hide_replied",
    "only_generated",
    "only_pending_scheduled",
    "only_failed",
)
GRANULAR_FIELDS = DAY_FIELDS + COUNT_FIELDS + TOGGLE_FIELDS

PRESET_WINDOW = timedelta(days=14)

RULES_SCHEMA_VERSION = 2


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InvalidRuleError(ValueError):
    """Raised when an unknown rule or preset name, or a bad value, is given."""
    pass


# =============================================================================
# RULES
# =============================================================================


@dataclass(frozen=True)
class ProspectRules:
    """Active rule set for the prospect list."""

    # Time windows (days); None means no filter
    activity_days: Optional[int] = None
    added_days: Optional[int] = None
    hide_inactive_days: Optional[int] = None

    # Status toggles
    hide_all_archived: bool = False
    only_awaiting_reply: bool = False
    only_replied: bool = False
    hide_replied: bool = False

    # Message count thresholds
    min_messages: Optional[int] = None
    max_messages: Optional[int] = None
    hide_failed_threshold: Optional[int] = None

    # Action required
    only_generated: bool = False
    only_pending_scheduled: bool = False
    only_failed: bool = False

    # Quick presets
    hot_leads: bool = False
    active_outreach: bool = False
    ready_to_schedule: bool = False
    cold_leads: bool = False
    clean_view: bool = False

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    @property
    def active_preset(self) -> Optional[str]:
        for name in PRESETS:
            if getattr(self, name):
                return name
        return None

    def with_preset(self, name: str) -> "ProspectRules":
        """Activate a preset, clearing the granular fields and other presets."""
        if name not in PRESETS:
            raise InvalidRuleError(f"Unknown preset: {name}")
        return ProspectRules(**{name: True})

    def toggle_preset(self, name: str) -> "ProspectRules":
        """Activate a preset, or clear everything if it is already active."""
        if name not in PRESETS:
            raise InvalidRuleError(f"Unknown preset: {name}")
        if getattr(self, name):
            return ProspectRules()
        return self.with_preset(name)

    def with_field(self, name: str, value: Any) -> "ProspectRules":
        """Set one granular field; any active preset is switched off."""
        if name not in GRANULAR_FIELDS:
            raise InvalidRuleError(f"Unknown rule: {name}")
        value = _coerce(name, value)
        cleared = {preset: False for preset in PRESETS}
        return replace(self, **cleared, **{name: value})

    def active_count(self) -> int:
        """Number of rules currently narrowing the list."""
        count = 0
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and value is not False:
                count += 1
        return count

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def matches(self, prospect: "Prospect", now: datetime) -> bool:
        """Evaluate the rule set for one prospect."""
        preset = self.active_preset
        if preset is not None:
            return _PRESET_PREDICATES[preset](prospect, now)
        return self._matches_granular(prospect, now)

    def _matches_granular(self, prospect: "Prospect", now: datetime) -> bool:
        status = prospect.status

        # All three windows look at when the representative row was created
        for days in (self.activity_days, self.added_days, self.hide_inactive_days):
            if days is not None and prospect.created_at < now - timedelta(days=days):
                return False

        if self.hide_all_archived and status is MessageStatus.ARCHIVED:
            return False
        if self.only_awaiting_reply and status is not MessageStatus.SENT:
            return False
        if self.only_replied and status not in REPLIED_STATUSES:
            return False
        if self.hide_replied and status in REPLIED_STATUSES:
            return False

        if self.min_messages is not None and prospect.message_count < self.min_messages:
            return False
        if self.max_messages is not None and prospect.message_count > self.max_messages:
            return False
        if self.hide_failed_threshold is not None:
            failed = sum(1 for s in prospect.all_statuses if s == MessageStatus.FAILED.value)
            if failed >= self.hide_failed_threshold:
                return False

        if self.only_generated and status is not MessageStatus.GENERATED:
            return False
        if self.only_pending_scheduled and status is not MessageStatus.PENDING_SCHEDULED:
            return False
        if self.only_failed and status is not MessageStatus.FAILED:
            return False

        return True

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProspectRules":
        """Build rules from a stored document, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: _coerce(k, v) for k, v in data.items() if k in known}
        rules = cls(**values)
        # A stored document with both a preset and granular fields keeps the preset
        preset = rules.active_preset
        if preset is not None:
            return cls(**{preset: True})
        return rules


def _coerce(name: str, value: Any) -> Any:
    if name in DAY_FIELDS or name in COUNT_FIELDS:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise InvalidRuleError(f"{name} must be a number of days or messages")
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidRuleError(f"{name} must be a number: {value!r}") from e
        if number < 0:
            raise InvalidRuleError(f"{name} must not be negative")
        return number
    if not isinstance(value, bool):
        raise InvalidRuleError(f"{name} must be true or false")
    return value


# =============================================================================
# PRESET PREDICATES
# =============================================================================


def _hot_leads(prospect: "Prospect", now: datetime) -> bool:
    # Replied recently; measured on createdAt of the representative row
    return (
        prospect.status in REPLIED_STATUSES
        and prospect.created_at > now - PRESET_WINDOW
    )


def _active_outreach(prospect: "Prospect", now: datetime) -> bool:
    return prospect.status in (MessageStatus.SCHEDULED, MessageStatus.SENT)


def _ready_to_schedule(prospect: "Prospect", now: datetime) -> bool:
    if prospect.status is MessageStatus.GENERATED:
        return True
    if prospect.status is MessageStatus.ARCHIVED:
        return not any(
            MessageStatus.parse(s) in ACTIVE_PIPELINE_STATUSES
            for s in prospect.all_statuses
        )
    return False


def _cold_leads(prospect: "Prospect", now: datetime) -> bool:
    # Sent without reply for 14+ days; measured on updatedAt (time of sending)
    return (
        prospect.status is MessageStatus.SENT
        and prospect.updated_at < now - PRESET_WINDOW
    )


def _clean_view(prospect: "Prospect", now: datetime) -> bool:
    return prospect.status not in (MessageStatus.ARCHIVED, MessageStatus.FAILED)


_PRESET_PREDICATES = {
    "hot_leads": _hot_leads,
    "active_outreach": _active_outreach,
    "ready_to_schedule": _ready_to_schedule,
    "cold_leads": _cold_leads,
    "clean_view": _clean_view,
}


# =============================================================================
# PERSISTENCE
# =============================================================================


def _camel_to_snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def migrate_document(document: dict[str, Any], installation_id: str) -> dict[str, Any]:
    """Bring a stored rules document up to the current schema version.

    Version 1 is the unversioned camelCase object written by the browser
    dashboard (e.g. ``{"hotLeads": true, "minMessages": 2}``). Version 2
    wraps snake_case rule sets in a per-installation map.
    """
    version = document.get("version", 1)

    if version == 1:
        rules = {_camel_to_snake(k): v for k, v in document.items() if k != "version"}
        document = {
            "version": 2,
            "installations": {installation_id: rules},
        }
        version = 2

    if version != RULES_SCHEMA_VERSION:
        raise InvalidRuleError(f"Unsupported rules document version: {version}")

    return document


class RulesStore:
    """Versioned JSON file holding the active rule set per installation."""

    def __init__(self, path: str | Path, installation_id: str = "default"):
        self.path = Path(path)
        self.installation_id = installation_id

    def _read_document(self) -> Optional[dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unreadable rules document at {self.path}")
            return None

        if not isinstance(document, dict):
            logger.warning(f"Ignoring malformed rules document at {self.path}")
            return None

        try:
            return migrate_document(document, self.installation_id)
        except InvalidRuleError as e:
            logger.warning(f"Ignoring rules document at {self.path}: {e}")
            return None

    def load(self) -> ProspectRules:
        """Load the installation's rules, falling back to defaults."""
        document = self._read_document()
        if document is None:
            return ProspectRules()

        stored = document.get("installations", {}).get(self.installation_id)
        if not isinstance(stored, dict):
            return ProspectRules()

        try:
            return ProspectRules.from_dict(stored)
        except InvalidRuleError as e:
            logger.warning(f"Stored rules for {self.installation_id} are invalid: {e}")
            return ProspectRules()

    def save(self, rules: ProspectRules) -> None:
        """Persist rules for this installation, keeping other installations."""
        document = self._read_document() or {
            "version": RULES_SCHEMA_VERSION,
            "installations": {},
        }
        document["installations"][self.installation_id] = rules.to_dict()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def reset(self) -> ProspectRules:
        rules = ProspectRules()
        self.save(rules)
        return rules


__all__ = [
    "GRANULAR_FIELDS",
    "InvalidRuleError",
    "PRESETS",
    "ProspectRules",
    "RULES_SCHEMA_VERSION",
    "RulesStore",
    "migrate_document",
]
