"""Task model for the hierarchy engine.

A :class:`Task` is the only entity: a node in a forest of templates and
project instances.  Records are plain dataclasses that serialize to the
persisted wire form with :meth:`Task.to_dict` and back with
:meth:`Task.from_dict`.  The engine treats them as values and derives new
records with :func:`dataclasses.replace` instead of mutating them.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from ..constants import DEFAULT_DURATION_DAYS
from .dates import now_timestamp


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskOrigin(str, Enum):
    """Whether a task belongs to a reusable blueprint or a live project."""

    TEMPLATE = "template"
    INSTANCE = "instance"


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def generate_id() -> str:
    """Short human-friendly task ID: ``task-<8hex>``."""
    return f"task-{uuid.uuid4().hex[:8]}"


def _as_int(raw: Any, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


# Fields the engine recomputes; everything else is opaque payload.
SCHEDULE_FIELDS = ("start_date", "due_date", "duration_days")
STRUCTURE_FIELDS = ("parent_task_id", "position")
PAYLOAD_FIELDS = ("title", "description", "purpose", "actions", "resources", "is_complete")


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A schedulable node in a template or project hierarchy."""

    # Identity
    id: str = field(default_factory=generate_id)
    parent_task_id: Optional[str] = None
    position: int = 0
    origin: TaskOrigin = TaskOrigin.INSTANCE

    # Payload (never touched by the scheduler)
    title: str = ""
    description: str = ""
    purpose: str = ""
    actions: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    is_complete: bool = False

    # Schedule
    default_duration: int = DEFAULT_DURATION_DAYS
    duration_days: int = DEFAULT_DURATION_DAYS
    start_date: Optional[str] = None
    due_date: Optional[str] = None

    # Ownership / provenance
    creator: Optional[str] = None
    white_label_id: Optional[str] = None
    license_id: Optional[str] = None
    created_at: str = field(default_factory=now_timestamp)
    last_modified: str = field(default_factory=now_timestamp)

    @property
    def is_root(self) -> bool:
        return self.parent_task_id is None

    @property
    def is_template(self) -> bool:
        return self.origin == TaskOrigin.TEMPLATE

    @classmethod
    def validate_dict(cls, data: dict[str, Any]) -> list[str]:
        """Lightweight validation of a task dict.

        Returns a list of error strings (empty = valid).  Only keys present in
        *data* are checked, apart from ``title`` which is always required.
        """
        errors: list[str] = []
        if not isinstance(data, dict):
            return ["Expected a dict"]
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append("'title' is required and must be non-empty")
        elif len(title) > 500:
            errors.append("'title' must be at most 500 characters")
        origin = data.get("origin")
        if origin is not None:
            valid_origins = {e.value for e in TaskOrigin}
            value = origin.value if isinstance(origin, TaskOrigin) else origin
            if value not in valid_origins:
                errors.append(f"'origin' must be one of {sorted(valid_origins)}, got '{origin}'")
        for int_field in ("default_duration", "duration_days"):
            val = data.get(int_field)
            if val is not None and (isinstance(val, bool) or not isinstance(val, int) or val < 1):
                errors.append(f"'{int_field}' must be an integer >= 1")
        position = data.get("position")
        if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
            errors.append("'position' must be an integer")
        for list_field in ("actions", "resources"):
            val = data.get(list_field)
            if val is not None:
                if not isinstance(val, list):
                    errors.append(f"'{list_field}' must be an array")
                elif not all(isinstance(item, str) for item in val):
                    errors.append(f"'{list_field}' must contain only strings")
        complete = data.get("is_complete")
        if complete is not None and not isinstance(complete, bool):
            errors.append("'is_complete' must be a boolean")
        return errors

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict for YAML/JSON persistence."""
        data: dict[str, Any] = {}
        for k, v in asdict(self).items():
            if isinstance(v, Enum):
                data[k] = v.value
            else:
                data[k] = v
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing enums and numbers gracefully."""
        d = dict(data)  # shallow copy

        raw_origin = d.pop("origin", None)
        try:
            origin = TaskOrigin(raw_origin.value if isinstance(raw_origin, TaskOrigin) else str(raw_origin))
        except (ValueError, KeyError):
            origin = TaskOrigin.INSTANCE

        return cls(
            id=str(d.pop("id", None) or generate_id()),
            parent_task_id=d.pop("parent_task_id", None),
            position=_as_int(d.pop("position", 0), 0),
            origin=origin,
            title=str(d.pop("title", "") or ""),
            description=str(d.pop("description", "") or ""),
            purpose=str(d.pop("purpose", "") or ""),
            actions=list(d.pop("actions", []) or []),
            resources=list(d.pop("resources", []) or []),
            is_complete=bool(d.pop("is_complete", False)),
            default_duration=_as_int(d.pop("default_duration", DEFAULT_DURATION_DAYS), DEFAULT_DURATION_DAYS),
            duration_days=_as_int(d.pop("duration_days", DEFAULT_DURATION_DAYS), DEFAULT_DURATION_DAYS),
            start_date=d.pop("start_date", None),
            due_date=d.pop("due_date", None),
            creator=d.pop("creator", None),
            white_label_id=d.pop("white_label_id", None),
            license_id=d.pop("license_id", None),
            created_at=str(d.pop("created_at", None) or now_timestamp()),
            last_modified=str(d.pop("last_modified", None) or now_timestamp()),
        )

    def touch(self) -> None:
        """Bump ``last_modified`` to now."""
        self.last_modified = now_timestamp()
