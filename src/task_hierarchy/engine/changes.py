"""Minimal change-set between two snapshots.

The change-set lists exactly the tasks a caller has to write back: tasks
created, tasks deleted, and tasks whose tracked fields differ.  A task whose
recomputed values equal its previous ones is left out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from .model import PAYLOAD_FIELDS, SCHEDULE_FIELDS, STRUCTURE_FIELDS, Task
from .tree import TaskTree

TRACKED_FIELDS: tuple[str, ...] = SCHEDULE_FIELDS + STRUCTURE_FIELDS + ("default_duration",) + PAYLOAD_FIELDS

Snapshot = Union[TaskTree, Iterable[Task]]


@dataclass(frozen=True)
class TaskChange:
    """Changed fields of one task: new values plus the values they replace."""

    task_id: str
    fields: dict[str, Any]
    previous: dict[str, Any]

    @property
    def changed_fields(self) -> list[str]:
        return list(self.fields)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.task_id, "fields": dict(self.fields), "previous": dict(self.previous)}


@dataclass
class ChangeSet:
    """Tasks to create, update and delete to bring storage in sync."""

    created: list[Task] = field(default_factory=list)
    updated: list[TaskChange] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)

    def __len__(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)

    @property
    def touched_ids(self) -> set[str]:
        return {t.id for t in self.created} | {c.task_id for c in self.updated} | set(self.deleted)

    def change_for(self, task_id: str) -> TaskChange | None:
        for change in self.updated:
            if change.task_id == task_id:
                return change
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": [t.to_dict() for t in self.created],
            "updated": [c.to_dict() for c in self.updated],
            "deleted": list(self.deleted),
        }


def _as_tree(snapshot: Snapshot) -> TaskTree:
    return snapshot if isinstance(snapshot, TaskTree) else TaskTree(snapshot)


def task_diff(before: Task, after: Task, fields: Iterable[str] = TRACKED_FIELDS) -> TaskChange | None:
    changed: dict[str, Any] = {}
    previous: dict[str, Any] = {}
    for name in fields:
        old = getattr(before, name)
        new = getattr(after, name)
        if old != new:
            changed[name] = new
            previous[name] = old
    if not changed:
        return None
    return TaskChange(after.id, changed, previous)


def diff(before: Snapshot, after: Snapshot, fields: Iterable[str] = TRACKED_FIELDS) -> ChangeSet:
    """Compute the minimal :class:`ChangeSet` turning *before* into *after*.

    Created tasks are ordered parents first and deletions children first,
    so a caller can replay them one by one without dangling references.
    """
    old = _as_tree(before)
    new = _as_tree(after)
    fields = tuple(fields)
    changes = ChangeSet()

    for task in new:
        prior = old.get(task.id)
        if prior is None:
            changes.created.append(task)
            continue
        change = task_diff(prior, task, fields)
        if change is not None:
            changes.updated.append(change)

    changes.created.sort(key=lambda t: (new.depth(t.id), t.position, t.id))
    gone = [t for t in old if t.id not in new]
    gone.sort(key=lambda t: (-old.depth(t.id), t.id))
    changes.deleted = [t.id for t in gone]
    return changes
