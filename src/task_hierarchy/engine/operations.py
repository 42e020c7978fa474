"""Hierarchy operations: create, update, delete, move, clone, reschedule.

Every operation takes a :class:`TaskTree` snapshot and returns an
:class:`OperationResult` holding the new snapshot and the minimal change-set
between the two.  Nothing here performs I/O; persisting the change-set is the
caller's job (see :mod:`task_hierarchy.service`).

Missing inputs (unknown task, unknown parent, invalid payload) raise before
any work is done, so the input snapshot is never partially transformed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from ..constants import DEFAULT_DURATION_DAYS, POSITION_STEP
from .changes import ChangeSet, diff
from .dates import coerce_date, format_date
from .durations import subtree_durations, update_ancestor_durations
from .errors import InvalidDateError, InvalidHierarchyError, InvalidOrderError, InvalidTaskError
from .model import PAYLOAD_FIELDS, Task, TaskOrigin, generate_id
from .positions import allocate, next_position, renumber
from .schedule import reschedule_tree, schedule_subtree, sibling_anchor
from .tree import TaskTree

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(PAYLOAD_FIELDS + ("duration_days", "default_duration"))

# Copied from a template onto each cloned instance task.
_CLONED_FIELDS = ("title", "description", "purpose", "default_duration", "duration_days")


@dataclass
class OperationResult:
    """Outcome of one hierarchy operation."""

    tree: TaskTree
    changes: ChangeSet
    task_id: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def task(self) -> Optional[Task]:
        return self.tree.get(self.task_id)

    def to_dict(self) -> dict[str, Any]:
        task = self.task
        data: dict[str, Any] = {
            "task_id": self.task_id,
            "task": task.to_dict() if task is not None else None,
            "changes": self.changes.to_dict(),
            "warnings": list(self.warnings),
        }
        data.update(self.details)
        return data


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _finish(
    before: TaskTree,
    after: TaskTree,
    task_id: Optional[str],
    warnings: Optional[list[str]] = None,
    **details: Any,
) -> OperationResult:
    return OperationResult(
        tree=after,
        changes=diff(before, after),
        task_id=task_id,
        warnings=list(warnings or []),
        details=details,
    )


def _update_durations(tree: TaskTree, parent_ids: Iterable[Optional[str]]) -> TaskTree:
    for parent_id in parent_ids:
        if parent_id is not None and parent_id in tree:
            tree = update_ancestor_durations(tree, parent_id)
    return tree


def _reschedule(tree: TaskTree, task_ids: Iterable[Optional[str]]) -> TaskTree:
    done: set[str] = set()
    for task_id in task_ids:
        if task_id is None or task_id not in tree:
            continue
        root_id = tree.root_of(task_id).id
        if root_id in done:
            continue
        done.add(root_id)
        tree = reschedule_tree(tree, root_id)
    return tree


def _parse_origin(raw: Any) -> Optional[TaskOrigin]:
    if raw is None:
        return None
    return raw if isinstance(raw, TaskOrigin) else TaskOrigin(str(raw))


def _sibling_index(siblings: list[Task], task_id: str) -> int:
    for idx, sibling in enumerate(siblings):
        if sibling.id == task_id:
            return idx
    return len(siblings)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def create_task(
    tree: TaskTree,
    fields: Mapping[str, Any],
    *,
    index: Optional[int] = None,
    step: int = POSITION_STEP,
    default_duration: int = DEFAULT_DURATION_DAYS,
    now: Optional[datetime] = None,
) -> OperationResult:
    """Add a new task, as a root or under ``fields["parent_task_id"]``.

    The position is ``fields["position"]`` when given, else a slot at
    *index* among the siblings, else the end of the sibling group.  A child
    gets its dates from the sibling before it (or its parent's start), then
    ancestor durations and the containing tree's dates are brought back in
    line.  An instance root without a start date starts at *now*.
    """
    data = dict(fields)
    problems = Task.validate_dict(data)
    if problems:
        raise InvalidTaskError(problems)

    parent_id = data.get("parent_task_id")
    origin = _parse_origin(data.get("origin"))
    parent: Optional[Task] = None
    if parent_id is not None:
        parent = tree.require(parent_id, "Parent task")
        if origin is None:
            origin = parent.origin
        elif origin != parent.origin:
            raise InvalidHierarchyError(
                f"Cannot add a {origin.value} task under {parent.origin.value} task {parent.id}"
            )
    origin = origin or TaskOrigin.INSTANCE

    task_id = data.get("id") or generate_id()
    if task_id in tree:
        raise InvalidTaskError([f"Task {task_id} already exists"])

    siblings = tree.siblings(parent_id, origin)
    renumbered: list[Task] = []
    position = data.get("position")
    if position is not None:
        if any(s.position == position for s in siblings):
            raise InvalidOrderError(f"Position {position} is already taken under {parent_id or 'the root'}")
    elif index is not None:
        position, renumbered = allocate(siblings, index, step)
    else:
        position = next_position(siblings, step)

    duration = data.get("duration_days") or data.get("default_duration") or default_duration
    start_date: Optional[str] = None
    if parent is None:
        if data.get("start_date"):
            start_date = format_date(coerce_date(data["start_date"]))
        elif origin == TaskOrigin.INSTANCE:
            start_date = format_date(now or _now())

    task = Task.from_dict({
        **data,
        "id": task_id,
        "parent_task_id": parent_id,
        "position": position,
        "origin": origin,
        "default_duration": data.get("default_duration") or duration,
        "duration_days": duration,
        "start_date": start_date,
        "due_date": None,
    })
    after = tree.with_tasks(renumbered + [task])

    anchor = sibling_anchor(after, task.id)
    if anchor is not None:
        after = schedule_subtree(after, task.id, anchor)
    after = _update_durations(after, [parent_id])
    after = _reschedule(after, [task.id])

    logger.info("Created %s task %s under %s at position %s", origin.value, task.id, parent_id, position)
    return _finish(tree, after, task.id)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

def update_task(tree: TaskTree, task_id: str, changes: Mapping[str, Any]) -> OperationResult:
    """Edit payload fields and durations of one task.

    ``duration_days`` only applies to leaves; on a parent it is derived from
    the children and the edit is dropped with a warning.  A leaf whose
    ``default_duration`` changes without an explicit ``duration_days``
    follows the new default.
    """
    task = tree.require(task_id)
    updates = dict(changes)
    locked = sorted(set(updates) - EDITABLE_FIELDS)
    if locked:
        raise InvalidTaskError([f"Field '{name}' cannot be edited directly" for name in locked])
    problems = Task.validate_dict({"title": task.title, **updates})
    if problems:
        raise InvalidTaskError(problems)

    warnings: list[str] = []
    has_children = tree.has_children(task_id)
    if has_children and "duration_days" in updates:
        updates.pop("duration_days")
        warnings.append(f"duration_days of {task_id} is derived from its children; edit ignored")
    if (
        not has_children
        and "default_duration" in updates
        and "duration_days" not in updates
        and updates["default_duration"] != task.default_duration
    ):
        updates["duration_days"] = updates["default_duration"]
    if "actions" in updates:
        updates["actions"] = list(updates["actions"])
    if "resources" in updates:
        updates["resources"] = list(updates["resources"])

    edited = replace(task, **updates)
    after = tree.with_tasks([edited])
    if edited.duration_days != task.duration_days:
        after = _update_durations(after, [task.parent_task_id])
        after = _reschedule(after, [task_id])
    return _finish(tree, after, task_id, warnings)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

def delete_subtree(tree: TaskTree, task_id: str) -> OperationResult:
    """Remove *task_id* and all its descendants.

    The remaining siblings close the gap and ancestor durations shrink.  A
    date failure while rescheduling does not stop the deletion: it is
    reported as a warning and the dates are left for the next full refresh.
    """
    task = tree.require(task_id)
    removed = [t.id for t in tree.descendants(task_id)]
    after = tree.without(removed)
    warnings: list[str] = []

    parent_id = task.parent_task_id
    after = _update_durations(after, [parent_id])
    try:
        after = _reschedule(after, [parent_id])
    except InvalidDateError as exc:
        logger.warning("Deleted %s but could not recalculate dates: %s", task_id, exc)
        warnings.append(f"Dates were not recalculated after deleting {task_id}: {exc}")

    logger.info("Deleted task %s with %d descendant(s)", task_id, len(removed) - 1)
    return _finish(tree, after, task_id, warnings, deleted_ids=removed)


# ---------------------------------------------------------------------------
# Move / reorder
# ---------------------------------------------------------------------------

def move_task(
    tree: TaskTree,
    task_id: str,
    new_parent_id: Optional[str],
    index: Optional[int] = None,
    *,
    step: int = POSITION_STEP,
) -> OperationResult:
    """Move *task_id* under *new_parent_id* at *index* among its new siblings.

    ``index=None`` appends.  Both the old and the new sibling group are
    rescheduled, and durations are propagated up from both parents.
    """
    task = tree.require(task_id)
    if new_parent_id is not None:
        new_parent = tree.require(new_parent_id, "Parent task")
        if new_parent_id == task_id or tree.is_descendant(new_parent_id, task_id):
            raise InvalidHierarchyError(f"Cannot move {task_id} under its own descendant {new_parent_id}")
        if new_parent.origin != task.origin:
            raise InvalidHierarchyError(
                f"Cannot move {task.origin.value} task {task_id} under {new_parent.origin.value} task {new_parent_id}"
            )

    old_parent_id = task.parent_task_id
    siblings = [s for s in tree.siblings(new_parent_id, task.origin) if s.id != task_id]
    if index is None:
        index = len(siblings)
    index = max(0, min(index, len(siblings)))

    if new_parent_id == old_parent_id:
        current = _sibling_index(tree.siblings(old_parent_id, task.origin), task_id)
        if current == index:
            return _finish(tree, tree, task_id)

    position, renumbered = allocate(siblings, index, step)
    moved = replace(task, parent_task_id=new_parent_id, position=position)
    after = tree.with_tasks(renumbered + [moved])
    after = _update_durations(after, [old_parent_id, new_parent_id])
    after = _reschedule(after, [task_id, old_parent_id])

    logger.info("Moved task %s from %s to %s at index %d", task_id, old_parent_id, new_parent_id, index)
    return _finish(tree, after, task_id, renumbered=len(renumbered) > 0)


def renumber_siblings(
    tree: TaskTree,
    parent_id: Optional[str],
    origin: Optional[TaskOrigin] = None,
    *,
    step: int = POSITION_STEP,
) -> OperationResult:
    """Evenly respace the positions of one sibling group, keeping its order."""
    if parent_id is not None:
        tree.require(parent_id, "Parent task")
    after = tree.with_tasks(renumber(tree.siblings(parent_id, origin), step))
    return _finish(tree, after, parent_id)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def set_start_date(tree: TaskTree, task_id: str, start_date: Any) -> OperationResult:
    """Re-anchor a root task at *start_date* and cascade through its subtree."""
    task = tree.require(task_id)
    if task.parent_task_id is not None and task.parent_task_id in tree:
        raise InvalidHierarchyError(
            f"Task {task_id} is scheduled after its siblings; move its root project instead"
        )
    after = schedule_subtree(tree, task_id, coerce_date(start_date))
    return _finish(tree, after, task_id)


def recalculate_tree(tree: TaskTree, task_id: str) -> OperationResult:
    """Recompute every duration and date in the tree containing *task_id*."""
    root = tree.root_of(task_id)
    durations = subtree_durations(tree, root.id)
    fixed = [
        replace(task, duration_days=durations[task.id])
        for task in tree.descendants(root.id)
        if task.duration_days != durations[task.id]
    ]
    after = tree.with_tasks(fixed) if fixed else tree
    after = reschedule_tree(after, root.id)
    return _finish(tree, after, root.id)


# ---------------------------------------------------------------------------
# Clone template -> instance
# ---------------------------------------------------------------------------

def clone_template(
    tree: TaskTree,
    template_id: str,
    start_date: Any = None,
    *,
    title: Optional[str] = None,
    creator: Optional[str] = None,
    white_label_id: Optional[str] = None,
    license_id: Optional[str] = None,
    step: int = POSITION_STEP,
    now: Optional[datetime] = None,
) -> OperationResult:
    """Copy a template subtree into a new instance project.

    Templates are walked level by level so every parent has its instance id
    before its children are copied.  The new root is appended to the
    instance roots and the whole copy is scheduled from *start_date*
    (default: now).
    """
    template = tree.require(template_id, "Template")
    if template.origin != TaskOrigin.TEMPLATE:
        raise InvalidHierarchyError(f"Task {template_id} is not a template")
    anchor = coerce_date(start_date) if start_date is not None else (now or _now())

    id_map: dict[str, str] = {}
    created: list[Task] = []
    for depth, level in enumerate(tree.levels(template_id)):
        for source in level:
            if depth == 0:
                parent_id = None
                position = next_position(tree.roots(TaskOrigin.INSTANCE), step)
            else:
                parent_id = id_map.get(source.parent_task_id or "")
                if parent_id is None:
                    logger.error("No instance parent for template %s; skipping", source.id)
                    continue
                position = source.position
            values = {name: getattr(source, name) for name in _CLONED_FIELDS}
            if depth == 0 and title:
                values["title"] = title
            clone = Task(
                parent_task_id=parent_id,
                position=position,
                origin=TaskOrigin.INSTANCE,
                actions=list(source.actions),
                resources=list(source.resources),
                creator=creator,
                white_label_id=white_label_id if white_label_id is not None else source.white_label_id,
                license_id=license_id if depth == 0 else None,
                **values,
            )
            id_map[source.id] = clone.id
            created.append(clone)

    root_id = created[0].id
    after = schedule_subtree(tree.with_tasks(created), root_id, anchor)
    logger.info("Cloned template %s into project %s (%d tasks)", template_id, root_id, len(created))
    return _finish(tree, after, root_id, id_map=id_map)
