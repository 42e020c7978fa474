"""Top-down sequential date assignment.

Scheduling a subtree pins its root at an anchor date and walks the children
in position order: each child starts when the previous one is due, a leaf is
due ``duration_days`` after its start, and a parent is due when its last
child is.  The walk is depth-first with an explicit stack so deep trees do
not hit the recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from .dates import add_days, coerce_date, days_between, format_date, optional_date
from .durations import leaf_duration, subtree_durations
from .errors import InvalidDateError
from .model import Task
from .tree import TaskTree

logger = logging.getLogger(__name__)


@dataclass
class _Frame:
    task_id: str
    start: datetime
    cursor: datetime
    children: list[str]
    index: int = 0
    scheduled: int = 0


def _ordered_children(tree: TaskTree, task_id: str) -> list[str]:
    children = tree.children(task_id)
    for prev, nxt in zip(children, children[1:]):
        if prev.position == nxt.position:
            logger.warning("Siblings %s and %s share position %s under %s; ordering by id",
                           prev.id, nxt.id, prev.position, task_id)
    return [c.id for c in children]


def schedule_subtree(tree: TaskTree, root_id: str, anchor: Any) -> TaskTree:
    """Assign start/due dates to *root_id* and everything below it.

    Returns a new tree; tasks whose dates and duration already match are
    left as the same records.
    """
    tree.require(root_id)
    anchor_dt = coerce_date(anchor)
    durations = subtree_durations(tree, root_id)
    updated: list[Task] = []
    seen = {root_id}
    stack = [_Frame(root_id, anchor_dt, anchor_dt, _ordered_children(tree, root_id))]

    while stack:
        frame = stack[-1]
        if frame.index < len(frame.children):
            child_id = frame.children[frame.index]
            frame.index += 1
            if child_id in seen:
                logger.warning("Task %s reached twice while scheduling %s; skipping", child_id, root_id)
                continue
            seen.add(child_id)
            frame.scheduled += 1
            stack.append(_Frame(child_id, frame.cursor, frame.cursor, _ordered_children(tree, child_id)))
            continue

        stack.pop()
        task = tree.require(frame.task_id)
        days = durations.get(task.id) or leaf_duration(task)
        if frame.scheduled:
            due = frame.cursor
            span = days_between(frame.start, due)
            if span != days:
                logger.warning("Task %s spans %d days but its children sum to %d", task.id, span, days)
        else:
            due = add_days(frame.start, days)

        scheduled = replace(
            task,
            start_date=format_date(frame.start),
            due_date=format_date(due),
            duration_days=days,
        )
        if scheduled != task:
            updated.append(scheduled)
        if stack:
            stack[-1].cursor = due

    return tree.with_tasks(updated) if updated else tree


def sibling_anchor(tree: TaskTree, task_id: str) -> Optional[datetime]:
    """Start date a task gets from its place among its siblings.

    That is the due date of the preceding sibling, or the parent's start
    date for the first child.  Roots anchor at their own start date.
    """
    task = tree.require(task_id)
    parent = tree.get(task.parent_task_id)
    if parent is None:
        return optional_date(task.start_date)
    previous: Optional[Task] = None
    for sibling in tree.children(parent.id):
        if sibling.id == task_id:
            break
        previous = sibling
    if previous is not None and previous.due_date:
        try:
            return coerce_date(previous.due_date)
        except InvalidDateError as exc:
            logger.warning("Ignoring due date of %s when anchoring %s: %s", previous.id, task_id, exc)
    return optional_date(parent.start_date)


def reschedule_tree(tree: TaskTree, task_id: str) -> TaskTree:
    """Re-run the scheduler over the whole tree containing *task_id*.

    The tree's root keeps its start date.  Trees whose root has no start
    date (typically templates) are not date-scheduled.
    """
    root = tree.root_of(task_id)
    anchor = optional_date(root.start_date)
    if anchor is None:
        return tree
    return schedule_subtree(tree, root.id, anchor)
