"""Bottom-up duration aggregation.

Children run strictly one after another, so a parent's effective duration is
the sum of its children's effective durations.  Leaves are authoritative for
their own ``duration_days``.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .model import Task
from .tree import TaskTree

logger = logging.getLogger(__name__)


def _valid_days(raw: object) -> Optional[int]:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        return None
    return raw


def leaf_duration(task: Task) -> int:
    """Stored duration of a leaf, clamped to at least one day.

    A malformed value falls back to ``default_duration`` and then to 1.
    """
    days = _valid_days(task.duration_days)
    if days is not None:
        return days
    fallback = _valid_days(task.default_duration) or 1
    logger.warning("Task %s has invalid duration_days %r; using %d", task.id, task.duration_days, fallback)
    return fallback


def subtree_durations(tree: TaskTree, task_id: str) -> dict[str, int]:
    """Effective duration of *task_id* and every descendant, keyed by id."""
    result: dict[str, int] = {}
    # Reversed pre-order visits children before their parent.
    for task in reversed(tree.descendants(task_id)):
        child_days = [result[cid] for cid in tree.child_ids(task.id) if cid in result]
        result[task.id] = sum(child_days) if child_days else leaf_duration(task)
    return result


def effective_duration(tree: TaskTree, task_id: str) -> int:
    """Days spanned by *task_id* considering its children."""
    tree.require(task_id)
    return subtree_durations(tree, task_id)[task_id]


def update_ancestor_durations(tree: TaskTree, task_id: str) -> TaskTree:
    """Store the effective duration of *task_id* and walk upwards.

    Each level whose stored ``duration_days`` already matches stops the walk,
    as does reaching a root.  A dangling parent reference is treated as a
    root: the walk stops there instead of failing the whole update.
    """
    tree.require(task_id)
    current: Optional[str] = task_id
    seen: set[str] = set()
    while current is not None:
        if current in seen:
            logger.warning("Cycle detected while updating durations at %s", current)
            break
        seen.add(current)
        task = tree.get(current)
        if task is None:
            break
        days = effective_duration(tree, current)
        if days == task.duration_days:
            break
        logger.debug("Duration of %s: %s -> %s", current, task.duration_days, days)
        tree = tree.with_tasks([replace(task, duration_days=days)])
        parent_id = task.parent_task_id
        if parent_id is not None and parent_id not in tree:
            logger.warning("Parent %s of task %s is missing; treating %s as a root", parent_id, current, current)
            break
        current = parent_id
    return tree
