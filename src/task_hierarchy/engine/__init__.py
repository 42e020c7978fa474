"""Hierarchical scheduling engine.

Pure functions over :class:`TaskTree` snapshots: sparse sibling positions,
bottom-up duration aggregation, top-down sequential scheduling, change-set
computation and the hierarchy operations built from them.
"""

from .changes import ChangeSet, TaskChange, diff
from .durations import effective_duration, update_ancestor_durations
from .errors import (
    InvalidDateError,
    InvalidHierarchyError,
    InvalidOrderError,
    InvalidTaskError,
    NotFoundError,
    PersistenceError,
    PositionsExhausted,
    QuotaExceededError,
    TaskHierarchyError,
)
from .model import Task, TaskOrigin
from .operations import (
    OperationResult,
    clone_template,
    create_task,
    delete_subtree,
    move_task,
    recalculate_tree,
    renumber_siblings,
    set_start_date,
    update_task,
)
from .positions import next_position, position_between
from .schedule import schedule_subtree
from .tree import TaskTree
from .validation import validate_tree

__all__ = [
    "ChangeSet",
    "InvalidDateError",
    "InvalidHierarchyError",
    "InvalidOrderError",
    "InvalidTaskError",
    "NotFoundError",
    "OperationResult",
    "PersistenceError",
    "PositionsExhausted",
    "QuotaExceededError",
    "Task",
    "TaskChange",
    "TaskHierarchyError",
    "TaskOrigin",
    "TaskTree",
    "clone_template",
    "create_task",
    "delete_subtree",
    "diff",
    "effective_duration",
    "move_task",
    "next_position",
    "position_between",
    "recalculate_tree",
    "renumber_siblings",
    "schedule_subtree",
    "set_start_date",
    "update_ancestor_durations",
    "update_task",
    "validate_tree",
]
