"""Indexed, immutable snapshot of a task forest.

A :class:`TaskTree` is built once per snapshot and answers parent/child
lookups in O(1).  It is never modified in place: ``with_tasks`` and
``without`` return a new tree, which keeps every engine function a pure
``snapshot -> snapshot`` transformation.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable, Iterator, Optional

from .errors import NotFoundError
from .model import Task, TaskOrigin

logger = logging.getLogger(__name__)


def _sibling_key(task: Task) -> tuple[int, str]:
    return (task.position, task.id)


class TaskTree:
    """Read-only index over a list of :class:`Task` records."""

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self._tasks[task.id] = task
        children: dict[Optional[str], list[Task]] = defaultdict(list)
        for task in self._tasks.values():
            parent_id = task.parent_task_id
            # Dangling parent references are indexed as roots.
            if parent_id is not None and parent_id not in self._tasks:
                parent_id = None
            children[parent_id].append(task)
        self._children: dict[Optional[str], list[str]] = {
            parent_id: [t.id for t in sorted(group, key=_sibling_key)]
            for parent_id, group in children.items()
        }

    # -- container protocol -------------------------------------------------

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    def __repr__(self) -> str:
        return f"TaskTree({len(self._tasks)} tasks)"

    # -- lookups ------------------------------------------------------------

    def get(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        return self._tasks.get(task_id)

    def require(self, task_id: Optional[str], what: str = "Task") -> Task:
        task = self.get(task_id)
        if task is None:
            raise NotFoundError(task_id, what)
        return task

    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def child_ids(self, task_id: Optional[str]) -> list[str]:
        """Ids of the children of *task_id* ordered by position.

        ``None`` returns the roots (including tasks whose parent is missing).
        """
        return list(self._children.get(task_id, ()))

    def children(self, task_id: Optional[str]) -> list[Task]:
        return [self._tasks[cid] for cid in self._children.get(task_id, ())]

    def has_children(self, task_id: str) -> bool:
        return bool(self._children.get(task_id))

    def parent(self, task_id: str) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        return self.get(task.parent_task_id)

    def roots(self, origin: Optional[TaskOrigin] = None) -> list[Task]:
        roots = self.children(None)
        if origin is None:
            return roots
        return [t for t in roots if t.origin == origin]

    def siblings(self, parent_id: Optional[str], origin: Optional[TaskOrigin] = None) -> list[Task]:
        """Ordered sibling group under *parent_id*.

        Root-level groups are split per origin so template and project
        positions never interleave.
        """
        if parent_id is None:
            return self.roots(origin)
        return self.children(parent_id)

    # -- traversal ----------------------------------------------------------

    def ancestors(self, task_id: str) -> list[Task]:
        """Ancestors of *task_id*, nearest first.  Stops on cycles."""
        out: list[Task] = []
        seen = {task_id}
        current = self.parent(task_id)
        while current is not None:
            if current.id in seen:
                logger.warning("Cycle detected above task %s at %s", task_id, current.id)
                break
            seen.add(current.id)
            out.append(current)
            current = self.get(current.parent_task_id)
        return out

    def descendants(self, task_id: str) -> list[Task]:
        """*task_id* and every task below it, in pre-order."""
        if task_id not in self._tasks:
            return []
        out: list[Task] = []
        seen: set[str] = set()
        stack = [task_id]
        while stack:
            tid = stack.pop()
            if tid in seen:
                logger.warning("Task %s reached twice while walking %s; skipping", tid, task_id)
                continue
            seen.add(tid)
            out.append(self._tasks[tid])
            stack.extend(reversed(self._children.get(tid, ())))
        return out

    def levels(self, task_id: str) -> list[list[Task]]:
        """Breadth-first levels below and including *task_id*."""
        if task_id not in self._tasks:
            return []
        levels: list[list[Task]] = []
        seen = {task_id}
        frontier: deque[str] = deque([task_id])
        while frontier:
            level = [self._tasks[tid] for tid in frontier]
            levels.append(level)
            frontier = deque()
            for task in level:
                for cid in self._children.get(task.id, ()):
                    if cid in seen:
                        continue
                    seen.add(cid)
                    frontier.append(cid)
        return levels

    def depth(self, task_id: str) -> int:
        return len(self.ancestors(task_id))

    def root_of(self, task_id: str) -> Task:
        task = self.require(task_id)
        chain = self.ancestors(task_id)
        return chain[-1] if chain else task

    def is_descendant(self, task_id: str, ancestor_id: str) -> bool:
        return any(a.id == ancestor_id for a in self.ancestors(task_id))

    # -- derivations --------------------------------------------------------

    def with_tasks(self, tasks: Iterable[Task]) -> "TaskTree":
        """Return a new tree with *tasks* added or replaced by id."""
        merged = dict(self._tasks)
        for task in tasks:
            merged[task.id] = task
        return TaskTree(merged.values())

    def without(self, task_ids: Iterable[str]) -> "TaskTree":
        drop = set(task_ids)
        return TaskTree(t for t in self._tasks.values() if t.id not in drop)
