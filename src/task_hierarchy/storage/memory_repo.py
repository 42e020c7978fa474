"""In-memory persistence collaborator."""

from __future__ import annotations

import threading
from typing import Any, Iterable, Optional

from ..engine.errors import NotFoundError
from ..engine.model import Task
from .interfaces import TaskRepository, TaskScope


def _copy(task: Task) -> Task:
    return Task.from_dict(task.to_dict())


class InMemoryTaskRepository(TaskRepository):
    """Keeps copies of tasks in a dict; records handed out are detached copies."""

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {t.id: _copy(t) for t in tasks}

    def fetch_tasks(self, scope: Optional[TaskScope] = None) -> list[Task]:
        with self._lock:
            return [_copy(t) for t in self._tasks.values() if scope is None or scope.matches(t)]

    def create_task(self, task: Task) -> Task:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task {task.id} already exists")
            stored = _copy(task)
            stored.touch()
            self._tasks[stored.id] = stored
            return _copy(stored)

    def update_task_fields(self, task_id: str, fields: dict[str, Any]) -> Task:
        with self._lock:
            stored = self._tasks.get(task_id)
            if stored is None:
                raise NotFoundError(task_id)
            data = stored.to_dict()
            data.update(fields)
            updated = Task.from_dict(data)
            updated.touch()
            self._tasks[task_id] = updated
            return _copy(updated)

    def delete_tasks(self, task_ids: Iterable[str]) -> list[str]:
        with self._lock:
            removed = []
            for task_id in task_ids:
                if self._tasks.pop(task_id, None) is not None:
                    removed.append(task_id)
            return removed
