"""File-based task repository with thread and process locking.

Stores tasks in a single YAML document (``tasks.yaml``) inside the project's
``.task_hierarchy/`` directory.  Every call takes the lock, loads the file,
applies its change and writes the document back (write-tmp-then-replace).
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from loguru import logger

from ..constants import LOCK_FILENAME, STATE_DIR_NAME, STORE_FILENAME, STORE_VERSION
from ..engine.errors import NotFoundError, PersistenceError
from ..engine.model import Task
from ..io_utils import FileLock, _atomic_write_yaml
from .interfaces import TaskRepository, TaskScope


def _load_raw(path: Path) -> list[dict[str, Any]]:
    """Load the raw task list from *path*, returning ``[]`` if missing."""
    if not path.exists():
        return []
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise PersistenceError(f"{path.name}: YAMLError: {exc}") from exc
    if not isinstance(data, dict) or "tasks" not in data:
        return []
    tasks = data["tasks"]
    return [item for item in tasks if isinstance(item, dict)] if isinstance(tasks, list) else []


class FileTaskRepository(TaskRepository):
    """YAML-backed :class:`TaskRepository`.

    Parameters
    ----------
    path:
        The YAML document holding all tasks.
    lock_path:
        Lock file guarding read-modify-write cycles across processes.
    """

    def __init__(self, path: Path, lock_path: Optional[Path] = None) -> None:
        self._path = path
        self._lock = FileLock(lock_path or path.with_name(LOCK_FILENAME))
        self._thread_lock = threading.RLock()

    @classmethod
    def for_project(cls, project_dir: Path, store_file: str = STORE_FILENAME) -> "FileTaskRepository":
        state_dir = project_dir / STATE_DIR_NAME
        return cls(state_dir / store_file, state_dir / LOCK_FILENAME)

    @property
    def path(self) -> Path:
        return self._path

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> list[Task]:
        return [Task.from_dict(d) for d in _load_raw(self._path)]

    def _save(self, tasks: list[Task]) -> None:
        _atomic_write_yaml(self._path, {"version": STORE_VERSION, "tasks": [t.to_dict() for t in tasks]})

    # -- TaskRepository -----------------------------------------------------

    def fetch_tasks(self, scope: Optional[TaskScope] = None) -> list[Task]:
        with self._thread_lock, self._lock:
            return [t for t in self._load() if scope is None or scope.matches(t)]

    def create_task(self, task: Task) -> Task:
        with self._thread_lock, self._lock:
            tasks = self._load()
            if any(t.id == task.id for t in tasks):
                raise ValueError(f"Task {task.id} already exists")
            stored = Task.from_dict(task.to_dict())
            stored.touch()
            tasks.append(stored)
            self._save(tasks)
            return stored

    def update_task_fields(self, task_id: str, fields: dict[str, Any]) -> Task:
        with self._thread_lock, self._lock:
            tasks = self._load()
            for idx, existing in enumerate(tasks):
                if existing.id == task_id:
                    data = existing.to_dict()
                    data.update(fields)
                    updated = Task.from_dict(data)
                    updated.touch()
                    tasks[idx] = updated
                    self._save(tasks)
                    return updated
            raise NotFoundError(task_id)

    def delete_tasks(self, task_ids: Iterable[str]) -> list[str]:
        drop = set(task_ids)
        with self._thread_lock, self._lock:
            tasks = self._load()
            kept = [t for t in tasks if t.id not in drop]
            removed = [t.id for t in tasks if t.id in drop]
            if removed:
                self._save(kept)
                logger.debug("Removed {} task(s) from {}", len(removed), self._path.name)
            return removed
