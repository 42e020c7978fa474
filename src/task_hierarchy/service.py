"""Task service: the orchestration layer around the pure engine.

:class:`TaskService` owns the current snapshot.  Each mutation runs the
engine against that snapshot, writes the resulting change-set to the
repository and only then swaps the new snapshot in.  Mutations are
serialized with a lock; reads see the last finished snapshot.

Every public mutation returns ``{"success": True, "data": ...}`` or
``{"success": False, "error": ..., "kind": ...}``.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from loguru import logger

from .config import EngineSettings, get_engine_settings, load_engine_config
from .engine import operations as ops
from .engine.changes import ChangeSet
from .engine.errors import (
    InvalidTaskError,
    PersistenceError,
    QuotaExceededError,
    TaskHierarchyError,
)
from .engine.model import Task, TaskOrigin
from .engine.operations import OperationResult
from .engine.tree import TaskTree
from .engine.validation import validate_tree
from .logging_utils import summarize_result
from .storage.file_repos import FileTaskRepository
from .storage.interfaces import ProjectQuota, TaskRepository, TaskScope
from .storage.quota import RootLimitQuota, UnlimitedQuota

Response = dict[str, Any]


class TaskService:
    """Apply hierarchy operations to a repository-backed snapshot.

    Parameters
    ----------
    repository:
        Persistence collaborator.
    quota:
        Consulted before a new instance root is created.  Defaults to
        :class:`UnlimitedQuota`.
    settings:
        Position step and default duration used by the engine.
    user_id / white_label_id:
        Identity stamped on created tasks and used to scope fetches.
    """

    def __init__(
        self,
        repository: TaskRepository,
        quota: Optional[ProjectQuota] = None,
        settings: Optional[EngineSettings] = None,
        *,
        user_id: Optional[str] = None,
        white_label_id: Optional[str] = None,
    ) -> None:
        self.repository = repository
        self.quota = quota or UnlimitedQuota()
        self.settings = settings or EngineSettings()
        self.user_id = user_id
        self.white_label_id = white_label_id
        self._lock = threading.RLock()
        self._tree = TaskTree()
        self._stale = True

    @classmethod
    def for_project(
        cls,
        project_dir: Path,
        *,
        user_id: Optional[str] = None,
        white_label_id: Optional[str] = None,
    ) -> "TaskService":
        """Build a service over the YAML store of *project_dir*."""
        config, err = load_engine_config(project_dir)
        if err:
            logger.warning("Ignoring unreadable engine config: {}", err)
        settings = get_engine_settings(config)
        service = cls(
            FileTaskRepository.for_project(project_dir, settings.store_file),
            settings=settings,
            user_id=user_id,
            white_label_id=white_label_id,
        )
        if settings.max_root_projects:
            service.quota = RootLimitQuota(settings.max_root_projects, service.count_projects)
        return service

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def _scopes(self) -> list[TaskScope]:
        # Projects belong to the user; templates are shared by the organization.
        return [
            TaskScope(origin=TaskOrigin.INSTANCE, white_label_id=self.white_label_id, creator=self.user_id),
            TaskScope(origin=TaskOrigin.TEMPLATE, white_label_id=self.white_label_id),
        ]

    def refresh(self) -> TaskTree:
        """Re-fetch every task in scope and replace the snapshot."""
        with self._lock:
            tasks: dict[str, Task] = {}
            for scope in self._scopes():
                for task in self.repository.fetch_tasks(scope):
                    tasks[task.id] = task
            self._tree = TaskTree(tasks.values())
            self._stale = False
            logger.debug("Loaded {} task(s)", len(self._tree))
            return self._tree

    @property
    def tree(self) -> TaskTree:
        with self._lock:
            if self._stale:
                self.refresh()
            return self._tree

    @property
    def is_stale(self) -> bool:
        return self._stale

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tree.get(task_id)

    def list_tasks(self, origin: Optional[TaskOrigin] = None, parent_id: Optional[str] = None) -> list[Task]:
        tree = self.tree
        if parent_id is not None:
            return tree.children(parent_id)
        tasks = tree.tasks()
        if origin is not None:
            tasks = [t for t in tasks if t.origin == origin]
        return tasks

    def count_projects(self, license_id: Optional[str]) -> int:
        roots = self.tree.roots(TaskOrigin.INSTANCE)
        if license_id is None:
            return len(roots)
        return sum(1 for t in roots if t.license_id == license_id)

    def check(self) -> list[str]:
        """Invariant violations in the current snapshot."""
        return validate_tree(self.tree)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_task(self, data: Mapping[str, Any], license_id: Optional[str] = None, index: Optional[int] = None) -> Response:
        """Create a root or child task from *data*."""

        def _op(tree: TaskTree) -> OperationResult:
            fields = dict(data)
            creator = fields.get("creator") or self.user_id
            if not creator:
                raise InvalidTaskError(["Cannot create task: user identity is missing"])
            fields["creator"] = creator
            fields.setdefault("white_label_id", self.white_label_id)
            origin = fields.get("origin")
            if fields.get("parent_task_id") is None and origin in (None, TaskOrigin.INSTANCE, TaskOrigin.INSTANCE.value):
                fields["license_id"] = self._check_quota(license_id)
            return ops.create_task(
                tree,
                fields,
                index=index,
                step=self.settings.position_step,
                default_duration=self.settings.default_duration,
            )

        return self._run("create_task", _op)

    def update_task(self, task_id: str, changes: Mapping[str, Any]) -> Response:
        return self._run("update_task", lambda tree: ops.update_task(tree, task_id, changes))

    def delete_task(self, task_id: str) -> Response:
        """Delete a task together with its whole subtree."""
        return self._run("delete_task", lambda tree: ops.delete_subtree(tree, task_id))

    def move_task(self, task_id: str, new_parent_id: Optional[str], index: Optional[int] = None) -> Response:
        return self._run(
            "move_task",
            lambda tree: ops.move_task(tree, task_id, new_parent_id, index, step=self.settings.position_step),
        )

    def set_start_date(self, task_id: str, start_date: Any) -> Response:
        return self._run("set_start_date", lambda tree: ops.set_start_date(tree, task_id, start_date))

    def recalculate(self, task_id: str) -> Response:
        return self._run("recalculate", lambda tree: ops.recalculate_tree(tree, task_id))

    def clone_template(
        self,
        template_id: str,
        start_date: Any = None,
        *,
        title: Optional[str] = None,
        license_id: Optional[str] = None,
    ) -> Response:
        """Create a new project from a template, scheduled from *start_date*."""

        def _op(tree: TaskTree) -> OperationResult:
            if not self.user_id:
                raise InvalidTaskError(["Cannot create project: user identity is missing"])
            return ops.clone_template(
                tree,
                template_id,
                start_date,
                title=title,
                creator=self.user_id,
                white_label_id=self.white_label_id,
                license_id=self._check_quota(license_id),
                step=self.settings.position_step,
            )

        return self._run("clone_template", _op)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_quota(self, license_id: Optional[str]) -> Optional[str]:
        decision = self.quota.validate_project_creation(license_id)
        if not decision.can_create:
            raise QuotaExceededError(decision.reason or "Project limit reached")
        return decision.license_id

    def _run(self, name: str, op: Callable[[TaskTree], OperationResult]) -> Response:
        with self._lock:
            try:
                if self._stale:
                    self.refresh()
                result = op(self._tree)
                self._persist(result.changes)
            except TaskHierarchyError as exc:
                logger.warning("{} failed ({}): {}", name, exc.kind, exc)
                return {"success": False, "error": str(exc), "kind": exc.kind}
            self._tree = result.tree
        logger.info("{} done: {}", name, summarize_result(name, result))
        return {"success": True, "data": result.to_dict(), "warnings": list(result.warnings)}

    def _persist(self, changes: ChangeSet) -> None:
        """Write a change-set: creations parents first, then updates, then deletions.

        Calls are independent; on the first failure the snapshot is marked
        stale so the next operation starts from a fresh fetch.
        """
        written: list[str] = []
        pending: Iterable[str] = changes.touched_ids
        try:
            for task in changes.created:
                self.repository.create_task(task)
                written.append(task.id)
            for change in changes.updated:
                self.repository.update_task_fields(change.task_id, dict(change.fields))
                written.append(change.task_id)
            if changes.deleted:
                self.repository.delete_tasks(list(changes.deleted))
                written.extend(changes.deleted)
        except Exception as exc:
            self._stale = True
            failed = sorted(set(pending) - set(written))
            logger.error("Persisted {} of {} change(s) before failing: {}", len(written), len(changes), exc)
            raise PersistenceError(
                f"Failed to save changes ({len(written)}/{len(changes)} written): {exc}",
                written=written,
                failed=failed,
            ) from exc
