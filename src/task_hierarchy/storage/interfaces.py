from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..engine.model import Task, TaskOrigin


@dataclass(frozen=True)
class TaskScope:
    """Filter for :meth:`TaskRepository.fetch_tasks`.

    ``None`` fields do not filter.
    """

    origin: Optional[TaskOrigin] = None
    white_label_id: Optional[str] = None
    creator: Optional[str] = None

    def matches(self, task: Task) -> bool:
        if self.origin is not None and task.origin != self.origin:
            return False
        if self.white_label_id is not None and task.white_label_id != self.white_label_id:
            return False
        if self.creator is not None and task.creator != self.creator:
            return False
        return True


class TaskRepository(ABC):
    """Persistence collaborator for task records.

    Writes are keyed by task id and carry absolute values, so replaying a
    write is harmless.  Implementations raise on failure; no call spans
    more than one record atomically except ``delete_tasks``.
    """

    @abstractmethod
    def fetch_tasks(self, scope: Optional[TaskScope] = None) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    def create_task(self, task: Task) -> Task:
        raise NotImplementedError

    @abstractmethod
    def update_task_fields(self, task_id: str, fields: dict[str, Any]) -> Task:
        raise NotImplementedError

    @abstractmethod
    def delete_tasks(self, task_ids: Iterable[str]) -> list[str]:
        raise NotImplementedError


@dataclass(frozen=True)
class QuotaDecision:
    can_create: bool
    reason: str = ""
    license_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"canCreate": self.can_create, "reason": self.reason, "licenseId": self.license_id}


class ProjectQuota(ABC):
    """Quota/licensing collaborator consulted before a new instance root."""

    @abstractmethod
    def validate_project_creation(self, license_id: Optional[str]) -> QuotaDecision:
        raise NotImplementedError
