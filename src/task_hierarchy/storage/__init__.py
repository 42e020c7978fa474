"""Persistence and quota collaborators."""

from .file_repos import FileTaskRepository
from .interfaces import ProjectQuota, QuotaDecision, TaskRepository, TaskScope
from .memory_repo import InMemoryTaskRepository
from .quota import RootLimitQuota, UnlimitedQuota

__all__ = [
    "FileTaskRepository",
    "InMemoryTaskRepository",
    "ProjectQuota",
    "QuotaDecision",
    "RootLimitQuota",
    "TaskRepository",
    "TaskScope",
    "UnlimitedQuota",
]
