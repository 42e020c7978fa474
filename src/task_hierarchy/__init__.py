"""Provide the public `task_hierarchy` package exports."""

from __future__ import annotations

from .engine import Task, TaskOrigin, TaskTree
from .service import TaskService

__all__ = ["Task", "TaskOrigin", "TaskTree", "TaskService"]
