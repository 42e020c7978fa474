"""Error kinds raised by the hierarchy engine and its collaborators."""

from __future__ import annotations

from typing import Iterable, Optional


class TaskHierarchyError(Exception):
    """Base class for every engine failure surfaced to callers."""

    kind = "Error"


class NotFoundError(TaskHierarchyError, LookupError):
    """A referenced task or parent is absent from the snapshot."""

    kind = "NotFound"

    def __init__(self, task_id: Optional[str], what: str = "Task") -> None:
        self.task_id = task_id
        super().__init__(f"{what} {task_id} not found")


class InvalidOrderError(TaskHierarchyError, ValueError):
    """Position allocator contract violation."""

    kind = "InvalidOrder"


class PositionsExhausted(TaskHierarchyError):
    """No integer gap remains between two adjacent positions.

    Callers respond with a renumbering pass over the sibling group.
    """

    kind = "PositionsExhausted"

    def __init__(self, lower: int, upper: int) -> None:
        self.lower = lower
        self.upper = upper
        super().__init__(f"No position left between {lower} and {upper}")


class InvalidDateError(TaskHierarchyError, ValueError):
    """Malformed or non-chronological date input."""

    kind = "InvalidDate"


class InvalidHierarchyError(TaskHierarchyError, ValueError):
    """A mutation would break the tree shape (cycle, template/instance mix)."""

    kind = "InvalidHierarchy"


class InvalidTaskError(TaskHierarchyError, ValueError):
    """Task payload failed validation."""

    kind = "InvalidTask"

    def __init__(self, problems: Iterable[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid task")


class QuotaExceededError(TaskHierarchyError):
    """The license/root-project check refused a new root task."""

    kind = "QuotaExceeded"


class PersistenceError(TaskHierarchyError):
    """A persistence collaborator call failed, possibly after partial writes."""

    kind = "PersistenceFailure"

    def __init__(self, message: str, *, written: Iterable[str] = (), failed: Iterable[str] = ()) -> None:
        self.written = list(written)
        self.failed = list(failed)
        super().__init__(message)
