"""Format change-sets and operation results for log lines."""

from __future__ import annotations

from typing import Any

from .engine.changes import ChangeSet
from .engine.operations import OperationResult


def summarize_change_set(changes: ChangeSet | None, max_ids: int = 5) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a change-set.

    Args:
        changes: Change-set to summarize (or None).
        max_ids: Maximum number of ids listed per bucket.

    Returns:
        A dictionary with counts, sample ids and the set of changed field names.
    """
    if changes is None:
        return {"changes": None}

    fields: set[str] = set()
    for change in changes.updated:
        fields.update(change.changed_fields)

    def _sample(ids: list[str]) -> list[str]:
        return ids[:max_ids] + (["…"] if len(ids) > max_ids else [])

    return {
        "created_n": len(changes.created),
        "updated_n": len(changes.updated),
        "deleted_n": len(changes.deleted),
        "created": _sample([t.id for t in changes.created]),
        "updated": _sample([c.task_id for c in changes.updated]),
        "deleted": _sample(list(changes.deleted)),
        "fields": sorted(fields),
    }


def summarize_result(operation: str, result: OperationResult) -> dict[str, Any]:
    d: dict[str, Any] = {"operation": operation, "task_id": result.task_id}
    d.update(summarize_change_set(result.changes))
    if result.warnings:
        d["warnings"] = list(result.warnings)
    return d

