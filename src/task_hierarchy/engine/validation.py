"""Check a snapshot against the hierarchy invariants."""

from __future__ import annotations

from collections import defaultdict

from .dates import coerce_date, days_between
from .durations import effective_duration
from .errors import InvalidDateError
from .tree import TaskTree


def _same_instant(a: object, b: object) -> bool:
    try:
        return coerce_date(a) == coerce_date(b)
    except InvalidDateError:
        return False


def _valid_date(value: object) -> bool:
    try:
        coerce_date(value)
    except InvalidDateError:
        return False
    return True


def _cyclic_ids(tree: TaskTree) -> list[str]:
    cyclic: list[str] = []
    for task in tree:
        seen = {task.id}
        current = tree.get(task.parent_task_id)
        while current is not None:
            if current.id == task.id:
                cyclic.append(task.id)
                break
            if current.id in seen:
                break
            seen.add(current.id)
            current = tree.get(current.parent_task_id)
    return cyclic


def validate_tree(tree: TaskTree) -> list[str]:
    """Return every invariant violation found in *tree* (empty = consistent).

    Checks tree shape (no cycles, no dangling parents, no template/instance
    mixing), unique sibling positions, stored parent durations, parent
    date spans and back-to-back scheduling of siblings.
    """
    cyclic = set(_cyclic_ids(tree))
    problems = [f"Task {task_id} is its own ancestor" for task_id in sorted(cyclic)]

    groups: dict[tuple, list[str]] = defaultdict(list)
    for task in tree:
        parent_id = task.parent_task_id
        if parent_id is not None and parent_id not in tree:
            problems.append(f"Task {task.id} references missing parent {parent_id}")
        parent = tree.get(parent_id)
        if parent is not None and parent.origin != task.origin:
            problems.append(
                f"Task {task.id} ({task.origin.value}) is a child of {parent.id} ({parent.origin.value})"
            )
        group_key = (parent_id, None if parent_id is not None else task.origin)
        groups[group_key].append(task.id)
        for name in ("start_date", "due_date"):
            value = getattr(task, name)
            if value is not None and not _valid_date(value):
                problems.append(f"Task {task.id} has an invalid {name} {value!r}")

    for (parent_id, _), ids in groups.items():
        positions = [tree.get(i).position for i in ids]
        if len(set(positions)) != len(positions):
            problems.append(f"Siblings under {parent_id or 'the root'} share positions: {sorted(positions)}")

    for task in tree:
        if task.id in cyclic:
            continue
        children = tree.children(task.id)
        if not children:
            if task.start_date and task.due_date:
                try:
                    span = days_between(task.start_date, task.due_date)
                except InvalidDateError:
                    continue
                if span != task.duration_days:
                    problems.append(f"Task {task.id} spans {span} days but lasts {task.duration_days}")
            continue
        expected = effective_duration(tree, task.id)
        if task.duration_days != expected:
            problems.append(f"Task {task.id} stores duration {task.duration_days} but its children sum to {expected}")
        if task.start_date and children[0].start_date and not _same_instant(task.start_date, children[0].start_date):
            problems.append(f"Task {task.id} starts at {task.start_date}, first child {children[0].id} at {children[0].start_date}")
        if task.due_date and children[-1].due_date and not _same_instant(task.due_date, children[-1].due_date):
            problems.append(f"Task {task.id} is due {task.due_date}, last child {children[-1].id} {children[-1].due_date}")
        for prev, nxt in zip(children, children[1:]):
            if prev.due_date and nxt.start_date and not _same_instant(prev.due_date, nxt.start_date):
                problems.append(f"Task {nxt.id} starts at {nxt.start_date} but {prev.id} is due {prev.due_date}")
    return problems
