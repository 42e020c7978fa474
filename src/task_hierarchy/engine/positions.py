"""Sparse sibling positions.

Siblings are ordered by an integer ``position``.  New keys leave a gap of
``step`` so later insertions can usually land between two neighbours without
touching anyone else.  When a gap closes the whole sibling group is
renumbered, preserving relative order.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence, Union

from ..constants import POSITION_STEP
from .errors import InvalidOrderError, PositionsExhausted
from .model import Task

logger = logging.getLogger(__name__)

PositionLike = Union[Task, int]


def _position(item: PositionLike) -> int:
    return item.position if isinstance(item, Task) else int(item)


def next_position(existing: Iterable[PositionLike], step: int = POSITION_STEP) -> int:
    """Return a key greater than every existing sibling position.

    The first sibling gets ``step``; later ones ``max + step``.
    """
    positions = [_position(item) for item in existing]
    if not positions:
        return step
    return max(positions) + step


def position_between(lower: int, upper: int) -> int:
    """Return a key strictly between two adjacent keys.

    Raises :class:`InvalidOrderError` when ``lower >= upper`` and
    :class:`PositionsExhausted` when no integer fits between them.
    """
    if lower >= upper:
        raise InvalidOrderError(f"Position {lower} is not below {upper}")
    if upper - lower < 2:
        raise PositionsExhausted(lower, upper)
    return lower + (upper - lower) // 2


def position_at(siblings: Sequence[PositionLike], index: int, step: int = POSITION_STEP) -> int:
    """Key that places a new sibling at *index* of the ordered *siblings*.

    *index* is clamped to ``[0, len(siblings)]``.  Inserting before the first
    sibling uses a virtual neighbour one ``step`` below it.
    """
    index = max(0, min(index, len(siblings)))
    if index == len(siblings):
        return next_position(siblings, step)
    upper = _position(siblings[index])
    lower = _position(siblings[index - 1]) if index > 0 else upper - step
    return position_between(lower, upper)


def evenly_spaced(count: int, step: int = POSITION_STEP) -> list[int]:
    return [step * (i + 1) for i in range(count)]


def renumber(siblings: Sequence[Task], step: int = POSITION_STEP) -> list[Task]:
    """Return *siblings* (already ordered) with fresh, evenly spaced positions."""
    return [replace(task, position=pos) for task, pos in zip(siblings, evenly_spaced(len(siblings), step))]


def allocate(siblings: Sequence[Task], index: int, step: int = POSITION_STEP) -> tuple[int, list[Task]]:
    """Pick a position for a new sibling at *index*.

    Returns ``(position, renumbered)`` where *renumbered* is empty unless the
    gap was exhausted, in which case it holds every existing sibling with its
    new position.
    """
    try:
        return position_at(siblings, index, step), []
    except PositionsExhausted as exc:
        logger.info("Positions exhausted between %s and %s; renumbering %d siblings",
                    exc.lower, exc.upper, len(siblings))
    index = max(0, min(index, len(siblings)))
    spaced = evenly_spaced(len(siblings) + 1, step)
    new_position = spaced.pop(index)
    renumbered = [replace(task, position=pos) for task, pos in zip(siblings, spaced)]
    return new_position, renumbered
