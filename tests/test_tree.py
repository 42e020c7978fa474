"""Tests for the snapshot index (engine/tree.py)."""

from __future__ import annotations

import pytest

from task_hierarchy.engine.errors import NotFoundError
from task_hierarchy.engine.model import Task, TaskOrigin
from task_hierarchy.engine.tree import TaskTree


@pytest.fixture
def tree() -> TaskTree:
    return TaskTree([
        Task(id="p", title="Project", position=1000),
        Task(id="b", title="B", parent_task_id="p", position=2000),
        Task(id="a", title="A", parent_task_id="p", position=1000),
        Task(id="a1", title="A1", parent_task_id="a", position=1000),
        Task(id="t", title="Template", position=1000, origin=TaskOrigin.TEMPLATE),
    ])


class TestLookups:
    def test_children_ordered_by_position(self, tree: TaskTree) -> None:
        assert [t.id for t in tree.children("p")] == ["a", "b"]

    def test_ties_broken_by_id(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P"),
            Task(id="z", title="Z", parent_task_id="p", position=1000),
            Task(id="y", title="Y", parent_task_id="p", position=1000),
        ])
        assert tree.child_ids("p") == ["y", "z"]

    def test_require_missing(self, tree: TaskTree) -> None:
        with pytest.raises(NotFoundError):
            tree.require("nope")

    def test_roots_grouped_by_origin(self, tree: TaskTree) -> None:
        assert [t.id for t in tree.roots(TaskOrigin.INSTANCE)] == ["p"]
        assert [t.id for t in tree.siblings(None, TaskOrigin.TEMPLATE)] == ["t"]
        assert len(tree.roots()) == 2

    def test_dangling_parent_is_a_root(self) -> None:
        tree = TaskTree([Task(id="orphan", title="O", parent_task_id="ghost")])
        assert tree.child_ids(None) == ["orphan"]
        assert tree.root_of("orphan").id == "orphan"


class TestTraversal:
    def test_ancestors_nearest_first(self, tree: TaskTree) -> None:
        assert [t.id for t in tree.ancestors("a1")] == ["a", "p"]
        assert tree.depth("a1") == 2
        assert tree.root_of("a1").id == "p"

    def test_descendants_pre_order(self, tree: TaskTree) -> None:
        assert [t.id for t in tree.descendants("p")] == ["p", "a", "a1", "b"]

    def test_levels(self, tree: TaskTree) -> None:
        assert [[t.id for t in level] for level in tree.levels("p")] == [["p"], ["a", "b"], ["a1"]]

    def test_is_descendant(self, tree: TaskTree) -> None:
        assert tree.is_descendant("a1", "p")
        assert not tree.is_descendant("p", "a1")

    def test_cycle_terminates(self) -> None:
        tree = TaskTree([
            Task(id="x", title="X", parent_task_id="y"),
            Task(id="y", title="Y", parent_task_id="x"),
        ])
        assert [t.id for t in tree.ancestors("x")] == ["y"]
        assert [t.id for t in tree.descendants("x")] == ["x", "y"]


class TestDerivations:
    def test_with_tasks_is_copy_on_write(self, tree: TaskTree) -> None:
        updated = tree.with_tasks([Task(id="c", title="C", parent_task_id="p", position=3000)])
        assert "c" in updated
        assert "c" not in tree
        assert updated.child_ids("p") == ["a", "b", "c"]

    def test_without(self, tree: TaskTree) -> None:
        smaller = tree.without(["a", "a1"])
        assert len(smaller) == len(tree) - 2
        assert smaller.child_ids("p") == ["b"]
