"""Tests for the hierarchy operations (engine/operations.py)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from task_hierarchy.engine import operations as ops
from task_hierarchy.engine.errors import (
    InvalidDateError,
    InvalidHierarchyError,
    InvalidOrderError,
    InvalidTaskError,
    NotFoundError,
)
from task_hierarchy.engine.model import Task, TaskOrigin
from task_hierarchy.engine.tree import TaskTree
from task_hierarchy.engine.validation import validate_tree

JAN_1 = "2024-01-01T00:00:00+00:00"


def _day(n: int, month: int = 1) -> str:
    return f"2024-{month:02d}-{n:02d}T00:00:00+00:00"


def _project(*durations: int, start: str = JAN_1) -> tuple[TaskTree, str, list[str]]:
    """Build a project root with one leaf child per duration, in order."""
    result = ops.create_task(TaskTree(), {"title": "Project", "start_date": start})
    tree, root_id = result.tree, result.task_id
    child_ids = []
    for i, days in enumerate(durations):
        result = ops.create_task(tree, {"title": f"C{i}", "parent_task_id": root_id, "duration_days": days})
        tree = result.tree
        child_ids.append(result.task_id)
    return tree, root_id, child_ids


def _template(*durations: int) -> tuple[TaskTree, str, list[str]]:
    result = ops.create_task(TaskTree(), {"title": "Template", "origin": "template"})
    tree, root_id = result.tree, result.task_id
    child_ids = []
    for i, days in enumerate(durations):
        result = ops.create_task(tree, {"title": f"T{i}", "parent_task_id": root_id, "default_duration": days})
        tree = result.tree
        child_ids.append(result.task_id)
    return tree, root_id, child_ids


class TestCreate:
    def test_project_with_two_children(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        assert (tree.get(a).start_date, tree.get(a).due_date) == (_day(1), _day(3))
        assert (tree.get(b).start_date, tree.get(b).due_date) == (_day(3), _day(6))
        root = tree.get(root_id)
        assert root.due_date == _day(6)
        assert root.duration_days == 5
        assert validate_tree(tree) == []

    def test_positions_are_sparse(self) -> None:
        tree, root_id, ids = _project(1, 1, 1)
        assert [tree.get(i).position for i in ids] == [1000, 2000, 3000]

    def test_insert_at_index_reschedules_siblings(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        result = ops.create_task(tree, {"title": "First", "parent_task_id": root_id, "duration_days": 1}, index=0)
        tree = result.tree
        assert tree.child_ids(root_id) == [result.task_id, a, b]
        assert tree.get(result.task_id).position == 500
        assert tree.get(a).start_date == _day(2)
        assert tree.get(b).due_date == _day(7)
        assert tree.get(root_id).duration_days == 6
        assert {c.task_id for c in result.changes.updated} == {a, b, root_id}

    def test_change_set_for_new_child(self) -> None:
        tree, root_id, _ = _project(2)
        result = ops.create_task(tree, {"title": "B", "parent_task_id": root_id, "duration_days": 3})
        assert [t.id for t in result.changes.created] == [result.task_id]
        assert [c.task_id for c in result.changes.updated] == [root_id]
        assert result.changes.change_for(root_id).fields == {"due_date": _day(6), "duration_days": 5}

    def test_instance_root_defaults_to_now(self) -> None:
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        result = ops.create_task(TaskTree(), {"title": "Project"}, now=now)
        assert result.task.start_date == "2024-05-01T00:00:00+00:00"
        assert result.task.due_date == "2024-05-02T00:00:00+00:00"

    def test_template_root_has_no_dates(self) -> None:
        tree, root_id, (t1, t2) = _template(1, 4)
        root = tree.get(root_id)
        assert root.origin == TaskOrigin.TEMPLATE
        assert root.start_date is None and root.due_date is None
        assert root.duration_days == 5
        assert tree.get(t2).origin == TaskOrigin.TEMPLATE

    def test_missing_parent(self) -> None:
        with pytest.raises(NotFoundError):
            ops.create_task(TaskTree(), {"title": "x", "parent_task_id": "ghost"})

    def test_origin_mismatch(self) -> None:
        tree, root_id, _ = _project(1)
        with pytest.raises(InvalidHierarchyError):
            ops.create_task(tree, {"title": "x", "parent_task_id": root_id, "origin": "template"})

    def test_taken_position(self) -> None:
        tree, root_id, _ = _project(1)
        with pytest.raises(InvalidOrderError):
            ops.create_task(tree, {"title": "x", "parent_task_id": root_id, "position": 1000})

    def test_invalid_payload(self) -> None:
        with pytest.raises(InvalidTaskError):
            ops.create_task(TaskTree(), {"title": ""})

    def test_invalid_start_date(self) -> None:
        with pytest.raises(InvalidDateError):
            ops.create_task(TaskTree(), {"title": "x", "start_date": "next tuesday"})

    def test_malformed_sibling_due_date_is_repaired(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P", start_date=JAN_1, duration_days=2),
            Task(id="a", title="A", parent_task_id="p", position=1000, duration_days=2,
                 start_date=JAN_1, due_date="not-a-date"),
        ])
        result = ops.create_task(tree, {"title": "B", "parent_task_id": "p", "duration_days": 3})
        tree = result.tree
        assert tree.get("a").due_date == _day(3)
        new = tree.get(result.task_id)
        assert (new.start_date, new.due_date) == (_day(3), _day(6))
        assert tree.get("p").duration_days == 5
        assert result.changes.change_for("a").fields["due_date"] == _day(3)
        assert validate_tree(tree) == []

    def test_input_snapshot_untouched(self) -> None:
        tree, root_id, _ = _project(2)
        before = tree.get(root_id)
        ops.create_task(tree, {"title": "B", "parent_task_id": root_id, "duration_days": 3})
        assert tree.get(root_id) is before
        assert before.duration_days == 2


class TestUpdate:
    def test_leaf_duration_propagates(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        result = ops.update_task(tree, a, {"duration_days": 4})
        tree = result.tree
        assert tree.get(a).due_date == _day(5)
        assert tree.get(b).start_date == _day(5)
        assert tree.get(root_id).duration_days == 7
        assert validate_tree(tree) == []

    def test_payload_edit_touches_one_task(self) -> None:
        tree, root_id, (a,) = _project(2)
        result = ops.update_task(tree, a, {"title": "Renamed", "is_complete": True})
        assert len(result.changes) == 1
        assert result.changes.change_for(a).fields == {"title": "Renamed", "is_complete": True}

    def test_parent_duration_edit_is_ignored(self) -> None:
        tree, root_id, _ = _project(2, 3)
        result = ops.update_task(tree, root_id, {"duration_days": 10})
        assert result.tree.get(root_id).duration_days == 5
        assert result.warnings
        assert result.changes.is_empty

    def test_default_duration_drives_leaf(self) -> None:
        tree, root_id, (a,) = _project(2)
        result = ops.update_task(tree, a, {"default_duration": 6})
        assert result.tree.get(a).duration_days == 6
        assert result.tree.get(root_id).duration_days == 6

    def test_locked_fields(self) -> None:
        tree, root_id, (a,) = _project(2)
        with pytest.raises(InvalidTaskError):
            ops.update_task(tree, a, {"position": 5})


class TestDelete:
    def test_middle_child_gap_closes(self) -> None:
        tree, root_id, (a, b, c) = _project(2, 3, 4)
        result = ops.delete_subtree(tree, b)
        tree = result.tree
        assert b not in tree
        assert tree.child_ids(root_id) == [a, c]
        assert tree.get(c).start_date == tree.get(a).due_date == _day(3)
        # sum of the remaining children: 2 + 4
        assert tree.get(root_id).duration_days == 6
        assert tree.get(root_id).due_date == _day(7)
        assert result.changes.deleted == [b]
        assert validate_tree(tree) == []

    def test_subtree_is_removed_children_first(self) -> None:
        tree, root_id, (a,) = _project(2)
        nested = ops.create_task(tree, {"title": "Nested", "parent_task_id": a, "duration_days": 1})
        result = ops.delete_subtree(nested.tree, root_id)
        assert len(result.tree) == 0
        assert result.changes.deleted == [nested.task_id, a, root_id]
        assert result.details["deleted_ids"] == [root_id, a, nested.task_id]

    def test_date_failure_still_deletes(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P", start_date="garbage", duration_days=5),
            Task(id="a", title="A", parent_task_id="p", position=1000, duration_days=3),
            Task(id="b", title="B", parent_task_id="p", position=2000, duration_days=2),
        ])
        result = ops.delete_subtree(tree, "a")
        assert "a" not in result.tree
        assert result.changes.deleted == ["a"]
        assert result.tree.get("p").duration_days == 2
        assert len(result.warnings) == 1
        assert "not recalculated" in result.warnings[0]

    def test_missing(self) -> None:
        with pytest.raises(NotFoundError):
            ops.delete_subtree(TaskTree(), "ghost")


class TestMove:
    def test_reorder_within_parent(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        result = ops.move_task(tree, b, root_id, 0)
        tree = result.tree
        assert tree.child_ids(root_id) == [b, a]
        assert tree.get(b).position == 500
        assert (tree.get(b).start_date, tree.get(b).due_date) == (_day(1), _day(4))
        assert tree.get(a).due_date == _day(6)
        assert validate_tree(tree) == []

    def test_same_place_is_a_no_op(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        assert ops.move_task(tree, a, root_id, 0).changes.is_empty

    def test_move_between_projects(self) -> None:
        tree, p1, (a, b) = _project(2, 3)
        other = ops.create_task(tree, {"title": "Other", "start_date": _day(1, 2)})
        tree, p2 = other.tree, other.task_id
        leaf = ops.create_task(tree, {"title": "L", "parent_task_id": p2, "duration_days": 1})
        tree = ops.move_task(leaf.tree, b, p2).tree
        assert tree.get(p1).duration_days == 2
        assert tree.get(p2).duration_days == 4
        assert tree.get(b).start_date == _day(2, 2)
        assert validate_tree(tree) == []

    def test_cannot_move_under_descendant(self) -> None:
        tree, root_id, (a,) = _project(2)
        with pytest.raises(InvalidHierarchyError):
            ops.move_task(tree, root_id, a)

    def test_cannot_mix_origins(self) -> None:
        tree, root_id, (a,) = _project(2)
        template = ops.create_task(tree, {"title": "T", "origin": "template"})
        with pytest.raises(InvalidHierarchyError):
            ops.move_task(template.tree, a, template.task_id)

    def test_renumbers_when_positions_run_out(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P", start_date=JAN_1),
            Task(id="a", title="A", parent_task_id="p", position=1, duration_days=1),
            Task(id="b", title="B", parent_task_id="p", position=2, duration_days=1),
            Task(id="c", title="C", parent_task_id="p", position=3, duration_days=1),
        ])
        result = ops.move_task(tree, "c", "p", 1)
        assert result.tree.child_ids("p") == ["a", "c", "b"]
        assert result.details["renumbered"] is True
        positions = [t.position for t in result.tree.children("p")]
        assert positions == sorted(positions)

    def test_renumbering_writes_only_moved_positions(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P", start_date=JAN_1, duration_days=2),
            Task(id="a", title="A", parent_task_id="p", position=1000, duration_days=1,
                 start_date=_day(1), due_date=_day(2)),
            Task(id="b", title="B", parent_task_id="p", position=1001, duration_days=1,
                 start_date=_day(2), due_date=_day(3)),
        ])
        result = ops.create_task(tree, {"title": "N", "parent_task_id": "p", "duration_days": 1}, index=1)
        assert [t.position for t in result.tree.children("p")] == [1000, 2000, 3000]
        assert result.changes.change_for("a") is None
        assert result.changes.change_for("b").fields["position"] == 3000


class TestDates:
    def test_set_start_date_cascades(self) -> None:
        tree, root_id, (a, b) = _project(2, 3)
        tree = ops.set_start_date(tree, root_id, "2024-02-01").tree
        assert tree.get(a).start_date == _day(1, 2)
        assert tree.get(b).due_date == _day(6, 2)

    def test_child_cannot_be_reanchored(self) -> None:
        tree, root_id, (a,) = _project(2)
        with pytest.raises(InvalidHierarchyError):
            ops.set_start_date(tree, a, JAN_1)

    def test_invalid_date(self) -> None:
        tree, root_id, _ = _project(2)
        with pytest.raises(InvalidDateError):
            ops.set_start_date(tree, root_id, "soon")

    def test_recalculate_repairs_stale_values(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P", start_date=JAN_1, duration_days=9),
            Task(id="a", title="A", parent_task_id="p", position=1000, duration_days=2),
            Task(id="b", title="B", parent_task_id="p", position=2000, duration_days=3),
        ])
        assert validate_tree(tree) != []
        result = ops.recalculate_tree(tree, "b")
        assert result.task_id == "p"
        assert validate_tree(result.tree) == []

    def test_renumber_siblings(self) -> None:
        tree = TaskTree([
            Task(id="p", title="P"),
            Task(id="a", title="A", parent_task_id="p", position=5),
            Task(id="b", title="B", parent_task_id="p", position=7),
        ])
        result = ops.renumber_siblings(tree, "p")
        assert [t.position for t in result.tree.children("p")] == [1000, 2000]
        assert len(result.changes.updated) == 2


class TestCloneTemplate:
    def test_clone_schedules_from_anchor(self) -> None:
        tree, template_id, (t1, t2) = _template(1, 4)
        result = ops.clone_template(tree, template_id, "2024-03-01T00:00:00Z", creator="u1", license_id="lic")
        tree = result.tree
        root = result.task
        assert root.origin == TaskOrigin.INSTANCE
        assert root.license_id == "lic"
        assert root.creator == "u1"
        c1, c2 = tree.children(root.id)
        assert (c1.start_date, c1.due_date) == (_day(1, 3), _day(2, 3))
        assert (c2.start_date, c2.due_date) == (_day(2, 3), _day(6, 3))
        assert root.due_date == _day(6, 3)
        assert root.duration_days == 5
        assert [c1.default_duration, c2.default_duration] == [1, 4]
        assert c1.license_id is None
        assert validate_tree(tree) == []

    def test_clone_leaves_template_untouched(self) -> None:
        tree, template_id, (t1, t2) = _template(1, 4)
        result = ops.clone_template(tree, template_id, JAN_1)
        assert len(result.changes.created) == 3
        assert result.changes.updated == []
        assert set(result.details["id_map"]) == {template_id, t1, t2}
        assert result.changes.created[0].id == result.task_id

    def test_clone_appends_to_instance_roots(self) -> None:
        tree, template_id, _ = _template(1)
        first = ops.clone_template(tree, template_id, JAN_1)
        second = ops.clone_template(first.tree, template_id, JAN_1, title="Second")
        assert second.task.position == first.task.position + 1000
        assert second.task.title == "Second"

    def test_clone_requires_template(self) -> None:
        tree, root_id, _ = _project(1)
        with pytest.raises(InvalidHierarchyError):
            ops.clone_template(tree, root_id, JAN_1)
