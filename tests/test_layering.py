"""Tests for layering.py — predecessor normalisation and dependency layer assignment.

Covers:
  - as_task_id / predecessor_ids / index_tasks (input shapes)
  - LayerAssignment.resolve on chains, diamonds and forests
  - cycle fallback (2-cycles, self-loops, tasks downstream of a cycle)
  - deep chains resolved without recursion
"""

from __future__ import annotations

import logging

from graphmap.layering import LayerAssignment, as_task_id, index_tasks, predecessor_ids, resolve_layers

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_task(task_id, *requisites):
    """Create a task mapping using the ``requisites`` shape."""
    return {"task_id": task_id, "requisites": list(requisites)}


def make_chain(length: int) -> list[dict]:
    """1 ← 2 ← … ← length, each task requiring the previous one."""
    return [make_task(1)] + [make_task(i, i - 1) for i in range(2, length + 1)]


# ─── as_task_id Tests ─────────────────────────────────────────────────────────


class TestAsTaskId:
    def test_int_accepted(self):
        """Plain ints pass through unchanged."""
        assert as_task_id(7) == 7

    def test_integral_float_accepted(self):
        """3.0 → 3 (JSON encoders sometimes emit floats)."""
        assert as_task_id(3.0) == 3

    def test_fractional_float_rejected(self):
        """3.5 is not a task id."""
        assert as_task_id(3.5) is None

    def test_bool_rejected(self):
        """True is an int subclass but never a task id."""
        assert as_task_id(True) is None
        assert as_task_id(False) is None

    def test_string_rejected(self):
        """Numeric strings are not coerced."""
        assert as_task_id("3") is None
        assert as_task_id(None) is None


# ─── predecessor_ids Tests ────────────────────────────────────────────────────


class TestPredecessorIds:
    def test_requisites_shape(self):
        """requisites: [1, 2] → [1, 2]."""
        assert predecessor_ids({"task_id": 3, "requisites": [1, 2]}) == [1, 2]

    def test_plain_dependencies_shape(self):
        """dependencies: [4, 5] → [4, 5]."""
        assert predecessor_ids({"task_id": 3, "dependencies": [4, 5]}) == [4, 5]

    def test_structured_dependencies_shape(self):
        """dependencies: [{predecessor_task_id: 1, type: FS}] → [1]."""
        task = {"task_id": 3, "dependencies": [{"predecessor_task_id": 1, "type": "FS"}]}
        assert predecessor_ids(task) == [1]

    def test_shapes_merged_and_deduplicated(self):
        """All shapes combine, first-seen order, no duplicates."""
        task = {"task_id": 9, "requisites": [1, 2], "dependencies": [2, {"task_id": 3}]}
        assert predecessor_ids(task) == [1, 2, 3]

    def test_valid_ids_filter(self):
        """Ids outside valid_ids are dropped."""
        task = make_task(3, 1, 99)
        assert predecessor_ids(task, valid_ids={1, 3}) == [1]

    def test_non_list_fields_ignored(self):
        """requisites given as a scalar contributes nothing."""
        assert predecessor_ids({"task_id": 1, "requisites": 2}) == []


# ─── index_tasks Tests ────────────────────────────────────────────────────────


class TestIndexTasks:
    def test_first_duplicate_wins(self):
        """Two tasks with task_id 1 — the first is kept."""
        first = make_task(1)
        by_id = index_tasks([first, {"task_id": 1, "requisites": [5]}])
        assert by_id == {1: first}

    def test_invalid_entries_skipped(self):
        """Non-mappings and tasks without integer ids are skipped."""
        by_id = index_tasks(["nope", {"task_id": "x"}, make_task(2)])
        assert list(by_id) == [2]


# ─── LayerAssignment Tests ────────────────────────────────────────────────────


class TestLayerAssignment:
    def test_chain(self):
        """1 → 2 → 3 — layers 1, 2, 3."""
        result = resolve_layers(make_chain(3))
        assert result.layer_by_id == {1: 1, 2: 2, 3: 3}
        assert result.cycle_nodes == set()
        assert result.max_layer == 3

    def test_diamond_takes_deepest_predecessor(self):
        """1 → {2, 3} → 4, with 3 one deeper — 4 sits below the deepest."""
        tasks = [make_task(1), make_task(2, 1), make_task(5, 2), make_task(3, 5), make_task(4, 2, 3)]
        result = resolve_layers(tasks)
        assert result.layer_of(3) == 4, f"Expected 3 in layer 4, got {result.layer_of(3)}"
        assert result.layer_of(4) == 5, f"Expected 4 in layer 5, got {result.layer_of(4)}"

    def test_independent_roots(self):
        """Tasks with no predecessors all sit in layer 1."""
        result = resolve_layers([make_task(1), make_task(2), make_task(3)])
        assert set(result.layer_by_id.values()) == {1}

    def test_unknown_predecessor_ignored(self):
        """A predecessor id that names no task does not push the task down."""
        result = resolve_layers([make_task(1, 99)])
        assert result.layer_of(1) == 1

    def test_order_independent(self):
        """Reversing the input order yields the same layers."""
        tasks = make_chain(4)
        assert resolve_layers(tasks).layer_by_id == resolve_layers(list(reversed(tasks))).layer_by_id

    def test_empty(self):
        """No tasks — empty mapping, max_layer defaults to 1."""
        result = resolve_layers([])
        assert result.layer_by_id == {}
        assert result.max_layer == 1
        assert result.layer_of(42) == 1, "Unknown tasks fall back to layer 1"

    def test_two_cycle_falls_back(self):
        """A → B → A — both flagged and placed in layer 1."""
        result = LayerAssignment.resolve([make_task(1, 2), make_task(2, 1)])
        assert result.cycle_nodes == {1, 2}
        assert result.layer_of(1) == 1
        assert result.layer_of(2) == 1

    def test_self_loop(self):
        """A → A — flagged, layer 1."""
        result = resolve_layers([make_task(1, 1)])
        assert result.is_cyclic(1)
        assert result.layer_of(1) == 1

    def test_downstream_of_cycle(self):
        """A ⇄ B, C requires A — C sits in layer 2 and is not flagged."""
        result = resolve_layers([make_task(1, 2), make_task(2, 1), make_task(3, 1)])
        assert result.layer_of(3) == 2
        assert not result.is_cyclic(3), "Tasks below a cycle are not part of it"

    def test_three_cycle_with_tail(self):
        """1 → 2 → 3 → 1 plus root 0 required by 1 — cycle members all in layer 1."""
        tasks = [make_task(0), make_task(1, 0, 3), make_task(2, 1), make_task(3, 2)]
        result = resolve_layers(tasks)
        assert result.cycle_nodes == {1, 2, 3}
        assert {result.layer_of(i) for i in (1, 2, 3)} == {1}
        assert not result.is_cyclic(0)

    def test_cycle_logs_warning(self, caplog):
        """A detected cycle emits a warning naming the tasks."""
        with caplog.at_level(logging.WARNING, logger="graphmap.layering"):
            resolve_layers([make_task(1, 2), make_task(2, 1)])
        assert "cycle" in caplog.text.lower()

    def test_deep_chain_no_recursion_limit(self):
        """A 5000-long chain resolves iteratively, deepest first in input order."""
        tasks = list(reversed(make_chain(5000)))
        result = resolve_layers(tasks)
        assert result.layer_of(5000) == 5000
        assert result.max_layer == 5000
