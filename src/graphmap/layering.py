"""Dependency layering — turns task predecessor graphs into integer layers.

A task with no predecessors sits in layer 1; every other task sits one layer
below its deepest predecessor. Predecessor cycles are tolerated: every task on
a detected cycle is flagged and placed in layer 1, so resolution always
terminates on malformed input.

Tasks arrive as plain mappings (decoded JSON). Predecessors may be given in
several shapes, all of which are normalised by ``predecessor_ids``:

    {"task_id": 3, "requisites": [1, 2]}
    {"task_id": 3, "dependencies": [1, 2]}
    {"task_id": 3, "dependencies": [{"predecessor_task_id": 1, "type": "FS"}]}
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_DEPENDENCY_ID_KEYS = ("predecessor_task_id", "task_id", "id")


# ─── Predecessor Normalisation ──────────────────────────────────────────────


def as_task_id(value: Any) -> int | None:
    """Return ``value`` as an integer task id, or None if it is not one.

    Booleans are rejected even though they are ints. Integral floats
    (``3.0``) are accepted since JSON encoders sometimes emit them.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def predecessor_ids(task: Mapping[str, Any], valid_ids: set[int] | None = None) -> list[int]:
    """Collect the predecessor ids of one task from every supported shape.

    Args:
        task: The task mapping.
        valid_ids: When given, ids outside this set are discarded.

    Returns:
        De-duplicated predecessor ids in first-seen order.
    """
    seen: dict[int, None] = {}

    def add(raw: Any) -> None:
        task_id = as_task_id(raw)
        if task_id is None:
            return
        if valid_ids is not None and task_id not in valid_ids:
            return
        seen.setdefault(task_id, None)

    requisites = task.get("requisites")
    if isinstance(requisites, list):
        for raw in requisites:
            add(raw)

    dependencies = task.get("dependencies")
    if isinstance(dependencies, list):
        for dep in dependencies:
            if isinstance(dep, Mapping):
                for key in _DEPENDENCY_ID_KEYS:
                    add(dep.get(key))
            else:
                add(dep)

    return list(seen)


def index_tasks(tasks: Iterable[Any]) -> dict[int, Mapping[str, Any]]:
    """Map task id → task for every task carrying an integer ``task_id``.

    The first task wins when ids repeat.
    """
    by_id: dict[int, Mapping[str, Any]] = {}
    for task in tasks:
        if not isinstance(task, Mapping):
            logger.warning("Skipping non-mapping task entry: %r", task)
            continue
        task_id = as_task_id(task.get("task_id"))
        if task_id is None:
            logger.warning("Skipping task without an integer task_id: %r", task.get("task_id"))
            continue
        if task_id in by_id:
            logger.warning("Duplicate task_id %d, keeping the first occurrence", task_id)
            continue
        by_id[task_id] = task
    return by_id


# ─── Layer Assignment ───────────────────────────────────────────────────────


@dataclass
class _Frame:
    task_id: int
    preds: Iterator[int]
    deepest: int = 0


@dataclass
class LayerAssignment:
    """Result of dependency layering.

    Attributes:
        layer_by_id: Maps task id → layer (always ≥ 1).
        cycle_nodes: Task ids that sit on a predecessor cycle. These carry the
            fallback layer 1 regardless of their other predecessors.
    """

    layer_by_id: dict[int, int] = field(default_factory=dict)
    cycle_nodes: set[int] = field(default_factory=set)

    @property
    def max_layer(self) -> int:
        """Deepest layer, or 1 when no task was layered."""
        return max(self.layer_by_id.values(), default=1)

    def layer_of(self, task_id: int, default: int = 1) -> int:
        return self.layer_by_id.get(task_id, default)

    def is_cyclic(self, task_id: int) -> bool:
        return task_id in self.cycle_nodes

    @classmethod
    def resolve(cls, tasks: Iterable[Any]) -> LayerAssignment:
        """Assign a dependency layer to every task with an integer id.

        Depth-first with memoisation over an explicit stack, so deep chains
        never hit the interpreter's recursion limit. Each task is completed
        exactly once, which keeps the whole pass O(V + E).

        When the walk reaches a task that is still in progress, the tasks on
        the current path from that task upward form a cycle: all of them are
        flagged, the revisit contributes layer 1, and each flagged task takes
        layer 1 when it completes.
        """
        by_id = index_tasks(tasks)
        valid_ids = set(by_id)
        result = cls()
        layers = result.layer_by_id
        visiting: set[int] = set()

        for root in by_id:
            if root in layers:
                continue
            stack = [_Frame(root, iter(predecessor_ids(by_id[root], valid_ids)))]
            visiting.add(root)

            while stack:
                frame = stack[-1]
                descended = False
                for pred in frame.preds:
                    if pred in layers:
                        frame.deepest = max(frame.deepest, layers[pred])
                    elif pred in visiting:
                        result._flag_cycle(stack, pred)
                        frame.deepest = max(frame.deepest, 1)
                    else:
                        visiting.add(pred)
                        stack.append(_Frame(pred, iter(predecessor_ids(by_id[pred], valid_ids))))
                        descended = True
                        break
                if descended:
                    continue

                stack.pop()
                visiting.discard(frame.task_id)
                if frame.task_id in result.cycle_nodes:
                    layer = 1
                else:
                    layer = max(1, frame.deepest + 1)
                layers[frame.task_id] = layer
                if stack:
                    stack[-1].deepest = max(stack[-1].deepest, layer)

        if result.cycle_nodes:
            logger.warning(
                "Dependency cycle detected among tasks %s; they fall back to layer 1",
                sorted(result.cycle_nodes),
            )
        return result

    def _flag_cycle(self, stack: list[_Frame], revisited: int) -> None:
        """Flag every task on the stack from ``revisited`` to the top."""
        for frame in reversed(stack):
            self.cycle_nodes.add(frame.task_id)
            if frame.task_id == revisited:
                break


def resolve_layers(tasks: Iterable[Any]) -> LayerAssignment:
    """Convenience wrapper around ``LayerAssignment.resolve``."""
    return LayerAssignment.resolve(tasks)
