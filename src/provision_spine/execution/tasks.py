"""Task Runner - bounded thread-pool fan-out with wait-for-all semantics.

WHY
───
Provisioning has exactly three places where independent remote calls can
overlap: uploading artifacts, pushing in-place Lambda code updates, and
undoing side effects during rollback.  Each call blocks on the network, so
a ``ThreadPoolExecutor`` gives real concurrency without an event loop.

ARCHITECTURE
────────────
::

    run_tasks([task_0, task_1, ...], concurrency=N)
      ├── submit every task to a ThreadPoolExecutor(max_workers=N)
      ├── wait for ALL futures (no early exit on failure)
      └── TaskRunResult
            ├── .results   ─ one TaskResult per task, in task order
            ├── .errors    ─ one TaskError per failing task (any order)
            └── .ok        ─ True when no task failed

Callers treat a non-empty ``errors`` list as failure of the whole
fan-out; there is no partial-success continuation.  Tasks must not touch
shared workflow state; they hand their value back through ``TaskResult``
and the caller applies it.

Example::

    outcome = run_tasks([upload_code, upload_site])
    if not outcome.ok:
        raise StorageError(f"Encountered errors during upload: {outcome.errors}")
    code, site = outcome.values()
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from provision_spine.core.logging import get_logger

logger = get_logger(__name__)

Task = Callable[[], Any]


@dataclass(frozen=True)
class TaskResult:
    """Outcome of a single task, identified by its position."""

    index: int
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class TaskError:
    """Error raised by the task at ``index``."""

    index: int
    error: BaseException

    def __str__(self) -> str:
        return f"task[{self.index}]: {self.error}"


@dataclass
class TaskRunResult:
    """Aggregate result of one fan-out."""

    results: list[TaskResult] = field(default_factory=list)
    errors: list[TaskError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def values(self) -> list[Any]:
        """Task values in task order (``None`` for failed tasks)."""
        return [r.value for r in self.results]


def _run_one(index: int, task: Task) -> TaskResult:
    try:
        return TaskResult(index=index, value=task())
    except Exception as e:
        return TaskResult(index=index, error=e)


def run_tasks(tasks: Sequence[Task], concurrency: int | None = None) -> TaskRunResult:
    """Run ``tasks`` concurrently and wait for every one of them.

    Args:
        tasks: Zero-argument callables.
        concurrency: Worker count; defaults to ``len(tasks)`` so every task
            is dispatched immediately.

    Returns:
        :class:`TaskRunResult` with per-task results in task order and
        one error entry per failing task.
    """
    outcome = TaskRunResult()
    if not tasks:
        return outcome

    max_workers = max(1, min(concurrency or len(tasks), len(tasks)))
    slots: list[TaskResult | None] = [None] * len(tasks)

    logger.debug("tasks.start", count=len(tasks), concurrency=max_workers)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_run_one, index, task) for index, task in enumerate(tasks)]
        for future in as_completed(futures):
            result = future.result()
            slots[result.index] = result
            if result.error is not None:
                outcome.errors.append(TaskError(index=result.index, error=result.error))

    outcome.results = [slot for slot in slots if slot is not None]
    logger.debug("tasks.complete", count=len(tasks), failed=len(outcome.errors))
    return outcome


__all__ = [
    "Task",
    "TaskError",
    "TaskResult",
    "TaskRunResult",
    "run_tasks",
]
