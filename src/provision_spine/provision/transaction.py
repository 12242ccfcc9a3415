"""Transaction context - rollback actions, finalizers and step timings.

Two kinds of deferred work are collected while the workflow runs:

- **Rollback actions** undo a remote side effect (e.g. delete an uploaded
  object).  They run only when the workflow fails, all at once through
  :func:`~provision_spine.execution.tasks.run_tasks`, and a failing action
  is logged as a warning without affecting its siblings.
- **Finalizers** are local cleanup (e.g. delete a scratch file).  They run
  after the step loop exits on both the success and the failure path,
  sequentially, in registration order, after any rollback has finished.

Registration happens only on the controlling thread.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from provision_spine.execution.tasks import run_tasks
from provision_spine.provision.interfaces import Finalizer, RollbackAction


@dataclass(frozen=True)
class StepDuration:
    """Wall-clock time spent in one named phase."""

    name: str
    seconds: float


@dataclass
class Transaction:
    """Deferred work and timings scoped to one provisioning run."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    rollbacks: list[RollbackAction] = field(default_factory=list)
    finalizers: list[Finalizer] = field(default_factory=list)
    step_durations: list[StepDuration] = field(default_factory=list)
    rolled_back: bool = False
    finalized: bool = False

    _started: float = field(default_factory=time.perf_counter, repr=False)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_rollback(self, action: RollbackAction) -> None:
        self.rollbacks.append(action)

    def register_finalizer(self, finalizer: Finalizer) -> None:
        self.finalizers.append(finalizer)

    def register_file_cleanup(self, path: Path | str) -> None:
        """Delete ``path`` when the workflow exits."""
        local_path = Path(path)

        def cleanup(logger: Any) -> None:
            try:
                local_path.unlink()
            except FileNotFoundError:
                logger.debug("transaction.cleanup.missing", path=str(local_path))
            except OSError as e:
                logger.warning(
                    "transaction.cleanup.failed",
                    path=str(local_path),
                    error=str(e),
                )
            else:
                logger.debug("transaction.cleanup.deleted", path=str(local_path))

        self.register_finalizer(cleanup)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def record_duration(self, name: str, seconds: float) -> None:
        self.step_durations.append(StepDuration(name=name, seconds=seconds))

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Record how long the enclosed block took, even if it raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_duration(name, time.perf_counter() - started)

    @property
    def elapsed_seconds(self) -> float:
        return time.perf_counter() - self._started

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def rollback(
        self,
        logger: Any,
        hooks: Sequence[Callable[[], None]] = (),
    ) -> int:
        """Run every rollback action and rollback hook concurrently.

        Returns:
            The number of actions that failed, counting those that
            returned ``False``. Failures are logged as warnings and never
            raised.
        """
        if self.rolled_back:
            return 0
        self.rolled_back = True

        with self.timed("Rollback"):
            logger.info(
                "transaction.rollback.start",
                actions=len(self.rollbacks),
                hooks=len(hooks),
            )
            tasks = [_bind_logger(action, logger) for action in self.rollbacks]
            tasks.extend(hooks)
            outcome = run_tasks(tasks)
            failed = 0
            for result in outcome.results:
                if result.ok and result.value is not False:
                    continue
                failed += 1
                logger.warning(
                    "transaction.rollback.action_failed",
                    index=result.index,
                    error=str(result.error) if result.error is not None else "rollback action reported failure",
                )
        return failed

    def finalize(self, logger: Any) -> None:
        """Run finalizers sequentially in registration order."""
        if self.finalized:
            return
        self.finalized = True

        logger.debug("transaction.finalize", count=len(self.finalizers))
        for finalizer in self.finalizers:
            try:
                finalizer(logger)
            except Exception as e:
                logger.warning("transaction.finalizer_failed", error=str(e))


def _bind_logger(action: RollbackAction, logger: Any) -> Callable[[], bool | None]:
    return lambda: action(logger)
