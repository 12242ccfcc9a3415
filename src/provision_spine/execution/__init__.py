"""Concurrency primitives used by the provisioning workflow."""

from provision_spine.execution.tasks import Task, TaskError, TaskResult, TaskRunResult, run_tasks

__all__ = ["Task", "TaskError", "TaskResult", "TaskRunResult", "run_tasks"]
