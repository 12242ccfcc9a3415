"""Provisioner - drives the step chain for one service.

Example::

    provisioner = Provisioner(services, ProvisionConfig(bucket="artifacts"))
    summary = provisioner.provision(service, hooks=hooks)
    for step in summary.steps:
        print(step.name, step.seconds)

Failure semantics: the first failing step stops the chain.  Rollback runs
once, then finalizers, then a :class:`ProvisionError` wrapping a
:class:`StepError` is raised.  Finalizers also run after a successful
chain.  No step is retried.
"""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from functools import partial
from typing import IO, Any

from pydantic import BaseModel, Field

from provision_spine.core.errors import PreconditionError, ProvisionError, StepError
from provision_spine.core.logging import LogContext, get_logger
from provision_spine.provision.config import ProvisionConfig
from provision_spine.provision.context import UserInput, WorkflowContext
from provision_spine.provision.hooks import WorkflowHooks, hook_name
from provision_spine.provision.interfaces import ProvisionServices, StackDescriptor
from provision_spine.provision.service import ServiceDefinition
from provision_spine.provision.steps import INITIAL_STEP, StepId, run_step, step_label

logger = get_logger(__name__)


class StepTiming(BaseModel):
    name: str
    seconds: float


class StackSummary(BaseModel):
    stack_name: str
    stack_id: str
    status: str
    creation_time: str | None = None
    outputs: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_descriptor(cls, stack: StackDescriptor) -> StackSummary:
        return cls(
            stack_name=stack.stack_name,
            stack_id=stack.stack_id,
            status=stack.status,
            creation_time=stack.creation_time.isoformat() if stack.creation_time else None,
            outputs=dict(stack.outputs),
        )


class ProvisionSummary(BaseModel):
    """Result of a successful provisioning run."""

    service: str
    build_id: str
    dry_run: bool = False
    in_place: bool = False
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    steps: list[StepTiming] = Field(default_factory=list)
    total_seconds: float = 0.0
    stack: StackSummary | None = None
    code_location: str | None = None


def _validate_service(service: ServiceDefinition, hooks: WorkflowHooks) -> None:
    if not service.functions:
        if hooks.is_empty():
            raise PreconditionError("No functions provided to provision").with_context(service=service.name)
        logger.warning("provision.no_functions", service=service.name)
    duplicates = sorted(name for name, count in Counter(service.function_names()).items() if count > 1)
    if duplicates:
        raise PreconditionError(
            f"Duplicate function names: {', '.join(duplicates)}"
        ).with_context(service=service.name)


class Provisioner:
    """Provisions services with one set of collaborators and settings."""

    def __init__(self, services: ProvisionServices, config: ProvisionConfig | None = None) -> None:
        self.services = services
        self.config = config or ProvisionConfig()

    def provision(
        self,
        service: ServiceDefinition,
        hooks: WorkflowHooks | None = None,
        template_writer: IO[str] | None = None,
    ) -> ProvisionSummary:
        hooks = hooks or WorkflowHooks()
        _validate_service(service, hooks)

        config = self.config
        user = UserInput(
            service=service,
            bucket=config.bucket,
            build_id=config.build_id,
            hooks=hooks,
            build_tags=config.build_tags,
            link_flags=config.link_flags,
            cgo_enabled=config.cgo_enabled,
            dry_run=config.dry_run,
            in_place=config.in_place,
            pipeline_trigger=config.pipeline_trigger,
            pipeline_environments=config.pipeline_environments,
            template_writer=template_writer,
            binary_name=config.binary_name,
            scratch_dir=config.scratch_dir,
            log_level=config.log_level,
        )
        with LogContext(service=service.name, build_id=config.build_id):
            ctx = WorkflowContext.create(user, self.services, logger)
            return self._run(ctx)

    def _run(self, ctx: WorkflowContext) -> ProvisionSummary:
        user = ctx.user
        ctx.logger.info(
            "provision.start",
            dry_run=user.dry_run,
            tags=user.build_tags,
            pipeline_trigger=user.pipeline_trigger,
            in_place=user.in_place,
        )

        step: StepId | None = INITIAL_STEP
        try:
            while step is not None:
                current = step
                label = step_label(current, ctx)
                ctx.logger.info("provision.step.start", step=label)
                try:
                    with ctx.transaction.timed(label):
                        step = run_step(current, ctx)
                except Exception as e:
                    ctx.logger.error("provision.step.failed", step=label, error=str(e))
                    self._rollback(ctx)
                    step_error = StepError(label, e)
                    raise ProvisionError(
                        f"Failed to provision service {user.service_name}: {step_error}",
                        category=step_error.category,
                        cause=step_error,
                    ).with_context(service=user.service_name, step=label) from step_error
        finally:
            ctx.transaction.finalize(ctx.logger)

        summary = self._summary(ctx)
        _log_summary(ctx.logger, summary)
        return summary

    def _rollback(self, ctx: WorkflowContext) -> None:
        params = ctx.hook_params()
        hook_tasks = []
        for hook in ctx.user.hooks.rollbacks:
            ctx.logger.debug("hooks.rollback", hook=hook_name(hook))
            hook_tasks.append(partial(hook, params))
        failures = ctx.transaction.rollback(ctx.logger, hooks=hook_tasks)
        ctx.logger.info("provision.rollback.complete", failures=failures)

    def _summary(self, ctx: WorkflowContext) -> ProvisionSummary:
        state = ctx.state
        return ProvisionSummary(
            service=ctx.user.service_name,
            build_id=ctx.user.build_id,
            dry_run=ctx.user.dry_run,
            in_place=ctx.user.in_place,
            started_at=ctx.transaction.start_time.isoformat(),
            steps=[StepTiming(name=d.name, seconds=d.seconds) for d in ctx.transaction.step_durations],
            total_seconds=ctx.transaction.elapsed_seconds,
            stack=StackSummary.from_descriptor(state.stack) if state.stack else None,
            code_location=state.code_location.location if state.code_location else None,
        )


def _log_summary(log: Any, summary: ProvisionSummary) -> None:
    log.info("provision.summary", service=summary.service)
    for step in summary.steps:
        log.info("provision.summary.step", step=step.name, seconds=round(step.seconds, 3))
    log.info("provision.summary.total", seconds=round(summary.total_seconds, 3))


def provision(
    service: ServiceDefinition,
    services: ProvisionServices,
    config: ProvisionConfig | None = None,
    hooks: WorkflowHooks | None = None,
    template_writer: IO[str] | None = None,
) -> ProvisionSummary:
    """Provision ``service`` in one call. See :class:`Provisioner`."""
    return Provisioner(services, config).provision(service, hooks=hooks, template_writer=template_writer)
