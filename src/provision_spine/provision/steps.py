"""Workflow step chain.

Each step is identified by a :class:`StepId`; :func:`run_step` dispatches to
its handler and :func:`next_step` is the whole transition table.  Handlers
mutate the :class:`~provision_spine.provision.context.WorkflowContext` and
raise on failure; ``None`` from :func:`next_step` is the only non-error
terminal state.

::

    RESOLVE_ROLES ─► VERIFY_PRECONDITIONS ─► CREATE_PACKAGE ─► CREATE_UPLOAD
        ─► VALIDATE_POSTCONDITIONS ─► ENSURE_STACK ─► APPLY_OPERATION ─► (done)

Remote side effects register rollback actions on the transaction; local
scratch files register finalizers.  Both registrations happen here, on the
controlling thread, never inside task-runner workers.

Tags:
    workflow, state-machine, provisioning, cloudformation
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any

from provision_spine.core.errors import (
    HookError,
    OrchestrationError,
    PreconditionError,
    ProvisionError,
    StorageError,
    TemplateMergeError,
    TemplateValidationError,
    UnsupportedChangeError,
)
from provision_spine.execution.tasks import run_tasks
from provision_spine.provision.archive import ArchiveWriter, executable_annotator
from provision_spine.provision.constants import (
    REQUIRED_FUNCTION_ENV,
    TAG_BUILD_ID,
    TAG_BUILD_TAGS,
)
from provision_spine.provision.context import WorkflowContext
from provision_spine.provision.functions import (
    ExportContext,
    annotate_build_information,
    annotate_discovery_info,
    annotate_materialized_template,
)
from provision_spine.provision.hooks import hook_name, iter_hooks
from provision_spine.provision.interfaces import ResourceChange, StackDescriptor
from provision_spine.provision.naming import cloudformation_resource_name, sanitized_name
from provision_spine.provision.pipeline import (
    add_pipeline_parameters,
    check_environment_consistency,
    parameter_environment,
    write_pipeline_archive,
)
from provision_spine.provision.roles import RoleResolver
from provision_spine.provision.template import (
    CLOUDFRONT_DISTRIBUTION_TYPE,
    LAMBDA_FUNCTION_TYPE,
    Template,
)
from provision_spine.provision.upload import UploadOutcome, upload_local_file

DEFAULT_STACK_TIMEOUT = timedelta(minutes=20)
CLOUDFRONT_STACK_TIMEOUT = timedelta(minutes=60)


class StepId(str, Enum):
    """Workflow steps; the value is the label durations are recorded under."""

    RESOLVE_ROLES = "Verifying IAM roles"
    VERIFY_PRECONDITIONS = "Verifying AWS preconditions"
    CREATE_PACKAGE = "Creating code bundle"
    CREATE_UPLOAD = "Uploading code"
    VALIDATE_POSTCONDITIONS = "Validating postconditions"
    ENSURE_STACK = "Ensuring CloudFormation stack"
    APPLY_OPERATION = "Applying stack operation"


INITIAL_STEP = StepId.RESOLVE_ROLES

_TRANSITIONS: dict[StepId, StepId | None] = {
    StepId.RESOLVE_ROLES: StepId.VERIFY_PRECONDITIONS,
    StepId.VERIFY_PRECONDITIONS: StepId.CREATE_PACKAGE,
    StepId.CREATE_PACKAGE: StepId.CREATE_UPLOAD,
    StepId.CREATE_UPLOAD: StepId.VALIDATE_POSTCONDITIONS,
    StepId.VALIDATE_POSTCONDITIONS: StepId.ENSURE_STACK,
    StepId.ENSURE_STACK: StepId.APPLY_OPERATION,
    StepId.APPLY_OPERATION: None,
}


def next_step(step_id: StepId, ctx: WorkflowContext | None = None) -> StepId | None:
    """The step that follows ``step_id``, or ``None`` when the chain is done."""
    return _TRANSITIONS[step_id]


def step_label(step_id: StepId, ctx: WorkflowContext) -> str:
    if step_id is StepId.ENSURE_STACK and ctx.user.in_place:
        return "Updating Lambda function code"
    return step_id.value


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


def call_hooks(ctx: WorkflowContext, point: str, *args: Any) -> None:
    """Invoke every hook at ``point`` in order, failing on the first error."""
    hooks = iter_hooks(ctx.user.hooks, point)
    if not hooks:
        return
    params = ctx.hook_params()
    for hook in hooks:
        ctx.logger.debug("hooks.invoke", point=point, hook=hook_name(hook))
        try:
            hook(params, *args)
        except Exception as e:
            raise HookError(point, hook, e) from e


# ---------------------------------------------------------------------------
# Step handlers
# ---------------------------------------------------------------------------


def resolve_roles(ctx: WorkflowContext) -> None:
    functions = ctx.user.service.functions
    ctx.logger.info("roles.verify", functions=len(functions))
    RoleResolver(ctx.services.role_directory).resolve(
        ctx.user.service_name,
        functions,
        ctx.state.template,
        ctx.state.role_map,
        ctx.logger,
    )
    decorator = ctx.user.hooks.profile_decorator
    if decorator is None:
        return
    for function in functions:
        try:
            decorator(ctx.user.service_name, function, ctx.user.bucket, ctx.logger)
        except Exception as e:
            raise HookError("profile_decorator", decorator, e) from e


def verify_preconditions(ctx: WorkflowContext) -> None:
    user = ctx.user
    store = ctx.services.object_store
    if user.dry_run:
        ctx.logger.info("preconditions.dry_run", bucket=user.bucket)
        ctx.state.versioning_enabled = False
    elif user.service.functions:
        try:
            versioning = store.bucket_versioning_enabled(user.bucket)
            bucket_region = store.bucket_region(user.bucket)
        except ProvisionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to inspect bucket {user.bucket}", cause=e).with_context(
                bucket=user.bucket
            ) from e

        ctx.state.versioning_enabled = versioning
        if not versioning:
            if user.pipeline_trigger:
                raise PreconditionError(
                    f"Bucket {user.bucket} must have versioning enabled for pipeline deployments"
                ).with_context(bucket=user.bucket)
            ctx.logger.warning(
                "preconditions.versioning_disabled",
                bucket=user.bucket,
                hint="unversioned uploads get unique keys; enable versioning to keep stable names",
            )

        session_region = getattr(ctx.services.session, "region", None)
        if bucket_region != session_region:
            raise PreconditionError(
                f"Bucket {user.bucket} region ({bucket_region}) does not match "
                f"session region ({session_region})"
            ).with_context(bucket=user.bucket)
        ctx.logger.info(
            "preconditions.verified",
            bucket=user.bucket,
            versioning=versioning,
            region=bucket_region,
        )

    check_environment_consistency(user.pipeline_environments, ctx.logger)


def create_package(ctx: WorkflowContext) -> None:
    user = ctx.user
    scratch = user.scratch_dir
    scratch.mkdir(parents=True, exist_ok=True)
    base = sanitized_name(user.service_name)

    call_hooks(ctx, "pre_build")

    binary_path = (scratch / f"{base}.{user.binary_name}").resolve()
    ctx.transaction.register_file_cleanup(binary_path)
    ctx.services.builder.compile(
        user.service_name,
        str(binary_path),
        cgo_enabled=user.cgo_enabled,
        build_id=user.build_id,
        build_tags=user.build_tags,
        link_flags=user.link_flags,
        dry_run=user.dry_run,
    )

    call_hooks(ctx, "post_build")

    package_path = scratch / f"{base}-code.zip"
    ctx.transaction.register_file_cleanup(package_path)
    ctx.logger.info("package.create", path=str(package_path))
    with ArchiveWriter(package_path) as archive:
        call_hooks(ctx, "archives", archive)
        archive.add_file(binary_path, arcname=user.binary_name, annotator=executable_annotator())
    ctx.state.package_path = package_path


def create_upload(ctx: WorkflowContext) -> None:
    user = ctx.user
    upload = partial(
        upload_local_file,
        ctx.services.object_store,
        bucket=user.bucket,
        service_name=user.service_name,
        versioning_enabled=ctx.state.versioning_enabled,
        dry_run=user.dry_run,
        logger=ctx.logger,
    )

    targets: list[str] = []
    tasks: list[Callable[[], UploadOutcome]] = []
    if user.service.functions and ctx.state.package_path is not None:
        targets.append("code")
        tasks.append(partial(upload, ctx.state.package_path))
    if user.service.site is not None:
        content = Path(user.service.site.content_directory)
        if not content.is_dir():
            raise PreconditionError(f"Site resources directory ({content}) does not exist").with_context(
                resource=str(content)
            )
        site_path = user.scratch_dir / f"{sanitized_name(user.service_name)}-site.zip"
        ctx.transaction.register_file_cleanup(site_path)
        with ArchiveWriter(site_path) as archive:
            archive.add_directory(content)
        targets.append("site")
        tasks.append(partial(upload, site_path))

    if not tasks:
        ctx.logger.info("upload.skipped", reason="no artifacts")
        return

    outcome = run_tasks(tasks)
    for target, result in zip(targets, outcome.results, strict=True):
        if not result.ok:
            continue
        uploaded: UploadOutcome = result.value
        if uploaded.rollback is not None:
            ctx.transaction.register_rollback(uploaded.rollback)
        if target == "code":
            ctx.state.code_location = uploaded.location
        else:
            ctx.state.site_location = uploaded.location
    if not outcome.ok:
        first = outcome.errors[0].error
        if len(outcome.errors) == 1 and isinstance(first, ProvisionError):
            raise first
        raise StorageError(
            "Failed to upload artifacts: " + "; ".join(str(e) for e in outcome.errors)
        ).with_context(bucket=user.bucket)


def missing_function_environment(template: Template) -> list[str]:
    """Every Lambda function in ``template`` lacking a required variable."""
    problems: list[str] = []
    for logical_id, resource in template.resources_of_type(LAMBDA_FUNCTION_TYPE):
        environment = resource.get("Properties", {}).get("Environment")
        if environment is None:
            problems.append(f"Lambda function {logical_id} does not include environment info")
            continue
        variables = environment.get("Variables")
        if not isinstance(variables, dict):
            problems.append(
                f"Lambda function {logical_id} environment vars are unsupported type: "
                f"{type(variables).__name__}"
            )
            continue
        for key in REQUIRED_FUNCTION_ENV:
            if key not in variables:
                problems.append(f"Lambda function {logical_id} environment does not include key: {key}")
    return problems


def validate_postconditions(ctx: WorkflowContext) -> None:
    problems = missing_function_environment(ctx.state.template)
    if problems:
        raise TemplateValidationError(problems)


def _merge(ctx: WorkflowContext, fragment: Template, source: str) -> None:
    conflicts = ctx.state.template.safe_merge(fragment)
    if conflicts:
        raise TemplateMergeError(f"{source} template merge failed", conflicts)


def ensure_stack(ctx: WorkflowContext) -> None:
    user = ctx.user
    state = ctx.state
    template = state.template

    call_hooks(ctx, "pre_marshall")

    if user.pipeline_environments:
        add_pipeline_parameters(template, user.pipeline_environments)

    export_ctx = ExportContext(
        service_name=user.service_name,
        bucket=user.bucket,
        code_key=ctx.code_key(),
        code_version=ctx.code_version(),
        build_id=user.build_id,
        binary_name=user.binary_name,
        log_level=user.log_level,
        role_map=state.role_map,
        parameter_environment=parameter_environment(user.pipeline_environments),
        hook_context=state.hook_context,
    )
    for function in user.service.functions:
        function.export(template, export_ctx)

    params = ctx.hook_params()
    if user.service.gateway is not None:
        gateway_template = Template()
        user.service.gateway.marshal(gateway_template, params, state.role_map, user.service.functions)
        _merge(ctx, gateway_template, "API gateway")

    for decorator in iter_hooks(user.hooks, "service_decorators"):
        decorated = Template()
        try:
            decorator(params, decorated, ctx.code_key())
        except Exception as e:
            raise HookError("service_decorators", decorator, e) from e
        _merge(ctx, decorated, f"Service decorator {hook_name(decorator)}")

    for function in user.service.functions:
        annotate_discovery_info(function, template, ctx.logger)
        annotate_build_information(function, template, user.build_id)

    if user.service.site is not None:
        user.service.site.export(template, params, state.site_location)

    call_hooks(ctx, "post_marshall")

    annotate_materialized_template(user.service.functions, template)

    for validator in iter_hooks(user.hooks, "validators"):
        try:
            validator(params, template.read_only_copy(), ctx.code_key())
        except Exception as e:
            raise HookError("validators", validator, e) from e


def maximum_stack_operation_timeout(template: Template) -> timedelta:
    if template.has_resource_type(CLOUDFRONT_DISTRIBUTION_TYPE):
        return CLOUDFRONT_STACK_TIMEOUT
    return DEFAULT_STACK_TIMEOUT


def stack_tags(build_id: str, build_tags: str) -> dict[str, str]:
    tags = {TAG_BUILD_ID: build_id}
    if build_tags:
        tags[TAG_BUILD_TAGS] = build_tags
    return tags


def is_in_place_change(change: ResourceChange) -> bool:
    return change.action == "Modify" and change.resource_type == LAMBDA_FUNCTION_TYPE


def in_place_change_set_name(service_name: str) -> str:
    return cloudformation_resource_name(f"{service_name}InPlaceChangeSet")


def apply_in_place_updates(ctx: WorkflowContext, template_url: str) -> StackDescriptor:
    """Update function code directly when the change set only touches code."""
    orchestrator = ctx.services.orchestrator
    service_name = ctx.user.service_name
    change_set = in_place_change_set_name(service_name)

    changes = orchestrator.compute_change_set(change_set, service_name, ctx.state.template, template_url)
    if not changes:
        raise OrchestrationError("no changes detected").with_context(service=service_name)

    unsupported = [c.describe() for c in changes if not is_in_place_change(c)]
    if unsupported:
        raise UnsupportedChangeError(unsupported)

    ctx.logger.info("stack.in_place_update", functions=len(changes))
    tasks: list[Callable[[], Any]] = [
        partial(
            orchestrator.update_function_code,
            change.physical_id or change.logical_id,
            ctx.user.bucket,
            ctx.code_key(),
            ctx.code_version(),
        )
        for change in changes
    ]
    tasks.append(partial(orchestrator.delete_change_set, change_set, service_name))
    outcome = run_tasks(tasks)
    if not outcome.ok:
        raise OrchestrationError(
            "Failed to update function code: " + "; ".join(str(e) for e in outcome.errors)
        ).with_context(service=service_name)
    return orchestrator.describe_stack(service_name)


def apply_operation(ctx: WorkflowContext) -> None:
    user = ctx.user
    template = ctx.state.template
    template_json = template.to_json()

    template_name = f"{sanitized_name(user.service_name)}-cftemplate.json"
    template_path = user.scratch_dir / template_name
    user.scratch_dir.mkdir(parents=True, exist_ok=True)
    template_path.write_text(template_json, encoding="utf-8")
    ctx.transaction.register_file_cleanup(template_path)

    ctx.logger.debug("stack.template", body=template_json)
    if user.template_writer is not None:
        user.template_writer.write(template.to_json(indent=2))

    if user.pipeline_trigger:
        archive_path = user.scratch_dir / user.pipeline_trigger
        ctx.logger.info("pipeline.package", path=str(archive_path))
        write_pipeline_archive(archive_path, template_json, user.pipeline_environments)
        ctx.logger.info("pipeline.created", archive=archive_path.name)
        return

    if user.dry_run:
        ctx.logger.info("stack.dry_run", bucket=user.bucket, template=template_name)
        return

    uploaded = upload_local_file(
        ctx.services.object_store,
        template_path,
        bucket=user.bucket,
        service_name=user.service_name,
        versioning_enabled=ctx.state.versioning_enabled,
        dry_run=False,
        logger=ctx.logger,
    )
    if uploaded.rollback is not None:
        ctx.transaction.register_rollback(uploaded.rollback)
    template_url = uploaded.location.location

    if user.in_place:
        stack = apply_in_place_updates(ctx, template_url)
    else:
        timeout = maximum_stack_operation_timeout(template)
        ctx.logger.debug("stack.operation_timeout", minutes=timeout.total_seconds() / 60)
        try:
            stack = ctx.services.orchestrator.converge_stack(
                user.service_name,
                template,
                template_url,
                stack_tags(user.build_id, user.build_tags),
                ctx.transaction.start_time,
                timeout,
            )
        except ProvisionError:
            raise
        except Exception as e:
            raise OrchestrationError(f"Failed to converge stack {user.service_name}", cause=e) from e

    ctx.state.stack = stack
    ctx.logger.info(
        "stack.provisioned",
        stack_name=stack.stack_name,
        stack_id=stack.stack_id,
        status=stack.status,
        creation_time=stack.creation_time.isoformat() if stack.creation_time else None,
    )


_HANDLERS: dict[StepId, Callable[[WorkflowContext], None]] = {
    StepId.RESOLVE_ROLES: resolve_roles,
    StepId.VERIFY_PRECONDITIONS: verify_preconditions,
    StepId.CREATE_PACKAGE: create_package,
    StepId.CREATE_UPLOAD: create_upload,
    StepId.VALIDATE_POSTCONDITIONS: validate_postconditions,
    StepId.ENSURE_STACK: ensure_stack,
    StepId.APPLY_OPERATION: apply_operation,
}


def run_step(step_id: StepId, ctx: WorkflowContext) -> StepId | None:
    """Run one step and return the next one."""
    _HANDLERS[step_id](ctx)
    return next_step(step_id, ctx)
