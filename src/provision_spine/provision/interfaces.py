"""Collaborator protocols - the engine's boundary with the outside world.

The workflow never talks to AWS or a compiler directly.  It depends on four
narrow protocols; :mod:`provision_spine.aws` provides boto3-backed
implementations and the tests provide in-memory fakes.

::

    ObjectStore         upload / rollback_for / bucket_versioning_enabled / bucket_region
    StackOrchestrator   compute_change_set / delete_change_set / converge_stack /
                        describe_stack / update_function_code
    RoleDirectory       get_role_arn
    Builder             compile
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from provision_spine.provision.template import Template

# Best-effort undo of one side effect. Receives the workflow logger and
# raises or returns False on failure.
RollbackAction = Callable[[Any], bool | None]

# Always-run cleanup. Receives the workflow logger.
Finalizer = Callable[[Any], None]


@dataclass(frozen=True)
class ResourceChange:
    """One entry of a CloudFormation change set."""

    action: str
    resource_type: str
    logical_id: str
    physical_id: str | None = None

    def describe(self) -> str:
        return f"{self.action} for {self.logical_id} (ResourceType: {self.resource_type})"


@dataclass(frozen=True)
class StackDescriptor:
    """The observable state of a stack after an operation."""

    stack_name: str
    stack_id: str
    status: str
    creation_time: datetime | None = None
    outputs: dict[str, str] = field(default_factory=dict)


# ── Protocols ────────────────────────────────────────────────────────


@runtime_checkable
class ObjectStore(Protocol):
    """Object storage used for code archives, site archives and templates."""

    def upload(self, local_path: Path, bucket: str, key: str) -> str:
        """Upload ``local_path`` and return its location URL.

        The URL carries a ``versionId`` query parameter when the bucket
        assigned one.
        """
        ...

    def rollback_for(self, location: str) -> RollbackAction:
        """Return an action that deletes the object at ``location``."""
        ...

    def bucket_versioning_enabled(self, bucket: str) -> bool: ...

    def bucket_region(self, bucket: str) -> str: ...


@runtime_checkable
class StackOrchestrator(Protocol):
    """Infrastructure orchestration service (CloudFormation + Lambda)."""

    def compute_change_set(
        self,
        name: str,
        stack_name: str,
        template: Template,
        template_url: str,
    ) -> list[ResourceChange]: ...

    def delete_change_set(self, name: str, stack_name: str) -> None: ...

    def converge_stack(
        self,
        stack_name: str,
        template: Template,
        template_url: str,
        tags: dict[str, str],
        start_time: datetime,
        timeout: timedelta,
    ) -> StackDescriptor: ...

    def describe_stack(self, stack_name: str) -> StackDescriptor: ...

    def update_function_code(
        self,
        function_id: str,
        bucket: str,
        key: str,
        version: str | None = None,
    ) -> None: ...


@runtime_checkable
class RoleDirectory(Protocol):
    """Looks up pre-existing IAM roles."""

    def get_role_arn(self, role_name: str) -> str: ...


@runtime_checkable
class Builder(Protocol):
    """Compiles the deployable binary."""

    def compile(
        self,
        service_name: str,
        output_binary: str,
        *,
        cgo_enabled: bool,
        build_id: str,
        build_tags: str,
        link_flags: str,
        dry_run: bool,
    ) -> None:
        """Produce an executable named ``output_binary`` for the Lambda platform."""
        ...


@dataclass
class ProvisionServices:
    """The collaborators one provisioning run talks to.

    ``session`` is handed to hooks untouched; it only needs a ``region``
    attribute for the bucket region check.
    """

    object_store: ObjectStore
    orchestrator: StackOrchestrator
    role_directory: RoleDirectory
    builder: Builder
    session: Any = None


__all__ = [
    "Builder",
    "ProvisionServices",
    "Finalizer",
    "ObjectStore",
    "ResourceChange",
    "RoleDirectory",
    "RollbackAction",
    "StackDescriptor",
    "StackOrchestrator",
]
