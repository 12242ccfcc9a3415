"""Workflow context: immutable inputs, mutable state and the transaction.

Only the controlling thread writes to :class:`ProvisionState` or the
transaction; task-runner workers report results back instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from provision_spine.provision.constants import DEFAULT_BINARY_NAME, SCRATCH_DIRECTORY
from provision_spine.provision.functions import RoleNameMap
from provision_spine.provision.hooks import HookParams, WorkflowHooks
from provision_spine.provision.interfaces import ProvisionServices, StackDescriptor
from provision_spine.provision.service import ServiceDefinition
from provision_spine.provision.template import Template
from provision_spine.provision.transaction import Transaction
from provision_spine.provision.upload import UploadLocation


@dataclass(frozen=True)
class UserInput:
    """Everything the caller supplied. Never changes during a run."""

    service: ServiceDefinition
    bucket: str
    build_id: str
    hooks: WorkflowHooks = field(default_factory=WorkflowHooks)
    build_tags: str = ""
    link_flags: str = ""
    cgo_enabled: bool = False
    dry_run: bool = False
    in_place: bool = False
    pipeline_trigger: str | None = None
    pipeline_environments: dict[str, dict[str, str]] = field(default_factory=dict)
    template_writer: IO[str] | None = None
    binary_name: str = DEFAULT_BINARY_NAME
    scratch_dir: Path = Path(SCRATCH_DIRECTORY)
    log_level: str = "INFO"

    @property
    def service_name(self) -> str:
        return self.service.name


@dataclass
class ProvisionState:
    """Values accumulated as steps run."""

    template: Template
    hook_context: dict[str, Any] = field(default_factory=dict)
    role_map: RoleNameMap = field(default_factory=dict)
    versioning_enabled: bool = False
    package_path: Path | None = None
    code_location: UploadLocation | None = None
    site_location: UploadLocation | None = None
    stack: StackDescriptor | None = None


@dataclass
class WorkflowContext:
    user: UserInput
    state: ProvisionState
    services: ProvisionServices
    logger: Any
    transaction: Transaction = field(default_factory=Transaction)

    @classmethod
    def create(cls, user: UserInput, services: ProvisionServices, logger: Any) -> WorkflowContext:
        state = ProvisionState(
            template=Template(description=user.service.description),
            hook_context=dict(user.hooks.context),
        )
        return cls(user=user, state=state, services=services, logger=logger)

    def hook_params(self) -> HookParams:
        return HookParams(
            context=self.state.hook_context,
            service_name=self.user.service_name,
            bucket=self.user.bucket,
            build_id=self.user.build_id,
            session=self.services.session,
            dry_run=self.user.dry_run,
            logger=self.logger,
        )

    def code_key(self) -> str:
        return self.state.code_location.key if self.state.code_location else ""

    def code_version(self) -> str | None:
        return self.state.code_location.version if self.state.code_location else None
