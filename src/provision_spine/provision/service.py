"""Service definition: the deployable unit handed to the provisioner."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from provision_spine.provision.functions import FunctionDescriptor

if TYPE_CHECKING:
    from provision_spine.provision.functions import RoleNameMap
    from provision_spine.provision.hooks import HookParams
    from provision_spine.provision.template import Template
    from provision_spine.provision.upload import UploadLocation


@runtime_checkable
class GatewayDescriptor(Protocol):
    """An API gateway that fronts some of the service's functions.

    ``marshal`` writes its resources into the empty ``template`` it is
    given; the workflow merges that fragment into the stack template.
    """

    def marshal(
        self,
        template: Template,
        params: HookParams,
        role_map: RoleNameMap,
        functions: list[FunctionDescriptor],
    ) -> None: ...


@runtime_checkable
class SiteDescriptor(Protocol):
    """A static site whose content directory is archived and uploaded.

    ``export`` runs last during template assembly so it can reference
    gateway outputs already present in ``template``.
    """

    content_directory: Path

    def export(
        self,
        template: Template,
        params: HookParams,
        site_location: UploadLocation | None,
    ) -> None: ...


@dataclass
class ServiceDefinition:
    """Everything the provisioner deploys under one stack name.

    Example::

        service = ServiceDefinition(
            name="orders",
            description="Order intake",
            functions=[FunctionDescriptor("ingest", role_name="orders-exec")],
        )
    """

    name: str
    description: str = ""
    functions: list[FunctionDescriptor] = field(default_factory=list)
    gateway: GatewayDescriptor | None = None
    site: SiteDescriptor | None = None

    def function_names(self) -> list[str]:
        return [f.name for f in self.functions]
