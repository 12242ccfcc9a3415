"""Provisioning workflow: roles, packaging, upload and stack convergence."""

from provision_spine.provision.config import ProvisionConfig
from provision_spine.provision.functions import (
    CustomResource,
    FunctionDescriptor,
    FunctionOptions,
    Privilege,
    RoleDefinition,
)
from provision_spine.provision.hooks import HookParams, WorkflowHooks
from provision_spine.provision.interfaces import (
    ProvisionServices,
    ResourceChange,
    StackDescriptor,
)
from provision_spine.provision.service import ServiceDefinition
from provision_spine.provision.steps import StepId, next_step
from provision_spine.provision.template import Template
from provision_spine.provision.workflow import ProvisionSummary, Provisioner, provision

__all__ = [
    "CustomResource",
    "FunctionDescriptor",
    "FunctionOptions",
    "HookParams",
    "Privilege",
    "ProvisionConfig",
    "ProvisionServices",
    "ProvisionSummary",
    "Provisioner",
    "ResourceChange",
    "RoleDefinition",
    "ServiceDefinition",
    "StackDescriptor",
    "StepId",
    "Template",
    "WorkflowHooks",
    "next_step",
    "provision",
]
