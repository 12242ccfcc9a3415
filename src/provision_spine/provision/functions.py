"""Deployable function descriptors and their template export.

A :class:`FunctionDescriptor` is one Lambda function plus what it needs:
an execution role (either the name of a pre-existing role or an inline
:class:`RoleDefinition`), options such as memory and environment, and
optional custom resources backed by the same binary.

Export turns a descriptor into template resources.  It runs after roles are
resolved and artifacts are uploaded, so it receives everything through an
:class:`ExportContext`.  Subclasses may override :meth:`FunctionDescriptor.export`
to model richer resources; the engine only requires the function resource
to exist under :meth:`FunctionDescriptor.logical_name`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from provision_spine.core.errors import PreconditionError, TemplateValidationError
from provision_spine.provision.constants import (
    BASIC_EXECUTION_POLICY_ARN,
    ENV_CUSTOM_RESOURCE,
    ENV_DISCOVERY_INFO,
    ENV_LOG_LEVEL,
    LAMBDA_PRINCIPAL,
    LAMBDA_RUNTIME,
    TAG_BUILD_ID,
)
from provision_spine.provision.naming import cloudformation_resource_name
from provision_spine.provision.template import IAM_ROLE_TYPE, LAMBDA_FUNCTION_TYPE, Template

RoleHandle = str | dict[str, Any]
RoleNameMap = dict[str, RoleHandle]


@dataclass
class Privilege:
    """One IAM policy statement granted to a role."""

    actions: list[str]
    resource: Any = "*"

    def to_statement(self) -> dict[str, Any]:
        return {"Effect": "Allow", "Action": list(self.actions), "Resource": self.resource}


@dataclass
class RoleDefinition:
    """An execution role created together with the stack."""

    privileges: list[Privilege] = field(default_factory=list)
    managed_policy_arns: list[str] = field(default_factory=list)

    def logical_name(self, service_name: str, function_name: str) -> str:
        return cloudformation_resource_name("IAMRole", service_name, function_name)

    def to_properties(self) -> dict[str, Any]:
        properties: dict[str, Any] = {
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": [LAMBDA_PRINCIPAL]},
                        "Action": ["sts:AssumeRole"],
                    }
                ],
            },
            "ManagedPolicyArns": [BASIC_EXECUTION_POLICY_ARN, *self.managed_policy_arns],
        }
        if self.privileges:
            properties["Policies"] = [
                {
                    "PolicyName": "FunctionPrivileges",
                    "PolicyDocument": {
                        "Version": "2012-10-17",
                        "Statement": [p.to_statement() for p in self.privileges],
                    },
                }
            ]
        return properties


@dataclass
class FunctionOptions:
    description: str = ""
    memory_size: int = 128
    timeout: int = 3
    environment: dict[str, Any] = field(default_factory=dict)


@dataclass
class CustomResource:
    """A CloudFormation custom resource backed by the service binary."""

    name: str
    role_name: str | None = None
    role_definition: RoleDefinition | None = None
    options: FunctionOptions = field(default_factory=FunctionOptions)

    def logical_name(self) -> str:
        return cloudformation_resource_name("CustomResource", self.name)


@dataclass(frozen=True)
class ExportContext:
    """Values produced by earlier steps that export needs."""

    service_name: str
    bucket: str
    code_key: str
    code_version: str | None
    build_id: str
    binary_name: str
    log_level: str
    role_map: RoleNameMap
    parameter_environment: dict[str, Any] = field(default_factory=dict)
    hook_context: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionDescriptor:
    """One deployable Lambda function."""

    name: str
    role_name: str | None = None
    role_definition: RoleDefinition | None = None
    options: FunctionOptions = field(default_factory=FunctionOptions)
    custom_resources: list[CustomResource] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    def logical_name(self) -> str:
        return cloudformation_resource_name("Lambda", self.name)

    def export(self, template: Template, ctx: ExportContext) -> None:
        """Add this function (and its custom resources) to ``template``."""
        self._add_function(
            template,
            ctx,
            logical_id=self.logical_name(),
            function_name=self.name,
            role_name=self.role_name,
            role_definition=self.role_definition,
            options=self.options,
            extra_environment={},
        )
        for custom in self.custom_resources:
            self._add_function(
                template,
                ctx,
                logical_id=custom.logical_name(),
                function_name=custom.name,
                role_name=custom.role_name,
                role_definition=custom.role_definition,
                options=custom.options,
                extra_environment={ENV_CUSTOM_RESOURCE: custom.name},
            )

    def _add_function(
        self,
        template: Template,
        ctx: ExportContext,
        *,
        logical_id: str,
        function_name: str,
        role_name: str | None,
        role_definition: RoleDefinition | None,
        options: FunctionOptions,
        extra_environment: dict[str, Any],
    ) -> None:
        depends_on: list[str] = []
        if role_definition is not None:
            role_key = role_definition.logical_name(ctx.service_name, function_name)
            depends_on.append(role_key)
        elif role_name:
            role_key = role_name
        else:
            raise PreconditionError(
                f"Function {function_name} defines neither a role name nor a role definition"
            )
        if role_key not in ctx.role_map:
            raise PreconditionError(f"IAM role for function {function_name} was not resolved")

        code: dict[str, Any] = {"S3Bucket": ctx.bucket, "S3Key": ctx.code_key}
        if ctx.code_version:
            code["S3ObjectVersion"] = ctx.code_version

        environment = {
            **ctx.parameter_environment,
            **options.environment,
            **extra_environment,
            ENV_LOG_LEVEL: ctx.log_level,
        }
        properties: dict[str, Any] = {
            "Code": code,
            "Handler": ctx.binary_name,
            "Runtime": LAMBDA_RUNTIME,
            "Role": ctx.role_map[role_key],
            "MemorySize": options.memory_size,
            "Timeout": options.timeout,
            "Environment": {"Variables": environment},
        }
        if options.description:
            properties["Description"] = options.description

        attributes = {"DependsOn": depends_on} if depends_on else {}
        template.add_resource(logical_id, LAMBDA_FUNCTION_TYPE, properties, **attributes)

    def annotation_targets(self) -> list[str]:
        """Logical ids of every Lambda function this descriptor exports."""
        return [self.logical_name(), *(c.logical_name() for c in self.custom_resources)]


# ---------------------------------------------------------------------------
# Inline roles
# ---------------------------------------------------------------------------


def add_role_resource(template: Template, logical_id: str, definition: RoleDefinition) -> None:
    template.add_resource(logical_id, IAM_ROLE_TYPE, definition.to_properties())


# ---------------------------------------------------------------------------
# Cross-cutting annotations
# ---------------------------------------------------------------------------


def discovery_info(logical_id: str) -> dict[str, Any]:
    """Runtime-resolved description of where a function is deployed."""
    body = json.dumps(
        {
            "ResourceID": logical_id,
            "Region": "${AWS::Region}",
            "StackID": "${AWS::StackId}",
            "StackName": "${AWS::StackName}",
        },
        sort_keys=True,
    )
    return {"Fn::Base64": {"Fn::Sub": body}}


def _function_resource(template: Template, logical_id: str) -> dict[str, Any]:
    resource = template.resource(logical_id)
    if resource is None or resource.get("Type") != LAMBDA_FUNCTION_TYPE:
        raise TemplateValidationError([f"Lambda function {logical_id} is missing from the template"])
    return resource


def annotate_discovery_info(function: FunctionDescriptor, template: Template, logger: Any) -> None:
    """Publish discovery information into every exported function's environment."""
    for logical_id in function.annotation_targets():
        resource = _function_resource(template, logical_id)
        variables = resource["Properties"].setdefault("Environment", {}).setdefault("Variables", {})
        variables[ENV_DISCOVERY_INFO] = discovery_info(logical_id)
        logger.debug("functions.discovery_annotated", function=function.name, resource=logical_id)


def annotate_build_information(
    function: FunctionDescriptor,
    template: Template,
    build_id: str,
) -> None:
    """Tag every exported function with the build that produced it."""
    for logical_id in function.annotation_targets():
        resource = _function_resource(template, logical_id)
        tags = resource["Properties"].setdefault("Tags", [])
        tags[:] = [t for t in tags if t.get("Key") != TAG_BUILD_ID]
        tags.append({"Key": TAG_BUILD_ID, "Value": build_id})


def annotate_materialized_template(functions: list[FunctionDescriptor], template: Template) -> None:
    """Resolve ``depends_on`` references once the whole template exists.

    Each entry may name another function or any logical id already in the
    template. Unknown references are reported together.
    """
    by_name = {f.name: f.logical_name() for f in functions}
    problems: list[str] = []
    for function in functions:
        if not function.depends_on:
            continue
        resource = _function_resource(template, function.logical_name())
        existing = resource.get("DependsOn", [])
        resolved = [existing] if isinstance(existing, str) else list(existing)
        for dependency in function.depends_on:
            target = by_name.get(dependency, dependency)
            if target not in template.resources:
                problems.append(f"Function {function.name} depends on unknown resource: {dependency}")
            elif target not in resolved:
                resolved.append(target)
        resource["DependsOn"] = resolved
    if problems:
        raise TemplateValidationError(problems)
