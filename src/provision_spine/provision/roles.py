"""IAM role resolution with per-run deduplication.

Two kinds of role reference exist:

- **Inline definitions** become ``AWS::IAM::Role`` resources in the stack
  template.  Their handle is ``Fn::GetAtt [<logical>, Arn]`` since the role
  does not exist until the stack converges.
- **Literal role names** must already exist.  Each distinct name is looked
  up once through the :class:`RoleDirectory` and maps to its ARN.

The resulting :data:`RoleNameMap` is keyed by inline logical name or literal
role name.  Both paths populate it at most once per key; calling
:meth:`RoleResolver.resolve` again registers and looks up nothing new.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from provision_spine.core.errors import PreconditionError, RoleResolutionError
from provision_spine.core.logging import get_logger
from provision_spine.provision.functions import (
    FunctionDescriptor,
    RoleDefinition,
    RoleNameMap,
    add_role_resource,
)
from provision_spine.provision.interfaces import RoleDirectory
from provision_spine.provision.template import Template, get_att

logger = get_logger(__name__)


def _role_references(
    functions: list[FunctionDescriptor],
) -> Iterator[tuple[str, str | None, RoleDefinition | None]]:
    for function in functions:
        yield function.name, function.role_name, function.role_definition
        for custom in function.custom_resources:
            yield custom.name, custom.role_name, custom.role_definition


class RoleResolver:
    """Resolves every role the service's functions reference.

    Usage::

        resolver = RoleResolver(role_directory)
        resolver.resolve("orders", service.functions, template, role_map)
    """

    def __init__(self, directory: RoleDirectory) -> None:
        self._directory = directory

    def resolve(
        self,
        service_name: str,
        functions: list[FunctionDescriptor],
        template: Template,
        role_map: RoleNameMap,
        log: Any = None,
    ) -> RoleNameMap:
        log = log or logger
        for function_name, role_name, definition in _role_references(functions):
            if definition is not None:
                self._register_inline(service_name, function_name, definition, template, role_map, log)
            elif role_name:
                self._lookup_literal(role_name, role_map, log)
            else:
                raise PreconditionError(
                    f"Function {function_name} defines neither a role name nor a role definition"
                )
        return role_map

    def _register_inline(
        self,
        service_name: str,
        function_name: str,
        definition: RoleDefinition,
        template: Template,
        role_map: RoleNameMap,
        log: Any,
    ) -> None:
        logical_name = definition.logical_name(service_name, function_name)
        if logical_name in role_map:
            return
        add_role_resource(template, logical_name, definition)
        role_map[logical_name] = get_att(logical_name, "Arn")
        log.debug("roles.inline_registered", function=function_name, logical_name=logical_name)

    def _lookup_literal(self, role_name: str, role_map: RoleNameMap, log: Any) -> None:
        if role_name in role_map:
            return
        try:
            arn = self._directory.get_role_arn(role_name)
        except RoleResolutionError:
            raise
        except Exception as e:
            raise RoleResolutionError(role_name, cause=e) from e
        role_map[role_name] = arn
        log.info("roles.resolved", role=role_name, arn=arn)
