"""Tests for IAM role resolution."""

from __future__ import annotations

import pytest

from provision_spine.core.errors import PreconditionError, RoleResolutionError
from provision_spine.provision.functions import (
    CustomResource,
    FunctionDescriptor,
    Privilege,
    RoleDefinition,
)
from provision_spine.provision.roles import RoleResolver
from provision_spine.provision.template import IAM_ROLE_TYPE, Template


def _functions():
    shared = RoleDefinition(privileges=[Privilege(["s3:GetObject"], "arn:aws:s3:::data/*")])
    return [
        FunctionDescriptor("ingest", role_name="orders-exec"),
        FunctionDescriptor("report", role_name="orders-exec"),
        FunctionDescriptor("audit", role_definition=shared),
        FunctionDescriptor(
            "seed",
            role_name="admin",
            custom_resources=[CustomResource("seed-table", role_name="orders-exec")],
        ),
    ]


class TestRoleResolver:
    def test_resolves_literal_and_inline(self, role_directory):
        role_directory.arns["admin"] = "arn:aws:iam::123456789012:role/admin"
        template = Template()
        role_map = RoleResolver(role_directory).resolve("orders", _functions(), template, {})

        inline = RoleDefinition().logical_name("orders", "audit")
        assert role_map["orders-exec"] == "arn:aws:iam::123456789012:role/orders-exec"
        assert role_map[inline] == {"Fn::GetAtt": [inline, "Arn"]}
        assert template.resource(inline)["Type"] == IAM_ROLE_TYPE

    def test_one_lookup_per_distinct_name_and_idempotent(self, role_directory):
        role_directory.arns["admin"] = "arn:aws:iam::123456789012:role/admin"
        template = Template()
        role_map: dict = {}
        resolver = RoleResolver(role_directory)

        resolver.resolve("orders", _functions(), template, role_map)
        resolver.resolve("orders", _functions(), template, role_map)

        assert sorted(role_directory.lookups) == ["admin", "orders-exec"]
        assert len(list(template.resources_of_type(IAM_ROLE_TYPE))) == 1

    def test_lookup_failure_aborts(self, role_directory):
        with pytest.raises(RoleResolutionError) as exc_info:
            RoleResolver(role_directory).resolve(
                "orders",
                [FunctionDescriptor("ingest", role_name="missing")],
                Template(),
                {},
            )
        assert exc_info.value.role_name == "missing"

    def test_unexpected_lookup_error_is_wrapped(self):
        class Broken:
            def get_role_arn(self, role_name):
                raise ConnectionError("dns")

        with pytest.raises(RoleResolutionError) as exc_info:
            RoleResolver(Broken()).resolve("orders", [FunctionDescriptor("f", role_name="r")], Template(), {})
        assert isinstance(exc_info.value.cause, ConnectionError)

    def test_function_without_role(self, role_directory):
        with pytest.raises(PreconditionError):
            RoleResolver(role_directory).resolve("orders", [FunctionDescriptor("f")], Template(), {})

    def test_inline_roles_are_per_function(self, role_directory):
        shared = RoleDefinition()
        template = Template()
        RoleResolver(role_directory).resolve(
            "orders",
            [FunctionDescriptor("a", role_definition=shared), FunctionDescriptor("b", role_definition=shared)],
            template,
            {},
        )
        assert len(list(template.resources_of_type(IAM_ROLE_TYPE))) == 2
