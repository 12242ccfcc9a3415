"""CloudFormation template document.

The workflow treats the template as a mutable JSON document: resources are
added, fragments produced by extensions are merged in, and the final
document is serialized once.  ``safe_merge`` refuses to overwrite: any
logical identifier present in both documents is reported as a conflict
and nothing is merged.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Iterator
from typing import Any

TEMPLATE_FORMAT_VERSION = "2010-09-09"

LAMBDA_FUNCTION_TYPE = "AWS::Lambda::Function"
IAM_ROLE_TYPE = "AWS::IAM::Role"
CLOUDFRONT_DISTRIBUTION_TYPE = "AWS::CloudFront::Distribution"

# Sections whose keys are logical identifiers; merges must not collide.
MERGEABLE_SECTIONS = ("Parameters", "Mappings", "Conditions", "Resources", "Outputs")


def ref(name: str) -> dict[str, Any]:
    """``{"Ref": name}``"""
    return {"Ref": name}


def get_att(logical_id: str, attribute: str) -> dict[str, Any]:
    """``{"Fn::GetAtt": [logical_id, attribute]}``"""
    return {"Fn::GetAtt": [logical_id, attribute]}


class Template:
    """A CloudFormation template under construction."""

    def __init__(self, description: str = "") -> None:
        self.description = description
        self.metadata: dict[str, Any] = {}
        self.sections: dict[str, dict[str, Any]] = {name: {} for name in MERGEABLE_SECTIONS}

    # ------------------------------------------------------------------
    # Section accessors
    # ------------------------------------------------------------------

    @property
    def resources(self) -> dict[str, Any]:
        return self.sections["Resources"]

    @property
    def parameters(self) -> dict[str, Any]:
        return self.sections["Parameters"]

    @property
    def outputs(self) -> dict[str, Any]:
        return self.sections["Outputs"]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_resource(
        self,
        logical_id: str,
        resource_type: str,
        properties: dict[str, Any] | None = None,
        **attributes: Any,
    ) -> dict[str, Any]:
        """Add (or replace) a resource and return its definition."""
        resource: dict[str, Any] = {"Type": resource_type, "Properties": properties or {}}
        resource.update(attributes)
        self.resources[logical_id] = resource
        return resource

    def add_parameter(self, name: str, parameter_type: str = "String", default: Any = "") -> None:
        self.parameters[name] = {"Type": parameter_type, "Default": default}

    def add_output(self, name: str, value: Any, description: str | None = None) -> None:
        output: dict[str, Any] = {"Value": value}
        if description:
            output["Description"] = description
        self.outputs[name] = output

    def safe_merge(self, other: Template) -> list[str]:
        """Merge ``other`` into this template unless identifiers collide.

        Returns:
            The conflicting ``Section.LogicalId`` names. When the list is
            non-empty this template is left untouched.
        """
        conflicts = [
            f"{section}.{key}"
            for section in MERGEABLE_SECTIONS
            for key in other.sections[section]
            if key in self.sections[section]
        ]
        if conflicts:
            return conflicts
        for section in MERGEABLE_SECTIONS:
            self.sections[section].update(copy.deepcopy(other.sections[section]))
        return []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resource(self, logical_id: str) -> dict[str, Any] | None:
        return self.resources.get(logical_id)

    def resources_of_type(self, resource_type: str) -> Iterator[tuple[str, dict[str, Any]]]:
        for logical_id, resource in self.resources.items():
            if resource.get("Type") == resource_type:
                yield logical_id, resource

    def has_resource_type(self, resource_type: str) -> bool:
        return any(True for _ in self.resources_of_type(resource_type))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION}
        if self.description:
            body["Description"] = self.description
        if self.metadata:
            body["Metadata"] = self.metadata
        for section in MERGEABLE_SECTIONS:
            if self.sections[section]:
                body[section] = self.sections[section]
        return body

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=indent is not None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Template:
        template = cls(description=data.get("Description", ""))
        template.metadata = copy.deepcopy(data.get("Metadata", {}))
        for section in MERGEABLE_SECTIONS:
            template.sections[section] = copy.deepcopy(data.get(section, {}))
        return template

    def read_only_copy(self) -> Template:
        """Independent deep copy; mutating it never affects this template."""
        return Template.from_dict(json.loads(self.to_json()))

    def __repr__(self) -> str:
        return f"Template(resources={len(self.resources)}, outputs={len(self.outputs)})"
