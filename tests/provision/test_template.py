"""Tests for the template document and safe merge."""

from __future__ import annotations

import json

from provision_spine.provision.template import (
    CLOUDFRONT_DISTRIBUTION_TYPE,
    LAMBDA_FUNCTION_TYPE,
    Template,
    get_att,
    ref,
)


class TestTemplate:
    def test_to_dict_includes_only_populated_sections(self):
        template = Template(description="Orders")
        template.add_resource("Fn", LAMBDA_FUNCTION_TYPE, {"Handler": "bootstrap"})
        body = template.to_dict()
        assert body["Description"] == "Orders"
        assert body["Resources"]["Fn"]["Type"] == LAMBDA_FUNCTION_TYPE
        assert "Outputs" not in body

    def test_resource_attributes(self):
        template = Template()
        template.add_resource("Fn", LAMBDA_FUNCTION_TYPE, DependsOn=["Role"])
        assert template.resource("Fn")["DependsOn"] == ["Role"]

    def test_intrinsics(self):
        assert ref("Table") == {"Ref": "Table"}
        assert get_att("Role", "Arn") == {"Fn::GetAtt": ["Role", "Arn"]}

    def test_has_resource_type(self):
        template = Template()
        assert not template.has_resource_type(CLOUDFRONT_DISTRIBUTION_TYPE)
        template.add_resource("Cdn", CLOUDFRONT_DISTRIBUTION_TYPE)
        assert template.has_resource_type(CLOUDFRONT_DISTRIBUTION_TYPE)

    def test_json_round_trip(self):
        template = Template(description="d")
        template.add_parameter("Stage")
        template.add_output("Url", ref("Api"), description="endpoint")
        restored = Template.from_dict(json.loads(template.to_json()))
        assert restored.parameters == {"Stage": {"Type": "String", "Default": ""}}
        assert restored.outputs["Url"]["Description"] == "endpoint"


class TestSafeMerge:
    def test_disjoint_merge(self):
        main = Template()
        main.add_resource("A", "AWS::SNS::Topic")
        fragment = Template()
        fragment.add_resource("B", "AWS::SQS::Queue")
        fragment.add_output("QueueUrl", ref("B"))

        assert main.safe_merge(fragment) == []
        assert set(main.resources) == {"A", "B"}
        assert "QueueUrl" in main.outputs

    def test_conflict_leaves_template_untouched(self):
        main = Template()
        main.add_resource("A", "AWS::SNS::Topic")
        fragment = Template()
        fragment.add_resource("A", "AWS::SQS::Queue")
        fragment.add_resource("C", "AWS::SQS::Queue")

        assert main.safe_merge(fragment) == ["Resources.A"]
        assert main.resource("A")["Type"] == "AWS::SNS::Topic"
        assert "C" not in main.resources

    def test_merged_values_are_copies(self):
        main = Template()
        fragment = Template()
        fragment.add_resource("B", "AWS::SQS::Queue", {"Name": "q"})
        main.safe_merge(fragment)
        fragment.resource("B")["Properties"]["Name"] = "changed"
        assert main.resource("B")["Properties"]["Name"] == "q"


class TestReadOnlyCopy:
    def test_mutating_copy_does_not_affect_original(self):
        template = Template()
        template.add_resource("Fn", LAMBDA_FUNCTION_TYPE, {"Environment": {"Variables": {"A": "1"}}})
        copy = template.read_only_copy()
        copy.resource("Fn")["Properties"]["Environment"]["Variables"]["A"] = "2"
        copy.add_resource("Extra", "AWS::SNS::Topic")
        assert template.resource("Fn")["Properties"]["Environment"]["Variables"]["A"] == "1"
        assert "Extra" not in template.resources
