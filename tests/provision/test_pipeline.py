"""Tests for change-pipeline parameters and archives."""

from __future__ import annotations

import json
import zipfile
from unittest.mock import MagicMock

from provision_spine.provision.pipeline import (
    add_pipeline_parameters,
    check_environment_consistency,
    parameter_environment,
    write_pipeline_archive,
)
from provision_spine.provision.template import Template

ENVIRONMENTS = {
    "staging": {"TABLE": "orders-staging", "STAGE": "staging"},
    "production": {"TABLE": "orders", "STAGE": "prod"},
}


class TestPipelineEnvironments:
    def test_consistent_environments(self):
        logger = MagicMock()
        assert check_environment_consistency(ENVIRONMENTS, logger)
        logger.warning.assert_not_called()

    def test_inconsistent_environments_only_warn(self):
        logger = MagicMock()
        envs = {"a": {"X": "1"}, "b": {"Y": "2"}}
        assert not check_environment_consistency(envs, logger)
        logger.warning.assert_called_once()

    def test_parameters_are_union_of_keys(self):
        template = Template()
        names = add_pipeline_parameters(template, {"a": {"X": "1"}, "b": {"Y": "2"}})
        assert names == ["X", "Y"]
        assert template.parameters["X"] == {"Type": "String", "Default": ""}

    def test_parameter_environment_refs(self):
        assert parameter_environment(ENVIRONMENTS) == {"STAGE": {"Ref": "STAGE"}, "TABLE": {"Ref": "TABLE"}}


class TestPipelineArchive:
    def test_archive_contents(self, tmp_path):
        path = write_pipeline_archive(tmp_path / "pipeline.zip", '{"Resources": {}}', ENVIRONMENTS)
        with zipfile.ZipFile(path) as zf:
            assert sorted(zf.namelist()) == ["cloudformation.json", "production.json", "staging.json"]
            assert json.loads(zf.read("staging.json")) == {"Parameters": ENVIRONMENTS["staging"]}
            assert zf.read("cloudformation.json") == b'{"Resources": {}}'
