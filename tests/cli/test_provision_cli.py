"""Tests for the provision-spine CLI."""

from __future__ import annotations

import json
import sys
from unittest.mock import patch

import pytest
import structlog
import typer
from typer.testing import CliRunner

from provision_spine.cli import app
from provision_spine.cli.provision import load_object

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("PROVISION_BUCKET", "PROVISION_DRY_RUN", "PROVISION_PIPELINE_TRIGGER", "PROVISION_SCRATCH_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("provision_spine.core.logging.configure_logging", lambda **kwargs: None)
    # Workflow logs go to stderr, keeping stdout for the rendered summary.
    structlog.configure(
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


class TestRootApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "provision-spine" in result.output

    def test_help_lists_provision(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "provision" in result.output


class TestLoadObject:
    def test_loads_attribute_from_cwd_module(self, tmp_path):
        (tmp_path / "cli_orders_service.py").write_text(
            "from provision_spine.provision import FunctionDescriptor, ServiceDefinition\n"
            "SERVICE = ServiceDefinition('orders', functions=[FunctionDescriptor('ingest', role_name='r')])\n"
            "def build():\n"
            "    return SERVICE\n"
        )
        assert load_object("cli_orders_service:SERVICE").name == "orders"
        assert load_object("cli_orders_service:build").name == "orders"

    def test_rejects_malformed_path(self):
        with pytest.raises(typer.BadParameter):
            load_object("no_colon_here")

    def test_rejects_missing_module(self):
        with pytest.raises(typer.BadParameter, match="Cannot load"):
            load_object("does_not_exist_anywhere:SERVICE")


class TestProvisionCommand:
    def test_missing_bucket(self, sample_service):
        with patch("provision_spine.cli.provision.load_object", return_value=sample_service):
            result = runner.invoke(app, ["provision", "--service", "svc:SERVICE"])
        assert result.exit_code == 2

    def test_json_summary(self, services, sample_service, orchestrator):
        with (
            patch("provision_spine.cli.provision.load_object", return_value=sample_service),
            patch("provision_spine.aws.aws_services", return_value=services),
        ):
            result = runner.invoke(
                app,
                ["provision", "--service", "svc:SERVICE", "--bucket", "artifacts", "--build-id", "ci-7", "--json"],
            )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout[result.stdout.index("{"):])
        assert data["service"] == "orders"
        assert data["build_id"] == "ci-7"
        assert data["stack"]["status"] == "UPDATE_COMPLETE"
        assert len(orchestrator.converged) == 1

    def test_table_summary_and_template_out(self, services, sample_service, tmp_path):
        out = tmp_path / "template.json"
        with (
            patch("provision_spine.cli.provision.load_object", return_value=sample_service),
            patch("provision_spine.aws.aws_services", return_value=services),
        ):
            result = runner.invoke(
                app,
                ["provision", "-s", "svc:SERVICE", "-b", "artifacts", "--dry-run", "--template-out", str(out)],
            )
        assert result.exit_code == 0, result.output
        assert "orders Summary" in result.stdout
        assert "Resources" in json.loads(out.read_text())

    def test_workflow_failure_exits_nonzero(self, services, sample_service, object_store):
        object_store.region = "ap-south-1"
        with (
            patch("provision_spine.cli.provision.load_object", return_value=sample_service),
            patch("provision_spine.aws.aws_services", return_value=services),
        ):
            result = runner.invoke(app, ["provision", "-s", "svc:SERVICE", "-b", "artifacts"])
        assert result.exit_code == 1

    def test_rejects_non_service_target(self):
        with patch("provision_spine.cli.provision.load_object", return_value=object()):
            result = runner.invoke(app, ["provision", "-s", "svc:SERVICE", "-b", "artifacts"])
        assert result.exit_code == 2
