"""
Shared pytest fixtures and in-memory collaborators for provision-spine tests.

This module provides:
- Fake object store, orchestrator, role directory and builder that record
  every call, so tests can assert on remote traffic without AWS
- A ``services`` fixture bundling them into ``ProvisionServices``
- A ``config`` fixture pointing the scratch directory at ``tmp_path``

Usage:
    def test_dry_run(services, config, sample_service):
        summary = Provisioner(services, config).provision(sample_service)
"""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from provision_spine.core.errors import RoleResolutionError, StorageError
from provision_spine.provision.config import ProvisionConfig
from provision_spine.provision.functions import FunctionDescriptor
from provision_spine.provision.interfaces import ProvisionServices, ResourceChange, StackDescriptor
from provision_spine.provision.service import ServiceDefinition


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        if "integration" in item.nodeid or "test_workflow" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeObjectStore:
    def __init__(self, versioning: bool = False, region: str = "us-east-1") -> None:
        self.versioning = versioning
        self.region = region
        self.uploads: list[tuple[str, str, str]] = []
        self.deleted: list[str] = []
        self.fail_on: set[str] = set()
        self.delay = 0.0
        self._lock = threading.Lock()

    def upload(self, local_path: Path, bucket: str, key: str) -> str:
        if self.delay:
            time.sleep(self.delay)
        name = Path(local_path).name
        if any(marker in name for marker in self.fail_on):
            raise StorageError(f"upload refused: {name}")
        with self._lock:
            self.uploads.append((str(local_path), bucket, key))
        url = f"https://{bucket}.s3.amazonaws.com/{key}"
        if self.versioning:
            url += f"?versionId=v{len(self.uploads)}"
        return url

    def rollback_for(self, location: str):
        def delete(logger: Any) -> None:
            with self._lock:
                self.deleted.append(location)

        return delete

    def bucket_versioning_enabled(self, bucket: str) -> bool:
        return self.versioning

    def bucket_region(self, bucket: str) -> str:
        return self.region


class FakeOrchestrator:
    def __init__(self) -> None:
        self.changes: list[ResourceChange] = []
        self.change_sets: list[tuple[str, str, str]] = []
        self.deleted_change_sets: list[str] = []
        self.code_updates: list[tuple[str, str, str, str | None]] = []
        self.converged: list[dict[str, Any]] = []
        self.converge_error: Exception | None = None
        self._lock = threading.Lock()

    def _stack(self, stack_name: str) -> StackDescriptor:
        return StackDescriptor(
            stack_name=stack_name,
            stack_id=f"arn:aws:cloudformation:us-east-1:123456789012:stack/{stack_name}/1",
            status="UPDATE_COMPLETE",
            creation_time=datetime(2024, 1, 1, tzinfo=UTC),
            outputs={"Endpoint": "https://example.test"},
        )

    def compute_change_set(self, name, stack_name, template, template_url):
        self.change_sets.append((name, stack_name, template_url))
        return list(self.changes)

    def delete_change_set(self, name, stack_name):
        with self._lock:
            self.deleted_change_sets.append(name)

    def converge_stack(self, stack_name, template, template_url, tags, start_time, timeout):
        if self.converge_error is not None:
            raise self.converge_error
        self.converged.append(
            {
                "stack_name": stack_name,
                "template": template,
                "template_url": template_url,
                "tags": tags,
                "timeout": timeout,
            }
        )
        return self._stack(stack_name)

    def describe_stack(self, stack_name):
        return self._stack(stack_name)

    def update_function_code(self, function_id, bucket, key, version=None):
        with self._lock:
            self.code_updates.append((function_id, bucket, key, version))


class FakeRoleDirectory:
    def __init__(self, arns: dict[str, str] | None = None) -> None:
        self.arns = arns or {}
        self.lookups: list[str] = []

    def get_role_arn(self, role_name: str) -> str:
        self.lookups.append(role_name)
        if role_name not in self.arns:
            raise RoleResolutionError(role_name)
        return self.arns[role_name]


class FakeBuilder:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    def compile(self, service_name, output_binary, *, cgo_enabled, build_id, build_tags, link_flags, dry_run):
        self.calls.append(
            {
                "service_name": service_name,
                "output_binary": output_binary,
                "cgo_enabled": cgo_enabled,
                "build_id": build_id,
                "build_tags": build_tags,
                "link_flags": link_flags,
                "dry_run": dry_run,
            }
        )
        if self.error is not None:
            raise self.error
        Path(output_binary).write_bytes(b"\x7fELF fake binary")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def role_directory() -> FakeRoleDirectory:
    return FakeRoleDirectory({"orders-exec": "arn:aws:iam::123456789012:role/orders-exec"})


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def services(object_store, orchestrator, role_directory, builder) -> ProvisionServices:
    return ProvisionServices(
        object_store=object_store,
        orchestrator=orchestrator,
        role_directory=role_directory,
        builder=builder,
        session=SimpleNamespace(region="us-east-1"),
    )


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    return ProvisionConfig(bucket="artifacts", build_id="build-1", scratch_dir=tmp_path / "scratch")


@pytest.fixture
def sample_service() -> ServiceDefinition:
    return ServiceDefinition(
        name="orders",
        description="Order intake",
        functions=[FunctionDescriptor("ingest", role_name="orders-exec")],
    )
