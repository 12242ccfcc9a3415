"""Tests for artifact naming and logical identifiers."""

from __future__ import annotations

import re

from provision_spine.provision.naming import (
    cloudformation_resource_name,
    sanitized_name,
    version_aware_key,
)


class TestVersionAwareKey:
    def test_versioned_bucket_keeps_key(self):
        assert version_aware_key("svc/code.zip", True) == "svc/code.zip"
        assert version_aware_key("svc/code.zip", True) == "svc/code.zip"

    def test_unversioned_bucket_salts_before_extension(self):
        key = version_aware_key("svc/code.zip", False)
        assert re.fullmatch(r"svc/code-[0-9a-f]{40}\.zip", key)

    def test_unversioned_keys_differ_across_calls(self):
        first = version_aware_key("svc/code.zip", False)
        second = version_aware_key("svc/code.zip", False)
        assert first != second

    def test_key_without_extension(self):
        key = version_aware_key("svc/template", False)
        assert re.fullmatch(r"svc/template-[0-9a-f]{40}", key)

    def test_dot_in_directory_is_not_an_extension(self):
        key = version_aware_key("svc.v1/bundle", False)
        assert key.startswith("svc.v1/bundle-")


class TestCloudFormationResourceName:
    def test_deterministic_with_parts(self):
        a = cloudformation_resource_name("IAMRole", "orders", "ingest")
        b = cloudformation_resource_name("IAMRole", "orders", "ingest")
        assert a == b
        assert a.startswith("IAMRole")

    def test_different_parts_differ(self):
        assert cloudformation_resource_name("Lambda", "a") != cloudformation_resource_name("Lambda", "b")

    def test_alphanumeric_only(self):
        name = cloudformation_resource_name("my-service InPlaceChangeSet")
        assert re.fullmatch(r"[A-Za-z0-9]+", name)

    def test_no_parts_is_random(self):
        assert cloudformation_resource_name("Prefix") != cloudformation_resource_name("Prefix")


class TestSanitizedName:
    def test_replaces_unsafe_characters(self):
        assert sanitized_name("my service/v2") == "my-service-v2"

    def test_empty_falls_back(self):
        assert sanitized_name("///") == "service"
