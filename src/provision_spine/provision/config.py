"""Configuration model for a provisioning run.

Every field can be set from the environment through :meth:`ProvisionConfig.from_env`,
so CI systems can run ``PROVISION_BUCKET=artifacts PROVISION_DRY_RUN=true``
without touching code.

Key Concepts:
    ProvisionConfig: bucket, build options, operation mode and AWS session
        settings. Uses ``PROVISION_*`` env vars via ``from_env()``.
    Pipeline environments: named parameter sets for change-pipeline
        deployments. They are an ordinary field on the config and travel
        into the workflow context with everything else.

Architecture Decisions:
    - Pydantic v2 with ``model_validator(mode="after")`` auto-generating
      ``build_id`` so every run is traceable.
    - Override precedence: kwargs > env vars > field defaults.

Tags:
    config, settings, pydantic, environment
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from provision_spine.provision.constants import DEFAULT_BINARY_NAME, SCRATCH_DIRECTORY

_TRUE_VALUES = ("true", "1", "yes")


class ProvisionConfig(BaseModel):
    """Settings for one provisioning run.

    Example::

        config = ProvisionConfig(bucket="my-artifacts", dry_run=True)
    """

    # Destination
    bucket: str = Field(default="", description="S3 bucket receiving code, site and template artifacts")

    # Mode
    dry_run: bool = Field(default=False, description="Build and render without any remote mutation")
    in_place: bool = Field(
        default=False,
        description="Update Lambda code directly when only function code changed",
    )
    pipeline_trigger: str | None = Field(
        default=None,
        description="S3 key of a pipeline archive; when set no stack operation is applied",
    )

    # Build
    build_id: str = Field(default="", description="Build identifier; generated when empty")
    build_tags: str = Field(default="", description="Additional build tags passed to the compiler")
    link_flags: str = Field(default="", description="Linker flags passed to the compiler")
    cgo_enabled: bool = Field(default=False, description="Compile with cgo enabled")
    binary_name: str = Field(default=DEFAULT_BINARY_NAME, description="Name of the compiled executable")
    scratch_dir: Path = Field(
        default=Path(SCRATCH_DIRECTORY),
        description="Directory for build outputs, archives and rendered templates",
    )

    # Session
    region: str | None = Field(default=None, description="AWS region override")
    profile: str | None = Field(default=None, description="AWS named profile")

    # Observability
    log_level: str = Field(default="INFO", description="Log level, also exported to deployed functions")

    # Pipelines
    pipeline_environments: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Per-environment parameter values for pipeline deployments",
    )

    @model_validator(mode="after")
    def _set_defaults(self) -> ProvisionConfig:
        if not self.build_id:
            self.build_id = uuid.uuid4().hex[:12]
        self.log_level = self.log_level.upper()
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> ProvisionConfig:
        """Create config from PROVISION_* environment variables."""
        env_map = {
            "bucket": "PROVISION_BUCKET",
            "dry_run": "PROVISION_DRY_RUN",
            "in_place": "PROVISION_IN_PLACE",
            "build_id": "PROVISION_BUILD_ID",
            "build_tags": "PROVISION_BUILD_TAGS",
            "link_flags": "PROVISION_LINK_FLAGS",
            "cgo_enabled": "PROVISION_CGO_ENABLED",
            "pipeline_trigger": "PROVISION_PIPELINE_TRIGGER",
            "scratch_dir": "PROVISION_SCRATCH_DIR",
            "log_level": "PROVISION_LOG_LEVEL",
            "region": "PROVISION_REGION",
            "profile": "PROVISION_PROFILE",
            "binary_name": "PROVISION_BINARY_NAME",
        }
        values: dict[str, Any] = {}
        for field_name, env_var in env_map.items():
            env_val = os.environ.get(env_var)
            if env_val is not None:
                if field_name in ("dry_run", "in_place", "cgo_enabled"):
                    values[field_name] = env_val.lower() in _TRUE_VALUES
                elif field_name == "scratch_dir":
                    values[field_name] = Path(env_val)
                else:
                    values[field_name] = env_val
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
