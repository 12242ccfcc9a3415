"""Core primitives shared by every provision-spine component."""

from provision_spine.core.errors import (
    BuildError,
    ErrorCategory,
    ErrorContext,
    HookError,
    OrchestrationError,
    PreconditionError,
    ProvisionError,
    RoleResolutionError,
    StepError,
    StorageError,
    TemplateMergeError,
    TemplateValidationError,
    UnsupportedChangeError,
)
from provision_spine.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "BuildError",
    "ErrorCategory",
    "ErrorContext",
    "HookError",
    "OrchestrationError",
    "PreconditionError",
    "ProvisionError",
    "RoleResolutionError",
    "StepError",
    "StorageError",
    "TemplateMergeError",
    "TemplateValidationError",
    "UnsupportedChangeError",
    "LogContext",
    "configure_logging",
    "get_logger",
]
