"""
Structured error types for provision-spine.

Every failure raised by the provisioning engine is a ``ProvisionError``
subclass carrying a category, structured context, and the chained cause.
The workflow surfaces exactly one wrapped error to its caller; the category
tells the caller what went wrong without parsing the message.

Manifesto:
    - **Typed Error Hierarchy:** Precondition, remote-call, validation and
      hook failures are distinct types
    - **Aggregate, don't truncate:** Validation errors carry every problem
      found, not just the first
    - **Rich Context:** Errors carry the service, step and resource involved
    - **Error Chaining:** Preserve original exceptions while adding context
    - **No retry semantics:** Nothing in the engine retries; retry is a hook
      concern

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      ProvisionError                              │
        │              (category, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  PreconditionError    RoleResolutionError   StorageError         │
        │  (CONFIG)             (AUTH)                (STORAGE)            │
        │                                                                  │
        │  BuildError           HookError             OrchestrationError   │
        │  (BUILD)              (HOOK)                (ORCHESTRATION)      │
        │                                                                  │
        │  TemplateMergeError   TemplateValidationError                    │
        │  (TEMPLATE)           UnsupportedChangeError  (VALIDATION)       │
        │                                                                  │
        │  StepError  ── wraps any of the above with the failing step      │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Wrapping a remote failure:

    >>> try:
    ...     raise ConnectionError("DNS failure")
    ... except ConnectionError as e:
    ...     error = StorageError("Failed to upload archive", cause=e)
    >>> error.category
    <ErrorCategory.STORAGE: 'STORAGE'>

    Aggregated validation problems:

    >>> error = TemplateValidationError(["a missing key", "b missing key"])
    >>> len(error.problems)
    2

Tags:
    error-handling, exception-hierarchy, error-context, provisioning
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification.

    Categories follow the provisioning error taxonomy:
    - **Precondition:** CONFIG (missing inputs, bucket/region mismatches)
    - **Remote calls:** AUTH, STORAGE, ORCHESTRATION
    - **Validation:** VALIDATION, TEMPLATE
    - **Extension points:** HOOK, BUILD
    """

    CONFIG = "CONFIG"                # Missing inputs, region mismatch
    AUTH = "AUTH"                    # IAM role lookup failures
    STORAGE = "STORAGE"              # S3 upload / bucket inspection
    ORCHESTRATION = "ORCHESTRATION"  # CloudFormation / Lambda API
    VALIDATION = "VALIDATION"        # Aggregated validation failures
    TEMPLATE = "TEMPLATE"            # Template merge conflicts
    BUILD = "BUILD"                  # Compile / archive failures
    HOOK = "HOOK"                    # User-supplied hook failures
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only set fields are serialized by ``to_dict()``; anything that does not
    fit a named field goes into ``metadata``.

    Attributes:
        service: Service (stack) name being provisioned
        step: Workflow step that was running
        bucket: S3 bucket involved
        resource: Logical resource identifier involved
        metadata: Additional key-value pairs
    """

    service: str | None = None
    step: str | None = None
    bucket: str | None = None
    resource: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["service", "step", "bucket", "resource"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ProvisionError(Exception):
    """
    Base exception for all provision-spine errors.

    Subclasses set ``default_category``; callers may override it per
    instance. When ``cause`` is given it is chained as ``__cause__`` so the
    original traceback survives the wrapping.

    Examples:
        >>> error = ProvisionError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = ProvisionError("Upload failed").with_context(bucket="artifacts")
        >>> error.context.bucket
        'artifacts'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ProvisionError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("Upload failed").with_context(
                bucket="artifacts",
                resource="svc/code.zip",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PRECONDITION ERRORS (fail fast, before any side effect)
# =============================================================================


class PreconditionError(ProvisionError):
    """Missing inputs or an environment that cannot be provisioned into."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# REMOTE-CALL ERRORS
# =============================================================================


class RoleResolutionError(ProvisionError):
    """An IAM role name could not be resolved to an ARN."""

    default_category = ErrorCategory.AUTH

    def __init__(self, role_name: str, *, cause: BaseException | None = None):
        self.role_name = role_name
        super().__init__(f"Failed to resolve IAM role: {role_name}", cause=cause)


class StorageError(ProvisionError):
    """S3 upload, deletion, or bucket inspection failure."""

    default_category = ErrorCategory.STORAGE


class OrchestrationError(ProvisionError):
    """CloudFormation or Lambda API failure."""

    default_category = ErrorCategory.ORCHESTRATION


class BuildError(ProvisionError):
    """Compiling or archiving the deployable binary failed."""

    default_category = ErrorCategory.BUILD


# =============================================================================
# VALIDATION ERRORS (aggregated)
# =============================================================================


class TemplateMergeError(ProvisionError):
    """Two template fragments define the same logical identifier."""

    default_category = ErrorCategory.TEMPLATE

    def __init__(self, message: str, conflicts: list[str], **kwargs: Any):
        self.conflicts = conflicts
        super().__init__(f"{message}: {', '.join(conflicts)}", **kwargs)


class TemplateValidationError(ProvisionError):
    """One or more template resources failed validation."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, problems: list[str], **kwargs: Any):
        self.problems = problems
        detail = "\n\t".join(problems)
        super().__init__(f"Problems validating template contents:\n\t{detail}", **kwargs)


class UnsupportedChangeError(ProvisionError):
    """A change set contains changes that cannot be applied in place."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, changes: list[str], **kwargs: Any):
        self.changes = changes
        detail = ",\n\t".join(changes)
        super().__init__(f"Unsupported in-place operations detected:\n\t{detail}", **kwargs)


# =============================================================================
# HOOK & WORKFLOW ERRORS
# =============================================================================


class HookError(ProvisionError):
    """A user-supplied workflow hook returned an error."""

    default_category = ErrorCategory.HOOK

    def __init__(self, phase: str, hook: Any, cause: BaseException):
        self.phase = phase
        self.hook_name = getattr(hook, "__name__", None) or type(hook).__name__
        super().__init__(f"{phase} hook {self.hook_name} failed: {cause}", cause=cause)


class StepError(ProvisionError):
    """Wraps the exception raised by a workflow step with the step's name."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        category = cause.category if isinstance(cause, ProvisionError) else ErrorCategory.INTERNAL
        super().__init__(
            f"Step '{step}' failed: {cause}",
            category=category,
            context=ErrorContext(step=step),
            cause=cause,
        )


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ProvisionError",
    "PreconditionError",
    "RoleResolutionError",
    "StorageError",
    "OrchestrationError",
    "BuildError",
    "TemplateMergeError",
    "TemplateValidationError",
    "UnsupportedChangeError",
    "HookError",
    "StepError",
]
