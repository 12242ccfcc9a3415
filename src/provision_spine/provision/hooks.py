"""Workflow hooks - user extension points into the provisioning run.

Every hook point is an ordered list of callables.  A hook receives a
:class:`HookParams` with the shared, mutable ``context`` map plus the
run's identifying values, and fails the whole workflow by raising.
Rollback hooks are the exception: they run during rollback, where errors
are only logged.

========================  ============================================  ==========
Hook point                Call signature                                 Phase
========================  ============================================  ==========
``pre_build``             ``hook(params)``                               package
``post_build``            ``hook(params)``                               package
``archives``              ``hook(params, archive)``                      package
``pre_marshall``          ``hook(params)``                               template
``service_decorators``    ``hook(params, template, code_key)``           template
``post_marshall``         ``hook(params)``                               template
``validators``            ``hook(params, template_copy, code_key)``      template
``rollbacks``             ``hook(params)``                               rollback
``profile_decorator``     ``hook(service_name, function, bucket, log)``  roles
========================  ============================================  ==========

Example::

    def tag_bucket(params: HookParams) -> None:
        params.context["deployed_by"] = "ci"

    hooks = WorkflowHooks(pre_build=[tag_bucket])
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from provision_spine.provision.archive import ArchiveWriter
    from provision_spine.provision.functions import FunctionDescriptor
    from provision_spine.provision.template import Template


@dataclass(frozen=True)
class HookParams:
    """The stable parameter set handed to every hook."""

    context: dict[str, Any]
    service_name: str
    bucket: str
    build_id: str
    session: Any
    dry_run: bool
    logger: Any


class WorkflowHook(Protocol):
    def __call__(self, params: HookParams) -> None: ...


class ArchiveHook(Protocol):
    def __call__(self, params: HookParams, archive: ArchiveWriter) -> None: ...


class ServiceDecoratorHook(Protocol):
    def __call__(self, params: HookParams, template: Template, code_key: str) -> None: ...


class ValidationHook(Protocol):
    def __call__(self, params: HookParams, template: Template, code_key: str) -> None: ...


class RollbackHook(Protocol):
    def __call__(self, params: HookParams) -> None: ...


class ProfileDecorator(Protocol):
    def __call__(
        self,
        service_name: str,
        function: FunctionDescriptor,
        bucket: str,
        logger: Any,
    ) -> None: ...


@dataclass
class WorkflowHooks:
    """All user-supplied hooks for one provisioning run."""

    context: dict[str, Any] = field(default_factory=dict)
    pre_build: list[WorkflowHook] = field(default_factory=list)
    post_build: list[WorkflowHook] = field(default_factory=list)
    pre_marshall: list[WorkflowHook] = field(default_factory=list)
    post_marshall: list[WorkflowHook] = field(default_factory=list)
    archives: list[ArchiveHook] = field(default_factory=list)
    service_decorators: list[ServiceDecoratorHook] = field(default_factory=list)
    validators: list[ValidationHook] = field(default_factory=list)
    rollbacks: list[RollbackHook] = field(default_factory=list)
    profile_decorator: ProfileDecorator | None = None

    def is_empty(self) -> bool:
        return not any(
            (
                self.pre_build,
                self.post_build,
                self.pre_marshall,
                self.post_marshall,
                self.archives,
                self.service_decorators,
                self.validators,
                self.rollbacks,
                self.profile_decorator,
            )
        )

    @classmethod
    def from_single(cls, context: dict[str, Any] | None = None, **single: Callable[..., Any] | None) -> WorkflowHooks:
        """Build hooks from one handler per hook point.

        Keyword names match the list fields (``pre_build=fn``); ``None``
        values are skipped.

        >>> hooks = WorkflowHooks.from_single(pre_build=lambda params: None)
        >>> len(hooks.pre_build)
        1
        """
        hooks = cls(context=dict(context or {}))
        for name, handler in single.items():
            if handler is None:
                continue
            if name == "profile_decorator":
                hooks.profile_decorator = handler
                continue
            if not isinstance(getattr(hooks, name, None), list):
                raise TypeError(f"Unknown hook point: {name}")
            getattr(hooks, name).append(handler)
        return hooks


def hook_name(hook: Any) -> str:
    """Human-readable name of a hook for logs and errors."""
    return getattr(hook, "__name__", None) or type(hook).__name__


def iter_hooks(hooks: WorkflowHooks | None, point: str) -> Iterable[Any]:
    if hooks is None:
        return ()
    return tuple(getattr(hooks, point))
