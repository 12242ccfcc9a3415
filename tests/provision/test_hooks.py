"""Tests for hook containers and the single-handler adapter."""

from __future__ import annotations

import pytest

from provision_spine.provision.hooks import WorkflowHooks, hook_name, iter_hooks


def pre_build(params):
    pass


class TestWorkflowHooks:
    def test_default_is_empty(self):
        assert WorkflowHooks().is_empty()

    def test_context_alone_is_still_empty(self):
        assert WorkflowHooks(context={"a": 1}).is_empty()

    def test_from_single_wraps_handlers(self):
        decorator = lambda service, function, bucket, log: None  # noqa: E731
        hooks = WorkflowHooks.from_single(
            context={"k": "v"},
            pre_build=pre_build,
            post_build=None,
            profile_decorator=decorator,
        )
        assert hooks.pre_build == [pre_build]
        assert hooks.post_build == []
        assert hooks.profile_decorator is decorator
        assert hooks.context == {"k": "v"}
        assert not hooks.is_empty()

    def test_from_single_rejects_unknown_point(self):
        with pytest.raises(TypeError):
            WorkflowHooks.from_single(pre_deploy=pre_build)

    def test_iter_hooks(self):
        hooks = WorkflowHooks(pre_build=[pre_build])
        assert iter_hooks(hooks, "pre_build") == (pre_build,)
        assert iter_hooks(None, "pre_build") == ()

    def test_hook_name(self):
        assert hook_name(pre_build) == "pre_build"

        class Recorder:
            def __call__(self, params):
                pass

        assert hook_name(Recorder()) == "Recorder"
