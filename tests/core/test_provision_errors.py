"""Tests for provision_spine.core.errors module."""

from provision_spine.core.errors import (
    ErrorCategory,
    ErrorContext,
    HookError,
    PreconditionError,
    ProvisionError,
    RoleResolutionError,
    StepError,
    StorageError,
    TemplateValidationError,
    UnsupportedChangeError,
)


class TestErrorContext:
    def test_only_set_fields_serialized(self):
        ctx = ErrorContext(service="orders", metadata={"attempt": 1})
        assert ctx.to_dict() == {"service": "orders", "attempt": 1}


class TestProvisionError:
    def test_default_category(self):
        assert ProvisionError("x").category == ErrorCategory.INTERNAL
        assert PreconditionError("x").category == ErrorCategory.CONFIG

    def test_cause_chaining(self):
        cause = ConnectionError("dns")
        error = StorageError("upload failed", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "dns"

    def test_with_context(self):
        error = StorageError("x").with_context(bucket="b", attempt=2)
        assert error.context.bucket == "b"
        assert error.context.metadata == {"attempt": 2}
        assert error.to_dict()["context"] == {"bucket": "b", "attempt": 2}

    def test_role_resolution_message(self):
        error = RoleResolutionError("orders-exec")
        assert "orders-exec" in str(error)
        assert error.category == ErrorCategory.AUTH


class TestAggregatedErrors:
    def test_template_validation_lists_every_problem(self):
        error = TemplateValidationError(["a missing", "b missing"])
        assert str(error) == "Problems validating template contents:\n\ta missing\n\tb missing"

    def test_unsupported_change_lists_every_change(self):
        error = UnsupportedChangeError(["Add for Queue (ResourceType: AWS::SQS::Queue)", "Remove for X (ResourceType: Y)"])
        assert "Add for Queue" in str(error)
        assert ",\n\t" in str(error)
        assert error.category == ErrorCategory.VALIDATION


class TestStepError:
    def test_inherits_cause_category(self):
        error = StepError("Uploading code", StorageError("boom"))
        assert error.category == ErrorCategory.STORAGE
        assert error.step == "Uploading code"
        assert error.context.step == "Uploading code"
        assert str(error) == "Step 'Uploading code' failed: boom"

    def test_plain_exception_is_internal(self):
        assert StepError("s", ValueError("x")).category == ErrorCategory.INTERNAL


class TestHookError:
    def test_names_hook(self):
        def tag_bucket(params):
            pass

        error = HookError("pre_build", tag_bucket, RuntimeError("denied"))
        assert error.hook_name == "tag_bucket"
        assert error.category == ErrorCategory.HOOK
        assert "pre_build hook tag_bucket failed: denied" == str(error)

    def test_callable_object_uses_class_name(self):
        class TagBucket:
            def __call__(self, params):
                pass

        error = HookError("pre_build", TagBucket(), RuntimeError("denied"))
        assert error.hook_name == "TagBucket"
