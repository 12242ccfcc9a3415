"""CloudFormation stack convergence and Lambda code updates.

``converge_stack`` creates the stack when it does not exist and updates it
otherwise, then blocks on the matching waiter until the operation settles
or the timeout passes.  When a waiter fails, the stack's failure events
since the run started are folded into the raised error.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from provision_spine.core.errors import OrchestrationError
from provision_spine.core.logging import get_logger
from provision_spine.provision.interfaces import ResourceChange, StackDescriptor
from provision_spine.provision.template import Template

logger = get_logger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]
WAITER_DELAY_SECONDS = 10

_NO_UPDATES = "No updates are to be performed"
_NO_CHANGES = "didn't contain changes"


def _error_message(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Message", str(error))


def _descriptor(stack: dict[str, Any]) -> StackDescriptor:
    return StackDescriptor(
        stack_name=stack["StackName"],
        stack_id=stack["StackId"],
        status=stack["StackStatus"],
        creation_time=stack.get("CreationTime"),
        outputs={o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])},
    )


class CloudFormationOrchestrator:
    """Stack operations over boto3 ``cloudformation`` and ``lambda`` clients."""

    def __init__(self, cloudformation: Any, lambda_client: Any) -> None:
        self.cloudformation = cloudformation
        self.lambda_client = lambda_client

    # ------------------------------------------------------------------
    # Change sets
    # ------------------------------------------------------------------

    def compute_change_set(
        self,
        name: str,
        stack_name: str,
        template: Template,
        template_url: str,
    ) -> list[ResourceChange]:
        try:
            self.cloudformation.create_change_set(
                StackName=stack_name,
                ChangeSetName=name,
                TemplateURL=template_url,
                ChangeSetType="UPDATE",
                Capabilities=CAPABILITIES,
            )
        except ClientError as e:
            raise OrchestrationError(f"Failed to create change set {name}", cause=e).with_context(
                service=stack_name
            ) from e

        waiter = self.cloudformation.get_waiter("change_set_create_complete")
        try:
            waiter.wait(
                StackName=stack_name,
                ChangeSetName=name,
                WaiterConfig={"Delay": 5, "MaxAttempts": 120},
            )
        except WaiterError as e:
            try:
                described = self.cloudformation.describe_change_set(StackName=stack_name, ChangeSetName=name)
            except ClientError as ce:
                raise OrchestrationError(f"Failed to describe change set {name}", cause=ce).with_context(
                    service=stack_name
                ) from ce
            reason = described.get("StatusReason", "")
            if _NO_CHANGES in reason:
                logger.info("cloudformation.change_set_empty", change_set=name)
                return []
            raise OrchestrationError(
                f"Change set {name} failed: {reason or e}", cause=e
            ).with_context(service=stack_name) from e

        changes: list[ResourceChange] = []
        paginator_args = {"StackName": stack_name, "ChangeSetName": name}
        while True:
            response = self.cloudformation.describe_change_set(**paginator_args)
            for change in response.get("Changes", []):
                resource = change.get("ResourceChange", {})
                changes.append(
                    ResourceChange(
                        action=resource.get("Action", ""),
                        resource_type=resource.get("ResourceType", ""),
                        logical_id=resource.get("LogicalResourceId", ""),
                        physical_id=resource.get("PhysicalResourceId"),
                    )
                )
            token = response.get("NextToken")
            if not token:
                break
            paginator_args["NextToken"] = token
        logger.info("cloudformation.change_set", change_set=name, changes=len(changes))
        return changes

    def delete_change_set(self, name: str, stack_name: str) -> None:
        try:
            self.cloudformation.delete_change_set(ChangeSetName=name, StackName=stack_name)
        except ClientError as e:
            raise OrchestrationError(f"Failed to delete change set {name}", cause=e) from e

    # ------------------------------------------------------------------
    # Stacks
    # ------------------------------------------------------------------

    def _existing_stack(self, stack_name: str) -> dict[str, Any] | None:
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if "does not exist" in _error_message(e):
                return None
            raise OrchestrationError(f"Failed to describe stack {stack_name}", cause=e) from e
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    def describe_stack(self, stack_name: str) -> StackDescriptor:
        stack = self._existing_stack(stack_name)
        if stack is None:
            raise OrchestrationError(f"Stack {stack_name} does not exist")
        return _descriptor(stack)

    def failure_events(self, stack_name: str, since: datetime) -> list[str]:
        """Failure reasons reported by the stack since ``since``."""
        try:
            response = self.cloudformation.describe_stack_events(StackName=stack_name)
        except ClientError:
            logger.warning("cloudformation.events_unavailable", stack=stack_name)
            return []
        messages = []
        for event in response.get("StackEvents", []):
            timestamp = event.get("Timestamp")
            if timestamp is not None and timestamp < since:
                continue
            if str(event.get("ResourceStatus", "")).endswith("FAILED"):
                messages.append(
                    f"{event.get('LogicalResourceId')}: {event.get('ResourceStatusReason', 'unknown')}"
                )
        return messages

    def converge_stack(
        self,
        stack_name: str,
        template: Template,
        template_url: str,
        tags: dict[str, str],
        start_time: datetime,
        timeout: timedelta,
    ) -> StackDescriptor:
        stack_tags = [{"Key": k, "Value": v} for k, v in sorted(tags.items())]
        existing = self._existing_stack(stack_name)
        try:
            if existing is None:
                logger.info("cloudformation.create", stack=stack_name)
                self.cloudformation.create_stack(
                    StackName=stack_name,
                    TemplateURL=template_url,
                    Tags=stack_tags,
                    Capabilities=CAPABILITIES,
                    TimeoutInMinutes=math.ceil(timeout.total_seconds() / 60),
                )
                waiter_name = "stack_create_complete"
            else:
                logger.info("cloudformation.update", stack=stack_name)
                self.cloudformation.update_stack(
                    StackName=stack_name,
                    TemplateURL=template_url,
                    Tags=stack_tags,
                    Capabilities=CAPABILITIES,
                )
                waiter_name = "stack_update_complete"
        except ClientError as e:
            if _NO_UPDATES in _error_message(e):
                logger.info("cloudformation.no_changes", stack=stack_name)
                return self.describe_stack(stack_name)
            raise OrchestrationError(f"Failed to submit stack {stack_name}", cause=e) from e

        attempts = max(1, math.ceil(timeout.total_seconds() / WAITER_DELAY_SECONDS))
        try:
            self.cloudformation.get_waiter(waiter_name).wait(
                StackName=stack_name,
                WaiterConfig={"Delay": WAITER_DELAY_SECONDS, "MaxAttempts": attempts},
            )
        except WaiterError as e:
            reasons = self.failure_events(stack_name, start_time)
            detail = "; ".join(reasons) if reasons else str(e)
            raise OrchestrationError(f"Stack {stack_name} did not converge: {detail}", cause=e).with_context(
                service=stack_name
            ) from e
        return self.describe_stack(stack_name)

    # ------------------------------------------------------------------
    # Lambda
    # ------------------------------------------------------------------

    def update_function_code(
        self,
        function_id: str,
        bucket: str,
        key: str,
        version: str | None = None,
    ) -> None:
        request = {"FunctionName": function_id, "S3Bucket": bucket, "S3Key": key}
        if version:
            request["S3ObjectVersion"] = version
        try:
            self.lambda_client.update_function_code(**request)
        except ClientError as e:
            raise OrchestrationError(f"Failed to update code for {function_id}", cause=e) from e
        logger.info("lambda.code_updated", function=function_id)
