"""IAM role lookups."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from provision_spine.core.errors import RoleResolutionError
from provision_spine.core.logging import get_logger

logger = get_logger(__name__)


class IamRoleDirectory:
    def __init__(self, client: Any) -> None:
        self.client = client

    def get_role_arn(self, role_name: str) -> str:
        try:
            response = self.client.get_role(RoleName=role_name)
        except ClientError as e:
            logger.warning(
                "iam.role_lookup_failed",
                role=role_name,
                code=e.response.get("Error", {}).get("Code"),
            )
            raise RoleResolutionError(role_name, cause=e) from e
        return response["Role"]["Arn"]
