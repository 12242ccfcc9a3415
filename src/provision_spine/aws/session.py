"""boto3 session wrapper shared by every AWS collaborator."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from provision_spine.core.logging import get_logger

logger = get_logger(__name__)

_CLIENT_CONFIG = Config(retries={"mode": "standard"}, signature_version="v4")


class AwsSession:
    """A boto3 session plus the region the workflow provisions into."""

    def __init__(
        self,
        region: str | None = None,
        profile: str | None = None,
        session: boto3.Session | None = None,
    ) -> None:
        self.session = session or boto3.Session(region_name=region, profile_name=profile)
        logger.debug("aws.session", region=self.region, profile=profile)

    @property
    def region(self) -> str | None:
        return self.session.region_name

    def client(self, service_name: str) -> Any:
        return self.session.client(service_name, config=_CLIENT_CONFIG)
