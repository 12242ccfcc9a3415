"""boto3-backed collaborators for the provisioning workflow."""

from __future__ import annotations

from provision_spine.aws.cloudformation import CloudFormationOrchestrator
from provision_spine.aws.iam import IamRoleDirectory
from provision_spine.aws.s3 import S3ObjectStore
from provision_spine.aws.session import AwsSession
from provision_spine.provision.build import GoBuilder
from provision_spine.provision.config import ProvisionConfig
from provision_spine.provision.interfaces import ProvisionServices


def aws_services(config: ProvisionConfig, source_dir: str = ".") -> ProvisionServices:
    """Real collaborators for ``config``'s region and profile."""
    session = AwsSession(region=config.region, profile=config.profile)
    return ProvisionServices(
        object_store=S3ObjectStore(session.client("s3")),
        orchestrator=CloudFormationOrchestrator(session.client("cloudformation"), session.client("lambda")),
        role_directory=IamRoleDirectory(session.client("iam")),
        builder=GoBuilder(source_dir=source_dir),
        session=session,
    )


__all__ = [
    "AwsSession",
    "CloudFormationOrchestrator",
    "IamRoleDirectory",
    "S3ObjectStore",
    "aws_services",
]
