"""S3 object store for code archives, site archives and templates."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote, urlparse

from botocore.exceptions import ClientError

from provision_spine.core.errors import StorageError
from provision_spine.core.logging import get_logger
from provision_spine.provision.interfaces import RollbackAction
from provision_spine.provision.upload import UploadLocation

logger = get_logger(__name__)

# us-east-1 buckets report no location constraint
_DEFAULT_REGION = "us-east-1"


def object_url(bucket: str, key: str, version: str | None = None) -> str:
    url = f"https://{bucket}.s3.amazonaws.com/{quote(key)}"
    if version:
        url += f"?versionId={quote(version)}"
    return url


def bucket_from_url(location: str) -> str:
    host = urlparse(location).netloc
    return host.split(".s3", 1)[0]


class S3ObjectStore:
    """Uploads artifacts with ``put_object`` so the version id comes back."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def upload(self, local_path: Path, bucket: str, key: str) -> str:
        path = Path(local_path)
        try:
            with path.open("rb") as body:
                response = self.client.put_object(Bucket=bucket, Key=key, Body=body)
        except (ClientError, OSError) as e:
            raise StorageError(f"Failed to upload {path.name}", cause=e).with_context(
                bucket=bucket,
                resource=key,
            ) from e
        version = response.get("VersionId")
        if version == "null":
            version = None
        logger.info("s3.uploaded", bucket=bucket, key=key, version=version)
        return object_url(bucket, key, version)

    def rollback_for(self, location: str) -> RollbackAction:
        parsed = UploadLocation.parse(location)
        bucket = bucket_from_url(location)
        key = unquote(parsed.key)

        def delete_object(log: Any) -> None:
            params = {"Bucket": bucket, "Key": key}
            if parsed.version:
                params["VersionId"] = unquote(parsed.version)
            log.info("s3.rollback.delete", bucket=bucket, key=key, version=parsed.version)
            self.client.delete_object(**params)

        return delete_object

    def bucket_versioning_enabled(self, bucket: str) -> bool:
        try:
            response = self.client.get_bucket_versioning(Bucket=bucket)
        except ClientError as e:
            raise StorageError(f"Failed to read versioning for bucket {bucket}", cause=e).with_context(
                bucket=bucket
            ) from e
        return response.get("Status") == "Enabled"

    def bucket_region(self, bucket: str) -> str:
        try:
            response = self.client.get_bucket_location(Bucket=bucket)
        except ClientError as e:
            raise StorageError(f"Failed to read location for bucket {bucket}", cause=e).with_context(
                bucket=bucket
            ) from e
        return response.get("LocationConstraint") or _DEFAULT_REGION
