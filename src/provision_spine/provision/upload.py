"""Artifact upload and the locations it produces.

Uploads run inside task-runner fan-outs, so :func:`upload_local_file` never
touches the workflow context.  It returns an :class:`UploadOutcome` and the
controlling thread stores the location and registers the rollback action.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from provision_spine.core.errors import StorageError
from provision_spine.provision.interfaces import ObjectStore, RollbackAction
from provision_spine.provision.naming import version_aware_key


@dataclass(frozen=True)
class UploadLocation:
    """An uploaded object's URL, parsed once into key and version."""

    location: str
    key: str
    version: str | None = None

    @classmethod
    def parse(cls, location: str) -> UploadLocation:
        """Parse an object URL.

        >>> UploadLocation.parse("https://b.s3.amazonaws.com/svc/code.zip?versionId=3").version
        '3'
        """
        parsed = urlparse(location)
        versions = parse_qs(parsed.query).get("versionId")
        return cls(
            location=location,
            key=parsed.path.lstrip("/"),
            version=versions[0] if versions else None,
        )


@dataclass(frozen=True)
class UploadOutcome:
    location: UploadLocation
    rollback: RollbackAction | None


def synthetic_location(bucket: str, key: str) -> str:
    """Location reported for uploads skipped in dry-run mode."""
    return f"https://{bucket}-s3.amazonaws.com/{key}"


def default_key(service_name: str, local_path: Path | str) -> str:
    return posixpath.join(service_name, Path(local_path).name)


def upload_local_file(
    store: ObjectStore,
    local_path: Path | str,
    *,
    bucket: str,
    service_name: str,
    versioning_enabled: bool,
    dry_run: bool,
    logger,
    key: str | None = None,
) -> UploadOutcome:
    """Upload one local artifact under a version-aware key.

    In dry-run mode nothing is sent; the outcome carries a synthetic
    location and no rollback action.
    """
    path = Path(local_path)
    object_key = version_aware_key(key or default_key(service_name, path), versioning_enabled)

    if dry_run:
        location = synthetic_location(bucket, object_key)
        logger.info("upload.dry_run", bucket=bucket, key=object_key, location=location)
        return UploadOutcome(UploadLocation.parse(location), None)

    logger.info("upload.start", bucket=bucket, key=object_key, path=str(path))
    try:
        location = store.upload(path, bucket, object_key)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(f"Failed to upload {path.name}", cause=e).with_context(
            bucket=bucket,
            resource=object_key,
        ) from e
    logger.info("upload.complete", location=location)
    return UploadOutcome(UploadLocation.parse(location), store.rollback_for(location))
