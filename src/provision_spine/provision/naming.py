"""Artifact naming policy and CloudFormation-safe identifiers.

``version_aware_key`` decides the S3 key for every upload:

- bucket versioning **enabled**  → the default key is reused; older
  objects stay retrievable by version id.
- bucket versioning **disabled** → a SHA-1 suffix salted with the current
  time is inserted before the extension, so every upload gets a fresh key
  and anything referencing the object by key sees a change.
"""

from __future__ import annotations

import hashlib
import posixpath
import random
import re
import time

from provision_spine.core.logging import get_logger

logger = get_logger(__name__)

_INVALID_LOGICAL_ID_CHARS = re.compile(r"[^A-Za-z0-9]+")
_INVALID_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def version_aware_key(default_key: str, versioning_enabled: bool) -> str:
    """Return the S3 key to use for ``default_key``.

    >>> version_aware_key("svc/code.zip", True)
    'svc/code.zip'
    """
    if versioning_enabled:
        return default_key

    stem, extension = posixpath.splitext(default_key)
    salt = f"{default_key}-{time.time_ns()}"
    digest = hashlib.sha1(salt.encode("utf-8")).hexdigest()
    unique_key = f"{stem}-{digest}{extension}"
    logger.debug(
        "naming.unique_key",
        default=default_key,
        extension=extension,
        unique=unique_key,
    )
    return unique_key


def cloudformation_resource_name(prefix: str, *parts: str) -> str:
    """Return a deterministic, CloudFormation-valid logical identifier.

    The same ``prefix`` and ``parts`` always produce the same name. With no
    ``parts`` the name is randomized.
    """
    digest = hashlib.sha1(prefix.encode("utf-8"))
    if parts:
        for part in parts:
            digest.update(part.encode("utf-8"))
    else:
        digest.update(str(random.getrandbits(63)).encode("utf-8"))
    return _INVALID_LOGICAL_ID_CHARS.sub("x", f"{prefix}{digest.hexdigest()}")


def sanitized_name(name: str) -> str:
    """Make ``name`` safe to use as a local filename."""
    return _INVALID_FILENAME_CHARS.sub("-", name).strip("-") or "service"
