"""Zip archive writer for code bundles, site bundles and pipeline packages.

Lambda can only exec the bootstrap binary if its zip entry carries Unix
permission bits.  ``zipfile`` copies the local mode on POSIX hosts; on
hosts without POSIX permissions (Windows) the entry header is annotated
with :func:`make_executable` instead.
"""

from __future__ import annotations

import os
import shutil
import sys
import zipfile
from collections.abc import Callable
from pathlib import Path

from provision_spine.core.logging import get_logger

logger = get_logger(__name__)

HeaderAnnotator = Callable[[zipfile.ZipInfo], zipfile.ZipInfo]

_UNIX_CREATOR = 3


def make_executable(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    """Mark an entry as a Unix file with ``0777`` permissions."""
    info.create_system = _UNIX_CREATOR
    info.external_attr = 0o777 << 16
    return info


def executable_annotator() -> HeaderAnnotator | None:
    """Annotator needed on this platform to keep binaries executable."""
    if sys.platform.startswith("win") or hasattr(sys, "getandroidapilevel"):
        return make_executable
    return None


class ArchiveWriter:
    """Writes named entries into a zip file.

    Usage::

        with ArchiveWriter(path) as archive:
            archive.add_file(binary, annotator=executable_annotator())
            archive.add_bytes("manifest.json", b"{}")
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._zip = zipfile.ZipFile(self.path, mode="w", compression=zipfile.ZIP_DEFLATED)
        self._closed = False

    @property
    def names(self) -> list[str]:
        return self._zip.namelist()

    def add_file(
        self,
        local_path: Path | str,
        arcname: str | None = None,
        annotator: HeaderAnnotator | None = None,
    ) -> None:
        """Add a local file, optionally rewriting its entry header."""
        source = Path(local_path)
        info = zipfile.ZipInfo.from_file(source, arcname=arcname or source.name)
        info.compress_type = zipfile.ZIP_DEFLATED
        if annotator is not None:
            info = annotator(info)
        with source.open("rb") as handle, self._zip.open(info, "w") as dest:
            shutil.copyfileobj(handle, dest)
        logger.debug("archive.add_file", archive=self.path.name, entry=info.filename)

    def add_bytes(self, arcname: str, data: bytes | str) -> None:
        """Add an in-memory entry."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._zip.writestr(arcname, data)
        logger.debug("archive.add_bytes", archive=self.path.name, entry=arcname, size=len(data))

    def add_directory(self, root: Path | str) -> int:
        """Add every file under ``root`` with paths relative to it."""
        base = Path(root).resolve()
        count = 0
        for dirpath, _dirnames, filenames in os.walk(base):
            for filename in sorted(filenames):
                source = Path(dirpath) / filename
                self.add_file(source, arcname=source.relative_to(base).as_posix())
                count += 1
        return count

    def close(self) -> None:
        if not self._closed:
            self._zip.close()
            self._closed = True

    def __enter__(self) -> ArchiveWriter:
        return self

    def __exit__(self, *args) -> None:
        self.close()
