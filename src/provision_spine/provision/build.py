"""Cross-compiles the service binary with the ``go`` CLI (subprocess).

The binary targets ``linux/amd64`` so it runs on the Lambda custom
runtime.  Build tags always include ``lambdabinary`` so the service's main
package can tell a deployed build from a local one.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

from provision_spine.core.errors import BuildError
from provision_spine.core.logging import get_logger

logger = get_logger(__name__)

LAMBDA_BUILD_TAG = "lambdabinary"


class GoBuilder:
    """Builds a Go main package into a Lambda-compatible executable.

    Parameters
    ----------
    source_dir
        Directory holding the main package.
    go_command
        Path to the ``go`` binary; looked up on PATH when omitted.
    timeout
        Seconds to wait for ``go build``.
    """

    def __init__(
        self,
        source_dir: Path | str = ".",
        go_command: str | None = None,
        timeout: int = 600,
    ) -> None:
        self.source_dir = Path(source_dir)
        self._go_command = go_command
        self.timeout = timeout

    def _go(self) -> str:
        go = self._go_command or shutil.which("go")
        if go is None:
            raise BuildError("Go toolchain not found on PATH")
        return go

    def command(
        self,
        output_binary: str,
        *,
        build_id: str,
        build_tags: str,
        link_flags: str,
    ) -> list[str]:
        tags = " ".join(t for t in (LAMBDA_BUILD_TAG, build_tags.strip()) if t)
        ldflags = " ".join(f for f in ("-s -w", f"-X main.buildID={build_id}", link_flags.strip()) if f)
        return [
            self._go(),
            "build",
            "-o",
            output_binary,
            "-tags",
            tags,
            "-ldflags",
            ldflags,
            ".",
        ]

    def compile(
        self,
        service_name: str,
        output_binary: str,
        *,
        cgo_enabled: bool,
        build_id: str,
        build_tags: str,
        link_flags: str,
        dry_run: bool,
    ) -> None:
        cmd = self.command(output_binary, build_id=build_id, build_tags=build_tags, link_flags=link_flags)
        env = {
            **os.environ,
            "GOOS": "linux",
            "GOARCH": "amd64",
            "CGO_ENABLED": "1" if cgo_enabled else "0",
        }
        logger.info(
            "build.start",
            service=service_name,
            output=output_binary,
            cgo=cgo_enabled,
            dry_run=dry_run,
        )
        try:
            result = subprocess.run(
                cmd,
                cwd=self.source_dir,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise BuildError(f"Failed to compile {service_name}", cause=e) from e
        if result.returncode != 0:
            raise BuildError(
                f"go build failed for {service_name} (exit {result.returncode}): {result.stderr.strip()}"
            )
        logger.info("build.complete", service=service_name, output=output_binary)
