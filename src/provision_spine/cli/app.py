"""
Root Typer application for the provision-spine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="provision-spine",
    help="provision-spine - build, package and provision Lambda services with CloudFormation.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("provision-spine")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"provision-spine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """provision-spine CLI - provision services and render their templates."""


# ── Command registration ─────────────────────────────────────────────────

from provision_spine.cli.provision import provision_command  # noqa: E402

app.command("provision")(provision_command)
