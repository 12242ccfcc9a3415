"""
CLI: ``provision-spine provision`` - run the provisioning workflow.

Usage::

    provision-spine provision --service myapp.service:SERVICE --bucket artifacts
    provision-spine provision --service myapp.service:SERVICE --bucket artifacts --dry-run \\
        --template-out template.json
    provision-spine provision --service myapp.service:SERVICE --in-place --json

Every option falls back to its ``PROVISION_*`` environment variable.
"""

from __future__ import annotations

import importlib
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from provision_spine.core.errors import ProvisionError
from provision_spine.provision.hooks import WorkflowHooks
from provision_spine.provision.service import ServiceDefinition

console = Console()
err_console = Console(stderr=True)


def load_object(path: str) -> Any:
    """Import ``module:attribute``; a callable attribute is called with no arguments."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise typer.BadParameter(f"Expected 'module:attribute', got {path!r}")
    if str(Path.cwd()) not in sys.path:
        sys.path.insert(0, str(Path.cwd()))
    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise typer.BadParameter(f"Cannot load {path}: {e}") from e
    if callable(target) and not isinstance(target, (ServiceDefinition, WorkflowHooks)):
        target = target()
    return target


def _print_summary(summary: Any) -> None:
    table = Table(title=f"{summary.service} Summary", show_lines=False, pad_edge=False)
    table.add_column("Step", style="cyan")
    table.add_column("Duration (s)", justify="right")
    for step in summary.steps:
        table.add_row(step.name, f"{step.seconds:.1f}")
    table.add_row("[bold]Total elapsed time[/bold]", f"[bold]{summary.total_seconds:.1f}[/bold]")
    console.print(table)
    if summary.stack is not None:
        console.print(f"  [cyan]stack[/cyan]: {summary.stack.stack_name} ({summary.stack.status})")
        for key, value in summary.stack.outputs.items():
            console.print(f"  [cyan]{key}[/cyan]: {value}")


def provision_command(
    service: str = typer.Option(..., "--service", "-s", help="Service definition as module:attribute."),
    hooks: str | None = typer.Option(None, "--hooks", help="WorkflowHooks as module:attribute."),
    bucket: str | None = typer.Option(None, "--bucket", "-b", help="S3 bucket for artifacts."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Build and render without remote changes."),
    in_place: bool = typer.Option(False, "--in-place", help="Update function code directly when possible."),
    build_id: str | None = typer.Option(None, "--build-id", help="Build identifier."),
    tags: str | None = typer.Option(None, "--tags", help="Additional compiler build tags."),
    ldflags: str | None = typer.Option(None, "--ldflags", help="Additional linker flags."),
    pipeline_trigger: str | None = typer.Option(
        None, "--pipeline-trigger", help="Write a pipeline archive with this name instead of applying.",
    ),
    template_out: Path | None = typer.Option(None, "--template-out", help="Write the rendered template here."),
    source_dir: Path = typer.Option(Path("."), "--source-dir", help="Directory of the Go main package."),
    region: str | None = typer.Option(None, "--region", help="AWS region."),
    profile: str | None = typer.Option(None, "--profile", help="AWS named profile."),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Log level."),
    json_out: bool = typer.Option(False, "--json", help="Output the summary as JSON."),
) -> None:
    """Build, package, upload and provision a service."""
    from provision_spine.aws import aws_services
    from provision_spine.core.logging import configure_logging
    from provision_spine.provision.config import ProvisionConfig
    from provision_spine.provision.workflow import Provisioner

    config = ProvisionConfig.from_env(
        bucket=bucket,
        dry_run=dry_run or None,
        in_place=in_place or None,
        build_id=build_id,
        build_tags=tags,
        link_flags=ldflags,
        pipeline_trigger=pipeline_trigger,
        region=region,
        profile=profile,
        log_level=log_level,
    )
    if not config.bucket:
        err_console.print("[bold red]Error[/bold red]: --bucket or PROVISION_BUCKET is required")
        raise typer.Exit(code=2)

    configure_logging(level=config.log_level)
    definition = load_object(service)
    if not isinstance(definition, ServiceDefinition):
        raise typer.BadParameter(f"{service} is not a ServiceDefinition")
    workflow_hooks = load_object(hooks) if hooks else None

    (err_console if json_out else console).print(
        f"[bold]provision-spine[/] {definition.name} build_id: {config.build_id}"
    )
    provisioner = Provisioner(aws_services(config, source_dir=str(source_dir)), config)
    writer = template_out.open("w", encoding="utf-8") if template_out else nullcontext()
    try:
        with writer as handle:
            summary = provisioner.provision(definition, hooks=workflow_hooks, template_writer=handle)
    except ProvisionError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e

    if json_out:
        typer.echo(summary.model_dump_json(indent=2))
    else:
        _print_summary(summary)
