"""Command-line interface (``provision-spine``)."""

from provision_spine.cli.app import app

__all__ = ["app"]
