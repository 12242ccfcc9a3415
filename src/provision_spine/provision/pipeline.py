"""Change-pipeline support.

With a pipeline trigger configured the workflow does not touch the stack.
Each named environment contributes a parameter set; the union of their
keys becomes template ``Parameters`` and function environment variables
that ``Ref`` them.  The archive left for the pipeline holds the template
plus one ``<environment>.json`` file per environment::

    cloudformation.json
    staging.json         {"Parameters": {"TABLE": "orders-staging"}}
    production.json      {"Parameters": {"TABLE": "orders"}}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from provision_spine.provision.archive import ArchiveWriter
from provision_spine.provision.constants import PIPELINE_TEMPLATE_ENTRY
from provision_spine.provision.template import Template, ref

PipelineEnvironments = dict[str, dict[str, str]]


def parameter_names(environments: PipelineEnvironments) -> list[str]:
    names: set[str] = set()
    for values in environments.values():
        names.update(values)
    return sorted(names)


def check_environment_consistency(environments: PipelineEnvironments, logger: Any) -> bool:
    """Warn when environments define different key sets. Never fails."""
    key_sets = {name: frozenset(values) for name, values in environments.items()}
    if len(set(key_sets.values())) <= 1:
        return True
    logger.warning(
        "pipeline.inconsistent_environments",
        environments={name: sorted(keys) for name, keys in key_sets.items()},
    )
    return False


def add_pipeline_parameters(template: Template, environments: PipelineEnvironments) -> list[str]:
    names = parameter_names(environments)
    for name in names:
        template.add_parameter(name)
    return names


def parameter_environment(environments: PipelineEnvironments) -> dict[str, Any]:
    """Function environment entries that reference each pipeline parameter."""
    return {name: ref(name) for name in parameter_names(environments)}


def write_pipeline_archive(
    path: Path | str,
    template_json: str,
    environments: PipelineEnvironments,
) -> Path:
    with ArchiveWriter(path) as archive:
        archive.add_bytes(PIPELINE_TEMPLATE_ENTRY, template_json)
        for name, values in sorted(environments.items()):
            archive.add_bytes(f"{name}.json", json.dumps({"Parameters": values}, indent=2))
    return Path(path)
