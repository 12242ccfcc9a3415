"""
provision-spine - Lambda service provisioning primitives.

- provision_spine.core: errors and structured logging
- provision_spine.execution: the bounded task runner
- provision_spine.provision: the workflow engine
- provision_spine.aws: boto3-backed collaborators
"""

__version__ = "0.1.0"

from provision_spine.core import *  # noqa
