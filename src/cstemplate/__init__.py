"""cstemplate - register, delete and list CloudStack templates from the command line."""

from .create_functions import (
    register_templates,
    wait_for_template,
)
from .functions import (
    delete_templates,
    list_templates,
)

__all__ = [
    "register_templates",
    "wait_for_template",
    "delete_templates",
    "list_templates",
]
