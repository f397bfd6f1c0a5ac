"""Built-in project types.

Each module exposes a factory returning a fully built ProjectTypeConfig.
build_default_registry() registers all of them.
"""

from sowflow.projects.breakdown import new_breakdown_config
from sowflow.projects.design import new_design_config
from sowflow.projects.exploration import new_exploration_config
from sowflow.projects.standard import new_standard_config

BUILTIN_PROJECT_TYPES = (
    new_standard_config,
    new_exploration_config,
    new_design_config,
    new_breakdown_config,
)

__all__ = [
    "BUILTIN_PROJECT_TYPES",
    "new_breakdown_config",
    "new_design_config",
    "new_exploration_config",
    "new_standard_config",
]
