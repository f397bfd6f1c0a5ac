"""Project type registry for Sowflow.

The registry maps project type names to built configurations. It is an
explicit object created at process start and handed to the loader, so tests
can use isolated registries. Each name can be registered once.
"""

from __future__ import annotations

from typing import Iterator

import structlog

from sowflow.errors import DuplicateProjectTypeError, UnknownProjectTypeError
from sowflow.project_type import ProjectTypeConfig
from sowflow.projects import BUILTIN_PROJECT_TYPES

logger = structlog.get_logger(__name__)


class ProjectTypeRegistry:
    """Write-once mapping from project type name to configuration."""

    def __init__(self) -> None:
        self._configs: dict[str, ProjectTypeConfig] = {}

    def register(self, config: ProjectTypeConfig, name: str | None = None) -> None:
        """Register a configuration under name (defaults to config.name).

        Raises:
            DuplicateProjectTypeError: If the name is already registered.
        """
        key = name or config.name
        if key in self._configs:
            raise DuplicateProjectTypeError(key)
        self._configs[key] = config
        logger.debug("project_type_registered", project_type=key)

    def get(self, name: str) -> ProjectTypeConfig:
        """Return the configuration registered under name.

        Raises:
            UnknownProjectTypeError: If no such type is registered.
        """
        try:
            return self._configs[name]
        except KeyError:
            raise UnknownProjectTypeError(name) from None

    def names(self) -> list[str]:
        """Registered type names, sorted."""
        return sorted(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._configs)


def build_default_registry() -> ProjectTypeRegistry:
    """Create a registry holding the built-in project types."""
    registry = ProjectTypeRegistry()
    for factory in BUILTIN_PROJECT_TYPES:
        registry.register(factory())
    return registry
