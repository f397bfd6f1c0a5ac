"""Shared pytest fixtures for Sowflow tests.

Provides an isolated project type registry, in-memory and YAML backends,
and a factory that builds attached projects positioned at any state without
going through a backend.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
import structlog

from sowflow.backends import MemoryBackend, YAMLBackend
from sowflow.models import Artifact, Project, Statechart
from sowflow.registry import ProjectTypeRegistry, build_default_registry


@pytest.fixture(autouse=True)
def clear_log_context() -> None:
    """Start every test without bound project context."""
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def registry() -> ProjectTypeRegistry:
    """Create a registry holding the built-in project types.

    Returns:
        A fresh registry, never shared between tests
    """
    return build_default_registry()


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def yaml_backend(tmp_path: Path) -> YAMLBackend:
    """Create a YAML backend rooted in a temporary .sow directory."""
    return YAMLBackend(tmp_path / ".sow")


@pytest.fixture
def make_project(registry: ProjectTypeRegistry) -> Callable[..., Project]:
    """Factory for initialized projects with a machine attached.

    The factory takes the project type name and an optional state; the
    phase owning that state is started, matching what create() does for
    the initial state.

    Returns:
        Callable building a Project
    """

    def factory(
        project_type: str = "standard",
        state: str | None = None,
        name: str = "demo-project",
        branch: str = "feat/demo-project",
    ) -> Project:
        config = registry.get(project_type)
        current = state or config.initial_state
        project = Project(
            name=name,
            type=project_type,
            branch=branch,
            description="Demo project",
            statechart=Statechart(current_state=current),
        )
        config.initialize(project)
        project.attach(config, config.build_machine(project))
        owner = config.phase_for_state(current)
        if owner is not None:
            project.phases[owner].start()
        return project

    return factory


@pytest.fixture
def approved_review_fail() -> Artifact:
    return Artifact(
        type="review",
        path="project/phases/review/reports/001.md",
        approved=True,
        metadata={"assessment": "fail"},
    )


@pytest.fixture
def approved_review_pass() -> Artifact:
    return Artifact(
        type="review",
        path="project/phases/review/reports/002.md",
        approved=True,
        metadata={"assessment": "pass"},
    )
