"""Load, create and save pipelines for Sowflow projects.

Load: read the raw document, validate its structure, resolve the project
type from the registry, pin a machine to the persisted state, then validate
phase metadata.

Create: infer the type from the branch, derive the name from the
description, initialize phases, start the initial phase and save.

Save: sync the statechart from the machine, refresh updated_at when the
content changed, validate structure and metadata, then write. Nothing is
written when validation fails.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import structlog

from sowflow.backends import Backend
from sowflow.errors import (
    BackendError,
    ConfigurationError,
    StateValidationError,
    error_context,
)
from sowflow.models import (
    Artifact,
    Project,
    Statechart,
    detect_project_type,
    generate_project_name,
    utcnow,
)
from sowflow.registry import ProjectTypeRegistry
from sowflow.validation import validate_project, validate_structure

logger = structlog.get_logger(__name__)


def _content(document: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Document without updated_at, for change detection."""
    if document is None:
        return None
    return {key: value for key, value in document.items() if key != "updated_at"}


async def load(backend: Backend, registry: ProjectTypeRegistry) -> Project:
    """Load a project from a backend.

    Args:
        backend: Storage backend holding the project
        registry: Registry used to resolve the project type

    Returns:
        Project with its configuration, machine and backend attached.

    Raises:
        ProjectNotFoundError: If the backend holds no project.
        InvalidStateError: If the stored data cannot be decoded.
        StructuralValidationError: If the document violates the schema.
        UnknownProjectTypeError: If the project type is not registered.
        MetadataValidationError: If phase data violates the type's config.
    """
    with error_context("load"):
        document = await backend.load()

        with error_context("validate structure"):
            project = validate_structure(document)

        config = registry.get(project.type)
        project.attach(config, config.build_machine(project))

        with error_context("validate metadata"):
            config.validate(project)

        project.bind_backend(backend)
        project.mark_persisted(project.to_document())

    logger.info(
        "project_loaded",
        project=project.name,
        project_type=project.type,
        state=project.current_state,
    )
    return project


async def create(
    backend: Backend,
    registry: ProjectTypeRegistry,
    branch: str,
    description: str,
    initial_inputs: Mapping[str, Sequence[Artifact]] | None = None,
    project_type: str | None = None,
    name_max_length: int = 50,
) -> Project:
    """Create, initialize and save a new project.

    Args:
        backend: Storage backend to create the project in
        registry: Registry used to resolve the project type
        branch: Git branch the project is bound to
        description: Human description; the project name derives from it
        initial_inputs: Artifacts to seed, keyed by phase name
        project_type: Explicit type; inferred from the branch when None
        name_max_length: Truncation bound for the generated name

    Returns:
        The saved project, positioned at the type's initial state.

    Raises:
        ConfigurationError: If branch or description is empty, a project
            already exists, or the type is unknown.
        StateValidationError: If the initialized project fails validation.
    """
    with error_context("create"):
        if not branch or not branch.strip():
            raise ConfigurationError("branch name required")
        if not description or not description.strip():
            raise ConfigurationError("project description required")
        if await backend.exists():
            raise ConfigurationError("a project already exists in this backend")

        type_name = project_type or detect_project_type(branch)
        config = registry.get(type_name)

        name = generate_project_name(description, max_length=name_max_length)
        if not name:
            raise ConfigurationError(
                f"cannot derive a project name from description {description!r}"
            )

        now = utcnow()
        project = Project(
            name=name,
            type=type_name,
            branch=branch,
            description=description,
            created_at=now,
            updated_at=now,
            statechart=Statechart(current_state=config.initial_state),
        )

        with error_context("initialize"):
            config.initialize(project, initial_inputs)

        project.attach(config, config.build_machine(project, config.initial_state))

        initial_phase = config.phase_for_state(config.initial_state)
        if initial_phase is not None:
            project.phases[initial_phase].start()

        project.bind_backend(backend)
        await save(project)

    logger.info(
        "project_created",
        project=project.name,
        project_type=project.type,
        branch=project.branch,
        state=project.current_state,
    )
    return project


async def save(project: Project) -> None:
    """Validate and persist a project through its backend.

    updated_at is refreshed only when the content differs from what was last
    loaded or saved, so saving an unchanged project rewrites the same bytes.

    Args:
        project: Project previously returned by load() or create()

    Raises:
        BackendError: If the project is not bound to a backend, or the write fails.
        StructuralValidationError: If the project violates the schema.
        MetadataValidationError: If phase data violates the type's config.
    """
    with error_context("save"):
        backend = project.backend
        if backend is None:
            raise BackendError("project is not bound to a backend")

        if project.machine is not None:
            project.statechart.current_state = project.machine.state

        previous_updated_at = project.updated_at
        persisted = project.persisted_document
        if persisted is not None and _content(project.to_document()) != _content(persisted):
            project.updated_at = utcnow()

        try:
            with error_context("validate"):
                validate_project(project, project.config)
        except StateValidationError:
            project.updated_at = previous_updated_at
            raise

        document = project.to_document()
        await backend.save(document)
        project.mark_persisted(document)

    logger.info(
        "project_saved",
        project=project.name,
        state=project.statechart.current_state,
    )
