"""Project state validation for Sowflow.

Two independent checks guard every load and every save:

1. Structural validation: the document must match the Project schema shared
   by all project types (required fields, enum values, non-negative
   iterations, unique task ids, ...).
2. Metadata validation: each phase must satisfy its project type's phase
   configuration (metadata schema, allowed artifact types, task support).

Both checks collect every violation before raising, so one error lists all
(location, message) pairs found.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Mapping

import structlog
from pydantic import ValidationError

from sowflow.errors import MetadataValidationError, StructuralValidationError
from sowflow.models import ArtifactCollection, Project

if TYPE_CHECKING:
    from sowflow.project_type import PhaseConfig, ProjectTypeConfig

logger = structlog.get_logger(__name__)


def _format_loc(prefix: str, loc: Iterable[Any]) -> str:
    parts = [prefix] if prefix else []
    parts.extend(str(part) for part in loc)
    return ".".join(parts)


def _issues_from(error: ValidationError, prefix: str = "") -> list[tuple[str, str]]:
    return [(_format_loc(prefix, e["loc"]), e["msg"]) for e in error.errors()]


def validate_structure(document: Any) -> Project:
    """Validate a raw document against the shared Project schema.

    Args:
        document: Mapping read from a backend or produced by to_document()

    Returns:
        Project: The validated project (no configuration attached).

    Raises:
        StructuralValidationError: If the document violates the schema.
    """
    if not isinstance(document, Mapping):
        raise StructuralValidationError(
            [("", f"expected a mapping, got {type(document).__name__}")]
        )
    try:
        return Project.model_validate(document)
    except ValidationError as exc:
        issues = _issues_from(exc)
        logger.debug("structural_validation_failed", issue_count=len(issues))
        raise StructuralValidationError(issues) from exc


def _check_artifact_types(
    artifacts: ArtifactCollection,
    allowed: Iterable[str],
    location: str,
) -> list[tuple[str, str]]:
    allowed_types = list(allowed)
    if not allowed_types:
        return []
    issues = []
    for index, artifact in enumerate(artifacts):
        if artifact.type not in allowed_types:
            issues.append(
                (
                    f"{location}.{index}.type",
                    f"artifact type {artifact.type!r} not allowed "
                    f"(allowed: {', '.join(allowed_types)})",
                )
            )
    return issues


def _check_phase(project: Project, phase_config: PhaseConfig) -> list[tuple[str, str]]:
    name = phase_config.name
    base = f"phases.{name}"
    if name not in project.phases:
        return [(base, "phase required by project type is missing")]

    phase = project.phases[name]
    issues: list[tuple[str, str]] = []

    if phase_config.metadata_schema is not None:
        try:
            phase_config.metadata_schema.model_validate(phase.metadata)
        except ValidationError as exc:
            issues.extend(_issues_from(exc, f"{base}.metadata"))

    issues.extend(
        _check_artifact_types(phase.inputs, phase_config.allowed_inputs, f"{base}.inputs")
    )
    issues.extend(
        _check_artifact_types(phase.outputs, phase_config.allowed_outputs, f"{base}.outputs")
    )

    if not phase_config.supports_tasks and len(phase.tasks) > 0:
        issues.append((f"{base}.tasks", "phase does not support tasks"))

    return issues


def validate_metadata(project: Project, config: ProjectTypeConfig) -> None:
    """Validate every configured phase of a project against its phase config.

    The current state must be one the configuration declares. Phases
    present in the project but unknown to the configuration are ignored.

    Args:
        project: Project to validate
        config: Project type configuration supplying the phase schemas

    Raises:
        MetadataValidationError: If any phase violates its configuration.
    """
    issues: list[tuple[str, str]] = []
    state = project.statechart.current_state
    if state not in config.states():
        issues.append(
            ("statechart.current_state", f"state {state!r} is not declared by type {config.name}")
        )
    for phase_config in config.phases.values():
        issues.extend(_check_phase(project, phase_config))
    if issues:
        logger.debug(
            "metadata_validation_failed",
            project_type=config.name,
            issue_count=len(issues),
        )
        raise MetadataValidationError(issues)


def validate_project(project: Project, config: ProjectTypeConfig | None) -> None:
    """Run structural and (when a config is attached) metadata validation.

    Structural validation re-parses the serialized form, so values assigned
    directly to model attributes are checked as well.

    Raises:
        StructuralValidationError: If the serialized project violates the schema.
        MetadataValidationError: If phase data violates the configuration.
    """
    validate_structure(project.to_document())
    if config is not None:
        validate_metadata(project, config)
