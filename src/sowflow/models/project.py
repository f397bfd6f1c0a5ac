"""Project model for Sowflow.

The Project is the root aggregate: it owns its phases, their tasks and
artifacts, and mirrors the live state machine's current state in
statechart.current_state. The project type configuration and the machine
are attached at runtime by the loader and are never serialized.
"""

from __future__ import annotations

import copy
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import Field, PrivateAttr

from sowflow.errors import ArtifactNotFoundError
from sowflow.models.base import SowflowModel, utcnow
from sowflow.models.phase import PhaseCollection

if TYPE_CHECKING:
    from sowflow.backends import Backend
    from sowflow.machine import Machine
    from sowflow.project_type import ProjectTypeConfig

KEBAB_CASE_PATTERN = r"^[a-z0-9]+(-[a-z0-9]+)*$"

DEFAULT_PROJECT_TYPE = "standard"

# Branch prefix -> project type; first match wins
BRANCH_PREFIXES: tuple[tuple[str, str], ...] = (
    ("explore/", "exploration"),
    ("design/", "design"),
    ("breakdown/", "breakdown"),
)


class Statechart(SowflowModel):
    """Persisted mirror of the state machine.

    Attributes:
        current_state: Name of the machine's current state
    """

    current_state: str = Field(..., min_length=1)


class Project(SowflowModel):
    """A unit of work bound to a git branch.

    Attributes:
        name: Kebab-case project name derived from the description
        type: Project type name, the key into the registry
        branch: Git branch the project lives on
        description: Human description the name was derived from
        created_at: Creation time
        updated_at: Time of the last content-changing save
        phases: Phases keyed by name
        statechart: Persisted current state
    """

    name: str = Field(..., min_length=1, pattern=KEBAB_CASE_PATTERN)
    type: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1)
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    phases: PhaseCollection = Field(default_factory=PhaseCollection)
    statechart: Statechart

    _config: ProjectTypeConfig | None = PrivateAttr(default=None)
    _machine: Machine | None = PrivateAttr(default=None)
    _backend: Backend | None = PrivateAttr(default=None)
    _persisted: dict[str, Any] | None = PrivateAttr(default=None)

    # ------------------------------------------------------------------
    # Runtime attachments
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProjectTypeConfig | None:
        """Attached project type configuration, if any."""
        return self._config

    @property
    def machine(self) -> Machine | None:
        """Attached state machine, if any."""
        return self._machine

    def attach(self, config: ProjectTypeConfig, machine: Machine | None = None) -> None:
        """Attach a project type configuration and optionally a machine.

        Args:
            config: Configuration resolved from the registry for self.type
            machine: Machine pinned to the current state
        """
        self._config = config
        if machine is not None:
            self._machine = machine

    @property
    def backend(self) -> Backend | None:
        """Backend the project was loaded from or created in."""
        return self._backend

    @property
    def persisted_document(self) -> dict[str, Any] | None:
        """Document as last loaded or saved, or None for a new project."""
        return self._persisted

    def bind_backend(self, backend: Backend) -> None:
        self._backend = backend

    def mark_persisted(self, document: dict[str, Any]) -> None:
        """Record document as the backend's current content."""
        self._persisted = copy.deepcopy(document)

    @property
    def current_state(self) -> str:
        """Current state; the live machine wins over the persisted mirror."""
        if self._machine is not None:
            return self._machine.state
        return self.statechart.current_state

    # ------------------------------------------------------------------
    # Serialization and snapshots
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Return the persisted mapping for this project."""
        return self.model_dump(mode="json")

    def snapshot(self) -> dict[str, Any]:
        """Deep-copy every persisted field for a later restore()."""
        return {name: copy.deepcopy(getattr(self, name)) for name in type(self).model_fields}

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Restore persisted fields from a snapshot, in place.

        Args:
            snapshot: Value returned by snapshot()
        """
        for name, value in snapshot.items():
            setattr(self, name, copy.deepcopy(value))

    # ------------------------------------------------------------------
    # Guard helpers
    # ------------------------------------------------------------------

    def phase_output_approved(self, phase_name: str, artifact_type: str) -> bool:
        """True if the phase has an approved output of artifact_type.

        Missing phases count as not approved.
        """
        if phase_name not in self.phases:
            return False
        return any(
            artifact.approved for artifact in self.phases[phase_name].outputs.of_type(artifact_type)
        )

    def phase_metadata_bool(self, phase_name: str, key: str) -> bool:
        """True if the phase metadata holds key with the boolean value True."""
        if phase_name not in self.phases:
            return False
        return self.phases[phase_name].metadata.get(key) is True

    def all_tasks_complete(self, phase_name: str) -> bool:
        """True if the phase has at least one task and all are resolved.

        Resolved means completed or abandoned.
        """
        if phase_name not in self.phases:
            return False
        tasks = list(self.phases[phase_name].tasks)
        return bool(tasks) and all(task.is_resolved for task in tasks)

    # ------------------------------------------------------------------
    # Data flow
    # ------------------------------------------------------------------

    def add_phase_input_from_output(
        self,
        source_phase: str,
        target_phase: str,
        artifact_type: str,
        approved_only: bool = True,
    ) -> None:
        """Copy the latest matching output of one phase into another's inputs.

        The artifact is copied by value; later edits to either side do not
        affect the other.

        Args:
            source_phase: Phase whose outputs are searched
            target_phase: Phase whose inputs receive the copy
            artifact_type: Artifact type to copy
            approved_only: Only consider approved outputs

        Raises:
            PhaseNotFoundError: If either phase is missing.
            ArtifactNotFoundError: If no matching output exists.
        """
        source = self.phases.get(source_phase)
        target = self.phases.get(target_phase)
        artifact = source.outputs.latest(artifact_type, approved_only=approved_only)
        if artifact is None:
            raise ArtifactNotFoundError(source_phase, artifact_type)
        target.inputs.add(artifact.copy_value())


def detect_project_type(branch: str) -> str:
    """Infer a project type from the branch naming convention.

    Args:
        branch: Git branch name

    Returns:
        "exploration" for explore/*, "design" for design/*, "breakdown" for
        breakdown/*, otherwise "standard".
    """
    for prefix, project_type in BRANCH_PREFIXES:
        if branch.startswith(prefix):
            return project_type
    return DEFAULT_PROJECT_TYPE


_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_project_name(description: str, max_length: int = 50) -> str:
    """Derive a kebab-case project name from a description.

    The description is truncated to max_length characters, lower-cased, and
    every run of non-alphanumeric characters becomes a single hyphen. Leading
    and trailing hyphens are stripped.

    Args:
        description: Human description of the project
        max_length: Maximum number of description characters considered

    Returns:
        Kebab-case name; empty if the description has no usable characters.

    Example:
        generate_project_name("Spike caching layer") == "spike-caching-layer"
    """
    truncated = description[:max_length].lower()
    return _NON_ALNUM.sub("-", truncated).strip("-")
