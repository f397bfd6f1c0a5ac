"""Phase model for Sowflow.

A phase is a named stage of a project's lifecycle. Its status moves forward
only (pending -> in_progress -> completed | failed); the way back is
reopen(). rework() additionally counts a new iteration.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, ItemsView, Iterator

from pydantic import Field, RootModel

from sowflow.errors import PhaseNotFoundError, PhaseStatusError
from sowflow.models.artifact import ArtifactCollection
from sowflow.models.base import SowflowModel, utcnow
from sowflow.models.task import TaskCollection


class PhaseStatus(enum.Enum):
    """Lifecycle status of a phase.

    States:
        pending: Phase not yet started.
        in_progress: Phase is the active stage of the project.
        completed: Phase finished successfully.
        failed: Phase finished unsuccessfully and awaits rework.
    """

    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


class Phase(SowflowModel):
    """A named stage of a project.

    Attributes:
        status: Current phase status
        enabled: Whether the phase participates in the current run
        created_at: When the phase was created
        started_at: When the phase last entered in_progress (None if never)
        completed_at: When the phase completed (None if not completed)
        failed_at: When the phase failed (None if not failed)
        iteration: Rework counter, 0 until the first rework
        metadata: Free-form data validated by the project type's phase schema
        inputs: Artifacts handed to this phase
        outputs: Artifacts produced by this phase
        tasks: Work items, for phases that support tasks
    """

    status: PhaseStatus = PhaseStatus.pending
    enabled: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    iteration: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    inputs: ArtifactCollection = Field(default_factory=ArtifactCollection)
    outputs: ArtifactCollection = Field(default_factory=ArtifactCollection)
    tasks: TaskCollection = Field(default_factory=TaskCollection)

    def start(self) -> None:
        """Move a pending phase to in_progress.

        Starting a phase that is already in_progress is a no-op.

        Raises:
            PhaseStatusError: If the phase is completed or failed; use reopen().
        """
        if self.status == PhaseStatus.in_progress:
            return
        if self.status != PhaseStatus.pending:
            raise PhaseStatusError(self.status.value, PhaseStatus.in_progress.value)
        self.status = PhaseStatus.in_progress
        self.enabled = True
        self.started_at = utcnow()

    def complete(self) -> None:
        """Mark the phase completed.

        Raises:
            PhaseStatusError: If the phase has failed.
        """
        if self.status == PhaseStatus.completed:
            return
        if self.status == PhaseStatus.failed:
            raise PhaseStatusError(self.status.value, PhaseStatus.completed.value)
        self.status = PhaseStatus.completed
        self.completed_at = utcnow()

    def fail(self) -> None:
        """Mark the phase failed.

        Raises:
            PhaseStatusError: If the phase has already completed.
        """
        if self.status == PhaseStatus.failed:
            return
        if self.status == PhaseStatus.completed:
            raise PhaseStatusError(self.status.value, PhaseStatus.failed.value)
        self.status = PhaseStatus.failed
        self.failed_at = utcnow()

    def reopen(self) -> None:
        """Move a completed or failed phase back to in_progress.

        The iteration counter is left alone; use rework() to count a new
        iteration. Clears the completion and failure timestamps.

        Raises:
            PhaseStatusError: If the phase is pending or in_progress.
        """
        if self.status not in (PhaseStatus.completed, PhaseStatus.failed):
            raise PhaseStatusError(self.status.value, PhaseStatus.in_progress.value)
        self.status = PhaseStatus.in_progress
        self.enabled = True
        self.started_at = utcnow()
        self.completed_at = None
        self.failed_at = None

    def rework(self) -> None:
        """Open the phase for another iteration.

        Increments iteration by exactly one whatever the current status, and
        leaves the phase in_progress.
        """
        if self.status == PhaseStatus.pending:
            self.start()
        elif self.status != PhaseStatus.in_progress:
            self.reopen()
        self.enabled = True
        self.iteration += 1


class PhaseCollection(RootModel[dict[str, Phase]]):
    """Phases of a project keyed by phase name."""

    root: dict[str, Phase] = Field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, name: object) -> bool:
        return name in self.root

    def __getitem__(self, name: str) -> Phase:
        return self.get(name)

    def __setitem__(self, name: str, phase: Phase) -> None:
        self.root[name] = phase

    def get(self, name: str) -> Phase:
        """Return the phase with the given name.

        Raises:
            PhaseNotFoundError: If the project has no such phase.
        """
        try:
            return self.root[name]
        except KeyError:
            raise PhaseNotFoundError(name) from None

    def items(self) -> ItemsView[str, Phase]:
        return self.root.items()

    def names(self) -> list[str]:
        return list(self.root)

    def in_progress(self) -> list[str]:
        """Names of phases currently in_progress."""
        return [
            name for name, phase in self.root.items()
            if phase.status == PhaseStatus.in_progress
        ]
