"""Task model for Sowflow.

Tasks are discrete work items owned by a task-supporting phase. They have no
lifecycle of their own beyond the status tracked here.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Iterator

from pydantic import Field, RootModel, model_validator

from sowflow.errors import DuplicateTaskError, TaskNotFoundError
from sowflow.models.artifact import ArtifactCollection
from sowflow.models.base import SowflowModel, utcnow


class TaskStatus(enum.Enum):
    """Lifecycle status of a task.

    States:
        pending: Task created but not started.
        in_progress: Work is under way.
        completed: Work finished and accepted.
        paused: Work stopped temporarily.
        needs_review: Work finished, awaiting review.
        abandoned: Task dropped; counts as resolved.
    """

    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    paused = "paused"
    needs_review = "needs_review"
    abandoned = "abandoned"


RESOLVED_TASK_STATUSES = frozenset({TaskStatus.completed, TaskStatus.abandoned})


class Task(SowflowModel):
    """A unit of work inside a phase.

    Attributes:
        id: Identifier, unique within the owning phase
        name: Short human-readable name
        phase: Name of the owning phase
        status: Current task status
        iteration: Rework counter for the task
        assigned_agent: Agent role the task is assigned to, if any
        inputs: Artifacts the task consumes
        outputs: Artifacts the task produced
        metadata: Free-form task metadata (e.g. work-unit dependencies)
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    phase: str = ""
    status: TaskStatus = TaskStatus.pending
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    iteration: int = Field(default=1, ge=0)
    assigned_agent: str | None = None
    inputs: ArtifactCollection = Field(default_factory=ArtifactCollection)
    outputs: ArtifactCollection = Field(default_factory=ArtifactCollection)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_resolved(self) -> bool:
        """True when the task is completed or abandoned."""
        return self.status in RESOLVED_TASK_STATUSES

    def set_status(self, status: TaskStatus) -> None:
        """Update the task status and its timestamps.

        Args:
            status: New task status
        """
        now = utcnow()
        if status == TaskStatus.in_progress and self.started_at is None:
            self.started_at = now
        if status in RESOLVED_TASK_STATUSES:
            self.completed_at = now
        else:
            self.completed_at = None
        self.status = status
        self.updated_at = now


class TaskCollection(RootModel[list[Task]]):
    """Ordered list of tasks addressed by id.

    Task ids are unique within a collection; documents with duplicate ids
    fail validation.
    """

    root: list[Task] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> TaskCollection:
        """Reject duplicate task ids."""
        seen: set[str] = set()
        for task in self.root:
            if task.id in seen:
                raise ValueError(f"duplicate task id: {task.id}")
            seen.add(task.id)
        return self

    def __iter__(self) -> Iterator[Task]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, task_id: object) -> bool:
        return any(task.id == task_id for task in self.root)

    def get(self, task_id: str) -> Task:
        """Return the task with the given id.

        Raises:
            TaskNotFoundError: If no task has that id.
        """
        for task in self.root:
            if task.id == task_id:
                return task
        raise TaskNotFoundError(task_id)

    def add(self, task: Task) -> None:
        """Append a task.

        Raises:
            DuplicateTaskError: If a task with the same id already exists.
        """
        if task.id in self:
            raise DuplicateTaskError(task.id)
        self.root.append(task)

    def remove(self, task_id: str) -> Task:
        """Remove and return the task with the given id.

        Raises:
            TaskNotFoundError: If no task has that id.
        """
        task = self.get(task_id)
        self.root.remove(task)
        return task

    def with_status(self, *statuses: TaskStatus) -> list[Task]:
        """Return tasks whose status is one of statuses."""
        return [task for task in self.root if task.status in statuses]
