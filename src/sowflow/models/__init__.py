"""Pydantic data models for Sowflow.

This package defines the persisted project record: the Project aggregate,
its phases, tasks and artifacts, and the ordered/keyed collections that
hold them.

All models use Pydantic v2 and serialize through model_dump(mode="json").
"""

from sowflow.models.artifact import Artifact, ArtifactCollection
from sowflow.models.base import SowflowModel, utcnow
from sowflow.models.phase import Phase, PhaseCollection, PhaseStatus
from sowflow.models.project import (
    Project,
    Statechart,
    detect_project_type,
    generate_project_name,
)
from sowflow.models.task import RESOLVED_TASK_STATUSES, Task, TaskCollection, TaskStatus

__all__ = [
    "SowflowModel",
    "utcnow",
    "Artifact",
    "ArtifactCollection",
    "Task",
    "TaskCollection",
    "TaskStatus",
    "RESOLVED_TASK_STATUSES",
    "Phase",
    "PhaseCollection",
    "PhaseStatus",
    "Project",
    "Statechart",
    "detect_project_type",
    "generate_project_name",
]
