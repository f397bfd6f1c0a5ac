"""Guards, hooks and schemas shared by the built-in project types."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from sowflow.machine import Hook
from sowflow.models import Project, TaskStatus


class FinalizationMetadata(BaseModel):
    """Metadata of a finalization phase.

    Attributes:
        pr_url: URL of the pull request opened for the project
        project_deleted: Set once the project directory has been removed
    """

    model_config = ConfigDict(extra="forbid")

    pr_url: str | None = None
    project_deleted: bool | None = None


def all_tasks_completed(project: Project, phase_name: str) -> bool:
    """True if the phase has tasks and every one is completed.

    Unlike Project.all_tasks_complete, abandoned tasks do not count.
    """
    if phase_name not in project.phases:
        return False
    tasks = list(project.phases[phase_name].tasks)
    return bool(tasks) and all(task.status == TaskStatus.completed for task in tasks)


def all_work_approved(project: Project, phase_name: str) -> bool:
    """True if every task is resolved and at least one was completed."""
    if phase_name not in project.phases:
        return False
    tasks = list(project.phases[phase_name].tasks)
    if not tasks or not all(task.is_resolved for task in tasks):
        return False
    return any(task.status == TaskStatus.completed for task in tasks)


def enable_phase(phase_name: str) -> Hook:
    """Hook enabling a phase when its state is entered."""

    def hook(project: Project) -> None:
        project.phases[phase_name].enabled = True

    return hook
