"""Breakdown project type: split a large piece of work into work units.

State graph:

    Discovery -> Active -> Publishing -> Completed

Work units are tasks of the breakdown phase. A unit may list the ids of the
units it depends on in its "dependencies" metadata; publishing requires
that those references point at completed units and contain no cycle.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from sowflow.machine import Guard
from sowflow.models import Artifact, Project, Task, TaskStatus
from sowflow.project_type import (
    ProjectTypeConfig,
    ProjectTypeConfigBuilder,
    fixed_event,
    new_phase,
)
from sowflow.projects.common import all_work_approved

PROJECT_TYPE = "breakdown"

DISCOVERY = "Discovery"
ACTIVE = "Active"
PUBLISHING = "Publishing"
COMPLETED = "Completed"

EVENT_BEGIN_IDENTIFICATION = "begin_identification"
EVENT_BEGIN_PUBLISHING = "begin_publishing"
EVENT_COMPLETE_BREAKDOWN = "complete_breakdown"


class BreakdownMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source_issue: int | None = None
    published_count: int | None = None


def task_dependencies(task: Task) -> list[str]:
    """Dependency ids listed in a task's metadata; non-strings are ignored."""
    raw: Any = task.metadata.get("dependencies")
    if not isinstance(raw, list):
        return []
    return [dep for dep in raw if isinstance(dep, str)]


def dependencies_valid(project: Project) -> bool:
    """True if completed units only depend on completed units, acyclically."""
    if "breakdown" not in project.phases:
        return False

    completed = project.phases["breakdown"].tasks.with_status(TaskStatus.completed)
    graph = {task.id: task_dependencies(task) for task in completed}

    for deps in graph.values():
        if any(dep not in graph for dep in deps):
            return False

    visited: set[str] = set()
    on_stack: set[str] = set()

    def has_cycle(node: str) -> bool:
        visited.add(node)
        on_stack.add(node)
        for dep in graph[node]:
            if dep in on_stack:
                return True
            if dep not in visited and has_cycle(dep):
                return True
        on_stack.discard(node)
        return False

    return not any(node not in visited and has_cycle(node) for node in graph)


def all_work_units_published(project: Project) -> bool:
    """True if every completed unit is marked published (and one exists)."""
    if "breakdown" not in project.phases:
        return False
    completed = project.phases["breakdown"].tasks.with_status(TaskStatus.completed)
    return bool(completed) and all(task.metadata.get("published") is True for task in completed)


def _initialize(project: Project, initial_inputs: Mapping[str, Sequence[Artifact]]) -> None:
    project.phases["breakdown"] = new_phase("breakdown", initial_inputs)


def new_breakdown_config() -> ProjectTypeConfig:
    """Build the breakdown project type configuration."""
    return (
        ProjectTypeConfigBuilder(PROJECT_TYPE)
        .with_phase(
            "breakdown",
            start_state=DISCOVERY,
            end_state=PUBLISHING,
            states=[ACTIVE],
            outputs=["discovery", "work_unit_spec"],
            supports_tasks=True,
            metadata_schema=BreakdownMetadata,
        )
        .set_initial_state(DISCOVERY)
        .with_terminal_state(COMPLETED)
        .add_transition(
            DISCOVERY,
            ACTIVE,
            EVENT_BEGIN_IDENTIFICATION,
            guard=Guard(
                "discovery document approved",
                lambda p: p.phase_output_approved("breakdown", "discovery"),
            ),
            description="Discovery approved; identify work units",
        )
        .add_transition(
            ACTIVE,
            PUBLISHING,
            EVENT_BEGIN_PUBLISHING,
            guard=Guard(
                "all work units approved and dependencies valid",
                lambda p: all_work_approved(p, "breakdown") and dependencies_valid(p),
            ),
            description="Work units approved; publish them",
        )
        .add_transition(
            PUBLISHING,
            COMPLETED,
            EVENT_COMPLETE_BREAKDOWN,
            guard=Guard("all work units published", all_work_units_published),
            description="All work units published; breakdown complete",
        )
        .on_advance(DISCOVERY, fixed_event(EVENT_BEGIN_IDENTIFICATION))
        .on_advance(ACTIVE, fixed_event(EVENT_BEGIN_PUBLISHING))
        .on_advance(PUBLISHING, fixed_event(EVENT_COMPLETE_BREAKDOWN))
        .with_initializer(_initialize)
        .build_with_validation()
    )
