"""Design project type: produce design documents, then finalize.

State graph:

    Active -> Finalizing -> Completed

Each design document is tracked as a task in the design phase; the design
is done once every document is completed or abandoned and at least one was
completed. The design phase accepts arbitrary metadata.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from sowflow.machine import Guard
from sowflow.models import Artifact, Project
from sowflow.project_type import (
    ProjectTypeConfig,
    ProjectTypeConfigBuilder,
    fixed_event,
    new_phase,
)
from sowflow.projects.common import (
    FinalizationMetadata,
    all_tasks_completed,
    all_work_approved,
    enable_phase,
)

PROJECT_TYPE = "design"

ACTIVE = "Active"
FINALIZING = "Finalizing"
COMPLETED = "Completed"

EVENT_COMPLETE_DESIGN = "complete_design"
EVENT_COMPLETE_FINALIZATION = "complete_finalization"

DESIGN_OUTPUT_TYPES = ("design", "adr", "architecture", "diagram", "spec")


def _initialize(project: Project, initial_inputs: Mapping[str, Sequence[Artifact]]) -> None:
    project.phases["design"] = new_phase("design", initial_inputs)
    project.phases["finalization"] = new_phase("finalization", initial_inputs, enabled=False)


def new_design_config() -> ProjectTypeConfig:
    """Build the design project type configuration."""
    return (
        ProjectTypeConfigBuilder(PROJECT_TYPE)
        .with_phase(
            "design",
            start_state=ACTIVE,
            end_state=ACTIVE,
            outputs=DESIGN_OUTPUT_TYPES,
            supports_tasks=True,
        )
        .with_phase(
            "finalization",
            start_state=FINALIZING,
            end_state=FINALIZING,
            outputs=["pr"],
            supports_tasks=True,
            metadata_schema=FinalizationMetadata,
        )
        .set_initial_state(ACTIVE)
        .with_terminal_state(COMPLETED)
        .add_transition(
            ACTIVE,
            FINALIZING,
            EVENT_COMPLETE_DESIGN,
            guard=Guard(
                "all documents approved",
                lambda p: all_work_approved(p, "design"),
            ),
            description="Design documents approved; finalize",
            on_entry=enable_phase("finalization"),
        )
        .add_transition(
            FINALIZING,
            COMPLETED,
            EVENT_COMPLETE_FINALIZATION,
            guard=Guard(
                "all finalization tasks completed",
                lambda p: all_tasks_completed(p, "finalization"),
            ),
            description="Finalization done; design complete",
        )
        .on_advance(ACTIVE, fixed_event(EVENT_COMPLETE_DESIGN))
        .on_advance(FINALIZING, fixed_event(EVENT_COMPLETE_FINALIZATION))
        .with_initializer(_initialize)
        .build_with_validation()
    )
