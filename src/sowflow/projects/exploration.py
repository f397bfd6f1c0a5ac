"""Exploration project type: research a topic, summarize, then finalize.

State graph:

    Active -> Summarizing -> Finalizing -> Completed
              Summarizing -> Active   (add more research)

Leaving Summarizing is an orchestrator decision (finish or keep
researching), so Summarizing has no event determiner and auto-advance
reports the available events instead of guessing.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from sowflow.machine import Guard
from sowflow.models import Artifact, Project
from sowflow.project_type import (
    ProjectTypeConfig,
    ProjectTypeConfigBuilder,
    fixed_event,
    new_phase,
)
from sowflow.projects.common import FinalizationMetadata, all_tasks_completed, enable_phase

PROJECT_TYPE = "exploration"

ACTIVE = "Active"
SUMMARIZING = "Summarizing"
FINALIZING = "Finalizing"
COMPLETED = "Completed"

EVENT_BEGIN_SUMMARIZING = "begin_summarizing"
EVENT_COMPLETE_SUMMARIZING = "complete_summarizing"
EVENT_ADD_MORE_RESEARCH = "add_more_research"
EVENT_COMPLETE_FINALIZATION = "complete_finalization"


class ExplorationMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    topic: str | None = None
    research_areas: list[str] | None = None


def all_summaries_approved(project: Project) -> bool:
    """True if the exploration phase has summaries and all are approved."""
    if "exploration" not in project.phases:
        return False
    summaries = project.phases["exploration"].outputs.of_type("summary")
    return bool(summaries) and all(summary.approved for summary in summaries)


def _initialize(project: Project, initial_inputs: Mapping[str, Sequence[Artifact]]) -> None:
    project.phases["exploration"] = new_phase("exploration", initial_inputs)
    project.phases["finalization"] = new_phase("finalization", initial_inputs, enabled=False)


def new_exploration_config() -> ProjectTypeConfig:
    """Build the exploration project type configuration."""
    return (
        ProjectTypeConfigBuilder(PROJECT_TYPE)
        .with_phase(
            "exploration",
            start_state=ACTIVE,
            end_state=SUMMARIZING,
            outputs=["summary", "findings"],
            supports_tasks=True,
            metadata_schema=ExplorationMetadata,
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
            SUMMARIZING,
            EVENT_BEGIN_SUMMARIZING,
            guard=Guard(
                "all research tasks completed or abandoned",
                lambda p: p.all_tasks_complete("exploration"),
            ),
            description="Research done; summarize findings",
        )
        .add_transition(
            SUMMARIZING,
            FINALIZING,
            EVENT_COMPLETE_SUMMARIZING,
            guard=Guard("all summaries approved", all_summaries_approved),
            description="Summaries approved; finalize the exploration",
            on_entry=enable_phase("finalization"),
        )
        .add_transition(
            SUMMARIZING,
            ACTIVE,
            EVENT_ADD_MORE_RESEARCH,
            description="Return to research to cover more ground",
        )
        .add_transition(
            FINALIZING,
            COMPLETED,
            EVENT_COMPLETE_FINALIZATION,
            guard=Guard(
                "all finalization tasks completed",
                lambda p: all_tasks_completed(p, "finalization"),
            ),
            description="Finalization done; exploration complete",
        )
        .on_advance(ACTIVE, fixed_event(EVENT_BEGIN_SUMMARIZING))
        .on_advance(FINALIZING, fixed_event(EVENT_COMPLETE_FINALIZATION))
        .with_initializer(_initialize)
        .build_with_validation()
    )
