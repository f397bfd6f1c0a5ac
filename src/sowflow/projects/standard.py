"""Standard project type: feature work with implementation, review and finalize.

State graph:

    ImplementationPlanning -> ImplementationDraftPRCreation -> ImplementationExecuting
        -> ReviewActive -(pass)-> FinalizeChecks -> FinalizePRReady
                                  -> FinalizePRChecks -> FinalizeCleanup -> NoProject
        ReviewActive -(fail)-> ImplementationPlanning

The review outcome is read from the latest approved "review" output's
assessment metadata ("pass" or "fail"). A failed review marks the review
phase failed, reopens implementation for another iteration and hands the
review to implementation as an input.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from sowflow.errors import EventDeterminationError
from sowflow.machine import Guard
from sowflow.models import Artifact, Project
from sowflow.project_type import (
    NO_PROJECT,
    BranchPath,
    ProjectTypeConfig,
    ProjectTypeConfigBuilder,
    fixed_event,
    new_phase,
)

PROJECT_TYPE = "standard"

# States
IMPLEMENTATION_PLANNING = "ImplementationPlanning"
IMPLEMENTATION_DRAFT_PR_CREATION = "ImplementationDraftPRCreation"
IMPLEMENTATION_EXECUTING = "ImplementationExecuting"
REVIEW_ACTIVE = "ReviewActive"
FINALIZE_CHECKS = "FinalizeChecks"
FINALIZE_PR_READY = "FinalizePRReady"
FINALIZE_PR_CHECKS = "FinalizePRChecks"
FINALIZE_CLEANUP = "FinalizeCleanup"

# Events
EVENT_PLANNING_COMPLETE = "planning_complete"
EVENT_DRAFT_PR_CREATED = "draft_pr_created"
EVENT_ALL_TASKS_COMPLETE = "all_tasks_complete"
EVENT_REVIEW_PASS = "review_pass"
EVENT_REVIEW_FAIL = "review_fail"
EVENT_CHECKS_DONE = "checks_done"
EVENT_PR_READY = "pr_ready"
EVENT_PR_CHECKS_PASS = "pr_checks_pass"
EVENT_CLEANUP_COMPLETE = "cleanup_complete"

PHASES = ("implementation", "review", "finalize")


# ---------------------------------------------------------------------------
# Metadata schemas
# ---------------------------------------------------------------------------


class ImplementationMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    planning_approved: bool | None = None
    draft_pr_created: bool | None = None
    tasks_approved: bool | None = None


class ReviewMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    iteration: int | None = None


class FinalizeMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_deleted: bool | None = None
    pr_url: str | None = None
    pr_checks_passed: bool | None = None
    documentation_updates: list[str] | None = None


# ---------------------------------------------------------------------------
# Guards and hooks
# ---------------------------------------------------------------------------


def latest_review_assessment(project: Project) -> str | None:
    """Assessment of the latest approved review, or None if there is none."""
    if "review" not in project.phases:
        return None
    review = project.phases["review"].outputs.latest("review", approved_only=True)
    if review is None:
        return None
    assessment = review.metadata.get("assessment")
    return assessment if isinstance(assessment, str) else None


def _review_discriminator(project: Project) -> str:
    if "review" not in project.phases:
        raise EventDeterminationError("review phase not found")
    review = project.phases["review"].outputs.latest("review", approved_only=True)
    if review is None:
        raise EventDeterminationError("no approved review found")
    assessment = review.metadata.get("assessment")
    if not isinstance(assessment, str):
        raise EventDeterminationError("latest approved review has no assessment")
    return assessment


def _reopen_implementation(project: Project) -> None:
    """Hand the failed review to implementation and require a new plan.

    Counts one more implementation iteration per failed review.
    """
    project.phases["implementation"].rework()
    project.add_phase_input_from_output("review", "implementation", "review")
    project.phases["implementation"].metadata.pop("planning_approved", None)
    project.phases["implementation"].metadata.pop("tasks_approved", None)


def _initialize(project: Project, initial_inputs: Mapping[str, Sequence[Artifact]]) -> None:
    for name in PHASES:
        project.phases[name] = new_phase(name, initial_inputs)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _configure_phases(builder: ProjectTypeConfigBuilder) -> ProjectTypeConfigBuilder:
    return (
        builder.with_phase(
            "implementation",
            start_state=IMPLEMENTATION_PLANNING,
            end_state=IMPLEMENTATION_EXECUTING,
            states=[IMPLEMENTATION_DRAFT_PR_CREATION],
            supports_tasks=True,
            metadata_schema=ImplementationMetadata,
        )
        .with_phase(
            "review",
            start_state=REVIEW_ACTIVE,
            end_state=REVIEW_ACTIVE,
            outputs=["review"],
            metadata_schema=ReviewMetadata,
        )
        .with_phase(
            "finalize",
            start_state=FINALIZE_CHECKS,
            end_state=FINALIZE_CLEANUP,
            states=[FINALIZE_PR_READY, FINALIZE_PR_CHECKS],
            outputs=["pr_body"],
            metadata_schema=FinalizeMetadata,
        )
    )


def _configure_transitions(builder: ProjectTypeConfigBuilder) -> ProjectTypeConfigBuilder:
    builder = (
        builder.set_initial_state(IMPLEMENTATION_PLANNING)
        .add_transition(
            IMPLEMENTATION_PLANNING,
            IMPLEMENTATION_DRAFT_PR_CREATION,
            EVENT_PLANNING_COMPLETE,
            guard=Guard(
                "planning approved",
                lambda p: p.phase_metadata_bool("implementation", "planning_approved"),
            ),
            description="Implementation plan approved; open a draft PR",
        )
        .add_transition(
            IMPLEMENTATION_DRAFT_PR_CREATION,
            IMPLEMENTATION_EXECUTING,
            EVENT_DRAFT_PR_CREATED,
            guard=Guard(
                "draft PR created",
                lambda p: p.phase_metadata_bool("implementation", "draft_pr_created"),
            ),
            description="Draft PR opened; start executing tasks",
        )
        .add_transition(
            IMPLEMENTATION_EXECUTING,
            REVIEW_ACTIVE,
            EVENT_ALL_TASKS_COMPLETE,
            guard=Guard(
                "all implementation tasks completed or abandoned",
                lambda p: p.all_tasks_complete("implementation"),
            ),
            description="All tasks resolved; begin review",
        )
    )

    builder = builder.add_branch(
        REVIEW_ACTIVE,
        _review_discriminator,
        BranchPath(
            value="pass",
            event=EVENT_REVIEW_PASS,
            to_state=FINALIZE_CHECKS,
            description="Review passed; proceed to finalization",
            guard=Guard(
                "latest approved review passed",
                lambda p: latest_review_assessment(p) == "pass",
            ),
        ),
        BranchPath(
            value="fail",
            event=EVENT_REVIEW_FAIL,
            to_state=IMPLEMENTATION_PLANNING,
            description="Review failed; return to implementation planning",
            guard=Guard(
                "latest approved review has unresolved comments",
                lambda p: latest_review_assessment(p) == "fail",
            ),
            on_entry=_reopen_implementation,
            failed_phase="review",
        ),
    )

    return (
        builder.add_transition(
            FINALIZE_CHECKS,
            FINALIZE_PR_READY,
            EVENT_CHECKS_DONE,
            description="Final checks done; prepare the PR body",
        )
        .add_transition(
            FINALIZE_PR_READY,
            FINALIZE_PR_CHECKS,
            EVENT_PR_READY,
            guard=Guard(
                "PR body approved",
                lambda p: p.phase_output_approved("finalize", "pr_body"),
            ),
            description="PR body approved; mark the PR ready and wait for checks",
        )
        .add_transition(
            FINALIZE_PR_CHECKS,
            FINALIZE_CLEANUP,
            EVENT_PR_CHECKS_PASS,
            guard=Guard(
                "PR checks passed",
                lambda p: p.phase_metadata_bool("finalize", "pr_checks_passed"),
            ),
            description="PR checks passed; clean up the project",
        )
        .add_transition(
            FINALIZE_CLEANUP,
            NO_PROJECT,
            EVENT_CLEANUP_COMPLETE,
            guard=Guard(
                "project directory deleted",
                lambda p: p.phase_metadata_bool("finalize", "project_deleted"),
            ),
            description="Project cleaned up",
        )
    )


def _configure_event_determiners(builder: ProjectTypeConfigBuilder) -> ProjectTypeConfigBuilder:
    return (
        builder.on_advance(IMPLEMENTATION_PLANNING, fixed_event(EVENT_PLANNING_COMPLETE))
        .on_advance(IMPLEMENTATION_DRAFT_PR_CREATION, fixed_event(EVENT_DRAFT_PR_CREATED))
        .on_advance(IMPLEMENTATION_EXECUTING, fixed_event(EVENT_ALL_TASKS_COMPLETE))
        .on_advance(FINALIZE_CHECKS, fixed_event(EVENT_CHECKS_DONE))
        .on_advance(FINALIZE_PR_READY, fixed_event(EVENT_PR_READY))
        .on_advance(FINALIZE_PR_CHECKS, fixed_event(EVENT_PR_CHECKS_PASS))
        .on_advance(FINALIZE_CLEANUP, fixed_event(EVENT_CLEANUP_COMPLETE))
    )


def new_standard_config() -> ProjectTypeConfig:
    """Build the standard project type configuration."""
    builder = ProjectTypeConfigBuilder(PROJECT_TYPE)
    builder = _configure_phases(builder)
    builder = _configure_transitions(builder)
    builder = _configure_event_determiners(builder)
    builder = builder.with_initializer(_initialize)
    return builder.build_with_validation()
