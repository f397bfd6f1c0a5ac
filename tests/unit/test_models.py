"""Unit tests for the project data model.

Tests cover:
- Artifact, task and phase collections
- Phase status progression and rework
- Project helpers (guard helpers, artifact hand-off, snapshots)
- Branch-based type detection and name generation
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sowflow.errors import (
    ArtifactIndexError,
    ArtifactNotFoundError,
    DuplicateTaskError,
    PhaseNotFoundError,
    PhaseStatusError,
    TaskNotFoundError,
)
from sowflow.models import (
    Artifact,
    ArtifactCollection,
    Phase,
    PhaseCollection,
    PhaseStatus,
    Project,
    Statechart,
    Task,
    TaskCollection,
    TaskStatus,
    detect_project_type,
    generate_project_name,
)


def _project(**phases: Phase) -> Project:
    project = Project(
        name="demo",
        type="standard",
        branch="feat/demo",
        statechart=Statechart(current_state="ImplementationPlanning"),
    )
    for name, phase in phases.items():
        project.phases[name] = phase
    return project


class TestArtifactCollection:
    """Test index-addressed artifact lists."""

    def test_add_get_remove(self) -> None:
        artifacts = ArtifactCollection()
        artifacts.add(Artifact(type="summary", path="a.md"))
        artifacts.add(Artifact(type="findings", path="b.md"))

        assert len(artifacts) == 2
        assert artifacts[1].path == "b.md"
        removed = artifacts.remove(0)
        assert removed.path == "a.md"
        assert [a.path for a in artifacts] == ["b.md"]

    @pytest.mark.parametrize("index", [-1, 1, 5])
    def test_out_of_range(self, index: int) -> None:
        artifacts = ArtifactCollection([Artifact(type="summary", path="a.md")])
        with pytest.raises(ArtifactIndexError, match="index out of range"):
            artifacts.get(index)

    def test_latest_respects_approval(self) -> None:
        artifacts = ArtifactCollection(
            [
                Artifact(type="review", path="1.md", approved=True),
                Artifact(type="review", path="2.md", approved=False),
                Artifact(type="summary", path="3.md", approved=True),
            ]
        )
        assert artifacts.latest("review").path == "2.md"
        assert artifacts.latest("review", approved_only=True).path == "1.md"
        assert artifacts.latest("pr") is None

    def test_copy_value_is_independent(self) -> None:
        original = Artifact(type="review", path="1.md", metadata={"assessment": "fail"})
        copy = original.copy_value()
        copy.metadata["assessment"] = "pass"
        assert original.metadata["assessment"] == "fail"

    def test_empty_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Artifact(type="", path="a.md")


class TestTaskCollection:
    """Test id-addressed task lists."""

    def test_add_and_lookup(self) -> None:
        tasks = TaskCollection()
        tasks.add(Task(id="010", name="Write parser"))
        assert "010" in tasks
        assert tasks.get("010").name == "Write parser"

    def test_duplicate_add_rejected(self) -> None:
        tasks = TaskCollection([Task(id="010", name="Write parser")])
        with pytest.raises(DuplicateTaskError):
            tasks.add(Task(id="010", name="Again"))

    def test_duplicate_ids_rejected_on_validation(self) -> None:
        with pytest.raises(ValidationError, match="duplicate task id"):
            TaskCollection.model_validate(
                [{"id": "010", "name": "a"}, {"id": "010", "name": "b"}]
            )

    def test_missing_task(self) -> None:
        with pytest.raises(TaskNotFoundError, match="020"):
            TaskCollection().get("020")
        with pytest.raises(TaskNotFoundError):
            TaskCollection().remove("020")

    def test_with_status_and_resolution(self) -> None:
        tasks = TaskCollection(
            [
                Task(id="010", name="a", status=TaskStatus.completed),
                Task(id="020", name="b", status=TaskStatus.abandoned),
                Task(id="030", name="c", status=TaskStatus.in_progress),
            ]
        )
        assert [t.id for t in tasks.with_status(TaskStatus.completed)] == ["010"]
        assert [t.id for t in tasks if t.is_resolved] == ["010", "020"]

    def test_negative_iteration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Task(id="010", name="a", iteration=-1)


class TestPhase:
    """Test phase status progression."""

    def test_start_sets_in_progress(self) -> None:
        phase = Phase()
        phase.start()
        assert phase.status == PhaseStatus.in_progress
        assert phase.enabled is True
        assert phase.started_at is not None

    def test_start_is_idempotent(self) -> None:
        phase = Phase()
        phase.start()
        started = phase.started_at
        phase.start()
        assert phase.started_at == started

    def test_complete_then_fail_rejected(self) -> None:
        phase = Phase()
        phase.start()
        phase.complete()
        assert phase.completed_at is not None
        with pytest.raises(PhaseStatusError):
            phase.fail()

    def test_completed_phase_cannot_restart(self) -> None:
        phase = Phase(status=PhaseStatus.completed)
        with pytest.raises(PhaseStatusError, match="completed to in_progress"):
            phase.start()

    @pytest.mark.parametrize("finish", ["complete", "fail"])
    def test_reopen_keeps_iteration(self, finish: str) -> None:
        phase = Phase()
        phase.start()
        getattr(phase, finish)()

        phase.reopen()

        assert phase.status == PhaseStatus.in_progress
        assert phase.iteration == 0
        assert phase.completed_at is None
        assert phase.failed_at is None

    def test_reopen_requires_finished_phase(self) -> None:
        with pytest.raises(PhaseStatusError):
            Phase().reopen()

    @pytest.mark.parametrize("status", list(PhaseStatus))
    def test_rework_counts_one_iteration_from_any_status(self, status: PhaseStatus) -> None:
        phase = Phase(status=status, iteration=2)

        phase.rework()

        assert phase.status == PhaseStatus.in_progress
        assert phase.iteration == 3
        assert phase.enabled is True


class TestPhaseCollection:
    def test_missing_phase(self) -> None:
        with pytest.raises(PhaseNotFoundError, match="phase not found: review"):
            PhaseCollection()["review"]

    def test_in_progress(self) -> None:
        phases = PhaseCollection({"a": Phase(), "b": Phase(status=PhaseStatus.in_progress)})
        assert phases.in_progress() == ["b"]
        assert phases.names() == ["a", "b"]


class TestProject:
    """Test Project helpers."""

    def test_name_must_be_kebab_case(self) -> None:
        with pytest.raises(ValidationError):
            Project(
                name="Not Kebab",
                type="standard",
                branch="main",
                statechart=Statechart(current_state="X"),
            )

    def test_phase_output_approved(self) -> None:
        review = Phase(outputs=[Artifact(type="review", path="r.md", approved=True)])
        project = _project(review=review)
        assert project.phase_output_approved("review", "review") is True
        assert project.phase_output_approved("review", "pr_body") is False
        assert project.phase_output_approved("missing", "review") is False

    def test_phase_metadata_bool_requires_true(self) -> None:
        project = _project(implementation=Phase(metadata={"a": True, "b": "yes"}))
        assert project.phase_metadata_bool("implementation", "a") is True
        assert project.phase_metadata_bool("implementation", "b") is False
        assert project.phase_metadata_bool("implementation", "c") is False

    def test_all_tasks_complete(self) -> None:
        project = _project(implementation=Phase())
        assert project.all_tasks_complete("implementation") is False

        tasks = project.phases["implementation"].tasks
        tasks.add(Task(id="010", name="a", status=TaskStatus.completed))
        tasks.add(Task(id="020", name="b", status=TaskStatus.needs_review))
        assert project.all_tasks_complete("implementation") is False

        tasks.get("020").set_status(TaskStatus.abandoned)
        assert project.all_tasks_complete("implementation") is True

    def test_add_phase_input_from_output_copies_by_value(self) -> None:
        review = Phase(
            outputs=[
                Artifact(type="review", path="r.md", approved=True, metadata={"n": 1})
            ]
        )
        project = _project(review=review, implementation=Phase())

        project.add_phase_input_from_output("review", "implementation", "review")

        copied = project.phases["implementation"].inputs[0]
        copied.metadata["n"] = 2
        assert project.phases["review"].outputs[0].metadata["n"] == 1

    def test_add_phase_input_from_output_missing(self) -> None:
        project = _project(review=Phase(), implementation=Phase())
        with pytest.raises(ArtifactNotFoundError):
            project.add_phase_input_from_output("review", "implementation", "review")
        with pytest.raises(PhaseNotFoundError):
            project.add_phase_input_from_output("nope", "implementation", "review")

    def test_snapshot_restore(self) -> None:
        project = _project(implementation=Phase())
        snapshot = project.snapshot()
        before = project.to_document()

        project.phases["implementation"].start()
        project.statechart.current_state = "ReviewActive"
        project.restore(snapshot)

        assert project.to_document() == before

    def test_document_is_json_compatible(self) -> None:
        document = _project(implementation=Phase()).to_document()
        assert document["phases"]["implementation"]["status"] == "pending"
        assert isinstance(document["created_at"], str)
        assert document["statechart"] == {"current_state": "ImplementationPlanning"}


class TestDetectProjectType:
    @pytest.mark.parametrize(
        "branch,expected",
        [
            ("explore/spike-cache", "exploration"),
            ("design/auth-flow", "design"),
            ("breakdown/epic-42", "breakdown"),
            ("feat/login", "standard"),
            ("main", "standard"),
            ("exploration", "standard"),
        ],
    )
    def test_prefixes(self, branch: str, expected: str) -> None:
        assert detect_project_type(branch) == expected


class TestGenerateProjectName:
    @pytest.mark.parametrize(
        "description,expected",
        [
            ("Spike caching layer", "spike-caching-layer"),
            ("  Add OAuth2 (Google) login!  ", "add-oauth2-google-login"),
            ("multiple---dashes__and  spaces", "multiple-dashes-and-spaces"),
            ("!!!", ""),
        ],
    )
    def test_kebab_case(self, description: str, expected: str) -> None:
        assert generate_project_name(description) == expected

    def test_truncation_strips_trailing_hyphen(self) -> None:
        assert generate_project_name("abcdefghij klmnop", max_length=11) == "abcdefghij"
