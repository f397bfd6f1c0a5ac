"""Unit tests for project type configuration, the builder and the registry."""

from __future__ import annotations

from typing import Callable

import pytest
from pydantic import BaseModel

from sowflow.errors import (
    BranchNotFoundError,
    ConfigurationError,
    ConfigValidationError,
    DuplicateProjectTypeError,
    MetadataValidationError,
    NoEventDeterminerError,
    UnknownProjectTypeError,
)
from sowflow.machine import Guard
from sowflow.models import Artifact, PhaseStatus, Project, Statechart
from sowflow.project_type import (
    NO_PROJECT,
    BranchPath,
    ProjectTypeConfigBuilder,
    fixed_event,
)
from sowflow.registry import ProjectTypeRegistry, build_default_registry


class WorkMetadata(BaseModel):
    owner: str


def _builder() -> ProjectTypeConfigBuilder:
    return (
        ProjectTypeConfigBuilder("demo")
        .with_phase("work", start_state="Working", end_state="Checking", supports_tasks=True)
        .with_phase("wrapup", start_state="Wrapping", end_state="Wrapping")
        .set_initial_state("Working")
        .with_terminal_state("Done")
        .add_transition("Working", "Checking", "check")
        .add_transition("Wrapping", "Done", "finish")
    )


def _shell(state: str = "Working") -> Project:
    return Project(
        name="demo",
        type="demo",
        branch="feat/demo",
        statechart=Statechart(current_state=state),
    )


class TestBuilder:
    """Test ProjectTypeConfigBuilder."""

    def test_build(self) -> None:
        config = _builder().build_with_validation()
        assert config.name == "demo"
        assert config.initial_state == "Working"
        assert [t.event for t in config.transitions] == ["check", "finish"]
        assert config.terminal_states == frozenset({NO_PROJECT, "Done"})

    def test_missing_initial_state(self) -> None:
        builder = ProjectTypeConfigBuilder("demo").with_phase("work", start_state="A", end_state="A")
        with pytest.raises(ConfigValidationError, match="initial state not set"):
            builder.build()

    def test_validate_reports_every_issue(self) -> None:
        builder = (
            ProjectTypeConfigBuilder("demo")
            .with_phase("work", start_state="A")
            .with_phase("other", end_state="B")
            .add_transition("A", "Nowhere", "go")
            .on_advance("Elsewhere", fixed_event("go"))
        )
        issues = builder.validate()
        assert 'phase "work" has start state but no end state' in issues
        assert 'phase "other" has end state but no start state' in issues
        assert 'transition to state "Nowhere" not in any phase' in issues
        assert 'determiner state "Elsewhere" not in any phase' in issues
        assert "initial state not set (use set_initial_state)" in issues

        with pytest.raises(ConfigValidationError) as exc_info:
            builder.build_with_validation()
        assert exc_info.value.issues == issues

    def test_branch_generates_transitions_and_determiner(self) -> None:
        config = (
            _builder()
            .add_branch(
                "Checking",
                lambda p: p.phases["work"].metadata.get("verdict", "unknown"),
                BranchPath(value="ok", event="approve", to_state="Wrapping"),
                BranchPath(value="redo", event="reject", to_state="Working", failed_phase="work"),
            )
            .build_with_validation()
        )
        assert config.events("Checking") == ["approve", "reject"]
        assert config.is_branching_state("Checking")

        project = _shell("Checking")
        config.initialize(project)
        project.phases["work"].metadata["verdict"] = "redo"
        assert config.determine_event(project) == "reject"

        project.phases["work"].metadata["verdict"] = "maybe"
        with pytest.raises(BranchNotFoundError, match="'maybe'"):
            config.determine_event(project)

    @pytest.mark.parametrize(
        "paths,message",
        [
            ((), "at least one path"),
            ((BranchPath(value="", event="e", to_state="Working"),), "empty discriminator"),
            (
                (
                    BranchPath(value="a", event="e1", to_state="Working"),
                    BranchPath(value="a", event="e2", to_state="Working"),
                ),
                "duplicate discriminator",
            ),
        ],
    )
    def test_branch_rejects_bad_paths(self, paths: tuple, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            _builder().add_branch("Checking", lambda p: "a", *paths)

    def test_branch_and_determiner_are_exclusive(self) -> None:
        builder = _builder().on_advance("Checking", fixed_event("check"))
        with pytest.raises(ValueError, match="already has a determiner"):
            builder.add_branch(
                "Checking", lambda p: "a", BranchPath(value="a", event="e", to_state="Working")
            )

        builder = _builder().add_branch(
            "Checking", lambda p: "a", BranchPath(value="a", event="e", to_state="Working")
        )
        with pytest.raises(ValueError, match="is a branch point"):
            builder.on_advance("Checking", fixed_event("e"))


class TestProjectTypeConfig:
    """Test configuration lookups and lifecycle helpers."""

    def test_phase_lookups(self) -> None:
        config = _builder().build()
        assert config.phase_for_state("Checking") == "work"
        assert config.phase_for_state("Done") is None
        assert config.is_phase_start_state("work", "Working")
        assert config.is_phase_end_state("work", "Checking")
        assert not config.is_phase_end_state("missing", "Checking")

    def test_default_task_phase(self) -> None:
        config = _builder().build()
        assert config.task_supporting_phases() == ["work"]
        assert config.default_task_phase("Working") == "work"
        assert config.default_task_phase("Wrapping") == "work"

    def test_terminal_states(self) -> None:
        config = _builder().build()
        assert config.is_terminal("Done")
        assert config.is_terminal(NO_PROJECT)
        assert not config.is_terminal("Working")

    def test_determine_event_without_determiner(self) -> None:
        config = _builder().build()
        with pytest.raises(NoEventDeterminerError, match="state Working"):
            config.determine_event(_shell())

    def test_default_initializer_creates_every_phase(self) -> None:
        config = _builder().build()
        project = _shell()
        config.initialize(project, {"work": [Artifact(type="spec", path="spec.md")]})

        assert project.phases.names() == ["work", "wrapup"]
        assert project.phases["work"].status == PhaseStatus.pending
        assert project.phases["work"].inputs[0].path == "spec.md"
        assert len(project.phases["wrapup"].inputs) == 0

    def test_initial_inputs_are_copied(self) -> None:
        config = _builder().build()
        artifact = Artifact(type="spec", path="spec.md")
        project = _shell()
        config.initialize(project, {"work": [artifact]})
        artifact.path = "changed.md"
        assert project.phases["work"].inputs[0].path == "spec.md"

    def test_initialize_twice_rejected(self) -> None:
        config = _builder().build()
        project = _shell()
        config.initialize(project)
        with pytest.raises(ConfigurationError, match="already initialized"):
            config.initialize(project)

    def test_initial_inputs_for_unknown_phase(self) -> None:
        config = _builder().build()
        with pytest.raises(ConfigurationError, match="unknown phase"):
            config.initialize(_shell(), {"review": []})

    def test_phase_bookkeeping_on_fire(self) -> None:
        config = (
            _builder()
            .add_transition("Checking", "Wrapping", "wrap")
            .add_transition("Wrapping", "Working", "reopen")
            .build()
        )
        project = _shell()
        config.initialize(project)
        project.phases["work"].start()
        machine = config.build_machine(project)

        machine.fire("check")
        assert project.phases["work"].status == PhaseStatus.in_progress

        machine.fire("wrap")
        assert project.phases["work"].status == PhaseStatus.completed
        assert project.phases["wrapup"].status == PhaseStatus.in_progress

        machine.fire("reopen")
        assert project.phases["wrapup"].status == PhaseStatus.completed
        assert project.phases["work"].status == PhaseStatus.in_progress
        assert project.phases["work"].iteration == 0
        assert project.phases.in_progress() == ["work"]

    def test_failed_phase_on_branch(self) -> None:
        config = (
            _builder()
            .add_transition("Checking", "Working", "reject", failed_phase="work")
            .build()
        )
        project = _shell("Checking")
        config.initialize(project)
        project.phases["work"].start()
        machine = config.build_machine(project)

        machine.fire("reject")

        # failed, then reopened on re-entering the start state
        assert project.phases["work"].status == PhaseStatus.in_progress
        assert project.phases["work"].iteration == 0
        assert project.phases["work"].failed_at is None

    def test_validate_uses_metadata_schema(self) -> None:
        config = (
            _builder()
            .with_phase(
                "work",
                start_state="Working",
                end_state="Checking",
                metadata_schema=WorkMetadata,
            )
            .build()
        )
        project = _shell()
        config.initialize(project)
        with pytest.raises(MetadataValidationError, match="phases.work.metadata.owner"):
            config.validate(project)

    def test_rework_hook_counts_each_fire(self) -> None:
        config = (
            _builder()
            .add_transition(
                "Checking",
                "Working",
                "reject",
                on_entry=lambda p: p.phases["work"].rework(),
                failed_phase="work",
            )
            .build()
        )
        project = _shell("Checking")
        config.initialize(project)

        iterations = []
        for _ in range(3):
            config.build_machine(project, "Checking").fire("reject")
            iterations.append(project.phases["work"].iteration)

        assert iterations == [1, 2, 3]
        assert project.phases["work"].status == PhaseStatus.in_progress

    def test_declared_states(self) -> None:
        config = _builder().build()
        assert config.states() == frozenset(
            {"Working", "Checking", "Wrapping", "Done", NO_PROJECT}
        )

    def test_validate_rejects_undeclared_state(self) -> None:
        config = _builder().build()
        project = _shell("Bogus")
        config.initialize(project)
        with pytest.raises(MetadataValidationError) as exc_info:
            config.validate(project)
        assert exc_info.value.issues == [
            ("statechart.current_state", "state 'Bogus' is not declared by type demo")
        ]

    def test_has_determiner(self) -> None:
        config = _builder().on_advance("Working", fixed_event("check")).build()
        assert config.has_determiner("Working")
        assert not config.has_determiner("Checking")


class TestRegistry:
    """Test ProjectTypeRegistry."""

    def test_default_registry(self) -> None:
        registry = build_default_registry()
        assert registry.names() == ["breakdown", "design", "exploration", "standard"]
        assert len(registry) == 4
        assert "standard" in registry
        assert list(registry) == registry.names()

    def test_registries_are_isolated(self) -> None:
        first = build_default_registry()
        second = ProjectTypeRegistry()
        first.register(_builder().build())
        assert "demo" in first
        assert "demo" not in second

    def test_unknown_type(self) -> None:
        with pytest.raises(UnknownProjectTypeError, match="unknown project type: legacy"):
            ProjectTypeRegistry().get("legacy")

    def test_duplicate_registration(self) -> None:
        registry = ProjectTypeRegistry()
        registry.register(_builder().build())
        with pytest.raises(DuplicateProjectTypeError):
            registry.register(_builder().build())
        registry.register(_builder().build(), name="demo-copy")
        assert registry.get("demo-copy").name == "demo"

    @pytest.mark.parametrize("name", ["standard", "exploration", "design", "breakdown"])
    def test_builtin_configs_validate(self, name: str) -> None:
        config = build_default_registry().get(name)
        assert config.name == name
        assert config.transitions


def test_guard_call_coerces_to_bool() -> None:
    guard = Guard("has phases", lambda p: len(p.phases))
    assert guard(_shell()) is False


def test_fixed_event_ignores_project() -> None:
    determiner: Callable[[Project], str] = fixed_event("go")
    assert determiner(_shell()) == "go"
