"""Project type configuration for Sowflow.

A ProjectTypeConfig is the declarative bundle the engine needs for one
project type: its phases, initial state, ordered transition table, phase
initializer and per-state event determiners used by auto-advance.

Configurations are assembled with ProjectTypeConfigBuilder:

    config = (
        ProjectTypeConfigBuilder("example")
        .with_phase("work", start_state="Working", end_state="Working", supports_tasks=True)
        .set_initial_state("Working")
        .with_terminal_state("Done")
        .add_transition(
            "Working", "Done", "finish",
            guard=Guard("all tasks complete", lambda p: p.all_tasks_complete("work")),
        )
        .on_advance("Working", fixed_event("finish"))
        .build_with_validation()
    )

Branch points where the next event follows from project data are declared
with add_branch(): it generates one transition per BranchPath and a
determiner that maps the discriminator's value to the path's event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

import structlog
from pydantic import BaseModel

from sowflow.errors import (
    BranchNotFoundError,
    ConfigurationError,
    ConfigValidationError,
    NoEventDeterminerError,
)
from sowflow.machine import Guard, Hook, Machine, Transition
from sowflow.models import Artifact, Phase, PhaseStatus, Project
from sowflow.validation import validate_metadata

logger = structlog.get_logger(__name__)

# Shared terminal state reached after a project is cleaned up
NO_PROJECT = "NoProject"

EventDeterminer = Callable[[Project], str]
Discriminator = Callable[[Project], str]
Initializer = Callable[[Project, Mapping[str, Sequence[Artifact]]], None]


def fixed_event(event: str) -> EventDeterminer:
    """Determiner for linear states: always returns event."""

    def determine(_project: Project) -> str:
        return event

    return determine


def new_phase(
    name: str,
    initial_inputs: Mapping[str, Sequence[Artifact]],
    *,
    enabled: bool = True,
) -> Phase:
    """Create a pending phase seeded with copies of its initial inputs.

    Args:
        name: Phase name used to look up initial_inputs
        initial_inputs: Artifacts keyed by phase name
        enabled: Whether the phase starts enabled
    """
    return Phase(
        enabled=enabled,
        inputs=[artifact.copy_value() for artifact in initial_inputs.get(name, ())],
    )


@dataclass(frozen=True)
class PhaseConfig:
    """Configuration of one phase of a project type.

    Attributes:
        name: Phase name, the key in Project.phases
        start_state: State that starts the phase
        end_state: State whose exit completes (or fails) the phase
        states: Intermediate states that also belong to the phase
        allowed_inputs: Allowed input artifact types (empty = any)
        allowed_outputs: Allowed output artifact types (empty = any)
        supports_tasks: Whether the phase may hold tasks
        metadata_schema: Pydantic model validating phase metadata, or None
            to accept any metadata
    """

    name: str
    start_state: str | None = None
    end_state: str | None = None
    states: tuple[str, ...] = ()
    allowed_inputs: tuple[str, ...] = ()
    allowed_outputs: tuple[str, ...] = ()
    supports_tasks: bool = False
    metadata_schema: type[BaseModel] | None = None

    @property
    def all_states(self) -> tuple[str, ...]:
        """Start, intermediate and end states, without duplicates."""
        ordered: list[str] = []
        for state in (self.start_state, *self.states, self.end_state):
            if state and state not in ordered:
                ordered.append(state)
        return tuple(ordered)


@dataclass(frozen=True)
class BranchPath:
    """One outcome of a state-determined branch.

    Attributes:
        value: Discriminator value selecting this path
        event: Event fired for this path
        to_state: Target state
        description: Transition description
        guard: Optional guard in addition to the discriminator
        on_entry: Hook run when entering to_state
        on_exit: Hook run when leaving the branching state
        failed_phase: Phase to mark failed when taking this path
    """

    value: str
    event: str
    to_state: str
    description: str = ""
    guard: Guard | None = None
    on_entry: Hook | None = None
    on_exit: Hook | None = None
    failed_phase: str | None = None


@dataclass(frozen=True)
class BranchConfig:
    """A branch point: discriminator plus its paths, kept for introspection."""

    from_state: str
    discriminator: Discriminator
    paths: tuple[BranchPath, ...]

    def path_for(self, value: str) -> BranchPath:
        for path in self.paths:
            if path.value == value:
                return path
        raise BranchNotFoundError(self.from_state, value)

    def determine(self, project: Project) -> str:
        return self.path_for(self.discriminator(project)).event


@dataclass(frozen=True)
class ProjectTypeConfig:
    """Complete, immutable configuration of a project type.

    Built by ProjectTypeConfigBuilder; do not construct directly.
    """

    name: str
    initial_state: str
    phases: Mapping[str, PhaseConfig]
    transitions: tuple[Transition, ...]
    determiners: Mapping[str, EventDeterminer] = field(default_factory=dict)
    branches: Mapping[str, BranchConfig] = field(default_factory=dict)
    terminal_states: frozenset[str] = frozenset({NO_PROJECT})
    initializer: Initializer | None = None

    # ------------------------------------------------------------------
    # Phase lookups
    # ------------------------------------------------------------------

    def phase_for_state(self, state: str) -> str | None:
        """Name of the phase owning state, or None."""
        for name, phase_config in self.phases.items():
            if state in phase_config.all_states:
                return name
        return None

    def is_phase_start_state(self, phase_name: str, state: str) -> bool:
        phase_config = self.phases.get(phase_name)
        return phase_config is not None and phase_config.start_state == state

    def is_phase_end_state(self, phase_name: str, state: str) -> bool:
        phase_config = self.phases.get(phase_name)
        return phase_config is not None and phase_config.end_state == state

    def task_supporting_phases(self) -> list[str]:
        """Names of phases that support tasks, sorted."""
        return sorted(name for name, pc in self.phases.items() if pc.supports_tasks)

    def default_task_phase(self, state: str) -> str | None:
        """Phase task operations should target in a given state.

        The phase owning state wins if it supports tasks; otherwise the first
        task-supporting phase alphabetically; None if no phase has tasks.
        """
        owner = self.phase_for_state(state)
        if owner is not None and self.phases[owner].supports_tasks:
            return owner
        supporting = self.task_supporting_phases()
        return supporting[0] if supporting else None

    # ------------------------------------------------------------------
    # Transition lookups
    # ------------------------------------------------------------------

    def available_transitions(self, state: str) -> list[Transition]:
        """Transitions configured from state, in registration order."""
        return [t for t in self.transitions if t.from_state == state]

    def events(self, state: str) -> list[str]:
        seen: list[str] = []
        for transition in self.available_transitions(state):
            if transition.event not in seen:
                seen.append(transition.event)
        return seen

    def states(self) -> frozenset[str]:
        """States named anywhere in this configuration."""
        declared = set(self.terminal_states)
        declared.add(self.initial_state)
        for phase_config in self.phases.values():
            declared.update(phase_config.all_states)
        for transition in self.transitions:
            declared.update((transition.from_state, transition.to_state))
        return frozenset(declared)

    def is_branching_state(self, state: str) -> bool:
        """True if state was declared with add_branch() or shares an event
        between several transitions.
        """
        if state in self.branches:
            return True
        events = [t.event for t in self.available_transitions(state)]
        return len(events) != len(set(events))

    def has_determiner(self, state: str) -> bool:
        return state in self.determiners

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states or not self.available_transitions(state)

    def determine_event(self, project: Project) -> str:
        """Pick the event auto-advance should fire for the project's state.

        Raises:
            NoEventDeterminerError: If the state has no determiner.
            BranchNotFoundError: If a branch discriminator has no matching path.
            EventDeterminationError: If the determiner cannot decide.
        """
        state = project.current_state
        determiner = self.determiners.get(state)
        if determiner is None:
            raise NoEventDeterminerError(state)
        return determiner(project)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        project: Project,
        initial_inputs: Mapping[str, Sequence[Artifact]] | None = None,
    ) -> None:
        """Populate a new project's phases.

        Runs the configured initializer, or creates every configured phase
        as pending when none is set. Initial inputs are copied by value.

        Args:
            project: Project shell with no phases yet
            initial_inputs: Artifacts to seed, keyed by phase name

        Raises:
            ConfigurationError: If the project already has phases, or inputs
                name a phase this type does not configure.
        """
        if len(project.phases) > 0:
            raise ConfigurationError(f"project {project.name} is already initialized")

        inputs = dict(initial_inputs or {})
        unknown = sorted(set(inputs) - set(self.phases))
        if unknown:
            raise ConfigurationError(
                f"initial inputs given for unknown phase(s): {', '.join(unknown)}"
            )

        if self.initializer is not None:
            self.initializer(project, inputs)
        else:
            for name in self.phases:
                project.phases[name] = new_phase(name, inputs)

    def build_machine(self, project: Project, state: str | None = None) -> Machine:
        """Build a machine bound to project.

        Args:
            project: Project the guards and hooks operate on
            state: Starting state; defaults to statechart.current_state

        Returns:
            Machine with phase bookkeeping bound as a post-transition hook.
        """
        initial = state if state is not None else project.statechart.current_state
        return Machine(
            project,
            initial,
            self.transitions,
            post_transition_hooks=[self.sync_phase_status],
        )

    def sync_phase_status(self, project: Project, transition: Transition) -> None:
        """Phase bookkeeping after a transition.

        Leaving a phase's end state completes the phase, or fails it when the
        transition names it in failed_phase. Entering a phase's start state
        starts a pending phase and reopens a completed or failed one. Iteration
        counting belongs to the transition hooks, never to this bookkeeping.
        """
        for name, phase_config in self.phases.items():
            if phase_config.end_state != transition.from_state or name not in project.phases:
                continue
            phase = project.phases[name]
            before = phase.status
            if transition.failed_phase == name:
                phase.fail()
            else:
                phase.complete()
            _log_status_change(project, name, before, phase.status)

        for name, phase_config in self.phases.items():
            if phase_config.start_state != transition.to_state or name not in project.phases:
                continue
            phase = project.phases[name]
            before = phase.status
            if phase.status in (PhaseStatus.completed, PhaseStatus.failed):
                phase.reopen()
            elif phase.status == PhaseStatus.pending:
                phase.start()
            _log_status_change(project, name, before, phase.status)

    def validate(self, project: Project) -> None:
        """Validate project phases against this configuration.

        Raises:
            MetadataValidationError: If any phase violates its configuration.
        """
        validate_metadata(project, self)


def _log_status_change(
    project: Project, phase: str, before: PhaseStatus, after: PhaseStatus
) -> None:
    if before != after:
        logger.info(
            "phase_status_changed",
            project=project.name,
            phase=phase,
            from_status=before.value,
            to_status=after.value,
            iteration=project.phases[phase].iteration,
        )


class ProjectTypeConfigBuilder:
    """Incremental builder for ProjectTypeConfig.

    Every method returns the builder for chaining. The builder is not reset
    by build(), so it can be extended and built again.

    Args:
        name: Project type name
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._initial_state: str | None = None
        self._phases: dict[str, PhaseConfig] = {}
        self._transitions: list[Transition] = []
        self._determiners: dict[str, EventDeterminer] = {}
        self._branches: dict[str, BranchConfig] = {}
        self._terminal_states: set[str] = {NO_PROJECT}
        self._initializer: Initializer | None = None

    def set_initial_state(self, state: str) -> ProjectTypeConfigBuilder:
        self._initial_state = state
        return self

    def with_terminal_state(self, state: str) -> ProjectTypeConfigBuilder:
        """Declare a state in which the project's lifecycle ends."""
        self._terminal_states.add(state)
        return self

    def with_phase(
        self,
        name: str,
        *,
        start_state: str | None = None,
        end_state: str | None = None,
        states: Sequence[str] = (),
        inputs: Sequence[str] = (),
        outputs: Sequence[str] = (),
        supports_tasks: bool = False,
        metadata_schema: type[BaseModel] | None = None,
    ) -> ProjectTypeConfigBuilder:
        """Add or replace a phase configuration."""
        self._phases[name] = PhaseConfig(
            name=name,
            start_state=start_state,
            end_state=end_state,
            states=tuple(states),
            allowed_inputs=tuple(inputs),
            allowed_outputs=tuple(outputs),
            supports_tasks=supports_tasks,
            metadata_schema=metadata_schema,
        )
        return self

    def add_transition(
        self,
        from_state: str,
        to_state: str,
        event: str,
        *,
        guard: Guard | None = None,
        description: str = "",
        on_entry: Hook | None = None,
        on_exit: Hook | None = None,
        failed_phase: str | None = None,
    ) -> ProjectTypeConfigBuilder:
        """Append a transition; registration order decides branching ties."""
        self._transitions.append(
            Transition(
                from_state=from_state,
                event=event,
                to_state=to_state,
                guard=guard,
                description=description,
                on_entry=on_entry,
                on_exit=on_exit,
                failed_phase=failed_phase,
            )
        )
        return self

    def on_advance(self, state: str, determiner: EventDeterminer) -> ProjectTypeConfigBuilder:
        """Set the auto-advance event determiner for a state.

        Raises:
            ValueError: If state is already a branch point.
        """
        if state in self._branches:
            raise ValueError(
                f"state {state} is a branch point; cannot also set a determiner"
            )
        self._determiners[state] = determiner
        return self

    def add_branch(
        self,
        from_state: str,
        discriminator: Discriminator,
        *paths: BranchPath,
    ) -> ProjectTypeConfigBuilder:
        """Declare a state-determined branch point.

        Generates one transition per path, in the order given, and a
        determiner that maps discriminator(project) to the matching path's
        event.

        Raises:
            ValueError: If no paths are given, a value is empty or repeated,
                or the state already has a determiner.
        """
        if not paths:
            raise ValueError(f"branch at {from_state} needs at least one path")
        if from_state in self._determiners:
            raise ValueError(
                f"state {from_state} already has a determiner; cannot add a branch"
            )
        values = [path.value for path in paths]
        if any(not value for value in values):
            raise ValueError(f"branch at {from_state}: empty discriminator value")
        if len(values) != len(set(values)):
            raise ValueError(f"branch at {from_state}: duplicate discriminator value")

        for path in paths:
            self.add_transition(
                from_state,
                path.to_state,
                path.event,
                guard=path.guard,
                description=path.description,
                on_entry=path.on_entry,
                on_exit=path.on_exit,
                failed_phase=path.failed_phase,
            )

        branch = BranchConfig(from_state, discriminator, tuple(paths))
        self._branches[from_state] = branch
        self._determiners[from_state] = branch.determine
        return self

    def with_initializer(self, initializer: Initializer) -> ProjectTypeConfigBuilder:
        self._initializer = initializer
        return self

    def build(self) -> ProjectTypeConfig:
        """Build the configuration without structural checks.

        Raises:
            ConfigValidationError: If no initial state was set.
        """
        if self._initial_state is None:
            raise ConfigValidationError(["initial state not set (use set_initial_state)"])
        return ProjectTypeConfig(
            name=self.name,
            initial_state=self._initial_state,
            phases=dict(self._phases),
            transitions=tuple(self._transitions),
            determiners=dict(self._determiners),
            branches=dict(self._branches),
            terminal_states=frozenset(self._terminal_states),
            initializer=self._initializer,
        )

    def validate(self) -> list[str]:
        """Return every configuration problem found, empty when valid."""
        issues: list[str] = []
        if self._initial_state is None:
            issues.append("initial state not set (use set_initial_state)")

        for name, phase_config in self._phases.items():
            if phase_config.start_state and not phase_config.end_state:
                issues.append(f'phase "{name}" has start state but no end state')
            if phase_config.end_state and not phase_config.start_state:
                issues.append(f'phase "{name}" has end state but no start state')

        phase_states = {s for pc in self._phases.values() for s in pc.all_states}
        if not phase_states:
            return issues

        def check(state: str, what: str) -> None:
            if state in self._terminal_states or state in phase_states:
                return
            issues.append(f'{what} state "{state}" not in any phase')

        for transition in self._transitions:
            check(transition.from_state, "transition from")
            check(transition.to_state, "transition to")
        if self._initial_state is not None:
            check(self._initial_state, "initial")
        for state in self._determiners:
            check(state, "determiner")
        return issues

    def build_with_validation(self) -> ProjectTypeConfig:
        """Build the configuration after checking it for common mistakes.

        Raises:
            ConfigValidationError: Listing every problem found.
        """
        issues = self.validate()
        if issues:
            raise ConfigValidationError(issues)
        return self.build()

