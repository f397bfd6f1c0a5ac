"""Orchestrator-facing execution modes.

Four operations are exposed over a loaded project:

- auto: ask the project type which event comes next and fire it
- list: describe every transition configured from the current state
- dry-run: check that an event would fire, without firing it
- explicit: fire a named event

advance() wraps one load -> operate -> save cycle around them. Only auto and
explicit mode save; list and dry-run never touch the backend after loading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from sowflow import loader
from sowflow.backends import Backend
from sowflow.errors import (
    AmbiguousAdvanceError,
    ConfigurationError,
    EventNotConfiguredError,
    GuardFailedError,
    InvalidAdvanceOptionsError,
    error_context,
)
from sowflow.logging import bind_project_context, clear_project_context
from sowflow.machine import Machine, TransitionInfo
from sowflow.models import Project
from sowflow.project_type import ProjectTypeConfig
from sowflow.registry import ProjectTypeRegistry

logger = structlog.get_logger(__name__)

LIST_HINT = "Use 'sowflow advance --list' to see available transitions"
GUARD_FIX_HINT = "Fix the guard condition, then try again"


def _dry_run_hint(event: str) -> str:
    return f"Use 'sowflow advance --dry-run {event}' to check the guard before firing"


class AdvanceMode(Enum):
    """Execution mode selected from the advance arguments."""

    auto = "auto"
    list = "list"
    dry_run = "dry_run"
    explicit = "explicit"


@dataclass(frozen=True)
class AdvanceResult:
    """Outcome of a fired transition.

    Attributes:
        mode: Mode that fired the event (auto or explicit)
        event: Event fired
        from_state: State before firing
        to_state: State after firing
    """

    mode: AdvanceMode
    event: str
    from_state: str
    to_state: str


@dataclass(frozen=True)
class TransitionListing:
    """Transitions configured from one state.

    Attributes:
        state: State inspected
        transitions: Configured transitions, in registration order
        terminal: Whether the project type treats state as terminal
    """

    state: str
    transitions: list[TransitionInfo] = field(default_factory=list)
    terminal: bool = False

    @property
    def all_blocked(self) -> bool:
        """True if transitions exist but none of their guards pass."""
        return bool(self.transitions) and not any(t.guard_satisfied for t in self.transitions)


@dataclass(frozen=True)
class DryRunResult:
    """A transition that would fire if the event were sent now."""

    state: str
    event: str
    target_state: str
    description: str
    guard_description: str


def resolve_mode(
    event: str | None, list_only: bool = False, check_only: bool = False
) -> AdvanceMode:
    """Pick the execution mode for an argument combination.

    Args:
        event: Event argument, if any
        list_only: List flag
        check_only: Dry-run flag

    Raises:
        InvalidAdvanceOptionsError: If the combination is not allowed.
    """
    if list_only and check_only:
        raise InvalidAdvanceOptionsError("cannot use --list and --dry-run together")
    if list_only and event:
        raise InvalidAdvanceOptionsError("cannot specify event argument with --list flag")
    if check_only and not event:
        raise InvalidAdvanceOptionsError("--dry-run requires an event argument")

    if list_only:
        return AdvanceMode.list
    if check_only:
        return AdvanceMode.dry_run
    if event:
        return AdvanceMode.explicit
    return AdvanceMode.auto


def _attached(project: Project) -> tuple[ProjectTypeConfig, Machine]:
    config, machine = project.config, project.machine
    if config is None or machine is None:
        raise ConfigurationError(
            f"project {project.name} has no attached configuration; load it first"
        )
    return config, machine


def _fire(project: Project, machine: Machine, event: str, mode: AdvanceMode) -> AdvanceResult:
    from_state = machine.state
    try:
        to_state = machine.fire(event)
    except GuardFailedError as exc:
        raise GuardFailedError(
            exc.state, exc.event, exc.targets, exc.descriptions, hint=_dry_run_hint(event)
        ) from exc
    except EventNotConfiguredError as exc:
        raise EventNotConfiguredError(exc.state, exc.event, hint=LIST_HINT) from exc

    logger.info(
        "project_advanced",
        project=project.name,
        mode=mode.value,
        trigger=event,
        from_state=from_state,
        to_state=to_state,
    )
    return AdvanceResult(mode=mode, event=event, from_state=from_state, to_state=to_state)


def auto_advance(project: Project) -> AdvanceResult:
    """Fire the event the project type determines for the current state.

    Raises:
        AmbiguousAdvanceError: If the state has no determiner; lists the
            events that can be fired explicitly instead.
        EventDeterminationError: If the determiner cannot decide.
        GuardFailedError: If the determined event is blocked.
    """
    config, machine = _attached(project)
    state = machine.state
    with error_context("auto advance"):
        if not config.has_determiner(state):
            raise AmbiguousAdvanceError(state, machine.events())
        event = config.determine_event(project)
        return _fire(project, machine, event, AdvanceMode.auto)


def list_transitions(project: Project) -> TransitionListing:
    """Describe every transition configured from the current state."""
    config, machine = _attached(project)
    state = machine.state
    return TransitionListing(
        state=state,
        transitions=machine.available_transitions(state),
        terminal=config.is_terminal(state),
    )


def dry_run(project: Project, event: str) -> DryRunResult:
    """Check that event would fire from the current state.

    Nothing is fired and no hook runs; the project is left untouched.

    Raises:
        EventNotConfiguredError: If event is not configured here.
        GuardFailedError: If every candidate transition is blocked.
    """
    _, machine = _attached(project)
    state = machine.state
    with error_context("dry run"):
        target = machine.target_state(state, event)
        if target is None:
            raise EventNotConfiguredError(state, event, hint=LIST_HINT)

        candidates = [t for t in machine.available_transitions(state) if t.event == event]
        chosen = next((t for t in candidates if t.guard_satisfied), None)
        if chosen is None:
            raise GuardFailedError(
                state,
                event,
                targets=[t.to_state for t in candidates],
                descriptions=[t.guard_description for t in candidates],
                hint=GUARD_FIX_HINT,
            )

    return DryRunResult(
        state=state,
        event=event,
        target_state=chosen.to_state,
        description=chosen.description,
        guard_description=chosen.guard_description,
    )


def fire_event(project: Project, event: str) -> AdvanceResult:
    """Fire exactly event from the current state.

    Raises:
        EventNotConfiguredError: If event is not configured here; the
            message suggests list mode.
        GuardFailedError: If the event is blocked; the message names the
            guard, state, event and target and suggests dry-run mode.
        TransitionError: If a hook failed and the project was rolled back.
    """
    _, machine = _attached(project)
    with error_context("fire"):
        return _fire(project, machine, event, AdvanceMode.explicit)


async def advance(
    backend: Backend,
    registry: ProjectTypeRegistry,
    event: str | None = None,
    list_only: bool = False,
    check_only: bool = False,
) -> AdvanceResult | TransitionListing | DryRunResult:
    """Run one load -> operate -> save cycle.

    Args:
        backend: Backend holding the project
        registry: Project type registry
        event: Event to fire or check
        list_only: Only list transitions
        check_only: Only check that event would fire (dry-run mode)

    Returns:
        TransitionListing in list mode, DryRunResult in dry-run mode,
        AdvanceResult otherwise.
    """
    mode = resolve_mode(event, list_only, check_only)
    project = await loader.load(backend, registry)
    bind_project_context(project.name, project.type, project.branch)
    try:
        if mode is AdvanceMode.list:
            return list_transitions(project)
        if not event:
            result = auto_advance(project)
        elif mode is AdvanceMode.dry_run:
            return dry_run(project, event)
        else:
            result = fire_event(project, event)
        await loader.save(project)
        return result
    finally:
        clear_project_context()
