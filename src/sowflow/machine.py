"""Guarded state machine for Sowflow projects.

This module implements the transition engine. A Machine is bound to one
Project and evaluates transitions against it:

- Transitions are kept as an ordered list. Several transitions may share a
  (state, event) pair; candidates are tried in registration order and the
  first whose guard passes (or that has no guard) wins.
- An event with no candidate from the current state is a configuration
  error (EventNotConfiguredError); an event whose candidates all fail their
  guards is a guard failure (GuardFailedError).
- Firing is atomic. The project is snapshotted before any hook runs; if an
  exit, entry or post-transition hook raises, the project and the machine
  state are restored and TransitionError is raised.

Exit hooks run for the departing state and entry hooks for the arriving
state, composed from every transition that declares one for that state.
Post-transition hooks receive the fired transition and perform engine-level
bookkeeping such as phase status updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

import structlog

from sowflow.errors import EventNotConfiguredError, GuardFailedError, TransitionError

if TYPE_CHECKING:
    from sowflow.models import Project

logger = structlog.get_logger(__name__)

Hook = Callable[["Project"], None]


@dataclass(frozen=True)
class Guard:
    """A described predicate over a project.

    Attributes:
        description: Human-readable condition, used in error messages
        check: Predicate returning True when the transition may fire
    """

    description: str
    check: Callable[[Project], bool]

    def __call__(self, project: Project) -> bool:
        return bool(self.check(project))


@dataclass(frozen=True)
class Transition:
    """A configured (from_state, event) -> to_state edge.

    Attributes:
        from_state: Source state
        event: Triggering event
        to_state: Target state
        guard: Optional precondition
        description: Human-readable summary of the transition
        on_entry: Hook run when entering to_state
        on_exit: Hook run when leaving from_state
        failed_phase: Phase to mark failed (not completed) when this
            transition leaves that phase's end state
    """

    from_state: str
    event: str
    to_state: str
    guard: Guard | None = None
    description: str = ""
    on_entry: Hook | None = None
    on_exit: Hook | None = None
    failed_phase: str | None = None

    @property
    def guard_description(self) -> str:
        return self.guard.description if self.guard is not None else ""


@dataclass(frozen=True)
class TransitionInfo:
    """Introspection record for one configured transition.

    Attributes:
        event: Triggering event
        from_state: Source state
        to_state: Target state
        description: Transition description
        guard_description: Guard description, empty if unguarded
        guard_satisfied: Whether the guard currently passes
    """

    event: str
    from_state: str
    to_state: str
    description: str
    guard_description: str
    guard_satisfied: bool


PostTransitionHook = Callable[["Project", Transition], None]


class Machine:
    """State machine bound to a single project.

    Args:
        project: Project the guards and hooks operate on
        initial_state: State the machine starts in (usually the persisted one)
        transitions: Transitions in registration order
        post_transition_hooks: Hooks run after entry hooks on every fire
    """

    def __init__(
        self,
        project: Project,
        initial_state: str,
        transitions: Iterable[Transition],
        post_transition_hooks: Sequence[PostTransitionHook] = (),
    ) -> None:
        self.project = project
        self._state = initial_state
        self._transitions = list(transitions)
        self._post_transition_hooks = list(post_transition_hooks)

        self._exit_hooks: dict[str, list[Hook]] = {}
        self._entry_hooks: dict[str, list[Hook]] = {}
        for transition in self._transitions:
            if transition.on_exit is not None:
                self._exit_hooks.setdefault(transition.from_state, []).append(transition.on_exit)
            if transition.on_entry is not None:
                self._entry_hooks.setdefault(transition.to_state, []).append(transition.on_entry)

        self.logger = logger.bind(component="Machine", project=project.name)

    @property
    def state(self) -> str:
        """Current state."""
        return self._state

    @property
    def transitions(self) -> list[Transition]:
        return list(self._transitions)

    def _candidates(self, state: str, event: str) -> list[Transition]:
        return [t for t in self._transitions if t.from_state == state and t.event == event]

    def _resolve(self, candidates: Sequence[Transition]) -> Transition | None:
        for transition in candidates:
            if transition.guard is None or transition.guard(self.project):
                return transition
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def events(self, state: str | None = None) -> list[str]:
        """Distinct events configured from a state, in registration order.

        Args:
            state: State to inspect; defaults to the current state
        """
        state = self._state if state is None else state
        seen: list[str] = []
        for transition in self._transitions:
            if transition.from_state == state and transition.event not in seen:
                seen.append(transition.event)
        return seen

    def can_fire(self, event: str) -> bool:
        """Return True if event is configured here and some guard passes."""
        return self._resolve(self._candidates(self._state, event)) is not None

    def target_state(self, state: str, event: str) -> str | None:
        """Return the state event would lead to from state.

        The first candidate whose guard passes is reported; when every guard
        fails, the first candidate's target is reported. Returns None when
        the event is not configured for the state.
        """
        candidates = self._candidates(state, event)
        if not candidates:
            return None
        chosen = self._resolve(candidates)
        return (chosen or candidates[0]).to_state

    def guard_description(self, state: str, event: str) -> str:
        """Return the guard description(s) for (state, event).

        The result does not depend on whether the guards currently pass.
        Returns an empty string for unguarded or unconfigured events.
        """
        descriptions: list[str] = []
        for transition in self._candidates(state, event):
            desc = transition.guard_description
            if desc and desc not in descriptions:
                descriptions.append(desc)
        return "; ".join(descriptions)

    def available_transitions(self, state: str | None = None) -> list[TransitionInfo]:
        """Describe every transition configured from a state.

        Args:
            state: State to inspect; defaults to the current state

        Returns:
            TransitionInfo records in registration order, with guards
            evaluated against the bound project.
        """
        state = self._state if state is None else state
        infos = []
        for transition in self._transitions:
            if transition.from_state != state:
                continue
            satisfied = transition.guard is None or transition.guard(self.project)
            infos.append(
                TransitionInfo(
                    event=transition.event,
                    from_state=transition.from_state,
                    to_state=transition.to_state,
                    description=transition.description,
                    guard_description=transition.guard_description,
                    guard_satisfied=satisfied,
                )
            )
        return infos

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    def fire(self, event: str) -> str:
        """Fire an event from the current state.

        Args:
            event: Event to fire

        Returns:
            The new current state.

        Raises:
            EventNotConfiguredError: If no transition exists for (state, event).
            GuardFailedError: If every candidate's guard fails.
            TransitionError: If a hook raised; the project was rolled back.
        """
        previous = self._state
        candidates = self._candidates(previous, event)
        if not candidates:
            self.logger.info(
                "transition_rejected", state=previous, trigger=event, reason="not_configured"
            )
            raise EventNotConfiguredError(previous, event)

        chosen = self._resolve(candidates)
        if chosen is None:
            self.logger.info(
                "transition_rejected", state=previous, trigger=event, reason="guard_failed"
            )
            raise GuardFailedError(
                previous,
                event,
                targets=[t.to_state for t in candidates],
                descriptions=[t.guard_description for t in candidates],
            )

        snapshot = self.project.snapshot()
        try:
            for hook in self._exit_hooks.get(previous, []):
                hook(self.project)

            self._state = chosen.to_state
            self.project.statechart.current_state = chosen.to_state

            for hook in self._entry_hooks.get(chosen.to_state, []):
                hook(self.project)
            for post_hook in self._post_transition_hooks:
                post_hook(self.project, chosen)
        except Exception as exc:
            self.project.restore(snapshot)
            self._state = previous
            self.logger.warning(
                "transition_rolled_back",
                from_state=previous,
                to_state=chosen.to_state,
                trigger=event,
                error=str(exc),
            )
            raise TransitionError(previous, event, chosen.to_state, str(exc)) from exc

        self.logger.info(
            "transition_fired",
            from_state=previous,
            to_state=chosen.to_state,
            trigger=event,
        )
        return chosen.to_state
