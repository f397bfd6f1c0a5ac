"""Exception hierarchy for Sowflow.

All errors raised by the engine derive from SowflowError. Each error keeps an
ordered list of the operations it passed through (load, save, fire,
validate, ...), added with the error_context() context manager, so the
rendered message shows the full chain while callers can still catch the
concrete type.

Example:
    with error_context("load"):
        with error_context("validate structure"):
            raise StructuralValidationError([("name", "field required")])

    # str(err) == "load: validate structure: structural validation failed:
    #              name: field required"

Categories:
    configuration: unknown project type, unconfigured event, ambiguous advance.
    guard: a transition exists but its precondition is not met.
    validation: structural or metadata schema violations.
    backend: missing or unreadable persisted state.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence


class SowflowError(Exception):
    """Base class for all Sowflow errors.

    Attributes:
        message: The error message without operation context.
        context: Operation names the error propagated through, outermost first.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        self.context: list[str] = []
        super().__init__(message)

    def add_context(self, operation: str) -> None:
        """Prepend an operation name to the error context.

        Args:
            operation: Name of the operation the error propagated through.
        """
        self.context.insert(0, operation)

    def __str__(self) -> str:
        return ": ".join([*self.context, self.message])


@contextmanager
def error_context(operation: str) -> Iterator[None]:
    """Tag any SowflowError raised inside the block with an operation name.

    Args:
        operation: Operation name to prepend (e.g. "load", "save to backend").

    Yields:
        None
    """
    try:
        yield
    except SowflowError as exc:
        exc.add_context(operation)
        raise


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(SowflowError):
    """Raised when the requested operation is not configured or not allowed."""


class UnknownProjectTypeError(ConfigurationError):
    """Raised when a project type is not present in the registry.

    Attributes:
        project_type: The type name that failed to resolve.
    """

    def __init__(self, project_type: str) -> None:
        self.project_type = project_type
        super().__init__(f"unknown project type: {project_type}")


class DuplicateProjectTypeError(ConfigurationError):
    """Raised when a project type name is registered twice.

    Attributes:
        project_type: The type name that is already registered.
    """

    def __init__(self, project_type: str) -> None:
        self.project_type = project_type
        super().__init__(f"project type already registered: {project_type}")


class EventNotConfiguredError(ConfigurationError):
    """Raised when no transition exists for an event from the current state.

    Attributes:
        state: The state the event was fired from.
        event: The unconfigured event.
        hint: Optional follow-up suggestion for the orchestrator.
    """

    def __init__(self, state: str, event: str, hint: str | None = None) -> None:
        self.state = state
        self.event = event
        self.hint = hint
        msg = f"event not configured: '{event}' is not configured for state {state}"
        if hint:
            msg += f". {hint}"
        super().__init__(msg)


class NoEventDeterminerError(ConfigurationError):
    """Raised when auto-advance is requested for a state without a determiner.

    Attributes:
        state: The state that has no event determiner.
    """

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"no event determiner configured for state {state}")


class BranchNotFoundError(ConfigurationError):
    """Raised when a branch discriminator returns a value with no branch path.

    Attributes:
        state: The branching state.
        value: The discriminator value that did not match.
    """

    def __init__(self, state: str, value: str) -> None:
        self.state = state
        self.value = value
        super().__init__(
            f"no branch configured for discriminator value {value!r} in state {state}"
        )


class AmbiguousAdvanceError(ConfigurationError):
    """Raised when auto mode cannot choose an event for the current state.

    Attributes:
        state: The current state.
        candidates: Events configured from the current state.
    """

    def __init__(self, state: str, candidates: Sequence[str]) -> None:
        self.state = state
        self.candidates = list(candidates)
        if self.candidates:
            options = ", ".join(self.candidates)
            msg = (
                f"cannot auto-advance from state {state}: the next step requires an "
                f"explicit event. Available events: {options}. "
                "Use list mode to see descriptions, then fire one explicitly"
            )
        else:
            msg = (
                f"cannot auto-advance from state {state}: no transitions available "
                "(this may be a terminal state)"
            )
        super().__init__(msg)


class ConfigValidationError(ConfigurationError):
    """Raised by ProjectTypeConfigBuilder.build_with_validation.

    Attributes:
        issues: Human-readable descriptions of every configuration problem.
    """

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__("invalid project type configuration: " + "; ".join(self.issues))


class InvalidAdvanceOptionsError(ConfigurationError):
    """Raised when execution mode flags are combined incorrectly."""


# ---------------------------------------------------------------------------
# Guard failures
# ---------------------------------------------------------------------------


class GuardFailedError(SowflowError):
    """Raised when a configured transition is blocked by its guard.

    Attributes:
        state: The state the event was fired from.
        event: The blocked event.
        targets: Target states of every blocked candidate transition.
        descriptions: Guard descriptions of every blocked candidate.
        hint: Optional follow-up suggestion for the orchestrator.
    """

    def __init__(
        self,
        state: str,
        event: str,
        targets: Sequence[str],
        descriptions: Sequence[str],
        hint: str | None = None,
    ) -> None:
        self.state = state
        self.event = event
        self.targets = list(targets)
        self.descriptions = list(descriptions)
        self.hint = hint

        described = [d for d in self.descriptions if d]
        if len(described) == 1:
            msg = f"guard '{described[0]}' failed for event '{event}' from state '{state}'"
        elif described:
            msg = f"guards failed for event '{event}' from state '{state}': {described}"
        else:
            msg = f"guard conditions not met for event '{event}' from state '{state}'"
        if self.targets:
            msg += f" (target: {' | '.join(self.targets)})"
        if hint:
            msg += f". {hint}"
        super().__init__(msg)

    @property
    def target(self) -> str | None:
        """First candidate target state, or None."""
        return self.targets[0] if self.targets else None

    @property
    def description(self) -> str:
        """Guard descriptions joined for display."""
        return "; ".join(d for d in self.descriptions if d)


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------


class StateValidationError(SowflowError):
    """Base class for project state validation failures.

    Attributes:
        issues: (location, message) pairs describing each violation.
    """

    kind = "validation"

    def __init__(self, issues: Sequence[tuple[str, str]]) -> None:
        self.issues = list(issues)
        details = "; ".join(f"{loc}: {msg}" if loc else msg for loc, msg in self.issues)
        super().__init__(f"{self.kind} failed: {details}")


class StructuralValidationError(StateValidationError):
    """Raised when a project document violates the shared project schema."""

    kind = "structural validation"


class MetadataValidationError(StateValidationError):
    """Raised when phase data violates its project type's phase configuration."""

    kind = "metadata validation"


# ---------------------------------------------------------------------------
# Backend errors
# ---------------------------------------------------------------------------


class BackendError(SowflowError):
    """Raised for storage backend I/O failures."""


class ProjectNotFoundError(BackendError):
    """Raised when the backend holds no project state."""

    def __init__(self, location: str | None = None) -> None:
        self.location = location
        msg = "project state not found"
        if location:
            msg += f" at {location}"
        super().__init__(msg)


class InvalidStateError(BackendError):
    """Raised when persisted data cannot be decoded into a project document."""


# ---------------------------------------------------------------------------
# Data model errors
# ---------------------------------------------------------------------------


class PhaseNotFoundError(SowflowError):
    """Raised when a phase name is not present in a project."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"phase not found: {name}")


class TaskNotFoundError(SowflowError):
    """Raised when a task id is not present in a phase."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task not found: {task_id}")


class DuplicateTaskError(SowflowError):
    """Raised when adding a task whose id already exists in the phase."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task already exists: {task_id}")


class ArtifactIndexError(SowflowError):
    """Raised when an artifact index is out of range."""

    def __init__(self, index: int, length: int) -> None:
        self.index = index
        self.length = length
        super().__init__(f"index out of range: {index} (length: {length})")


class ArtifactNotFoundError(SowflowError):
    """Raised when a phase holds no artifact of the requested type."""

    def __init__(self, phase: str, artifact_type: str) -> None:
        self.phase = phase
        self.artifact_type = artifact_type
        super().__init__(f"no {artifact_type!r} output found in phase {phase}")


class PhaseStatusError(SowflowError):
    """Raised when a phase status change would break monotonic progression.

    Attributes:
        current: The phase's current status value.
        target: The requested status value.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"invalid phase status change from {current} to {target}")


# ---------------------------------------------------------------------------
# Transition execution errors
# ---------------------------------------------------------------------------


class TransitionError(SowflowError):
    """Raised when a transition hook fails; the project has been rolled back.

    Attributes:
        state: The state the event was fired from.
        event: The event being fired.
        target: The resolved target state.
    """

    def __init__(self, state: str, event: str, target: str, reason: str) -> None:
        self.state = state
        self.event = event
        self.target = target
        super().__init__(
            f"transition {state} -> {target} on '{event}' failed and was rolled back: {reason}"
        )


class EventDeterminationError(SowflowError):
    """Raised when an event determiner cannot derive the next event."""
