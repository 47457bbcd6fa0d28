"""
Timeline invariants and the errors raised when they are violated.

Enforces the lifecycle constraints:
1. No phase is entered before its predecessor condition holds
2. No status move outside the phase's allowed transitions
3. No material order before installation is scheduled
4. No material order inside the installation lead time
5. No manual change against a project or record that does not exist

Fail fast with explicit errors. Store outages are reported separately as
StoreUnavailableError because they are transient, not violations.
"""


class InvariantViolationError(Exception):
    """Base exception for invariant violations."""

    def __init__(self, invariant_name: str, message: str, details: dict = None):
        self.invariant_name = invariant_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[INVARIANT VIOLATION: {invariant_name}] {message}")


class PreconditionNotMetError(InvariantViolationError):
    """Raised when a phase is entered before its predecessor allows it."""

    def __init__(self, phase, missing, requirement: str, details: dict = None):
        self.phase = phase
        self.missing = missing
        self.requirement = requirement
        super().__init__(
            "precondition_not_met",
            f"Cannot enter {_name(phase)}: requires {requirement}",
            details={
                "phase": _name(phase),
                "missing": _name(missing),
                "requirement": requirement,
                **(details or {}),
            },
        )


class LeadTimeTooShortError(InvariantViolationError):
    """Raised when material is ordered too close to the installation date."""

    def __init__(self, actual_hours: float, required_hours: float):
        self.actual_hours = actual_hours
        self.required_hours = required_hours
        super().__init__(
            "lead_time_too_short",
            f"Installation is {actual_hours:.2f}h away; material needs at least {required_hours:g}h lead time",
            details={
                "actual_hours": actual_hours,
                "required_hours": required_hours,
            },
        )


class PhaseNotReachedError(InvariantViolationError):
    """Raised when an action needs a phase the project has not reached."""

    def __init__(self, phase, requirement: str):
        self.phase = phase
        self.requirement = requirement
        super().__init__(
            "phase_not_reached",
            f"{_name(phase)} not reached: requires {requirement}",
            details={
                "phase": _name(phase),
                "requirement": requirement,
            },
        )


class InvalidTransitionError(InvariantViolationError):
    """Raised when a status move is not in the phase's transition table."""

    def __init__(self, phase, current, target):
        self.phase = phase
        self.current = current
        self.target = target
        super().__init__(
            "invalid_transition",
            f"{_name(phase)} cannot move from {_name(current)} to {_name(target)}",
            details={
                "phase": _name(phase),
                "current": _name(current),
                "target": _name(target),
            },
        )


class RecordNotFoundError(InvariantViolationError):
    """Raised when a project or its timeline record does not exist."""

    def __init__(self, project_id, entity: str = "ProjectTimeline"):
        self.project_id = project_id
        self.entity = entity
        super().__init__(
            "record_not_found",
            f"{entity} for project {project_id} not found",
            details={
                "project_id": str(project_id),
                "entity": entity,
            },
        )


class StoreUnavailableError(Exception):
    """
    Raised when the store read or write fails.

    Transient and retryable: the failed operation was rolled back and the
    previously persisted record is untouched.
    """

    def __init__(self, operation: str, project_id=None):
        self.operation = operation
        self.project_id = project_id
        target = f" for project {project_id}" if project_id is not None else ""
        super().__init__(f"Store unavailable during {operation}{target}")


def _name(value) -> str:
    if value is None:
        return "none"
    return getattr(value, "value", str(value))
