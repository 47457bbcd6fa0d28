"""
Phase gate: phase order, predecessor gates and allowed status moves.

Pure functions over a timeline record (any object exposing the
ProjectTimeline attributes). Consulted before every manual transition and
by callers that need to disable phase controls.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Type

from solarflow.models.project_timeline import (
    ApplicationStatus,
    EngineeringStatus,
    InspectionStatus,
    InstallationStatus,
    MaterialOrderStatus,
    SiteSurveyStatus,
)
from solarflow.utils.invariants import InvalidTransitionError, PreconditionNotMetError


class Phase(str, Enum):
    """Workflow phases in lifecycle order."""
    SITE_SURVEY = "site_survey"
    ENGINEERING = "engineering"
    UTILITY = "utility"
    PERMITS = "permits"
    INSTALLATION = "installation"
    MATERIAL_ORDER = "material_order"
    INSPECTION = "inspection"
    PTO = "pto"
    ACTIVATION = "activation"


PHASE_ORDER: List[Phase] = list(Phase)


class PtoStatus(str, Enum):
    """PTO status, derived from the PTO date stamps."""
    NOT_STARTED = "not_started"
    SUBMITTED = "submitted"
    APPROVED = "approved"


class ActivationStatus(str, Enum):
    """Activation status, derived from system_activated_date."""
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(frozen=True)
class Gate:
    """Predecessor condition a phase requires before it can be entered."""
    predecessor: Phase
    requirement: str
    check: Callable[[object], bool]


GATES: Dict[Phase, Gate] = {
    Phase.ENGINEERING: Gate(
        Phase.SITE_SURVEY,
        "site survey completed",
        lambda r: r.site_survey_status == SiteSurveyStatus.COMPLETED,
    ),
    Phase.UTILITY: Gate(
        Phase.ENGINEERING,
        "engineering completed",
        lambda r: r.engineering_status == EngineeringStatus.COMPLETED,
    ),
    Phase.PERMITS: Gate(
        Phase.ENGINEERING,
        "engineering completed",
        lambda r: r.engineering_status == EngineeringStatus.COMPLETED,
    ),
    Phase.INSTALLATION: Gate(
        Phase.PERMITS,
        "city permits approved",
        lambda r: r.permit_status == ApplicationStatus.APPROVED,
    ),
    Phase.MATERIAL_ORDER: Gate(
        Phase.INSTALLATION,
        "installation scheduled",
        lambda r: r.installation_status == InstallationStatus.SCHEDULED,
    ),
    Phase.INSPECTION: Gate(
        Phase.INSTALLATION,
        "installation completed",
        lambda r: r.installation_status == InstallationStatus.COMPLETED,
    ),
    Phase.PTO: Gate(
        Phase.INSPECTION,
        "city inspection passed",
        lambda r: r.inspection_status == InspectionStatus.PASSED,
    ),
    Phase.ACTIVATION: Gate(
        Phase.PTO,
        "PTO approved",
        lambda r: r.pto_approved_date is not None,
    ),
}


STATUS_ENUMS: Dict[Phase, Type[Enum]] = {
    Phase.SITE_SURVEY: SiteSurveyStatus,
    Phase.ENGINEERING: EngineeringStatus,
    Phase.UTILITY: ApplicationStatus,
    Phase.PERMITS: ApplicationStatus,
    Phase.INSTALLATION: InstallationStatus,
    Phase.MATERIAL_ORDER: MaterialOrderStatus,
    Phase.INSPECTION: InspectionStatus,
    Phase.PTO: PtoStatus,
    Phase.ACTIVATION: ActivationStatus,
}

# Column holding each phase's status; PTO and activation are derived
STATUS_FIELDS: Dict[Phase, Optional[str]] = {
    Phase.SITE_SURVEY: "site_survey_status",
    Phase.ENGINEERING: "engineering_status",
    Phase.UTILITY: "utility_status",
    Phase.PERMITS: "permit_status",
    Phase.INSTALLATION: "installation_status",
    Phase.MATERIAL_ORDER: "material_order_status",
    Phase.INSPECTION: "inspection_status",
    Phase.PTO: None,
    Phase.ACTIVATION: None,
}


def _moves(table) -> Dict[Optional[Enum], FrozenSet[Enum]]:
    return {state: frozenset(targets) for state, targets in table.items()}


_APPLICATION_MOVES = _moves({
    ApplicationStatus.NOT_STARTED: {ApplicationStatus.SUBMITTED},
    ApplicationStatus.SUBMITTED: {ApplicationStatus.REVISION_REQUIRED, ApplicationStatus.APPROVED},
    ApplicationStatus.REVISION_REQUIRED: {ApplicationStatus.REVISION_SUBMITTED},
    ApplicationStatus.REVISION_SUBMITTED: {ApplicationStatus.REVISION_REQUIRED, ApplicationStatus.APPROVED},
    ApplicationStatus.APPROVED: set(),
})

# A None key is a phase not entered yet (engineering, installation)
ALLOWED_TRANSITIONS: Dict[Phase, Dict[Optional[Enum], FrozenSet[Enum]]] = {
    Phase.SITE_SURVEY: _moves({
        SiteSurveyStatus.PENDING_SCHEDULE: {SiteSurveyStatus.SCHEDULED, SiteSurveyStatus.COMPLETED},
        SiteSurveyStatus.SCHEDULED: {SiteSurveyStatus.COMPLETED, SiteSurveyStatus.PENDING_SCHEDULE},
        SiteSurveyStatus.COMPLETED: set(),
    }),
    Phase.ENGINEERING: _moves({
        None: {EngineeringStatus.PENDING, EngineeringStatus.COMPLETED},
        EngineeringStatus.PENDING: {EngineeringStatus.COMPLETED},
        EngineeringStatus.COMPLETED: set(),
    }),
    Phase.UTILITY: _APPLICATION_MOVES,
    Phase.PERMITS: _APPLICATION_MOVES,
    Phase.INSTALLATION: _moves({
        None: {
            InstallationStatus.PENDING_CUSTOMER,
            InstallationStatus.PENDING_MATERIAL,
            InstallationStatus.SCHEDULED,
        },
        InstallationStatus.PENDING_CUSTOMER: {InstallationStatus.PENDING_MATERIAL, InstallationStatus.SCHEDULED},
        InstallationStatus.PENDING_MATERIAL: {InstallationStatus.PENDING_CUSTOMER, InstallationStatus.SCHEDULED},
        InstallationStatus.SCHEDULED: {
            InstallationStatus.COMPLETED,
            InstallationStatus.PENDING_CUSTOMER,
            InstallationStatus.PENDING_MATERIAL,
        },
        InstallationStatus.COMPLETED: set(),
    }),
    Phase.MATERIAL_ORDER: _moves({
        MaterialOrderStatus.NOT_ORDERED: {MaterialOrderStatus.ORDERED},
        MaterialOrderStatus.ORDERED: {MaterialOrderStatus.DELIVERED},
        MaterialOrderStatus.DELIVERED: set(),
    }),
    Phase.INSPECTION: _moves({
        InspectionStatus.NOT_READY: {InspectionStatus.READY},
        InspectionStatus.READY: {InspectionStatus.SCHEDULED, InspectionStatus.PASSED, InspectionStatus.FAILED},
        InspectionStatus.SCHEDULED: {
            InspectionStatus.PASSED,
            InspectionStatus.FAILED,
            InspectionStatus.SERVICE_REQUIRED,
        },
        InspectionStatus.FAILED: {InspectionStatus.SERVICE_REQUIRED, InspectionStatus.SCHEDULED},
        InspectionStatus.SERVICE_REQUIRED: {InspectionStatus.SERVICE_COMPLETED},
        InspectionStatus.SERVICE_COMPLETED: {
            InspectionStatus.SCHEDULED,
            InspectionStatus.PASSED,
            InspectionStatus.FAILED,
        },
        InspectionStatus.PASSED: set(),
    }),
    Phase.PTO: _moves({
        PtoStatus.NOT_STARTED: {PtoStatus.SUBMITTED},
        PtoStatus.SUBMITTED: {PtoStatus.APPROVED},
        PtoStatus.APPROVED: set(),
    }),
    Phase.ACTIVATION: _moves({
        ActivationStatus.INACTIVE: {ActivationStatus.ACTIVE},
        ActivationStatus.ACTIVE: set(),
    }),
}


def coerce_phase(phase) -> Phase:
    """Accept a Phase or its string value."""
    return phase if isinstance(phase, Phase) else Phase(phase)


def coerce_status(phase: Phase, status) -> Optional[Enum]:
    """
    Convert a status value to the phase's enum; None stays None.

    Raises:
        ValueError: If the value is not a status of this phase
    """
    enum_cls = STATUS_ENUMS[phase]
    if status is None or isinstance(status, enum_cls):
        return status
    return enum_cls(getattr(status, "value", status))


def current_status(record, phase) -> Optional[Enum]:
    """Read a phase's status from a record, deriving PTO and activation."""
    phase = coerce_phase(phase)
    if phase == Phase.PTO:
        if record.pto_approved_date is not None:
            return PtoStatus.APPROVED
        if record.pto_submitted_date is not None:
            return PtoStatus.SUBMITTED
        return PtoStatus.NOT_STARTED
    if phase == Phase.ACTIVATION:
        if record.system_activated_date is not None:
            return ActivationStatus.ACTIVE
        return ActivationStatus.INACTIVE
    return coerce_status(phase, getattr(record, STATUS_FIELDS[phase]))


def can_enter_phase(record, phase) -> bool:
    """True when the phase has no gate or its predecessor condition holds."""
    gate = GATES.get(coerce_phase(phase))
    return gate is None or bool(gate.check(record))


def require_phase(record, phase) -> None:
    """
    Enforce a phase's predecessor gate.

    Raises:
        PreconditionNotMetError: Naming the missing predecessor
    """
    phase = coerce_phase(phase)
    gate = GATES.get(phase)
    if gate is not None and not gate.check(record):
        raise PreconditionNotMetError(phase, gate.predecessor, gate.requirement)


def blocked_phases(record) -> List[Phase]:
    """Phases whose controls should be disabled, in lifecycle order."""
    return [phase for phase in PHASE_ORDER if not can_enter_phase(record, phase)]


def is_transition_allowed(phase, current, target) -> bool:
    """Re-entering the current status is always allowed."""
    phase = coerce_phase(phase)
    current = coerce_status(phase, current)
    target = coerce_status(phase, target)
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[phase].get(current, frozenset())


def validate_transition(phase, current, target, correction: bool = False) -> None:
    """
    Check a status move against the phase's transition table.

    Corrections bypass the table so office staff can fix data entry
    mistakes; the predecessor gate still applies.

    Raises:
        InvalidTransitionError: If the move is not allowed
    """
    if correction:
        return
    if not is_transition_allowed(phase, current, target):
        raise InvalidTransitionError(coerce_phase(phase), current, target)
