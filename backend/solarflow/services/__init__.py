"""
Services package.

Pure rule engines (ticket observer, phase gate, material guard, status
labels) and thin data access services (timeline store, ticket feed,
activity log).

Services should:
    - Accept a database session as parameter when they touch the database
    - Leave commit/rollback to the calling orchestrator
    - Return data or raise exceptions
"""

from solarflow.services.ticket_observer import (
    Ticket,
    TicketObserver,
    TicketObservation,
    PhaseTickets,
    TrackedPhase,
    observe_tickets,
)
from solarflow.services.phase_gate import (
    Phase,
    PtoStatus,
    ActivationStatus,
    can_enter_phase,
    require_phase,
    blocked_phases,
    validate_transition,
)
from solarflow.services.material_order_guard import (
    can_order_material,
    check_material_order,
)
from solarflow.services.status_label import (
    QueueBucket,
    derive_label,
    derive_queue_bucket,
    classify_all,
)
from solarflow.services.timeline_store import (
    TimelineStore,
    TicketFeed,
    StoreServiceError,
)
from solarflow.services.activity_log_service import ActivityLogService

__all__ = [
    "Ticket",
    "TicketObserver",
    "TicketObservation",
    "PhaseTickets",
    "TrackedPhase",
    "observe_tickets",
    "Phase",
    "PtoStatus",
    "ActivationStatus",
    "can_enter_phase",
    "require_phase",
    "blocked_phases",
    "validate_transition",
    "can_order_material",
    "check_material_order",
    "QueueBucket",
    "derive_label",
    "derive_queue_bucket",
    "classify_all",
    "TimelineStore",
    "TicketFeed",
    "StoreServiceError",
    "ActivityLogService",
]
