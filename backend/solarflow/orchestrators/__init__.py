"""
Orchestrators package.

Orchestrators coordinate services into timeline workflows. They own the
transaction: one commit per operation, rollback on failure.

Difference between Services and Orchestrators:
    - Services: single responsibility, pure rules or one table's access
    - Orchestrators: load, check, write and log in one traced operation
"""

from solarflow.orchestrators.base import (
    BaseOrchestrator,
    ExecutionStep,
    OrchestrationError,
)
from solarflow.orchestrators.reconciler import (
    TimelineReconciler,
    ReconciliationResult,
    TicketFields,
    derive_ticket_fields,
)
from solarflow.orchestrators.project_timeline_orchestrator import (
    ProjectTimelineOrchestrator,
    ProjectStatus,
    TimelineOrchestratorError,
)
from solarflow.orchestrators.change_listener import (
    TimelineChangeListener,
    ChangeNotification,
    ChangeEvent,
)

__all__ = [
    "BaseOrchestrator",
    "ExecutionStep",
    "OrchestrationError",
    "TimelineReconciler",
    "ReconciliationResult",
    "TicketFields",
    "derive_ticket_fields",
    "ProjectTimelineOrchestrator",
    "ProjectStatus",
    "TimelineOrchestratorError",
    "TimelineChangeListener",
    "ChangeNotification",
    "ChangeEvent",
]
