"""
Timeline reconciler.

Brings the ticket-driven fields of a project's timeline in line with its
scheduling tickets. Safe to call any number of times: a second call with
unchanged tickets finds no drift and writes nothing.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from solarflow.models.project_timeline import (
    InspectionStatus,
    InstallationStatus,
    ProjectTimeline,
    SiteSurveyStatus,
)
from solarflow.orchestrators.base import BaseOrchestrator
from solarflow.services.ticket_observer import PhaseTickets, TicketObservation, TicketObserver
from solarflow.services.timeline_store import TicketFeed, TimelineStore
from solarflow.utils.invariants import RecordNotFoundError
from solarflow.utils.timeutil import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketFields:
    """
    Ticket-driven field values implied by the current tickets.

    ``values`` are written as-is; ``conditional`` maps a field to
    (expected, new) and is applied only while the field still holds
    ``expected``.
    """
    values: Dict[str, Any] = field(default_factory=dict)
    conditional: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)

    def drift(self, record) -> Dict[str, Tuple[Any, Any]]:
        """Fields whose stored value differs from the derived one: name -> (stored, derived)."""
        changes = {}
        for name, derived in self.values.items():
            stored = getattr(record, name)
            if _normalize(stored) != _normalize(derived):
                changes[name] = (stored, derived)
        for name, (expected, new) in self.conditional.items():
            stored = getattr(record, name)
            if stored == expected and stored != new:
                changes[name] = (stored, new)
        return changes


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation."""
    record: ProjectTimeline
    drift: Dict[str, Tuple[Any, Any]]
    created: bool = False

    @property
    def changed(self) -> bool:
        return self.created or bool(self.drift)


def _normalize(value):
    return as_utc(value) if hasattr(value, "tzinfo") else value


def _tracked_fields(
    tickets: PhaseTickets,
    status_field: str,
    scheduled_field: str,
    completed_field: str,
    scheduled_status,
    completed_status,
) -> Dict[str, Any]:
    # Only phases with a matching ticket are written; everything else keeps
    # its stored value
    if tickets.completed is not None:
        return {
            status_field: completed_status,
            scheduled_field: tickets.scheduled_date,
            completed_field: tickets.completed_date,
        }
    if tickets.scheduled is not None:
        return {
            status_field: scheduled_status,
            scheduled_field: tickets.scheduled_date,
        }
    return {}


def derive_ticket_fields(current, observation: TicketObservation) -> TicketFields:
    """
    Derive the ticket-driven fields for a record.

    **RULES:**
    - Site survey and installation: completed ticket -> completed with
      scheduled/completed dates; else scheduled ticket -> scheduled with
      its date; else unchanged
    - City inspection: completed ticket -> passed; else scheduled ticket
      -> scheduled; else, once installation is completed, not_ready
      becomes ready
    - Engineering is not ticket-driven; survey completion leaves it as is

    Args:
        current: Stored (or freshly initialized) timeline record
        observation: Classified tickets for the project

    Returns:
        TicketFields holding only the fields the tickets determine
    """
    values: Dict[str, Any] = {}
    conditional: Dict[str, Tuple[Any, Any]] = {}

    values.update(_tracked_fields(
        observation.site_survey,
        "site_survey_status",
        "site_survey_scheduled_date",
        "site_survey_completed_date",
        SiteSurveyStatus.SCHEDULED,
        SiteSurveyStatus.COMPLETED,
    ))
    values.update(_tracked_fields(
        observation.installation,
        "installation_status",
        "installation_scheduled_date",
        "installation_completed_date",
        InstallationStatus.SCHEDULED,
        InstallationStatus.COMPLETED,
    ))

    inspection = observation.city_inspection
    if inspection.completed is not None:
        values["inspection_status"] = InspectionStatus.PASSED
        values["city_inspection_date"] = inspection.scheduled_date
        values["inspection_passed_date"] = inspection.completed_date
    elif inspection.scheduled is not None:
        values["inspection_status"] = InspectionStatus.SCHEDULED
        values["city_inspection_date"] = inspection.scheduled_date
    else:
        installation = values.get("installation_status", current.installation_status)
        if installation == InstallationStatus.COMPLETED:
            conditional["inspection_status"] = (InspectionStatus.NOT_READY, InspectionStatus.READY)

    return TicketFields(values=values, conditional=conditional)


class TimelineReconciler(BaseOrchestrator):
    """
    Orchestrator keeping ticket-driven timeline fields in sync.

    Executes steps in a fixed order:
    1. Load the stored record (unknown project -> RecordNotFoundError)
    2. Observe the project's tickets
    3. Derive the ticket-driven fields
    4. Detect drift; skip the write when the record exists and nothing drifted
    5. Atomic upsert of the derived fields
    6. Commit and return the stored record

    Never touches manual fields (engineering, utility, permits, material,
    PTO, activation, notes, checklist).
    """

    def __init__(self, db: Session, actor: Optional[str] = None):
        """
        Initialize reconciler.

        Args:
            db: Database session
            actor: Who triggered reconciliation (for traces)
        """
        super().__init__(db, actor or "system")
        self.store = TimelineStore(db)
        self.feed = TicketFeed(db)
        self.observer = TicketObserver()

    @property
    def orchestrator_name(self) -> str:
        return "timeline_reconciler"

    def reconcile(self, project_id: UUID) -> ProjectTimeline:
        """
        Reconcile one project's timeline with its tickets.

        Args:
            project_id: Project ID

        Returns:
            The persisted timeline record

        Raises:
            RecordNotFoundError: If the project does not exist
            StoreUnavailableError: If the store read or write fails
        """
        return self.reconcile_with_drift(project_id).record

    def reconcile_with_drift(self, project_id: UUID) -> ReconciliationResult:
        """Same as reconcile(), also reporting what changed."""
        return self._run("reconcile", project_id, lambda: self._reconcile(project_id))

    def _reconcile(self, project_id: UUID) -> ReconciliationResult:
        with self._trace_step("load_record"):
            record = self.store.get(project_id, refresh=True)
            created = record is None
            if created and not self.store.project_exists(project_id):
                raise RecordNotFoundError(project_id, entity="Project")
            current = record if record is not None else ProjectTimeline(project_id=project_id)

        with self._trace_step("observe_tickets") as step:
            tickets = self.feed.tickets_for_project(project_id)
            observation = self.observer.observe(tickets)
            step.details = {"ticket_count": len(tickets)}

        with self._trace_step("derive_fields"):
            fields = derive_ticket_fields(current, observation)
            drift = fields.drift(current)

        if not created and not drift:
            self.log_step("upsert", status="skipped", details={"reason": "no_drift"})
            logger.debug("[reconciler] Project %s in sync, no write", project_id)
            return ReconciliationResult(record=record, drift={}, created=False)

        with self._trace_step("upsert") as step:
            stored = self.store.upsert_ticket_fields(
                project_id, fields.values, fields.conditional
            )
            step.details = {"fields": sorted(drift), "created": created}

        logger.info(
            "[reconciler] Project %s reconciled (%s): %s",
            project_id,
            "created" if created else "updated",
            ", ".join(sorted(drift)) or "defaults",
        )
        return ReconciliationResult(record=stored, drift=drift, created=created)
