"""
Project timeline orchestrator.

Entry point for everything that reads or manually changes a project's
lifecycle: status display, gated phase transitions, material ordering,
the new-project verification checklist, delivery tracking and system
activation. Ticket-driven fields are refreshed through TimelineReconciler
before and after every change.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from solarflow.config import settings
from solarflow.models.activity_log import ActivityType, ProjectActivityLog
from solarflow.models.project_timeline import (
    VERIFICATION_FIELDS,
    ActivationMethod,
    ApplicationStatus,
    DropShipLocation,
    EngineeringStatus,
    InspectionStatus,
    InstallationStatus,
    MaterialOrderStatus,
    ProjectTimeline,
    SiteSurveyStatus,
)
from solarflow.orchestrators.base import BaseOrchestrator
from solarflow.orchestrators.reconciler import TimelineReconciler
from solarflow.services import status_label
from solarflow.services.activity_log_service import ActivityLogService
from solarflow.services.material_order_guard import check_material_order
from solarflow.services.phase_gate import (
    STATUS_FIELDS,
    ActivationStatus,
    Phase,
    PtoStatus,
    blocked_phases,
    coerce_phase,
    coerce_status,
    current_status,
    require_phase,
    validate_transition,
)
from solarflow.services.status_label import QueueBucket
from solarflow.services.timeline_store import TimelineStore
from solarflow.utils.invariants import (
    InvariantViolationError,
    PhaseNotReachedError,
    PreconditionNotMetError,
    RecordNotFoundError,
)
from solarflow.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


# Date stamp written when a phase reaches a status. For PTO and activation
# the stamps are the status.
PHASE_DATES: Dict[Phase, Dict[Enum, str]] = {
    Phase.SITE_SURVEY: {
        SiteSurveyStatus.SCHEDULED: "site_survey_scheduled_date",
        SiteSurveyStatus.COMPLETED: "site_survey_completed_date",
    },
    Phase.ENGINEERING: {
        EngineeringStatus.COMPLETED: "engineering_plans_received_date",
    },
    Phase.UTILITY: {
        ApplicationStatus.SUBMITTED: "utility_application_submitted_date",
        ApplicationStatus.REVISION_REQUIRED: "utility_revision_date",
        ApplicationStatus.REVISION_SUBMITTED: "utility_revision_submitted_date",
        ApplicationStatus.APPROVED: "utility_application_approved_date",
    },
    Phase.PERMITS: {
        ApplicationStatus.SUBMITTED: "city_permits_submitted_date",
        ApplicationStatus.REVISION_REQUIRED: "permit_revision_date",
        ApplicationStatus.REVISION_SUBMITTED: "permit_revision_submitted_date",
        ApplicationStatus.APPROVED: "city_permits_approved_date",
    },
    Phase.INSTALLATION: {
        InstallationStatus.SCHEDULED: "installation_scheduled_date",
        InstallationStatus.COMPLETED: "installation_completed_date",
    },
    Phase.MATERIAL_ORDER: {
        MaterialOrderStatus.ORDERED: "material_ordered_date",
        MaterialOrderStatus.DELIVERED: "material_delivered_date",
    },
    Phase.INSPECTION: {
        InspectionStatus.SCHEDULED: "city_inspection_date",
        InspectionStatus.PASSED: "inspection_passed_date",
        InspectionStatus.FAILED: "inspection_failed_date",
        InspectionStatus.SERVICE_COMPLETED: "service_completed_date",
    },
    Phase.PTO: {
        PtoStatus.SUBMITTED: "pto_submitted_date",
        PtoStatus.APPROVED: "pto_approved_date",
    },
    Phase.ACTIVATION: {
        ActivationStatus.ACTIVE: "system_activated_date",
    },
}

# Appointment times, not "reached" stamps: written only from an explicit date.
APPOINTMENT_DATES = frozenset({
    "site_survey_scheduled_date",
    "installation_scheduled_date",
    "city_inspection_date",
})


def _application_clears(submitted: str, revision: str, revision_submitted: str, approved: str):
    return {
        ApplicationStatus.NOT_STARTED: (submitted, revision, revision_submitted, approved),
        ApplicationStatus.SUBMITTED: (revision, revision_submitted, approved),
        ApplicationStatus.REVISION_REQUIRED: (revision_submitted, approved),
        ApplicationStatus.REVISION_SUBMITTED: (approved,),
    }


# Stamps a correction back to a status clears. Inspection loops through
# failure and service, so its lists follow the lifecycle, not the enum.
CORRECTION_CLEARS: Dict[Phase, Dict[Enum, Tuple[str, ...]]] = {
    Phase.SITE_SURVEY: {
        SiteSurveyStatus.PENDING_SCHEDULE: ("site_survey_scheduled_date", "site_survey_completed_date"),
        SiteSurveyStatus.SCHEDULED: ("site_survey_completed_date",),
    },
    Phase.ENGINEERING: {
        EngineeringStatus.PENDING: ("engineering_plans_received_date",),
    },
    Phase.UTILITY: _application_clears(
        "utility_application_submitted_date",
        "utility_revision_date",
        "utility_revision_submitted_date",
        "utility_application_approved_date",
    ),
    Phase.PERMITS: _application_clears(
        "city_permits_submitted_date",
        "permit_revision_date",
        "permit_revision_submitted_date",
        "city_permits_approved_date",
    ),
    Phase.INSTALLATION: {
        InstallationStatus.PENDING_CUSTOMER: ("installation_scheduled_date", "installation_completed_date"),
        InstallationStatus.PENDING_MATERIAL: ("installation_scheduled_date", "installation_completed_date"),
        InstallationStatus.SCHEDULED: ("installation_completed_date",),
    },
    Phase.MATERIAL_ORDER: {
        MaterialOrderStatus.NOT_ORDERED: ("material_ordered_date", "material_delivered_date"),
        MaterialOrderStatus.ORDERED: ("material_delivered_date",),
    },
    Phase.INSPECTION: {
        InspectionStatus.NOT_READY: (
            "city_inspection_date", "inspection_passed_date", "inspection_failed_date", "service_completed_date",
        ),
        InspectionStatus.READY: (
            "city_inspection_date", "inspection_passed_date", "inspection_failed_date", "service_completed_date",
        ),
        InspectionStatus.SCHEDULED: ("inspection_passed_date",),
        InspectionStatus.FAILED: ("inspection_passed_date",),
        InspectionStatus.SERVICE_REQUIRED: ("inspection_passed_date", "service_completed_date"),
        InspectionStatus.SERVICE_COMPLETED: ("inspection_passed_date",),
    },
    Phase.PTO: {
        PtoStatus.NOT_STARTED: ("pto_submitted_date", "pto_approved_date"),
        PtoStatus.SUBMITTED: ("pto_approved_date",),
    },
    Phase.ACTIVATION: {
        ActivationStatus.INACTIVE: ("system_activated_date", "activation_completed_date"),
    },
}

PHASE_NOTES: Dict[Phase, str] = {
    Phase.UTILITY: "utility_notes",
    Phase.PERMITS: "permit_notes",
    Phase.INSTALLATION: "installation_notes",
    Phase.INSPECTION: "city_inspection_notes",
}


class TimelineOrchestratorError(Exception):
    """Raised for malformed requests (unknown fields, missing arguments)."""
    pass


@dataclass
class ProjectStatus:
    """Everything a dashboard needs to render one project."""
    record: Optional[ProjectTimeline]
    label: str
    queue_bucket: QueueBucket
    blocked_phases: List[Phase]

    @property
    def queue_title(self) -> str:
        return status_label.QUEUE_TITLES[self.queue_bucket]


class ProjectTimelineOrchestrator(BaseOrchestrator):
    """
    Orchestrator for manual timeline operations.

    **RULES:**
    - Every manual change passes the phase gate first; violations are
      raised, never turned into no-ops
    - Status moves follow the phase's transition table unless flagged as
      a correction
    - Date stamps are set when their status is reached and only cleared
      by corrections
    - Every changed field is written to the activity log in the same
      transaction
    - One commit per operation; any failure rolls the whole operation back
    """

    def __init__(
        self,
        db: Session,
        actor: Optional[str] = None,
        lead_time_hours: Optional[float] = None,
    ):
        """
        Initialize project timeline orchestrator.

        Args:
            db: Database session
            actor: Who performs the changes (recorded in the activity log)
            lead_time_hours: Material lead time; defaults to MATERIAL_LEAD_TIME_HOURS
        """
        super().__init__(db, actor)
        self.store = TimelineStore(db)
        self.reconciler = TimelineReconciler(db, actor)
        self.activity = ActivityLogService(db)
        self.lead_time_hours = (
            lead_time_hours if lead_time_hours is not None else settings.material_lead_time_hours
        )

    @property
    def orchestrator_name(self) -> str:
        return "project_timeline_orchestrator"

    # Reads

    def get_status(self, project_id: UUID, refresh: bool = True) -> ProjectStatus:
        """
        Current record, label, queue and blocked phases for a project.

        Args:
            project_id: Project ID
            refresh: Reconcile with tickets first (creates a missing record)

        Raises:
            RecordNotFoundError: If the project does not exist
        """
        def body():
            if refresh:
                record = self._load(project_id)
            else:
                with self._trace_step("load_record"):
                    record = self.store.get(project_id)
                    if record is None and not self.store.project_exists(project_id):
                        raise RecordNotFoundError(project_id, entity="Project")
            return ProjectStatus(
                record=record,
                label=status_label.derive_label(record),
                queue_bucket=status_label.derive_queue_bucket(record),
                blocked_phases=blocked_phases(record) if record is not None else [
                    phase for phase in Phase if phase != Phase.SITE_SURVEY
                ],
            )

        return self._run("get_status", project_id, body, commit=False)

    def classify_all(
        self,
        project_ids: Optional[Iterable[UUID]] = None,
    ) -> Dict[QueueBucket, List[UUID]]:
        """
        Bucket projects into dashboard queues.

        Args:
            project_ids: Projects to classify; defaults to every active
                project, newest first

        Returns:
            Every QueueBucket mapped to its project ids (empty buckets included)
        """
        def body():
            with self._trace_step("load_records") as step:
                ids = list(project_ids) if project_ids is not None else self.store.active_project_ids()
                records = self.store.get_many(ids)
                step.details = {"projects": len(ids), "records": len(records)}
            return status_label.classify_all({pid: records.get(pid) for pid in ids})

        return self._run("classify_all", None, body, commit=False)

    def activity_log(self, project_id: UUID) -> List[ProjectActivityLog]:
        """Audit entries for a project, newest first."""
        return self._run(
            "activity_log",
            project_id,
            lambda: self.activity.list_for_project(project_id),
            commit=False,
        )

    # Phase transitions

    def transition(
        self,
        project_id: UUID,
        phase,
        target_status,
        date: Optional[datetime] = None,
        notes: Optional[str] = None,
        correction: bool = False,
        refresh: bool = True,
    ) -> ProjectTimeline:
        """
        Move one phase to a new status.

        Executes in a fixed order:
        1. Reconcile with tickets (when refresh is set)
        2. Check the phase gate
        3. Check the transition table (skipped for corrections)
        4. Apply status, date stamp and notes; log each change
        5. Commit
        6. Reconcile again (when refresh is set)

        Args:
            project_id: Project ID
            phase: Phase or its value (e.g. "utility")
            target_status: Status enum member or value
            date: Date stamp for the target status; defaults to now when
                the stamp is unset. Appointment dates (survey, install and
                inspection scheduled) are written only when given
            notes: Notes for phases that keep them
            correction: Bypass the transition table and clear the stamps
                of statuses that follow the target (CORRECTION_CLEARS)
            refresh: Reconcile before and after

        Returns:
            The updated timeline record

        Raises:
            RecordNotFoundError: Unknown project, or no record and refresh=False
            PreconditionNotMetError: Phase gate not satisfied
            InvalidTransitionError: Move not in the transition table
            LeadTimeTooShortError: Ordering material too close to install
            TimelineOrchestratorError: Notes for a phase without notes, or no target
        """
        phase = coerce_phase(phase)
        target = coerce_status(phase, target_status)
        if target is None:
            raise TimelineOrchestratorError("target_status is required")
        if notes is not None and phase not in PHASE_NOTES:
            raise TimelineOrchestratorError(f"Phase {phase.value} has no notes field")

        def body():
            record = self._load(project_id, refresh=refresh)

            with self._trace_step("check_gate"):
                require_phase(record, phase)

            current = current_status(record, phase)
            with self._trace_step("validate_transition") as step:
                validate_transition(phase, current, target, correction=correction)
                step.details = {
                    "phase": phase.value,
                    "from": getattr(current, "value", None),
                    "to": target.value,
                    "correction": correction,
                }

            if (
                phase == Phase.MATERIAL_ORDER
                and target == MaterialOrderStatus.ORDERED
                and current != MaterialOrderStatus.ORDERED
                and not correction
            ):
                with self._trace_step("check_material_lead_time"):
                    check_material_order(record, utcnow(), self.lead_time_hours)

            with self._trace_step("apply_changes"):
                self._apply_transition(record, phase, current, target, date, notes, correction)
            return record

        record = self._run("transition", project_id, body)
        logger.info(
            "[timeline] Project %s: %s -> %s%s",
            project_id, phase.value, target.value, " (correction)" if correction else "",
        )
        if refresh:
            record = self.reconciler.reconcile(project_id)
        return record

    def order_material(self, project_id: UUID, now: Optional[datetime] = None) -> ProjectTimeline:
        """
        Order installation material.

        Re-ordering an already ordered or delivered project returns the
        record unchanged.

        Args:
            project_id: Project ID
            now: Order time; defaults to the current time

        Raises:
            PhaseNotReachedError: If installation is not scheduled
            LeadTimeTooShortError: If installation is less than the lead time away
        """
        now = now or utcnow()

        def body():
            record = self._load(project_id)
            if record.material_order_status in (MaterialOrderStatus.ORDERED, MaterialOrderStatus.DELIVERED):
                self.log_step("order_material", status="skipped", details={"reason": "already_ordered"})
                return record

            with self._trace_step("check_material_order"):
                check_material_order(record, now, self.lead_time_hours)

            with self._trace_step("apply_changes"):
                self._set(record, "material_order_status", MaterialOrderStatus.ORDERED, ActivityType.STATUS_CHANGE)
                self._set(record, "material_ordered_date", now)
            logger.info("[timeline] Project %s: material ordered", project_id)
            return record

        return self._run("order_material", project_id, body)

    # New-project verification

    def update_verification(self, project_id: UUID, **flags: bool) -> ProjectTimeline:
        """
        Set verification checklist items.

        Args:
            project_id: Project ID
            **flags: Checklist item -> checked (see VERIFICATION_FIELDS)

        Raises:
            TimelineOrchestratorError: For an unknown checklist item
        """
        unknown = sorted(set(flags) - set(VERIFICATION_FIELDS))
        if unknown:
            raise TimelineOrchestratorError(f"Unknown checklist items: {unknown}")

        def body():
            record = self._load(project_id)
            with self._trace_step("apply_changes"):
                for name in VERIFICATION_FIELDS:
                    if name in flags:
                        self._set(record, name, bool(flags[name]))
            return record

        return self._run("update_verification", project_id, body)

    def approve_for_site_survey(self, project_id: UUID) -> ProjectTimeline:
        """
        Move a verified project into the site survey queue.

        Raises:
            PreconditionNotMetError: Listing the unchecked checklist items
        """
        def body():
            record = self._load(project_id)
            with self._trace_step("check_checklist"):
                missing = [name for name in VERIFICATION_FIELDS if not getattr(record, name)]
                if missing:
                    raise PreconditionNotMetError(
                        Phase.SITE_SURVEY,
                        ", ".join(missing),
                        "verification checklist complete",
                        details={"missing_items": missing},
                    )

            with self._trace_step("apply_changes"):
                self._set(record, "approved_for_site_survey", True)
                if record.site_survey_status is None:
                    self._set(
                        record, "site_survey_status", SiteSurveyStatus.PENDING_SCHEDULE,
                        ActivityType.STATUS_CHANGE,
                    )
            logger.info("[timeline] Project %s approved for site survey", project_id)
            return record

        return self._run("approve_for_site_survey", project_id, body)

    # Material delivery

    def update_material_delivery(
        self,
        project_id: UUID,
        drop_ship_location=None,
        homeowner_contacted: Optional[bool] = None,
        quote_received: Optional[bool] = None,
        delivery_confirmed: Optional[bool] = None,
    ) -> ProjectTimeline:
        """
        Track where and how ordered material is delivered.

        Moving the drop ship to the warehouse clears the homeowner contact
        flag; homeowner contact can only be set for home deliveries.

        Raises:
            PhaseNotReachedError: If material has not been ordered
            InvariantViolationError: Homeowner contact on a warehouse delivery
        """
        location = DropShipLocation(drop_ship_location) if drop_ship_location is not None else None

        def body():
            record = self._load(project_id)
            with self._trace_step("check_material_ordered"):
                if record.material_order_status == MaterialOrderStatus.NOT_ORDERED:
                    raise PhaseNotReachedError(Phase.MATERIAL_ORDER, "material ordered")

                effective = location or record.material_drop_ship_location
                if homeowner_contacted and effective != DropShipLocation.CUSTOMER_HOME:
                    raise InvariantViolationError(
                        "homeowner_contact_requires_home_delivery",
                        "Homeowner contact applies only to customer home drop ships",
                        details={"drop_ship_location": getattr(effective, "value", None)},
                    )

            with self._trace_step("apply_changes"):
                if location is not None:
                    self._set(record, "material_drop_ship_location", location)
                    if location != DropShipLocation.CUSTOMER_HOME:
                        self._set(record, "homeowner_contacted_for_delivery", False)
                if homeowner_contacted is not None:
                    self._set(record, "homeowner_contacted_for_delivery", bool(homeowner_contacted))
                if quote_received is not None:
                    self._set(record, "material_quote_received", bool(quote_received))
                if delivery_confirmed is not None:
                    self._set(record, "customer_delivery_confirmed", bool(delivery_confirmed))
            return record

        return self._run("update_material_delivery", project_id, body)

    # Activation

    def activate_system(
        self,
        project_id: UUID,
        method,
        activated_at: Optional[datetime] = None,
    ) -> ProjectTimeline:
        """
        Record how the system gets activated after PTO.

        Remote activation completes immediately; a tech dispatch records
        the method and waits for an ACTIVATION transition once the visit
        is done.

        Raises:
            PreconditionNotMetError: If PTO is not approved
            TimelineOrchestratorError: If the method is still pending
        """
        method = ActivationMethod(getattr(method, "value", method))
        if method == ActivationMethod.PENDING:
            raise TimelineOrchestratorError("Activation method must be remote or tech_dispatch")

        def body():
            record = self._load(project_id)
            with self._trace_step("check_gate"):
                require_phase(record, Phase.ACTIVATION)

            with self._trace_step("apply_changes"):
                self._set(record, "activation_method", method)
                if method == ActivationMethod.REMOTE:
                    when = activated_at or utcnow()
                    self._stamp(record, "system_activated_date", when, overwrite=activated_at is not None)
                    self._stamp(record, "activation_completed_date", when, overwrite=activated_at is not None)
            logger.info("[timeline] Project %s activation: %s", project_id, method.value)
            return record

        return self._run("activate_system", project_id, body)

    # Internals

    def _load(self, project_id: UUID, refresh: bool = True) -> ProjectTimeline:
        if refresh:
            with self._trace_step("reconcile"):
                return self.reconciler.reconcile(project_id)

        with self._trace_step("load_record"):
            record = self.store.get(project_id)
            if record is None:
                if not self.store.project_exists(project_id):
                    raise RecordNotFoundError(project_id, entity="Project")
                raise RecordNotFoundError(project_id)
            return record

    def _apply_transition(
        self,
        record: ProjectTimeline,
        phase: Phase,
        current,
        target,
        date: Optional[datetime],
        notes: Optional[str],
        correction: bool,
    ) -> None:
        status_field = STATUS_FIELDS[phase]
        if status_field is not None:
            self._set(record, status_field, target, ActivityType.STATUS_CHANGE)

        if correction:
            for date_field in CORRECTION_CLEARS[phase].get(target, ()):
                self._set(record, date_field, None)

        date_field = PHASE_DATES[phase].get(target)
        if date_field in APPOINTMENT_DATES:
            if date is not None:
                self._set(record, date_field, date)
        elif date_field is not None:
            self._stamp(record, date_field, date or utcnow(), overwrite=date is not None)

        if notes is not None:
            self._set(record, PHASE_NOTES[phase], notes)

        if phase == Phase.INSTALLATION and target == InstallationStatus.COMPLETED:
            if record.inspection_status == InspectionStatus.NOT_READY:
                self._set(record, "inspection_status", InspectionStatus.READY, ActivityType.STATUS_CHANGE)

        if phase == Phase.ACTIVATION and target == ActivationStatus.ACTIVE:
            self._stamp(record, "activation_completed_date", record.system_activated_date)

        if phase == Phase.PTO and target == PtoStatus.APPROVED and current == PtoStatus.NOT_STARTED:
            # Approval without a recorded submission (correction path)
            self._stamp(record, "pto_submitted_date", record.pto_approved_date)

    def _stamp(self, record: ProjectTimeline, field_name: str, value: datetime, overwrite: bool = False) -> None:
        """Set a date stamp if it is unset, or unconditionally with overwrite."""
        if overwrite or getattr(record, field_name) is None:
            self._set(record, field_name, value)

    def _set(
        self,
        record: ProjectTimeline,
        field_name: str,
        value: Any,
        action_type: ActivityType = ActivityType.UPDATE,
    ) -> None:
        old_value = getattr(record, field_name)
        if old_value == value:
            return
        setattr(record, field_name, value)
        self.activity.record_change(
            record.project_id,
            field_name,
            old_value,
            value,
            actor=self.actor,
            action_type=action_type,
        )
