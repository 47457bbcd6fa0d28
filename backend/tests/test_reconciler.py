"""
Test timeline reconciliation against stored tickets.

Validates:
- Empty project gets a default record (pending_schedule, "New Lead")
- Completed tickets drive survey/installation/inspection status and dates
- Installation completed without an inspection ticket -> inspection ready
- Reconciliation is idempotent and skips the write when nothing drifted
- Manual fields are never touched
- Store failures roll back and leave the previous record untouched
- Upserts keep one row per project
"""
import pytest
import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

# Set environment variables before importing solarflow modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from solarflow.database import Base
from solarflow.models.project import Project
from solarflow.models.project_timeline import (
    ApplicationStatus,
    InspectionStatus,
    InstallationStatus,
    ProjectTimeline,
    SiteSurveyStatus,
)
from solarflow.models.scheduling_ticket import SchedulingTicket
from solarflow.orchestrators.reconciler import TimelineReconciler, derive_ticket_fields
from solarflow.services.status_label import derive_label
from solarflow.services.ticket_observer import Ticket, observe_tickets
from solarflow.services.timeline_store import StoreServiceError, TimelineStore
from solarflow.utils.invariants import RecordNotFoundError, StoreUnavailableError
from solarflow.utils.timeutil import as_utc


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2025, 2, 3, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Create test database session."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def project(db):
    """Create a test project."""
    project = Project(customer_name="Dana Whitfield", signature_date=NOW - timedelta(days=40))
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def add_ticket(db, project, **fields):
    ticket = SchedulingTicket(project_id=project.id, **fields)
    db.add(ticket)
    db.commit()
    return ticket


class TestReconcile:

    def test_empty_project_gets_default_record(self, db, project):
        """Scenario A: no tickets."""
        result = TimelineReconciler(db).reconcile_with_drift(project.id)

        record = result.record
        assert result.created
        assert record.project_id == project.id
        assert record.site_survey_status == SiteSurveyStatus.PENDING_SCHEDULE
        assert record.inspection_status == InspectionStatus.NOT_READY
        assert record.engineering_status is None
        assert derive_label(record) == "New Lead"

    def test_completed_survey_ticket(self, db, project):
        """Scenario B: completed site survey ticket."""
        add_ticket(
            db, project,
            appointment_type="site_survey",
            status="completed",
            scheduled_date=NOW - timedelta(days=2),
            closed_at=NOW - timedelta(days=2, hours=-3),
        )

        record = TimelineReconciler(db).reconcile(project.id)

        assert record.site_survey_status == SiteSurveyStatus.COMPLETED
        assert as_utc(record.site_survey_scheduled_date) == NOW - timedelta(days=2)
        assert as_utc(record.site_survey_completed_date) == NOW - timedelta(days=2, hours=-3)
        assert record.engineering_status is None
        assert derive_label(record) == "Survey Complete"

    def test_completed_installation_makes_inspection_ready(self, db, project):
        """Scenario E: completed installation, no inspection ticket."""
        add_ticket(db, project, ticket_type="installation", ticket_status="completed", scheduled_date=NOW)

        record = TimelineReconciler(db).reconcile(project.id)

        assert record.installation_status == InstallationStatus.COMPLETED
        assert as_utc(record.installation_completed_date) == NOW
        assert record.inspection_status == InspectionStatus.READY

    def test_ready_only_from_not_ready(self, db, project):
        TimelineReconciler(db).reconcile(project.id)
        record = TimelineStore(db).get(project.id)
        record.inspection_status = InspectionStatus.FAILED
        db.commit()
        add_ticket(db, project, appointment_type="installation", status="completed", scheduled_date=NOW)

        record = TimelineReconciler(db).reconcile(project.id)

        assert record.installation_status == InstallationStatus.COMPLETED
        assert record.inspection_status == InspectionStatus.FAILED

    def test_city_inspection_tickets(self, db, project):
        add_ticket(db, project, appointment_type="installation", status="completed", scheduled_date=NOW - timedelta(days=9))
        add_ticket(
            db, project,
            ticket_type="inspection",
            problem_code="city_inspection",
            ticket_status="scheduled",
            scheduled_date=NOW + timedelta(days=3),
        )

        record = TimelineReconciler(db).reconcile(project.id)
        assert record.inspection_status == InspectionStatus.SCHEDULED
        assert as_utc(record.city_inspection_date) == NOW + timedelta(days=3)

        ticket = db.query(SchedulingTicket).filter(SchedulingTicket.problem_code == "city_inspection").one()
        ticket.ticket_status = "completed"
        ticket.closed_at = NOW + timedelta(days=3, hours=1)
        db.commit()

        record = TimelineReconciler(db).reconcile(project.id)
        assert record.inspection_status == InspectionStatus.PASSED
        assert as_utc(record.inspection_passed_date) == NOW + timedelta(days=3, hours=1)

    def test_completed_beats_scheduled(self, db, project):
        add_ticket(db, project, appointment_type="site_survey", status="scheduled", scheduled_date=NOW + timedelta(days=5))
        add_ticket(db, project, appointment_type="site_survey", status="completed", scheduled_date=NOW - timedelta(days=1))

        record = TimelineReconciler(db).reconcile(project.id)

        assert record.site_survey_status == SiteSurveyStatus.COMPLETED
        assert as_utc(record.site_survey_scheduled_date) == NOW - timedelta(days=1)

    def test_idempotent(self, db, project):
        add_ticket(db, project, appointment_type="installation", status="confirmed", scheduled_date=NOW + timedelta(days=4))
        reconciler = TimelineReconciler(db)

        first = reconciler.reconcile_with_drift(project.id)
        updated_at = first.record.updated_at
        second = reconciler.reconcile_with_drift(project.id)

        assert first.changed
        assert not second.changed
        assert second.drift == {}
        assert second.record.updated_at == updated_at
        assert second.record.installation_status == InstallationStatus.SCHEDULED
        upsert_step = [s for s in reconciler.last_trace["steps"] if s["action"] == "upsert"][0]
        assert upsert_step["status"] == "skipped"

    def test_manual_fields_untouched(self, db, project):
        TimelineReconciler(db).reconcile(project.id)
        record = TimelineStore(db).get(project.id)
        record.utility_status = ApplicationStatus.SUBMITTED
        record.utility_notes = "Sent to utility portal"
        db.commit()
        add_ticket(db, project, appointment_type="site_survey", status="confirmed", scheduled_date=NOW)

        record = TimelineReconciler(db).reconcile(project.id)

        assert record.site_survey_status == SiteSurveyStatus.SCHEDULED
        assert record.utility_status == ApplicationStatus.SUBMITTED
        assert record.utility_notes == "Sent to utility portal"

    def test_no_ticket_leaves_status_unchanged(self, db, project):
        TimelineReconciler(db).reconcile(project.id)
        record = TimelineStore(db).get(project.id)
        record.installation_status = InstallationStatus.PENDING_MATERIAL
        db.commit()

        result = TimelineReconciler(db).reconcile_with_drift(project.id)

        assert not result.changed
        assert result.record.installation_status == InstallationStatus.PENDING_MATERIAL

    def test_unknown_project(self, db):
        with pytest.raises(RecordNotFoundError) as exc_info:
            TimelineReconciler(db).reconcile(uuid4())

        assert exc_info.value.entity == "Project"

    def test_store_failure_leaves_record_untouched(self, db, project, monkeypatch):
        TimelineReconciler(db).reconcile(project.id)
        add_ticket(db, project, appointment_type="site_survey", status="completed", scheduled_date=NOW)
        reconciler = TimelineReconciler(db)

        def failing_upsert(*args, **kwargs):
            raise OperationalError("INSERT INTO project_timeline", {}, Exception("connection reset"))

        monkeypatch.setattr(reconciler.store, "upsert_ticket_fields", failing_upsert)

        with pytest.raises(StoreUnavailableError) as exc_info:
            reconciler.reconcile(project.id)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert reconciler.last_trace["result"] == "failed"
        record = TimelineStore(db).get(project.id, refresh=True)
        assert record.site_survey_status == SiteSurveyStatus.PENDING_SCHEDULE


class TestDeriveTicketFields:
    """Pure derivation, no database."""

    def test_no_tickets_derives_nothing(self):
        fields = derive_ticket_fields(ProjectTimeline(project_id=uuid4()), observe_tickets([]))

        assert fields.values == {}
        assert fields.conditional == {}

    def test_stored_completed_installation_requests_ready(self):
        record = ProjectTimeline(project_id=uuid4(), installation_status=InstallationStatus.COMPLETED)

        fields = derive_ticket_fields(record, observe_tickets([]))

        assert fields.conditional == {
            "inspection_status": (InspectionStatus.NOT_READY, InspectionStatus.READY),
        }
        assert fields.drift(record) == {
            "inspection_status": (InspectionStatus.NOT_READY, InspectionStatus.READY),
        }

    def test_engineering_not_ticket_driven(self):
        observation = observe_tickets([Ticket(appointment_type="site_survey", status="completed", scheduled_date=NOW)])

        fields = derive_ticket_fields(ProjectTimeline(project_id=uuid4()), observation)

        assert "engineering_status" not in fields.values
        assert fields.values["site_survey_status"] == SiteSurveyStatus.COMPLETED


class TestTimelineStore:

    def test_upsert_keeps_one_row_per_project(self, db, project):
        store = TimelineStore(db)

        store.upsert_ticket_fields(project.id, {"site_survey_status": SiteSurveyStatus.SCHEDULED})
        store.upsert_ticket_fields(project.id, {"site_survey_status": SiteSurveyStatus.COMPLETED})
        db.commit()

        rows = db.query(ProjectTimeline).filter(ProjectTimeline.project_id == project.id).all()
        assert len(rows) == 1
        assert rows[0].site_survey_status == SiteSurveyStatus.COMPLETED

    def test_conditional_update_respects_current_value(self, db, project):
        store = TimelineStore(db)
        store.upsert_ticket_fields(project.id, {"installation_status": InstallationStatus.COMPLETED})
        record = store.get(project.id)
        record.inspection_status = InspectionStatus.SCHEDULED
        db.commit()

        record = store.upsert_ticket_fields(
            project.id, {}, {"inspection_status": (InspectionStatus.NOT_READY, InspectionStatus.READY)}
        )

        assert record.inspection_status == InspectionStatus.SCHEDULED

    def test_upsert_rejects_manual_fields(self, db, project):
        with pytest.raises(StoreServiceError):
            TimelineStore(db).upsert_ticket_fields(project.id, {"utility_status": ApplicationStatus.APPROVED})
