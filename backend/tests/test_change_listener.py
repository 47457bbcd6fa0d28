"""
Test change notification handling.

Validates:
- Ticket changes trigger reconciliation
- The timeline write caused by reconciliation settles on the next notification
- Unwatched tables and missing project ids are ignored
- Unknown projects and store outages are logged, not raised
- Other failures propagate
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
from solarflow.models.project_timeline import InstallationStatus, SiteSurveyStatus
from solarflow.models.scheduling_ticket import SchedulingTicket
from solarflow.orchestrators import change_listener
from solarflow.orchestrators.change_listener import (
    ChangeEvent,
    ChangeNotification,
    TimelineChangeListener,
)
from solarflow.services.timeline_store import StoreServiceError, TimelineStore
from solarflow.utils.invariants import StoreUnavailableError


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2025, 9, 2, 13, 0, tzinfo=timezone.utc)


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
    project = Project(customer_name="Priya Raman")
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def listener():
    return TimelineChangeListener(TestSessionLocal)


def test_ticket_insert_reconciles(db, project, listener):
    db.add(SchedulingTicket(
        project_id=project.id,
        appointment_type="installation",
        status="confirmed",
        scheduled_date=NOW + timedelta(days=6),
    ))
    db.commit()

    result = listener.handle(ChangeNotification("scheduling", ChangeEvent.INSERT, project.id))

    assert result.changed
    record = TimelineStore(db).get(project.id, refresh=True)
    assert record.installation_status == InstallationStatus.SCHEDULED
    assert record.site_survey_status == SiteSurveyStatus.PENDING_SCHEDULE


def test_timeline_update_settles(db, project, listener):
    first = listener.handle(ChangeNotification("project_timeline", ChangeEvent.INSERT, project.id))
    second = listener.handle(ChangeNotification("project_timeline", ChangeEvent.UPDATE, project.id))

    assert first.created
    assert not second.changed


def test_unwatched_table_ignored(project, listener):
    assert listener.handle(ChangeNotification("projects", ChangeEvent.UPDATE, project.id)) is None


def test_missing_project_id_ignored(db, listener):
    assert listener.handle(ChangeNotification("scheduling", ChangeEvent.DELETE, None)) is None


def test_deleted_project_logged_not_raised(db, listener, caplog):
    with caplog.at_level("INFO", logger="solarflow.orchestrators.change_listener"):
        result = listener.handle(ChangeNotification("scheduling", ChangeEvent.DELETE, uuid4()))

    assert result is None
    assert "no longer exists" in caplog.text


def test_store_outage_logged_not_raised(db, project, listener, monkeypatch, caplog):
    class FailingReconciler:
        def __init__(self, db, actor=None):
            pass

        def reconcile_with_drift(self, project_id):
            raise StoreUnavailableError("reconcile", project_id) from OperationalError(
                "SELECT", {}, Exception("timeout")
            )

    monkeypatch.setattr(change_listener, "TimelineReconciler", FailingReconciler)

    with caplog.at_level("ERROR", logger="solarflow.orchestrators.change_listener"):
        result = listener.handle(ChangeNotification("scheduling", ChangeEvent.UPDATE, project.id))

    assert result is None
    assert "Reconciliation failed" in caplog.text


def test_unsupported_backend_propagates(db, project, listener, monkeypatch):
    class UnsupportedReconciler:
        def __init__(self, db, actor=None):
            pass

        def reconcile_with_drift(self, project_id):
            raise StoreServiceError("Atomic upsert not supported on dialect 'mysql'")

    monkeypatch.setattr(change_listener, "TimelineReconciler", UnsupportedReconciler)

    with pytest.raises(StoreServiceError):
        listener.handle(ChangeNotification("scheduling", ChangeEvent.UPDATE, project.id))


def test_notification_from_payload(project):
    notification = ChangeNotification.from_payload({
        "table": "scheduling",
        "type": "DELETE",
        "record": None,
        "old_record": {"id": str(uuid4()), "project_id": str(project.id)},
    })

    assert notification.event == ChangeEvent.DELETE
    assert notification.project_id == project.id
