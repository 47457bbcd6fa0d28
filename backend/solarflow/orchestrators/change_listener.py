"""
Change listener.

Turns row-change notifications from the scheduling and project_timeline
tables into reconciliation runs. Each notification gets its own session.
A project that no longer exists and a store outage are logged and
reported back as None; any other error propagates to the caller.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from solarflow.orchestrators.reconciler import ReconciliationResult, TimelineReconciler
from solarflow.utils.invariants import RecordNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)


WATCHED_TABLES = frozenset({"scheduling", "project_timeline"})


class ChangeEvent(str, Enum):
    """Row change kinds delivered by the database."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeNotification:
    """One row change in a watched table."""
    table: str
    event: ChangeEvent
    project_id: Optional[UUID]

    @classmethod
    def from_payload(cls, payload: dict) -> "ChangeNotification":
        """
        Build from a change payload (``{"table", "type", "record", "old_record"}``).

        The project id comes from the new row, or from the old row for deletes.
        """
        row = payload.get("record") or payload.get("old_record") or {}
        project_id = row.get("project_id")
        if project_id is not None and not isinstance(project_id, UUID):
            project_id = UUID(str(project_id))
        return cls(
            table=payload["table"],
            event=ChangeEvent(payload["type"]),
            project_id=project_id,
        )


class TimelineChangeListener:
    """
    Reconciles a project whenever one of its tickets or its timeline changes.

    Reconciliation only writes when it finds drift, so the timeline write
    it triggers comes back as one more notification that finds nothing to
    do.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        """
        Initialize change listener.

        Args:
            session_factory: Returns a new Session (e.g. SessionLocal)
        """
        self.session_factory = session_factory

    def handle(self, notification: ChangeNotification) -> Optional[ReconciliationResult]:
        """
        Process one notification.

        Returns:
            The reconciliation result, or None when the notification was
            ignored, the project is gone or the store is unavailable

        Raises:
            StoreServiceError: If the backend cannot run the upsert
        """
        if notification.table not in WATCHED_TABLES:
            logger.debug("[listener] Ignoring change on unwatched table %s", notification.table)
            return None
        if notification.project_id is None:
            logger.warning(
                "[listener] %s on %s without project_id, skipped",
                notification.event.value, notification.table,
            )
            return None

        db = self.session_factory()
        try:
            result = TimelineReconciler(db, actor="listener").reconcile_with_drift(notification.project_id)
        except RecordNotFoundError:
            logger.info(
                "[listener] Project %s no longer exists, nothing to reconcile",
                notification.project_id,
            )
            return None
        except StoreUnavailableError as e:
            logger.error("[listener] Reconciliation failed for project %s: %s", notification.project_id, e)
            return None
        finally:
            db.close()

        logger.debug(
            "[listener] %s on %s for project %s: %s",
            notification.event.value,
            notification.table,
            notification.project_id,
            "changed" if result.changed else "in sync",
        )
        return result
