"""Timeline store and ticket feed: the persistence edge of the timeline core."""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import case, literal
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from solarflow.models.project import Project
from solarflow.models.project_timeline import INITIAL_FLAGS, INITIAL_STATUSES, ProjectTimeline
from solarflow.models.scheduling_ticket import SchedulingTicket
from solarflow.services.ticket_observer import Ticket
from solarflow.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


# Columns reconciliation may write. Everything else belongs to manual
# operations and is never part of the reconciliation upsert.
TICKET_DRIVEN_FIELDS = (
    "site_survey_status",
    "site_survey_scheduled_date",
    "site_survey_completed_date",
    "installation_status",
    "installation_scheduled_date",
    "installation_completed_date",
    "inspection_status",
    "city_inspection_date",
    "inspection_passed_date",
)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class StoreServiceError(Exception):
    """Raised when the store is asked for something the backend cannot do."""
    pass


class TimelineStore:
    """
    Persistence for ProjectTimeline rows.

    Capabilities:
    - Look up a project and its timeline
    - Atomically upsert ticket-driven fields keyed by project_id

    Rules:
    - The upsert is one INSERT ... ON CONFLICT (project_id) DO UPDATE
      statement, never a read followed by a write
    - The upsert only SETs the fields it is given
    - Transaction control (commit/rollback) stays with the caller
    """

    def __init__(self, db: Session):
        """
        Initialize timeline store.

        Args:
            db: Database session
        """
        self.db = db

    def project_exists(self, project_id: UUID) -> bool:
        return self.db.query(Project.id).filter(Project.id == project_id).first() is not None

    def get(self, project_id: UUID, refresh: bool = False) -> Optional[ProjectTimeline]:
        """
        Load a project's timeline.

        Args:
            project_id: Project ID
            refresh: Overwrite any identity-map copy with the stored row

        Returns:
            The record, or None if the project has none yet
        """
        query = self.db.query(ProjectTimeline)
        if refresh:
            query = query.populate_existing()
        return query.filter(ProjectTimeline.project_id == project_id).first()

    def get_many(self, project_ids: List[UUID]) -> Dict[UUID, ProjectTimeline]:
        """Load timelines for several projects in one query."""
        if not project_ids:
            return {}
        rows = self.db.query(ProjectTimeline).filter(
            ProjectTimeline.project_id.in_(project_ids)
        ).all()
        return {row.project_id: row for row in rows}

    def active_project_ids(self) -> List[UUID]:
        """Active projects, newest first (dashboard order)."""
        rows = self.db.query(Project.id).filter(
            Project.is_active.is_(True)
        ).order_by(Project.created_at.desc(), Project.id).all()
        return [row.id for row in rows]

    def upsert_ticket_fields(
        self,
        project_id: UUID,
        values: Dict[str, Any],
        conditional: Optional[Dict[str, Tuple[Any, Any]]] = None,
    ) -> ProjectTimeline:
        """
        Insert the timeline or update its ticket-driven fields, atomically.

        Args:
            project_id: Project ID
            values: Ticket-driven fields to write unconditionally
            conditional: field -> (expected, new). The field becomes ``new``
                only if it currently holds ``expected``; evaluated inside the
                UPDATE so concurrent writers cannot interleave

        Returns:
            The stored record, refreshed from the database

        Raises:
            StoreServiceError: If the backend has no ON CONFLICT support
        """
        conditional = conditional or {}
        unknown = (set(values) | set(conditional)) - set(TICKET_DRIVEN_FIELDS)
        if unknown:
            raise StoreServiceError(f"Not ticket-driven fields: {sorted(unknown)}")

        dialect = self.db.get_bind().dialect.name
        insert_factory = _UPSERT_DIALECTS.get(dialect)
        if insert_factory is None:
            raise StoreServiceError(f"Atomic upsert not supported on dialect '{dialect}'")

        table = ProjectTimeline.__table__
        now = utcnow()

        insert_values = {
            **INITIAL_STATUSES,
            **INITIAL_FLAGS,
            **values,
            **{field: new for field, (_expected, new) in conditional.items()},
            "project_id": project_id,
            "created_at": now,
            "updated_at": now,
        }
        # ON CONFLICT SET skips Column.default/onupdate; supply the id and
        # timestamps explicitly.
        insert_values["id"] = uuid4()

        update_values: Dict[str, Any] = dict(values)
        for field, (expected, new) in conditional.items():
            column = table.c[field]
            update_values[field] = case(
                (column == literal(expected, column.type), literal(new, column.type)),
                else_=column,
            )
        update_values["updated_at"] = now

        stmt = insert_factory(table).values(**insert_values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.project_id],
            set_=update_values,
        )
        self.db.execute(stmt)
        logger.debug(
            "[store] Upserted ticket fields for project %s: %s",
            project_id,
            sorted(update_values),
        )
        return self.get(project_id, refresh=True)


class TicketFeed:
    """
    Read-only access to the scheduling table.

    Tickets come back newest appointment first (unscheduled last), then
    by id, so first-match classification is deterministic.
    """

    def __init__(self, db: Session):
        self.db = db

    def tickets_for_project(self, project_id: UUID) -> List[Ticket]:
        """All tickets for a project as immutable Ticket views."""
        rows = self.db.query(SchedulingTicket).filter(
            SchedulingTicket.project_id == project_id
        ).order_by(
            SchedulingTicket.scheduled_date.desc().nulls_last(),
            SchedulingTicket.id,
        ).all()
        return [Ticket.from_row(row) for row in rows]
