"""Activity log service: records manual timeline changes for the audit trail."""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from solarflow.models.activity_log import ActivityType, ProjectActivityLog

logger = logging.getLogger(__name__)


def format_value(value: Any) -> Optional[str]:
    """Render a field value as audit text."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def _label(field_name: str) -> str:
    return field_name.replace("_", " ").capitalize()


class ActivityLogService:
    """
    Service for the project activity log.

    Entries are added to the caller's session; the caller commits them
    together with the change they describe.
    """

    def __init__(self, db: Session):
        """
        Initialize activity log service.

        Args:
            db: Database session
        """
        self.db = db

    def record_change(
        self,
        project_id: UUID,
        field_name: str,
        old_value: Any,
        new_value: Any,
        actor: Optional[str] = None,
        action_type: ActivityType = ActivityType.UPDATE,
        description: Optional[str] = None,
    ) -> Optional[ProjectActivityLog]:
        """
        Record one field change.

        Args:
            project_id: Project ID
            field_name: Timeline column that changed
            old_value: Value before the change
            new_value: Value after the change
            actor: Who made the change
            action_type: status_change for status columns, else update
            description: Summary; generated from the values when omitted

        Returns:
            The new entry, or None when old and new render the same
        """
        old_text = format_value(old_value)
        new_text = format_value(new_value)
        if old_text == new_text:
            return None

        if description is None:
            description = f"{_label(field_name)} changed from {old_text or 'unset'} to {new_text or 'unset'}"

        entry = ProjectActivityLog(
            project_id=project_id,
            actor=actor,
            action_type=action_type,
            field_name=field_name,
            old_value=old_text,
            new_value=new_text,
            description=description,
        )
        self.db.add(entry)
        logger.debug("[activity] %s: %s", project_id, description)
        return entry

    def list_for_project(self, project_id: UUID) -> List[ProjectActivityLog]:
        """Entries for a project, newest first."""
        return self.db.query(ProjectActivityLog).filter(
            ProjectActivityLog.project_id == project_id
        ).order_by(
            ProjectActivityLog.created_at.desc(),
            ProjectActivityLog.id.desc(),
        ).all()
