"""ProjectActivityLog model."""
import enum

from sqlalchemy import Column, String, Text, ForeignKey, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from solarflow.database import Base
from solarflow.models.base import BaseModel


class ActivityType(str, enum.Enum):
    """Kind of change recorded in the activity log."""
    STATUS_CHANGE = "status_change"
    UPDATE = "update"


class ProjectActivityLog(Base, BaseModel):
    """
    Append-only audit trail of manual timeline changes.

    **IMMUTABILITY RULES:**
    - One row per changed field per manual operation
    - Rows are never updated or deleted (except by project cascade)
    - Reconciliation does not write here; ticket-driven changes are
      already recorded by the scheduling system

    Attributes:
        project_id: Project the change applies to
        actor: Who made the change (free-form user reference)
        action_type: status_change or update
        field_name: Timeline column that changed
        old_value: Previous value rendered as text
        new_value: New value rendered as text
        description: Human-readable summary
    """

    __tablename__ = "project_activity_log"

    project_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor = Column(String(255), nullable=True)
    action_type = Column(
        SQLEnum(
            ActivityType,
            name="activity_type",
            native_enum=False,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    field_name = Column(String(100), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    description = Column(Text, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="activity")
