"""Common columns for all persisted entities."""
import uuid

from sqlalchemy import Column, DateTime, Uuid

from solarflow.utils.timeutil import utcnow


class BaseModel:
    """
    Mixin providing a UUID primary key and audit timestamps.

    Attributes:
        id: Primary key
        created_at: Row creation time (UTC)
        updated_at: Last ORM update time (UTC)
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<{self.__class__.__name__}(id='{self.id}')>"
