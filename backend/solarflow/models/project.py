"""Project model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from solarflow.database import Base
from solarflow.models.base import BaseModel


class Project(Base, BaseModel):
    """
    A customer's solar-installation project.

    The project owns its timeline, its scheduling tickets and its activity
    log; deleting the project removes all three.

    Attributes:
        customer_name: Customer's full name
        signature_date: When the contract was signed
        is_active: Whether the project appears in work queues
    """

    __tablename__ = "projects"

    customer_name = Column(String, nullable=False)
    signature_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    timeline = relationship(
        "ProjectTimeline",
        back_populates="project",
        uselist=False,
        cascade="all, delete-orphan",
    )
    tickets = relationship(
        "SchedulingTicket",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    activity = relationship(
        "ProjectActivityLog",
        back_populates="project",
        cascade="all, delete-orphan",
    )
