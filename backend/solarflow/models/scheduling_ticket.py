"""SchedulingTicket model."""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship

from solarflow.database import Base
from solarflow.models.base import BaseModel


class SchedulingTicket(Base, BaseModel):
    """
    Field-service appointment owned by the scheduling system.

    **READ-ONLY CONTRACT:**
    - The timeline core never writes to this table
    - Rows are classified by TicketObserver and drive the survey,
      installation and inspection phases

    Two generations of scheduling screens wrote these rows, so both the
    appointment fields (``appointment_type``/``status``) and the ticket
    fields (``ticket_type``/``ticket_status``) are populated depending on
    which screen created the ticket.

    Attributes:
        project_id: Owning project
        appointment_type: site_survey, installation or inspection
        ticket_type: site_survey, installation, inspection or service
        status: confirmed, scheduled or completed
        ticket_status: scheduled or completed
        problem_code: Distinguishes site_survey and city_inspection visits
        scheduled_date: Appointment time
        closed_at: When the field tech closed the ticket
        assigned_technicians: Technician names
    """

    __tablename__ = "scheduling"

    project_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    appointment_type = Column(String(50), nullable=True)
    ticket_type = Column(String(50), nullable=True)
    status = Column(String(50), nullable=True)
    ticket_status = Column(String(50), nullable=True)
    problem_code = Column(String(100), nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True, index=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    assigned_technicians = Column(JSON, nullable=False, default=list)

    # Relationships
    project = relationship("Project", back_populates="tickets")
