"""Ticket observer: classifies scheduling tickets by phase and completion."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from solarflow.utils.timeutil import as_utc


class TrackedPhase(str, Enum):
    """Phases whose status follows scheduling tickets."""
    SITE_SURVEY = "site_survey"
    INSTALLATION = "installation"
    CITY_INSPECTION = "city_inspection"


COMPLETED_STATUSES = {"completed"}
SCHEDULED_STATUSES = {"confirmed", "scheduled"}


@dataclass(frozen=True)
class Ticket:
    """Immutable view of a scheduling ticket."""
    id: Optional[UUID] = None
    appointment_type: Optional[str] = None
    ticket_type: Optional[str] = None
    status: Optional[str] = None
    ticket_status: Optional[str] = None
    problem_code: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    assigned_technicians: Tuple[str, ...] = ()

    @classmethod
    def from_row(cls, row) -> "Ticket":
        """Build a Ticket from a SchedulingTicket row."""
        return cls(
            id=row.id,
            appointment_type=row.appointment_type,
            ticket_type=row.ticket_type,
            status=row.status,
            ticket_status=row.ticket_status,
            problem_code=row.problem_code,
            scheduled_date=as_utc(row.scheduled_date),
            closed_at=as_utc(row.closed_at),
            assigned_technicians=tuple(row.assigned_technicians or ()),
        )

    @property
    def is_completed(self) -> bool:
        return (
            self.status in COMPLETED_STATUSES
            or self.ticket_status in COMPLETED_STATUSES
            or self.closed_at is not None
        )

    @property
    def is_scheduled(self) -> bool:
        return self.status in SCHEDULED_STATUSES or self.ticket_status in SCHEDULED_STATUSES

    @property
    def completed_at(self) -> Optional[datetime]:
        """When the visit finished: close time, else the appointment time."""
        return self.closed_at or self.scheduled_date


@dataclass(frozen=True)
class PhaseTickets:
    """The winning scheduled and completed tickets for one phase."""
    scheduled: Optional[Ticket] = None
    completed: Optional[Ticket] = None

    @property
    def has_ticket(self) -> bool:
        return self.scheduled is not None or self.completed is not None

    @property
    def scheduled_date(self) -> Optional[datetime]:
        """Appointment time of the scheduled ticket, else the completed one."""
        ticket = self.scheduled or self.completed
        return ticket.scheduled_date if ticket else None

    @property
    def completed_date(self) -> Optional[datetime]:
        return self.completed.completed_at if self.completed else None


@dataclass(frozen=True)
class TicketObservation:
    """Per-phase classification of a project's tickets."""
    phases: Dict[TrackedPhase, PhaseTickets] = field(default_factory=dict)

    def for_phase(self, phase: TrackedPhase) -> PhaseTickets:
        return self.phases.get(phase, PhaseTickets())

    @property
    def site_survey(self) -> PhaseTickets:
        return self.for_phase(TrackedPhase.SITE_SURVEY)

    @property
    def installation(self) -> PhaseTickets:
        return self.for_phase(TrackedPhase.INSTALLATION)

    @property
    def city_inspection(self) -> PhaseTickets:
        return self.for_phase(TrackedPhase.CITY_INSPECTION)


def is_site_survey_ticket(ticket: Ticket) -> bool:
    # Older screens booked surveys as service tickets or as inspections
    # coded site_survey
    return (
        ticket.appointment_type == "site_survey"
        or ticket.ticket_type == "service"
        or (ticket.ticket_type == "inspection" and ticket.problem_code == "site_survey")
    )


def is_installation_ticket(ticket: Ticket) -> bool:
    return ticket.appointment_type == "installation" or ticket.ticket_type == "installation"


def is_city_inspection_ticket(ticket: Ticket) -> bool:
    return (
        (ticket.appointment_type == "inspection" or ticket.ticket_type == "inspection")
        and ticket.problem_code == "city_inspection"
    )


PHASE_MATCHERS: Dict[TrackedPhase, Callable[[Ticket], bool]] = {
    TrackedPhase.SITE_SURVEY: is_site_survey_ticket,
    TrackedPhase.INSTALLATION: is_installation_ticket,
    TrackedPhase.CITY_INSPECTION: is_city_inspection_ticket,
}


class TicketObserver:
    """
    Rule-based classifier for scheduling tickets.

    Rules:
    - A ticket is completed for a phase when its type matches and its
      status is completed or it has been closed
    - A ticket is scheduled for a phase when its type matches, its status
      is confirmed/scheduled, and the phase has no completed ticket
    - First match wins; callers supply tickets in a stable order
      (TicketFeed sorts by scheduled date, newest first)

    Pure: no database access, no clock, no side effects.
    """

    def observe(self, tickets: Iterable[Ticket]) -> TicketObservation:
        """
        Classify tickets for every tracked phase.

        Args:
            tickets: The project's tickets, in feed order

        Returns:
            TicketObservation with one PhaseTickets per tracked phase
        """
        ticket_list: List[Ticket] = list(tickets)
        return TicketObservation(
            phases={
                phase: self._classify(ticket_list, matcher)
                for phase, matcher in PHASE_MATCHERS.items()
            }
        )

    @staticmethod
    def _classify(tickets: List[Ticket], matcher: Callable[[Ticket], bool]) -> PhaseTickets:
        matching = [ticket for ticket in tickets if matcher(ticket)]
        completed = next((t for t in matching if t.is_completed), None)
        scheduled = None
        if completed is None:
            scheduled = next((t for t in matching if t.is_scheduled), None)
        return PhaseTickets(scheduled=scheduled, completed=completed)


def observe_tickets(tickets: Iterable[Ticket]) -> TicketObservation:
    """Module-level shortcut for TicketObserver().observe()."""
    return TicketObserver().observe(tickets)
