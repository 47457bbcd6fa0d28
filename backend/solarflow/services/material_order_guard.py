"""Material order guard: lead-time rule for ordering installation material."""
from datetime import datetime, timedelta
from typing import Optional

from solarflow.models.project_timeline import InstallationStatus
from solarflow.services.phase_gate import Phase
from solarflow.utils.invariants import LeadTimeTooShortError, PhaseNotReachedError
from solarflow.utils.timeutil import as_utc

DEFAULT_LEAD_TIME_HOURS = 48


def lead_time(record, now: datetime) -> Optional[timedelta]:
    """Time between now and the scheduled installation, or None if unset."""
    scheduled = as_utc(record.installation_scheduled_date)
    if scheduled is None:
        return None
    return scheduled - as_utc(now)


def check_material_order(record, now: datetime, required_hours: float = DEFAULT_LEAD_TIME_HOURS) -> None:
    """
    Enforce the material ordering rule.

    Material may be ordered only once installation is scheduled, and only
    when the installation is at least ``required_hours`` away. An unset
    installation date skips the lead-time check.

    Args:
        record: Timeline record
        now: Current time
        required_hours: Minimum lead time in hours

    Raises:
        PhaseNotReachedError: If installation is not scheduled
        LeadTimeTooShortError: If the installation is too close
    """
    if record.installation_status != InstallationStatus.SCHEDULED:
        raise PhaseNotReachedError(Phase.MATERIAL_ORDER, "installation scheduled")

    remaining = lead_time(record, now)
    if remaining is None:
        return
    if remaining < timedelta(hours=required_hours):
        raise LeadTimeTooShortError(
            actual_hours=remaining.total_seconds() / 3600,
            required_hours=required_hours,
        )


def can_order_material(record, now: datetime, required_hours: float = DEFAULT_LEAD_TIME_HOURS) -> bool:
    """Boolean form of check_material_order for disabling UI controls."""
    try:
        check_material_order(record, now, required_hours)
    except (PhaseNotReachedError, LeadTimeTooShortError):
        return False
    return True
