"""
Status label deriver.

Maps a timeline record to the single "current phase" label shown on
dashboards, and to the work queue the project sits in. Both are ordered
predicate chains evaluated from most to least advanced; the first match
wins, so rule order is part of the contract.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Tuple

from solarflow.models.project_timeline import (
    ActivationMethod,
    ApplicationStatus,
    EngineeringStatus,
    InspectionStatus,
    InstallationStatus,
    MaterialOrderStatus,
    SiteSurveyStatus,
)

DEFAULT_LABEL = "New Lead"


@dataclass(frozen=True)
class LabelRule:
    """One predicate in the label chain."""
    label: str
    matches: Callable[[object], bool]


LABEL_RULES: Tuple[LabelRule, ...] = (
    LabelRule("System Active", lambda r: r.system_activated_date is not None),
    LabelRule("System Activation", lambda r: r.pto_approved_date is not None),
    LabelRule("Awaiting PTO", lambda r: r.pto_submitted_date is not None),
    LabelRule("Inspection Passed - Pending PTO", lambda r: r.inspection_status == InspectionStatus.PASSED),
    LabelRule("Ready for Re-Inspection", lambda r: r.inspection_status == InspectionStatus.SERVICE_COMPLETED),
    LabelRule(
        "Service Required",
        lambda r: r.inspection_status in (InspectionStatus.SERVICE_REQUIRED, InspectionStatus.FAILED),
    ),
    LabelRule("Inspection Scheduled", lambda r: r.inspection_status == InspectionStatus.SCHEDULED),
    LabelRule(
        "Installation Completed - Ready for Inspection",
        lambda r: (
            r.inspection_status == InspectionStatus.READY
            or r.installation_status == InstallationStatus.COMPLETED
        ),
    ),
    LabelRule("Installation Scheduled", lambda r: r.installation_status == InstallationStatus.SCHEDULED),
    LabelRule("Material Ordered", lambda r: r.material_order_status == MaterialOrderStatus.ORDERED),
    LabelRule("Pending Material", lambda r: r.installation_status == InstallationStatus.PENDING_MATERIAL),
    LabelRule("Permits Approved", lambda r: r.permit_status == ApplicationStatus.APPROVED),
    LabelRule("Permit Revision Submitted", lambda r: r.permit_status == ApplicationStatus.REVISION_SUBMITTED),
    LabelRule("Permit Revision Required", lambda r: r.permit_status == ApplicationStatus.REVISION_REQUIRED),
    LabelRule("Permit Review", lambda r: r.permit_status == ApplicationStatus.SUBMITTED),
    LabelRule("Utility Approved", lambda r: r.utility_status == ApplicationStatus.APPROVED),
    LabelRule("Utility Revision Submitted", lambda r: r.utility_status == ApplicationStatus.REVISION_SUBMITTED),
    LabelRule("Utility Revision Required", lambda r: r.utility_status == ApplicationStatus.REVISION_REQUIRED),
    LabelRule("Utility Review", lambda r: r.utility_status == ApplicationStatus.SUBMITTED),
    LabelRule("Engineering Complete", lambda r: r.engineering_status == EngineeringStatus.COMPLETED),
    LabelRule("Pending Engineering", lambda r: r.engineering_status == EngineeringStatus.PENDING),
    LabelRule(
        "Coordinating Installation",
        lambda r: r.installation_status == InstallationStatus.PENDING_CUSTOMER,
    ),
    LabelRule("Survey Complete", lambda r: r.site_survey_status == SiteSurveyStatus.COMPLETED),
    LabelRule("Survey Scheduled", lambda r: r.site_survey_status == SiteSurveyStatus.SCHEDULED),
)


def derive_label(record) -> str:
    """
    Derive the display label for a timeline record.

    Args:
        record: Timeline record, or None when the project has none yet

    Returns:
        Label of the first matching rule, else "New Lead"
    """
    if record is None:
        return DEFAULT_LABEL
    for rule in LABEL_RULES:
        if rule.matches(record):
            return rule.label
    return DEFAULT_LABEL


class QueueBucket(str, Enum):
    """Dashboard work queues, in lifecycle order."""
    NEW_PROJECT = "new_project"
    SITE_SURVEY = "site_survey"
    ENGINEERING = "engineering"
    UTILITY_PERMITS = "utility_permits"
    COORDINATE_INSTALLATION = "coordinate_installation"
    READY_TO_ORDER_MATERIAL = "ready_to_order_material"
    INSTALLATION_SCHEDULED = "installation_scheduled"
    READY_FOR_INSPECTION = "ready_for_inspection"
    PENDING_PTO = "pending_pto"
    PENDING_ACTIVATION = "pending_activation"
    SYSTEM_ACTIVATED = "system_activated"


QUEUE_TITLES: Dict[QueueBucket, str] = {
    QueueBucket.NEW_PROJECT: "New Project Verification Queue",
    QueueBucket.SITE_SURVEY: "Site Survey Queue",
    QueueBucket.ENGINEERING: "Engineering Queue",
    QueueBucket.UTILITY_PERMITS: "Utility & Permits Application Queue",
    QueueBucket.COORDINATE_INSTALLATION: "Coordinate Installation",
    QueueBucket.READY_TO_ORDER_MATERIAL: "Ready to Order Material",
    QueueBucket.INSTALLATION_SCHEDULED: "Installation Scheduled",
    QueueBucket.READY_FOR_INSPECTION: "Ready for City Inspection",
    QueueBucket.PENDING_PTO: "Pending PTO",
    QueueBucket.PENDING_ACTIVATION: "Pending Activation",
    QueueBucket.SYSTEM_ACTIVATED: "System Activated",
}


QUEUE_RULES: Tuple[Tuple[QueueBucket, Callable[[object], bool]], ...] = (
    (
        QueueBucket.SYSTEM_ACTIVATED,
        lambda r: r.activation_completed_date is not None or r.system_activated_date is not None,
    ),
    (
        QueueBucket.PENDING_ACTIVATION,
        lambda r: r.pto_approved_date is not None and r.activation_method == ActivationMethod.PENDING,
    ),
    (
        QueueBucket.PENDING_PTO,
        lambda r: r.pto_submitted_date is not None or r.inspection_status == InspectionStatus.PASSED,
    ),
    (
        QueueBucket.READY_FOR_INSPECTION,
        lambda r: (
            r.inspection_status == InspectionStatus.READY
            or r.installation_status == InstallationStatus.COMPLETED
        ),
    ),
    (QueueBucket.INSTALLATION_SCHEDULED, lambda r: r.material_ordered_date is not None),
    (QueueBucket.READY_TO_ORDER_MATERIAL, lambda r: r.installation_scheduled_date is not None),
    (
        QueueBucket.COORDINATE_INSTALLATION,
        lambda r: (
            r.permit_status == ApplicationStatus.APPROVED
            and r.utility_status == ApplicationStatus.APPROVED
        ),
    ),
    (QueueBucket.UTILITY_PERMITS, lambda r: r.engineering_status == EngineeringStatus.COMPLETED),
    (QueueBucket.ENGINEERING, lambda r: r.site_survey_status == SiteSurveyStatus.COMPLETED),
)


def derive_queue_bucket(record) -> QueueBucket:
    """
    Derive the work queue for a timeline record.

    Projects not yet approved for site survey always sit in the
    verification queue, whatever their other fields say.
    """
    if record is None or not record.approved_for_site_survey:
        return QueueBucket.NEW_PROJECT
    for bucket, matches in QUEUE_RULES:
        if matches(record):
            return bucket
    return QueueBucket.SITE_SURVEY


def classify_all(
    records: Mapping[Hashable, Optional[object]],
) -> Dict[QueueBucket, List[Hashable]]:
    """
    Bucket every project by its current record.

    Args:
        records: project_id -> record (None when the project has no record)

    Returns:
        Every QueueBucket mapped to its project ids, in input order
    """
    buckets: Dict[QueueBucket, List[Hashable]] = {bucket: [] for bucket in QueueBucket}
    for project_id, record in records.items():
        buckets[derive_queue_bucket(record)].append(project_id)
    return buckets

