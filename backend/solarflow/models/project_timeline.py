"""ProjectTimeline model and the phase status enums it stores."""
import enum

from sqlalchemy import Column, Boolean, DateTime, ForeignKey, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from solarflow.database import Base
from solarflow.models.base import BaseModel


class SiteSurveyStatus(str, enum.Enum):
    """Site survey phase."""
    PENDING_SCHEDULE = "pending_schedule"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class EngineeringStatus(str, enum.Enum):
    """Engineering (plan set) phase."""
    PENDING = "pending"
    COMPLETED = "completed"


class ApplicationStatus(str, enum.Enum):
    """Utility application and city permit phases share this shape."""
    NOT_STARTED = "not_started"
    SUBMITTED = "submitted"
    REVISION_REQUIRED = "revision_required"
    REVISION_SUBMITTED = "revision_submitted"
    APPROVED = "approved"


class InstallationStatus(str, enum.Enum):
    """Installation coordination phase."""
    PENDING_CUSTOMER = "pending_customer"
    PENDING_MATERIAL = "pending_material"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class MaterialOrderStatus(str, enum.Enum):
    """Material ordering phase."""
    NOT_ORDERED = "not_ordered"
    ORDERED = "ordered"
    DELIVERED = "delivered"


class InspectionStatus(str, enum.Enum):
    """City inspection phase."""
    NOT_READY = "not_ready"
    READY = "ready"
    SCHEDULED = "scheduled"
    PASSED = "passed"
    FAILED = "failed"
    SERVICE_REQUIRED = "service_required"
    SERVICE_COMPLETED = "service_completed"


class DropShipLocation(str, enum.Enum):
    """Where the distributor delivers material."""
    CUSTOMER_HOME = "customer_home"
    WAREHOUSE = "warehouse"


class ActivationMethod(str, enum.Enum):
    """How the system gets energized after PTO."""
    PENDING = "pending"
    REMOTE = "remote"
    TECH_DISPATCH = "tech_dispatch"


def _enum_column(enum_cls, name: str, **kwargs) -> Column:
    # Stored as VARCHAR of the enum values so both backends share one schema
    return Column(
        SQLEnum(
            enum_cls,
            name=name,
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


# Initial value of every status column; also used to synthesize a record
# before the first reconciliation writes one. Engineering and installation
# start as NULL (phase not entered yet) and are set when work begins.
INITIAL_STATUSES = {
    "site_survey_status": SiteSurveyStatus.PENDING_SCHEDULE,
    "utility_status": ApplicationStatus.NOT_STARTED,
    "permit_status": ApplicationStatus.NOT_STARTED,
    "material_order_status": MaterialOrderStatus.NOT_ORDERED,
    "inspection_status": InspectionStatus.NOT_READY,
    "activation_method": ActivationMethod.PENDING,
}

VERIFICATION_FIELDS = (
    "customer_details_verified",
    "system_pricing_verified",
    "financing_verified",
    "contract_id_verified",
    "adders_verified",
    "solar_contract_uploaded",
    "utility_bill_uploaded",
    "customer_id_uploaded",
)

INITIAL_FLAGS = {
    **{field: False for field in VERIFICATION_FIELDS},
    "approved_for_site_survey": False,
    "homeowner_contacted_for_delivery": False,
    "material_quote_received": False,
    "customer_delivery_confirmed": False,
}


class ProjectTimeline(Base, BaseModel):
    """
    Per-project lifecycle state: one row per project.

    **FIELD OWNERSHIP:**
    - Ticket-driven (written by TimelineReconciler only): site survey,
      installation and inspection statuses with their scheduled/completed
      dates
    - Manual (written by ProjectTimelineOrchestrator only): engineering,
      utility, permits, material, PTO, activation, notes, checklist
    - The two write paths touch disjoint columns, so an atomic upsert per
      project is the only synchronization needed

    Date stamps are set when their status is reached and are never
    cleared except through an explicit correction. Appointment dates are
    written only from an explicit date or a ticket.
    """

    __tablename__ = "project_timeline"

    project_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Status fields
    site_survey_status = _enum_column(SiteSurveyStatus, "site_survey_status", nullable=False)
    engineering_status = _enum_column(EngineeringStatus, "engineering_status", nullable=True)
    utility_status = _enum_column(ApplicationStatus, "utility_status", nullable=False)
    permit_status = _enum_column(ApplicationStatus, "permit_status", nullable=False)
    installation_status = _enum_column(InstallationStatus, "installation_status", nullable=True)
    material_order_status = _enum_column(MaterialOrderStatus, "material_order_status", nullable=False)
    inspection_status = _enum_column(InspectionStatus, "inspection_status", nullable=False)

    # Site survey
    site_survey_scheduled_date = Column(DateTime(timezone=True), nullable=True)
    site_survey_completed_date = Column(DateTime(timezone=True), nullable=True)

    # Engineering
    engineering_plans_received_date = Column(DateTime(timezone=True), nullable=True)

    # Utility application
    utility_application_submitted_date = Column(DateTime(timezone=True), nullable=True)
    utility_revision_date = Column(DateTime(timezone=True), nullable=True)
    utility_revision_submitted_date = Column(DateTime(timezone=True), nullable=True)
    utility_application_approved_date = Column(DateTime(timezone=True), nullable=True)
    utility_notes = Column(Text, nullable=True)

    # City permits
    city_permits_submitted_date = Column(DateTime(timezone=True), nullable=True)
    permit_revision_date = Column(DateTime(timezone=True), nullable=True)
    permit_revision_submitted_date = Column(DateTime(timezone=True), nullable=True)
    city_permits_approved_date = Column(DateTime(timezone=True), nullable=True)
    permit_notes = Column(Text, nullable=True)

    # Installation
    installation_scheduled_date = Column(DateTime(timezone=True), nullable=True)
    installation_completed_date = Column(DateTime(timezone=True), nullable=True)
    installation_notes = Column(Text, nullable=True)

    # Material
    material_ordered_date = Column(DateTime(timezone=True), nullable=True)
    material_delivered_date = Column(DateTime(timezone=True), nullable=True)
    material_drop_ship_location = _enum_column(DropShipLocation, "drop_ship_location", nullable=True)
    homeowner_contacted_for_delivery = Column(Boolean, default=False, nullable=False)
    material_quote_received = Column(Boolean, default=False, nullable=False)
    customer_delivery_confirmed = Column(Boolean, default=False, nullable=False)

    # City inspection
    city_inspection_date = Column(DateTime(timezone=True), nullable=True)
    inspection_passed_date = Column(DateTime(timezone=True), nullable=True)
    inspection_failed_date = Column(DateTime(timezone=True), nullable=True)
    service_completed_date = Column(DateTime(timezone=True), nullable=True)
    city_inspection_notes = Column(Text, nullable=True)

    # Permission to operate
    pto_submitted_date = Column(DateTime(timezone=True), nullable=True)
    pto_approved_date = Column(DateTime(timezone=True), nullable=True)

    # Activation
    activation_method = _enum_column(ActivationMethod, "activation_method", nullable=False)
    activation_completed_date = Column(DateTime(timezone=True), nullable=True)
    system_activated_date = Column(DateTime(timezone=True), nullable=True)

    # New-project verification checklist
    customer_details_verified = Column(Boolean, default=False, nullable=False)
    system_pricing_verified = Column(Boolean, default=False, nullable=False)
    financing_verified = Column(Boolean, default=False, nullable=False)
    contract_id_verified = Column(Boolean, default=False, nullable=False)
    adders_verified = Column(Boolean, default=False, nullable=False)
    solar_contract_uploaded = Column(Boolean, default=False, nullable=False)
    utility_bill_uploaded = Column(Boolean, default=False, nullable=False)
    customer_id_uploaded = Column(Boolean, default=False, nullable=False)
    approved_for_site_survey = Column(Boolean, default=False, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="timeline")

    def __init__(self, **kwargs):
        # Column defaults only fire on INSERT; apply them up front so a
        # transient record reads the same as a freshly stored one.
        for field, value in {**INITIAL_STATUSES, **INITIAL_FLAGS}.items():
            kwargs.setdefault(field, value)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<ProjectTimeline(project_id='{self.project_id}')>"
