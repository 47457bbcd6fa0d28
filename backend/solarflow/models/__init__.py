"""
Models Package

Imports all SQLAlchemy models for application use.
"""

from solarflow.models.base import BaseModel
from solarflow.models.project import Project
from solarflow.models.project_timeline import (
    ProjectTimeline,
    SiteSurveyStatus,
    EngineeringStatus,
    ApplicationStatus,
    InstallationStatus,
    MaterialOrderStatus,
    InspectionStatus,
    DropShipLocation,
    ActivationMethod,
)
from solarflow.models.scheduling_ticket import SchedulingTicket
from solarflow.models.activity_log import ProjectActivityLog, ActivityType

__all__ = [
    'BaseModel',
    'Project',
    'ProjectTimeline',
    'SiteSurveyStatus',
    'EngineeringStatus',
    'ApplicationStatus',
    'InstallationStatus',
    'MaterialOrderStatus',
    'InspectionStatus',
    'DropShipLocation',
    'ActivationMethod',
    'SchedulingTicket',
    'ProjectActivityLog',
    'ActivityType',
]
