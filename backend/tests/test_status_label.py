"""
Test status labels and queue buckets.

Validates:
- Rule order (most advanced phase wins)
- Default and missing-record labels
- Queue buckets, including the approval requirement
- classify_all keeps every bucket and the input order
"""
import pytest
from datetime import datetime, timezone
from uuid import uuid4

from solarflow.models.project_timeline import (
    ActivationMethod,
    ApplicationStatus,
    EngineeringStatus,
    InspectionStatus,
    InstallationStatus,
    MaterialOrderStatus,
    ProjectTimeline,
    SiteSurveyStatus,
)
from solarflow.services.status_label import (
    DEFAULT_LABEL,
    LABEL_RULES,
    QUEUE_TITLES,
    QueueBucket,
    classify_all,
    derive_label,
    derive_queue_bucket,
)


NOW = datetime(2025, 5, 20, 8, 0, tzinfo=timezone.utc)


def make_record(**fields) -> ProjectTimeline:
    return ProjectTimeline(project_id=uuid4(), **fields)


class TestLabels:

    def test_fresh_record_is_new_lead(self):
        assert derive_label(make_record()) == "New Lead"

    def test_missing_record_is_new_lead(self):
        assert derive_label(None) == DEFAULT_LABEL

    def test_completed_survey(self):
        assert derive_label(make_record(site_survey_status=SiteSurveyStatus.COMPLETED)) == "Survey Complete"

    def test_inspection_passed_beats_permit_review(self):
        record = make_record(
            inspection_status=InspectionStatus.PASSED,
            permit_status=ApplicationStatus.SUBMITTED,
        )

        assert derive_label(record) == "Inspection Passed - Pending PTO"

    @pytest.mark.parametrize("fields,label", [
        ({"system_activated_date": NOW, "pto_approved_date": NOW}, "System Active"),
        ({"pto_approved_date": NOW, "pto_submitted_date": NOW}, "System Activation"),
        ({"pto_submitted_date": NOW, "inspection_status": InspectionStatus.PASSED}, "Awaiting PTO"),
        ({"inspection_status": InspectionStatus.SERVICE_COMPLETED}, "Ready for Re-Inspection"),
        ({"inspection_status": InspectionStatus.FAILED}, "Service Required"),
        ({"inspection_status": InspectionStatus.SERVICE_REQUIRED}, "Service Required"),
        ({"inspection_status": InspectionStatus.SCHEDULED}, "Inspection Scheduled"),
        ({"installation_status": InstallationStatus.COMPLETED}, "Installation Completed - Ready for Inspection"),
        (
            {"installation_status": InstallationStatus.SCHEDULED, "material_order_status": MaterialOrderStatus.ORDERED},
            "Installation Scheduled",
        ),
        ({"material_order_status": MaterialOrderStatus.ORDERED}, "Material Ordered"),
        ({"installation_status": InstallationStatus.PENDING_MATERIAL}, "Pending Material"),
        ({"permit_status": ApplicationStatus.APPROVED, "utility_status": ApplicationStatus.APPROVED}, "Permits Approved"),
        ({"permit_status": ApplicationStatus.REVISION_SUBMITTED}, "Permit Revision Submitted"),
        ({"permit_status": ApplicationStatus.REVISION_REQUIRED}, "Permit Revision Required"),
        ({"utility_status": ApplicationStatus.APPROVED}, "Utility Approved"),
        ({"utility_status": ApplicationStatus.REVISION_SUBMITTED}, "Utility Revision Submitted"),
        ({"utility_status": ApplicationStatus.REVISION_REQUIRED}, "Utility Revision Required"),
        ({"utility_status": ApplicationStatus.SUBMITTED}, "Utility Review"),
        ({"engineering_status": EngineeringStatus.COMPLETED}, "Engineering Complete"),
        ({"engineering_status": EngineeringStatus.PENDING}, "Pending Engineering"),
        ({"installation_status": InstallationStatus.PENDING_CUSTOMER}, "Coordinating Installation"),
        ({"site_survey_status": SiteSurveyStatus.SCHEDULED}, "Survey Scheduled"),
    ])
    def test_label_chain(self, fields, label):
        assert derive_label(make_record(**fields)) == label

    def test_rule_count_and_order(self):
        labels = [rule.label for rule in LABEL_RULES]

        assert len(labels) == 24
        assert labels[0] == "System Active"
        assert labels[-1] == "Survey Scheduled"
        assert labels.index("Engineering Complete") < labels.index("Coordinating Installation")


class TestQueueBuckets:

    def test_unapproved_project_stays_in_verification(self):
        record = make_record(
            approved_for_site_survey=False,
            inspection_status=InspectionStatus.PASSED,
            system_activated_date=NOW,
        )

        assert derive_queue_bucket(record) == QueueBucket.NEW_PROJECT

    def test_missing_record_is_new_project(self):
        assert derive_queue_bucket(None) == QueueBucket.NEW_PROJECT

    def test_approved_fresh_record_is_site_survey(self):
        assert derive_queue_bucket(make_record(approved_for_site_survey=True)) == QueueBucket.SITE_SURVEY

    @pytest.mark.parametrize("fields,bucket", [
        ({"activation_completed_date": NOW}, QueueBucket.SYSTEM_ACTIVATED),
        ({"system_activated_date": NOW}, QueueBucket.SYSTEM_ACTIVATED),
        ({"pto_approved_date": NOW}, QueueBucket.PENDING_ACTIVATION),
        ({"pto_submitted_date": NOW}, QueueBucket.PENDING_PTO),
        ({"inspection_status": InspectionStatus.PASSED}, QueueBucket.PENDING_PTO),
        ({"inspection_status": InspectionStatus.READY}, QueueBucket.READY_FOR_INSPECTION),
        ({"installation_status": InstallationStatus.COMPLETED}, QueueBucket.READY_FOR_INSPECTION),
        ({"material_ordered_date": NOW, "installation_scheduled_date": NOW}, QueueBucket.INSTALLATION_SCHEDULED),
        ({"installation_scheduled_date": NOW}, QueueBucket.READY_TO_ORDER_MATERIAL),
        (
            {"permit_status": ApplicationStatus.APPROVED, "utility_status": ApplicationStatus.APPROVED},
            QueueBucket.COORDINATE_INSTALLATION,
        ),
        ({"permit_status": ApplicationStatus.APPROVED}, QueueBucket.SITE_SURVEY),
        ({"engineering_status": EngineeringStatus.COMPLETED}, QueueBucket.UTILITY_PERMITS),
        ({"site_survey_status": SiteSurveyStatus.COMPLETED}, QueueBucket.ENGINEERING),
    ])
    def test_bucket_rules(self, fields, bucket):
        assert derive_queue_bucket(make_record(approved_for_site_survey=True, **fields)) == bucket

    def test_pto_approved_with_chosen_method_waits_in_pending_pto(self):
        record = make_record(
            approved_for_site_survey=True,
            pto_submitted_date=NOW,
            pto_approved_date=NOW,
            activation_method=ActivationMethod.TECH_DISPATCH,
        )

        assert derive_queue_bucket(record) == QueueBucket.PENDING_PTO

    def test_every_bucket_has_a_title(self):
        assert set(QUEUE_TITLES) == set(QueueBucket)


class TestClassifyAll:

    def test_all_buckets_present_and_order_kept(self):
        first, second, third, fourth = uuid4(), uuid4(), uuid4(), uuid4()
        records = {
            first: make_record(approved_for_site_survey=True, site_survey_status=SiteSurveyStatus.COMPLETED),
            second: None,
            third: make_record(approved_for_site_survey=True, site_survey_status=SiteSurveyStatus.COMPLETED),
            fourth: make_record(),
        }

        buckets = classify_all(records)

        assert set(buckets) == set(QueueBucket)
        assert buckets[QueueBucket.ENGINEERING] == [first, third]
        assert buckets[QueueBucket.NEW_PROJECT] == [second, fourth]
        assert buckets[QueueBucket.SYSTEM_ACTIVATED] == []

    def test_empty_input(self):
        buckets = classify_all({})

        assert all(ids == [] for ids in buckets.values())
