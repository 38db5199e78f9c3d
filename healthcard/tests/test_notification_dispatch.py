# SPDX-License-Identifier: Apache-2.0

"""
Tests for the notification dispatch rules.
"""

import pytest
from datetime import datetime

from healthcard.domain.authorization import Principal
from healthcard.domain.notifications import (
    ReviewEvent,
    ReviewEventType,
    dispatch,
    resolve_admin_recipients
)
from healthcard.models.enums import ApplicationStatus, NotificationType

ADMINS = [
    Principal(user_id="admin-food", role="admin", managed_categories=["food"]),
    Principal(user_id="admin-office", role="admin", managed_categories=["office"]),
    Principal(user_id="sysadmin", role="system_admin", managed_categories="all"),
    Principal(user_id="inspector", role="inspector", managed_categories=["food"]),
]


def event(event_type, category="food", **kwargs):
    return ReviewEvent(
        type=event_type,
        application_id="app-1",
        applicant_id="applicant-1",
        job_category_id=category,
        **kwargs
    )


class TestRecipients:

    def test_scoped_admins_and_super_admins(self):
        assert resolve_admin_recipients("food", ADMINS) == ["admin-food", "sysadmin"]

    def test_inspectors_are_never_admin_recipients(self):
        assert "inspector" not in resolve_admin_recipients("food", ADMINS)

    def test_fallback_to_every_admin(self):
        admins = [principal for principal in ADMINS if principal.role == "admin"]

        assert resolve_admin_recipients("security", admins) == ["admin-food", "admin-office"]
        assert resolve_admin_recipients("security", admins, fallback_to_all=False) == []

    def test_exclusions(self):
        assert resolve_admin_recipients("food", ADMINS, exclude_ids=["sysadmin"]) == ["admin-food"]


class TestDispatch:
    """Test the event to notification mapping."""

    def test_document_rejection_notifies_applicant(self):
        drafts = dispatch(event(
            ReviewEventType.DOCUMENT_REJECTED, document_name="Chest X-Ray",
            document_type_id="xray", reason="blurry"
        ), ADMINS)

        assert len(drafts) == 1
        assert drafts[0].recipient_id == "applicant-1"
        assert drafts[0].type == NotificationType.DOCUMENT_REJECTION
        assert "Chest X-Ray was rejected: blurry" in drafts[0].message
        assert drafts[0].action_url == "/applications/app-1/resubmit/xray"

    def test_document_resubmission_notifies_scoped_admins(self):
        drafts = dispatch(event(
            ReviewEventType.DOCUMENT_RESUBMITTED, document_name="Valid ID", attempt_number=2
        ), ADMINS)

        assert [d.recipient_id for d in drafts] == ["admin-food", "sysadmin"]
        assert all(d.type == NotificationType.DOCUMENT_RESUBMISSION for d in drafts)
        assert "(attempt 2)" in drafts[0].message
        assert drafts[0].action_url == "/admin/applications/app-1"

    def test_payment_resubmission_falls_back_to_all_admins(self):
        admins = [ADMINS[1]]

        drafts = dispatch(event(ReviewEventType.PAYMENT_RESUBMITTED, category="food"), admins)

        assert [d.recipient_id for d in drafts] == ["admin-office"]

    @pytest.mark.parametrize("next_status,fragment", [
        (ApplicationStatus.FOR_ORIENTATION.value, "schedule your orientation"),
        (ApplicationStatus.APPROVED.value, "application is approved"),
        (ApplicationStatus.SUBMITTED.value, "being processed"),
    ])
    def test_payment_success_message_follows_next_status(self, next_status, fragment):
        drafts = dispatch(event(ReviewEventType.PAYMENT_SUCCEEDED, next_status=next_status))

        assert len(drafts) == 1
        assert drafts[0].type == NotificationType.PAYMENT_SUCCESSFUL
        assert fragment in drafts[0].message

    def test_final_rejection_notifies_applicant_and_other_scoped_admins(self):
        drafts = dispatch(event(
            ReviewEventType.APPLICATION_REJECTED, actor_id="admin-food", reason="fraud"
        ), ADMINS)

        recipients = [d.recipient_id for d in drafts]
        assert recipients == ["applicant-1", "sysadmin"]
        assert all(d.type == NotificationType.APPLICATION_REJECTED for d in drafts)

    @pytest.mark.parametrize("event_type,notification_type", [
        (ReviewEventType.ORIENTATION_REQUIRED, NotificationType.ORIENTATION_REQUIRED),
        (ReviewEventType.MANUAL_REVIEW_REQUIRED, NotificationType.MANUAL_REVIEW_REQUIRED),
        (ReviewEventType.APPLICATION_APPROVED, NotificationType.APPLICATION_APPROVED),
        (ReviewEventType.APPLICATION_ARCHIVED, NotificationType.APPLICATION_ARCHIVED),
        (ReviewEventType.PAYMENT_FAILED, NotificationType.PAYMENT_FAILED),
        (ReviewEventType.PAYMENT_CANCELLED, NotificationType.PAYMENT_CANCELLED),
        (ReviewEventType.PAYMENT_REJECTED, NotificationType.PAYMENT_REJECTION),
    ])
    def test_applicant_events(self, event_type, notification_type):
        drafts = dispatch(event(event_type, reason="gateway timeout"), ADMINS)

        assert len(drafts) == 1
        assert drafts[0].recipient_id == "applicant-1"
        assert drafts[0].type == notification_type

    def test_to_entity(self):
        now = datetime(2026, 1, 1)

        draft = dispatch(event(ReviewEventType.APPLICATION_APPROVED))[0]
        notification = draft.to_entity(now)

        assert notification.is_read is False
        assert notification.created_at == now
        assert notification.to_document()["recipientId"] == "applicant-1"
