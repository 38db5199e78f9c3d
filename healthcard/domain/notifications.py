# SPDX-License-Identifier: Apache-2.0

"""
Notification dispatch rules.

This module maps a state-changing review event to the notifications it
produces. It never reads or writes storage; the notification service resolves
the admin candidates beforehand and persists whatever comes back.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..models.entities import Notification
from ..models.enums import ApplicationStatus, NotificationType, UserRole
from .authorization import Principal, is_in_scope


class ReviewEventType(str, Enum):
    """State changes that may notify someone."""
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_RESUBMITTED = "document_resubmitted"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_RESUBMITTED = "payment_resubmitted"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"
    ORIENTATION_REQUIRED = "orientation_required"
    MANUAL_REVIEW_REQUIRED = "manual_review_required"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_ARCHIVED = "application_archived"


# Events whose notifications go to the scoped admins instead of the applicant.
ADMIN_EVENTS = frozenset({
    ReviewEventType.DOCUMENT_RESUBMITTED,
    ReviewEventType.PAYMENT_RESUBMITTED,
})

# Stored admin notifications that the feed re-derives from the audit trails.
AUDIT_DERIVED_TYPES = frozenset({
    NotificationType.DOCUMENT_RESUBMISSION.value,
    NotificationType.PAYMENT_RESUBMISSION.value,
})

STATUS_EVENTS = {
    ApplicationStatus.FOR_ORIENTATION.value: ReviewEventType.ORIENTATION_REQUIRED,
    ApplicationStatus.MANUAL_REVIEW_REQUIRED.value: ReviewEventType.MANUAL_REVIEW_REQUIRED,
    ApplicationStatus.APPROVED.value: ReviewEventType.APPLICATION_APPROVED,
}


@dataclass
class ReviewEvent:
    """A state change on one application."""
    type: ReviewEventType
    application_id: str
    applicant_id: str
    job_category_id: str
    actor_id: Optional[str] = None
    document_type_id: Optional[str] = None
    document_name: Optional[str] = None
    reason: Optional[str] = None
    attempt_number: Optional[int] = None
    next_status: Optional[str] = None


@dataclass
class NotificationDraft:
    """Notification about to be persisted."""
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    application_id: Optional[str] = None
    action_url: Optional[str] = None

    def to_entity(self, now: datetime) -> Notification:
        return Notification(
            recipient_id=self.recipient_id,
            application_id=self.application_id,
            type=self.type,
            title=self.title,
            message=self.message,
            action_url=self.action_url,
            created_at=now,
            updated_at=now
        )


def resolve_admin_recipients(
    job_category_id: str,
    admins: List[Principal],
    exclude_ids: Optional[List[str]] = None,
    fallback_to_all: bool = True
) -> List[str]:
    """
    Admins who should hear about an event in a job category.

    Admins scoped to the category (super admins included). When nobody is
    scoped to it and fallback_to_all is set, every admin.
    """
    exclude = set(exclude_ids or [])
    candidates = [
        admin for admin in admins
        if admin.role in (UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value)
        and admin.user_id not in exclude
    ]
    scoped = [admin.user_id for admin in candidates if is_in_scope(admin, job_category_id)]
    if scoped or not fallback_to_all:
        return scoped
    return [admin.user_id for admin in candidates]


def dispatch(event: ReviewEvent, admins: Optional[List[Principal]] = None) -> List[NotificationDraft]:
    """
    Produce the notifications for an event.

    Args:
        event: State change that happened
        admins: Every admin principal, consulted for admin-facing events

    Returns:
        Drafts to persist, possibly empty
    """
    app_url = f"/applications/{event.application_id}"
    document = event.document_name or "A document"

    if event.type in ADMIN_EVENTS:
        recipients = resolve_admin_recipients(event.job_category_id, admins or [])
        if event.type == ReviewEventType.DOCUMENT_RESUBMITTED:
            notification_type = NotificationType.DOCUMENT_RESUBMISSION
            title = "Document Resubmitted"
            message = (
                f"{document} was resubmitted after rejection"
                f" (attempt {event.attempt_number}) and is waiting for review."
            )
        else:
            notification_type = NotificationType.PAYMENT_RESUBMISSION
            title = "Payment Resubmitted"
            message = "A rejected payment was replaced and is waiting for review."
        return [
            NotificationDraft(
                recipient_id=admin_id,
                type=notification_type,
                title=title,
                message=message,
                application_id=event.application_id,
                action_url=f"/admin{app_url}"
            )
            for admin_id in recipients
        ]

    if event.type == ReviewEventType.DOCUMENT_REJECTED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.DOCUMENT_REJECTION,
            title="Document Rejected",
            message=f"{document} was rejected: {event.reason}. Please upload a corrected file.",
            application_id=event.application_id,
            action_url=f"{app_url}/resubmit/{event.document_type_id}"
        )]

    if event.type == ReviewEventType.PAYMENT_REJECTED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.PAYMENT_REJECTION,
            title="Payment Rejected",
            message=f"Your payment was rejected: {event.reason}. Please submit a new payment.",
            application_id=event.application_id,
            action_url=f"{app_url}/payment"
        )]

    if event.type == ReviewEventType.PAYMENT_SUCCEEDED:
        if event.next_status == ApplicationStatus.FOR_ORIENTATION:
            message = "Your payment was received. Please schedule your orientation."
        elif event.next_status == ApplicationStatus.APPROVED:
            message = "Your payment was received and your application is approved."
        else:
            message = "Your payment was received. Your application is being processed."
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.PAYMENT_SUCCESSFUL,
            title="Payment Successful",
            message=message,
            application_id=event.application_id,
            action_url=app_url
        )]

    if event.type in (ReviewEventType.PAYMENT_FAILED, ReviewEventType.PAYMENT_CANCELLED):
        failed = event.type == ReviewEventType.PAYMENT_FAILED
        detail = f": {event.reason}" if event.reason else ""
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.PAYMENT_FAILED if failed else NotificationType.PAYMENT_CANCELLED,
            title="Payment Failed" if failed else "Payment Cancelled",
            message=(
                f"Your payment could not be completed{detail}. You can try again."
                if failed else "Your payment was cancelled. You can try again."
            ),
            application_id=event.application_id,
            action_url=f"{app_url}/payment"
        )]

    if event.type == ReviewEventType.ORIENTATION_REQUIRED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.ORIENTATION_REQUIRED,
            title="Orientation Required",
            message="Your documents and payment are approved. Please schedule your orientation.",
            application_id=event.application_id,
            action_url=f"{app_url}/orientation"
        )]

    if event.type == ReviewEventType.MANUAL_REVIEW_REQUIRED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.MANUAL_REVIEW_REQUIRED,
            title="In-Person Verification Required",
            message=(
                f"{document} reached the maximum number of attempts."
                " Please bring the original to the health office for manual review."
            ),
            application_id=event.application_id,
            action_url=app_url
        )]

    if event.type == ReviewEventType.APPLICATION_APPROVED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.APPLICATION_APPROVED,
            title="Application Approved",
            message="Your health card application has been approved.",
            application_id=event.application_id,
            action_url=app_url
        )]

    if event.type == ReviewEventType.APPLICATION_REJECTED:
        drafts = [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.APPLICATION_REJECTED,
            title="Application Rejected",
            message=f"Your application was rejected: {event.reason}",
            application_id=event.application_id,
            action_url=app_url
        )]
        exclude = [event.actor_id] if event.actor_id else []
        for admin_id in resolve_admin_recipients(
            event.job_category_id, admins or [], exclude, fallback_to_all=False
        ):
            drafts.append(NotificationDraft(
                recipient_id=admin_id,
                type=NotificationType.APPLICATION_REJECTED,
                title="Application Rejected",
                message=f"An application in your scope was rejected: {event.reason}",
                application_id=event.application_id,
                action_url=f"/admin{app_url}"
            ))
        return drafts

    if event.type == ReviewEventType.APPLICATION_ARCHIVED:
        return [NotificationDraft(
            recipient_id=event.applicant_id,
            type=NotificationType.APPLICATION_ARCHIVED,
            title="Application Archived",
            message=(
                "Your application was archived because payment was not completed"
                " before the deadline. Please start a new application."
            ),
            application_id=event.application_id,
            action_url="/applications/new"
        )]

    return []
