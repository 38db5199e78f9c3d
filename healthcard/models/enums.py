# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the health card review platform.
"""

from enum import Enum


class ApplicationStatus(str, Enum):
    """Application lifecycle status enumeration."""
    DRAFT = "Draft"
    PENDING_PAYMENT = "Pending Payment"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    DOCUMENTS_NEED_REVISION = "Documents Need Revision"
    PAYMENT_NEEDS_REVISION = "Payment Needs Revision"
    MANUAL_REVIEW_REQUIRED = "Manual Review Required"
    FOR_ORIENTATION = "For Orientation"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ARCHIVED = "Archived"


class ApplicationType(str, Enum):
    """Kind of health card request."""
    NEW = "New"
    RENEW = "Renew"


class ReviewStatus(str, Enum):
    """Document upload review status."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ReviewDecision(str, Enum):
    """Reviewer decision on a document or payment."""
    APPROVE = "Approve"
    REJECT = "Reject"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "Pending"
    COMPLETE = "Complete"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    """Supported payment channels."""
    GCASH = "Gcash"
    MAYA = "Maya"
    BARANGGAY_HALL = "BaranggayHall"
    CITY_HALL = "CityHall"


class UserRole(str, Enum):
    """Platform roles."""
    APPLICANT = "applicant"
    INSPECTOR = "inspector"
    ADMIN = "admin"
    SYSTEM_ADMIN = "system_admin"


class DocumentRejectionCategory(str, Enum):
    """Why a document was rejected."""
    QUALITY_ISSUE = "quality_issue"
    WRONG_DOCUMENT = "wrong_document"
    EXPIRED_DOCUMENT = "expired_document"
    INCOMPLETE_DOCUMENT = "incomplete_document"
    INVALID_DOCUMENT = "invalid_document"
    FORMAT_ISSUE = "format_issue"
    OTHER = "other"


class PaymentRejectionCategory(str, Enum):
    """Why a payment was rejected."""
    INVALID_RECEIPT = "invalid_receipt"
    WRONG_AMOUNT = "wrong_amount"
    UNCLEAR_RECEIPT = "unclear_receipt"
    EXPIRED_REFERENCE = "expired_reference"
    DUPLICATE_PAYMENT = "duplicate_payment"
    OTHER = "other"


class ApplicationRejectionCategory(str, Enum):
    """Why an application was finally rejected."""
    FRAUD_SUSPECTED = "fraud_suspected"
    INCOMPLETE_INFORMATION = "incomplete_information"
    DOES_NOT_MEET_REQUIREMENTS = "does_not_meet_requirements"
    DUPLICATE_APPLICATION = "duplicate_application"
    OTHER = "other"


class ApplicationRejectionType(str, Enum):
    """Whether a final rejection was issued by an admin or by the system."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class NotificationType(str, Enum):
    """Notification type enumeration."""
    DOCUMENT_REJECTION = "DocumentRejection"
    DOCUMENT_RESUBMISSION = "DocumentResubmission"
    PAYMENT_REJECTION = "PaymentRejection"
    PAYMENT_RESUBMISSION = "PaymentResubmission"
    PAYMENT_SUCCESSFUL = "PaymentSuccessful"
    PAYMENT_FAILED = "PaymentFailed"
    PAYMENT_CANCELLED = "PaymentCancelled"
    ORIENTATION_REQUIRED = "OrientationRequired"
    MANUAL_REVIEW_REQUIRED = "ManualReviewRequired"
    APPLICATION_APPROVED = "ApplicationApproved"
    APPLICATION_REJECTED = "ApplicationRejected"
    APPLICATION_ARCHIVED = "ApplicationArchived"


class OrientationStatus(str, Enum):
    """Orientation attendance status."""
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    MISSED = "Missed"


class AuditRecordKind(str, Enum):
    """Audit trail an admin feed item was derived from."""
    DOCUMENT = "document"
    PAYMENT = "payment"
