# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the health card review platform.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import Field, field_validator, model_validator
from .base import BaseEntity
from .enums import (
    ApplicationStatus,
    ApplicationType,
    ApplicationRejectionCategory,
    ApplicationRejectionType,
    DocumentRejectionCategory,
    NotificationType,
    OrientationStatus,
    PaymentMethod,
    PaymentRejectionCategory,
    PaymentStatus,
    ReviewStatus,
    UserRole
)

ALL_CATEGORIES = "all"

TERMINAL_APPLICATION_STATUSES = frozenset({
    ApplicationStatus.APPROVED.value,
    ApplicationStatus.REJECTED.value,
    ApplicationStatus.ARCHIVED.value,
})

# A payment in one of these states blocks creation of another one.
ACTIVE_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PENDING.value,
    PaymentStatus.COMPLETE.value,
})

SUPERSEDABLE_PAYMENT_STATUSES = frozenset({
    PaymentStatus.FAILED.value,
    PaymentStatus.CANCELLED.value,
})


class User(BaseEntity):
    """Platform user as resolved by the authorization gate."""

    email: str = Field(..., description="User email address")
    full_name: str = Field(..., min_length=1, max_length=200, description="Display name")
    role: UserRole = Field(default=UserRole.APPLICANT, description="Platform role")
    managed_categories: Optional[Union[Literal["all"], List[str]]] = Field(
        None, description="Job categories an admin may review, or 'all'"
    )
    is_active: bool = Field(default=True, description="Whether the account may act")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if '@' not in v or '.' not in v.split('@')[-1]:
            raise ValueError('Invalid email format')
        return v.lower()

    def is_super_admin(self) -> bool:
        """Check if the user reviews every job category."""
        return self.role == UserRole.SYSTEM_ADMIN or self.managed_categories == ALL_CATEGORIES


class JobCategory(BaseEntity):
    """Job category an applicant applies under."""

    name: str = Field(..., min_length=1, max_length=200, description="Category name")
    color_code: str = Field(default="#000000", description="Display color")
    require_orientation: bool = Field(default=False, description="Orientation required before approval")

    @field_validator('require_orientation', mode='before')
    @classmethod
    def coerce_require_orientation(cls, v):
        """Accept the legacy string flag stored by older category records."""
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "required", "1")
        return bool(v) if v is not None else False


class DocumentType(BaseEntity):
    """Reference data for an uploadable document."""

    name: str = Field(..., min_length=1, description="Document name")
    description: str = Field(default="", description="What the applicant must provide")
    field_identifier: str = Field(..., min_length=1, description="Stable form field identifier")
    is_required: bool = Field(default=True, description="Default required flag")


class JobCategoryDocument(BaseEntity):
    """Checklist entry linking a job category to a document type."""

    job_category_id: str = Field(..., description="Job category")
    document_type_id: str = Field(..., description="Document type")
    is_required: Optional[bool] = Field(None, description="Override of the document type default")


class Application(BaseEntity):
    """A single health card request."""

    user_id: str = Field(..., description="Owning applicant")
    job_category_id: str = Field(..., description="Job category applied under")
    application_type: ApplicationType = Field(default=ApplicationType.NEW)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    position: str = Field(..., min_length=1, max_length=200)
    organization: str = Field(..., min_length=1, max_length=200)
    civil_status: str = Field(..., min_length=1, max_length=50)
    status: ApplicationStatus = Field(default=ApplicationStatus.DRAFT)
    payment_deadline: Optional[datetime] = Field(None, description="Archive deadline while Pending Payment")
    admin_remarks: Optional[str] = Field(None, max_length=2000)
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    def is_terminal(self) -> bool:
        """Check if the application accepts no further mutation."""
        return self.status in TERMINAL_APPLICATION_STATUSES


class DocumentUpload(BaseEntity):
    """Current file and review state for one (application, document type)."""

    application_id: str = Field(..., description="Parent application")
    document_type_id: str = Field(..., description="Document type")
    file_ref: str = Field(..., min_length=1, description="Opaque blob storage reference")
    original_file_name: Optional[str] = None
    review_status: ReviewStatus = Field(default=ReviewStatus.PENDING)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_remarks: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
    extracted_metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Untrusted OCR/classification output"
    )


class DocumentRejectionRecord(BaseEntity):
    """Audit trail entry for one document rejection and its resubmission."""

    schema_version: int = Field(default=2)
    application_id: str
    document_type_id: str
    document_upload_id: str
    rejected_file_ref: str = Field(..., description="Snapshot of the rejected file reference")
    original_file_name: Optional[str] = None
    rejection_category: DocumentRejectionCategory = Field(default=DocumentRejectionCategory.OTHER)
    rejection_reason: str = Field(..., min_length=1)
    issues: List[str] = Field(default_factory=list)
    rejected_by: str
    rejected_at: datetime
    was_replaced: bool = False
    replaced_at: Optional[datetime] = None
    replacement_file_ref: Optional[str] = None
    attempt_number: int = Field(..., ge=1)
    admin_read_by: List[str] = Field(default_factory=list)


class Payment(BaseEntity):
    """Payment made toward an application."""

    application_id: str
    amount: float = Field(..., description="Base fee")
    service_fee: float = Field(default=0.0)
    net_amount: float
    payment_method: PaymentMethod
    reference_number: str = Field(..., min_length=1, max_length=100)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    receipt_file_ref: Optional[str] = None
    checkout_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_remarks: Optional[str] = None
    failure_reason: Optional[str] = None
    settled_at: Optional[datetime] = None

    def is_active(self) -> bool:
        """Check if this payment blocks another submission."""
        return self.payment_status in ACTIVE_PAYMENT_STATUSES


class PaymentRejectionRecord(BaseEntity):
    """Audit trail entry for one payment rejection and its resubmission."""

    schema_version: int = Field(default=2)
    application_id: str
    payment_id: str
    amount: float
    service_fee: float
    net_amount: float
    payment_method: PaymentMethod
    reference_number: str
    receipt_file_ref: Optional[str] = None
    rejection_category: PaymentRejectionCategory = Field(default=PaymentRejectionCategory.OTHER)
    rejection_reason: str = Field(..., min_length=1)
    issues: List[str] = Field(default_factory=list)
    rejected_by: str
    rejected_at: datetime
    was_replaced: bool = False
    replaced_at: Optional[datetime] = None
    replacement_payment_id: Optional[str] = None
    attempt_number: int = Field(..., ge=1)
    admin_read_by: List[str] = Field(default_factory=list)


class ApplicationRejectionRecord(BaseEntity):
    """Final rejection of a whole application."""

    application_id: str
    applicant_id: str
    rejection_category: ApplicationRejectionCategory
    rejection_reason: str = Field(..., min_length=1)
    issues: List[str] = Field(default_factory=list)
    rejection_type: ApplicationRejectionType = Field(default=ApplicationRejectionType.MANUAL)
    rejected_by: Optional[str] = None
    rejected_at: datetime
    previous_status: ApplicationStatus
    total_document_rejections: int = 0
    total_payment_rejections: int = 0

    @model_validator(mode='after')
    def validate_actor(self):
        """Manual rejections always name the admin who issued them."""
        if self.rejection_type == ApplicationRejectionType.MANUAL and not self.rejected_by:
            raise ValueError('Manual rejections require rejected_by')
        return self


class Notification(BaseEntity):
    """Notification record produced by the dispatcher."""

    recipient_id: str
    application_id: Optional[str] = None
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    is_read: bool = False
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None


class Orientation(BaseEntity):
    """Orientation session booked for an application."""

    application_id: str
    applicant_id: str
    scheduled_at: datetime
    venue: str = Field(..., min_length=1, max_length=200)
    inspector_id: Optional[str] = Field(None, description="Assigned inspector, any inspector when unset")
    status: OrientationStatus = Field(default=OrientationStatus.SCHEDULED)
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    checked_out_at: Optional[datetime] = None
    checked_out_by: Optional[str] = None


class AdminActivityLog(BaseEntity):
    """Activity record written alongside every reviewer mutation."""

    admin_id: str
    action: str = Field(..., min_length=1)
    resource_type: str
    resource_id: str
    application_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
