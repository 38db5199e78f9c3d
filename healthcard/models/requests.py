# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator
from .base import RequestModel
from .enums import (
    ApplicationRejectionCategory,
    ApplicationType,
    AuditRecordKind,
    DocumentRejectionCategory,
    PaymentMethod,
    PaymentRejectionCategory,
    ReviewDecision,
    UserRole
)


class ApplicationFormFields(RequestModel):
    """Applicant demographic fields collected by the application form."""

    application_type: ApplicationType = Field(default=ApplicationType.NEW)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    position: str = Field(..., min_length=1, max_length=200)
    organization: str = Field(..., min_length=1, max_length=200)
    civil_status: str = Field(..., min_length=1, max_length=50)


class CreateApplicationRequest(ApplicationFormFields):
    """Request model for creating an application."""

    job_category_id: str = Field(..., min_length=1, description="Job category applied under")
    draft: bool = Field(default=False, description="Save as Draft instead of Pending Payment")


class UpdateApplicationRequest(RequestModel):
    """Partial update of the form fields."""

    application_type: Optional[ApplicationType] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    position: Optional[str] = Field(None, min_length=1, max_length=200)
    organization: Optional[str] = Field(None, min_length=1, max_length=200)
    civil_status: Optional[str] = Field(None, min_length=1, max_length=50)


class CreatePaymentRequest(RequestModel):
    """Request model for recording a payment."""

    payment_method: PaymentMethod
    reference_number: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0, description="Base fee")
    service_fee: float = Field(default=0.0, ge=0)
    net_amount: Optional[float] = Field(None, description="Defaults to amount + service fee")
    receipt_file_ref: Optional[str] = None
    checkout_id: Optional[str] = None


class SubmitApplicationRequest(RequestModel):
    """Payment selection sent with the submission."""

    payment_id: Optional[str] = Field(None, description="Existing payment to submit with")
    payment: Optional[CreatePaymentRequest] = Field(None, description="New payment to record")

    @model_validator(mode='after')
    def validate_selection(self):
        """Exactly one of payment_id and payment must be set."""
        if bool(self.payment_id) == bool(self.payment):
            raise ValueError('Provide either paymentId or payment')
        return self


class UploadDocumentRequest(RequestModel):
    """Request model for uploading a document."""

    document_type_id: str = Field(..., min_length=1)
    file_ref: str = Field(..., min_length=1, description="Reference returned by blob storage")
    original_file_name: Optional[str] = Field(None, max_length=255)
    extracted_metadata: Dict[str, Union[str, int, float, bool, None]] = Field(default_factory=dict)


class ResubmitDocumentRequest(RequestModel):
    """Request model for replacing a rejected document."""

    file_ref: str = Field(..., min_length=1)
    original_file_name: Optional[str] = Field(None, max_length=255)


class RejectionDetail(RequestModel):
    """Structured reason attached to a rejection."""

    category: str = Field(default="other")
    reason: str = Field(..., min_length=1, max_length=2000)
    issues: List[str] = Field(default_factory=list)


class ReviewDocumentRequest(RequestModel):
    """Reviewer decision on a document upload."""

    decision: ReviewDecision
    remarks: Optional[str] = Field(None, max_length=2000)
    rejection: Optional[RejectionDetail] = None

    @field_validator('rejection')
    @classmethod
    def validate_category(cls, v):
        """Rejection categories must be known document categories."""
        if v is not None:
            DocumentRejectionCategory(v.category)
        return v


class ReviewPaymentRequest(RequestModel):
    """Reviewer decision on a payment."""

    decision: ReviewDecision
    remarks: Optional[str] = Field(None, max_length=2000)
    rejection: Optional[RejectionDetail] = None

    @field_validator('rejection')
    @classmethod
    def validate_category(cls, v):
        """Rejection categories must be known payment categories."""
        if v is not None:
            PaymentRejectionCategory(v.category)
        return v


class ResubmitPaymentRequest(RequestModel):
    """Links a replacement payment to the rejected one."""

    old_payment_id: str = Field(..., min_length=1)
    new_payment_id: str = Field(..., min_length=1)


class GatewayCallbackRequest(RequestModel):
    """Outcome reported by the payment gateway."""

    checkout_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


class ApproveApplicationRequest(RequestModel):
    """Explicit approval by an admin."""

    remarks: Optional[str] = Field(None, max_length=2000)


class RejectApplicationRequest(RequestModel):
    """Final rejection issued by an admin."""

    category: ApplicationRejectionCategory
    reason: str = Field(..., min_length=1, max_length=2000)
    issues: List[str] = Field(default_factory=list)


class ScheduleOrientationRequest(RequestModel):
    """Orientation booking."""

    scheduled_at: datetime
    venue: str = Field(..., min_length=1, max_length=200)
    inspector_id: Optional[str] = None


class UpdateUserRoleRequest(RequestModel):
    """Role and scope change issued by a system admin."""

    role: UserRole
    managed_categories: Optional[Union[Literal["all"], List[str]]] = None


# Path parameter models consumed by flask-openapi3

class ApplicationPath(BaseModel):
    application_id: str = Field(..., description="Application ID")


class UploadPath(BaseModel):
    upload_id: str = Field(..., description="Document upload ID")


class PaymentPath(BaseModel):
    payment_id: str = Field(..., description="Payment ID")


class GatewayPath(BaseModel):
    payment_id: str = Field(..., description="Payment ID")
    outcome: Literal["success", "failure", "cancel"]


class NotificationPath(BaseModel):
    notification_id: str = Field(..., description="Notification ID")


class AuditNotificationPath(BaseModel):
    kind: AuditRecordKind
    record_id: str = Field(..., description="Rejection record ID")


class OrientationPath(BaseModel):
    orientation_id: str = Field(..., description="Orientation ID")


class UserPath(BaseModel):
    user_id: str = Field(..., description="User ID")


class JobCategoryPath(BaseModel):
    job_category_id: str = Field(..., description="Job category ID")
