# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the health card review platform.
"""

# Base models
from .base import BaseEntity, RequestModel, generate_object_id

# Enumerations
from .enums import (
    ApplicationStatus,
    ApplicationType,
    ApplicationRejectionCategory,
    ApplicationRejectionType,
    AuditRecordKind,
    DocumentRejectionCategory,
    NotificationType,
    OrientationStatus,
    PaymentMethod,
    PaymentRejectionCategory,
    PaymentStatus,
    ReviewDecision,
    ReviewStatus,
    UserRole
)

# Core entities
from .entities import (
    ALL_CATEGORIES,
    TERMINAL_APPLICATION_STATUSES,
    ACTIVE_PAYMENT_STATUSES,
    SUPERSEDABLE_PAYMENT_STATUSES,
    User,
    JobCategory,
    DocumentType,
    JobCategoryDocument,
    Application,
    DocumentUpload,
    DocumentRejectionRecord,
    Payment,
    PaymentRejectionRecord,
    ApplicationRejectionRecord,
    Notification,
    Orientation,
    AdminActivityLog
)

__all__ = [
    "BaseEntity", "RequestModel", "generate_object_id",
    "ApplicationStatus", "ApplicationType", "ApplicationRejectionCategory",
    "ApplicationRejectionType", "AuditRecordKind", "DocumentRejectionCategory",
    "NotificationType", "OrientationStatus", "PaymentMethod",
    "PaymentRejectionCategory", "PaymentStatus", "ReviewDecision", "ReviewStatus",
    "UserRole",
    "ALL_CATEGORIES", "TERMINAL_APPLICATION_STATUSES", "ACTIVE_PAYMENT_STATUSES",
    "SUPERSEDABLE_PAYMENT_STATUSES",
    "User", "JobCategory", "DocumentType", "JobCategoryDocument", "Application",
    "DocumentUpload", "DocumentRejectionRecord", "Payment", "PaymentRejectionRecord",
    "ApplicationRejectionRecord", "Notification", "Orientation", "AdminActivityLog",
]
