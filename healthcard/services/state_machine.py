# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Application state machine service.

Loads the ledgers of one application inside the caller's transaction, asks the
domain rules for the next status and writes it in that same transaction. The
approval guard is re-checked right before every write into Approved.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..config import ReviewPolicy
from ..domain.application_state import (
    ReviewSnapshot,
    derive_next_status,
    evaluate_approval_gate,
    validate_status_transition
)
from ..domain.notifications import STATUS_EVENTS, ReviewEvent
from ..domain.payments import select_current_payment
from ..middleware.error_handler import ConflictException, NotFoundException
from ..models.entities import Application, DocumentType, JobCategory
from ..models.enums import ApplicationStatus, OrientationStatus
from .notifications import NotificationService
from .store import ASCENDING, Collections, StoreTransaction

logger = logging.getLogger(__name__)


class ApplicationStateMachine:
    """Authoritative status transitions for applications."""

    def __init__(self, notifications: NotificationService, policy: ReviewPolicy):
        self.notifications = notifications
        self.policy = policy

    def load_application(self, tx: StoreTransaction, application_id: str) -> Application:
        document = tx.get(Collections.APPLICATIONS, application_id)
        if document is None:
            raise NotFoundException(f"Application {application_id} not found")
        return Application.from_document(document)

    def load_job_category(self, tx: StoreTransaction, job_category_id: str) -> JobCategory:
        document = tx.get(Collections.JOB_CATEGORIES, job_category_id)
        if document is None:
            raise NotFoundException(f"Job category {job_category_id} not found")
        return JobCategory.from_document(document)

    @staticmethod
    def ensure_mutable(application: Application) -> None:
        if application.is_terminal():
            raise ConflictException(
                f"Application is {application.status} and accepts no further changes",
                details={"status": application.status}
            )

    def checklist(self, tx: StoreTransaction, job_category_id: str) -> List[Tuple[DocumentType, bool]]:
        """Document types of a job category with their effective required flag."""
        links = tx.find(
            Collections.JOB_CATEGORY_DOCUMENTS,
            {"jobCategoryId": job_category_id},
            sort=[("createdAt", ASCENDING)]
        )
        entries = []
        for link in links:
            type_doc = tx.get(Collections.DOCUMENT_TYPES, link["documentTypeId"])
            if type_doc is None:
                logger.warning(
                    "Checklist references a missing document type",
                    extra={"job_category_id": job_category_id, "document_type_id": link["documentTypeId"]}
                )
                continue
            document_type = DocumentType.from_document(type_doc)
            override = link.get("isRequired")
            entries.append((document_type, document_type.is_required if override is None else override))
        return entries

    def load_snapshot(self, tx: StoreTransaction, application: Application) -> ReviewSnapshot:
        required = [
            document_type.id
            for document_type, is_required in self.checklist(tx, application.job_category_id)
            if is_required
        ]
        uploads = tx.find(Collections.DOCUMENT_UPLOADS, {"applicationId": application.id})
        rejections = tx.find(Collections.DOCUMENT_REJECTIONS, {"applicationId": application.id})
        payments = tx.find(Collections.PAYMENTS, {"applicationId": application.id})
        payment = select_current_payment(payments)
        category = self.load_job_category(tx, application.job_category_id)
        orientation_completed = tx.count(
            Collections.ORIENTATIONS,
            {"applicationId": application.id, "status": OrientationStatus.COMPLETED.value}
        ) > 0

        return ReviewSnapshot(
            status=application.status,
            required_document_type_ids=required,
            upload_statuses={u["documentTypeId"]: u["reviewStatus"] for u in uploads},
            payment_status=payment["paymentStatus"] if payment else None,
            document_attempts=dict(Counter(r["documentTypeId"] for r in rejections)),
            max_document_attempts=self.policy.max_document_attempts,
            require_orientation=category.require_orientation,
            orientation_completed=orientation_completed
        )

    def transition(
        self,
        tx: StoreTransaction,
        application: Application,
        new_status: str,
        now: datetime,
        actor_id: Optional[str] = None,
        extra_updates: Optional[Dict[str, Any]] = None,
        notify: bool = True,
        document_name: Optional[str] = None
    ) -> str:
        """
        Write a status change after validating it.

        Raises:
            ConflictException: The transition is not allowed, or the approval
                guard fails at commit time
        """
        current = application.status
        if new_status == current:
            return current

        check = validate_status_transition(current, new_status)
        if not check.allowed:
            raise ConflictException(check.reason, details={"from": current, "to": new_status})

        updates = {"status": new_status, "updatedAt": now}
        if new_status == ApplicationStatus.APPROVED:
            gate = evaluate_approval_gate(self.load_snapshot(tx, application))
            if not gate.satisfied:
                raise ConflictException(
                    f"Application cannot be approved: {gate.reason}",
                    details={"missing_document_type_ids": gate.missing_document_type_ids,
                             "payment_complete": gate.payment_complete}
                )
            updates["approvedAt"] = now
        updates.update(extra_updates or {})

        tx.update(Collections.APPLICATIONS, application.id, updates)
        application.status = new_status

        logger.info(
            "Application status changed",
            extra={
                "application_id": application.id,
                "from_status": current,
                "to_status": new_status,
                "actor_id": actor_id
            }
        )

        event_type = STATUS_EVENTS.get(new_status)
        if notify and event_type is not None:
            self.notifications.emit(tx, ReviewEvent(
                type=event_type,
                application_id=application.id,
                applicant_id=application.user_id,
                job_category_id=application.job_category_id,
                actor_id=actor_id,
                document_name=document_name,
                next_status=new_status
            ), now)
        return new_status

    def reevaluate(
        self,
        tx: StoreTransaction,
        application: Application,
        now: datetime,
        actor_id: Optional[str] = None,
        reviewer_action: bool = True,
        notify: bool = True,
        document_name: Optional[str] = None
    ) -> str:
        """Derive and apply the status the ledgers now call for."""
        snapshot = self.load_snapshot(tx, application)
        next_status = derive_next_status(snapshot, reviewer_action)
        return self.transition(
            tx, application, next_status, now,
            actor_id=actor_id, notify=notify, document_name=document_name
        )
