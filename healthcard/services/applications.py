# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Application lifecycle service.

Creation, form editing and submission by the applicant; explicit approval
and final rejection by admins; read-only joins of the catalog, ledgers and
audit trails for display.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.application_state import (
    REJECTABLE_STATUSES,
    EVALUATED_STATUSES,
    compute_payment_deadline,
    evaluate_approval_gate
)
from ..domain.audit_records import (
    assign_legacy_attempt_numbers,
    normalize_document_rejection,
    normalize_payment_rejection
)
from ..domain.authorization import Action, ResourceContext, is_in_scope
from ..domain.notifications import ReviewEvent, ReviewEventType
from ..domain.payments import select_current_payment
from ..middleware.error_handler import ConflictException, NotFoundException
from ..models.entities import Application, ApplicationRejectionRecord
from ..models.enums import (
    ApplicationRejectionCategory,
    ApplicationRejectionType,
    ApplicationStatus,
    PaymentStatus
)
from ..models.responses import ChecklistEntry, RejectionStats
from .activity import ActivityLogService
from .gate import AuthorizationGate
from .notifications import NotificationService
from .payments import PaymentService
from .state_machine import ApplicationStateMachine
from .store import ASCENDING, DESCENDING, Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FORM_FIELDS = ("applicationType", "firstName", "lastName", "position", "organization", "civilStatus")

EDITABLE_STATUSES = frozenset({ApplicationStatus.DRAFT.value, ApplicationStatus.PENDING_PAYMENT.value})


class ApplicationService:
    """Service for application lifecycle operations."""

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        state_machine: ApplicationStateMachine,
        notifications: NotificationService,
        activity: ActivityLogService,
        payments: PaymentService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.state_machine = state_machine
        self.notifications = notifications
        self.activity = activity
        self.payments = payments
        self.clock = clock

    def _run(self, span_name: str, attributes: Dict[str, Any], work: Callable[[StoreTransaction], Any]) -> Any:
        with tracer.start_as_current_span(span_name) as span:
            span.set_attributes(attributes)
            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def _owned(self, tx: StoreTransaction, actor_id: str, application_id: str) -> Application:
        application = self.state_machine.load_application(tx, application_id)
        self.gate.authorize(
            tx, actor_id, Action.MANAGE_OWN_APPLICATION,
            ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
        )
        return application

    def _viewable(self, tx: StoreTransaction, actor_id: str, application_id: str):
        application = self.state_machine.load_application(tx, application_id)
        principal = self.gate.authorize(
            tx, actor_id, Action.VIEW_APPLICATION,
            ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
        )
        return application, principal

    # Applicant operations

    def create_application(
        self,
        actor_id: str,
        job_category_id: str,
        form_fields: Dict[str, Any],
        draft: bool = False
    ) -> Dict[str, Any]:
        """
        Create an application owned by the caller.

        Non-draft applications start in Pending Payment with the archive
        deadline set.
        """
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            principal = self.gate.authorize(tx, actor_id, Action.MANAGE_OWN_APPLICATION)
            self.state_machine.load_job_category(tx, job_category_id)

            application = Application(
                user_id=principal.user_id,
                job_category_id=job_category_id,
                status=ApplicationStatus.DRAFT if draft else ApplicationStatus.PENDING_PAYMENT,
                payment_deadline=None if draft else compute_payment_deadline(
                    now, self.state_machine.policy.payment_deadline_days
                ),
                created_at=now,
                updated_at=now,
                **form_fields
            )
            tx.insert(Collections.APPLICATIONS, application.to_document())
            logger.info(
                "Application created",
                extra={
                    "application_id": application.id,
                    "user_id": principal.user_id,
                    "job_category_id": job_category_id,
                    "status": application.status
                }
            )
            return application.to_document()

        return self._run(
            "applications.create",
            {"user.id": actor_id, "job_category.id": job_category_id, "application.draft": draft},
            work
        )

    def update_application_form(
        self,
        actor_id: str,
        application_id: str,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Edit form fields while the application is Draft or Pending Payment."""
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            application = self._owned(tx, actor_id, application_id)
            if application.status not in EDITABLE_STATUSES:
                raise ConflictException(
                    f"Application is {application.status}; the form can no longer be edited",
                    details={"status": application.status}
                )

            changes = {key: value for key, value in updates.items() if key in FORM_FIELDS and value is not None}
            if changes:
                changes["updatedAt"] = now
                tx.update(Collections.APPLICATIONS, application.id, changes)
                logger.info(
                    "Application form updated",
                    extra={"application_id": application.id, "fields": sorted(changes)}
                )
            return tx.get(Collections.APPLICATIONS, application.id)

        return self._run("applications.update_form", {"application.id": application_id}, work)

    def complete_application_form(
        self,
        actor_id: str,
        application_id: str,
        form_fields: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Promote a Draft to Pending Payment and start the payment deadline."""
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            application = self._owned(tx, actor_id, application_id)
            if application.status != ApplicationStatus.DRAFT:
                raise ConflictException(
                    f"Application is {application.status}; only drafts can be completed",
                    details={"status": application.status}
                )

            updates = {key: value for key, value in (form_fields or {}).items() if key in FORM_FIELDS}
            updates["paymentDeadline"] = compute_payment_deadline(
                now, self.state_machine.policy.payment_deadline_days
            )
            self.state_machine.transition(
                tx, application, ApplicationStatus.PENDING_PAYMENT.value, now,
                actor_id=actor_id, extra_updates=updates
            )
            return tx.get(Collections.APPLICATIONS, application.id)

        return self._run("applications.complete_form", {"application.id": application_id}, work)

    def submit_application(
        self,
        actor_id: str,
        application_id: str,
        payment_id: Optional[str] = None,
        payment: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Submit a Pending Payment application with an existing or new payment.

        Returns:
            The application's new status
        """
        def work(tx: StoreTransaction) -> str:
            now = self.clock()
            application = self._owned(tx, actor_id, application_id)
            if application.status != ApplicationStatus.PENDING_PAYMENT:
                raise ConflictException(
                    f"Application is {application.status}; only applications pending payment can be submitted",
                    details={"status": application.status}
                )

            if payment is not None:
                selected = self.payments.insert_payment(tx, application, now=now, **payment)
                selected_status = selected.payment_status
            else:
                document = tx.get(Collections.PAYMENTS, payment_id)
                if document is None or document["applicationId"] != application.id:
                    raise NotFoundException(f"Payment {payment_id} not found for this application")
                selected_status = document["paymentStatus"]
                if selected_status not in (PaymentStatus.PENDING, PaymentStatus.COMPLETE):
                    raise ConflictException(
                        f"Payment is {selected_status}; record a new payment before submitting",
                        details={"payment_id": payment_id}
                    )

            return self.state_machine.transition(
                tx, application, ApplicationStatus.SUBMITTED.value, now,
                actor_id=actor_id,
                extra_updates={"paymentDeadline": None, "submittedAt": now}
            )

        status = self._run("applications.submit", {"application.id": application_id, "user.id": actor_id}, work)
        logger.info("Application submitted", extra={"application_id": application_id, "status": status})
        return status

    # Admin operations

    def approve_application(self, actor_id: str, application_id: str, remarks: Optional[str] = None) -> str:
        """Explicit admin approval, guarded by the same check as the automatic path."""
        def work(tx: StoreTransaction) -> str:
            now = self.clock()
            application = self.state_machine.load_application(tx, application_id)
            principal = self.gate.authorize(
                tx, actor_id, Action.CHANGE_APPLICATION_STATUS,
                ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
            )
            self.state_machine.ensure_mutable(application)
            if application.status not in EVALUATED_STATUSES:
                raise ConflictException(
                    f"Application is {application.status} and cannot be approved",
                    details={"status": application.status}
                )

            snapshot = self.state_machine.load_snapshot(tx, application)
            gate = evaluate_approval_gate(snapshot)
            if not gate.satisfied:
                raise ConflictException(
                    f"Application cannot be approved: {gate.reason}",
                    details={"missing_document_type_ids": gate.missing_document_type_ids,
                             "payment_complete": gate.payment_complete}
                )
            if snapshot.require_orientation and not snapshot.orientation_completed:
                raise ConflictException("Orientation must be completed before approval")

            status = self.state_machine.transition(
                tx, application, ApplicationStatus.APPROVED.value, now,
                actor_id=principal.user_id, extra_updates={"adminRemarks": remarks}
            )
            self.activity.log_action(
                tx, principal.user_id, "application_approved", "application", application.id, now,
                application_id=application.id, details={"remarks": remarks}
            )
            return status

        return self._run("applications.approve", {"application.id": application_id, "user.id": actor_id}, work)

    def reject_application(
        self,
        actor_id: str,
        application_id: str,
        category: str,
        reason: str,
        issues: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Final administrative rejection; terminal."""
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            application = self.state_machine.load_application(tx, application_id)
            principal = self.gate.authorize(
                tx, actor_id, Action.CHANGE_APPLICATION_STATUS,
                ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
            )
            self.state_machine.ensure_mutable(application)
            if application.status not in REJECTABLE_STATUSES:
                raise ConflictException(
                    f"Application is {application.status} and cannot be rejected",
                    details={"status": application.status}
                )

            previous_status = application.status
            record = ApplicationRejectionRecord(
                application_id=application.id,
                applicant_id=application.user_id,
                rejection_category=ApplicationRejectionCategory(category),
                rejection_reason=reason,
                issues=issues or [],
                rejection_type=ApplicationRejectionType.MANUAL,
                rejected_by=principal.user_id,
                rejected_at=now,
                previous_status=previous_status,
                total_document_rejections=tx.count(
                    Collections.DOCUMENT_REJECTIONS, {"applicationId": application.id}
                ),
                total_payment_rejections=tx.count(
                    Collections.PAYMENT_REJECTIONS, {"applicationId": application.id}
                ),
                created_at=now,
                updated_at=now
            )
            tx.insert(Collections.APPLICATION_REJECTIONS, record.to_document())
            status = self.state_machine.transition(
                tx, application, ApplicationStatus.REJECTED.value, now,
                actor_id=principal.user_id, extra_updates={"adminRemarks": reason}
            )
            self.notifications.emit(tx, ReviewEvent(
                type=ReviewEventType.APPLICATION_REJECTED,
                application_id=application.id,
                applicant_id=application.user_id,
                job_category_id=application.job_category_id,
                actor_id=principal.user_id,
                reason=reason
            ), now)
            self.activity.log_action(
                tx, principal.user_id, "application_rejected", "application", application.id, now,
                application_id=application.id,
                details={"category": record.rejection_category, "previous_status": previous_status}
            )
            return {"applicationId": application.id, "status": status, "rejectionId": record.id}

        result = self._run(
            "applications.reject", {"application.id": application_id, "user.id": actor_id}, work
        )
        logger.info(
            "Application rejected",
            extra={"application_id": application_id, "admin_id": actor_id, "category": category}
        )
        return result

    # Queries

    def get_requirement_checklist(self, actor_id: str, job_category_id: str) -> List[Dict[str, Any]]:
        """Ordered checklist of a job category with the effective required flag."""
        def read(tx: StoreTransaction) -> List[Dict[str, Any]]:
            self.gate.resolve_principal(tx, actor_id)
            self.state_machine.load_job_category(tx, job_category_id)
            return [
                ChecklistEntry(document_type=document_type.to_document(), is_required=is_required)
                .model_dump(by_alias=True, exclude={"upload", "rejection_count"})
                for document_type, is_required in self.state_machine.checklist(tx, job_category_id)
            ]

        return self.store.read(read)

    def get_application_with_documents(self, actor_id: str, application_id: str) -> Dict[str, Any]:
        """
        Join the application with its checklist, uploads, payment and orientation.

        Returns:
            View dict with ``application``, ``checklist``, ``payment``,
            ``orientation`` and the resolved ``principal``
        """
        def read(tx: StoreTransaction) -> Dict[str, Any]:
            application, principal = self._viewable(tx, actor_id, application_id)
            uploads = {
                upload["documentTypeId"]: upload
                for upload in tx.find(Collections.DOCUMENT_UPLOADS, {"applicationId": application.id})
            }
            rejection_counts = Counter(
                record["documentTypeId"]
                for record in tx.find(Collections.DOCUMENT_REJECTIONS, {"applicationId": application.id})
            )
            checklist = [
                ChecklistEntry(
                    document_type=document_type.to_document(),
                    is_required=is_required,
                    upload=uploads.get(document_type.id),
                    rejection_count=rejection_counts.get(document_type.id, 0)
                ).model_dump(by_alias=True)
                for document_type, is_required in self.state_machine.checklist(tx, application.job_category_id)
            ]
            payment = select_current_payment(
                tx.find(Collections.PAYMENTS, {"applicationId": application.id})
            )
            orientation = tx.find_one(Collections.ORIENTATIONS, {"applicationId": application.id})
            return {
                "application": application.to_document(),
                "checklist": checklist,
                "payment": payment,
                "orientation": orientation,
                "principal": principal,
            }

        return self.store.read(read)

    def get_rejection_history(self, actor_id: str, application_id: str) -> Dict[str, Any]:
        """Document, payment and final rejections of one application, oldest first."""
        def read(tx: StoreTransaction) -> Dict[str, Any]:
            application, _ = self._viewable(tx, actor_id, application_id)

            by_type = defaultdict(list)
            for document in tx.find(Collections.DOCUMENT_REJECTIONS, {"applicationId": application.id}):
                record = normalize_document_rejection(document)
                by_type[record.document_type_id].append(record)
            documents = [
                record
                for records in by_type.values()
                for record in assign_legacy_attempt_numbers(records)
            ]
            documents.sort(key=lambda r: r.rejected_at)

            payments = [
                normalize_payment_rejection(document)
                for document in tx.find(
                    Collections.PAYMENT_REJECTIONS, {"applicationId": application.id},
                    sort=[("rejectedAt", ASCENDING)]
                )
            ]
            final = tx.find(
                Collections.APPLICATION_REJECTIONS, {"applicationId": application.id},
                sort=[("rejectedAt", DESCENDING)]
            )
            return {
                "applicationId": application.id,
                "documents": [record.to_document() for record in documents],
                "payments": [record.to_document() for record in payments],
                "applicationRejections": final,
            }

        return self.store.read(read)

    def get_rejection_stats(self, actor_id: str) -> Dict[str, Any]:
        """Rejection figures across the applications in the caller's scope."""
        def read(tx: StoreTransaction) -> Dict[str, Any]:
            principal = self.gate.resolve_principal(tx, actor_id)
            self.gate.require_role(principal, Action.REVIEW_DOCUMENT)

            categories: Dict[str, Optional[str]] = {}

            def in_scope(application_id: str) -> bool:
                if application_id not in categories:
                    application = tx.get(Collections.APPLICATIONS, application_id)
                    categories[application_id] = application["jobCategoryId"] if application else None
                category_id = categories[application_id]
                return category_id is not None and is_in_scope(principal, category_id)

            records = [
                normalize_document_rejection(document)
                for document in tx.find(Collections.DOCUMENT_REJECTIONS)
                if in_scope(document["applicationId"])
            ] + [
                normalize_payment_rejection(document)
                for document in tx.find(Collections.PAYMENT_REJECTIONS)
                if in_scope(document["applicationId"])
            ]

            resubmitted = sum(1 for record in records if record.was_replaced)
            reasons = Counter(record.rejection_reason for record in records)
            stats = RejectionStats(
                total=len(records),
                pending_resubmission=len(records) - resubmitted,
                resubmitted=resubmitted,
                by_category=dict(Counter(record.rejection_category for record in records)),
                top_reasons=[{"reason": reason, "count": count} for reason, count in reasons.most_common(5)]
            )
            return stats.model_dump(by_alias=True)

        return self.store.read(read)
