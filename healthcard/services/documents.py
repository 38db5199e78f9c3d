# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Document ledger and its rejection audit trail.

One DocumentUpload row exists per (application, document type). Replacing a
file rewrites that row; every rejection appends a DocumentRejectionRecord
whose attempt number is assigned inside the same transaction from the
records already committed.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.application_state import EVALUATED_STATUSES
from ..domain.audit_records import normalize_document_rejection
from ..domain.authorization import Action, Principal, ResourceContext, is_in_scope
from ..domain.notifications import ReviewEvent, ReviewEventType
from ..middleware.error_handler import ConflictException, NotFoundException, ValidationException
from ..models.entities import Application, DocumentRejectionRecord, DocumentUpload
from ..models.enums import (
    ApplicationStatus,
    DocumentRejectionCategory,
    ReviewDecision,
    ReviewStatus
)
from .activity import ActivityLogService
from .blob import BlobStore, BlobStoreError
from .gate import AuthorizationGate
from .notifications import NotificationService
from .state_machine import ApplicationStateMachine
from .store import ASCENDING, DESCENDING, Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class DocumentService:
    """Upload, review, resubmit and delete application documents."""

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        state_machine: ApplicationStateMachine,
        notifications: NotificationService,
        activity: ActivityLogService,
        blob_store: BlobStore,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.state_machine = state_machine
        self.notifications = notifications
        self.activity = activity
        self.blob_store = blob_store
        self.clock = clock

    # Helpers

    def _load_upload(self, tx: StoreTransaction, upload_id: str) -> DocumentUpload:
        document = tx.get(Collections.DOCUMENT_UPLOADS, upload_id)
        if document is None:
            raise NotFoundException(f"Document upload {upload_id} not found")
        return DocumentUpload.from_document(document)

    def _document_name(self, tx: StoreTransaction, document_type_id: str) -> str:
        type_doc = tx.get(Collections.DOCUMENT_TYPES, document_type_id)
        return type_doc["name"] if type_doc else "Document"

    def _rejection_count(self, tx: StoreTransaction, application_id: str, document_type_id: str) -> int:
        return tx.count(
            Collections.DOCUMENT_REJECTIONS,
            {"applicationId": application_id, "documentTypeId": document_type_id}
        )

    def _authorize_owner(self, tx: StoreTransaction, actor_id: str, application: Application) -> Principal:
        return self.gate.authorize(
            tx, actor_id, Action.MANAGE_OWN_APPLICATION,
            ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
        )

    @staticmethod
    def _fail_span(span, error: Exception) -> None:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))

    # Operations

    def upload_document(
        self,
        actor_id: str,
        application_id: str,
        document_type_id: str,
        file_ref: str,
        original_file_name: Optional[str] = None,
        extracted_metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Store a file for one checklist entry of an application.

        A Pending upload has its file replaced; a Rejected one goes through
        the resubmission path so its rejection record is closed atomically.

        Returns:
            ID of the DocumentUpload row
        """
        with tracer.start_as_current_span("documents.upload") as span:
            span.set_attributes({
                "application.id": application_id,
                "document_type.id": document_type_id,
                "user.id": actor_id
            })

            def work(tx: StoreTransaction) -> str:
                now = self.clock()
                application = self.state_machine.load_application(tx, application_id)
                self._authorize_owner(tx, actor_id, application)
                self.state_machine.ensure_mutable(application)

                if tx.get(Collections.DOCUMENT_TYPES, document_type_id) is None:
                    raise NotFoundException(f"Document type {document_type_id} not found")
                link = tx.find_one(
                    Collections.JOB_CATEGORY_DOCUMENTS,
                    {"jobCategoryId": application.job_category_id, "documentTypeId": document_type_id}
                )
                if link is None:
                    raise ValidationException(
                        "Document type is not part of this job category's requirements",
                        validation_errors=[{"field": "documentTypeId", "message": "not in checklist"}]
                    )

                existing = tx.find_one(
                    Collections.DOCUMENT_UPLOADS,
                    {"applicationId": application_id, "documentTypeId": document_type_id}
                )
                if existing is None:
                    upload = DocumentUpload(
                        application_id=application_id,
                        document_type_id=document_type_id,
                        file_ref=file_ref,
                        original_file_name=original_file_name,
                        extracted_metadata=extracted_metadata or {},
                        uploaded_at=now,
                        created_at=now,
                        updated_at=now
                    )
                    tx.insert(Collections.DOCUMENT_UPLOADS, upload.to_document())
                    logger.info(
                        "Document uploaded",
                        extra={"upload_id": upload.id, "application_id": application_id,
                               "document_type_id": document_type_id}
                    )
                    return upload.id

                upload = DocumentUpload.from_document(existing)
                if upload.review_status == ReviewStatus.APPROVED:
                    raise ConflictException(
                        "Document is already approved and cannot be replaced",
                        details={"upload_id": upload.id}
                    )
                if upload.review_status == ReviewStatus.REJECTED:
                    self._resubmit(tx, application, upload, file_ref, original_file_name, now)
                    return upload.id

                tx.update(Collections.DOCUMENT_UPLOADS, upload.id, {
                    "fileRef": file_ref,
                    "originalFileName": original_file_name,
                    "extractedMetadata": extracted_metadata or {},
                    "reviewStatus": ReviewStatus.PENDING.value,
                    "reviewedBy": None,
                    "reviewedAt": None,
                    "adminRemarks": None,
                    "uploadedAt": now,
                    "updatedAt": now
                })
                logger.info(
                    "Pending document replaced",
                    extra={"upload_id": upload.id, "application_id": application_id}
                )
                return upload.id

            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                self._fail_span(span, e)
                raise

    def resubmit_document(
        self,
        actor_id: str,
        upload_id: str,
        file_ref: str,
        original_file_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Replace a rejected document and close its open rejection record."""
        with tracer.start_as_current_span("documents.resubmit") as span:
            span.set_attributes({"upload.id": upload_id, "user.id": actor_id})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                upload = self._load_upload(tx, upload_id)
                application = self.state_machine.load_application(tx, upload.application_id)
                self._authorize_owner(tx, actor_id, application)
                self.state_machine.ensure_mutable(application)
                return self._resubmit(tx, application, upload, file_ref, original_file_name, now)

            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                self._fail_span(span, e)
                raise

    def _resubmit(
        self,
        tx: StoreTransaction,
        application: Application,
        upload: DocumentUpload,
        file_ref: str,
        original_file_name: Optional[str],
        now: datetime
    ) -> Dict[str, Any]:
        if upload.review_status != ReviewStatus.REJECTED:
            raise ConflictException(
                f"Only rejected documents can be resubmitted (current status: {upload.review_status})",
                details={"upload_id": upload.id, "review_status": upload.review_status}
            )

        attempts = self._rejection_count(tx, application.id, upload.document_type_id)
        if attempts >= self.state_machine.policy.max_document_attempts:
            raise ConflictException(
                "Maximum resubmission attempts reached; in-person verification is required",
                details={"attempts": attempts}
            )

        open_record = tx.find_one(
            Collections.DOCUMENT_REJECTIONS,
            {
                "applicationId": application.id,
                "documentTypeId": upload.document_type_id,
                "wasReplaced": {"$ne": True}
            },
            sort=[("attemptNumber", DESCENDING), ("rejectedAt", DESCENDING)]
        )
        if open_record is None:
            raise ConflictException(
                "No open rejection found for this document",
                details={"upload_id": upload.id}
            )
        record = normalize_document_rejection(open_record)
        attempt_number = record.attempt_number

        if file_ref == record.rejected_file_ref:
            raise ValidationException(
                "The resubmitted file must differ from the rejected one",
                validation_errors=[{"field": "fileRef", "message": "same file as the rejected upload"}]
            )

        tx.update(Collections.DOCUMENT_UPLOADS, upload.id, {
            "fileRef": file_ref,
            "originalFileName": original_file_name,
            "reviewStatus": ReviewStatus.PENDING.value,
            "reviewedBy": None,
            "reviewedAt": None,
            "adminRemarks": None,
            "uploadedAt": now,
            "updatedAt": now
        })
        tx.update(Collections.DOCUMENT_REJECTIONS, open_record["id"], {
            "wasReplaced": True,
            "replacedAt": now,
            "replacementFileRef": file_ref,
            "updatedAt": now
        })

        document_name = self._document_name(tx, upload.document_type_id)
        self.notifications.emit(tx, ReviewEvent(
            type=ReviewEventType.DOCUMENT_RESUBMITTED,
            application_id=application.id,
            applicant_id=application.user_id,
            job_category_id=application.job_category_id,
            actor_id=application.user_id,
            document_type_id=upload.document_type_id,
            document_name=document_name,
            attempt_number=attempt_number
        ), now)

        status = self.state_machine.reevaluate(
            tx, application, now, actor_id=application.user_id, reviewer_action=False
        )

        logger.info(
            "Document resubmitted",
            extra={
                "upload_id": upload.id,
                "application_id": application.id,
                "rejection_id": open_record["id"],
                "attempt_number": attempt_number,
                "application_status": status
            }
        )
        return {
            "uploadId": upload.id,
            "reviewStatus": ReviewStatus.PENDING.value,
            "rejectionId": open_record["id"],
            "applicationStatus": status
        }

    def review_document(
        self,
        actor_id: str,
        upload_id: str,
        decision: str,
        remarks: Optional[str] = None,
        rejection_category: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        issues: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Approve or reject a pending document.

        A rejection appends an audit record numbered after the rejections
        already committed for this (application, document type), notifies the
        applicant and re-evaluates the application.
        """
        with tracer.start_as_current_span("documents.review") as span:
            span.set_attributes({"upload.id": upload_id, "user.id": actor_id, "review.decision": decision})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                upload = self._load_upload(tx, upload_id)
                application = self.state_machine.load_application(tx, upload.application_id)
                principal = self.gate.authorize(
                    tx, actor_id, Action.REVIEW_DOCUMENT,
                    ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
                )
                self.state_machine.ensure_mutable(application)
                if application.status not in EVALUATED_STATUSES:
                    raise ConflictException(
                        f"Application is {application.status}; documents are reviewed after submission",
                        details={"status": application.status}
                    )

                in_person_override = (
                    decision == ReviewDecision.APPROVE
                    and upload.review_status == ReviewStatus.REJECTED
                    and application.status == ApplicationStatus.MANUAL_REVIEW_REQUIRED
                )
                if upload.review_status != ReviewStatus.PENDING and not in_person_override:
                    raise ConflictException(
                        f"Document is {upload.review_status}; only pending documents can be reviewed",
                        details={"upload_id": upload.id, "review_status": upload.review_status}
                    )

                document_name = self._document_name(tx, upload.document_type_id)
                result: Dict[str, Any] = {"uploadId": upload.id}

                if decision == ReviewDecision.APPROVE:
                    tx.update(Collections.DOCUMENT_UPLOADS, upload.id, {
                        "reviewStatus": ReviewStatus.APPROVED.value,
                        "reviewedBy": principal.user_id,
                        "reviewedAt": now,
                        "adminRemarks": remarks,
                        "updatedAt": now
                    })
                    result["reviewStatus"] = ReviewStatus.APPROVED.value
                    action = "document_approved_in_person" if in_person_override else "document_approved"
                else:
                    if not rejection_reason or not rejection_reason.strip():
                        raise ValidationException(
                            "A rejection reason is required",
                            validation_errors=[{"field": "rejection.reason", "message": "required"}]
                        )
                    category = DocumentRejectionCategory(rejection_category or DocumentRejectionCategory.OTHER.value)
                    attempt_number = self._rejection_count(tx, application.id, upload.document_type_id) + 1
                    record = DocumentRejectionRecord(
                        application_id=application.id,
                        document_type_id=upload.document_type_id,
                        document_upload_id=upload.id,
                        rejected_file_ref=upload.file_ref,
                        original_file_name=upload.original_file_name,
                        rejection_category=category,
                        rejection_reason=rejection_reason.strip(),
                        issues=issues or [],
                        rejected_by=principal.user_id,
                        rejected_at=now,
                        attempt_number=attempt_number,
                        created_at=now,
                        updated_at=now
                    )
                    tx.insert(Collections.DOCUMENT_REJECTIONS, record.to_document())
                    tx.update(Collections.DOCUMENT_UPLOADS, upload.id, {
                        "reviewStatus": ReviewStatus.REJECTED.value,
                        "reviewedBy": principal.user_id,
                        "reviewedAt": now,
                        "adminRemarks": remarks or record.rejection_reason,
                        "updatedAt": now
                    })
                    self.notifications.emit(tx, ReviewEvent(
                        type=ReviewEventType.DOCUMENT_REJECTED,
                        application_id=application.id,
                        applicant_id=application.user_id,
                        job_category_id=application.job_category_id,
                        actor_id=principal.user_id,
                        document_type_id=upload.document_type_id,
                        document_name=document_name,
                        reason=record.rejection_reason,
                        attempt_number=attempt_number
                    ), now)
                    result.update({
                        "reviewStatus": ReviewStatus.REJECTED.value,
                        "rejectionId": record.id,
                        "attemptNumber": attempt_number
                    })
                    action = "document_rejected"

                self.activity.log_action(
                    tx, principal.user_id, action, "document_upload", upload.id, now,
                    application_id=application.id,
                    details={"document_type_id": upload.document_type_id, "remarks": remarks}
                )
                result["applicationStatus"] = self.state_machine.reevaluate(
                    tx, application, now, actor_id=principal.user_id,
                    reviewer_action=True, document_name=document_name
                )
                return result

            try:
                result = self.store.run_in_transaction(work)
            except Exception as e:
                self._fail_span(span, e)
                raise

            logger.info(
                "Document reviewed",
                extra={
                    "upload_id": upload_id,
                    "reviewer_id": actor_id,
                    "review_status": result["reviewStatus"],
                    "application_status": result["applicationStatus"]
                }
            )
            return result

    def delete_document(self, actor_id: str, upload_id: str) -> None:
        """
        Remove a pending upload; the blob is deleted after the commit.

        Approved uploads need an admin override and rejected ones are replaced
        through resubmission, so both are refused.
        """
        with tracer.start_as_current_span("documents.delete") as span:
            span.set_attributes({"upload.id": upload_id, "user.id": actor_id})

            def work(tx: StoreTransaction) -> str:
                upload = self._load_upload(tx, upload_id)
                application = self.state_machine.load_application(tx, upload.application_id)
                self._authorize_owner(tx, actor_id, application)
                self.state_machine.ensure_mutable(application)
                if upload.review_status == ReviewStatus.APPROVED:
                    raise ConflictException("Approved documents cannot be deleted")
                if upload.review_status == ReviewStatus.REJECTED:
                    raise ConflictException("Rejected documents must be resubmitted, not deleted")
                tx.delete(Collections.DOCUMENT_UPLOADS, upload.id)
                return upload.file_ref

            try:
                file_ref = self.store.run_in_transaction(work)
            except Exception as e:
                self._fail_span(span, e)
                raise

            logger.info("Document deleted", extra={"upload_id": upload_id, "user_id": actor_id})
            try:
                self.blob_store.delete(file_ref)
            except BlobStoreError as e:
                logger.error(
                    "Blob deletion failed after document delete",
                    extra={"upload_id": upload_id, "file_ref": file_ref, "error": str(e)}
                )

    def list_pending_documents(self, actor_id: str) -> List[Dict[str, Any]]:
        """Pending uploads across every application the caller may review."""
        def read(tx: StoreTransaction) -> List[Dict[str, Any]]:
            principal = self.gate.resolve_principal(tx, actor_id)
            self.gate.require_role(principal, Action.REVIEW_DOCUMENT)

            queue = []
            applications: Dict[str, Optional[Dict[str, Any]]] = {}
            uploads = tx.find(
                Collections.DOCUMENT_UPLOADS,
                {"reviewStatus": ReviewStatus.PENDING.value},
                sort=[("uploadedAt", ASCENDING)]
            )
            for upload in uploads:
                application_id = upload["applicationId"]
                if application_id not in applications:
                    applications[application_id] = tx.get(Collections.APPLICATIONS, application_id)
                application = applications[application_id]
                if application is None or application["status"] not in EVALUATED_STATUSES:
                    continue
                if not is_in_scope(principal, application["jobCategoryId"]):
                    continue
                queue.append({
                    "upload": upload,
                    "documentType": tx.get(Collections.DOCUMENT_TYPES, upload["documentTypeId"]),
                    "application": {
                        "id": application["id"],
                        "status": application["status"],
                        "jobCategoryId": application["jobCategoryId"],
                        "firstName": application["firstName"],
                        "lastName": application["lastName"],
                    },
                })
            return queue

        return self.store.read(read)
