# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Notification service: persists dispatcher output and serves role-scoped feeds.

Applicants read their stored notifications. Reviewers additionally see
"resubmitted" items re-derived on every fetch from the rejection audit trails,
filtered to their managed job categories and to records they have not marked
read (the record's ``adminReadBy`` set).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.audit_records import normalize_document_rejection, normalize_payment_rejection
from ..domain.authorization import Action, Principal, ResourceContext, is_in_scope
from ..domain.notifications import AUDIT_DERIVED_TYPES, ReviewEvent, dispatch
from ..middleware.error_handler import ForbiddenException, NotFoundException
from ..models.enums import AuditRecordKind, NotificationType, UserRole
from .gate import AuthorizationGate
from .store import DESCENDING, Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PAYMENT_FEED_ROLES = frozenset({UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value})


class NotificationService:
    """Service for notification persistence and feeds."""

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.clock = clock

    def emit(self, tx: StoreTransaction, event: ReviewEvent, now: datetime) -> List[str]:
        """
        Persist the notifications an event produces, inside the caller's transaction.

        Returns:
            IDs of the notifications written
        """
        admins = self.gate.list_admins(tx)
        drafts = dispatch(event, admins)
        ids = [tx.insert(Collections.NOTIFICATIONS, draft.to_entity(now).to_document()) for draft in drafts]

        if ids:
            logger.info(
                "Notifications dispatched",
                extra={
                    "event_type": event.type.value,
                    "application_id": event.application_id,
                    "recipient_count": len(ids)
                }
            )
        return ids

    def get_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        """Caller's feed, newest first."""
        with tracer.start_as_current_span("notifications.get_feed") as span:
            span.set_attributes({"user.id": user_id})

            def read(tx: StoreTransaction) -> List[Dict[str, Any]]:
                principal = self.gate.resolve_principal(tx, user_id)
                stored = tx.find(
                    Collections.NOTIFICATIONS,
                    {"recipientId": user_id},
                    sort=[("createdAt", DESCENDING)]
                )
                items = [dict(doc, source="notification") for doc in stored]
                if principal.is_reviewer:
                    items = [item for item in items if item.get("type") not in AUDIT_DERIVED_TYPES]
                    items.extend(self._derive_audit_items(tx, principal))
                items.sort(key=lambda item: item.get("createdAt") or datetime.min, reverse=True)
                return items

            items = self.store.read(read)
            span.set_attributes({"notifications.count": len(items)})
            return items

    def get_unread_count(self, user_id: str) -> int:
        return sum(1 for item in self.get_notifications(user_id) if not item.get("isRead"))

    def _derive_audit_items(self, tx: StoreTransaction, principal: Principal) -> List[Dict[str, Any]]:
        items = []
        applications: Dict[str, Optional[Dict[str, Any]]] = {}

        def application_for(application_id: str) -> Optional[Dict[str, Any]]:
            if application_id not in applications:
                applications[application_id] = tx.get(Collections.APPLICATIONS, application_id)
            return applications[application_id]

        unread = {"wasReplaced": True, "adminReadBy": {"$ne": principal.user_id}}

        document_types: Dict[str, str] = {}
        for doc in tx.find(Collections.DOCUMENT_REJECTIONS, unread):
            record = normalize_document_rejection(doc)
            application = application_for(record.application_id)
            if application is None or not is_in_scope(principal, application.get("jobCategoryId")):
                continue
            if record.document_type_id not in document_types:
                type_doc = tx.get(Collections.DOCUMENT_TYPES, record.document_type_id)
                document_types[record.document_type_id] = type_doc["name"] if type_doc else "Document"
            items.append({
                "id": f"{AuditRecordKind.DOCUMENT.value}:{record.id}",
                "source": "audit",
                "kind": AuditRecordKind.DOCUMENT.value,
                "recordId": record.id,
                "type": NotificationType.DOCUMENT_RESUBMISSION.value,
                "title": "Document Resubmitted",
                "message": (
                    f"{document_types[record.document_type_id]} was resubmitted"
                    f" (attempt {record.attempt_number}): {record.rejection_reason}"
                ),
                "applicationId": record.application_id,
                "actionUrl": f"/admin/applications/{record.application_id}",
                "isRead": False,
                "createdAt": record.replaced_at or record.rejected_at,
            })

        if principal.role in PAYMENT_FEED_ROLES:
            for doc in tx.find(Collections.PAYMENT_REJECTIONS, unread):
                record = normalize_payment_rejection(doc)
                application = application_for(record.application_id)
                if application is None or not is_in_scope(principal, application.get("jobCategoryId")):
                    continue
                items.append({
                    "id": f"{AuditRecordKind.PAYMENT.value}:{record.id}",
                    "source": "audit",
                    "kind": AuditRecordKind.PAYMENT.value,
                    "recordId": record.id,
                    "type": NotificationType.PAYMENT_RESUBMISSION.value,
                    "title": "Payment Resubmitted",
                    "message": (
                        f"Payment {record.reference_number} was replaced"
                        f" (attempt {record.attempt_number}): {record.rejection_reason}"
                    ),
                    "applicationId": record.application_id,
                    "actionUrl": f"/admin/applications/{record.application_id}",
                    "isRead": False,
                    "createdAt": record.replaced_at or record.rejected_at,
                })
        return items

    def mark_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        """Mark one of the caller's notifications read."""
        with tracer.start_as_current_span("notifications.mark_read") as span:
            span.set_attributes({"user.id": user_id, "notification.id": notification_id})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                self.gate.resolve_principal(tx, user_id)
                document = tx.get(Collections.NOTIFICATIONS, notification_id)
                if document is None:
                    raise NotFoundException(f"Notification {notification_id} not found")
                if document["recipientId"] != user_id:
                    raise ForbiddenException("Notification belongs to another user")
                if not document.get("isRead"):
                    now = self.clock()
                    updates = {"isRead": True, "readAt": now, "updatedAt": now}
                    tx.update(Collections.NOTIFICATIONS, notification_id, updates)
                    document.update(updates)
                return document

            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread stored notification of the caller read."""
        def work(tx: StoreTransaction) -> int:
            self.gate.resolve_principal(tx, user_id)
            now = self.clock()
            return tx.update_many(
                Collections.NOTIFICATIONS,
                {"recipientId": user_id, "isRead": False},
                {"isRead": True, "readAt": now, "updatedAt": now}
            )

        count = self.store.run_in_transaction(work)
        logger.info("Notifications marked read", extra={"user_id": user_id, "count": count})
        return count

    def clear_read(self, user_id: str) -> int:
        """Delete the caller's read notifications."""
        def work(tx: StoreTransaction) -> int:
            self.gate.resolve_principal(tx, user_id)
            return tx.delete_many(Collections.NOTIFICATIONS, {"recipientId": user_id, "isRead": True})

        count = self.store.run_in_transaction(work)
        logger.info("Read notifications cleared", extra={"user_id": user_id, "count": count})
        return count

    def mark_audit_read(self, user_id: str, kind: str, record_id: str) -> None:
        """Record that a reviewer has seen an audit-derived feed item."""
        collection = (
            Collections.DOCUMENT_REJECTIONS if kind == AuditRecordKind.DOCUMENT
            else Collections.PAYMENT_REJECTIONS
        )
        action = Action.REVIEW_DOCUMENT if kind == AuditRecordKind.DOCUMENT else Action.REVIEW_PAYMENT

        def work(tx: StoreTransaction) -> None:
            principal = self.gate.resolve_principal(tx, user_id)
            record = tx.get(collection, record_id)
            if record is None:
                raise NotFoundException(f"Rejection record {record_id} not found")
            application = tx.get(Collections.APPLICATIONS, record["applicationId"])
            self.gate.require(
                principal, action,
                ResourceContext(job_category_id=application["jobCategoryId"] if application else None)
            )
            tx.add_to_set(collection, record_id, "adminReadBy", user_id)

        self.store.run_in_transaction(work)
        logger.info(
            "Audit feed item marked read",
            extra={"user_id": user_id, "kind": kind, "record_id": record_id}
        )
