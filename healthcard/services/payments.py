# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Payment ledger and its rejection audit trail.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.application_state import EVALUATED_STATUSES, next_status_after_payment
from ..domain.authorization import Action, ResourceContext
from ..domain.notifications import ReviewEvent, ReviewEventType
from ..domain.payments import MANUAL_METHODS, can_be_superseded, to_money, validate_payment_amounts
from ..middleware.error_handler import ConflictException, NotFoundException, ValidationException
from ..models.entities import ACTIVE_PAYMENT_STATUSES, Application, Payment, PaymentRejectionRecord
from ..models.enums import (
    ApplicationStatus,
    PaymentMethod,
    PaymentRejectionCategory,
    PaymentStatus,
    ReviewDecision
)
from .activity import ActivityLogService
from .gate import AuthorizationGate
from .notifications import NotificationService
from .state_machine import ApplicationStateMachine
from .store import DESCENDING, Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PaymentService:
    """Record, review and settle application payments."""

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        state_machine: ApplicationStateMachine,
        notifications: NotificationService,
        activity: ActivityLogService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.state_machine = state_machine
        self.notifications = notifications
        self.activity = activity
        self.clock = clock

    def _load_payment(self, tx: StoreTransaction, payment_id: str) -> Payment:
        document = tx.get(Collections.PAYMENTS, payment_id)
        if document is None:
            raise NotFoundException(f"Payment {payment_id} not found")
        return Payment.from_document(document)

    def _event(self, event_type: ReviewEventType, application: Application, **kwargs) -> ReviewEvent:
        return ReviewEvent(
            type=event_type,
            application_id=application.id,
            applicant_id=application.user_id,
            job_category_id=application.job_category_id,
            **kwargs
        )

    def insert_payment(
        self,
        tx: StoreTransaction,
        application: Application,
        payment_method: str,
        reference_number: str,
        amount: float,
        service_fee: float = 0.0,
        net_amount: Optional[float] = None,
        receipt_file_ref: Optional[str] = None,
        checkout_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Payment:
        """
        Validate and insert a Pending payment inside the caller's transaction.

        Raises:
            ValidationException: Amounts do not add up
            ConflictException: The application already has an active payment
        """
        now = now or self.clock()
        validation = validate_payment_amounts(amount, service_fee, net_amount)
        if not validation.is_valid:
            raise ValidationException(
                "Payment amounts are invalid",
                validation_errors=[{"field": "netAmount", "message": error} for error in validation.errors]
            )
        if net_amount is None:
            net_amount = to_money(amount) + to_money(service_fee)

        method = PaymentMethod(payment_method)
        if method.value in MANUAL_METHODS and not receipt_file_ref:
            raise ValidationException(
                "Over-the-counter payments require a receipt",
                validation_errors=[{"field": "receiptFileRef", "message": "required for manual payments"}]
            )

        active = tx.find_one(
            Collections.PAYMENTS,
            {"applicationId": application.id, "paymentStatus": {"$in": sorted(ACTIVE_PAYMENT_STATUSES)}}
        )
        if active is not None:
            raise ConflictException(
                "Application already has an active payment",
                details={"payment_id": active["id"], "payment_status": active["paymentStatus"]}
            )

        payment = Payment(
            application_id=application.id,
            amount=float(to_money(amount)),
            service_fee=float(to_money(service_fee)),
            net_amount=float(to_money(net_amount)),
            payment_method=method,
            reference_number=reference_number,
            receipt_file_ref=receipt_file_ref,
            checkout_id=checkout_id,
            created_at=now,
            updated_at=now
        )
        tx.insert(Collections.PAYMENTS, payment.to_document())
        logger.info(
            "Payment recorded",
            extra={
                "payment_id": payment.id,
                "application_id": application.id,
                "payment_method": payment.payment_method,
                "net_amount": payment.net_amount
            }
        )
        return payment

    def create_payment(self, actor_id: str, application_id: str, **payment_fields) -> Dict[str, Any]:
        """
        Record a new payment for an application owned by the caller.

        Allowed once the form is complete; while under review this is how a
        failed or rejected payment is replaced.
        """
        with tracer.start_as_current_span("payments.create") as span:
            span.set_attributes({"application.id": application_id, "user.id": actor_id})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                application = self.state_machine.load_application(tx, application_id)
                self.gate.authorize(
                    tx, actor_id, Action.MANAGE_OWN_APPLICATION,
                    ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
                )
                self.state_machine.ensure_mutable(application)
                if application.status == ApplicationStatus.DRAFT:
                    raise ConflictException("Complete the application form before paying")

                payment = self.insert_payment(tx, application, now=now, **payment_fields)
                status = self.state_machine.reevaluate(
                    tx, application, now, actor_id=actor_id, reviewer_action=False
                )
                return {"paymentId": payment.id, "paymentStatus": payment.payment_status,
                        "applicationStatus": status}

            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def review_payment(
        self,
        actor_id: str,
        payment_id: str,
        decision: str,
        remarks: Optional[str] = None,
        rejection_category: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        issues: Optional[list] = None
    ) -> Dict[str, Any]:
        """
        Approve or reject a pending over-the-counter payment.

        A rejection marks the payment Failed, appends a PaymentRejectionRecord
        numbered per application and notifies the applicant.
        """
        with tracer.start_as_current_span("payments.review") as span:
            span.set_attributes({"payment.id": payment_id, "user.id": actor_id, "review.decision": decision})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                payment = self._load_payment(tx, payment_id)
                application = self.state_machine.load_application(tx, payment.application_id)
                principal = self.gate.authorize(
                    tx, actor_id, Action.REVIEW_PAYMENT,
                    ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
                )
                self.state_machine.ensure_mutable(application)
                if application.status not in EVALUATED_STATUSES:
                    raise ConflictException(
                        f"Application is {application.status}; payments are reviewed after submission",
                        details={"status": application.status}
                    )
                if payment.payment_status != PaymentStatus.PENDING:
                    raise ConflictException(
                        f"Payment is {payment.payment_status}; only pending payments can be reviewed",
                        details={"payment_id": payment.id, "payment_status": payment.payment_status}
                    )

                result: Dict[str, Any] = {"paymentId": payment.id}
                if decision == ReviewDecision.APPROVE:
                    tx.update(Collections.PAYMENTS, payment.id, {
                        "paymentStatus": PaymentStatus.COMPLETE.value,
                        "reviewedBy": principal.user_id,
                        "reviewedAt": now,
                        "adminRemarks": remarks,
                        "settledAt": now,
                        "updatedAt": now
                    })
                    result["paymentStatus"] = PaymentStatus.COMPLETE.value
                    action = "payment_approved"
                else:
                    if not rejection_reason or not rejection_reason.strip():
                        raise ValidationException(
                            "A rejection reason is required",
                            validation_errors=[{"field": "rejection.reason", "message": "required"}]
                        )
                    attempt_number = tx.count(
                        Collections.PAYMENT_REJECTIONS, {"applicationId": application.id}
                    ) + 1
                    record = PaymentRejectionRecord(
                        application_id=application.id,
                        payment_id=payment.id,
                        amount=payment.amount,
                        service_fee=payment.service_fee,
                        net_amount=payment.net_amount,
                        payment_method=payment.payment_method,
                        reference_number=payment.reference_number,
                        receipt_file_ref=payment.receipt_file_ref,
                        rejection_category=PaymentRejectionCategory(
                            rejection_category or PaymentRejectionCategory.OTHER.value
                        ),
                        rejection_reason=rejection_reason.strip(),
                        issues=issues or [],
                        rejected_by=principal.user_id,
                        rejected_at=now,
                        attempt_number=attempt_number,
                        created_at=now,
                        updated_at=now
                    )
                    tx.insert(Collections.PAYMENT_REJECTIONS, record.to_document())
                    tx.update(Collections.PAYMENTS, payment.id, {
                        "paymentStatus": PaymentStatus.FAILED.value,
                        "reviewedBy": principal.user_id,
                        "reviewedAt": now,
                        "adminRemarks": remarks or record.rejection_reason,
                        "failureReason": record.rejection_reason,
                        "updatedAt": now
                    })
                    self.notifications.emit(tx, self._event(
                        ReviewEventType.PAYMENT_REJECTED, application,
                        actor_id=principal.user_id,
                        reason=record.rejection_reason,
                        attempt_number=attempt_number
                    ), now)
                    result.update({
                        "paymentStatus": PaymentStatus.FAILED.value,
                        "rejectionId": record.id,
                        "attemptNumber": attempt_number
                    })
                    action = "payment_rejected"

                self.activity.log_action(
                    tx, principal.user_id, action, "payment", payment.id, now,
                    application_id=application.id,
                    details={"reference_number": payment.reference_number, "remarks": remarks}
                )
                result["applicationStatus"] = self.state_machine.reevaluate(
                    tx, application, now, actor_id=principal.user_id, reviewer_action=True
                )
                return result

            try:
                result = self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "Payment reviewed",
                extra={
                    "payment_id": payment_id,
                    "reviewer_id": actor_id,
                    "payment_status": result["paymentStatus"],
                    "application_status": result["applicationStatus"]
                }
            )
            return result

    def resubmit_payment(
        self,
        actor_id: str,
        application_id: str,
        old_payment_id: str,
        new_payment_id: str
    ) -> Dict[str, Any]:
        """Link a replacement payment to the rejected one it supersedes."""
        with tracer.start_as_current_span("payments.resubmit") as span:
            span.set_attributes({
                "application.id": application_id,
                "payment.old_id": old_payment_id,
                "payment.new_id": new_payment_id
            })

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                application = self.state_machine.load_application(tx, application_id)
                self.gate.authorize(
                    tx, actor_id, Action.MANAGE_OWN_APPLICATION,
                    ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
                )
                self.state_machine.ensure_mutable(application)

                old_payment = self._load_payment(tx, old_payment_id)
                new_payment = self._load_payment(tx, new_payment_id)
                if old_payment.application_id != application.id or new_payment.application_id != application.id:
                    raise ConflictException(
                        "Both payments must belong to the application",
                        details={"application_id": application.id}
                    )
                if not can_be_superseded(old_payment.payment_status):
                    raise ConflictException(
                        f"Payment is {old_payment.payment_status} and cannot be superseded",
                        details={"payment_id": old_payment.id}
                    )
                if new_payment.payment_status != PaymentStatus.PENDING:
                    raise ConflictException(
                        "Replacement payment must be pending",
                        details={"payment_id": new_payment.id, "payment_status": new_payment.payment_status}
                    )

                already_linked = tx.find_one(
                    Collections.PAYMENT_REJECTIONS, {"replacementPaymentId": new_payment.id}
                )
                if already_linked is not None:
                    raise ConflictException(
                        "Replacement payment already supersedes another payment",
                        details={"payment_id": new_payment.id, "rejection_id": already_linked["id"]}
                    )

                # Gateway failures and cancellations leave no rejection record
                open_record = tx.find_one(
                    Collections.PAYMENT_REJECTIONS,
                    {"paymentId": old_payment.id, "wasReplaced": {"$ne": True}},
                    sort=[("attemptNumber", DESCENDING)]
                )
                if open_record is not None:
                    tx.update(Collections.PAYMENT_REJECTIONS, open_record["id"], {
                        "wasReplaced": True,
                        "replacedAt": now,
                        "replacementPaymentId": new_payment.id,
                        "updatedAt": now
                    })
                self.notifications.emit(tx, self._event(
                    ReviewEventType.PAYMENT_RESUBMITTED, application,
                    actor_id=actor_id,
                    attempt_number=open_record.get("attemptNumber") if open_record else None
                ), now)
                status = self.state_machine.reevaluate(
                    tx, application, now, actor_id=actor_id, reviewer_action=False
                )
                return {"rejectionId": open_record["id"] if open_record else None,
                        "paymentId": new_payment.id, "applicationStatus": status}

            try:
                result = self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "Payment resubmitted",
                extra={"application_id": application_id, "old_payment_id": old_payment_id,
                       "new_payment_id": new_payment_id}
            )
            return result

    def handle_gateway_success(
        self,
        payment_id: str,
        checkout_id: Optional[str] = None,
        transaction_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Settle a payment reported successful by the gateway.

        Replaying the callback on a Complete payment returns the current state
        without writing anything or notifying again.
        """
        with tracer.start_as_current_span("payments.gateway_success") as span:
            span.set_attribute("payment.id", payment_id)

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                payment = self._load_payment(tx, payment_id)
                application = self.state_machine.load_application(tx, payment.application_id)

                if payment.payment_status == PaymentStatus.COMPLETE:
                    logger.info("Gateway success replayed", extra={"payment_id": payment.id})
                    return {"paymentId": payment.id, "paymentStatus": payment.payment_status,
                            "applicationStatus": application.status, "alreadyProcessed": True}
                if payment.payment_status != PaymentStatus.PENDING:
                    raise ConflictException(
                        f"Payment is {payment.payment_status} and cannot be settled",
                        details={"payment_id": payment.id}
                    )
                self.state_machine.ensure_mutable(application)

                tx.update(Collections.PAYMENTS, payment.id, {
                    "paymentStatus": PaymentStatus.COMPLETE.value,
                    "checkoutId": checkout_id or payment.checkout_id,
                    "transactionId": transaction_id,
                    "settledAt": now,
                    "updatedAt": now
                })

                snapshot = self.state_machine.load_snapshot(tx, application)
                next_status = next_status_after_payment(snapshot)
                extra_updates = None
                if application.status == ApplicationStatus.PENDING_PAYMENT:
                    extra_updates = {"paymentDeadline": None, "submittedAt": now}
                status = self.state_machine.transition(
                    tx, application, next_status, now,
                    extra_updates=extra_updates, notify=False
                )
                self.notifications.emit(tx, self._event(
                    ReviewEventType.PAYMENT_SUCCEEDED, application, next_status=status
                ), now)
                return {"paymentId": payment.id, "paymentStatus": PaymentStatus.COMPLETE.value,
                        "applicationStatus": status, "alreadyProcessed": False}

            try:
                result = self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "Gateway payment settled",
                extra={"payment_id": payment_id, "application_status": result["applicationStatus"],
                       "already_processed": result["alreadyProcessed"]}
            )
            return result

    def handle_gateway_failure(self, payment_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._close_unsettled(payment_id, PaymentStatus.FAILED, ReviewEventType.PAYMENT_FAILED, reason)

    def handle_gateway_cancel(self, payment_id: str) -> Dict[str, Any]:
        return self._close_unsettled(payment_id, PaymentStatus.CANCELLED, ReviewEventType.PAYMENT_CANCELLED)

    def _close_unsettled(
        self,
        payment_id: str,
        outcome: PaymentStatus,
        event_type: ReviewEventType,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        with tracer.start_as_current_span(f"payments.gateway_{outcome.value.lower()}") as span:
            span.set_attribute("payment.id", payment_id)

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                payment = self._load_payment(tx, payment_id)
                application = self.state_machine.load_application(tx, payment.application_id)

                if payment.payment_status == outcome:
                    return {"paymentId": payment.id, "paymentStatus": outcome.value,
                            "applicationStatus": application.status, "alreadyProcessed": True}
                if payment.payment_status != PaymentStatus.PENDING:
                    raise ConflictException(
                        f"Payment is {payment.payment_status} and cannot be marked {outcome.value}",
                        details={"payment_id": payment.id}
                    )

                tx.update(Collections.PAYMENTS, payment.id, {
                    "paymentStatus": outcome.value,
                    "failureReason": reason,
                    "updatedAt": now
                })
                self.notifications.emit(tx, self._event(event_type, application, reason=reason), now)
                status = application.status
                if not application.is_terminal():
                    status = self.state_machine.reevaluate(tx, application, now, reviewer_action=False)
                return {"paymentId": payment.id, "paymentStatus": outcome.value,
                        "applicationStatus": status, "alreadyProcessed": False}

            try:
                result = self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "Gateway payment closed",
                extra={"payment_id": payment_id, "payment_status": outcome.value, "reason": reason}
            )
            return result
