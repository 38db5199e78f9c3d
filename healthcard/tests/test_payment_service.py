# SPDX-License-Identifier: Apache-2.0

"""
Tests for the payment ledger, gateway callbacks and payment audit trail.
"""

import pytest

from healthcard.middleware.error_handler import (
    ConflictException,
    NotFoundException,
    UnauthorizedException,
    ValidationException
)
from healthcard.models.enums import ApplicationStatus, NotificationType, PaymentStatus, ReviewDecision
from healthcard.services.store import Collections

from .conftest import (
    ADMIN_ID,
    APPLICANT_ID,
    COUNTER_PAYMENT,
    FOOD,
    GCASH_PAYMENT,
    INSPECTOR_ID,
    OFFICE,
    SYSTEM_ADMIN_ID
)


class TestGatewayCallbacks:
    """Test gateway success, failure and cancellation."""

    def test_success_before_submission_submits(self, scenario, services):
        application_id = scenario.create(OFFICE)
        created = services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)
        assert created["applicationStatus"] == ApplicationStatus.PENDING_PAYMENT.value

        result = services.payments.handle_gateway_success(created["paymentId"], transaction_id="tx-1")

        assert result["applicationStatus"] == ApplicationStatus.SUBMITTED.value
        assert result["alreadyProcessed"] is False
        application = scenario.get(Collections.APPLICATIONS, application_id)
        assert application["paymentDeadline"] is None
        assert application["submittedAt"] is not None
        payment = scenario.get(Collections.PAYMENTS, created["paymentId"])
        assert payment["paymentStatus"] == PaymentStatus.COMPLETE.value
        assert payment["transactionId"] == "tx-1"

    def test_replayed_success_is_idempotent(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id)

        first = services.payments.handle_gateway_success(payment_id)
        second = services.payments.handle_gateway_success(payment_id)

        assert first["alreadyProcessed"] is False
        assert second["alreadyProcessed"] is True
        assert second["applicationStatus"] == first["applicationStatus"]
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.PAYMENT_SUCCESSFUL.value)) == 1

    def test_success_completes_review(self, scenario, services):
        app = scenario.submitted(OFFICE, settle=False)
        scenario.approve(app["id_upload"])
        scenario.approve(app["xray_upload"])
        assert scenario.status(app["application_id"]) == ApplicationStatus.UNDER_REVIEW.value

        result = services.payments.handle_gateway_success(app["payment_id"])

        assert result["applicationStatus"] == ApplicationStatus.APPROVED.value
        success = scenario.notifications_for(APPLICANT_ID, NotificationType.PAYMENT_SUCCESSFUL.value)
        assert "application is approved" in success[0]["message"]

    def test_failure_moves_to_payment_revision(self, scenario, services):
        application_id = scenario.create(FOOD)
        payment_id = scenario.submit(application_id)

        result = services.payments.handle_gateway_failure(payment_id, reason="insufficient balance")

        assert result["paymentStatus"] == PaymentStatus.FAILED.value
        assert result["applicationStatus"] == ApplicationStatus.PAYMENT_NEEDS_REVISION.value
        payment = scenario.get(Collections.PAYMENTS, payment_id)
        assert payment["failureReason"] == "insufficient balance"
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.PAYMENT_FAILED.value)) == 1

        replay = services.payments.handle_gateway_failure(payment_id, reason="insufficient balance")
        assert replay["alreadyProcessed"] is True

    def test_cancel(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id)

        result = services.payments.handle_gateway_cancel(payment_id)

        assert result["paymentStatus"] == PaymentStatus.CANCELLED.value
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.PAYMENT_CANCELLED.value)) == 1

    def test_settled_payment_cannot_fail(self, scenario, services):
        app = scenario.submitted(OFFICE)

        with pytest.raises(ConflictException):
            services.payments.handle_gateway_failure(app["payment_id"])

    def test_failed_payment_cannot_settle(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id)
        services.payments.handle_gateway_cancel(payment_id)

        with pytest.raises(ConflictException):
            services.payments.handle_gateway_success(payment_id)

    def test_unknown_payment(self, services):
        with pytest.raises(NotFoundException):
            services.payments.handle_gateway_success("missing")


class TestCreatePayment:

    def test_one_active_payment_per_application(self, scenario, services):
        application_id = scenario.create(OFFICE)
        scenario.submit(application_id)

        with pytest.raises(ConflictException):
            services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)

    def test_net_amount_mismatch(self, scenario, services):
        application_id = scenario.create(OFFICE)

        with pytest.raises(ValidationException) as error:
            services.payments.create_payment(
                APPLICANT_ID, application_id, net_amount=999.0, **GCASH_PAYMENT
            )

        assert error.value.status_code == 422
        assert scenario.find(Collections.PAYMENTS, {"applicationId": application_id}) == []

    @pytest.mark.parametrize("amounts", [
        {"amount": 100.004, "service_fee": 0.0, "net_amount": 100.0},
        {"amount": 10.005, "service_fee": 0.005, "net_amount": 10.01},
    ])
    def test_sub_cent_amounts_are_refused(self, scenario, services, amounts):
        application_id = scenario.create(OFFICE)
        payment = dict(GCASH_PAYMENT, **amounts)

        with pytest.raises(ValidationException) as error:
            services.payments.create_payment(APPLICANT_ID, application_id, **payment)

        assert any("two decimal places" in item["message"] for item in error.value.validation_errors)
        assert scenario.find(Collections.PAYMENTS, {"applicationId": application_id}) == []

    def test_net_amount_defaults_to_sum(self, scenario, services):
        application_id = scenario.create(OFFICE)

        created = services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)

        assert scenario.get(Collections.PAYMENTS, created["paymentId"])["netAmount"] == 320.0

    def test_counter_payment_requires_receipt(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment = dict(COUNTER_PAYMENT, receipt_file_ref=None)

        with pytest.raises(ValidationException):
            services.payments.create_payment(APPLICANT_ID, application_id, **payment)

    def test_draft_cannot_pay(self, scenario, services):
        application_id = scenario.create(OFFICE, draft=True)

        with pytest.raises(ConflictException):
            services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)


class TestReviewAndResubmitPayment:
    """Test the payment rejection audit trail."""

    def test_reject_then_replace(self, scenario, services):
        application_id = scenario.create(OFFICE)
        old_payment_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)

        rejected = services.payments.review_payment(
            ADMIN_ID, old_payment_id, ReviewDecision.REJECT.value,
            rejection_category="unclear_receipt", rejection_reason="Receipt is unreadable"
        )

        assert rejected["paymentStatus"] == PaymentStatus.FAILED.value
        assert rejected["attemptNumber"] == 1
        assert rejected["applicationStatus"] == ApplicationStatus.PAYMENT_NEEDS_REVISION.value
        record = scenario.get(Collections.PAYMENT_REJECTIONS, rejected["rejectionId"])
        assert record["referenceNumber"] == "OR-0001"
        assert record["receiptFileRef"] == "receipts/or-0001.jpg"
        assert record["wasReplaced"] is False
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.PAYMENT_REJECTION.value)) == 1

        replacement = dict(COUNTER_PAYMENT, reference_number="OR-0002", receipt_file_ref="receipts/or-0002.jpg")
        created = services.payments.create_payment(APPLICANT_ID, application_id, **replacement)
        assert created["applicationStatus"] == ApplicationStatus.UNDER_REVIEW.value

        resubmitted = services.payments.resubmit_payment(
            APPLICANT_ID, application_id, old_payment_id, created["paymentId"]
        )

        assert resubmitted["rejectionId"] == rejected["rejectionId"]
        record = scenario.get(Collections.PAYMENT_REJECTIONS, rejected["rejectionId"])
        assert record["wasReplaced"] is True
        assert record["replacementPaymentId"] == created["paymentId"]
        assert len(scenario.notifications_for(ADMIN_ID, NotificationType.PAYMENT_RESUBMISSION.value)) == 1

    def test_approve_counter_payment(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)

        result = services.payments.review_payment(SYSTEM_ADMIN_ID, payment_id, ReviewDecision.APPROVE.value)

        assert result["paymentStatus"] == PaymentStatus.COMPLETE.value
        assert result["applicationStatus"] == ApplicationStatus.UNDER_REVIEW.value
        assert scenario.get(Collections.PAYMENTS, payment_id)["settledAt"] is not None

    def test_inspectors_cannot_review_payments(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)

        with pytest.raises(UnauthorizedException):
            services.payments.review_payment(INSPECTOR_ID, payment_id, ReviewDecision.APPROVE.value)

    def test_attempt_numbers_are_per_application(self, scenario, services):
        application_id = scenario.create(OFFICE)
        first_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)
        services.payments.review_payment(
            ADMIN_ID, first_id, ReviewDecision.REJECT.value, rejection_reason="wrong amount"
        )
        second = services.payments.create_payment(
            APPLICANT_ID, application_id, **dict(COUNTER_PAYMENT, reference_number="OR-0002")
        )

        result = services.payments.review_payment(
            ADMIN_ID, second["paymentId"], ReviewDecision.REJECT.value, rejection_reason="still wrong"
        )

        assert result["attemptNumber"] == 2

    def test_only_failed_payments_are_superseded(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)

        with pytest.raises(ConflictException):
            services.payments.resubmit_payment(APPLICANT_ID, application_id, payment_id, payment_id)

    @pytest.mark.parametrize("close", ["handle_gateway_failure", "handle_gateway_cancel"])
    def test_gateway_closed_payment_can_be_replaced(self, scenario, services, close):
        application_id = scenario.create(OFFICE)
        old_payment_id = scenario.submit(application_id)
        getattr(services.payments, close)(old_payment_id)
        created = services.payments.create_payment(
            APPLICANT_ID, application_id, **dict(GCASH_PAYMENT, reference_number="GC-0002")
        )

        resubmitted = services.payments.resubmit_payment(
            APPLICANT_ID, application_id, old_payment_id, created["paymentId"]
        )

        assert resubmitted["rejectionId"] is None
        assert resubmitted["paymentId"] == created["paymentId"]
        assert scenario.find(Collections.PAYMENT_REJECTIONS, {"applicationId": application_id}) == []
        assert len(scenario.notifications_for(ADMIN_ID, NotificationType.PAYMENT_RESUBMISSION.value)) == 1

    def test_replacement_supersedes_one_payment(self, scenario, services):
        application_id = scenario.create(OFFICE)
        first_id = scenario.submit(application_id, payment=COUNTER_PAYMENT)
        services.payments.review_payment(
            ADMIN_ID, first_id, ReviewDecision.REJECT.value, rejection_reason="wrong amount"
        )
        second_id = services.payments.create_payment(
            APPLICANT_ID, application_id, **dict(COUNTER_PAYMENT, reference_number="OR-0002")
        )["paymentId"]
        services.payments.review_payment(
            ADMIN_ID, second_id, ReviewDecision.REJECT.value, rejection_reason="still wrong"
        )
        replacement_id = services.payments.create_payment(
            APPLICANT_ID, application_id, **dict(COUNTER_PAYMENT, reference_number="OR-0003")
        )["paymentId"]
        services.payments.resubmit_payment(APPLICANT_ID, application_id, first_id, replacement_id)

        with pytest.raises(ConflictException):
            services.payments.resubmit_payment(APPLICANT_ID, application_id, second_id, replacement_id)

        open_records = scenario.find(
            Collections.PAYMENT_REJECTIONS, {"paymentId": second_id, "wasReplaced": False}
        )
        assert len(open_records) == 1
