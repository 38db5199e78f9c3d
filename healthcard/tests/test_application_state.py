# SPDX-License-Identifier: Apache-2.0

"""
Tests for the application state machine rules.
"""

import itertools
import pytest
from datetime import datetime, timedelta

from healthcard.domain.application_state import (
    EVALUATED_STATUSES,
    ReviewSnapshot,
    compute_payment_deadline,
    derive_next_status,
    derive_review_status,
    documents_at_attempt_limit,
    evaluate_approval_gate,
    is_past_deadline,
    next_status_after_payment,
    validate_status_transition
)
from healthcard.models.enums import ApplicationStatus, PaymentStatus, ReviewStatus

S = ApplicationStatus
REQUIRED = ["id", "xray", "drug-test"]


def snapshot(status=S.UNDER_REVIEW.value, uploads=None, payment=PaymentStatus.COMPLETE.value, **kwargs):
    return ReviewSnapshot(
        status=status,
        required_document_type_ids=list(REQUIRED),
        upload_statuses=uploads if uploads is not None else {t: ReviewStatus.APPROVED.value for t in REQUIRED},
        payment_status=payment,
        **kwargs
    )


class TestStatusTransitions:
    """Test the transition table."""

    @pytest.mark.parametrize("current,new", [
        (S.DRAFT, S.PENDING_PAYMENT),
        (S.PENDING_PAYMENT, S.SUBMITTED),
        (S.PENDING_PAYMENT, S.ARCHIVED),
        (S.SUBMITTED, S.UNDER_REVIEW),
        (S.UNDER_REVIEW, S.DOCUMENTS_NEED_REVISION),
        (S.DOCUMENTS_NEED_REVISION, S.UNDER_REVIEW),
        (S.UNDER_REVIEW, S.FOR_ORIENTATION),
        (S.FOR_ORIENTATION, S.APPROVED),
        (S.MANUAL_REVIEW_REQUIRED, S.APPROVED),
        (S.PAYMENT_NEEDS_REVISION, S.REJECTED),
    ])
    def test_allowed_transitions(self, current, new):
        """Test transitions along the review lifecycle."""
        assert validate_status_transition(current.value, new.value).allowed is True

    @pytest.mark.parametrize("current,new", [
        (S.DRAFT, S.SUBMITTED),
        (S.PENDING_PAYMENT, S.UNDER_REVIEW),
        (S.SUBMITTED, S.ARCHIVED),
        (S.UNDER_REVIEW, S.DRAFT),
    ])
    def test_refused_transitions(self, current, new):
        result = validate_status_transition(current.value, new.value)

        assert result.allowed is False
        assert "Cannot change application status" in result.reason

    @pytest.mark.parametrize("terminal", [S.APPROVED, S.REJECTED, S.ARCHIVED])
    def test_terminal_statuses_accept_nothing(self, terminal):
        """Test that terminal statuses have no outgoing transition."""
        for target in S:
            if target == terminal:
                continue
            result = validate_status_transition(terminal.value, target.value)
            assert result.allowed is False
            assert "accepts no further changes" in result.reason

    def test_same_status_is_a_no_op(self):
        assert validate_status_transition(S.UNDER_REVIEW.value, S.UNDER_REVIEW.value).allowed is True


class TestApprovalGate:
    """The gate holds only when every required document is approved and the payment is complete."""

    PAYMENT_STATES = [None] + [status.value for status in PaymentStatus]

    @pytest.mark.parametrize("size", range(len(REQUIRED) + 1))
    def test_every_subset_of_approved_documents(self, size):
        for approved in itertools.combinations(REQUIRED, size):
            for payment in self.PAYMENT_STATES:
                uploads = {
                    type_id: ReviewStatus.APPROVED.value if type_id in approved else ReviewStatus.PENDING.value
                    for type_id in REQUIRED
                }
                gate = evaluate_approval_gate(snapshot(uploads=uploads, payment=payment))

                expected = len(approved) == len(REQUIRED) and payment == PaymentStatus.COMPLETE
                assert gate.satisfied is expected, (approved, payment)
                assert sorted(gate.missing_document_type_ids) == sorted(set(REQUIRED) - set(approved))

                derived = derive_review_status(snapshot(uploads=uploads, payment=payment))
                assert (derived == S.APPROVED) is expected, (approved, payment, derived)

    def test_missing_upload_counts_as_not_approved(self):
        uploads = {"id": ReviewStatus.APPROVED.value, "xray": ReviewStatus.APPROVED.value}

        gate = evaluate_approval_gate(snapshot(uploads=uploads))

        assert gate.satisfied is False
        assert gate.missing_document_type_ids == ["drug-test"]
        assert "1 required document(s) not approved" in gate.reason

    def test_optional_documents_do_not_block(self):
        uploads = {t: ReviewStatus.APPROVED.value for t in REQUIRED}
        uploads["cedula"] = ReviewStatus.PENDING.value

        assert evaluate_approval_gate(snapshot(uploads=uploads)).satisfied is True

    def test_reason_mentions_payment(self):
        gate = evaluate_approval_gate(snapshot(payment=PaymentStatus.PENDING.value))

        assert gate.reason == "payment is not complete"


class TestDerivedReviewStatus:
    """Test precedence of the derived review status."""

    def test_rejected_document_needs_revision(self):
        uploads = {"id": ReviewStatus.APPROVED.value, "xray": ReviewStatus.REJECTED.value}

        assert derive_review_status(snapshot(uploads=uploads)) == S.DOCUMENTS_NEED_REVISION

    def test_attempt_limit_requires_manual_review(self):
        uploads = {"id": ReviewStatus.APPROVED.value, "xray": ReviewStatus.REJECTED.value}
        state = snapshot(uploads=uploads, document_attempts={"xray": 3}, max_document_attempts=3)

        assert documents_at_attempt_limit(state) == ["xray"]
        assert derive_review_status(state) == S.MANUAL_REVIEW_REQUIRED

    def test_attempt_limit_ignored_once_document_approved(self):
        state = snapshot(document_attempts={"xray": 3}, max_document_attempts=3)

        assert documents_at_attempt_limit(state) == []
        assert derive_review_status(state) == S.APPROVED

    @pytest.mark.parametrize("payment", [PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value])
    def test_failed_payment_needs_revision(self, payment):
        assert derive_review_status(snapshot(payment=payment)) == S.PAYMENT_NEEDS_REVISION

    def test_document_revision_wins_over_payment_revision(self):
        uploads = {"id": ReviewStatus.REJECTED.value}

        state = snapshot(uploads=uploads, payment=PaymentStatus.FAILED.value)

        assert derive_review_status(state) == S.DOCUMENTS_NEED_REVISION

    def test_orientation_before_approval(self):
        state = snapshot(require_orientation=True, orientation_completed=False)

        assert derive_review_status(state) == S.FOR_ORIENTATION

    def test_completed_orientation_approves(self):
        state = snapshot(require_orientation=True, orientation_completed=True)

        assert derive_review_status(state) == S.APPROVED

    def test_pending_documents_stay_under_review(self):
        uploads = {t: ReviewStatus.PENDING.value for t in REQUIRED}

        assert derive_review_status(snapshot(uploads=uploads)) == S.UNDER_REVIEW


class TestNextStatus:
    """Test which events may move an application."""

    def test_applicant_event_keeps_submitted(self):
        uploads = {t: ReviewStatus.PENDING.value for t in REQUIRED}
        state = snapshot(status=S.SUBMITTED.value, uploads=uploads)

        assert derive_next_status(state, reviewer_action=False) == S.SUBMITTED
        assert derive_next_status(state, reviewer_action=True) == S.UNDER_REVIEW

    @pytest.mark.parametrize("status", [S.DRAFT, S.PENDING_PAYMENT, S.APPROVED, S.ARCHIVED])
    def test_statuses_outside_review_are_untouched(self, status):
        assert status.value not in EVALUATED_STATUSES
        assert derive_next_status(snapshot(status=status.value), reviewer_action=True) == status

    def test_payment_before_submission_submits(self):
        state = snapshot(status=S.PENDING_PAYMENT.value)

        assert next_status_after_payment(state) == S.SUBMITTED

    def test_payment_after_review_can_approve(self):
        assert next_status_after_payment(snapshot(status=S.PAYMENT_NEEDS_REVISION.value)) == S.APPROVED


class TestDeadlines:

    def test_compute_payment_deadline(self):
        start = datetime(2026, 1, 1, 8, 0)

        assert compute_payment_deadline(start, 7) == datetime(2026, 1, 8, 8, 0)

    def test_is_past_deadline(self):
        deadline = datetime(2026, 1, 8, 8, 0)

        assert is_past_deadline(deadline, deadline + timedelta(seconds=1)) is True
        assert is_past_deadline(deadline, deadline) is False
        assert is_past_deadline(None, deadline) is False
