# SPDX-License-Identifier: Apache-2.0

"""
Application state machine rules.

Pure functions deciding which status an application moves to. The services
load a ReviewSnapshot inside their transaction, ask this module for the next
status and write it in the same transaction, so the approval guard is always
evaluated against the data being committed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from ..models.entities import SUPERSEDABLE_PAYMENT_STATUSES, TERMINAL_APPLICATION_STATUSES
from ..models.enums import ApplicationStatus, PaymentStatus, ReviewStatus

S = ApplicationStatus

IN_REVIEW_STATUSES = frozenset({
    S.UNDER_REVIEW.value,
    S.DOCUMENTS_NEED_REVISION.value,
    S.PAYMENT_NEEDS_REVISION.value,
    S.MANUAL_REVIEW_REQUIRED.value,
})

# Statuses re-derived from the ledgers after every review event.
EVALUATED_STATUSES = IN_REVIEW_STATUSES | {S.SUBMITTED.value, S.FOR_ORIENTATION.value}

# Statuses from which an admin may issue a final rejection.
REJECTABLE_STATUSES = EVALUATED_STATUSES

_REVIEW_EXITS = {S.FOR_ORIENTATION.value, S.APPROVED.value, S.REJECTED.value}

VALID_TRANSITIONS: Dict[str, Set[str]] = {
    S.DRAFT.value: {S.PENDING_PAYMENT.value},
    S.PENDING_PAYMENT.value: {S.SUBMITTED.value, S.ARCHIVED.value},
    S.SUBMITTED.value: set(IN_REVIEW_STATUSES) | _REVIEW_EXITS,
    S.FOR_ORIENTATION.value: set(IN_REVIEW_STATUSES) | {S.APPROVED.value, S.REJECTED.value},
    S.APPROVED.value: set(),
    S.REJECTED.value: set(),
    S.ARCHIVED.value: set(),
}
for _status in IN_REVIEW_STATUSES:
    VALID_TRANSITIONS[_status] = (set(IN_REVIEW_STATUSES) - {_status}) | _REVIEW_EXITS


@dataclass
class TransitionResult:
    """Result of a transition check."""
    allowed: bool
    reason: Optional[str] = None


@dataclass
class ReviewSnapshot:
    """Everything the state machine needs to know about one application."""
    status: str
    required_document_type_ids: List[str]
    upload_statuses: Dict[str, str] = field(default_factory=dict)
    payment_status: Optional[str] = None
    document_attempts: Dict[str, int] = field(default_factory=dict)
    max_document_attempts: int = 3
    require_orientation: bool = False
    orientation_completed: bool = False


@dataclass
class GateResult:
    """Outcome of the approval guard."""
    satisfied: bool
    missing_document_type_ids: List[str] = field(default_factory=list)
    payment_complete: bool = False

    @property
    def reason(self) -> Optional[str]:
        if self.satisfied:
            return None
        parts = []
        if self.missing_document_type_ids:
            parts.append(
                f"{len(self.missing_document_type_ids)} required document(s) not approved"
            )
        if not self.payment_complete:
            parts.append("payment is not complete")
        return "; ".join(parts)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_APPLICATION_STATUSES


def validate_status_transition(current_status: str, new_status: str) -> TransitionResult:
    """
    Validate an application status transition.

    Args:
        current_status: Current application status
        new_status: Desired status

    Returns:
        TransitionResult with the reason when refused
    """
    if current_status == new_status:
        return TransitionResult(allowed=True)

    allowed = VALID_TRANSITIONS.get(current_status, set())
    if new_status in allowed:
        return TransitionResult(allowed=True)

    if is_terminal(current_status):
        return TransitionResult(
            allowed=False,
            reason=f"Application is {current_status} and accepts no further changes"
        )
    return TransitionResult(
        allowed=False,
        reason=f"Cannot change application status from {current_status} to {new_status}"
    )


def evaluate_approval_gate(snapshot: ReviewSnapshot) -> GateResult:
    """Every required document approved and the payment complete."""
    missing = [
        type_id for type_id in snapshot.required_document_type_ids
        if snapshot.upload_statuses.get(type_id) != ReviewStatus.APPROVED
    ]
    payment_complete = snapshot.payment_status == PaymentStatus.COMPLETE
    return GateResult(
        satisfied=not missing and payment_complete,
        missing_document_type_ids=missing,
        payment_complete=payment_complete
    )


def documents_at_attempt_limit(snapshot: ReviewSnapshot) -> List[str]:
    """Rejected document types whose rejection count reached the limit."""
    return sorted(
        type_id for type_id, status in snapshot.upload_statuses.items()
        if status == ReviewStatus.REJECTED
        and snapshot.document_attempts.get(type_id, 0) >= snapshot.max_document_attempts
    )


def derive_review_status(snapshot: ReviewSnapshot) -> str:
    """
    Derive the status an application under review should hold.

    Precedence: manual review, document revision, payment revision, the
    approval guard (orientation first when the category requires it), and
    finally plain Under Review.
    """
    if documents_at_attempt_limit(snapshot):
        return S.MANUAL_REVIEW_REQUIRED.value

    if any(status == ReviewStatus.REJECTED for status in snapshot.upload_statuses.values()):
        return S.DOCUMENTS_NEED_REVISION.value

    if snapshot.payment_status in SUPERSEDABLE_PAYMENT_STATUSES:
        return S.PAYMENT_NEEDS_REVISION.value

    if evaluate_approval_gate(snapshot).satisfied:
        if snapshot.require_orientation and not snapshot.orientation_completed:
            return S.FOR_ORIENTATION.value
        return S.APPROVED.value

    return S.UNDER_REVIEW.value


def derive_next_status(snapshot: ReviewSnapshot, reviewer_action: bool) -> str:
    """
    Next status after an event on one of the application's ledgers.

    Only reviewer actions move a Submitted application into review; events
    raised by the applicant or the gateway leave it Submitted unless the
    derivation lands on something other than Under Review.
    """
    if snapshot.status not in EVALUATED_STATUSES:
        return snapshot.status
    derived = derive_review_status(snapshot)
    if snapshot.status == S.SUBMITTED and not reviewer_action and derived == S.UNDER_REVIEW:
        return S.SUBMITTED.value
    return derived


def next_status_after_payment(snapshot: ReviewSnapshot) -> str:
    """
    Status to move to once the payment settles.

    Before submission the application simply becomes Submitted. Afterwards
    the usual derivation applies.
    """
    if snapshot.status == S.PENDING_PAYMENT:
        return S.SUBMITTED.value
    return derive_next_status(snapshot, reviewer_action=False)


def compute_payment_deadline(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def is_past_deadline(deadline: Optional[datetime], now: datetime) -> bool:
    return deadline is not None and now > deadline
