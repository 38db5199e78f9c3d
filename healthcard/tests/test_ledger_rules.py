# SPDX-License-Identifier: Apache-2.0

"""
Tests for payment amount rules and the rejection record adapter.
"""

import pytest
from datetime import datetime, timedelta

from healthcard.domain.audit_records import (
    assign_legacy_attempt_numbers,
    normalize_document_rejection,
    normalize_payment_rejection
)
from healthcard.domain.payments import (
    can_be_superseded,
    select_current_payment,
    validate_payment_amounts
)

T0 = datetime(2025, 6, 1, 10, 0)


class TestPaymentAmounts:

    def test_net_amount_must_add_up(self):
        assert validate_payment_amounts(300, 20, 320).is_valid is True

        result = validate_payment_amounts(300, 20, 310)
        assert result.is_valid is False
        assert "does not equal" in result.errors[0]

    def test_cent_precision(self):
        """Test that float inputs compare by their written value."""
        assert validate_payment_amounts(0.1, 0.2, 0.3).is_valid is True
        assert validate_payment_amounts("100.000", 0, "100").is_valid is True

    def test_sub_cent_amount_is_not_rounded_away(self):
        result = validate_payment_amounts(100.004, 0, 100.0)

        assert result.is_valid is False
        assert "at most two decimal places" in result.errors[0]

    def test_sub_cent_parts_are_not_summed_after_rounding(self):
        result = validate_payment_amounts(10.005, 0.005, 10.01)

        assert result.is_valid is False
        assert all("at most two decimal places" in error for error in result.errors)

    def test_missing_net_amount_is_exact_sum(self):
        assert validate_payment_amounts(300, 20).is_valid is True
        assert validate_payment_amounts(300, 20.001).is_valid is False

    @pytest.mark.parametrize("amount,fee,net,message", [
        (0, 0, 0, "greater than zero"),
        (100, -5, 95, "cannot be negative"),
        ("abc", 0, 0, "numeric"),
    ])
    def test_invalid_amounts(self, amount, fee, net, message):
        result = validate_payment_amounts(amount, fee, net)

        assert result.is_valid is False
        assert any(message in error for error in result.errors)


class TestCurrentPayment:

    def test_active_payment_wins(self):
        payments = [
            {"id": "p1", "paymentStatus": "Complete", "createdAt": T0},
            {"id": "p2", "paymentStatus": "Failed", "createdAt": T0 + timedelta(days=1)},
        ]

        assert select_current_payment(payments)["id"] == "p1"

    def test_latest_when_none_active(self):
        payments = [
            {"id": "p1", "paymentStatus": "Failed", "createdAt": T0},
            {"id": "p2", "paymentStatus": "Cancelled", "createdAt": T0 + timedelta(days=1)},
        ]

        assert select_current_payment(payments)["id"] == "p2"
        assert select_current_payment([]) is None

    @pytest.mark.parametrize("status,expected", [
        ("Failed", True), ("Cancelled", True), ("Pending", False), ("Complete", False), ("Refunded", False),
    ])
    def test_can_be_superseded(self, status, expected):
        assert can_be_superseded(status) is expected


class TestRejectionRecordAdapter:
    """Test normalization of legacy rejection records."""

    def legacy_document(self, record_id, rejected_at, **extra):
        document = {
            "id": record_id,
            "applicationId": "app-1",
            "documentTypeId": "xray",
            "documentUploadId": "upload-1",
            "rejectedFileId": f"files/{record_id}.jpg",
            "rejectionReason": "blurry",
            "specificIssues": ["too dark"],
            "rejectedBy": "admin-1",
            "rejectedAt": rejected_at,
        }
        document.update(extra)
        return document

    def test_legacy_document_record(self):
        record = normalize_document_rejection(self.legacy_document(
            "r1", T0, wasReplaced=True, replacementUploadId="files/new.jpg"
        ))

        assert record.schema_version == 2
        assert record.attempt_number == 1
        assert record.rejected_file_ref == "files/r1.jpg"
        assert record.replacement_file_ref == "files/new.jpg"
        assert record.issues == ["too dark"]
        assert record.admin_read_by == []
        assert record.rejection_category == "other"

    def test_current_record_passes_through(self):
        document = self.legacy_document("r2", T0, schemaVersion=2, attemptNumber=3, rejectedFileRef="files/x.jpg")
        del document["rejectedFileId"]

        record = normalize_document_rejection(document)

        assert record.attempt_number == 3
        assert record.rejected_file_ref == "files/x.jpg"

    def test_legacy_payment_record(self):
        record = normalize_payment_rejection({
            "id": "pr1",
            "applicationId": "app-1",
            "paymentId": "pay-1",
            "amount": 300.0,
            "paymentMethod": "CityHall",
            "referenceNumber": "OR-1",
            "rejectionReason": "unreadable receipt",
            "rejectedBy": "admin-1",
            "rejectedAt": T0,
        })

        assert record.attempt_number == 1
        assert record.service_fee == 0.0
        assert record.net_amount == 300.0
        assert record.was_replaced is False

    def test_legacy_attempt_numbers_follow_rejection_time(self):
        records = [
            normalize_document_rejection(self.legacy_document("late", T0 + timedelta(days=2))),
            normalize_document_rejection(self.legacy_document("early", T0)),
            normalize_document_rejection(self.legacy_document("middle", T0 + timedelta(days=1))),
        ]

        ordered = assign_legacy_attempt_numbers(records)

        assert [(r.id, r.attempt_number) for r in ordered] == [("early", 1), ("middle", 2), ("late", 3)]

    def test_distinct_attempt_numbers_are_kept(self):
        records = [
            normalize_document_rejection(self.legacy_document(
                "a", T0, schemaVersion=2, attemptNumber=2, rejectedFileRef="f"
            )),
            normalize_document_rejection(self.legacy_document(
                "b", T0 + timedelta(days=1), schemaVersion=2, attemptNumber=5, rejectedFileRef="g"
            )),
        ]

        assert [r.attempt_number for r in assign_legacy_attempt_numbers(records)] == [2, 5]
