# SPDX-License-Identifier: Apache-2.0

"""
Read-time adapter for rejection audit records.

Records written before attempt numbers and admin read tracking existed
(schema version 1) used different field names. They are normalized here into
the current shape so every reader works with one record type; writers only
ever produce the current version.
"""

from typing import Any, Dict, List

from ..models.entities import DocumentRejectionRecord, PaymentRejectionRecord

CURRENT_SCHEMA_VERSION = 2


def _normalize_common(document: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(document)
    if "specificIssues" in normalized and "issues" not in normalized:
        normalized["issues"] = normalized.pop("specificIssues")
    normalized.setdefault("issues", [])
    normalized.setdefault("adminReadBy", [])
    normalized.setdefault("wasReplaced", False)
    normalized.setdefault("rejectionCategory", "other")
    return normalized


def normalize_document_rejection(document: Dict[str, Any]) -> DocumentRejectionRecord:
    """Build a current-version document rejection record from any stored shape."""
    normalized = _normalize_common(document)
    if normalized.get("schemaVersion", 1) < CURRENT_SCHEMA_VERSION:
        if "rejectedFileId" in normalized and "rejectedFileRef" not in normalized:
            normalized["rejectedFileRef"] = normalized.pop("rejectedFileId")
        if "replacementUploadId" in normalized:
            # v1 pointed at a new upload row; v2 keeps the row and records the file
            normalized.setdefault("replacementFileRef", normalized.pop("replacementUploadId"))
        normalized.setdefault("attemptNumber", 1)
        normalized["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return DocumentRejectionRecord.from_document(normalized)


def normalize_payment_rejection(document: Dict[str, Any]) -> PaymentRejectionRecord:
    """Build a current-version payment rejection record from any stored shape."""
    normalized = _normalize_common(document)
    if normalized.get("schemaVersion", 1) < CURRENT_SCHEMA_VERSION:
        normalized.setdefault("attemptNumber", 1)
        normalized.setdefault("serviceFee", 0.0)
        normalized.setdefault("netAmount", normalized.get("amount", 0.0))
        normalized["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return PaymentRejectionRecord.from_document(normalized)


def assign_legacy_attempt_numbers(records: List[DocumentRejectionRecord]) -> List[DocumentRejectionRecord]:
    """
    Renumber records of one (application, document type) by rejection time.

    Legacy records all normalize to attempt 1; ordering by rejectedAt restores
    the sequence for display.
    """
    ordered = sorted(records, key=lambda r: r.rejected_at)
    if len({r.attempt_number for r in ordered}) == len(ordered):
        return ordered
    for index, record in enumerate(ordered, start=1):
        record.attempt_number = index
    return ordered
