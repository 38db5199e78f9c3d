# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Admin activity logging with OpenTelemetry correlation.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from opentelemetry import trace

from ..models.entities import AdminActivityLog
from .store import Collections, StoreTransaction

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Writes one activity record per reviewer mutation, inside its transaction."""

    def log_action(
        self,
        tx: StoreTransaction,
        admin_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        now: datetime,
        application_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Append an activity record with trace correlation and structured logging.

        Args:
            tx: Transaction the mutation runs in
            admin_id: Reviewer performing the action
            action: Action name, e.g. ``document_rejected``
            resource_type: Kind of record acted upon
            resource_id: ID of that record
            now: Commit-time timestamp
            application_id: Parent application, when there is one
            details: Extra context stored with the record

        Returns:
            str: ID of the created activity record
        """
        span_context = trace.get_current_span().get_span_context()

        entry = AdminActivityLog(
            admin_id=admin_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            application_id=application_id,
            details=details or {},
            timestamp=now,
            created_at=now,
            updated_at=now
        )
        if span_context.is_valid:
            entry.trace_id = format(span_context.trace_id, "032x")
            entry.span_id = format(span_context.span_id, "016x")

        activity_id = tx.insert(Collections.ADMIN_ACTIVITY, entry.to_document())

        logger.info(
            "Admin activity recorded",
            extra={
                "activity_id": activity_id,
                "admin_id": admin_id,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "application_id": application_id,
                "trace_id": entry.trace_id
            }
        )
        return activity_id
