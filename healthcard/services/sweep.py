# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Payment deadline sweep.

Archives applications still in Pending Payment after their deadline. Each
application is archived in its own transaction after re-reading it, so a
payment that settles while the sweep runs keeps its application alive, and
running the sweep again changes nothing.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from opentelemetry import trace

from ..domain.application_state import is_past_deadline
from ..domain.notifications import ReviewEvent, ReviewEventType
from ..middleware.error_handler import StorageException
from ..models.enums import ApplicationStatus, PaymentStatus
from .notifications import NotificationService
from .state_machine import ApplicationStateMachine
from .store import ASCENDING, Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class DeadlineSweepService:

    def __init__(
        self,
        store: ReviewStore,
        state_machine: ApplicationStateMachine,
        notifications: NotificationService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.state_machine = state_machine
        self.notifications = notifications
        self.clock = clock

    def _archive_one(self, application_id: str, now: datetime) -> bool:
        def work(tx: StoreTransaction) -> bool:
            application = self.state_machine.load_application(tx, application_id)
            if application.status != ApplicationStatus.PENDING_PAYMENT:
                return False
            if not is_past_deadline(application.payment_deadline, now):
                return False
            if tx.count(Collections.PAYMENTS, {
                "applicationId": application.id,
                "paymentStatus": PaymentStatus.COMPLETE.value
            }):
                return False

            self.state_machine.transition(
                tx, application, ApplicationStatus.ARCHIVED.value, now,
                extra_updates={"archivedAt": now}
            )
            self.notifications.emit(tx, ReviewEvent(
                type=ReviewEventType.APPLICATION_ARCHIVED,
                application_id=application.id,
                applicant_id=application.user_id,
                job_category_id=application.job_category_id
            ), now)
            return True

        return self.store.run_in_transaction(work)

    def sweep_expired_pending_payments(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Archive every application whose payment deadline has passed.

        Per-application failures are logged and counted; a storage failure
        aborts the run.

        Returns:
            ``archivedCount``, ``skippedCount`` and ``failedCount``
        """
        now = now or self.clock()
        with tracer.start_as_current_span("sweep.expired_pending_payments") as span:
            candidates = self.store.read(lambda tx: [
                document["id"]
                for document in tx.find(
                    Collections.APPLICATIONS,
                    {
                        "status": ApplicationStatus.PENDING_PAYMENT.value,
                        "paymentDeadline": {"$lt": now}
                    },
                    sort=[("paymentDeadline", ASCENDING)]
                )
            ])
            span.set_attribute("sweep.candidates", len(candidates))

            summary = {"archivedCount": 0, "skippedCount": 0, "failedCount": 0}
            for application_id in candidates:
                try:
                    archived = self._archive_one(application_id, now)
                except StorageException as e:
                    span.record_exception(e)
                    logger.error(
                        "Deadline sweep aborted by storage failure",
                        extra={"application_id": application_id, **summary},
                        exc_info=True
                    )
                    raise
                except Exception as e:
                    summary["failedCount"] += 1
                    logger.warning(
                        "Failed to archive expired application",
                        extra={"application_id": application_id, "error": str(e)},
                        exc_info=True
                    )
                    continue

                if archived:
                    summary["archivedCount"] += 1
                    logger.info("Application archived after payment deadline",
                                extra={"application_id": application_id})
                else:
                    summary["skippedCount"] += 1

            span.set_attributes({
                "sweep.archived": summary["archivedCount"],
                "sweep.skipped": summary["skippedCount"],
                "sweep.failed": summary["failedCount"]
            })
            logger.info("Deadline sweep finished", extra=summary)
            return summary
