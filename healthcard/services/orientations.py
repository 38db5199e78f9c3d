# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Orientation scheduling and attendance.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.authorization import Action, ResourceContext
from ..middleware.error_handler import ConflictException, NotFoundException, ValidationException
from ..models.entities import Orientation
from ..models.enums import ApplicationStatus, OrientationStatus, UserRole
from .activity import ActivityLogService
from .gate import AuthorizationGate
from .state_machine import ApplicationStateMachine
from .store import Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class OrientationService:
    """One orientation per application; checkout completes it."""

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        state_machine: ApplicationStateMachine,
        activity: ActivityLogService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.state_machine = state_machine
        self.activity = activity
        self.clock = clock

    def _run(self, span_name: str, attributes: Dict[str, Any], work: Callable[[StoreTransaction], Any]) -> Any:
        with tracer.start_as_current_span(span_name) as span:
            span.set_attributes(attributes)
            try:
                return self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def _load_for_attendance(self, tx: StoreTransaction, actor_id: str, orientation_id: str):
        document = tx.get(Collections.ORIENTATIONS, orientation_id)
        if document is None:
            raise NotFoundException(f"Orientation {orientation_id} not found")
        orientation = Orientation.from_document(document)
        principal = self.gate.authorize(
            tx, actor_id, Action.ORIENTATION_ATTENDANCE,
            ResourceContext(owner_id=orientation.applicant_id, assigned_inspector_id=orientation.inspector_id)
        )
        if orientation.status != OrientationStatus.SCHEDULED:
            raise ConflictException(
                f"Orientation is {orientation.status}",
                details={"orientation_id": orientation.id, "status": orientation.status}
            )
        return orientation, principal

    def schedule_orientation(
        self,
        actor_id: str,
        application_id: str,
        scheduled_at: datetime,
        venue: str,
        inspector_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Book, or rebook, the orientation of an application awaiting one.

        Rebooking keeps the same record and clears any check-in.
        """
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            application = self.state_machine.load_application(tx, application_id)
            self.gate.authorize(
                tx, actor_id, Action.MANAGE_OWN_APPLICATION,
                ResourceContext(owner_id=application.user_id, job_category_id=application.job_category_id)
            )
            if application.status != ApplicationStatus.FOR_ORIENTATION:
                raise ConflictException(
                    f"Application is {application.status}; orientation is not required",
                    details={"status": application.status}
                )
            if inspector_id is not None:
                inspector = tx.get(Collections.USERS, inspector_id)
                if inspector is None or inspector.get("role") != UserRole.INSPECTOR:
                    raise ValidationException(
                        "Assigned user is not an inspector",
                        validation_errors=[{"field": "inspectorId", "message": "unknown inspector"}]
                    )

            existing = tx.find_one(Collections.ORIENTATIONS, {"applicationId": application.id})
            if existing is not None:
                if existing["status"] == OrientationStatus.COMPLETED:
                    raise ConflictException("Orientation already completed")
                tx.update(Collections.ORIENTATIONS, existing["id"], {
                    "scheduledAt": scheduled_at,
                    "venue": venue,
                    "inspectorId": inspector_id,
                    "status": OrientationStatus.SCHEDULED.value,
                    "checkedInAt": None,
                    "checkedInBy": None,
                    "updatedAt": now
                })
                logger.info(
                    "Orientation rescheduled",
                    extra={"orientation_id": existing["id"], "application_id": application.id}
                )
                return tx.get(Collections.ORIENTATIONS, existing["id"])

            orientation = Orientation(
                application_id=application.id,
                applicant_id=application.user_id,
                scheduled_at=scheduled_at,
                venue=venue,
                inspector_id=inspector_id,
                created_at=now,
                updated_at=now
            )
            tx.insert(Collections.ORIENTATIONS, orientation.to_document())
            logger.info(
                "Orientation scheduled",
                extra={"orientation_id": orientation.id, "application_id": application.id,
                       "inspector_id": inspector_id}
            )
            return orientation.to_document()

        return self._run("orientations.schedule", {"application.id": application_id, "user.id": actor_id}, work)

    def check_in(self, actor_id: str, orientation_id: str) -> Dict[str, Any]:
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            orientation, principal = self._load_for_attendance(tx, actor_id, orientation_id)
            if orientation.checked_in_at is not None:
                raise ConflictException("Applicant is already checked in")

            tx.update(Collections.ORIENTATIONS, orientation.id, {
                "checkedInAt": now,
                "checkedInBy": principal.user_id,
                "updatedAt": now
            })
            self.activity.log_action(
                tx, principal.user_id, "orientation_check_in", "orientation", orientation.id, now,
                application_id=orientation.application_id
            )
            return tx.get(Collections.ORIENTATIONS, orientation.id)

        return self._run("orientations.check_in", {"orientation.id": orientation_id, "user.id": actor_id}, work)

    def check_out(self, actor_id: str, orientation_id: str) -> Dict[str, Any]:
        """Complete the orientation and re-evaluate the application."""
        def work(tx: StoreTransaction) -> Dict[str, Any]:
            now = self.clock()
            orientation, principal = self._load_for_attendance(tx, actor_id, orientation_id)
            if orientation.checked_in_at is None:
                raise ConflictException("Applicant must check in before checking out")

            tx.update(Collections.ORIENTATIONS, orientation.id, {
                "checkedOutAt": now,
                "checkedOutBy": principal.user_id,
                "status": OrientationStatus.COMPLETED.value,
                "updatedAt": now
            })
            self.activity.log_action(
                tx, principal.user_id, "orientation_check_out", "orientation", orientation.id, now,
                application_id=orientation.application_id
            )
            application = self.state_machine.load_application(tx, orientation.application_id)
            status = application.status
            if not application.is_terminal():
                status = self.state_machine.reevaluate(
                    tx, application, now, actor_id=principal.user_id, reviewer_action=True
                )
            result = tx.get(Collections.ORIENTATIONS, orientation.id)
            result["applicationStatus"] = status
            return result

        result = self._run(
            "orientations.check_out", {"orientation.id": orientation_id, "user.id": actor_id}, work
        )
        logger.info(
            "Orientation completed",
            extra={"orientation_id": orientation_id, "application_status": result["applicationStatus"]}
        )
        return result
