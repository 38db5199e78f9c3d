# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Role and scope management.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.authorization import REVIEWER_ROLES, Action
from ..middleware.error_handler import NotFoundException, ValidationException
from ..models.entities import ALL_CATEGORIES
from ..models.enums import UserRole
from .activity import ActivityLogService
from .gate import AuthorizationGate
from .store import Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class UserService:

    def __init__(
        self,
        store: ReviewStore,
        gate: AuthorizationGate,
        activity: ActivityLogService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.gate = gate
        self.activity = activity
        self.clock = clock

    def update_user_role(
        self,
        actor_id: str,
        user_id: str,
        role: str,
        managed_categories: Optional[Union[str, List[str]]] = None
    ) -> Dict[str, Any]:
        """
        Change a user's role and managed categories.

        Only reviewers keep a category scope; for applicants it is cleared.
        """
        with tracer.start_as_current_span("users.update_role") as span:
            span.set_attributes({"user.id": actor_id, "target_user.id": user_id, "user.role": role})

            def work(tx: StoreTransaction) -> Dict[str, Any]:
                now = self.clock()
                principal = self.gate.authorize(tx, actor_id, Action.MANAGE_ROLES)
                target = tx.get(Collections.USERS, user_id)
                if target is None:
                    raise NotFoundException(f"User {user_id} not found")

                new_role = UserRole(role)
                categories = managed_categories if new_role.value in REVIEWER_ROLES else None
                if isinstance(categories, list):
                    unknown = [
                        category_id for category_id in categories
                        if tx.get(Collections.JOB_CATEGORIES, category_id) is None
                    ]
                    if unknown:
                        raise ValidationException(
                            "Unknown job categories",
                            validation_errors=[
                                {"field": "managedCategories", "message": f"unknown category {category_id}"}
                                for category_id in unknown
                            ]
                        )
                elif categories is not None and categories != ALL_CATEGORIES:
                    raise ValidationException(
                        "managedCategories must be a list of job categories or 'all'",
                        validation_errors=[{"field": "managedCategories", "message": "invalid value"}]
                    )

                tx.update(Collections.USERS, user_id, {
                    "role": new_role.value,
                    "managedCategories": categories,
                    "updatedAt": now
                })
                self.activity.log_action(
                    tx, principal.user_id, "user_role_changed", "user", user_id, now,
                    details={
                        "previous_role": target.get("role"),
                        "role": new_role.value,
                        "managed_categories": categories
                    }
                )
                return tx.get(Collections.USERS, user_id)

            try:
                updated = self.store.run_in_transaction(work)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(
                "User role updated",
                extra={"admin_id": actor_id, "user_id": user_id, "role": updated["role"]}
            )
            return updated
