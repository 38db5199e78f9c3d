# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authorization gate: resolves the caller and enforces the capability check.
"""

import logging
from typing import List, Optional

from ..domain.authorization import (
    DENIAL_UNAUTHORIZED,
    Action,
    Principal,
    ResourceContext,
    check_capability,
    has_role_for
)
from ..middleware.error_handler import (
    AuthenticationException,
    ForbiddenException,
    UnauthorizedException
)
from ..models.entities import User
from ..models.enums import UserRole
from .store import Collections, StoreTransaction

logger = logging.getLogger(__name__)


class AuthorizationGate:
    """Every mutation resolves its principal here before touching a ledger."""

    def resolve_principal(self, tx: StoreTransaction, user_id: Optional[str]) -> Principal:
        """Load the caller's user record; unknown or inactive users are unauthenticated."""
        if not user_id:
            raise AuthenticationException("No authenticated principal")
        document = tx.get(Collections.USERS, user_id)
        if document is None:
            logger.warning("Principal not found", extra={"user_id": user_id})
            raise AuthenticationException("Unknown principal")
        user = User.from_document(document)
        if not user.is_active:
            logger.warning("Inactive principal rejected", extra={"user_id": user_id})
            raise AuthenticationException("Account is inactive")
        return Principal.from_user(user)

    def require(
        self,
        principal: Principal,
        action: Action,
        resource: Optional[ResourceContext] = None
    ) -> None:
        """Raise Unauthorized or Forbidden when the capability check fails."""
        result = check_capability(principal, action, resource)
        if result.allowed:
            return

        logger.warning(
            "Authorization denied",
            extra={
                "user_id": principal.user_id,
                "role": principal.role,
                "action": action.value,
                "denial": result.denial,
                "reason": result.reason
            }
        )
        if result.denial == DENIAL_UNAUTHORIZED:
            raise UnauthorizedException(result.reason, details=result.details)
        raise ForbiddenException(result.reason, details=result.details)

    def authorize(
        self,
        tx: StoreTransaction,
        user_id: Optional[str],
        action: Action,
        resource: Optional[ResourceContext] = None
    ) -> Principal:
        """Resolve and check in one call."""
        principal = self.resolve_principal(tx, user_id)
        self.require(principal, action, resource)
        return principal

    def list_admins(self, tx: StoreTransaction) -> List[Principal]:
        """Every active admin and system admin."""
        documents = tx.find(
            Collections.USERS,
            {"role": {"$in": [UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value]}, "isActive": True}
        )
        return [Principal.from_user(User.from_document(document)) for document in documents]

    def require_role(self, principal: Principal, action: Action) -> None:
        """Raise Unauthorized unless the role may perform the action at all."""
        if not has_role_for(principal, action):
            logger.warning(
                "Authorization denied",
                extra={"user_id": principal.user_id, "role": principal.role, "action": action.value}
            )
            raise UnauthorizedException(f"Role '{principal.role}' may not perform {action.value}")
