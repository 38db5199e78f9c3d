# SPDX-License-Identifier: Apache-2.0

"""
User administration endpoints.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..middleware.auth import require_jwt
from ..models.requests import UpdateUserRoleRequest, UserPath
from ..utils.request import RequestParser, current_principal, get_services

logger = logging.getLogger(__name__)

users_tag = Tag(name="Users", description="Roles and managed categories")
users_bp = APIBlueprint(
    'users',
    __name__,
    url_prefix='/api/users',
    abp_tags=[users_tag]
)


@users_bp.put('/<user_id>/role')
@require_jwt
def update_user_role(path: UserPath):
    """Assign a role and, for reviewers, the managed job categories."""
    body = RequestParser.parse_body(UpdateUserRoleRequest)
    user = get_services().users.update_user_role(
        current_principal().user_id,
        path.user_id,
        body.role,
        managed_categories=body.managed_categories
    )
    return jsonify(current_app.hal_formatter.format_resource(user, f"/api/users/{path.user_id}")), 200
