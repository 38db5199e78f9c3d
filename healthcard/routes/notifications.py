# SPDX-License-Identifier: Apache-2.0

"""
Notification feed endpoints.

Applicants see their stored notifications; reviewers also see resubmission
items derived from the rejection audit trails of their managed categories.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..middleware.auth import require_jwt
from ..models.requests import AuditNotificationPath, NotificationPath
from ..utils.request import current_principal, get_services

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

notifications_tag = Tag(name="Notifications", description="Notification feed and read state")
notifications_bp = APIBlueprint(
    'notifications',
    __name__,
    url_prefix='/api/notifications',
    abp_tags=[notifications_tag]
)


@notifications_bp.get('')
@require_jwt
def list_notifications():
    """
    Caller's feed, newest first.

    The response carries the unread count alongside the items so clients can
    render the badge without a second request.
    """
    items = get_services().notifications.get_notifications(current_principal().user_id)
    unread_count = sum(1 for item in items if not item.get("isRead"))

    response = current_app.hal_formatter.format_collection(
        items, "/api/notifications", extra={"unreadCount": unread_count}
    )
    return jsonify(response), 200


@notifications_bp.post('/<notification_id>/read')
@require_jwt
def mark_notification_read(path: NotificationPath):
    document = get_services().notifications.mark_read(current_principal().user_id, path.notification_id)
    return jsonify(current_app.hal_formatter.format_resource(
        document, f"/api/notifications/{path.notification_id}"
    )), 200


@notifications_bp.post('/read-all')
@require_jwt
def mark_all_notifications_read():
    count = get_services().notifications.mark_all_read(current_principal().user_id)
    return jsonify({"updatedCount": count}), 200


@notifications_bp.delete('/read')
@require_jwt
def clear_read_notifications():
    """Delete every read notification of the caller."""
    count = get_services().notifications.clear_read(current_principal().user_id)
    return jsonify({"deletedCount": count}), 200


@notifications_bp.post('/audit/<kind>/<record_id>/read')
@require_jwt
def mark_audit_item_read(path: AuditNotificationPath):
    """Hide a derived resubmission item from the caller's feed."""
    get_services().notifications.mark_audit_read(
        current_principal().user_id, path.kind, path.record_id
    )
    return '', 204
