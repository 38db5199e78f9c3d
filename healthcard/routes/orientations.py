# SPDX-License-Identifier: Apache-2.0

"""
Orientation scheduling and attendance endpoints.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..middleware.auth import require_jwt
from ..models.requests import ApplicationPath, OrientationPath, ScheduleOrientationRequest
from ..utils.request import RequestParser, current_principal, get_services

logger = logging.getLogger(__name__)

orientations_tag = Tag(name="Orientations", description="Food-handler orientation sessions")
orientations_bp = APIBlueprint(
    'orientations',
    __name__,
    url_prefix='/api',
    abp_tags=[orientations_tag]
)


@orientations_bp.post('/applications/<application_id>/orientation')
@require_jwt
def schedule_orientation(path: ApplicationPath):
    """Book or rebook the orientation of an application."""
    body = RequestParser.parse_body(ScheduleOrientationRequest)
    orientation = get_services().orientations.schedule_orientation(
        current_principal().user_id,
        path.application_id,
        body.scheduled_at,
        body.venue,
        inspector_id=body.inspector_id
    )
    return jsonify(current_app.hal_formatter.format_resource(
        orientation, f"/api/orientations/{orientation['id']}"
    )), 200


@orientations_bp.post('/orientations/<orientation_id>/check-in')
@require_jwt
def check_in(path: OrientationPath):
    orientation = get_services().orientations.check_in(current_principal().user_id, path.orientation_id)
    return jsonify(current_app.hal_formatter.format_resource(
        orientation, f"/api/orientations/{path.orientation_id}"
    )), 200


@orientations_bp.post('/orientations/<orientation_id>/check-out')
@require_jwt
def check_out(path: OrientationPath):
    """Complete attendance; the application moves on to review."""
    orientation = get_services().orientations.check_out(current_principal().user_id, path.orientation_id)
    return jsonify(current_app.hal_formatter.format_resource(
        orientation, f"/api/orientations/{path.orientation_id}"
    )), 200
