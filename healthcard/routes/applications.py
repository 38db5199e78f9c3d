# SPDX-License-Identifier: Apache-2.0

"""
Application lifecycle endpoints.

Creation, form editing and submission for applicants; approval, final
rejection and rejection history for admins.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..middleware.auth import require_jwt
from ..models.requests import (
    ApplicationPath,
    ApproveApplicationRequest,
    CreateApplicationRequest,
    JobCategoryPath,
    RejectApplicationRequest,
    SubmitApplicationRequest,
    UpdateApplicationRequest
)
from ..utils.request import RequestParser, current_principal, get_services

logger = logging.getLogger(__name__)

applications_tag = Tag(name="Applications", description="Health card application lifecycle")
applications_bp = APIBlueprint(
    'applications',
    __name__,
    url_prefix='/api',
    abp_tags=[applications_tag]
)


def _application_view(application_id: str):
    view = get_services().applications.get_application_with_documents(
        current_principal().user_id, application_id
    )
    return current_app.hal_formatter.format_application_view(view, view.pop("principal"))


@applications_bp.post('/applications')
@require_jwt
def create_application():
    """Create an application, as a draft or directly pending payment."""
    body = RequestParser.parse_body(CreateApplicationRequest)
    form_fields = body.model_dump(exclude={"job_category_id", "draft"})
    application = get_services().applications.create_application(
        current_principal().user_id, body.job_category_id, form_fields, draft=body.draft
    )
    response = current_app.hal_formatter.format_application(application, current_principal())
    return jsonify(response), 201


@applications_bp.get('/applications/<application_id>')
@require_jwt
def get_application(path: ApplicationPath):
    """Application with its checklist, uploads, payment and orientation."""
    return jsonify(_application_view(path.application_id)), 200


@applications_bp.patch('/applications/<application_id>')
@require_jwt
def update_application(path: ApplicationPath):
    """Edit form fields before submission."""
    body = RequestParser.parse_body(UpdateApplicationRequest)
    application = get_services().applications.update_application_form(
        current_principal().user_id, path.application_id,
        body.model_dump(by_alias=True, exclude_none=True)
    )
    return jsonify(current_app.hal_formatter.format_application(application, current_principal())), 200


@applications_bp.post('/applications/<application_id>/complete')
@require_jwt
def complete_application(path: ApplicationPath):
    """Promote a draft to Pending Payment."""
    body = RequestParser.parse_body(UpdateApplicationRequest, required=False)
    application = get_services().applications.complete_application_form(
        current_principal().user_id, path.application_id,
        body.model_dump(by_alias=True, exclude_none=True)
    )
    return jsonify(current_app.hal_formatter.format_application(application, current_principal())), 200


@applications_bp.post('/applications/<application_id>/submit')
@require_jwt
def submit_application(path: ApplicationPath):
    """Submit with an existing payment id or a new payment."""
    body = RequestParser.parse_body(SubmitApplicationRequest)
    get_services().applications.submit_application(
        current_principal().user_id,
        path.application_id,
        payment_id=body.payment_id,
        payment=body.payment.model_dump() if body.payment else None
    )
    return jsonify(_application_view(path.application_id)), 200


@applications_bp.post('/applications/<application_id>/approve')
@require_jwt
def approve_application(path: ApplicationPath):
    body = RequestParser.parse_body(ApproveApplicationRequest, required=False)
    get_services().applications.approve_application(
        current_principal().user_id, path.application_id, remarks=body.remarks
    )
    return jsonify(_application_view(path.application_id)), 200


@applications_bp.post('/applications/<application_id>/reject')
@require_jwt
def reject_application(path: ApplicationPath):
    """Final administrative rejection."""
    body = RequestParser.parse_body(RejectApplicationRequest)
    result = get_services().applications.reject_application(
        current_principal().user_id, path.application_id,
        category=body.category, reason=body.reason, issues=body.issues
    )
    return jsonify(current_app.hal_formatter.format_resource(
        result, f"/api/applications/{path.application_id}"
    )), 200


@applications_bp.get('/applications/<application_id>/rejections')
@require_jwt
def get_rejection_history(path: ApplicationPath):
    history = get_services().applications.get_rejection_history(
        current_principal().user_id, path.application_id
    )
    return jsonify(current_app.hal_formatter.format_resource(
        history, f"/api/applications/{path.application_id}/rejections"
    )), 200


@applications_bp.get('/rejections/stats')
@require_jwt
def get_rejection_stats():
    """Rejection figures across the caller's managed categories."""
    stats = get_services().applications.get_rejection_stats(current_principal().user_id)
    return jsonify(current_app.hal_formatter.format_resource(stats, "/api/rejections/stats")), 200


@applications_bp.get('/job-categories/<job_category_id>/checklist')
@require_jwt
def get_requirement_checklist(path: JobCategoryPath):
    """Document checklist of a job category."""
    checklist = get_services().applications.get_requirement_checklist(
        current_principal().user_id, path.job_category_id
    )
    return jsonify(current_app.hal_formatter.format_collection(
        checklist, f"/api/job-categories/{path.job_category_id}/checklist"
    )), 200
