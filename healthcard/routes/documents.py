# SPDX-License-Identifier: Apache-2.0

"""
Document ledger endpoints: upload, review, resubmission, deletion and the
reviewer queue.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..middleware.auth import require_jwt
from ..models.requests import (
    ApplicationPath,
    ResubmitDocumentRequest,
    ReviewDocumentRequest,
    UploadDocumentRequest,
    UploadPath
)
from ..utils.request import RequestParser, current_principal, get_services

logger = logging.getLogger(__name__)

documents_tag = Tag(name="Documents", description="Document upload and review")
documents_bp = APIBlueprint(
    'documents',
    __name__,
    url_prefix='/api',
    abp_tags=[documents_tag]
)


@documents_bp.post('/applications/<application_id>/documents')
@require_jwt
def upload_document(path: ApplicationPath):
    """Upload the file for one checklist entry."""
    body = RequestParser.parse_body(UploadDocumentRequest)
    upload_id = get_services().documents.upload_document(
        current_principal().user_id,
        path.application_id,
        body.document_type_id,
        body.file_ref,
        original_file_name=body.original_file_name,
        extracted_metadata=body.extracted_metadata
    )
    return jsonify(current_app.hal_formatter.format_resource(
        {"uploadId": upload_id, "applicationId": path.application_id},
        f"/api/documents/{upload_id}"
    )), 201


@documents_bp.get('/documents/pending')
@require_jwt
def list_pending_documents():
    """Pending uploads the caller may review, oldest first."""
    queue = get_services().documents.list_pending_documents(current_principal().user_id)
    return jsonify(current_app.hal_formatter.format_collection(queue, "/api/documents/pending")), 200


@documents_bp.post('/documents/<upload_id>/review')
@require_jwt
def review_document(path: UploadPath):
    body = RequestParser.parse_body(ReviewDocumentRequest)
    rejection = body.rejection
    result = get_services().documents.review_document(
        current_principal().user_id,
        path.upload_id,
        body.decision,
        remarks=body.remarks,
        rejection_category=rejection.category if rejection else None,
        rejection_reason=rejection.reason if rejection else None,
        issues=rejection.issues if rejection else None
    )
    return jsonify(current_app.hal_formatter.format_resource(result, f"/api/documents/{path.upload_id}")), 200


@documents_bp.post('/documents/<upload_id>/resubmit')
@require_jwt
def resubmit_document(path: UploadPath):
    """Replace a rejected document."""
    body = RequestParser.parse_body(ResubmitDocumentRequest)
    result = get_services().documents.resubmit_document(
        current_principal().user_id, path.upload_id, body.file_ref,
        original_file_name=body.original_file_name
    )
    return jsonify(current_app.hal_formatter.format_resource(result, f"/api/documents/{path.upload_id}")), 200


@documents_bp.delete('/documents/<upload_id>')
@require_jwt
def delete_document(path: UploadPath):
    get_services().documents.delete_document(current_principal().user_id, path.upload_id)
    return '', 204
