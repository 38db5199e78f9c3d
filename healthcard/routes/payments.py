# SPDX-License-Identifier: Apache-2.0

"""
Payment ledger endpoints, including the gateway callbacks.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..middleware.auth import require_jwt
from ..middleware.error_handler import UnauthorizedException
from ..models.enums import UserRole
from ..models.requests import (
    ApplicationPath,
    CreatePaymentRequest,
    GatewayCallbackRequest,
    GatewayPath,
    PaymentPath,
    ResubmitPaymentRequest,
    ReviewPaymentRequest
)
from ..utils.request import RequestParser, current_principal, get_services

logger = logging.getLogger(__name__)

payments_tag = Tag(name="Payments", description="Payment recording, review and settlement")
payments_bp = APIBlueprint(
    'payments',
    __name__,
    url_prefix='/api',
    abp_tags=[payments_tag]
)


@payments_bp.post('/applications/<application_id>/payments')
@require_jwt
def create_payment(path: ApplicationPath):
    """Record a payment for the caller's application."""
    body = RequestParser.parse_body(CreatePaymentRequest)
    result = get_services().payments.create_payment(
        current_principal().user_id, path.application_id, **body.model_dump()
    )
    return jsonify(current_app.hal_formatter.format_resource(
        result, f"/api/payments/{result['paymentId']}"
    )), 201


@payments_bp.post('/applications/<application_id>/payments/resubmit')
@require_jwt
def resubmit_payment(path: ApplicationPath):
    """Link a replacement payment to the rejected one."""
    body = RequestParser.parse_body(ResubmitPaymentRequest)
    result = get_services().payments.resubmit_payment(
        current_principal().user_id, path.application_id,
        body.old_payment_id, body.new_payment_id
    )
    return jsonify(current_app.hal_formatter.format_resource(
        result, f"/api/payments/{body.new_payment_id}"
    )), 200


@payments_bp.post('/payments/<payment_id>/review')
@require_jwt
def review_payment(path: PaymentPath):
    body = RequestParser.parse_body(ReviewPaymentRequest)
    rejection = body.rejection
    result = get_services().payments.review_payment(
        current_principal().user_id,
        path.payment_id,
        body.decision,
        remarks=body.remarks,
        rejection_category=rejection.category if rejection else None,
        rejection_reason=rejection.reason if rejection else None,
        issues=rejection.issues if rejection else None
    )
    return jsonify(current_app.hal_formatter.format_resource(result, f"/api/payments/{path.payment_id}")), 200


@payments_bp.post('/payments/<payment_id>/gateway/<outcome>')
@require_jwt
def gateway_callback(path: GatewayPath):
    """
    Outcome reported by the payment gateway.

    Callers authenticate as a system admin service account.
    """
    principal = current_principal()
    if principal.role != UserRole.SYSTEM_ADMIN:
        raise UnauthorizedException("Gateway callbacks require the system_admin role")

    body = RequestParser.parse_body(GatewayCallbackRequest, required=False)
    payments = get_services().payments
    if path.outcome == "success":
        result = payments.handle_gateway_success(
            path.payment_id, checkout_id=body.checkout_id, transaction_id=body.transaction_id
        )
    elif path.outcome == "failure":
        result = payments.handle_gateway_failure(path.payment_id, reason=body.reason)
    else:
        result = payments.handle_gateway_cancel(path.payment_id)

    logger.info(
        "Gateway callback processed",
        extra={"payment_id": path.payment_id, "outcome": path.outcome,
               "already_processed": result["alreadyProcessed"]}
    )
    return jsonify(current_app.hal_formatter.format_resource(result, f"/api/payments/{path.payment_id}")), 200
