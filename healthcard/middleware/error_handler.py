# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured problem responses.
Defines the review error taxonomy and maps it to HTTP responses.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pydantic import ValidationError
from typing import Any, Dict, List, Optional
from opentelemetry import trace
import logging

from ..services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class CustomException(Exception):
    """Base class for review exceptions."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_type: str = "application-error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details or {}


class ValidationException(CustomException):
    """Malformed input, such as an amount mismatch or an unknown document type."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, 422, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """No resolvable principal."""

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class UnauthorizedException(CustomException):
    """The caller's role may not perform the operation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 403, "insufficient-role", details)


class ForbiddenException(CustomException):
    """Right role, but the target is outside the caller's scope or ownership."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 403, "out-of-scope", details)


class NotFoundException(CustomException):
    """Exception for resource not found errors."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class ConflictException(CustomException):
    """An invariant would be violated by the requested change."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 409, "resource-conflict", details)


class StorageException(CustomException):
    """The store failed for reasons unrelated to business rules."""

    def __init__(self, message: str):
        super().__init__(message, 503, "storage-unavailable")


ERROR_TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "insufficient-role": "Insufficient Role",
    "out-of-scope": "Outside Your Scope",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "storage-unavailable": "Storage Unavailable",
}


def format_pydantic_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into field/message pairs."""
    return [
        {
            "field": ".".join(str(part) for part in item.get("loc", ())),
            "message": item.get("msg", "Invalid value"),
        }
        for item in error.errors()
    ]


def register_error_handlers(app: Flask, hal_formatter: HalFormatter) -> None:
    """
    Register handlers for review exceptions and plain HTTP errors.

    Args:
        app: Flask application
        hal_formatter: Formatter for problem bodies
    """

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Request failed: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            body = hal_formatter.format_error(
                error.error_type,
                ERROR_TITLES.get(error.error_type, "Application Error"),
                error.status_code,
                error.message,
                request.path,
                validation_errors=getattr(error, "validation_errors", None),
                details=error.details
            )
            return jsonify(body), error.status_code

    @app.errorhandler(ValidationError)
    def handle_pydantic_error(error: ValidationError):
        errors = format_pydantic_errors(error)
        logger.warning(
            "Request validation failed",
            extra={"path": request.path, "method": request.method, "errors": errors}
        )
        body = hal_formatter.format_error(
            "validation-error", "Validation Error", 422,
            "Request body failed validation", request.path,
            validation_errors=errors
        )
        return jsonify(body), 422

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        error_type = {
            400: "bad-request",
            404: "resource-not-found",
            405: "method-not-allowed",
        }.get(error.code, "http-error")
        body = hal_formatter.format_error(
            error_type, error.name, error.code,
            str(error.description) if error.description else error.name,
            request.path
        )
        return jsonify(body), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_exception(error: Exception):
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_class": error.__class__.__name__,
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            detail = "An unexpected error occurred"
            if app.config.get('ENVIRONMENT') != 'production':
                detail = f"{error.__class__.__name__}: {error}"

            body = hal_formatter.format_error(
                "internal-server-error", "Internal Server Error", 500, detail, request.path
            )
            return jsonify(body), 500

