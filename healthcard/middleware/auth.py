# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for bearer token validation and principal resolution.

The verified token subject is resolved to a User record through the
authorization gate; the resulting Principal is stored on ``flask.g`` for the
route and the services it calls.
"""

from functools import wraps
from flask import current_app, g, request
from typing import Callable, Optional
from opentelemetry import trace
import logging

from ..services.auth import AuthService, TokenValidationError
from ..services.gate import AuthorizationGate
from ..services.store import ReviewStore
from .error_handler import AuthenticationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    Bearer token authentication for Flask routes.
    """

    def __init__(self, auth_service: AuthService, store: ReviewStore, gate: AuthorizationGate):
        self.auth_service = auth_service
        self.store = store
        self.gate = gate

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract the bearer token from the Authorization header.

        Returns:
            Token string or None if not present
        """
        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None
        return None

    def authenticate(self):
        """
        Verify the request's token and resolve its principal.

        Raises:
            AuthenticationException: Missing or invalid token, unknown or
                inactive user
        """
        token = self.extract_token_from_request()
        if not token:
            raise AuthenticationException("Missing authorization token")

        try:
            payload = self.auth_service.verify_token(token)
        except TokenValidationError as e:
            raise AuthenticationException(str(e))

        return self.store.read(lambda tx: self.gate.resolve_principal(tx, payload["sub"]))


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require bearer authentication for Flask routes.

    Args:
        auth_middleware: Configured AuthMiddleware instance

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.validate_request") as span:
                span.set_attribute("auth.operation", "validate_request")
                try:
                    principal = auth_middleware.authenticate()
                except AuthenticationException as e:
                    span.set_attribute("auth.result", "rejected")
                    logger.warning("Authentication failed", extra={"reason": e.message, "path": request.path})
                    raise

                g.principal = principal
                span.set_attributes({
                    "auth.result": "success",
                    "user.id": principal.user_id,
                    "user.role": principal.role
                })

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """``require_auth`` bound to the middleware configured on the current app."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware = current_app.auth_middleware
        return require_auth(auth_middleware)(f)(*args, **kwargs)
    return decorated_function
