# SPDX-License-Identifier: Apache-2.0

"""
Bearer token service.

Tokens are RS256 JWTs issued by the identity provider; this service only
verifies them and, for development and tests, issues them with a locally
generated key pair.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    RS256 token verification with PyJWT.

    When no key pair is configured one is generated, so the same service can
    sign the tokens it later verifies.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
        issuer: str = "healthcard-api",
        audience: str = "healthcard-clients",
        access_token_expires: int = 900
    ):
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")
        if not public_key:
            logger.warning("No JWT_PUBLIC_KEY found, generating development key pair")
            private_key, public_key = self._generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.issuer = issuer
        self.audience = audience
        self.access_token_expires = access_token_expires
        self.algorithm = "RS256"

    @staticmethod
    def _generate_dev_key_pair() -> Tuple[str, str]:
        """Generate RSA key pair for development use."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def issue_token(self, user_id: str, expires_in: Optional[int] = None) -> str:
        """
        Sign an access token for a user.

        Raises:
            TokenValidationError: No private key is available
        """
        if not self.private_key:
            raise TokenValidationError("Token issuing requires a private key")

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in or self.access_token_expires),
            "type": "access"
        }
        return jwt.encode(payload, self.private_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode an access token.

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If the token is invalid or expired
        """
        with tracer.start_as_current_span("auth.verify_token") as span:
            span.set_attribute("auth.operation", "verify_token")

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                    audience=self.audience,
                    options={"require": ["exp", "sub"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning("Token validation failed", extra={"error": str(e)})
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type", "access") != "access":
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError("Invalid token type. Expected access")

            span.set_attributes({"auth.validation_result": "success", "user.id": payload["sub"]})
            return payload
