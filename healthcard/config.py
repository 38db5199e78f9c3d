# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Environment-driven configuration.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class ReviewPolicy:
    """Review constants consulted by the state machine and the ledgers."""
    payment_deadline_days: int = 7
    max_document_attempts: int = 3

    @classmethod
    def from_env(cls) -> "ReviewPolicy":
        return cls(
            payment_deadline_days=int(os.getenv('PAYMENT_DEADLINE_DAYS', '7')),
            max_document_attempts=int(os.getenv('MAX_DOCUMENT_ATTEMPTS', '3'))
        )


def load_config() -> Dict[str, Any]:
    """Settings copied into ``app.config`` by ``create_app``."""
    return {
        'ENVIRONMENT': os.getenv('ENVIRONMENT', 'development'),
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'STORE_BACKEND': os.getenv('STORE_BACKEND', 'mongodb'),
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/healthcard'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'healthcard'),
        'JWT_PUBLIC_KEY': os.getenv('JWT_PUBLIC_KEY'),
        'JWT_PRIVATE_KEY': os.getenv('JWT_PRIVATE_KEY'),
        'JWT_ISSUER': os.getenv('JWT_ISSUER', 'healthcard-api'),
        'JWT_AUDIENCE': os.getenv('JWT_AUDIENCE', 'healthcard-clients'),
        'JWT_ACCESS_TOKEN_EXPIRES': int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', '900')),
        'OTEL_INSTRUMENT_FLASK': os.getenv('OTEL_ENABLED', 'false').lower() == 'true',
        'CREATE_INDEXES': os.getenv('CREATE_INDEXES', 'false').lower() == 'true',
        'REVIEW_POLICY': ReviewPolicy.from_env(),
    }
