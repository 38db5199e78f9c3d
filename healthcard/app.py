# SPDX-License-Identifier: Apache-2.0

"""
Health Card Review API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires
the review services around the configured store and registers the
middleware and route blueprints.
"""

import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask_openapi3 import Info, OpenAPI

from .config import load_config
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import register_error_handlers
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .services.auth import AuthService
from .services.blob import BlobStore
from .services.hal import HalFormatter
from .services.registry import build_services
from .services.store import InMemoryReviewStore, ReviewStore

logger = logging.getLogger(__name__)

info = Info(
    title="Health Card Review API",
    version="1.0.0",
    description="Health card application review with document and payment audit trails"
)


def _build_store(config: Dict[str, Any]) -> ReviewStore:
    backend = config['STORE_BACKEND']
    if backend == 'memory':
        logger.warning("Using in-memory review store; data is not persisted")
        return InMemoryReviewStore()
    if backend != 'mongodb':
        raise ValueError(f"Unknown STORE_BACKEND: {backend}")

    from .services.mongodb import MongoReviewStore
    return MongoReviewStore(config['MONGODB_URI'], config['MONGODB_DATABASE'])


def create_app(
    config_overrides: Optional[Dict[str, Any]] = None,
    store: Optional[ReviewStore] = None,
    blob_store: Optional[BlobStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
    auth_service: Optional[AuthService] = None
) -> OpenAPI:
    """
    Application factory.

    Args:
        config_overrides: Values replacing the environment-derived settings
        store: Review store; built from ``STORE_BACKEND`` when omitted
        blob_store: File storage used when uploads are deleted
        clock: Time source shared by all services
        auth_service: Token verifier; built from the JWT settings when omitted

    Returns:
        Configured Flask application
    """
    config = load_config()
    config.update(config_overrides or {})

    setup_observability(config['ENVIRONMENT'])

    app = OpenAPI(__name__, info=info)
    app.config.update(config)
    app.config['DEBUG'] = config['ENVIRONMENT'] == 'development'

    store = store or _build_store(config)
    if config['CREATE_INDEXES']:
        store.create_indexes()

    services = build_services(
        store,
        policy=config['REVIEW_POLICY'],
        blob_store=blob_store,
        clock=clock or datetime.utcnow
    )
    auth_service = auth_service or AuthService(
        private_key=config['JWT_PRIVATE_KEY'],
        public_key=config['JWT_PUBLIC_KEY'],
        issuer=config['JWT_ISSUER'],
        audience=config['JWT_AUDIENCE'],
        access_token_expires=config['JWT_ACCESS_TOKEN_EXPIRES']
    )
    hal_formatter = HalFormatter(config['BASE_URL'])

    # Make services available to routes
    app.services = services
    app.auth_service = auth_service
    app.hal_formatter = hal_formatter
    app.auth_middleware = AuthMiddleware(auth_service, store, services.gate)

    register_error_handlers(app, hal_formatter)
    add_observability_middleware(app, instrument=config['OTEL_INSTRUMENT_FLASK'])

    # Register routes
    from .routes.applications import applications_bp
    from .routes.documents import documents_bp
    from .routes.health import health_bp
    from .routes.notifications import notifications_bp
    from .routes.orientations import orientations_bp
    from .routes.payments import payments_bp
    from .routes.users import users_bp

    for blueprint in (
        health_bp, applications_bp, documents_bp, payments_bp,
        orientations_bp, notifications_bp, users_bp
    ):
        app.register_api(blueprint)

    logger.info(
        "Health card review API initialized",
        extra={"environment": config['ENVIRONMENT'], "store_backend": config['STORE_BACKEND']}
    )
    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
