# SPDX-License-Identifier: Apache-2.0

"""
Health check endpoint.
"""

from datetime import datetime
from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
import logging

from ..observability.config import SERVICE_NAME

logger = logging.getLogger(__name__)

health_tag = Tag(name="Health", description="System health and status")
health_bp = APIBlueprint('health', __name__, url_prefix='/api', abp_tags=[health_tag])


@health_bp.get('/health')
def health_check():
    """Store connectivity; 503 when the store is unreachable."""
    store_health = current_app.services.store.health_check()
    status = store_health.get('status', 'unhealthy')
    body = {
        'status': status,
        'service': SERVICE_NAME,
        'environment': current_app.config.get('ENVIRONMENT'),
        'timestamp': datetime.utcnow().isoformat() + "Z",
        'dependencies': {'store': store_health},
    }
    if status != 'healthy':
        logger.warning("Health check degraded", extra={"store": store_health})
    response = current_app.hal_formatter.format_resource(body, "/api/health")
    return jsonify(response), 200 if status == 'healthy' else 503
