# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and processing request data.
"""

from flask import current_app, g, request
from typing import Any, Dict, Type, TypeVar
import logging

from pydantic import BaseModel

from ..domain.authorization import Principal
from ..middleware.error_handler import ValidationException

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class RequestParser:
    """Utility for parsing and extracting request data."""

    @staticmethod
    def get_json_body(required: bool = True) -> Dict[str, Any]:
        """
        Read the JSON body of the current request.

        Raises:
            ValidationException: Body missing or not a JSON object
        """
        data = request.get_json(silent=True)
        if data is None:
            if required:
                raise ValidationException(
                    "Missing request body",
                    validation_errors=[{"field": "body", "message": "JSON object required"}]
                )
            return {}
        if not isinstance(data, dict):
            raise ValidationException(
                "Request body must be a JSON object",
                validation_errors=[{"field": "body", "message": "JSON object required"}]
            )
        return data

    @staticmethod
    def parse_body(model: Type[M], required: bool = True) -> M:
        """Validate the JSON body against a request model; pydantic errors surface as 422."""
        return model.model_validate(RequestParser.get_json_body(required))


def current_principal() -> Principal:
    """Principal resolved by ``require_auth``."""
    return g.principal


def get_services():
    """Service registry attached by ``create_app``."""
    return current_app.services
