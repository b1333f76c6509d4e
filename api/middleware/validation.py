# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation middleware using Pydantic models.
Parses request bodies and query strings, raising ValidationException with
formatted field errors when they don't match the model.
"""

from flask import request
from typing import Type, TypeVar, Dict, Any, List
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from middleware.error_handler import ValidationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)


class ValidationMiddleware:
    """Request validation using Pydantic models."""

    def format_validation_errors(self, validation_error: ValidationError) -> List[Dict[str, Any]]:
        """
        Format Pydantic validation errors for API response.

        Args:
            validation_error: Pydantic ValidationError

        Returns:
            List of formatted error dictionaries
        """
        errors = []

        for error in validation_error.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field_path or "body",
                "message": error["msg"],
                "type": error["type"]
            })

        return errors

    def parse_json_body(self, model_class: Type[M]) -> M:
        """
        Validate the JSON request body against a Pydantic model.

        Args:
            model_class: Pydantic model class for validation

        Returns:
            Validated model instance

        Raises:
            ValidationException: On missing/invalid JSON or model errors
        """
        with tracer.start_as_current_span("validation.parse_json_body") as span:
            span.set_attributes({
                "validation.model": model_class.__name__,
                "http.method": request.method,
                "http.path": request.path
            })

            if not request.is_json:
                span.set_attribute("validation.result", "invalid_content_type")
                raise ValidationException(
                    "Request must have Content-Type: application/json",
                    [{
                        "field": "content-type",
                        "message": "Expected application/json",
                        "type": "content_type_error"
                    }]
                )

            json_data = request.get_json(silent=True)
            if not isinstance(json_data, dict):
                span.set_attribute("validation.result", "invalid_json")
                raise ValidationException(
                    "Invalid JSON in request body",
                    [{
                        "field": "body",
                        "message": "Expected a JSON object",
                        "type": "json_error"
                    }]
                )

            try:
                validated = model_class.model_validate(json_data)
            except ValidationError as e:
                span.set_attribute("validation.result", "validation_error")
                validation_errors = self.format_validation_errors(e)

                logger.warning(
                    "Request validation failed",
                    extra={
                        "model": model_class.__name__,
                        "path": request.path,
                        "method": request.method,
                        "errors": validation_errors
                    }
                )
                raise ValidationException(
                    f"Request validation failed for {model_class.__name__}",
                    validation_errors
                )

            span.set_attribute("validation.result", "success")
            return validated

    def parse_query_params(self, model_class: Type[M]) -> M:
        """
        Validate query parameters against a Pydantic model.

        Raises:
            ValidationException: If the parameters don't match the model
        """
        with tracer.start_as_current_span("validation.parse_query_params") as span:
            span.set_attributes({
                "validation.model": model_class.__name__,
                "http.method": request.method,
                "http.path": request.path
            })

            query_data = request.args.to_dict()

            try:
                validated = model_class.model_validate(query_data)
            except ValidationError as e:
                span.set_attribute("validation.result", "validation_error")
                validation_errors = self.format_validation_errors(e)

                logger.warning(
                    "Query parameter validation failed",
                    extra={
                        "model": model_class.__name__,
                        "path": request.path,
                        "method": request.method,
                        "errors": validation_errors
                    }
                )
                raise ValidationException(
                    f"Query parameter validation failed for {model_class.__name__}",
                    validation_errors
                )

            span.set_attribute("validation.result", "success")
            return validated
