# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Public lookups: enrollment status by CPF and CPF/e-mail availability.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from pymongo.errors import PyMongoError
import logging

from domain.validation import EMAIL_PATTERN, only_digits
from domain.voters import registration_status
from models.requests import CpfPath, EmailPath
from models.responses import AvailabilityResponse, RegistrationStatusResponse
from middleware.error_handler import ServiceUnavailableException, ValidationException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

public_tag = Tag(name="Public", description="Enrollment status and availability lookups")
public_bp = APIBlueprint(
    'public',
    __name__,
    url_prefix='/api',
    abp_tags=[public_tag]
)


@public_bp.get('/consulta-cadastro/<string:cpf>')
def get_registration_status(path: CpfPath):
    """
    Look up an enrollment by CPF.

    Answers 400 when the CPF doesn't have 11 digits and 404 when no
    enrollment uses it; both bodies carry found=false.
    """
    with tracer.start_as_current_span("public.registration_status"):
        try:
            voter = current_app.submission_service.get_registration_status(path.cpf)
        except ValueError:
            return jsonify({"found": False, "message": "Invalid CPF"}), 400
        except PyMongoError as e:
            logger.error(f"Registration status lookup failed: {str(e)}")
            raise ServiceUnavailableException("Enrollment status is temporarily unavailable")

        if voter is None:
            return jsonify(RegistrationStatusResponse(found=False).model_dump(include={"found", "status"})), 404

        response = RegistrationStatusResponse(**registration_status(voter)).model_dump(mode="json")
        return jsonify(response), 200


@public_bp.get('/validacao/cpf/<string:cpf>')
def check_cpf(path: CpfPath):
    """Whether a CPF can still be used for a new enrollment."""
    with tracer.start_as_current_span("public.check_cpf"):
        cpf = only_digits(path.cpf)
        if len(cpf) != 11:
            raise ValidationException(
                "Invalid CPF",
                [{"field": "cpf", "message": "CPF must have 11 digits", "type": "value_error"}]
            )

        try:
            available = current_app.submission_service.is_cpf_available(cpf)
        except PyMongoError as e:
            logger.error(f"CPF availability check failed: {str(e)}")
            raise ServiceUnavailableException("Availability check is temporarily unavailable")

        response = AvailabilityResponse(
            available=available,
            message="CPF available" if available else "CPF already registered"
        )
        return jsonify(response.model_dump()), 200


@public_bp.get('/validacao/email/<string:email>')
def check_email(path: EmailPath):
    """Whether an e-mail can still be used for a new enrollment."""
    with tracer.start_as_current_span("public.check_email"):
        email = path.email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationException(
                "Invalid e-mail",
                [{"field": "email", "message": "Invalid e-mail format", "type": "value_error"}]
            )

        try:
            available = current_app.submission_service.is_email_available(email)
        except PyMongoError as e:
            logger.error(f"E-mail availability check failed: {str(e)}")
            raise ServiceUnavailableException("Availability check is temporarily unavailable")

        response = AvailabilityResponse(
            available=available,
            message="Email available" if available else "Email already registered"
        )
        return jsonify(response.model_dump()), 200
