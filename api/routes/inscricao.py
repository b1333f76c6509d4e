# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enrollment wizard endpoints.

A client starts a session, edits the draft section by section, resolves
the address through the postal code or the map and moves between steps.
Failed operations answer with a problem document that also carries the
session state, so the form can be re-rendered with cleared fields.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pymongo.errors import PyMongoError
import logging
from typing import Any, Dict, List

from domain.validation import FieldError
from models.enums import StepOutcome
from models.requests import DraftUpdateRequest, MapPointRequest, PostalCodeLookupRequest, SessionPath
from middleware.error_handler import (
    ConflictException, NotFoundException, ServiceUnavailableException, StepFailureException,
    ValidationException
)
from services.enrollment_sessions import (
    DraftUpdateError, EnrollmentSession, SessionAlreadySubmittedError, SubmissionBlockedError
)
from services.mongodb import DuplicateVoterError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

enrollment_tag = Tag(name="Enrollment", description="Voter enrollment wizard")
enrollment_bp = APIBlueprint(
    'enrollment',
    __name__,
    url_prefix='/api/inscricao',
    abp_tags=[enrollment_tag]
)

DEFAULT_FAILURE_MESSAGES = {
    StepOutcome.VALIDATION_FAILED: "Please correct the highlighted fields.",
    StepOutcome.BUSY: "A step transition is already in progress.",
}
STEP_NOT_COMPLETED_MESSAGE = "This step is not completed."


def _get_session(session_id: str) -> EnrollmentSession:
    session = current_app.session_store.get(session_id)
    if session is None:
        raise NotFoundException(f"Enrollment session {session_id} not found")
    return session


def _format_session(session: EnrollmentSession) -> Dict[str, Any]:
    return current_app.hal_formatter.format_session(session.state_dict(), session.transition_pending)


def _outcome_response(session: EnrollmentSession, outcome: StepOutcome, message: str = None, **extra):
    """Save the session and build the body of a successful operation."""
    current_app.session_store.save(session)
    body = {
        "outcome": outcome.value,
        "message": message,
        "errors": [],
        "session": _format_session(session)
    }
    body.update(extra)
    return body


def _fail(session: EnrollmentSession, outcome: StepOutcome, message: str, errors: List[Any]):
    """Save the session and raise the problem document for a failed operation."""
    current_app.session_store.save(session)
    raise StepFailureException(
        outcome,
        message or DEFAULT_FAILURE_MESSAGES.get(outcome, outcome.value),
        [error.to_dict() for error in errors],
        session=_format_session(session)
    )


@enrollment_bp.post('/sessoes')
def start_session():
    """Start an enrollment session."""
    with tracer.start_as_current_span("enrollment.start") as span:
        session = current_app.session_store.create()
        span.set_attribute("session.id", session.session_id)
        return jsonify(_format_session(session)), 201


@enrollment_bp.get('/sessoes/<string:session_id>')
def get_session(path: SessionPath):
    """Get the session state: current step, completed steps, draft and readiness."""
    with tracer.start_as_current_span("enrollment.get", attributes={"session.id": path.session_id}):
        session = _get_session(path.session_id)
        return jsonify(_format_session(session)), 200


@enrollment_bp.patch('/sessoes/<string:session_id>/rascunho')
def update_draft(path: SessionPath):
    """
    Update the draft.

    Only the sections and fields present in the body are changed. Editing
    the address location clears the resolved coordinate; a new CPF, e-mail
    or postal code schedules the matching background lookup.
    """
    with tracer.start_as_current_span("enrollment.update_draft", attributes={"session.id": path.session_id}):
        update = current_app.validation_middleware.parse_json_body(DraftUpdateRequest)
        session = _get_session(path.session_id)

        try:
            session.apply_update(update)
        except DraftUpdateError as e:
            errors = current_app.validation_middleware.format_validation_errors(e.error)
            for error in errors:
                error["field"] = f"{e.section}.{error['field']}"
            raise ValidationException(f"Invalid {e.section} data", errors)

        current_app.session_store.save(session)

        logger.info(
            "Draft updated",
            extra={
                "session_id": path.session_id,
                "sections": sorted(update.model_dump(exclude_unset=True).keys())
            }
        )
        return jsonify(_format_session(session)), 200


@enrollment_bp.post('/sessoes/<string:session_id>/endereco/cep')
def lookup_postal_code(path: SessionPath):
    """Resolve a postal code into the address and its map coordinate."""
    with tracer.start_as_current_span("enrollment.lookup_postal_code") as span:
        span.set_attribute("session.id", path.session_id)
        body = current_app.validation_middleware.parse_json_body(PostalCodeLookupRequest)
        session = _get_session(path.session_id)

        result = session.lookup_postal_code(body.postal_code)
        span.set_attribute("lookup.outcome", result.outcome.value)
        if not result.succeeded:
            _fail(session, result.outcome, result.message, result.errors)
        return jsonify(_outcome_response(session, result.outcome, result.message)), 200


@enrollment_bp.post('/sessoes/<string:session_id>/endereco/mapa')
def select_map_point(path: SessionPath):
    """Use a point picked on the map as the address location."""
    with tracer.start_as_current_span("enrollment.select_map_point") as span:
        span.set_attribute("session.id", path.session_id)
        body = current_app.validation_middleware.parse_json_body(MapPointRequest)
        session = _get_session(path.session_id)

        result = session.select_map_point(body.latitude, body.longitude)
        span.set_attribute("lookup.outcome", result.outcome.value)
        if not result.succeeded:
            _fail(session, result.outcome, result.message, result.errors)
        return jsonify(_outcome_response(session, result.outcome, result.message)), 200


@enrollment_bp.post('/sessoes/<string:session_id>/avancar')
def advance(path: SessionPath):
    """Validate the current step and move to the next one."""
    with tracer.start_as_current_span("enrollment.advance") as span:
        span.set_attribute("session.id", path.session_id)
        session = _get_session(path.session_id)

        result = session.advance()
        if not result.succeeded:
            span.set_status(Status(StatusCode.ERROR, result.outcome.value))
            _fail(session, result.outcome, result.message, result.errors)

        return jsonify(_outcome_response(session, result.outcome, step=result.step_key)), 200


@enrollment_bp.post('/sessoes/<string:session_id>/voltar')
def retreat(path: SessionPath):
    """Go back to the previous step."""
    with tracer.start_as_current_span("enrollment.retreat", attributes={"session.id": path.session_id}):
        session = _get_session(path.session_id)
        session.retreat()
        current_app.session_store.save(session)
        return jsonify(_format_session(session)), 200


@enrollment_bp.post('/sessoes/<string:session_id>/enviar')
def submit(path: SessionPath):
    """
    Submit the enrollment.

    Every step must be completed and still valid. The stored enrollment
    starts under review (EM_ANALISE).
    """
    with tracer.start_as_current_span("enrollment.submit") as span:
        span.set_attribute("session.id", path.session_id)
        session = _get_session(path.session_id)

        try:
            voter = session.submit(current_app.submission_service)
        except SubmissionBlockedError as e:
            _fail(
                session,
                StepOutcome.VALIDATION_FAILED,
                "Enrollment is not complete.",
                [FieldError(key, STEP_NOT_COMPLETED_MESSAGE) for key in e.blockers]
            )
        except SessionAlreadySubmittedError:
            raise ConflictException("Enrollment already submitted")
        except DuplicateVoterError as e:
            raise ConflictException(
                str(e),
                [{"field": f"personal.{e.field}", "message": str(e)}]
            )
        except PyMongoError as e:
            logger.error(f"Enrollment submission failed: {str(e)}", extra={"session_id": path.session_id})
            raise ServiceUnavailableException("Enrollment submission is temporarily unavailable")

        current_app.session_store.save(session)
        span.set_attribute("voter.id", voter.id)

        link_builder = current_app.hal_formatter.builder.link_builder
        response = {
            "outcome": StepOutcome.COMPLETED.value,
            "message": "Enrollment submitted.",
            "id": voter.id,
            "status": voter.status,
            "_links": {
                "session": link_builder.build_self_link(
                    f"/api/inscricao/sessoes/{path.session_id}"
                ).model_dump(exclude_none=True),
                "registration_status": link_builder.build_link(
                    f"/api/consulta-cadastro/{voter.cpf}", title="Enrollment status"
                ).model_dump(exclude_none=True)
            }
        }
        return jsonify(response), 201


@enrollment_bp.delete('/sessoes/<string:session_id>')
def abandon(path: SessionPath):
    """Abandon the session, cancelling pending lookups."""
    with tracer.start_as_current_span("enrollment.abandon", attributes={"session.id": path.session_id}):
        session = _get_session(path.session_id)
        session.abandon()
        current_app.session_store.remove(path.session_id)

        logger.info("Enrollment session abandoned", extra={"session_id": path.session_id})
        return '', 204
