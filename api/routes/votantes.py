# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Staff review endpoints: voter listing, detail, review decision and the
export of approved voters.
"""

from flask import Response, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging

from domain.voters import EXPORT_FILENAME
from models.requests import StatusChangeRequest, VoterListQuery, VoterPath
from models.responses import VoterStatusChangeResponse
from middleware.error_handler import NotFoundException, ValidationException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

voters_tag = Tag(name="Voters", description="Staff review of submitted enrollments")
voters_bp = APIBlueprint(
    'voters',
    __name__,
    url_prefix='/api',
    abp_tags=[voters_tag]
)


@voters_bp.get('/votantes')
def list_voters():
    """
    List voters with pagination.

    Supports a search term matched against name and e-mail and a status
    filter, where 'all' means no filter.
    """
    with tracer.start_as_current_span("voters.list", attributes={"operation": "list_voters"}) as span:
        query = current_app.validation_middleware.parse_query_params(VoterListQuery)
        span.set_attributes({
            "pagination.page": query.page,
            "pagination.page_size": query.page_size
        })

        result = current_app.submission_service.list_voters(
            page=query.page,
            page_size=query.page_size,
            search=query.search,
            status=query.status
        )

        filters = {}
        if query.search:
            filters['search'] = query.search
        if query.status:
            filters['status'] = query.status

        response = current_app.hal_formatter.format_voter_collection(
            [voter.model_dump(mode="json") for voter in result.items],
            result.total,
            result.page,
            result.page_size,
            filters
        )

        logger.info(
            "Voters listed",
            extra={"total_count": result.total, "page": query.page, "status": query.status}
        )
        return jsonify(response), 200


@voters_bp.get('/votantes/export')
def export_approved_voters():
    """Download approved voters as a pipe-delimited text file."""
    with tracer.start_as_current_span("voters.export"):
        content = current_app.submission_service.export_approved()
        logger.info("Approved voters exported", extra={"lines": content.count("\n") - 1})
        return Response(
            content,
            status=200,
            mimetype="text/plain",
            headers={"Content-Disposition": f"attachment; filename={EXPORT_FILENAME}"}
        )


@voters_bp.get('/votantes/<string:voter_id>')
def get_voter(path: VoterPath):
    """Get a voter by ID."""
    with tracer.start_as_current_span("voters.get", attributes={"voter.id": path.voter_id}):
        voter = current_app.submission_service.get_voter(path.voter_id)
        if voter is None:
            raise NotFoundException(f"Voter {path.voter_id} not found")
        return jsonify(current_app.hal_formatter.format_voter(voter.model_dump(mode="json"))), 200


@voters_bp.put('/votantes/<string:voter_id>/status')
def change_voter_status(path: VoterPath):
    """
    Approve or reject an enrollment.

    Only DEFERIDO and INDEFERIDO are accepted; a decision can be revised.
    """
    with tracer.start_as_current_span("voters.change_status") as span:
        span.set_attribute("voter.id", path.voter_id)
        body = current_app.validation_middleware.parse_json_body(StatusChangeRequest)

        try:
            voter = current_app.submission_service.change_status(
                path.voter_id, body.status, body.reviewer_id
            )
        except ValueError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise ValidationException(
                str(e),
                [{"field": "status", "message": str(e), "type": "value_error"}]
            )

        if voter is None:
            raise NotFoundException(f"Voter {path.voter_id} not found")

        response = VoterStatusChangeResponse(id=voter.id, status=voter.status).model_dump()
        response['_links'] = {
            rel: link.model_dump(exclude_none=True)
            for rel, link in current_app.hal_formatter.builder.affordance_builder.build_voter_affordances(
                voter.id, voter.status
            ).items()
        }
        return jsonify(response), 200
