# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Eligibility perimeter endpoint, used by the client to frame the map.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from models.responses import BoundingBoxResponse, PerimeterResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

perimeter_tag = Tag(name="Perimeter", description="Program area used for eligibility")
perimeter_bp = APIBlueprint(
    'perimeter',
    __name__,
    url_prefix='/api',
    abp_tags=[perimeter_tag]
)


@perimeter_bp.get('/perimetro')
def get_perimeter():
    """
    Get the eligibility perimeter.

    Returns the bounding box with its center and the outer ring of every
    polygon as [longitude, latitude] pairs.
    """
    with tracer.start_as_current_span("perimeter.get"):
        perimeter = current_app.perimeter
        bounds = perimeter.get_perimeter_bounds()

        response = PerimeterResponse(
            bounds=BoundingBoxResponse(
                min_latitude=bounds.min_latitude,
                max_latitude=bounds.max_latitude,
                min_longitude=bounds.min_longitude,
                max_longitude=bounds.max_longitude,
                center=list(bounds.center)
            ),
            polygons=[
                [list(vertex) for vertex in polygon.vertices]
                for polygon in perimeter.polygons
            ]
        ).model_dump()

        response['_links'] = {
            'self': current_app.hal_formatter.builder.link_builder.build_self_link(
                '/api/perimetro'
            ).model_dump(exclude_none=True)
        }
        return jsonify(response), 200
