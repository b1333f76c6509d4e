# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class ErrorResponse(BaseModel):
    """Error response model following RFC 7807."""

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Field validation errors")
    links: Optional[Dict[str, HalLink]] = Field(None, alias="_links", description="HAL links")


class BoundingBoxResponse(BaseModel):
    """Map framing box for the eligibility perimeter."""

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float
    center: List[float] = Field(..., description="[latitude, longitude]")


class PerimeterResponse(BaseModel):
    """Perimeter geometry published for map rendering."""

    bounds: BoundingBoxResponse
    polygons: List[List[List[float]]] = Field(..., description="Outer rings as [longitude, latitude] pairs")


class SessionStateResponse(BaseModel):
    """Wizard session state."""

    session_id: str
    current_step: int = Field(..., description="Zero-based index of the current step")
    current_step_key: str
    steps: List[Dict[str, Any]]
    completed_steps: List[int]
    can_submit: bool
    lookup_pending: bool
    draft: Dict[str, Any]
    field_feedback: Dict[str, str] = Field(default_factory=dict)


class StepResultResponse(BaseModel):
    """Outcome of a wizard transition or address operation."""

    outcome: str
    message: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    session: SessionStateResponse


class RegistrationStatusResponse(BaseModel):
    """Public enrollment status looked up by CPF."""

    found: bool
    cpf: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    """Whether a CPF or e-mail can still be used for a new enrollment."""

    available: bool
    message: str


class VoterStatusChangeResponse(BaseModel):
    """Result of a staff review decision."""

    id: str
    status: str
