# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

import re
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .draft import FileSelection
from .enums import EnrollmentCategory, Gender, VoterStatus


class PartialUpdate(BaseModel):
    """Base for partial section updates; only fields sent are applied."""

    model_config = ConfigDict(extra='forbid')


class PersonalDataUpdate(PartialUpdate):
    name: Optional[str] = None
    social_name: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    email: Optional[str] = None
    cpf: Optional[str] = None
    birth_date: Optional[str] = None
    company: Optional[str] = None


class AddressUpdate(PartialUpdate):
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator('state')
    @classmethod
    def upper_state(cls, v):
        """UF is typed in upper case."""
        return v.upper() if v is not None else v


class DeclarationsUpdate(PartialUpdate):
    identity: Optional[bool] = None
    voting: Optional[bool] = None
    document: Optional[bool] = None
    authorization: Optional[bool] = None
    truthfulness: Optional[bool] = None


class DraftUpdateRequest(PartialUpdate):
    """Partial update of an enrollment draft."""

    category: Optional[EnrollmentCategory] = Field(None, description="Enrollment category")
    personal: Optional[PersonalDataUpdate] = None
    address: Optional[AddressUpdate] = None
    files: Optional[List[FileSelection]] = Field(None, description="Replaces the selected files")
    declarations: Optional[DeclarationsUpdate] = None


class PostalCodeLookupRequest(BaseModel):
    """Postal code (CEP) to resolve into an address and a coordinate."""

    postal_code: str = Field(..., description="CEP, with or without dash")

    @field_validator('postal_code')
    @classmethod
    def validate_postal_code(cls, v):
        """Require eight digits."""
        digits = re.sub(r'\D', '', v)
        if len(digits) != 8:
            raise ValueError('Postal code must have 8 digits')
        return f"{digits[:5]}-{digits[5:]}"


class MapPointRequest(BaseModel):
    """Point selected on the map."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StatusChangeRequest(BaseModel):
    """Staff review decision."""

    status: VoterStatus = Field(..., description="DEFERIDO or INDEFERIDO")
    reviewer_id: Optional[str] = Field(None, max_length=100, description="Identifier of the reviewer")


class VoterListQuery(BaseModel):
    """Query parameters for the staff voter listing."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")
    search: Optional[str] = Field(None, max_length=100, description="Matches name or e-mail")
    status: Optional[str] = Field(None, description="Status filter, 'all' for no filter")

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        """Accept a known status or 'all'."""
        if v is None or v == 'all':
            return v
        if v not in {s.value for s in VoterStatus}:
            raise ValueError(f'Unknown status: {v}')
        return v


class SessionPath(BaseModel):
    session_id: str = Field(..., description="Enrollment session ID")


class VoterPath(BaseModel):
    voter_id: str = Field(..., description="Voter ID")


class CpfPath(BaseModel):
    cpf: str = Field(..., description="CPF, formatted or digits")


class EmailPath(BaseModel):
    email: str = Field(..., description="E-mail address")
