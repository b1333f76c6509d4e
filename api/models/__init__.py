# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the voter enrollment service.
"""

# Base models
from .base import BaseEntity, DraftSection

# Enumerations
from .enums import (
    EnrollmentCategory,
    Gender,
    VoterStatus,
    StepOutcome
)

# Draft
from .draft import (
    ADDRESS_TEXT_FIELDS,
    PersonalDataDraft,
    AddressDraft,
    FileSelection,
    FilesDraft,
    DeclarationsDraft,
    EnrollmentDraft
)

# Core entities
from .entities import (
    Voter,
    VoterAddress,
    VoterFile
)

# Request models
from .requests import (
    PersonalDataUpdate,
    AddressUpdate,
    DeclarationsUpdate,
    DraftUpdateRequest,
    PostalCodeLookupRequest,
    MapPointRequest,
    StatusChangeRequest,
    VoterListQuery,
    SessionPath,
    VoterPath,
    CpfPath,
    EmailPath
)

# Response models
from .responses import (
    HalLink,
    ErrorResponse,
    BoundingBoxResponse,
    PerimeterResponse,
    SessionStateResponse,
    StepResultResponse,
    RegistrationStatusResponse,
    AvailabilityResponse,
    VoterStatusChangeResponse
)

__all__ = [
    # Base models
    "BaseEntity",
    "DraftSection",

    # Enumerations
    "EnrollmentCategory",
    "Gender",
    "VoterStatus",
    "StepOutcome",

    # Draft
    "ADDRESS_TEXT_FIELDS",
    "PersonalDataDraft",
    "AddressDraft",
    "FileSelection",
    "FilesDraft",
    "DeclarationsDraft",
    "EnrollmentDraft",

    # Core entities
    "Voter",
    "VoterAddress",
    "VoterFile",

    # Request models
    "PersonalDataUpdate",
    "AddressUpdate",
    "DeclarationsUpdate",
    "DraftUpdateRequest",
    "PostalCodeLookupRequest",
    "MapPointRequest",
    "StatusChangeRequest",
    "VoterListQuery",
    "SessionPath",
    "VoterPath",
    "CpfPath",
    "EmailPath",

    # Response models
    "HalLink",
    "ErrorResponse",
    "BoundingBoxResponse",
    "PerimeterResponse",
    "SessionStateResponse",
    "StepResultResponse",
    "RegistrationStatusResponse",
    "AvailabilityResponse",
    "VoterStatusChangeResponse"
]
