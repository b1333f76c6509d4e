# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Persisted entity models for the voter enrollment service.
"""

import re
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .base import BaseEntity
from .enums import EnrollmentCategory, Gender, VoterStatus


class VoterAddress(BaseModel):
    """Address stored with a voter."""

    street: str = Field(..., min_length=1, max_length=200)
    number: Optional[str] = None
    complement: Optional[str] = Field(None, max_length=100)
    neighborhood: str = Field(..., min_length=1, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    postal_code: str = Field(..., description="CEP")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class VoterFile(BaseModel):
    """Metadata of a document attached to an enrollment."""

    name: str
    content_type: str = ""
    size: int = Field(..., ge=0)


class Voter(BaseEntity):
    """Submitted enrollment under staff review."""

    category: EnrollmentCategory = Field(..., description="Enrollment category")
    name: str = Field(..., min_length=2, max_length=100)
    social_name: Optional[str] = Field(None, max_length=100)
    phone: str = Field(default="")
    gender: Optional[Gender] = None
    email: str = Field(..., max_length=100)
    cpf: str = Field(..., description="CPF digits only")
    birth_date: str = Field(..., description="YYYY-MM-DD")
    company: Optional[str] = Field(None, max_length=200)
    address: VoterAddress
    files: List[VoterFile] = Field(default_factory=list)
    status: VoterStatus = Field(default=VoterStatus.EM_ANALISE)
    status_changed_at: Optional[datetime] = None

    @field_validator('cpf')
    @classmethod
    def validate_cpf_digits(cls, v):
        """CPF is stored normalized."""
        if not re.fullmatch(r'\d{11}', v):
            raise ValueError('CPF must contain exactly 11 digits')
        return v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        """Store e-mail lower-cased."""
        return v.strip().lower()

    def is_pending(self) -> bool:
        return self.status == VoterStatus.EM_ANALISE
