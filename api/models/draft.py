# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enrollment draft models.

The draft is the in-progress record owned by a wizard session. Fields are
deliberately permissive here; per-step rules live in domain.validation so a
half-filled draft can always be stored and re-rendered.
"""

from typing import List, Optional, Tuple
from pydantic import Field

from .base import DraftSection
from .enums import EnrollmentCategory, Gender


ADDRESS_TEXT_FIELDS = (
    "street",
    "number",
    "complement",
    "neighborhood",
    "city",
    "state",
    "postal_code",
)


class PersonalDataDraft(DraftSection):
    """Personal data section."""

    name: str = Field(default="", description="Full name")
    social_name: Optional[str] = Field(None, description="Social name")
    phone: str = Field(default="", description="Phone as (00) 00000-0000")
    gender: Optional[Gender] = Field(None, description="Self-declared gender")
    email: str = Field(default="", description="E-mail address")
    cpf: str = Field(default="", description="National ID number, formatted or digits")
    birth_date: str = Field(default="", description="Birth date as YYYY-MM-DD")
    company: Optional[str] = Field(None, description="Employer, required for workers")


class AddressDraft(DraftSection):
    """Address section, including the resolved coordinate."""

    street: str = Field(default="", description="Street (logradouro)")
    number: Optional[str] = Field(None, description="House number")
    complement: Optional[str] = Field(None, description="Complement")
    neighborhood: str = Field(default="", description="Neighborhood (bairro)")
    city: str = Field(default="", description="City")
    state: str = Field(default="", description="State abbreviation (UF)")
    postal_code: str = Field(default="", description="Postal code (CEP)")
    latitude: Optional[float] = Field(None, description="Latitude, WGS84")
    longitude: Optional[float] = Field(None, description="Longitude, WGS84")
    within_perimeter: Optional[bool] = Field(None, description="Result of the last geofence check")

    def coordinate(self) -> Optional[Tuple[float, float]]:
        """Return (latitude, longitude) when both are known."""
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    def set_coordinate(self, latitude: float, longitude: float) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.within_perimeter = None

    def clear_coordinate(self) -> None:
        self.latitude = None
        self.longitude = None
        self.within_perimeter = None

    def clear_text_fields(self) -> None:
        """Blank every textual field, keeping the coordinate for the map marker."""
        self.street = ""
        self.number = None
        self.complement = None
        self.neighborhood = ""
        self.city = ""
        self.state = ""
        self.postal_code = ""


class FileSelection(DraftSection):
    """Metadata of one selected document file."""

    name: str = Field(..., min_length=1, description="Original file name")
    content_type: str = Field(default="", description="Declared MIME type")
    size: int = Field(..., ge=0, description="Size in bytes")


class FilesDraft(DraftSection):
    """Document upload section."""

    files: List[FileSelection] = Field(default_factory=list)


class DeclarationsDraft(DraftSection):
    """The five acknowledgments accepted before submission."""

    identity: bool = False
    voting: bool = False
    document: bool = False
    authorization: bool = False
    truthfulness: bool = False

    def all_accepted(self) -> bool:
        return all([self.identity, self.voting, self.document, self.authorization, self.truthfulness])


class EnrollmentDraft(DraftSection):
    """In-progress enrollment record."""

    category: Optional[EnrollmentCategory] = Field(None, description="Enrollment category")
    personal: PersonalDataDraft = Field(default_factory=PersonalDataDraft)
    address: AddressDraft = Field(default_factory=AddressDraft)
    files: FilesDraft = Field(default_factory=FilesDraft)
    declarations: DeclarationsDraft = Field(default_factory=DeclarationsDraft)
