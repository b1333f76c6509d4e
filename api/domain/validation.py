# SPDX-License-Identifier: Apache-2.0

"""
Field validation rules for the enrollment wizard.

Pure functions over draft sections. Each returns a ValidationResult with
field-scoped errors so the caller can show messages next to the inputs.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from models.draft import (
    AddressDraft, DeclarationsDraft, EnrollmentDraft, FilesDraft, PersonalDataDraft
)
from models.enums import EnrollmentCategory, Gender


NAME_PATTERN = re.compile(r'^[a-zA-ZÀ-ÿ\s]+$')
SOCIAL_NAME_PATTERN = re.compile(r'^[a-zA-ZÀ-ÿ\s]*$')
PHONE_PATTERN = re.compile(r'^\(\d{2}\)\s\d{4,5}-\d{4}$')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
STATE_PATTERN = re.compile(r'^[A-Z]{2}$')
POSTAL_CODE_PATTERN = re.compile(r'^\d{5}-?\d{3}$')

MIN_AGE = 16
MAX_AGE = 120

MAX_FILES = 5
MAX_TOTAL_FILE_SIZE = 30 * 1024 * 1024
ALLOWED_CONTENT_TYPES = {
    'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp',
    'application/zip', 'application/x-zip-compressed'
}
ALLOWED_EXTENSIONS = ('.zip', '.jpg', '.jpeg', '.png', '.gif', '.webp')

DECLARATION_FIELDS = ('identity', 'voting', 'document', 'authorization', 'truthfulness')


@dataclass
class FieldError:
    """A validation message bound to a draft field path."""
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """Result of validating one draft section."""
    is_valid: bool
    errors: List[FieldError]
    warnings: List[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []

    @classmethod
    def from_errors(cls, errors: List[FieldError], warnings: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=len(errors) == 0, errors=errors, warnings=warnings)

    def messages(self) -> List[str]:
        return [error.message for error in self.errors]


def only_digits(value: Optional[str]) -> str:
    """Strip everything but digits."""
    return re.sub(r'\D', '', value or '')


def is_valid_cpf(cpf: str) -> bool:
    """
    Validate a CPF number with its two check digits.

    Accepts formatted (000.000.000-00) or bare input. Sequences of a single
    repeated digit are rejected even though their check digits match.
    """
    digits = only_digits(cpf)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False

    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = 11 - (total % 11)
        if check >= 10:
            check = 0
        if check != int(digits[position]):
            return False
    return True


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def parse_birth_date(value: str) -> Optional[date]:
    """Parse YYYY-MM-DD, returning None when malformed."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def validate_category(draft: EnrollmentDraft) -> ValidationResult:
    """Category step: one of the enrollment categories must be chosen."""
    errors = []
    if draft.category not in [c.value for c in EnrollmentCategory]:
        errors.append(FieldError("category", "Select an enrollment category"))
    return ValidationResult.from_errors(errors)


def validate_personal_data(
    personal: PersonalDataDraft,
    category: Optional[str],
    today: Optional[date] = None
) -> ValidationResult:
    """Personal data step."""
    errors = []

    name = (personal.name or '').strip()
    if len(name) < 2:
        errors.append(FieldError("personal.name", "Name must have at least 2 characters"))
    elif len(name) > 100:
        errors.append(FieldError("personal.name", "Name must have at most 100 characters"))
    elif not NAME_PATTERN.match(name):
        errors.append(FieldError("personal.name", "Name must contain only letters and spaces"))

    if personal.social_name:
        if len(personal.social_name) > 100:
            errors.append(FieldError("personal.social_name", "Social name must have at most 100 characters"))
        elif not SOCIAL_NAME_PATTERN.match(personal.social_name):
            errors.append(FieldError("personal.social_name", "Social name must contain only letters and spaces"))

    if not personal.phone:
        errors.append(FieldError("personal.phone", "Phone is required"))
    elif not PHONE_PATTERN.match(personal.phone):
        errors.append(FieldError("personal.phone", "Phone must have the format (00) 00000-0000"))

    if personal.gender not in [g.value for g in Gender]:
        errors.append(FieldError("personal.gender", "Select a gender"))

    email = (personal.email or '').strip()
    if not EMAIL_PATTERN.match(email.lower()):
        errors.append(FieldError("personal.email", "Invalid e-mail"))
    elif len(email) > 100:
        errors.append(FieldError("personal.email", "E-mail must have at most 100 characters"))

    if not is_valid_cpf(personal.cpf):
        errors.append(FieldError("personal.cpf", "Invalid CPF"))

    birth_date = parse_birth_date(personal.birth_date)
    if not personal.birth_date:
        errors.append(FieldError("personal.birth_date", "Birth date is required"))
    elif birth_date is None:
        errors.append(FieldError("personal.birth_date", "Birth date must have the format YYYY-MM-DD"))
    else:
        age = calculate_age(birth_date, today)
        if age < MIN_AGE or age > MAX_AGE:
            errors.append(FieldError("personal.birth_date", f"You must be at least {MIN_AGE} years old to enroll"))

    company = (personal.company or '').strip()
    if category == EnrollmentCategory.TRABALHADOR and not company:
        errors.append(FieldError("personal.company", "Company name is required for workers"))
    elif len(company) > 200:
        errors.append(FieldError("personal.company", "Company name must have at most 200 characters"))

    return ValidationResult.from_errors(errors)


def validate_address_fields(address: AddressDraft) -> ValidationResult:
    """Textual address rules; the geofence is checked by the step predicate."""
    errors = []

    street = (address.street or '').strip()
    if not street:
        errors.append(FieldError("address.street", "Street is required"))
    elif len(street) < 5:
        errors.append(FieldError("address.street", "Street must have at least 5 characters"))
    elif len(street) > 200:
        errors.append(FieldError("address.street", "Street must have at most 200 characters"))

    if address.complement and len(address.complement) > 100:
        errors.append(FieldError("address.complement", "Complement must have at most 100 characters"))

    for name, label in (("neighborhood", "Neighborhood"), ("city", "City")):
        value = (getattr(address, name) or '').strip()
        if not value:
            errors.append(FieldError(f"address.{name}", f"{label} is required"))
        elif len(value) < 2:
            errors.append(FieldError(f"address.{name}", f"{label} must have at least 2 characters"))
        elif len(value) > 100:
            errors.append(FieldError(f"address.{name}", f"{label} must have at most 100 characters"))

    if not address.state:
        errors.append(FieldError("address.state", "State is required"))
    elif not STATE_PATTERN.match(address.state):
        errors.append(FieldError("address.state", "State must be a valid abbreviation (e.g. SP)"))

    if not address.postal_code:
        errors.append(FieldError("address.postal_code", "Postal code is required"))
    elif not POSTAL_CODE_PATTERN.match(address.postal_code):
        errors.append(FieldError("address.postal_code", "Postal code must have the format 00000-000"))

    if address.latitude is not None and not -90 <= address.latitude <= 90:
        errors.append(FieldError("address.latitude", "Invalid latitude"))
    if address.longitude is not None and not -180 <= address.longitude <= 180:
        errors.append(FieldError("address.longitude", "Invalid longitude"))

    return ValidationResult.from_errors(errors)


def _is_allowed_file(name: str, content_type: str) -> bool:
    return content_type in ALLOWED_CONTENT_TYPES or name.lower().endswith(ALLOWED_EXTENSIONS)


def validate_files(files: FilesDraft) -> ValidationResult:
    """Documents step: count, total size and type."""
    errors = []
    selected = files.files

    if len(selected) < 1:
        errors.append(FieldError("files", "Select at least one file"))
    elif len(selected) > MAX_FILES:
        errors.append(FieldError("files", f"At most {MAX_FILES} files are allowed"))

    if sum(f.size for f in selected) > MAX_TOTAL_FILE_SIZE:
        errors.append(FieldError("files", "Total file size cannot exceed 30MB"))

    if not all(_is_allowed_file(f.name, f.content_type) for f in selected):
        errors.append(FieldError("files", "Only image files (JPG, PNG, GIF, WebP) and ZIP are allowed"))

    return ValidationResult.from_errors(errors)


def validate_declarations(declarations: DeclarationsDraft) -> ValidationResult:
    """Declarations step: every acknowledgment must be accepted."""
    errors = [
        FieldError(f"declarations.{name}", "You must accept this declaration")
        for name in DECLARATION_FIELDS
        if not getattr(declarations, name)
    ]
    return ValidationResult.from_errors(errors)
