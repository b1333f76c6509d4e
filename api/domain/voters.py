# SPDX-License-Identifier: Apache-2.0

"""
Voter domain logic for submission and staff review.

Pure functions: turning a finished draft into a voter record, review
status rules, listing filters and the plain-text export of approved voters.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from domain.validation import ValidationResult, FieldError, only_digits
from models.draft import EnrollmentDraft
from models.entities import Voter, VoterAddress, VoterFile
from models.enums import VoterStatus


EXPORT_HEADER = "IDENTIFICACAO|NOME|DATA_NASCIMENTO|CPF"
EXPORT_FILENAME = "deferidos.txt"

REVIEW_DECISIONS = (VoterStatus.DEFERIDO, VoterStatus.INDEFERIDO)


@dataclass
class VoterFilters:
    """Filters for the staff voter listing."""
    search_term: Optional[str] = None
    status: Optional[str] = None

    @property
    def status_filter(self) -> Optional[str]:
        """Status to filter on; 'all' means no filter."""
        if not self.status or self.status == 'all':
            return None
        return self.status


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def assemble_voter_record(draft: EnrollmentDraft) -> Voter:
    """
    Build the voter record handed to persistence.

    CPF is stored as digits only, e-mail lower-cased, status starts as
    EM_ANALISE. The draft must already satisfy every step predicate.

    Raises:
        pydantic.ValidationError: If the draft is incomplete
    """
    personal = draft.personal
    address = draft.address

    return Voter(
        category=draft.category,
        name=personal.name.strip(),
        social_name=_blank_to_none(personal.social_name),
        phone=personal.phone,
        gender=personal.gender,
        email=personal.email.strip().lower(),
        cpf=only_digits(personal.cpf),
        birth_date=personal.birth_date,
        company=_blank_to_none(personal.company),
        address=VoterAddress(
            street=address.street.strip(),
            number=_blank_to_none(address.number),
            complement=_blank_to_none(address.complement),
            neighborhood=address.neighborhood.strip(),
            city=address.city.strip(),
            state=address.state,
            postal_code=address.postal_code,
            latitude=address.latitude,
            longitude=address.longitude
        ),
        files=[
            VoterFile(name=f.name, content_type=f.content_type, size=f.size)
            for f in draft.files.files
        ],
        status=VoterStatus.EM_ANALISE
    )


def validate_status_change(current_status: str, new_status: str) -> ValidationResult:
    """
    Validate a staff review decision.

    Only DEFERIDO and INDEFERIDO are valid targets; a decision can be
    revised, so any current status may move to either of them.

    Args:
        current_status: Current voter status
        new_status: Requested status

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    if new_status not in [s.value for s in REVIEW_DECISIONS]:
        errors.append(FieldError("status", f"Invalid status: {new_status}"))

    warnings = []
    if current_status == new_status:
        warnings.append(f"Voter is already {current_status}")

    return ValidationResult.from_errors(errors, warnings)


def apply_status_change(voter: Voter, new_status: str, reviewer_id: Optional[str] = None) -> Voter:
    """
    Return a copy of the voter with the review decision applied.

    Raises:
        ValueError: If the transition is not allowed
    """
    validation = validate_status_change(voter.status, new_status)
    if not validation.is_valid:
        raise ValueError("; ".join(validation.messages()))

    updated = voter.model_copy()
    updated.status = new_status
    updated.status_changed_at = datetime.utcnow()
    updated.update_timestamp(reviewer_id)
    return updated


def format_export_line(voter: Voter) -> str:
    """cpf|name|birth date|cpf, the identification column repeats the CPF."""
    cpf = only_digits(voter.cpf)
    return f"{cpf}|{voter.name.strip()}|{voter.birth_date[:10]}|{cpf}"


def format_approved_export(voters: Iterable[Voter]) -> str:
    """
    Build the pipe-delimited export of approved voters.

    Non-approved voters are skipped; lines are ordered by name and the
    content always ends with a newline, even when empty of voters.
    """
    approved = sorted(
        (v for v in voters if v.status == VoterStatus.DEFERIDO),
        key=lambda v: v.name
    )
    lines = [EXPORT_HEADER] + [format_export_line(v) for v in approved]
    return "\n".join(lines) + "\n"


def registration_status(voter: Optional[Voter]) -> Dict[str, Any]:
    """Public view of an enrollment, without personal data beyond the name."""
    if voter is None:
        return {"found": False, "status": None}
    return {
        "found": True,
        "cpf": voter.cpf,
        "name": voter.name,
        "status": voter.status,
        "created_at": voter.created_at,
        "updated_at": voter.updated_at
    }
