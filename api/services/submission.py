# SPDX-License-Identifier: Apache-2.0

"""
Submission and review service.

Receives finished enrollment drafts, rejects duplicates by CPF or e-mail,
persists voters and runs the staff review operations on top of MongoDB.
"""

import logging
from typing import List, Optional

from opentelemetry import trace
from pymongo.errors import PyMongoError

from domain import voters as voter_domain
from domain.enrollment import LookupFailedError
from domain.validation import FieldError, only_digits
from models.draft import EnrollmentDraft, PersonalDataDraft
from models.entities import Voter
from models.enums import VoterStatus
from services.mongodb import DuplicateVoterError, MongoDBService, PaginationResult

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "Email already registered"
CPF_TAKEN_MESSAGE = "CPF already registered"


class AvailabilityLookupError(LookupFailedError):
    """Raised when the voter store cannot be queried for duplicates."""
    pass


class SubmissionService:
    """Voter persistence and review operations."""

    def __init__(self, mongodb_service: MongoDBService):
        self.mongodb_service = mongodb_service

    def is_cpf_available(self, cpf: str) -> bool:
        return self.mongodb_service.find_voter_by_cpf(only_digits(cpf)) is None

    def is_email_available(self, email: str) -> bool:
        return self.mongodb_service.find_voter_by_email(email) is None

    def find_conflicts(self, personal: PersonalDataDraft) -> List[FieldError]:
        """
        CPF/e-mail already used by another enrollment.

        Raises:
            AvailabilityLookupError: If the database cannot be reached
        """
        with tracer.start_as_current_span("submission.find_conflicts"):
            errors = []
            try:
                if personal.email and not self.is_email_available(personal.email):
                    errors.append(FieldError("personal.email", EMAIL_TAKEN_MESSAGE))
                if personal.cpf and not self.is_cpf_available(personal.cpf):
                    errors.append(FieldError("personal.cpf", CPF_TAKEN_MESSAGE))
            except PyMongoError as e:
                logger.error(f"Availability check failed: {str(e)}")
                raise AvailabilityLookupError(str(e))
            return errors

    def submit(self, draft: EnrollmentDraft) -> Voter:
        """
        Persist a finished enrollment.

        Returns:
            The stored voter, status EM_ANALISE

        Raises:
            DuplicateVoterError: If the e-mail or CPF is already registered
        """
        with tracer.start_as_current_span("submission.submit") as span:
            voter = voter_domain.assemble_voter_record(draft)

            if not self.is_email_available(voter.email):
                raise DuplicateVoterError("email", EMAIL_TAKEN_MESSAGE)
            if not self.is_cpf_available(voter.cpf):
                raise DuplicateVoterError("cpf", CPF_TAKEN_MESSAGE)

            # Unique indexes catch a concurrent submission of the same data
            voter.id = self.mongodb_service.create_voter(voter)
            span.set_attribute("voter.id", voter.id)

            logger.info(
                "Enrollment submitted",
                extra={"voter_id": voter.id, "category": voter.category}
            )
            return voter

    def get_registration_status(self, cpf: str) -> Optional[Voter]:
        """
        Public status lookup.

        Raises:
            ValueError: If the CPF doesn't have 11 digits
        """
        digits = only_digits(cpf)
        if len(digits) != 11:
            raise ValueError("Invalid CPF")
        return self.mongodb_service.find_voter_by_cpf(digits)

    def list_voters(self, page: int = 1, page_size: int = 20, search: Optional[str] = None,
                    status: Optional[str] = None) -> PaginationResult:
        filters = voter_domain.VoterFilters(search_term=search, status=status)
        return self.mongodb_service.paginate_voters(
            page=page,
            page_size=page_size,
            search=filters.search_term,
            status=filters.status_filter
        )

    def get_voter(self, voter_id: str) -> Optional[Voter]:
        return self.mongodb_service.find_voter_by_id(voter_id)

    def change_status(self, voter_id: str, new_status: str, reviewer_id: Optional[str] = None) -> Optional[Voter]:
        """
        Apply a review decision.

        Returns:
            The updated voter, None if it does not exist

        Raises:
            ValueError: If the status is not a review decision
        """
        with tracer.start_as_current_span("submission.change_status") as span:
            span.set_attributes({"voter.id": voter_id, "voter.status": new_status})

            voter = self.mongodb_service.find_voter_by_id(voter_id)
            if voter is None:
                return None

            updated = voter_domain.apply_status_change(voter, new_status, reviewer_id)
            if not self.mongodb_service.update_voter_status(voter_id, updated.status, reviewer_id):
                return None

            logger.info(
                "Voter status changed",
                extra={
                    "voter_id": voter_id,
                    "previous_status": voter.status,
                    "status": updated.status,
                    "reviewer_id": reviewer_id
                }
            )
            return updated

    def export_approved(self) -> str:
        """Pipe-delimited export of approved voters."""
        approved = self.mongodb_service.list_voters_by_status(VoterStatus.DEFERIDO.value)
        return voter_domain.format_approved_export(approved)
