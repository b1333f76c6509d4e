# SPDX-License-Identifier: Apache-2.0

"""
Tests for the submission and review service.
"""

import pytest
from unittest.mock import Mock
from pymongo.errors import ServerSelectionTimeoutError

from domain.enrollment import LookupFailedError
from services.mongodb import DuplicateVoterError, MongoDBService, PaginationResult
from services.submission import CPF_TAKEN_MESSAGE, EMAIL_TAKEN_MESSAGE, SubmissionService


@pytest.fixture
def mongodb_service():
    service = Mock(spec=MongoDBService)
    service.find_voter_by_cpf.return_value = None
    service.find_voter_by_email.return_value = None
    service.create_voter.return_value = "65f1c2a4b7e8d9f0a1b2c3ff"
    service.update_voter_status.return_value = True
    return service


@pytest.fixture
def submission_service(mongodb_service):
    return SubmissionService(mongodb_service)


class TestAvailability:

    def test_no_conflicts(self, submission_service, valid_personal, mongodb_service):
        assert submission_service.find_conflicts(valid_personal) == []
        mongodb_service.find_voter_by_cpf.assert_called_once_with("52998224725")

    def test_conflicts(self, submission_service, valid_personal, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_cpf.return_value = sample_voter
        mongodb_service.find_voter_by_email.return_value = sample_voter

        conflicts = submission_service.find_conflicts(valid_personal)

        assert [(c.field, c.message) for c in conflicts] == [
            ("personal.email", EMAIL_TAKEN_MESSAGE),
            ("personal.cpf", CPF_TAKEN_MESSAGE)
        ]

    def test_database_failure_is_a_lookup_failure(self, submission_service, valid_personal, mongodb_service):
        mongodb_service.find_voter_by_email.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(LookupFailedError):
            submission_service.find_conflicts(valid_personal)


class TestSubmit:

    def test_submit(self, submission_service, complete_draft, mongodb_service):
        voter = submission_service.submit(complete_draft)

        assert voter.id == "65f1c2a4b7e8d9f0a1b2c3ff"
        assert voter.status == "EM_ANALISE"
        stored = mongodb_service.create_voter.call_args[0][0]
        assert stored.cpf == "52998224725"
        assert stored.email == "maria@example.com"

    def test_duplicate_email(self, submission_service, complete_draft, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_email.return_value = sample_voter

        with pytest.raises(DuplicateVoterError) as exc_info:
            submission_service.submit(complete_draft)

        assert exc_info.value.field == "email"
        mongodb_service.create_voter.assert_not_called()

    def test_duplicate_cpf(self, submission_service, complete_draft, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_cpf.return_value = sample_voter

        with pytest.raises(DuplicateVoterError) as exc_info:
            submission_service.submit(complete_draft)

        assert exc_info.value.field == "cpf"

    def test_race_caught_by_unique_index(self, submission_service, complete_draft, mongodb_service):
        mongodb_service.create_voter.side_effect = DuplicateVoterError("cpf", CPF_TAKEN_MESSAGE)

        with pytest.raises(DuplicateVoterError):
            submission_service.submit(complete_draft)


class TestReview:

    def test_registration_status(self, submission_service, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_cpf.return_value = sample_voter

        assert submission_service.get_registration_status("529.982.247-25") is sample_voter
        mongodb_service.find_voter_by_cpf.assert_called_once_with("52998224725")

    def test_registration_status_invalid_cpf(self, submission_service):
        with pytest.raises(ValueError):
            submission_service.get_registration_status("1234")

    def test_list_voters_all(self, submission_service, mongodb_service):
        mongodb_service.paginate_voters.return_value = PaginationResult([], 0, 1, 20)

        submission_service.list_voters(search="maria", status="all")

        mongodb_service.paginate_voters.assert_called_once_with(
            page=1, page_size=20, search="maria", status=None
        )

    def test_change_status(self, submission_service, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_id.return_value = sample_voter

        updated = submission_service.change_status(sample_voter.id, "DEFERIDO", "staff-1")

        assert updated.status == "DEFERIDO"
        mongodb_service.update_voter_status.assert_called_once_with(sample_voter.id, "DEFERIDO", "staff-1")

    def test_change_status_missing_voter(self, submission_service, mongodb_service):
        mongodb_service.find_voter_by_id.return_value = None

        assert submission_service.change_status("65f1c2a4b7e8d9f0a1b2c3d4", "DEFERIDO") is None
        mongodb_service.update_voter_status.assert_not_called()

    def test_change_status_invalid(self, submission_service, mongodb_service, sample_voter):
        mongodb_service.find_voter_by_id.return_value = sample_voter

        with pytest.raises(ValueError):
            submission_service.change_status(sample_voter.id, "EM_ANALISE")
        mongodb_service.update_voter_status.assert_not_called()

    def test_export_approved(self, submission_service, mongodb_service, sample_voter):
        approved = sample_voter.model_copy(update={"status": "DEFERIDO"})
        mongodb_service.list_voters_by_status.return_value = [approved]

        content = submission_service.export_approved()

        assert content.splitlines()[1] == "52998224725|Maria da Silva|1990-05-20|52998224725"
        mongodb_service.list_voters_by_status.assert_called_once_with("DEFERIDO")
