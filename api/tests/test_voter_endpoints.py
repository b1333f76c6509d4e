# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the staff review endpoints.
"""

from services.mongodb import PaginationResult

VOTERS = '/api/votantes'


class TestListVoters:

    def test_list(self, client, mock_submission_service, sample_voter):
        mock_submission_service.list_voters.return_value = PaginationResult([sample_voter], 1, 1, 20)

        response = client.get(f'{VOTERS}?search=maria&status=EM_ANALISE')

        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 1
        item = data['_embedded']['items'][0]
        assert item['cpf'] == '52998224725'
        assert 'approve' in item['_links']
        assert 'export' in data['_links']
        mock_submission_service.list_voters.assert_called_once_with(
            page=1, page_size=20, search='maria', status='EM_ANALISE'
        )

    def test_status_all(self, client, mock_submission_service):
        mock_submission_service.list_voters.return_value = PaginationResult([], 0, 1, 20)

        response = client.get(f'{VOTERS}?status=all')

        assert response.status_code == 200
        assert response.get_json()['_embedded']['items'] == []

    def test_unknown_status(self, client, mock_submission_service):
        response = client.get(f'{VOTERS}?status=ARQUIVADO')

        assert response.status_code == 400
        mock_submission_service.list_voters.assert_not_called()


class TestExport:

    def test_export(self, client, mock_submission_service):
        mock_submission_service.export_approved.return_value = (
            "IDENTIFICACAO|NOME|DATA_NASCIMENTO|CPF\n"
            "52998224725|Maria da Silva|1990-05-20|52998224725\n"
        )

        response = client.get(f'{VOTERS}/export')

        assert response.status_code == 200
        assert response.mimetype == 'text/plain'
        assert response.headers['Content-Disposition'].startswith('attachment; filename=')
        assert response.get_data(as_text=True).splitlines()[1].startswith('52998224725|')
        mock_submission_service.get_voter.assert_not_called()


class TestGetVoter:

    def test_get(self, client, mock_submission_service, sample_voter):
        mock_submission_service.get_voter.return_value = sample_voter

        response = client.get(f'{VOTERS}/{sample_voter.id}')

        assert response.status_code == 200
        links = response.get_json()['_links']
        assert links['self']['href'] == f'http://testserver{VOTERS}/{sample_voter.id}'
        assert 'approve' in links
        assert 'reject' in links

    def test_not_found(self, client, mock_submission_service):
        mock_submission_service.get_voter.return_value = None

        response = client.get(f'{VOTERS}/65f1c2a4b7e8d9f0a1b2c3ff')

        assert response.status_code == 404
        assert response.get_json()['type'].endswith('/resource-not-found')


class TestChangeStatus:

    def test_approve(self, client, mock_submission_service, sample_voter):
        mock_submission_service.change_status.return_value = sample_voter.model_copy(update={"status": "DEFERIDO"})

        response = client.put(f'{VOTERS}/{sample_voter.id}/status', json={
            "status": "DEFERIDO", "reviewer_id": "staff-1"
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'DEFERIDO'
        assert 'approve' not in data['_links']
        assert 'reject' in data['_links']
        mock_submission_service.change_status.assert_called_once_with(sample_voter.id, 'DEFERIDO', 'staff-1')

    def test_rejected_transition(self, client, mock_submission_service, sample_voter):
        mock_submission_service.change_status.side_effect = ValueError("Cannot move a voter back to EM_ANALISE")

        response = client.put(f'{VOTERS}/{sample_voter.id}/status', json={"status": "EM_ANALISE"})

        assert response.status_code == 400
        assert response.get_json()['errors'][0]['field'] == 'status'

    def test_missing_voter(self, client, mock_submission_service):
        mock_submission_service.change_status.return_value = None

        response = client.put(f'{VOTERS}/65f1c2a4b7e8d9f0a1b2c3ff/status', json={"status": "INDEFERIDO"})

        assert response.status_code == 404

    def test_invalid_body(self, client, mock_submission_service, sample_voter):
        response = client.put(f'{VOTERS}/{sample_voter.id}/status', json={"status": "APROVADO"})

        assert response.status_code == 400
        mock_submission_service.change_status.assert_not_called()
