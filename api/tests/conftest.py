# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from unittest.mock import Mock

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['MONGODB_DATABASE'] = 'oucbt_inscricao_test'
os.environ.pop('REDIS_URL', None)

from domain.perimeter import PerimeterEngine
from models.draft import (
    AddressDraft, DeclarationsDraft, EnrollmentDraft, FileSelection, FilesDraft, PersonalDataDraft
)
from models.entities import Voter, VoterAddress
from services.enrollment_sessions import EnrollmentSessionFactory, EnrollmentSessionStore
from services.geocoding import AddressGeocoder
from services.submission import SubmissionService

VALID_CPF = "529.982.247-25"
OTHER_VALID_CPF = "111.444.777-35"


class FakeTimer:
    """Timer that only runs when the test fires it."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class FakeTimerFactory:
    """Collects the timers created by debounced tasks."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self):
        for timer in list(self.live):
            timer.fire()


@pytest.fixture
def square_perimeter():
    """Square perimeter (0,0),(0,10),(10,10),(10,0)."""
    return PerimeterEngine.from_vertices([(0, 0), (0, 10), (10, 10), (10, 0)])


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def valid_personal():
    return PersonalDataDraft(
        name="Maria da Silva",
        phone="(11) 98765-4321",
        gender="FEMININO",
        email="Maria@Example.com",
        cpf=VALID_CPF,
        birth_date="1990-05-20"
    )


@pytest.fixture
def inside_address():
    """Complete address located inside the square perimeter."""
    return AddressDraft(
        street="Rua Exemplo Central",
        number="100",
        neighborhood="Centro",
        city="São Paulo",
        state="SP",
        postal_code="01001-000",
        latitude=5.0,
        longitude=5.0
    )


@pytest.fixture
def empty_draft():
    return EnrollmentDraft()


@pytest.fixture
def complete_draft(valid_personal, inside_address):
    """Draft satisfying every step."""
    return EnrollmentDraft(
        category="MORADOR",
        personal=valid_personal,
        address=inside_address,
        files=FilesDraft(files=[FileSelection(name="rg.jpg", content_type="image/jpeg", size=1024)]),
        declarations=DeclarationsDraft(
            identity=True, voting=True, document=True, authorization=True, truthfulness=True
        )
    )


@pytest.fixture
def sample_voter():
    return Voter(
        id="65f1c2a4b7e8d9f0a1b2c3d4",
        category="MORADOR",
        name="Maria da Silva",
        phone="(11) 98765-4321",
        gender="FEMININO",
        email="maria@example.com",
        cpf="52998224725",
        birth_date="1990-05-20",
        address=VoterAddress(
            street="Rua Exemplo Central",
            number="100",
            neighborhood="Centro",
            city="São Paulo",
            state="SP",
            postal_code="01001-000",
            latitude=5.0,
            longitude=5.0
        )
    )


@pytest.fixture
def mock_geocoder():
    geocoder = Mock(spec=AddressGeocoder)
    geocoder.resolve_coordinate.return_value = None
    geocoder.lookup_postal_code.return_value = None
    geocoder.reverse.return_value = None
    return geocoder


@pytest.fixture
def mock_submission_service():
    service = Mock(spec=SubmissionService)
    service.find_conflicts.return_value = []
    return service


@pytest.fixture
def app(square_perimeter, mock_geocoder, mock_submission_service, timer_factory):
    """Application wired to the square perimeter and mocked collaborators."""
    from app import create_app

    flask_app = create_app({'ENVIRONMENT': 'test', 'OTEL_ENABLED': False, 'BASE_URL': 'http://testserver'})
    flask_app.config['TESTING'] = True

    factory = EnrollmentSessionFactory(
        square_perimeter,
        geocoder=mock_geocoder,
        availability_checker=mock_submission_service.find_conflicts,
        timer_factory=timer_factory
    )
    flask_app.perimeter = square_perimeter
    flask_app.submission_service = mock_submission_service
    flask_app.geocoder = mock_geocoder
    flask_app.session_store = EnrollmentSessionStore(factory)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
