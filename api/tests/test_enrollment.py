# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the enrollment step machine and the step predicates.
"""

import threading
import pytest
from unittest.mock import Mock

from domain.enrollment import (
    DRAFT_CHANGED_MESSAGE, MISSING_COORDINATE_MESSAGE, OUTSIDE_PERIMETER_MESSAGE, EnrollmentStepMachine,
    LookupFailedError, PredicateResult, StepDescriptor, StepState, apply_geofence, build_default_steps, build_steps,
    check_address, check_personal_data
)
from domain.perimeter import Coordinate
from domain.validation import FieldError
from models.draft import EnrollmentDraft
from models.enums import StepOutcome

CATEGORY, ADDRESS, PERSONAL, DOCUMENTS, REVIEW, DECLARATIONS = range(6)


@pytest.fixture
def steps(square_perimeter):
    return build_default_steps(square_perimeter)


class TestStepList:

    def test_default_steps(self, steps):
        assert [s.key for s in steps] == [
            "category", "address", "personal", "documents", "review", "declarations"
        ]

    def test_compact_variant(self, square_perimeter):
        compact = build_steps(square_perimeter, "compact")
        assert [s.key for s in compact] == ["category", "address", "personal", "documents"]

    def test_unknown_variant(self, square_perimeter):
        with pytest.raises(ValueError):
            build_steps(square_perimeter, "wizard-deluxe")

    def test_descriptor_to_dict(self, steps):
        assert steps[ADDRESS].to_dict() == {
            "key": "address", "title": "Address", "description": "Enter your full address"
        }


class TestStepState:

    def test_round_trip(self):
        state = StepState(current_index=3, completed={0, 2, 1})
        data = state.to_dict()

        assert data == {"current_index": 3, "completed": [0, 1, 2]}
        assert StepState.from_dict(data) == state

    def test_from_empty_dict(self):
        assert StepState.from_dict({}) == StepState()


class TestAdvance:

    def test_failed_advance_keeps_state(self, steps):
        machine = EnrollmentStepMachine(steps, EnrollmentDraft())

        result = machine.advance()

        assert result.outcome == StepOutcome.VALIDATION_FAILED
        assert result.step_key == "category"
        assert [e.field for e in result.errors] == ["category"]
        assert machine.current_index == CATEGORY
        assert machine.completed_steps() == []

    def test_successful_advance(self, steps):
        machine = EnrollmentStepMachine(steps, EnrollmentDraft(category="MORADOR"))

        result = machine.advance()

        assert result.outcome == StepOutcome.ADVANCED
        assert result.succeeded
        assert machine.current_index == ADDRESS
        assert machine.completed_steps() == [CATEGORY]

    def test_full_walk(self, steps, complete_draft):
        machine = EnrollmentStepMachine(steps, complete_draft)

        outcomes = [machine.advance().outcome for _ in range(len(steps))]

        assert outcomes == [StepOutcome.ADVANCED] * 5 + [StepOutcome.COMPLETED]
        assert machine.is_last_step
        assert machine.completed_steps() == list(range(6))
        assert machine.can_submit() is True

    def test_last_step_failure_changes_nothing(self, steps, complete_draft):
        """advance() on the last step before its predicate holds is a no-op."""
        complete_draft.declarations.truthfulness = False
        machine = EnrollmentStepMachine(
            steps, complete_draft, StepState(DECLARATIONS, {0, 1, 2, 3, 4})
        )

        result = machine.advance()

        assert result.outcome == StepOutcome.VALIDATION_FAILED
        assert machine.current_index == DECLARATIONS
        assert DECLARATIONS not in machine.completed_steps()
        assert machine.can_submit() is False

    def test_address_inside_perimeter(self, steps, complete_draft):
        """Valid text and coordinate (1,1) inside the square completes the address step."""
        complete_draft.address.set_coordinate(1, 1)
        machine = EnrollmentStepMachine(steps, complete_draft, StepState(ADDRESS, {CATEGORY}))

        result = machine.advance()

        assert result.outcome == StepOutcome.ADVANCED
        assert ADDRESS in machine.completed_steps()
        assert complete_draft.address.within_perimeter is True

    def test_address_outside_perimeter(self, steps, complete_draft):
        complete_draft.address.set_coordinate(50, 50)
        machine = EnrollmentStepMachine(steps, complete_draft, StepState(ADDRESS, {CATEGORY}))

        result = machine.advance()

        assert result.outcome == StepOutcome.OUTSIDE_PERIMETER
        assert result.message == OUTSIDE_PERIMETER_MESSAGE
        assert machine.current_index == ADDRESS
        assert ADDRESS not in machine.completed_steps()

        address = complete_draft.address
        assert address.street == ""
        assert address.neighborhood == ""
        assert address.city == ""
        assert address.state == ""
        assert address.postal_code == ""
        assert address.number is None
        assert address.coordinate() == (50, 50)
        assert address.within_perimeter is False

    def test_retreat(self, steps):
        machine = EnrollmentStepMachine(steps, state=StepState(PERSONAL, {CATEGORY, ADDRESS}))

        assert machine.retreat() == ADDRESS
        assert machine.retreat() == CATEGORY
        assert machine.retreat() == CATEGORY
        assert machine.completed_steps() == [CATEGORY, ADDRESS]

    def test_reset(self, steps, complete_draft):
        machine = EnrollmentStepMachine(steps, complete_draft, StepState(REVIEW, {0, 1, 2, 3}))

        machine.reset()

        assert machine.current_index == CATEGORY
        assert machine.completed_steps() == []
        assert machine.draft.category is None

    def test_empty_step_list(self):
        with pytest.raises(ValueError):
            EnrollmentStepMachine([])

    def test_state_out_of_range(self, steps):
        with pytest.raises(ValueError):
            EnrollmentStepMachine(steps, state=StepState(current_index=6))


class TestConcurrentAdvance:

    def test_second_advance_is_busy(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_predicate(draft, allow_lookup):
            entered.set()
            release.wait(5)
            return PredicateResult.ok()

        steps = [
            StepDescriptor("slow", "Slow", "Slow step", slow_predicate),
            StepDescriptor("next", "Next", "Next step", lambda d, a: PredicateResult.ok())
        ]
        machine = EnrollmentStepMachine(steps)
        results = []

        worker = threading.Thread(target=lambda: results.append(machine.advance()))
        worker.start()
        assert entered.wait(5)

        assert machine.transition_pending is True
        busy = machine.advance()
        release.set()
        worker.join(5)

        assert busy.outcome == StepOutcome.BUSY
        assert results[0].outcome == StepOutcome.ADVANCED
        assert machine.current_index == 1
        assert machine.completed_steps() == [0]
        assert machine.transition_pending is False

    def _blocking_address_machine(self, square_perimeter, complete_draft):
        entered = threading.Event()
        release = threading.Event()

        def slow_resolver(address):
            entered.set()
            release.wait(5)
            return Coordinate(5, 5)

        complete_draft.address.clear_coordinate()
        steps = build_default_steps(square_perimeter, resolver=slow_resolver)
        machine = EnrollmentStepMachine(steps, complete_draft, StepState(ADDRESS, {CATEGORY}))
        return machine, entered, release

    def test_lookup_does_not_hold_draft_lock(self, square_perimeter, complete_draft):
        machine, entered, release = self._blocking_address_machine(square_perimeter, complete_draft)
        results = []

        worker = threading.Thread(target=lambda: results.append(machine.advance()))
        worker.start()
        assert entered.wait(5)

        acquired = []

        def read_draft():
            got = machine.draft_lock.acquire(timeout=1)
            acquired.append(got)
            if got:
                machine.draft_lock.release()

        reader = threading.Thread(target=read_draft)
        reader.start()
        reader.join(5)
        release.set()
        worker.join(5)

        assert acquired == [True]
        assert results[0].outcome == StepOutcome.ADVANCED
        assert complete_draft.address.coordinate() == (5, 5)
        assert complete_draft.address.within_perimeter is True

    def test_edit_during_lookup_is_busy(self, square_perimeter, complete_draft):
        machine, entered, release = self._blocking_address_machine(square_perimeter, complete_draft)
        results = []

        worker = threading.Thread(target=lambda: results.append(machine.advance()))
        worker.start()
        assert entered.wait(5)

        with machine.draft_lock:
            machine.draft.address.number = "999"
        release.set()
        worker.join(5)

        assert results[0].outcome == StepOutcome.BUSY
        assert results[0].message == DRAFT_CHANGED_MESSAGE
        assert machine.current_index == ADDRESS
        assert machine.completed_steps() == [CATEGORY]
        assert complete_draft.address.number == "999"
        assert complete_draft.address.coordinate() is None


class TestSubmissionReadiness:

    def test_uncompleted_earlier_step_blocks(self, steps, complete_draft):
        """Readiness is false when an earlier step was never completed."""
        machine = EnrollmentStepMachine(
            steps, complete_draft, StepState(DECLARATIONS, {0, 1, 3, 4, 5})
        )

        assert machine.submission_blockers() == ["personal"]
        assert machine.can_submit() is False

    def test_address_moved_outside_after_completion(self, steps, complete_draft):
        """Going back and moving the address out of the area revokes readiness."""
        machine = EnrollmentStepMachine(steps, complete_draft)
        for _ in range(4):
            assert machine.advance().succeeded
        assert machine.completed_steps() == [0, 1, 2, 3]

        machine.retreat()
        machine.retreat()
        machine.retreat()
        assert machine.current_index == ADDRESS
        complete_draft.address.set_coordinate(50, 50)

        assert machine.can_submit() is False
        assert "address" in machine.submission_blockers()
        assert machine.completed_steps() == [0, 1, 2, 3]

    def test_readiness_does_not_run_lookups(self, square_perimeter, complete_draft):
        resolver = Mock()
        checker = Mock(return_value=[])
        steps = build_default_steps(square_perimeter, resolver, checker)
        machine = EnrollmentStepMachine(steps, complete_draft, StepState(DECLARATIONS, {0, 1, 2, 3, 4}))

        assert machine.can_submit() is True
        resolver.assert_not_called()
        checker.assert_not_called()


class TestAddressPredicate:

    def test_missing_coordinate(self, square_perimeter, complete_draft):
        complete_draft.address.clear_coordinate()

        result = check_address(complete_draft, square_perimeter)

        assert result.failure == StepOutcome.VALIDATION_FAILED
        assert result.message == MISSING_COORDINATE_MESSAGE
        assert [e.field for e in result.errors] == ["address.coordinate"]

    def test_resolver_supplies_coordinate(self, square_perimeter, complete_draft):
        complete_draft.address.clear_coordinate()
        resolver = Mock(return_value=Coordinate(2, 3))

        result = check_address(complete_draft, square_perimeter, resolver)

        assert result.passed
        resolver.assert_called_once_with(complete_draft.address)
        assert complete_draft.address.coordinate() == (2, 3)

    def test_resolved_coordinate_outside(self, square_perimeter, complete_draft):
        complete_draft.address.clear_coordinate()
        resolver = Mock(return_value=Coordinate(-23.58, -46.59))

        result = check_address(complete_draft, square_perimeter, resolver)

        assert result.failure == StepOutcome.OUTSIDE_PERIMETER
        assert complete_draft.address.street == ""

    def test_resolver_failure(self, square_perimeter, complete_draft):
        complete_draft.address.clear_coordinate()
        resolver = Mock(side_effect=LookupFailedError("timeout"))

        result = check_address(complete_draft, square_perimeter, resolver)

        assert result.failure == StepOutcome.LOOKUP_FAILED
        assert complete_draft.address.street == "Rua Exemplo Central"

    def test_known_coordinate_skips_resolver(self, square_perimeter, complete_draft):
        resolver = Mock()

        assert check_address(complete_draft, square_perimeter, resolver).passed
        resolver.assert_not_called()

    def test_field_errors_inside_perimeter(self, square_perimeter, complete_draft):
        complete_draft.address.street = ""

        result = check_address(complete_draft, square_perimeter)

        assert result.failure == StepOutcome.VALIDATION_FAILED
        assert [e.field for e in result.errors] == ["address.street"]

    def test_apply_geofence_without_coordinate(self, square_perimeter, inside_address):
        inside_address.clear_coordinate()

        assert apply_geofence(inside_address, square_perimeter) is None
        assert inside_address.street == "Rua Exemplo Central"


class TestPersonalPredicate:

    def test_conflicts_fail_the_step(self, complete_draft):
        checker = Mock(return_value=[FieldError("personal.cpf", "CPF already registered")])

        result = check_personal_data(complete_draft, checker)

        assert result.failure == StepOutcome.VALIDATION_FAILED
        assert result.errors[0].message == "CPF already registered"

    def test_checker_failure(self, complete_draft):
        checker = Mock(side_effect=LookupFailedError("database down"))

        result = check_personal_data(complete_draft, checker)

        assert result.failure == StepOutcome.LOOKUP_FAILED

    def test_invalid_fields_skip_checker(self, complete_draft):
        complete_draft.personal.cpf = "123"
        checker = Mock(return_value=[])

        result = check_personal_data(complete_draft, checker)

        assert result.failure == StepOutcome.VALIDATION_FAILED
        checker.assert_not_called()
