# SPDX-License-Identifier: Apache-2.0

"""
Enrollment wizard domain logic.

The wizard is a list of step descriptors, each carrying its own predicate.
EnrollmentStepMachine walks that list: advancing is allowed only when the
current step's predicate passes, and submission requires both the recorded
completion of every earlier step and a live re-check of the predicates.

The address predicate is the one with real logic: it resolves a coordinate
when needed, applies the perimeter geofence and clears the textual address
whenever the coordinate falls outside the eligible area.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from domain.perimeter import Coordinate, PerimeterEngine
from domain.validation import (
    FieldError, ValidationResult, validate_address_fields, validate_category,
    validate_declarations, validate_files, validate_personal_data
)
from models.draft import AddressDraft, EnrollmentDraft, PersonalDataDraft
from models.enums import StepOutcome


OUTSIDE_PERIMETER_MESSAGE = (
    "The selected address is outside the coverage area. "
    "Please select an address inside the program perimeter."
)
LOOKUP_FAILED_MESSAGE = "Could not look up the address right now. Please try again."
AVAILABILITY_FAILED_MESSAGE = "Could not verify CPF and e-mail right now. Please try again."
MISSING_COORDINATE_MESSAGE = "Please select a location on the map."
TRANSITION_IN_PROGRESS_MESSAGE = "A step transition is already in progress."
DRAFT_CHANGED_MESSAGE = "The enrollment changed while this step was being checked. Please try again."


class LookupFailedError(Exception):
    """Raised by lookup collaborators (geocoding, availability) on transport failure."""
    pass


# (address) -> coordinate or None when nothing matched
CoordinateResolver = Callable[[AddressDraft], Optional[Coordinate]]
# (personal data) -> field errors for CPF/e-mail already in use
AvailabilityChecker = Callable[[PersonalDataDraft], List[FieldError]]


@dataclass
class PredicateResult:
    """Outcome of a step predicate."""
    passed: bool
    failure: Optional[StepOutcome] = None
    errors: List[FieldError] = field(default_factory=list)
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "PredicateResult":
        return cls(passed=True)

    @classmethod
    def failed(
        cls,
        failure: StepOutcome,
        errors: Optional[List[FieldError]] = None,
        message: Optional[str] = None
    ) -> "PredicateResult":
        return cls(passed=False, failure=failure, errors=errors or [], message=message)

    @classmethod
    def from_validation(cls, validation: ValidationResult) -> "PredicateResult":
        if validation.is_valid:
            return cls.ok()
        return cls.failed(StepOutcome.VALIDATION_FAILED, validation.errors)


# (draft, allow_lookup) -> result; allow_lookup is False for readiness re-checks
StepPredicate = Callable[[EnrollmentDraft, bool], PredicateResult]


@dataclass(frozen=True)
class StepDescriptor:
    """One wizard step."""
    key: str
    title: str
    description: str
    predicate: StepPredicate

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "title": self.title, "description": self.description}


@dataclass
class StepState:
    """Position of a session in the wizard."""
    current_index: int = 0
    completed: Set[int] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {"current_index": self.current_index, "completed": sorted(self.completed)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepState":
        return cls(
            current_index=int(data.get("current_index", 0)),
            completed=set(data.get("completed", []))
        )


@dataclass
class StepResult:
    """Result of an advance() call."""
    outcome: StepOutcome
    step_index: int
    step_key: str
    errors: List[FieldError] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (StepOutcome.ADVANCED, StepOutcome.COMPLETED)


def apply_geofence(address: AddressDraft, perimeter: PerimeterEngine) -> Optional[bool]:
    """
    Evaluate the address coordinate against the perimeter.

    Outside the perimeter the textual fields are cleared and the coordinate
    is kept so the map can still show the rejected point.

    Returns:
        True/False for a known coordinate, None when no coordinate is set
    """
    coordinate = address.coordinate()
    if coordinate is None:
        address.within_perimeter = None
        return None

    inside = perimeter.is_within_perimeter(*coordinate)
    if not inside:
        address.clear_text_fields()
    address.within_perimeter = inside
    return inside


def check_address(
    draft: EnrollmentDraft,
    perimeter: PerimeterEngine,
    resolver: Optional[CoordinateResolver] = None,
    allow_lookup: bool = True
) -> PredicateResult:
    """
    Address step predicate.

    Order of checks:
    1. Resolve a coordinate from the postal code when none is known
    2. Geofence rejection (clears textual fields, keeps the coordinate)
    3. Textual field rules
    4. A coordinate must be known
    """
    address = draft.address

    if address.coordinate() is None and resolver is not None and allow_lookup and address.postal_code:
        try:
            coordinate = resolver(address)
        except LookupFailedError:
            return PredicateResult.failed(StepOutcome.LOOKUP_FAILED, message=LOOKUP_FAILED_MESSAGE)
        if coordinate is not None:
            address.set_coordinate(coordinate.latitude, coordinate.longitude)

    if apply_geofence(address, perimeter) is False:
        return PredicateResult.failed(
            StepOutcome.OUTSIDE_PERIMETER,
            [FieldError("address", OUTSIDE_PERIMETER_MESSAGE)],
            OUTSIDE_PERIMETER_MESSAGE
        )

    fields = validate_address_fields(address)
    if not fields.is_valid:
        return PredicateResult.from_validation(fields)

    if address.coordinate() is None:
        return PredicateResult.failed(
            StepOutcome.VALIDATION_FAILED,
            [FieldError("address.coordinate", MISSING_COORDINATE_MESSAGE)],
            MISSING_COORDINATE_MESSAGE
        )

    return PredicateResult.ok()


def check_personal_data(
    draft: EnrollmentDraft,
    availability_checker: Optional[AvailabilityChecker] = None,
    allow_lookup: bool = True
) -> PredicateResult:
    """Personal data predicate, with CPF/e-mail availability when a checker is given."""
    result = PredicateResult.from_validation(validate_personal_data(draft.personal, draft.category))
    if not result.passed or availability_checker is None or not allow_lookup:
        return result

    try:
        conflicts = availability_checker(draft.personal)
    except LookupFailedError:
        return PredicateResult.failed(StepOutcome.LOOKUP_FAILED, message=AVAILABILITY_FAILED_MESSAGE)
    if conflicts:
        return PredicateResult.failed(StepOutcome.VALIDATION_FAILED, conflicts)
    return result


def category_step() -> StepDescriptor:
    return StepDescriptor(
        key="category",
        title="Enrollment type",
        description="Select how you take part",
        predicate=lambda draft, allow_lookup: PredicateResult.from_validation(validate_category(draft))
    )


def address_step(perimeter: PerimeterEngine, resolver: Optional[CoordinateResolver] = None) -> StepDescriptor:
    return StepDescriptor(
        key="address",
        title="Address",
        description="Enter your full address",
        predicate=lambda draft, allow_lookup: check_address(draft, perimeter, resolver, allow_lookup)
    )


def personal_step(availability_checker: Optional[AvailabilityChecker] = None) -> StepDescriptor:
    return StepDescriptor(
        key="personal",
        title="Personal data",
        description="Enter your personal data",
        predicate=lambda draft, allow_lookup: check_personal_data(draft, availability_checker, allow_lookup)
    )


def documents_step() -> StepDescriptor:
    return StepDescriptor(
        key="documents",
        title="Documents",
        description="Upload the required documents",
        predicate=lambda draft, allow_lookup: PredicateResult.from_validation(validate_files(draft.files))
    )


def review_step() -> StepDescriptor:
    return StepDescriptor(
        key="review",
        title="Review",
        description="Check your data before confirming",
        predicate=lambda draft, allow_lookup: PredicateResult.ok()
    )


def declarations_step() -> StepDescriptor:
    return StepDescriptor(
        key="declarations",
        title="Declarations",
        description="Accept the declarations to finish",
        predicate=lambda draft, allow_lookup: PredicateResult.from_validation(
            validate_declarations(draft.declarations)
        )
    )


STEP_VARIANTS = {
    "full": ("category", "address", "personal", "documents", "review", "declarations"),
    "compact": ("category", "address", "personal", "documents"),
}


def build_steps(
    perimeter: PerimeterEngine,
    variant: str = "full",
    resolver: Optional[CoordinateResolver] = None,
    availability_checker: Optional[AvailabilityChecker] = None
) -> List[StepDescriptor]:
    """
    Build the step list for a deployment variant.

    Raises:
        ValueError: If the variant is unknown
    """
    if variant not in STEP_VARIANTS:
        raise ValueError(f"Unknown step variant '{variant}', expected one of {sorted(STEP_VARIANTS)}")

    factories = {
        "category": category_step,
        "address": lambda: address_step(perimeter, resolver),
        "personal": lambda: personal_step(availability_checker),
        "documents": documents_step,
        "review": review_step,
        "declarations": declarations_step,
    }
    return [factories[key]() for key in STEP_VARIANTS[variant]]


def build_default_steps(
    perimeter: PerimeterEngine,
    resolver: Optional[CoordinateResolver] = None,
    availability_checker: Optional[AvailabilityChecker] = None
) -> List[StepDescriptor]:
    """Six-step wizard: category, address, personal, documents, review, declarations."""
    return build_steps(perimeter, "full", resolver, availability_checker)


class EnrollmentStepMachine:
    """
    Sequences the wizard steps over a draft.

    StepState changes only on a successful advance() or on retreat(); every
    failed transition leaves it exactly as it was. A transition flag rejects
    re-entrant advance() calls while a predicate (and its lookups) is running.

    draft_lock guards the draft and the state; an owning session passes its
    own lock. Predicates of advance() run on a copy outside that lock.
    """

    def __init__(
        self,
        steps: Sequence[StepDescriptor],
        draft: Optional[EnrollmentDraft] = None,
        state: Optional[StepState] = None,
        draft_lock: Optional[threading.RLock] = None
    ):
        if not steps:
            raise ValueError("Enrollment wizard needs at least one step")
        self.steps = list(steps)
        self.draft = draft if draft is not None else EnrollmentDraft()
        self.state = state if state is not None else StepState()
        if not 0 <= self.state.current_index < len(self.steps):
            raise ValueError(f"Step index {self.state.current_index} out of range")
        self._transition = threading.Lock()
        self.draft_lock = draft_lock if draft_lock is not None else threading.RLock()

    @property
    def current_index(self) -> int:
        return self.state.current_index

    @property
    def current_step(self) -> StepDescriptor:
        return self.steps[self.state.current_index]

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    @property
    def is_first_step(self) -> bool:
        return self.state.current_index == 0

    @property
    def is_last_step(self) -> bool:
        return self.state.current_index == self.last_index

    @property
    def transition_pending(self) -> bool:
        return self._transition.locked()

    def completed_steps(self) -> List[int]:
        return sorted(self.state.completed)

    def advance(self) -> StepResult:
        """
        Validate the current step and move forward on success.

        The predicate and its lookups run on a copy of the draft without
        holding draft_lock, so reads and edits of the session are never
        blocked by a slow geocoder. The copy is written back only when the
        step, the draft object and its contents are still the ones the
        predicate started from; otherwise nothing changes and BUSY is
        returned.
        """
        index = self.state.current_index
        step = self.steps[index]

        if not self._transition.acquire(blocking=False):
            return StepResult(StepOutcome.BUSY, index, step.key, message=TRANSITION_IN_PROGRESS_MESSAGE)
        try:
            with self.draft_lock:
                index = self.state.current_index
                step = self.steps[index]
                draft = self.draft
                started_from = draft.model_copy(deep=True)

            working = started_from.model_copy(deep=True)
            result = step.predicate(working, True)

            with self.draft_lock:
                if self.state.current_index != index or self.draft is not draft or draft != started_from:
                    return StepResult(StepOutcome.BUSY, index, step.key, message=DRAFT_CHANGED_MESSAGE)

                self._write_back(working)
                if not result.passed:
                    return StepResult(result.failure, index, step.key, result.errors, result.message)

                self.state.completed.add(index)
                if index < self.last_index:
                    self.state.current_index = index + 1
                    return StepResult(StepOutcome.ADVANCED, index, step.key)
                return StepResult(StepOutcome.COMPLETED, index, step.key)
        finally:
            self._transition.release()

    def _write_back(self, evaluated: EnrollmentDraft) -> None:
        for name in type(self.draft).model_fields:
            setattr(self.draft, name, getattr(evaluated, name))

    def retreat(self) -> int:
        """Go back one step; completed steps stay completed."""
        with self.draft_lock:
            if self.state.current_index > 0:
                self.state.current_index -= 1
            return self.state.current_index

    def submission_blockers(self) -> List[str]:
        """
        Keys of the steps preventing submission.

        An earlier step blocks when it was never completed or when its
        predicate no longer holds; the last step blocks when its predicate
        does not hold now.
        """
        blockers = []
        with self.draft_lock:
            for index, step in enumerate(self.steps):
                if index < self.last_index and index not in self.state.completed:
                    blockers.append(step.key)
                elif not step.predicate(self.draft, False).passed:
                    blockers.append(step.key)
        return blockers

    def can_submit(self) -> bool:
        return not self.submission_blockers()

    def reset(self, draft: Optional[EnrollmentDraft] = None) -> None:
        with self.draft_lock:
            self.draft = draft if draft is not None else EnrollmentDraft()
            self.state = StepState()
