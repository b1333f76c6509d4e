# SPDX-License-Identifier: Apache-2.0

"""
Enrollment wizard sessions.

An EnrollmentSession owns one draft and its step machine. Every mutation
runs under the session's re-entrant lock, which the step machine shares;
step predicates run on a copy of the draft outside it, so slow lookups never
block reads or edits. Lookups triggered by typing (postal code, CPF/e-mail
availability) are debounced on timer threads; their results carry a
ticket (session epoch, step index) and are dropped when the session moved
on or was reset meanwhile.

EnrollmentSessionStore keeps live sessions in memory with an idle TTL and
snapshots them to Redis when it is configured.
"""

import time
import uuid
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from opentelemetry import trace
from pydantic import ValidationError

from domain.enrollment import (
    AVAILABILITY_FAILED_MESSAGE, LOOKUP_FAILED_MESSAGE, OUTSIDE_PERIMETER_MESSAGE,
    AvailabilityChecker, EnrollmentStepMachine, LookupFailedError, StepDescriptor,
    StepResult, StepState, apply_geofence, build_steps
)
from domain.perimeter import Coordinate, PerimeterEngine
from domain.tasks import DebouncedTaskGroup, TimerFactory
from domain.validation import EMAIL_PATTERN, FieldError, is_valid_cpf, only_digits
from models.draft import ADDRESS_TEXT_FIELDS, EnrollmentDraft, FileSelection
from models.entities import Voter
from models.enums import StepOutcome
from models.requests import DraftUpdateRequest

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

POSTAL_CODE_TASK = "postal_code"
AVAILABILITY_TASK = "availability"

# Editing any of these moves the address, so the coordinate must be re-resolved
LOCATION_FIELDS = ("street", "neighborhood", "city", "state", "postal_code")

POSTAL_CODE_NOT_FOUND_MESSAGE = "Postal code not found."
PLACE_ON_MAP_MESSAGE = "Address found. Please confirm the location on the map."
FILL_ADDRESS_MESSAGE = "Location selected. Please fill in the address."


@dataclass
class OperationResult:
    """Outcome of an address operation (postal code lookup, map selection)."""
    outcome: StepOutcome
    errors: List[FieldError] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == StepOutcome.RESOLVED


class SubmissionBlockedError(Exception):
    """Raised when submit() is called before every step is satisfied."""

    def __init__(self, blockers: Sequence[str]):
        self.blockers = list(blockers)
        super().__init__(f"Enrollment is not ready to submit: {', '.join(self.blockers)}")


class DraftUpdateError(ValueError):
    """Raised when a partial update would leave a draft section invalid."""

    def __init__(self, section: str, error: ValidationError):
        self.section = section
        self.error = error
        super().__init__(f"Invalid {section} update")


class SessionAlreadySubmittedError(Exception):
    """Raised on a second submit() of the same session."""

    def __init__(self, voter_id: str):
        self.voter_id = voter_id
        super().__init__("Enrollment already submitted")


class EnrollmentSession:
    """One wizard run: draft, step state, feedback and pending lookups."""

    def __init__(
        self,
        session_id: str,
        steps: Sequence[StepDescriptor],
        perimeter: PerimeterEngine,
        draft: Optional[EnrollmentDraft] = None,
        state: Optional[StepState] = None,
        geocoder=None,
        availability_checker: Optional[AvailabilityChecker] = None,
        debounce_seconds: float = 0.5,
        timer_factory: Optional[TimerFactory] = None
    ):
        self.session_id = session_id
        self.perimeter = perimeter
        self.geocoder = geocoder
        self.availability_checker = availability_checker

        self._lock = threading.RLock()
        self.machine = EnrollmentStepMachine(steps, draft, state, draft_lock=self._lock)
        self.epoch = 0
        self.field_feedback: Dict[str, str] = {}
        self.submitted_voter_id: Optional[str] = None
        self.last_accessed = time.time()

        self.tasks = DebouncedTaskGroup(debounce_seconds, timer_factory)
        if geocoder is not None:
            self.tasks.register(
                POSTAL_CODE_TASK,
                self._fetch_postal_code,
                self._on_postal_code_result,
                self._on_postal_code_error
            )
        if availability_checker is not None:
            self.tasks.register(
                AVAILABILITY_TASK,
                self._fetch_availability,
                self._on_availability_result,
                self._on_availability_error
            )

    @property
    def draft(self) -> EnrollmentDraft:
        return self.machine.draft

    @property
    def lookup_pending(self) -> bool:
        return self.tasks.pending

    @property
    def transition_pending(self) -> bool:
        return self.machine.transition_pending

    def touch(self, now: Optional[float] = None) -> None:
        self.last_accessed = now if now is not None else time.time()

    def _ticket(self) -> Tuple[int, int]:
        return (self.epoch, self.machine.current_index)

    # Draft updates

    def update_category(self, category) -> None:
        with self._lock:
            self.draft.category = category

    def update_personal_data(self, changes: Dict[str, Any]) -> None:
        """Merge personal data fields; a new CPF or e-mail re-checks availability."""
        with self._lock:
            self._replace_personal(self._merged_section("personal", changes))

    def update_address(self, changes: Dict[str, Any]) -> None:
        """
        Merge address fields.

        Changing a location field clears the coordinate so the geofence is
        evaluated again, as does typing over an address placed outside the
        perimeter; a new postal code schedules a forward lookup.
        """
        with self._lock:
            self._replace_address(self._merged_section("address", changes))

    def update_files(self, files: List[FileSelection]) -> None:
        with self._lock:
            self.draft.files.files = list(files)

    def update_declarations(self, changes: Dict[str, Any]) -> None:
        with self._lock:
            self.draft.declarations = self._merged_section("declarations", changes)

    def apply_update(self, update: DraftUpdateRequest) -> None:
        """
        Apply every section present in a partial update.

        All sections are validated before any is applied, so a rejected
        update leaves the draft untouched.
        """
        with self._lock:
            personal = address = declarations = None
            if update.personal is not None:
                personal = self._merged_section("personal", update.personal.model_dump(exclude_unset=True))
            if update.address is not None:
                address = self._merged_section("address", update.address.model_dump(exclude_unset=True))
            if update.declarations is not None:
                declarations = self._merged_section(
                    "declarations", update.declarations.model_dump(exclude_unset=True)
                )

            if update.category is not None:
                self.update_category(update.category)
            if personal is not None:
                self._replace_personal(personal)
            if address is not None:
                self._replace_address(address)
            if update.files is not None:
                self.update_files(update.files)
            if declarations is not None:
                self.draft.declarations = declarations

    def _merged_section(self, name: str, changes: Dict[str, Any]):
        section = getattr(self.draft, name)
        try:
            return type(section).model_validate({**section.model_dump(), **changes})
        except ValidationError as e:
            raise DraftUpdateError(name, e) from e

    def _replace_personal(self, personal) -> None:
        current = self.draft.personal
        identity_changed = [
            name for name in ("cpf", "email") if getattr(current, name) != getattr(personal, name)
        ]
        self.draft.personal = personal

        if identity_changed:
            for name in identity_changed:
                self.field_feedback.pop(f"personal.{name}", None)
            self.field_feedback.pop("personal", None)
            self._schedule_availability_check()

    def _replace_address(self, address) -> None:
        current = self.draft.address
        changed = {name for name in ADDRESS_TEXT_FIELDS if getattr(current, name) != getattr(address, name)}
        # Text typed over a point outside the area no longer describes that point
        if changed.intersection(LOCATION_FIELDS) or (changed and current.within_perimeter is False):
            address.clear_coordinate()
        self.draft.address = address

        if "postal_code" in changed:
            self.field_feedback.pop("address.postal_code", None)
            if len(only_digits(address.postal_code)) == 8 and self.geocoder is not None:
                self.tasks.schedule(POSTAL_CODE_TASK, address.postal_code, self._ticket())
            else:
                self.tasks.cancel(POSTAL_CODE_TASK)

    # Address operations

    def lookup_postal_code(self, postal_code: str) -> OperationResult:
        """
        Resolve a CEP now and fill the address with the result.

        Supersedes any debounced lookup of a CEP typed earlier.
        """
        with tracer.start_as_current_span("session.lookup_postal_code") as span:
            span.set_attribute("session.id", self.session_id)
            with self._lock:
                self.tasks.cancel(POSTAL_CODE_TASK)
                self.draft.address.postal_code = postal_code
                self.draft.address.clear_coordinate()
                if self.geocoder is None:
                    return OperationResult(StepOutcome.LOOKUP_FAILED, message=LOOKUP_FAILED_MESSAGE)
                try:
                    lookup = self.geocoder.lookup_postal_code(postal_code)
                except LookupFailedError as e:
                    logger.warning(
                        "Postal code lookup failed",
                        extra={"session_id": self.session_id, "error": str(e)}
                    )
                    return OperationResult(StepOutcome.LOOKUP_FAILED, message=LOOKUP_FAILED_MESSAGE)

                result = self._apply_postal_code_lookup(lookup)
                span.set_attribute("lookup.outcome", result.outcome.value)
                return result

    def _apply_postal_code_lookup(self, lookup) -> OperationResult:
        address = self.draft.address
        if lookup is None:
            self.field_feedback["address.postal_code"] = POSTAL_CODE_NOT_FOUND_MESSAGE
            return OperationResult(
                StepOutcome.NOT_FOUND,
                [FieldError("address.postal_code", POSTAL_CODE_NOT_FOUND_MESSAGE)],
                POSTAL_CODE_NOT_FOUND_MESSAGE
            )

        self.field_feedback.pop("address.postal_code", None)
        # The house number and complement are not part of a CEP
        address.street = lookup.address.street
        address.neighborhood = lookup.address.neighborhood
        address.city = lookup.address.city
        address.state = lookup.address.state
        address.postal_code = lookup.address.postal_code or address.postal_code

        if lookup.coordinate is None:
            address.clear_coordinate()
            return OperationResult(StepOutcome.RESOLVED, message=PLACE_ON_MAP_MESSAGE)

        address.set_coordinate(lookup.coordinate.latitude, lookup.coordinate.longitude)
        if apply_geofence(address, self.perimeter) is False:
            return OperationResult(
                StepOutcome.OUTSIDE_PERIMETER,
                [FieldError("address", OUTSIDE_PERIMETER_MESSAGE)],
                OUTSIDE_PERIMETER_MESSAGE
            )
        return OperationResult(StepOutcome.RESOLVED)

    def select_map_point(self, latitude: float, longitude: float) -> OperationResult:
        """
        Use a point picked on the map as the address coordinate.

        Outside the perimeter the point is kept and the textual address
        cleared. Inside, the address is filled by reverse geocoding; a failed
        reverse lookup keeps the point and reports LOOKUP_FAILED.
        """
        with tracer.start_as_current_span("session.select_map_point") as span:
            span.set_attributes({
                "session.id": self.session_id,
                "point.latitude": latitude,
                "point.longitude": longitude
            })
            with self._lock:
                self.tasks.cancel(POSTAL_CODE_TASK)
                address = self.draft.address
                address.set_coordinate(latitude, longitude)

                if apply_geofence(address, self.perimeter) is False:
                    return OperationResult(
                        StepOutcome.OUTSIDE_PERIMETER,
                        [FieldError("address", OUTSIDE_PERIMETER_MESSAGE)],
                        OUTSIDE_PERIMETER_MESSAGE
                    )

                if self.geocoder is None:
                    return OperationResult(StepOutcome.RESOLVED, message=FILL_ADDRESS_MESSAGE)

                try:
                    found = self.geocoder.reverse(Coordinate(latitude, longitude))
                except LookupFailedError as e:
                    logger.warning(
                        "Reverse geocoding failed",
                        extra={"session_id": self.session_id, "error": str(e)}
                    )
                    return OperationResult(StepOutcome.LOOKUP_FAILED, message=LOOKUP_FAILED_MESSAGE)

                if found is None:
                    return OperationResult(StepOutcome.RESOLVED, message=FILL_ADDRESS_MESSAGE)

                address.street = found.street
                address.number = found.number or None
                address.complement = None
                address.neighborhood = found.neighborhood
                address.city = found.city
                address.state = found.state
                address.postal_code = found.postal_code
                self.field_feedback.pop("address.postal_code", None)
                return OperationResult(StepOutcome.RESOLVED)

    # Debounced lookups; executors run on timer threads without the lock

    def _fetch_postal_code(self, postal_code: str, ticket: Tuple[int, int]):
        return ticket, postal_code, self.geocoder.lookup_postal_code(postal_code)

    def _on_postal_code_result(self, payload) -> None:
        ticket, postal_code, lookup = payload
        with self._lock:
            if ticket != self._ticket() or self.draft.address.postal_code != postal_code:
                logger.debug("Dropping stale postal code lookup", extra={"session_id": self.session_id})
                return
            self._apply_postal_code_lookup(lookup)

    def _on_postal_code_error(self, error: Exception) -> None:
        if not isinstance(error, LookupFailedError):
            logger.error(f"Postal code lookup crashed: {str(error)}", exc_info=error)
        with self._lock:
            self.field_feedback["address.postal_code"] = LOOKUP_FAILED_MESSAGE

    def _schedule_availability_check(self) -> None:
        if self.availability_checker is None:
            return
        personal = self.draft.personal
        if not (is_valid_cpf(personal.cpf) or EMAIL_PATTERN.match(personal.email or "")):
            self.tasks.cancel(AVAILABILITY_TASK)
            return
        self.tasks.schedule(AVAILABILITY_TASK, personal.model_copy(), self._ticket())

    def _fetch_availability(self, personal, ticket: Tuple[int, int]):
        return ticket, personal, self.availability_checker(personal)

    def _on_availability_result(self, payload) -> None:
        ticket, personal, conflicts = payload
        with self._lock:
            current = self.draft.personal
            if ticket != self._ticket() or (current.cpf, current.email) != (personal.cpf, personal.email):
                logger.debug("Dropping stale availability check", extra={"session_id": self.session_id})
                return
            self.field_feedback.pop("personal.cpf", None)
            self.field_feedback.pop("personal.email", None)
            self.field_feedback.pop("personal", None)
            for conflict in conflicts:
                self.field_feedback[conflict.field] = conflict.message

    def _on_availability_error(self, error: Exception) -> None:
        if not isinstance(error, LookupFailedError):
            logger.error(f"Availability check crashed: {str(error)}", exc_info=error)
        with self._lock:
            self.field_feedback["personal"] = AVAILABILITY_FAILED_MESSAGE

    # Transitions

    def advance(self) -> StepResult:
        """
        Validate the current step and move forward.

        The session lock is not taken here: the machine's transition flag
        must be the first thing a concurrent advance() hits so it reports
        BUSY instead of waiting.
        """
        with tracer.start_as_current_span("session.advance") as span:
            span.set_attribute("session.id", self.session_id)
            result = self.machine.advance()
            span.set_attributes({"step.key": result.step_key, "step.outcome": result.outcome.value})
            logger.info(
                "Step transition",
                extra={
                    "session_id": self.session_id,
                    "step": result.step_key,
                    "outcome": result.outcome.value
                }
            )
            return result

    def retreat(self) -> int:
        return self.machine.retreat()

    def can_submit(self) -> bool:
        return self.machine.can_submit()

    def submit(self, submission_service) -> Voter:
        """
        Hand the finished draft to the submission service.

        Raises:
            SessionAlreadySubmittedError: If this session was already submitted
            SubmissionBlockedError: If some step is not satisfied
            DuplicateVoterError: If the CPF or e-mail is already registered
        """
        with tracer.start_as_current_span("session.submit") as span:
            span.set_attribute("session.id", self.session_id)
            with self._lock:
                if self.submitted_voter_id is not None:
                    raise SessionAlreadySubmittedError(self.submitted_voter_id)

                blockers = self.machine.submission_blockers()
                if blockers:
                    raise SubmissionBlockedError(blockers)

                voter = submission_service.submit(self.draft)
                self.submitted_voter_id = voter.id
                self.tasks.cancel_all()
                return voter

    def abandon(self) -> None:
        """Cancel pending lookups and reset the wizard."""
        with self._lock:
            self.epoch += 1
            self.tasks.cancel_all()
            self.machine.reset()
            self.field_feedback.clear()
            self.submitted_voter_id = None

    # Serialization

    def state_dict(self) -> Dict[str, Any]:
        with self._lock:
            machine = self.machine
            return {
                "session_id": self.session_id,
                "current_step": machine.current_index,
                "current_step_key": machine.current_step.key,
                "steps": [step.to_dict() for step in machine.steps],
                "completed_steps": machine.completed_steps(),
                "can_submit": self.submitted_voter_id is None and machine.can_submit(),
                "lookup_pending": self.lookup_pending,
                "draft": self.draft.model_dump(mode="json"),
                "field_feedback": dict(self.field_feedback),
            }

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "session_id": self.session_id,
                "draft": self.draft.model_dump(mode="json"),
                "state": self.machine.state.to_dict(),
                "field_feedback": dict(self.field_feedback),
                "submitted_voter_id": self.submitted_voter_id,
            }


class EnrollmentSessionFactory:
    """Builds sessions sharing one perimeter, step list and collaborators."""

    def __init__(
        self,
        perimeter: PerimeterEngine,
        variant: str = "full",
        geocoder=None,
        availability_checker: Optional[AvailabilityChecker] = None,
        debounce_seconds: float = 0.5,
        timer_factory: Optional[TimerFactory] = None
    ):
        self.perimeter = perimeter
        self.variant = variant
        self.geocoder = geocoder
        self.availability_checker = availability_checker
        self.debounce_seconds = debounce_seconds
        self.timer_factory = timer_factory

        resolver = geocoder.resolve_coordinate if geocoder is not None else None
        # Raises ValueError on an unknown variant
        self.steps = build_steps(perimeter, variant, resolver, availability_checker)

    def create(
        self,
        session_id: Optional[str] = None,
        draft: Optional[EnrollmentDraft] = None,
        state: Optional[StepState] = None
    ) -> EnrollmentSession:
        return EnrollmentSession(
            session_id or uuid.uuid4().hex,
            self.steps,
            self.perimeter,
            draft=draft,
            state=state,
            geocoder=self.geocoder,
            availability_checker=self.availability_checker,
            debounce_seconds=self.debounce_seconds,
            timer_factory=self.timer_factory
        )

    def restore(self, snapshot: Dict[str, Any]) -> EnrollmentSession:
        """
        Rebuild a session from to_snapshot() output.

        Raises:
            ValueError: If the snapshot does not fit the current step list
        """
        session = self.create(
            snapshot["session_id"],
            EnrollmentDraft.model_validate(snapshot.get("draft") or {}),
            StepState.from_dict(snapshot.get("state") or {})
        )
        session.field_feedback = dict(snapshot.get("field_feedback") or {})
        session.submitted_voter_id = snapshot.get("submitted_voter_id")
        return session


class EnrollmentSessionStore:
    """
    In-memory session registry with idle expiry and Redis snapshots.

    Args:
        factory: builds and restores sessions
        ttl_seconds: idle time after which a session is dropped
        redis_service: optional RedisService for snapshots
        clock: time source, replaceable in tests
    """

    def __init__(
        self,
        factory: EnrollmentSessionFactory,
        ttl_seconds: int = 3600,
        redis_service=None,
        clock: Callable[[], float] = time.time
    ):
        self.factory = factory
        self.ttl_seconds = ttl_seconds
        self.redis_service = redis_service
        self.clock = clock
        self._sessions: Dict[str, EnrollmentSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self) -> EnrollmentSession:
        self.purge_expired()
        session = self.factory.create()
        session.touch(self.clock())
        with self._lock:
            self._sessions[session.session_id] = session
        self.save(session)
        logger.info("Enrollment session started", extra={"session_id": session.session_id})
        return session

    def get(self, session_id: str) -> Optional[EnrollmentSession]:
        """Live session by ID, restored from its snapshot when not in memory."""
        self.purge_expired()
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            session = self._restore(session_id)
        if session is not None:
            session.touch(self.clock())
        return session

    def _restore(self, session_id: str) -> Optional[EnrollmentSession]:
        if self.redis_service is None:
            return None
        snapshot = self.redis_service.load_session_snapshot(session_id)
        if not snapshot:
            return None
        try:
            session = self.factory.restore(snapshot)
        except (KeyError, ValueError) as e:
            logger.warning(
                "Discarding unusable session snapshot",
                extra={"session_id": session_id, "error": str(e)}
            )
            self.redis_service.delete_session_snapshot(session_id)
            return None

        with self._lock:
            # Another request may have restored it first
            session = self._sessions.setdefault(session_id, session)
        logger.info("Enrollment session restored", extra={"session_id": session_id})
        return session

    def save(self, session: EnrollmentSession) -> None:
        """Persist the session snapshot when Redis is configured."""
        if self.redis_service is not None:
            self.redis_service.save_session_snapshot(
                session.session_id, session.to_snapshot(), self.ttl_seconds
            )

    def remove(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.tasks.cancel_all()
        if self.redis_service is not None:
            self.redis_service.delete_session_snapshot(session_id)
        return session is not None

    def purge_expired(self) -> int:
        """Drop sessions idle for longer than the TTL."""
        cutoff = self.clock() - self.ttl_seconds
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.last_accessed < cutoff]
            sessions = [self._sessions.pop(sid) for sid in expired]
        for session in sessions:
            session.tasks.cancel_all()
        if sessions:
            logger.info("Expired enrollment sessions purged", extra={"count": len(sessions)})
        return len(sessions)
