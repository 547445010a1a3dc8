"""Program registrations: the eligibility guard and the registration window."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Sequence

from . import errors
from .config import DEFAULT_SETTINGS, CoreSettings
from .errors import OperationError, Outcome, fail
from .realtime import REGISTRATIONS, RealtimeNotifier
from .store import DocumentStore, WriteConflict
from .types import Program, ProgramRegistration, RegistrationSchedule, Role
from .validation import InputSanitizer, RegistrationPayload

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationGuard:
    """Read-only check that named candidates are registered for a program."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def eligible_ids(self, program: Program) -> set[str]:
        registrations = self.store.list_registrations(program_id=program.id)
        if program.section == "single":
            return {r.student_id for r in registrations}
        return {r.team_id for r in registrations}

    def ensure_eligible(self, program_id: str, candidate_ids: Sequence[str]) -> OperationError | None:
        """
        Returns None when every candidate is registered, else the failure.

        Eligible ids are student ids for single programs and team ids for
        group/general programs. An empty field fails before any id is looked at.
        """
        program = self.store.get_program(program_id)
        if program is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        allowed = self.eligible_ids(program)
        if not allowed:
            return fail(errors.NO_REGISTRATIONS)
        for candidate_id in candidate_ids:
            if candidate_id not in allowed:
                logger.warning(f"candidate {candidate_id} not registered for program {program_id}")
                return fail(errors.NOT_REGISTERED)
        return None


def validate_participation_limit(
    student_id: str,
    program: Program,
    store: DocumentStore,
    settings: CoreSettings = DEFAULT_SETTINGS,
) -> OperationError | None:
    """Per-student caps: single programs per stage flag, group programs overall."""
    if program.section == "general":
        return None
    programs = {p.id: p for p in store.list_programs()}
    others = [
        programs.get(r.program_id)
        for r in store.list_registrations(student_id=student_id)
        if r.program_id != program.id
    ]
    if program.section == "single":
        count = sum(1 for p in others if p and p.section == "single" and p.stage == program.stage)
        limit = settings.max_single_per_stage
        if count >= limit:
            stage_type = "on-stage" if program.stage else "off-stage"
            return fail(
                errors.PARTICIPATION_LIMIT,
                f"Maximum limit of {limit} individual {stage_type} events reached.",
            )
        return None
    count = sum(1 for p in others if p and p.section == "group")
    if count >= settings.max_group:
        return fail(
            errors.PARTICIPATION_LIMIT,
            f"Maximum limit of {settings.max_group} group events reached.",
        )
    return None


class RegistrationService:
    """Fresh registrations while the admin-controlled window is open."""

    def __init__(
        self,
        store: DocumentStore,
        notifier: RealtimeNotifier,
        *,
        settings: CoreSettings = DEFAULT_SETTINGS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self.clock = clock

    def is_registration_open(self, now: datetime | None = None) -> bool:
        schedule = self.store.get_schedule()
        if schedule is None:
            return False
        return schedule.is_open(now or self.clock())

    def set_schedule(self, start: datetime, end: datetime, role: Role) -> Outcome[RegistrationSchedule] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        if end < start:
            return fail(errors.INVALID_PAYLOAD, "Registration window must end after it starts.")
        schedule = RegistrationSchedule(start=start, end=end)
        self.store.set_schedule(schedule)
        logger.info(f"Registration window set to {start.isoformat()} .. {end.isoformat()}")
        return Outcome(schedule)

    def register_candidate(
        self, program_id: str, student_id: str, team_id: str, role: Role
    ) -> Outcome[ProgramRegistration] | OperationError:
        if role not in (Role.TEAM, Role.ADMIN):
            return fail(errors.UNAUTHORIZED)
        payload = InputSanitizer.validate_payload(
            RegistrationPayload,
            {"program_id": program_id, "student_id": student_id, "team_id": team_id},
        )
        if isinstance(payload, OperationError):
            return payload
        if role is Role.TEAM and not self.is_registration_open():
            return fail(errors.REGISTRATION_CLOSED)

        program = self.store.get_program(payload.program_id)
        if program is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        student = self.store.get_student(payload.student_id)
        if student is None or student.team_id != payload.team_id:
            return fail(errors.NOT_TEAM_MEMBER, "You can only register your team members.")

        limit_error = validate_participation_limit(student.id, program, self.store, self.settings)
        if limit_error is not None:
            return limit_error

        registration = ProgramRegistration(
            id=str(uuid.uuid4()),
            program_id=program.id,
            student_id=student.id,
            team_id=payload.team_id,
            timestamp=self.clock(),
        )
        capacity = program.candidate_limit or self.settings.default_candidate_limit
        try:
            self.store.insert_registration(registration, capacity=capacity)
        except WriteConflict as conflict:
            logger.warning(f"registration rejected for {student.id} in {program.id}: {conflict.kind}")
            return fail(conflict.kind)

        event = self.notifier.publish(
            REGISTRATIONS,
            "created",
            registrationId=registration.id,
            programId=program.id,
            teamId=payload.team_id,
        )
        logger.info(f"Registered student {student.id} for program {program.id}")
        return Outcome(registration, [event])

    def remove_registration(
        self, registration_id: str, role: Role, team_id: str | None = None
    ) -> Outcome[ProgramRegistration] | OperationError:
        if role not in (Role.TEAM, Role.ADMIN):
            return fail(errors.UNAUTHORIZED)
        existing = self.store.get_registration(registration_id)
        if existing is None:
            return fail(errors.REGISTRATION_NOT_FOUND)
        if role is Role.TEAM:
            if existing.team_id != team_id:
                return fail(errors.UNAUTHORIZED)
            if not self.is_registration_open():
                return fail(errors.REGISTRATION_CLOSED)
        removed = self.store.delete_registration(registration_id)
        if removed is None:
            return fail(errors.REGISTRATION_NOT_FOUND)
        event = self.notifier.publish(
            REGISTRATIONS,
            "deleted",
            registrationId=removed.id,
            programId=removed.program_id,
            teamId=removed.team_id,
        )
        return Outcome(removed, [event])
