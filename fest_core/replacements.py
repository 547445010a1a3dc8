"""Replacement requests: post-window candidate swaps decided by an admin.

States: pending -> approved | rejected, terminal after the decision.
Approval swaps the program registration (old student out, new student in)
in the same store operation that marks the request approved; if the swap
cannot happen, the request stays pending and nothing changes.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from . import errors
from .errors import OperationError, Outcome, fail
from .realtime import REGISTRATIONS, RealtimeNotifier
from .registration import RegistrationService
from .store import DocumentStore, WriteConflict
from .types import ChangeEvent, ProgramRegistration, ReplacementRequest, Role
from .validation import InputSanitizer, ReplacementPayload

logger = logging.getLogger(__name__)

Decision = Literal["approved", "rejected"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReplacementRequestLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        notifier: RealtimeNotifier,
        registrations: RegistrationService,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.registrations = registrations
        self.clock = clock

    def get(self, request_id: str) -> Optional[ReplacementRequest]:
        return self.store.get_request(request_id)

    def list_requests(self, team_id: str | None = None) -> list[ReplacementRequest]:
        """Newest first; a team only sees its own requests."""
        return self.store.list_requests(team_id=team_id)

    def create(
        self,
        program_id: str,
        old_student_id: str,
        new_student_id: str,
        team_id: str,
        reason: str,
        *,
        role: Role,
    ) -> Outcome[ReplacementRequest] | OperationError:
        if role not in (Role.TEAM, Role.ADMIN):
            return fail(errors.UNAUTHORIZED)
        payload = InputSanitizer.validate_payload(
            ReplacementPayload,
            {
                "program_id": program_id,
                "old_student_id": old_student_id,
                "new_student_id": new_student_id,
                "team_id": team_id,
                "reason": reason,
            },
        )
        if isinstance(payload, OperationError):
            return payload

        if self.registrations.is_registration_open(self.clock()):
            return fail(errors.REGISTRATION_OPEN)

        program = self.store.get_program(payload.program_id)
        if program is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        if self.store.list_results(program_id=program.id, status="approved"):
            return fail(errors.PROGRAM_PUBLISHED)
        if payload.old_student_id == payload.new_student_id:
            return fail(errors.SAME_STUDENT)

        old_student = self.store.get_student(payload.old_student_id)
        if old_student is None or old_student.team_id != payload.team_id:
            return fail(errors.NOT_TEAM_MEMBER, "Old student not found or does not belong to your team.")
        new_student = self.store.get_student(payload.new_student_id)
        if new_student is None or new_student.team_id != payload.team_id:
            return fail(errors.NOT_TEAM_MEMBER, "New student not found or does not belong to your team.")

        program_regs = self.store.list_registrations(program_id=program.id)
        if not any(
            r.student_id == old_student.id and r.team_id == payload.team_id for r in program_regs
        ):
            return fail(errors.OLD_NOT_REGISTERED)
        if any(r.student_id == new_student.id for r in program_regs):
            return fail(errors.NEW_ALREADY_REGISTERED)

        request = ReplacementRequest(
            id=str(uuid.uuid4()),
            program_id=program.id,
            old_student_id=old_student.id,
            new_student_id=new_student.id,
            team_id=payload.team_id,
            reason=payload.reason,
            status="pending",
            submitted_at=self.clock(),
        )
        try:
            self.store.insert_request(request)
        except WriteConflict as conflict:
            return fail(
                conflict.kind,
                f'A pending replacement request already exists for "{old_student.name}" in '
                f'program "{program.name}". Please wait for admin approval or contact support.',
            )
        logger.info(
            f"Replacement request {request.id}: {old_student.id} -> {new_student.id} in {program.id}"
        )
        return Outcome(request)

    def decide(
        self,
        request_id: str,
        outcome: Decision,
        *,
        role: Role,
        reviewed_by: str = "admin",
    ) -> Outcome[ReplacementRequest] | OperationError:
        """
        Approve or reject a pending request (admin only).

        Approval is all-or-nothing: the registration swap and the status
        change land together or the error is returned and nothing changes.
        """
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        if outcome not in ("approved", "rejected"):
            return fail(errors.INVALID_PAYLOAD, f"Unknown decision: {outcome}")
        request = self.store.get_request(request_id)
        if request is None:
            return fail(errors.REQUEST_NOT_FOUND)
        if request.status != "pending":
            return fail(errors.INVALID_TRANSITION, "Request has already been processed")

        swap_in = None
        if outcome == "approved":
            swap_in = ProgramRegistration(
                id=str(uuid.uuid4()),
                program_id=request.program_id,
                student_id=request.new_student_id,
                team_id=request.team_id,
                timestamp=self.clock(),
            )
        try:
            decided = self.store.decide_request(
                request_id, outcome, self.clock(), reviewed_by, swap_in=swap_in
            )
        except WriteConflict as conflict:
            logger.warning(f"replacement {request_id} not {outcome}: {conflict.kind}")
            return fail(conflict.kind)

        events: list[ChangeEvent] = []
        if swap_in is not None:
            # One event for the swap; viewers re-fetch the whole registration list.
            events.append(
                self.notifier.publish(
                    REGISTRATIONS,
                    "created",
                    registrationId=swap_in.id,
                    programId=request.program_id,
                    teamId=request.team_id,
                    replacedStudentId=request.old_student_id,
                )
            )
        logger.info(f"Replacement request {request_id} {outcome} by {reviewed_by}")
        return Outcome(decided, events)
