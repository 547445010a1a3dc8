"""Document storage for festival records.

``DocumentStore`` is the seam the lifecycles talk to. The backing store is a
document store without multi-document transactions, so uniqueness rules are
enforced with conditional writes: each write re-checks its precondition and
raises ``WriteConflict`` instead of writing when the precondition no longer
holds (the equivalent of a duplicate-key error on a unique index).

``InMemoryStore`` is the reference implementation. Each conditional write runs
under one re-entrant lock, which makes every compare-and-swap atomic for
concurrent callers in the same process.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import (
    ALREADY_PUBLISHED,
    ALREADY_REGISTERED,
    CAPACITY_EXCEEDED,
    DUPLICATE_PENDING_REQUEST,
    DUPLICATE_SUBMISSION,
    INVALID_TRANSITION,
    NEW_ALREADY_REGISTERED,
    OLD_NOT_REGISTERED,
    REQUEST_NOT_FOUND,
    RESULT_NOT_FOUND,
)
from .types import (
    Jury,
    JuryAssignment,
    Notification,
    Penalty,
    Program,
    ProgramRegistration,
    RegistrationSchedule,
    ReplacementRequest,
    ResultEntry,
    ResultRecord,
    Student,
    Team,
)

logger = logging.getLogger(__name__)


class WriteConflict(Exception):
    """A conditional write found its precondition violated and wrote nothing."""

    def __init__(self, kind: str, detail: str | None = None) -> None:
        super().__init__(detail or kind)
        self.kind = kind
        self.detail = detail


class DocumentStore(Protocol):
    # programs / teams / students / juries
    def get_program(self, program_id: str) -> Optional[Program]: ...
    def list_programs(self) -> List[Program]: ...
    def get_team(self, team_id: str) -> Optional[Team]: ...
    def list_teams(self) -> List[Team]: ...
    def get_student(self, student_id: str) -> Optional[Student]: ...
    def list_students(self) -> List[Student]: ...
    def get_jury(self, jury_id: str) -> Optional[Jury]: ...

    # registrations
    def list_registrations(
        self,
        *,
        program_id: str | None = None,
        student_id: str | None = None,
        team_id: str | None = None,
    ) -> List[ProgramRegistration]: ...
    def get_registration(self, registration_id: str) -> Optional[ProgramRegistration]: ...
    def insert_registration(self, registration: ProgramRegistration, *, capacity: int) -> None: ...
    def delete_registration(self, registration_id: str) -> Optional[ProgramRegistration]: ...

    # results
    def get_result(self, result_id: str) -> Optional[ResultRecord]: ...
    def list_results(
        self, *, program_id: str | None = None, status: str | None = None
    ) -> List[ResultRecord]: ...
    def insert_result(self, record: ResultRecord) -> None: ...
    def transition_result(self, result_id: str, expected: str, new: str) -> ResultRecord: ...
    def replace_result_entries(
        self,
        result_id: str,
        expected: str,
        entries: Sequence[ResultEntry],
        penalties: Sequence[Penalty],
        submitted_at: datetime,
    ) -> ResultRecord: ...
    def delete_result(self, result_id: str, expected: str) -> ResultRecord: ...

    # replacement requests
    def get_request(self, request_id: str) -> Optional[ReplacementRequest]: ...
    def list_requests(self, *, team_id: str | None = None) -> List[ReplacementRequest]: ...
    def insert_request(self, request: ReplacementRequest) -> None: ...
    def decide_request(
        self,
        request_id: str,
        status: str,
        reviewed_at: datetime,
        reviewed_by: str,
        swap_in: ProgramRegistration | None = None,
    ) -> ReplacementRequest: ...

    # schedule / assignments / notifications
    def get_schedule(self) -> Optional[RegistrationSchedule]: ...
    def set_schedule(self, schedule: RegistrationSchedule) -> None: ...
    def get_assignment(self, program_id: str, jury_id: str) -> Optional[JuryAssignment]: ...
    def list_assignments(self, *, jury_id: str | None = None) -> List[JuryAssignment]: ...
    def put_assignment(self, assignment: JuryAssignment) -> None: ...
    def delete_assignment(self, program_id: str, jury_id: str) -> Optional[JuryAssignment]: ...
    def add_notification(self, notification: Notification) -> None: ...
    def list_notifications(self) -> List[Notification]: ...
    def mark_notifications_read(self, notification_ids: Iterable[str] | None = None) -> int: ...


class InMemoryStore:
    """Process-local ``DocumentStore`` with atomic conditional writes."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.programs: Dict[str, Program] = {}
        self.teams: Dict[str, Team] = {}
        self.students: Dict[str, Student] = {}
        self.juries: Dict[str, Jury] = {}
        self.registrations: Dict[str, ProgramRegistration] = {}
        self.results: Dict[str, ResultRecord] = {}
        self.replacement_requests: Dict[str, ReplacementRequest] = {}
        self.assignments: Dict[tuple[str, str], JuryAssignment] = {}
        self.notifications: Dict[str, Notification] = {}
        self.schedule: Optional[RegistrationSchedule] = None
        # program_id -> result ids, for the one-active-result check
        self._results_by_program: Dict[str, set[str]] = {}

    # ------------------------------------------------------------------ seed
    def add_program(self, program: Program) -> Program:
        with self._lock:
            self.programs[program.id] = program
        return program

    def add_team(self, team: Team) -> Team:
        with self._lock:
            self.teams[team.id] = team
        return team

    def add_student(self, student: Student) -> Student:
        with self._lock:
            self.students[student.id] = student
        return student

    def add_jury(self, jury: Jury) -> Jury:
        with self._lock:
            self.juries[jury.id] = jury
        return jury

    # ----------------------------------------------------------- lookups
    def get_program(self, program_id: str) -> Optional[Program]:
        return self.programs.get(program_id)

    def list_programs(self) -> List[Program]:
        return list(self.programs.values())

    def get_team(self, team_id: str) -> Optional[Team]:
        return self.teams.get(team_id)

    def list_teams(self) -> List[Team]:
        return list(self.teams.values())

    def get_student(self, student_id: str) -> Optional[Student]:
        return self.students.get(student_id)

    def list_students(self) -> List[Student]:
        return list(self.students.values())

    def get_jury(self, jury_id: str) -> Optional[Jury]:
        return self.juries.get(jury_id)

    # ------------------------------------------------------ registrations
    def list_registrations(
        self,
        *,
        program_id: str | None = None,
        student_id: str | None = None,
        team_id: str | None = None,
    ) -> List[ProgramRegistration]:
        with self._lock:
            regs = list(self.registrations.values())
        return [
            r
            for r in regs
            if (program_id is None or r.program_id == program_id)
            and (student_id is None or r.student_id == student_id)
            and (team_id is None or r.team_id == team_id)
        ]

    def get_registration(self, registration_id: str) -> Optional[ProgramRegistration]:
        return self.registrations.get(registration_id)

    def insert_registration(self, registration: ProgramRegistration, *, capacity: int) -> None:
        with self._lock:
            same_program = [
                r for r in self.registrations.values() if r.program_id == registration.program_id
            ]
            if any(r.student_id == registration.student_id for r in same_program):
                raise WriteConflict(ALREADY_REGISTERED)
            team_count = sum(1 for r in same_program if r.team_id == registration.team_id)
            if team_count >= capacity:
                raise WriteConflict(CAPACITY_EXCEEDED)
            self.registrations[registration.id] = registration

    def delete_registration(self, registration_id: str) -> Optional[ProgramRegistration]:
        with self._lock:
            return self.registrations.pop(registration_id, None)

    # ------------------------------------------------------------ results
    def get_result(self, result_id: str) -> Optional[ResultRecord]:
        return self.results.get(result_id)

    def list_results(
        self, *, program_id: str | None = None, status: str | None = None
    ) -> List[ResultRecord]:
        with self._lock:
            if program_id is not None:
                ids = self._results_by_program.get(program_id, set())
                records = [self.results[i] for i in ids]
            else:
                records = list(self.results.values())
        if status is not None:
            records = [r for r in records if r.status == status]
        return sorted(records, key=lambda r: (r.submitted_at, r.id))

    def _program_results(self, program_id: str) -> List[ResultRecord]:
        return [self.results[i] for i in self._results_by_program.get(program_id, set())]

    def insert_result(self, record: ResultRecord) -> None:
        """Insert a pending record unless the program already has an active one."""
        with self._lock:
            for existing in self._program_results(record.program_id):
                if existing.status == "approved":
                    raise WriteConflict(ALREADY_PUBLISHED)
                if existing.status == "pending":
                    raise WriteConflict(DUPLICATE_SUBMISSION, existing.id)
            self.results[record.id] = record
            self._results_by_program.setdefault(record.program_id, set()).add(record.id)

    def transition_result(self, result_id: str, expected: str, new: str) -> ResultRecord:
        with self._lock:
            record = self.results.get(result_id)
            if record is None:
                raise WriteConflict(RESULT_NOT_FOUND)
            if record.status != expected:
                raise WriteConflict(INVALID_TRANSITION, f"{record.status} -> {new}")
            if new == "approved":
                for other in self._program_results(record.program_id):
                    if other.id != record.id and other.status == "approved":
                        raise WriteConflict(ALREADY_PUBLISHED)
            updated = replace(record, status=new)
            self.results[result_id] = updated
            return updated

    def replace_result_entries(
        self,
        result_id: str,
        expected: str,
        entries: Sequence[ResultEntry],
        penalties: Sequence[Penalty],
        submitted_at: datetime,
    ) -> ResultRecord:
        with self._lock:
            record = self.results.get(result_id)
            if record is None:
                raise WriteConflict(RESULT_NOT_FOUND)
            if record.status != expected:
                raise WriteConflict(INVALID_TRANSITION)
            updated = replace(
                record,
                entries=tuple(entries),
                penalties=tuple(penalties),
                submitted_at=submitted_at,
            )
            self.results[result_id] = updated
            return updated

    def delete_result(self, result_id: str, expected: str) -> ResultRecord:
        with self._lock:
            record = self.results.get(result_id)
            if record is None:
                raise WriteConflict(RESULT_NOT_FOUND)
            if record.status != expected:
                raise WriteConflict(INVALID_TRANSITION)
            del self.results[result_id]
            self._results_by_program.get(record.program_id, set()).discard(result_id)
            return record

    # ------------------------------------------------- replacement requests
    def get_request(self, request_id: str) -> Optional[ReplacementRequest]:
        return self.replacement_requests.get(request_id)

    def list_requests(self, *, team_id: str | None = None) -> List[ReplacementRequest]:
        with self._lock:
            requests = list(self.replacement_requests.values())
        if team_id is not None:
            requests = [r for r in requests if r.team_id == team_id]
        return sorted(requests, key=lambda r: (r.submitted_at, r.id), reverse=True)

    def insert_request(self, request: ReplacementRequest) -> None:
        """Unique on (program, old student) among pending requests."""
        with self._lock:
            for existing in self.replacement_requests.values():
                if (
                    existing.status == "pending"
                    and existing.program_id == request.program_id
                    and existing.old_student_id == request.old_student_id
                ):
                    raise WriteConflict(DUPLICATE_PENDING_REQUEST, existing.id)
            self.replacement_requests[request.id] = request

    def decide_request(
        self,
        request_id: str,
        status: str,
        reviewed_at: datetime,
        reviewed_by: str,
        swap_in: ProgramRegistration | None = None,
    ) -> ReplacementRequest:
        """Mark a pending request decided; on approval swap the registration too.

        Both documents change inside one critical section, or neither does.
        """
        with self._lock:
            request = self.replacement_requests.get(request_id)
            if request is None:
                raise WriteConflict(REQUEST_NOT_FOUND)
            if request.status != "pending":
                raise WriteConflict(INVALID_TRANSITION)
            if swap_in is not None:
                old = next(
                    (
                        r
                        for r in self.registrations.values()
                        if r.program_id == request.program_id
                        and r.student_id == request.old_student_id
                    ),
                    None,
                )
                if old is None:
                    raise WriteConflict(OLD_NOT_REGISTERED)
                if any(
                    r.program_id == request.program_id and r.student_id == swap_in.student_id
                    for r in self.registrations.values()
                ):
                    raise WriteConflict(NEW_ALREADY_REGISTERED)
                del self.registrations[old.id]
                self.registrations[swap_in.id] = swap_in
                logger.debug(
                    f"Swapped registration {old.id} -> {swap_in.id} for program {request.program_id}"
                )
            decided = replace(
                request, status=status, reviewed_at=reviewed_at, reviewed_by=reviewed_by
            )
            self.replacement_requests[request_id] = decided
            return decided

    # ------------------------------------------ schedule / assignments / notices
    def get_schedule(self) -> Optional[RegistrationSchedule]:
        return self.schedule

    def set_schedule(self, schedule: RegistrationSchedule) -> None:
        with self._lock:
            self.schedule = schedule

    def get_assignment(self, program_id: str, jury_id: str) -> Optional[JuryAssignment]:
        return self.assignments.get((program_id, jury_id))

    def list_assignments(self, *, jury_id: str | None = None) -> List[JuryAssignment]:
        with self._lock:
            items = list(self.assignments.values())
        return [a for a in items if jury_id is None or a.jury_id == jury_id]

    def put_assignment(self, assignment: JuryAssignment) -> None:
        with self._lock:
            self.assignments[(assignment.program_id, assignment.jury_id)] = assignment

    def delete_assignment(self, program_id: str, jury_id: str) -> Optional[JuryAssignment]:
        with self._lock:
            return self.assignments.pop((program_id, jury_id), None)

    def add_notification(self, notification: Notification) -> None:
        with self._lock:
            self.notifications[notification.id] = notification

    def list_notifications(self) -> List[Notification]:
        with self._lock:
            items = list(self.notifications.values())
        return sorted(items, key=lambda n: (n.created_at, n.id), reverse=True)

    def mark_notifications_read(self, notification_ids: Iterable[str] | None = None) -> int:
        with self._lock:
            targets = (
                list(self.notifications) if notification_ids is None else list(notification_ids)
            )
            changed = 0
            for nid in targets:
                current = self.notifications.get(nid)
                if current is None or current.read:
                    continue
                self.notifications[nid] = replace(current, read=True)
                changed += 1
            return changed
