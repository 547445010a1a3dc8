"""Result lifecycle: submission, approval, rejection, edits and deletion.

States:
- pending -> approved   (admin approve; the only way a record starts counting)
- pending -> rejected   (admin reject; terminal, excluded from aggregation)
- pending -> pending    (admin edit of a pending record)
- approved -> approved  (admin edit-in-place)
- approved -> deleted   (admin delete; the record is removed)

A program has at most one approved record. Uniqueness is checked up front
for a clear message and enforced again by the store's conditional writes, so
two racing submissions or approvals for one program cannot both succeed.
A resubmission after rejection always gets a new record id.

Every successful mutation publishes its change events after the store write
has returned.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from . import errors
from .assignments import AssignmentBoard
from .config import DEFAULT_SETTINGS, CoreSettings
from .errors import OperationError, Outcome, fail
from .notifications import NotificationCenter
from .realtime import RESULTS, SCOREBOARD, RealtimeNotifier
from .registration import RegistrationGuard
from .scoring import entry_score
from .store import DocumentStore, WriteConflict
from .types import ChangeEvent, Penalty, Program, ResultEntry, ResultRecord, Role
from .validation import InputSanitizer, ResultSubmission

logger = logging.getLogger(__name__)

_SUBMITTERS = (Role.JURY, Role.ADMIN)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        notifier: RealtimeNotifier,
        *,
        guard: RegistrationGuard | None = None,
        assignments: AssignmentBoard | None = None,
        notifications: NotificationCenter | None = None,
        settings: CoreSettings = DEFAULT_SETTINGS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.guard = guard or RegistrationGuard(store)
        self.assignments = assignments or AssignmentBoard(store, notifier)
        self.notifications = notifications or NotificationCenter(store)
        self.settings = settings
        self.clock = clock

    # ------------------------------------------------------------ reads
    def get(self, result_id: str) -> Optional[ResultRecord]:
        return self.store.get_result(result_id)

    def list_results(self, status: str | None = None, program_id: str | None = None) -> list[ResultRecord]:
        return self.store.list_results(program_id=program_id, status=status)

    # ---------------------------------------------------------- helpers
    def _parse(self, winners: Sequence[Any], penalties: Sequence[Any] | None) -> ResultSubmission | OperationError:
        payload = InputSanitizer.validate_payload(
            ResultSubmission,
            {
                "winners": [_as_dict(w) for w in winners],
                "penalties": [_as_dict(p) for p in penalties or ()],
            },
        )
        if isinstance(payload, OperationError):
            return payload
        if payload.has_duplicate_winners():
            logger.warning(f"duplicate placement in submission: {payload.winner_ids()}")
            return fail(errors.DUPLICATE_PLACEMENT)
        return payload

    def _build_entries(self, program: Program, submission: ResultSubmission) -> tuple[ResultEntry, ...] | OperationError:
        entries: list[ResultEntry] = []
        for winner in sorted(submission.winners, key=lambda w: w.position):
            score = entry_score(program, winner.position, winner.grade, self.settings)
            if program.section == "single":
                student = self.store.get_student(winner.id)
                if student is None:
                    return fail(errors.INVALID_CANDIDATE, "Invalid student selected")
                entries.append(
                    ResultEntry(
                        position=winner.position,
                        student_id=student.id,
                        team_id=student.team_id,
                        grade=winner.grade,  # type: ignore[arg-type]
                        score=score,
                    )
                )
            else:
                team = self.store.get_team(winner.id)
                if team is None:
                    return fail(errors.INVALID_CANDIDATE, "Invalid team selected")
                entries.append(ResultEntry(position=winner.position, team_id=team.id, score=score))
        return tuple(entries)

    def _build_penalties(self, submission: ResultSubmission) -> tuple[Penalty, ...] | OperationError:
        penalties: list[Penalty] = []
        for item in submission.penalties:
            if item.type == "student":
                student = self.store.get_student(item.id)
                if student is None:
                    return fail(errors.INVALID_CANDIDATE, "Invalid student selected for minus points.")
                penalties.append(
                    Penalty(points=item.points, student_id=student.id, team_id=student.team_id, reason=item.reason)
                )
            else:
                team = self.store.get_team(item.id)
                if team is None:
                    return fail(errors.INVALID_CANDIDATE, "Invalid team selected for minus points.")
                penalties.append(Penalty(points=item.points, team_id=team.id, reason=item.reason))
        return tuple(penalties)

    def _validated_content(
        self, program: Program, submission: ResultSubmission
    ) -> tuple[tuple[ResultEntry, ...], tuple[Penalty, ...]] | OperationError:
        guard_error = self.guard.ensure_eligible(program.id, submission.candidate_ids())
        if guard_error is not None:
            return guard_error
        entries = self._build_entries(program, submission)
        if isinstance(entries, OperationError):
            return entries
        penalties = self._build_penalties(submission)
        if isinstance(penalties, OperationError):
            return penalties
        return entries, penalties

    def _pending_message(self, program: Program, pending: ResultRecord) -> str:
        jury = self.store.get_jury(pending.jury_id)
        jury_name = jury.name if jury else pending.submitted_by or "Unknown Jury"
        return (
            f'A pending result already exists for program "{program.name}" submitted by '
            f"{jury_name}. Please wait for admin approval or contact support."
        )

    # -------------------------------------------------------- mutations
    def submit(
        self,
        program_id: str,
        jury_id: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None = None,
        *,
        role: Role,
    ) -> Outcome[ResultRecord] | OperationError:
        """
        Store a new pending result for a program.

        Fails, in order: unauthorized, invalid_payload, duplicate_placement,
        program_not_found, jury_not_found, already_published,
        duplicate_submission, no_registrations / not_registered,
        invalid_candidate. Nothing is written on failure.
        """
        if role not in _SUBMITTERS:
            return fail(errors.UNAUTHORIZED)
        submission = self._parse(winners, penalties)
        if isinstance(submission, OperationError):
            return submission

        program = self.store.get_program(program_id)
        if program is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        jury = self.store.get_jury(jury_id)
        if jury is None and role is Role.JURY:
            return fail(errors.JURY_NOT_FOUND)

        existing = self.store.list_results(program_id=program_id)
        if any(r.status == "approved" for r in existing):
            return fail(errors.ALREADY_PUBLISHED)
        pending = next((r for r in existing if r.status == "pending"), None)
        if pending is not None:
            return fail(errors.DUPLICATE_SUBMISSION, self._pending_message(program, pending))

        content = self._validated_content(program, submission)
        if isinstance(content, OperationError):
            return content
        entries, penalty_entries = content

        record = ResultRecord(
            id=str(uuid.uuid4()),
            program_id=program.id,
            jury_id=jury_id,
            submitted_by=jury.name if jury else role.value,
            submitted_at=self.clock(),
            status="pending",
            entries=entries,
            penalties=penalty_entries,
        )
        try:
            self.store.insert_result(record)
        except WriteConflict as conflict:
            logger.warning(f"submission for {program.id} lost a race: {conflict.kind}")
            if conflict.kind == errors.DUPLICATE_SUBMISSION:
                return fail(
                    errors.DUPLICATE_SUBMISSION,
                    f'A result for program "{program.name}" already exists. This may have been '
                    "submitted by another jury. Please refresh and check.",
                )
            return fail(conflict.kind)

        self.assignments.set_status(program.id, jury_id, "submitted")
        event = self.notifier.publish(
            RESULTS, "submitted", resultId=record.id, programId=program.id, juryId=jury_id
        )
        logger.info(f"Result {record.id} submitted for program {program.id} by {record.submitted_by}")
        return Outcome(record, [event])

    def approve(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        try:
            record = self.store.transition_result(result_id, "pending", "approved")
        except WriteConflict as conflict:
            logger.warning(f"approve {result_id} refused: {conflict.kind}")
            return fail(conflict.kind)

        self.assignments.set_status(record.program_id, record.jury_id, "completed")
        program = self.store.get_program(record.program_id)
        if program is not None:
            self.notifications.result_published(record.id, program, self.clock())
        events = [
            self.notifier.publish(RESULTS, "approved", resultId=record.id, programId=record.program_id),
            self.notifier.publish(SCOREBOARD, "updated"),
        ]
        logger.info(f"Result {record.id} approved for program {record.program_id}")
        return Outcome(record, events)

    def reject(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        try:
            record = self.store.transition_result(result_id, "pending", "rejected")
        except WriteConflict as conflict:
            logger.warning(f"reject {result_id} refused: {conflict.kind}")
            return fail(conflict.kind)

        self.assignments.set_status(record.program_id, record.jury_id, "pending")
        event = self.notifier.publish(
            RESULTS, "rejected", resultId=record.id, programId=record.program_id
        )
        logger.info(f"Result {record.id} rejected for program {record.program_id}")
        return Outcome(record, [event])

    def _edit(
        self,
        result_id: str,
        expected: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None,
    ) -> ResultRecord | OperationError:
        record = self.store.get_result(result_id)
        if record is None:
            return fail(errors.RESULT_NOT_FOUND)
        if record.status != expected:
            return fail(errors.INVALID_TRANSITION, f"Only {expected} results can be edited here.")
        submission = self._parse(winners, penalties)
        if isinstance(submission, OperationError):
            return submission
        program = self.store.get_program(record.program_id)
        if program is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        content = self._validated_content(program, submission)
        if isinstance(content, OperationError):
            return content
        entries, penalty_entries = content
        try:
            return self.store.replace_result_entries(
                result_id, expected, entries, penalty_entries, self.clock()
            )
        except WriteConflict as conflict:
            return fail(conflict.kind)

    def update_pending(
        self,
        result_id: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None = None,
        *,
        role: Role,
    ) -> Outcome[ResultRecord] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        record = self._edit(result_id, "pending", winners, penalties)
        if isinstance(record, OperationError):
            return record
        event = self.notifier.publish(RESULTS, "updated", resultId=record.id, programId=record.program_id)
        return Outcome(record, [event])

    def update(
        self,
        result_id: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None = None,
        *,
        role: Role,
    ) -> Outcome[ResultRecord] | OperationError:
        """Edit an approved record in place. Entries and penalties swap in one write."""
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        record = self._edit(result_id, "approved", winners, penalties)
        if isinstance(record, OperationError):
            return record
        events = self._score_events("updated", record)
        logger.info(f"Approved result {record.id} edited")
        return Outcome(record, events)

    def delete(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        try:
            record = self.store.delete_result(result_id, "approved")
        except WriteConflict as conflict:
            return fail(conflict.kind)
        self.assignments.set_status(record.program_id, record.jury_id, "submitted")
        events = self._score_events("updated", record)
        logger.info(f"Approved result {record.id} deleted for program {record.program_id}")
        return Outcome(record, events)

    def _score_events(self, kind: str, record: ResultRecord) -> list[ChangeEvent]:
        return [
            self.notifier.publish(RESULTS, kind, resultId=record.id, programId=record.program_id),
            self.notifier.publish(SCOREBOARD, "updated"),
        ]


def _as_dict(item: Any) -> Any:
    if hasattr(item, "model_dump"):
        return item.model_dump()
    return item
