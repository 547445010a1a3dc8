"""Jury-to-program assignments and their progress status."""
from __future__ import annotations

import logging

from . import errors
from .errors import OperationError, Outcome, fail
from .realtime import ASSIGNMENTS, RealtimeNotifier
from .store import DocumentStore
from .types import AssignmentStatus, JuryAssignment, Role

logger = logging.getLogger(__name__)


class AssignmentBoard:
    def __init__(self, store: DocumentStore, notifier: RealtimeNotifier) -> None:
        self.store = store
        self.notifier = notifier

    def assign(self, program_id: str, jury_id: str, role: Role) -> Outcome[JuryAssignment] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        if self.store.get_program(program_id) is None:
            return fail(errors.PROGRAM_NOT_FOUND)
        if self.store.get_jury(jury_id) is None:
            return fail(errors.JURY_NOT_FOUND)
        if self.store.get_assignment(program_id, jury_id) is not None:
            return fail(errors.ALREADY_ASSIGNED)
        assignment = JuryAssignment(program_id=program_id, jury_id=jury_id)
        self.store.put_assignment(assignment)
        event = self.notifier.publish(ASSIGNMENTS, "created", programId=program_id, juryId=jury_id)
        return Outcome(assignment, [event])

    def unassign(self, program_id: str, jury_id: str, role: Role) -> Outcome[JuryAssignment] | OperationError:
        if role is not Role.ADMIN:
            return fail(errors.UNAUTHORIZED)
        removed = self.store.delete_assignment(program_id, jury_id)
        if removed is None:
            return fail(errors.ASSIGNMENT_NOT_FOUND)
        event = self.notifier.publish(ASSIGNMENTS, "deleted", programId=program_id, juryId=jury_id)
        return Outcome(removed, [event])

    def set_status(self, program_id: str, jury_id: str, status: AssignmentStatus) -> None:
        """Follow the result lifecycle; programs without an assignment are left alone."""
        current = self.store.get_assignment(program_id, jury_id)
        if current is None or current.status == status:
            return
        self.store.put_assignment(JuryAssignment(program_id=program_id, jury_id=jury_id, status=status))
        logger.debug(f"assignment {program_id}/{jury_id}: {current.status} -> {status}")

    def for_jury(self, jury_id: str) -> list[JuryAssignment]:
        return self.store.list_assignments(jury_id=jury_id)
