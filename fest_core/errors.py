"""Returned failures and outcomes for core operations.

Guard and lifecycle failures never escape an operation as exceptions. Every
operation returns either an ``Outcome`` (the value it produced plus the
change events it published) or an ``OperationError`` whose ``kind`` lets the
caller tell failures apart and self-correct. Nothing is retried.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Generic, List, Tuple, TypeVar

from .types import ChangeEvent

T = TypeVar("T")

PROGRAM_NOT_FOUND = "program_not_found"
NO_REGISTRATIONS = "no_registrations"
NOT_REGISTERED = "not_registered"
DUPLICATE_PLACEMENT = "duplicate_placement"
ALREADY_PUBLISHED = "already_published"
DUPLICATE_SUBMISSION = "duplicate_submission"
DUPLICATE_PENDING_REQUEST = "duplicate_pending_request"
REGISTRATION_OPEN = "registration_open"
REGISTRATION_CLOSED = "registration_closed"
CAPACITY_EXCEEDED = "capacity_exceeded"
UNAUTHORIZED = "unauthorized"
RESULT_NOT_FOUND = "result_not_found"
REQUEST_NOT_FOUND = "request_not_found"
REGISTRATION_NOT_FOUND = "registration_not_found"
JURY_NOT_FOUND = "jury_not_found"
INVALID_TRANSITION = "invalid_transition"
INVALID_CANDIDATE = "invalid_candidate"
INVALID_PAYLOAD = "invalid_payload"
PROGRAM_PUBLISHED = "program_published"
SAME_STUDENT = "same_student"
NOT_TEAM_MEMBER = "not_team_member"
OLD_NOT_REGISTERED = "old_not_registered"
NEW_ALREADY_REGISTERED = "new_already_registered"
ALREADY_REGISTERED = "already_registered"
PARTICIPATION_LIMIT = "participation_limit"
ALREADY_ASSIGNED = "already_assigned"
ASSIGNMENT_NOT_FOUND = "assignment_not_found"

# kind -> (default message, status code)
_DEFAULTS: Dict[str, Tuple[str, int]] = {
    PROGRAM_NOT_FOUND: ("Program not found", 404),
    NO_REGISTRATIONS: ("No registered candidates for this program.", 409),
    NOT_REGISTERED: ("Winner must be selected from registered candidates.", 422),
    DUPLICATE_PLACEMENT: ("The same candidate cannot hold more than one position.", 422),
    ALREADY_PUBLISHED: ("Program already published", 409),
    DUPLICATE_SUBMISSION: (
        "A pending result already exists for this program. Please wait for admin approval.",
        409,
    ),
    DUPLICATE_PENDING_REQUEST: (
        "A pending replacement request already exists for this student in this program.",
        409,
    ),
    REGISTRATION_OPEN: (
        "Registration window is still open. Please use the regular registration page.",
        409,
    ),
    REGISTRATION_CLOSED: ("Registration window is closed.", 409),
    CAPACITY_EXCEEDED: ("Candidate limit reached for this program.", 409),
    UNAUTHORIZED: ("Unauthorized", 403),
    RESULT_NOT_FOUND: ("Result not found", 404),
    REQUEST_NOT_FOUND: ("Replacement request not found", 404),
    REGISTRATION_NOT_FOUND: ("Registration not found", 404),
    JURY_NOT_FOUND: ("Jury not found", 404),
    INVALID_TRANSITION: ("Record has already been processed", 409),
    INVALID_CANDIDATE: ("Invalid candidate selected", 422),
    INVALID_PAYLOAD: ("Invalid payload", 400),
    PROGRAM_PUBLISHED: (
        "This program is already published. Replacement requests are not allowed for published programs.",
        409,
    ),
    SAME_STUDENT: ("Old and new students must be different.", 422),
    NOT_TEAM_MEMBER: ("Student does not belong to your team.", 403),
    OLD_NOT_REGISTERED: ("The old student is not registered for this program.", 409),
    NEW_ALREADY_REGISTERED: ("The new student is already registered for this program.", 409),
    ALREADY_REGISTERED: ("Student already registered for this program.", 409),
    PARTICIPATION_LIMIT: ("Participation limit reached for this program type.", 409),
    ALREADY_ASSIGNED: ("Program is already assigned to this jury.", 409),
    ASSIGNMENT_NOT_FOUND: ("Assignment not found", 404),
}


@dataclass
class OperationError:
    """Represents a guard or lifecycle failure returned to the caller."""

    kind: str
    message: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        default_message, default_status = _DEFAULTS.get(self.kind, (self.kind, 400))
        if self.message is None:
            self.message = default_message
        if self.status_code is None:
            self.status_code = default_status

    @property
    def ok(self) -> bool:
        return False


@dataclass
class Outcome(Generic[T]):
    """Successful result of a mutating or reading operation."""

    value: T
    events: List[ChangeEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


def fail(kind: str, message: str | None = None) -> OperationError:
    return OperationError(kind=kind, message=message)
