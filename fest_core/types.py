"""Type definitions for festival records, roles and channel events."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

Section = Literal["single", "group", "general"]
Category = Literal["A", "B", "C", "none"]
Grade = Literal["A", "B", "C", "none"]
Position = Literal[1, 2, 3]
ResultStatus = Literal["pending", "approved", "rejected"]
RequestStatus = Literal["pending", "approved", "rejected"]
AssignmentStatus = Literal["pending", "submitted", "completed"]


class Role(str, Enum):
    """Caller role, derived once at the request boundary."""

    ADMIN = "admin"
    JURY = "jury"
    TEAM = "team"
    PUBLIC = "public"


@dataclass(frozen=True)
class Team:
    id: str
    name: str


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    team_id: str
    chest_no: str = ""


@dataclass(frozen=True)
class Program:
    id: str
    name: str
    section: Section
    category: Category = "none"
    stage: bool = False
    # Max registrations per team for this program.
    candidate_limit: int = 1


@dataclass(frozen=True)
class ProgramRegistration:
    id: str
    program_id: str
    student_id: str
    team_id: str
    timestamp: datetime


@dataclass(frozen=True)
class ResultEntry:
    """One placement. Single-section entries name a student and carry its team."""

    position: Position
    team_id: str
    score: int
    grade: Grade = "none"
    student_id: Optional[str] = None


@dataclass(frozen=True)
class Penalty:
    points: int
    team_id: Optional[str] = None
    student_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ResultRecord:
    id: str
    program_id: str
    jury_id: str
    submitted_by: str
    submitted_at: datetime
    status: ResultStatus
    entries: tuple[ResultEntry, ...]
    penalties: tuple[Penalty, ...] = ()


@dataclass(frozen=True)
class ReplacementRequest:
    id: str
    program_id: str
    old_student_id: str
    new_student_id: str
    team_id: str
    reason: str
    status: RequestStatus
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None


@dataclass(frozen=True)
class RegistrationSchedule:
    start: datetime
    end: datetime

    def is_open(self, now: datetime) -> bool:
        return self.start <= now <= self.end


@dataclass(frozen=True)
class Jury:
    id: str
    name: str


@dataclass(frozen=True)
class JuryAssignment:
    program_id: str
    jury_id: str
    status: AssignmentStatus = "pending"


@dataclass(frozen=True)
class Notification:
    id: str
    kind: Literal["result_published"]
    title: str
    message: str
    program_id: str
    result_id: str
    created_at: datetime
    read: bool = False


@dataclass(frozen=True)
class ChangeEvent:
    """A "something changed" signal. Consumers re-fetch instead of trusting fields."""

    channel: str
    kind: str
    timestamp: datetime
    ids: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreboardRow:
    team_id: str
    team_name: str
    rank: int
    total: int
