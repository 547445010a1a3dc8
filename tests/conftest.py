from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fest_core import FestCore, InMemoryStore, Jury, Program, ProgramRegistration, Student, Team


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def _reg(reg_id: str, program_id: str, student_id: str, team_id: str, when: datetime) -> ProgramRegistration:
    return ProgramRegistration(
        id=reg_id, program_id=program_id, student_id=student_id, team_id=team_id, timestamp=when
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FrozenClock) -> InMemoryStore:
    """Four teams, a single program (category A), a group program and a general program."""
    st = InMemoryStore()
    for team_id, name in (("T1", "Alpha"), ("T2", "Beta"), ("T3", "Gamma"), ("T4", "Delta")):
        st.add_team(Team(id=team_id, name=name))
    for sid, name, team in (
        ("s1", "Amal", "T1"),
        ("s2", "Basil", "T1"),
        ("s3", "Chitra", "T2"),
        ("s4", "Dev", "T2"),
        ("s5", "Esha", "T3"),
        ("s6", "Farah", "T1"),
        ("s7", "Gopi", "T2"),
    ):
        st.add_student(Student(id=sid, name=name, team_id=team, chest_no=f"1{sid[1:]}"))
    st.add_program(Program(id="elocution", name="Elocution", section="single", category="A", stage=True))
    st.add_program(Program(id="poetry", name="Poetry", section="group", candidate_limit=2))
    st.add_program(Program(id="march", name="March", section="general", candidate_limit=5))
    st.add_program(Program(id="essay", name="Essay", section="single", category="B"))
    st.add_jury(Jury(id="J1", name="Jury One"))
    st.add_jury(Jury(id="J2", name="Jury Two"))

    when = clock()
    for reg in (
        _reg("r1", "elocution", "s1", "T1", when),
        _reg("r2", "elocution", "s3", "T2", when),
        _reg("r3", "elocution", "s5", "T3", when),
        _reg("r4", "poetry", "s2", "T1", when),
        _reg("r5", "poetry", "s4", "T2", when),
        _reg("r6", "poetry", "s5", "T3", when),
    ):
        st.insert_registration(reg, capacity=5)
    return st


@pytest.fixture
def fest(store: InMemoryStore, clock: FrozenClock) -> FestCore:
    return FestCore(store, clock=clock)


@pytest.fixture
def recorded(fest: FestCore) -> list:
    """Every event published on any channel, in publish order."""
    seen: list = []
    for channel in ("results", "assignments", "registrations", "students", "scoreboard"):
        fest.subscribe(channel, seen.append)
    return seen


ELOCUTION_WINNERS = [
    {"position": 1, "id": "s1", "grade": "A"},
    {"position": 2, "id": "s3", "grade": "B"},
    {"position": 3, "id": "s5", "grade": "none"},
]

POETRY_WINNERS = [
    {"position": 1, "id": "T1", "grade": "A"},
    {"position": 2, "id": "T2", "grade": "B"},
    {"position": 3, "id": "T3", "grade": "none"},
]
