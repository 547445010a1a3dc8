from __future__ import annotations

import itertools
from datetime import datetime, timezone

from fest_core import (
    Penalty,
    ResultEntry,
    ResultRecord,
    Team,
    calculate_score,
    compute_live_scores,
    compute_student_scores,
    rank_scoreboard,
)

WHEN = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _record(rid: str, entries, penalties=(), status: str = "approved") -> ResultRecord:
    return ResultRecord(
        id=rid,
        program_id=f"p-{rid}",
        jury_id="J1",
        submitted_by="Jury One",
        submitted_at=WHEN,
        status=status,
        entries=tuple(entries),
        penalties=tuple(penalties),
    )


def test_calculate_score_tables():
    assert calculate_score("single", "A", 1, "A") == 15
    assert calculate_score("single", "B", 2, "none") == 5
    assert calculate_score("single", "C", 3, "C") == 2
    assert calculate_score("single", "none", 1, "B") == 3
    assert calculate_score("group", "none", 1) == 20
    assert calculate_score("group", "none", 3) == 10
    assert calculate_score("general", "none", 2) == 20


def test_teams_without_results_show_zero():
    totals = compute_live_scores([], team_ids=["T1", "T2"])
    assert totals == {"T1": 0, "T2": 0}


def test_entries_resolve_team_through_student_membership():
    record = _record(
        "a",
        [
            ResultEntry(position=1, student_id="s1", team_id="", score=15),
            ResultEntry(position=2, team_id="T2", score=7),
            ResultEntry(position=3, team_id="T3", score=5),
        ],
    )
    totals = compute_live_scores([record], team_ids=["T1", "T2", "T3"], student_teams={"s1": "T1"})
    assert totals == {"T1": 15, "T2": 7, "T3": 5}


def test_penalties_are_subtracted_and_can_go_negative():
    record = _record(
        "a",
        [
            ResultEntry(position=1, team_id="T1", score=20),
            ResultEntry(position=2, team_id="T2", score=15),
            ResultEntry(position=3, team_id="T3", score=10),
        ],
        penalties=[Penalty(points=25, team_id="T3"), Penalty(points=5, student_id="s1")],
    )
    totals = compute_live_scores(
        [record], team_ids=["T1", "T2", "T3"], student_teams={"s1": "T1"}
    )
    assert totals == {"T1": 15, "T2": 15, "T3": -15}


def test_non_approved_records_are_ignored():
    entries = [ResultEntry(position=p, team_id=t, score=10) for p, t in ((1, "T1"), (2, "T2"), (3, "T3"))]
    totals = compute_live_scores(
        [_record("p", entries, status="pending"), _record("r", entries, status="rejected")],
        team_ids=["T1", "T2", "T3"],
    )
    assert totals == {"T1": 0, "T2": 0, "T3": 0}


def test_compute_live_scores_is_order_independent():
    records = [
        _record(
            str(i),
            [
                ResultEntry(position=1, team_id=f"T{(i % 3) + 1}", score=10 + i),
                ResultEntry(position=2, team_id=f"T{((i + 1) % 3) + 1}", score=5),
                ResultEntry(position=3, team_id=f"T{((i + 2) % 3) + 1}", score=1),
            ],
            penalties=[Penalty(points=i + 1, team_id="T2")],
        )
        for i in range(4)
    ]
    baseline = compute_live_scores(records, team_ids=["T1", "T2", "T3"])
    for perm in itertools.permutations(records):
        assert compute_live_scores(list(perm), team_ids=["T1", "T2", "T3"]) == baseline
    # Repeated calls have no side effects.
    assert compute_live_scores(records, team_ids=["T1", "T2", "T3"]) == baseline


def test_student_scores_count_placements_only():
    record = _record(
        "a",
        [
            ResultEntry(position=1, student_id="s1", team_id="T1", score=15),
            ResultEntry(position=2, student_id="s3", team_id="T2", score=10),
            ResultEntry(position=3, student_id="s5", team_id="T3", score=5),
        ],
        penalties=[Penalty(points=3, student_id="s3", team_id="T2")],
    )
    scores = compute_student_scores([record], student_ids=["s1", "s3", "s5", "s9"])
    assert scores == {"s1": 15, "s3": 10, "s5": 5, "s9": 0}
    # The same penalty still lands on the team.
    assert compute_live_scores([record], team_ids=["T2"])["T2"] == 7


def test_rank_scoreboard_shares_rank_on_equal_totals():
    teams = [Team("T1", "Alpha"), Team("T2", "Beta"), Team("T3", "Gamma"), Team("T4", "Delta")]
    rows = rank_scoreboard({"T1": 20, "T2": 35, "T3": 20, "T4": -5}, teams)
    assert [(r.team_id, r.rank) for r in rows] == [("T2", 1), ("T1", 2), ("T3", 2), ("T4", 4)]
    assert rows[-1].total == -5
