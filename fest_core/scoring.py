"""Live score aggregation (pure, no storage).

Single source of truth for team totals across scoreboard, results and
dashboards:
- Placement points come from the program section (and category for single
  programs); single programs add a grade bonus.
- Penalties are always subtracted; totals may go negative.
- Totals are recomputed from approved records on every read and never
  stored, so they cannot drift.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .config import DEFAULT_SETTINGS, CoreSettings
from .types import Penalty, Program, ResultRecord, ScoreboardRow, Team


def calculate_score(
    section: str,
    category: str,
    position: int,
    grade: str = "none",
    settings: CoreSettings = DEFAULT_SETTINGS,
) -> int:
    """Points carried by one placement.

    Examples (default tables):
        - single, category A, 1st, grade A -> 10 + 5 = 15
        - single, category none, 2nd, grade B -> 0 + 3 = 3
        - group, 3rd -> 10
        - general, 1st -> 25
    """
    if section == "single":
        base = settings.category_scores.get(category, {}).get(position, 0)
        bonus = settings.grade_bonus.get(grade, 0)
        return base + bonus
    if section == "group":
        return settings.group_scores[position]
    return settings.general_scores[position]


def entry_score(program: Program, position: int, grade: str, settings: CoreSettings = DEFAULT_SETTINGS) -> int:
    if program.section != "single":
        grade = "none"
    return calculate_score(program.section, program.category, position, grade, settings)


def _penalty_team(penalty: Penalty, student_teams: Mapping[str, str]) -> str | None:
    if penalty.student_id and penalty.student_id in student_teams:
        return student_teams[penalty.student_id]
    return penalty.team_id


def compute_live_scores(
    approved_results: Iterable[ResultRecord],
    *,
    team_ids: Iterable[str] = (),
    student_teams: Mapping[str, str] | None = None,
    penalties: Iterable[Penalty] = (),
) -> dict[str, int]:
    """
    Compute per-team totals from approved results and penalties.

    Args:
      approved_results: result records; anything not ``approved`` is ignored.
      team_ids: every known team, so teams without results show 0.
      student_teams: student id -> team id, used when an entry or penalty
        names only a student.
      penalties: free-standing penalties in addition to the ones carried by
        the records.
    """
    student_teams = student_teams or {}
    totals: dict[str, int] = {team_id: 0 for team_id in team_ids}

    for record in approved_results:
        if record.status != "approved":
            continue
        for entry in record.entries:
            team_id = entry.team_id
            if entry.student_id and entry.student_id in student_teams:
                team_id = student_teams[entry.student_id]
            if not team_id:
                continue
            totals[team_id] = totals.get(team_id, 0) + int(entry.score)
        for penalty in record.penalties:
            team_id = _penalty_team(penalty, student_teams)
            if team_id:
                totals[team_id] = totals.get(team_id, 0) - abs(int(penalty.points))

    for penalty in penalties:
        team_id = _penalty_team(penalty, student_teams)
        if team_id:
            totals[team_id] = totals.get(team_id, 0) - abs(int(penalty.points))

    return totals


def compute_student_scores(
    approved_results: Iterable[ResultRecord],
    *,
    student_ids: Iterable[str] = (),
) -> dict[str, int]:
    """Individual totals from single-program placements.

    Penalties only move team totals; a student penalty lands on the
    student's team in ``compute_live_scores``.
    """
    totals: dict[str, int] = {student_id: 0 for student_id in student_ids}
    for record in approved_results:
        if record.status != "approved":
            continue
        for entry in record.entries:
            if entry.student_id:
                totals[entry.student_id] = totals.get(entry.student_id, 0) + int(entry.score)
    return totals


def rank_scoreboard(totals: Mapping[str, int], teams: Sequence[Team]) -> list[ScoreboardRow]:
    """Order teams by total; equal totals share a rank (1, 2, 2, 4)."""
    names = {team.id: team.name for team in teams}
    ordered = sorted(
        totals.items(),
        key=lambda item: (-item[1], names.get(item[0], item[0]).lower(), item[0]),
    )
    rows: list[ScoreboardRow] = []
    previous_total: int | None = None
    rank = 0
    for idx, (team_id, total) in enumerate(ordered, start=1):
        if total != previous_total:
            rank = idx
            previous_total = total
        rows.append(
            ScoreboardRow(team_id=team_id, team_name=names.get(team_id, team_id), rank=rank, total=total)
        )
    return rows
