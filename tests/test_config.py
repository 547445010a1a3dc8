from __future__ import annotations

import pytest
from pydantic import ValidationError

from fest_core import CoreSettings, InputSanitizer, OperationError, ResultSubmission


def test_defaults_match_rulebook():
    settings = CoreSettings()
    assert settings.category_scores["A"] == {1: 10, 2: 7, 3: 5}
    assert settings.grade_bonus == {"A": 5, "B": 3, "C": 1}
    assert settings.general_scores[1] == 25
    assert settings.default_candidate_limit == 1
    assert settings.refresh_quiescence == 0.3


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("FEST_MAX_GROUP", "5")
    monkeypatch.setenv("FEST_REFRESH_SETTLE", "0.05")
    settings = CoreSettings.from_env()
    assert settings.max_group == 5
    assert settings.refresh_settle == 0.05
    assert settings.max_single_per_stage == 3


def test_score_table_needs_every_position():
    with pytest.raises(ValidationError):
        CoreSettings(group_scores={1: 20, 2: 15})


def test_settings_are_frozen():
    settings = CoreSettings()
    with pytest.raises(ValidationError):
        settings.max_group = 9


def test_validate_payload_reports_fields():
    result = InputSanitizer.validate_payload(
        ResultSubmission,
        {"winners": [{"position": 4, "id": "s1"}], "penalties": []},
    )
    assert isinstance(result, OperationError)
    assert result.kind == "invalid_payload"
    assert "winners.0.position" in result.message


def test_penalty_points_must_be_positive():
    result = InputSanitizer.validate_payload(
        ResultSubmission,
        {
            "winners": [{"position": p, "id": f"s{p}"} for p in (1, 2, 3)],
            "penalties": [{"id": "T1", "type": "team", "points": 0}],
        },
    )
    assert result.kind == "invalid_payload"


def test_extra_fields_are_refused():
    result = InputSanitizer.validate_payload(
        ResultSubmission,
        {"winners": [{"position": p, "id": f"s{p}"} for p in (1, 2, 3)], "status": "approved"},
    )
    assert result.kind == "invalid_payload"


def test_sanitize_reason_strips_markup():
    assert InputSanitizer.sanitize_reason("  <b>ill</b>\x00 ") == "bill/b"
    assert InputSanitizer.sanitize_reason("x" * 600) == "x" * 500
