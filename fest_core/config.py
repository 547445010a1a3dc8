"""Core settings: score tables, participation limits and refresh windows."""
from __future__ import annotations

import logging
import os
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class CoreSettings(BaseModel):
    """Tunable constants of the scoring and realtime layers.

    Defaults reproduce the festival rulebook; ``from_env`` lets a deployment
    override the limits and refresh windows without code changes.
    """

    # Placement points for single-section programs, by program category.
    category_scores: Dict[str, Dict[int, int]] = Field(
        default_factory=lambda: {
            "A": {1: 10, 2: 7, 3: 5},
            "B": {1: 7, 2: 5, 3: 3},
            "C": {1: 5, 2: 3, 3: 1},
        }
    )
    grade_bonus: Dict[str, int] = Field(
        default_factory=lambda: {"A": 5, "B": 3, "C": 1}
    )
    group_scores: Dict[int, int] = Field(default_factory=lambda: {1: 20, 2: 15, 3: 10})
    general_scores: Dict[int, int] = Field(default_factory=lambda: {1: 25, 2: 20, 3: 15})

    # Per-student registration caps; general programs are unlimited.
    max_single_per_stage: int = Field(3, ge=0, le=100)
    max_group: int = Field(3, ge=0, le=100)
    default_candidate_limit: int = Field(1, ge=1, le=500)

    # ClientRefreshCoordinator windows (seconds).
    refresh_quiescence: float = Field(0.3, ge=0.0, le=10.0)
    refresh_settle: float = Field(0.2, ge=0.0, le=10.0)

    model_config = ConfigDict(frozen=True)

    @field_validator("group_scores", "general_scores")
    @classmethod
    def validate_positions(cls, v: Dict[int, int]) -> Dict[int, int]:
        if set(v) != {1, 2, 3}:
            raise ValueError("score table must define positions 1, 2 and 3")
        return v

    @classmethod
    def from_env(cls, prefix: str = "FEST_") -> "CoreSettings":
        """Build settings from ``FEST_*`` environment variables."""
        overrides: Dict[str, object] = {}
        for name in (
            "max_single_per_stage",
            "max_group",
            "default_candidate_limit",
        ):
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = int(raw)
        for name in ("refresh_quiescence", "refresh_settle"):
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = float(raw)
        if overrides:
            logger.debug(f"CoreSettings overrides from environment: {sorted(overrides)}")
        return cls(**overrides)


DEFAULT_SETTINGS = CoreSettings()
