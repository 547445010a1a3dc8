"""
Input validation schemas using Pydantic v2
Validates result, penalty, registration and replacement payloads
"""

import logging
import re
from typing import Any, Dict, List, Literal, Optional, Self, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import INVALID_PAYLOAD, OperationError

logger = logging.getLogger(__name__)

_ID_FIELD = dict(min_length=1, max_length=64)

M = TypeVar("M", bound=BaseModel)


class WinnerPayload(BaseModel):
    """One placement as sent by a jury or admin"""

    position: Literal[1, 2, 3]
    id: str = Field(..., **_ID_FIELD, description="Student id (single) or team id")
    grade: str = Field("none", description="'A', 'B', 'C' or 'none'")

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("winner id cannot be empty")
        return v

    @field_validator("grade", mode="before")
    @classmethod
    def sanitize_grade(cls, v: object) -> str:
        """Unknown grades fall back to 'none' rather than failing the submission"""
        if v in ("A", "B", "C", "none"):
            return v  # type: ignore[return-value]
        return "none"


class PenaltyPayload(BaseModel):
    """Minus points against a student or a team"""

    id: str = Field(..., **_ID_FIELD)
    type: Literal["student", "team"]
    points: int = Field(..., gt=0, le=1000, description="Points to subtract")
    reason: Optional[str] = Field(None, max_length=255)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = InputSanitizer.sanitize_string(v, 255)
        return v or None


class ResultSubmission(BaseModel):
    """Exactly three placements plus optional penalties"""

    winners: List[WinnerPayload]
    penalties: List[PenaltyPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_positions(self) -> Self:
        positions = sorted(w.position for w in self.winners)
        if positions != [1, 2, 3]:
            raise ValueError("exactly one winner is required for each of positions 1, 2 and 3")
        return self

    def winner_ids(self) -> List[str]:
        return [w.id for w in sorted(self.winners, key=lambda w: w.position)]

    def candidate_ids(self) -> List[str]:
        """Everyone named in the result: winners first, then penalty targets"""
        return self.winner_ids() + [p.id for p in self.penalties]

    def has_duplicate_winners(self) -> bool:
        ids = self.winner_ids()
        return len(set(ids)) != len(ids)

    model_config = ConfigDict(extra="forbid")


class ReplacementPayload(BaseModel):
    """Team request to swap a registered student for another"""

    program_id: str = Field(..., **_ID_FIELD)
    old_student_id: str = Field(..., **_ID_FIELD)
    new_student_id: str = Field(..., **_ID_FIELD)
    team_id: str = Field(..., **_ID_FIELD)
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("program_id", "old_student_id", "new_student_id", "team_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id cannot be empty")
        return v

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = InputSanitizer.sanitize_reason(v)
        if not v:
            raise ValueError("reason cannot be empty")
        return v


class RegistrationPayload(BaseModel):
    program_id: str = Field(..., **_ID_FIELD)
    student_id: str = Field(..., **_ID_FIELD)
    team_id: str = Field(..., **_ID_FIELD)


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()
        value = value[:max_length]
        # Remove null bytes
        value = value.replace("\0", "")

        return value

    @staticmethod
    def sanitize_reason(reason: str, max_length: int = 500) -> str:
        """Free text shown to admins; keep letters (any script), strip markup and control chars"""
        reason = InputSanitizer.sanitize_string(reason, max_length)
        reason = re.sub(r"[<>{}\\`\x00-\x08\x0b-\x1f\x7f]", "", reason)
        return reason.strip()

    @staticmethod
    def format_errors(errors: List[Dict]) -> str:
        parts = []
        for err in errors:
            loc = ".".join(str(p) for p in err.get("loc", ()))
            msg = err.get("msg", "invalid")
            parts.append(f"{loc}: {msg}" if loc else msg)
        return "; ".join(parts)

    @staticmethod
    def validate_payload(model: Type[M], data: Any) -> M | OperationError:
        """
        Validate a raw payload against one of the schemas above

        Returns:
            The validated model, or OperationError(kind="invalid_payload")
            describing every failing field
        """
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            detail = InputSanitizer.format_errors(e.errors())
            logger.warning(f"{model.__name__} validation failed: {detail}")
            return OperationError(kind=INVALID_PAYLOAD, message=f"Invalid payload: {detail}")


__all__ = [
    "WinnerPayload",
    "PenaltyPayload",
    "ResultSubmission",
    "ReplacementPayload",
    "RegistrationPayload",
    "InputSanitizer",
]
