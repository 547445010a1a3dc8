from .config import CoreSettings
from .core import FestCore
from .errors import OperationError, Outcome
from .realtime import (
    CHANNEL_EVENTS,
    ClientRefreshCoordinator,
    RealtimeNotifier,
    Subscription,
)
from .registration import RegistrationGuard, RegistrationService
from .replacements import ReplacementRequestLifecycle
from .results import ResultLifecycle
from .scoring import (
    calculate_score,
    compute_live_scores,
    compute_student_scores,
    rank_scoreboard,
)
from .store import DocumentStore, InMemoryStore, WriteConflict
from .types import (
    ChangeEvent,
    Jury,
    Penalty,
    Program,
    ProgramRegistration,
    ReplacementRequest,
    ResultEntry,
    ResultRecord,
    Role,
    ScoreboardRow,
    Student,
    Team,
)
from .validation import InputSanitizer, PenaltyPayload, ResultSubmission, WinnerPayload

__all__ = [
    "CoreSettings",
    "FestCore",
    "OperationError",
    "Outcome",
    "CHANNEL_EVENTS",
    "ClientRefreshCoordinator",
    "RealtimeNotifier",
    "Subscription",
    "RegistrationGuard",
    "RegistrationService",
    "ReplacementRequestLifecycle",
    "ResultLifecycle",
    "calculate_score",
    "compute_live_scores",
    "compute_student_scores",
    "rank_scoreboard",
    "DocumentStore",
    "InMemoryStore",
    "WriteConflict",
    "ChangeEvent",
    "Jury",
    "Penalty",
    "Program",
    "ProgramRegistration",
    "ReplacementRequest",
    "ResultEntry",
    "ResultRecord",
    "Role",
    "ScoreboardRow",
    "Student",
    "Team",
    "InputSanitizer",
    "PenaltyPayload",
    "ResultSubmission",
    "WinnerPayload",
]
