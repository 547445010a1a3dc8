"""Role-gated operation surface over one store and one notifier.

``FestCore`` owns the process-wide pieces (store, notifier, settings) and
wires the lifecycles to them. The HTTP/websocket layer derives a ``Role``
once per request and calls these methods; it is responsible for presenting
returned ``OperationError`` values to the operator.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from .assignments import AssignmentBoard
from .config import DEFAULT_SETTINGS, CoreSettings
from .errors import OperationError, Outcome
from .notifications import NotificationCenter
from .realtime import (
    ClientRefreshCoordinator,
    EventCallback,
    RealtimeNotifier,
    Subscription,
    TimerFactory,
    thread_timer,
)
from .registration import RegistrationGuard, RegistrationService
from .replacements import Decision, ReplacementRequestLifecycle
from .results import ResultLifecycle
from .scoring import compute_live_scores, compute_student_scores, rank_scoreboard
from .store import DocumentStore, InMemoryStore
from .types import ReplacementRequest, ResultRecord, Role, ScoreboardRow


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FestCore:
    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        notifier: RealtimeNotifier | None = None,
        settings: CoreSettings = DEFAULT_SETTINGS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store: DocumentStore = store if store is not None else InMemoryStore()
        self.settings = settings
        self.clock = clock
        self.notifier = notifier or RealtimeNotifier(clock=clock)
        self.guard = RegistrationGuard(self.store)
        self.assignments = AssignmentBoard(self.store, self.notifier)
        self.notifications = NotificationCenter(self.store)
        self.registrations = RegistrationService(
            self.store, self.notifier, settings=settings, clock=clock
        )
        self.results = ResultLifecycle(
            self.store,
            self.notifier,
            guard=self.guard,
            assignments=self.assignments,
            notifications=self.notifications,
            settings=settings,
            clock=clock,
        )
        self.replacements = ReplacementRequestLifecycle(
            self.store, self.notifier, self.registrations, clock=clock
        )
        self._coordinator: ClientRefreshCoordinator | None = None

    # ------------------------------------------------------------ results
    def submit_result(
        self,
        program_id: str,
        jury_id: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None = None,
        *,
        role: Role,
    ) -> Outcome[ResultRecord] | OperationError:
        return self.results.submit(program_id, jury_id, winners, penalties, role=role)

    def approve_result(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        return self.results.approve(result_id, role=role)

    def reject_result(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        return self.results.reject(result_id, role=role)

    def update_approved_result(
        self,
        result_id: str,
        winners: Sequence[Any],
        penalties: Sequence[Any] | None = None,
        *,
        role: Role,
    ) -> Outcome[ResultRecord] | OperationError:
        return self.results.update(result_id, winners, penalties, role=role)

    def delete_approved_result(self, result_id: str, *, role: Role) -> Outcome[ResultRecord] | OperationError:
        return self.results.delete(result_id, role=role)

    # ------------------------------------------------------- replacements
    def create_replacement_request(
        self,
        program_id: str,
        old_student_id: str,
        new_student_id: str,
        team_id: str,
        reason: str,
        *,
        role: Role,
    ) -> Outcome[ReplacementRequest] | OperationError:
        return self.replacements.create(
            program_id, old_student_id, new_student_id, team_id, reason, role=role
        )

    def decide_replacement_request(
        self, request_id: str, outcome: Decision, *, role: Role, reviewed_by: str = "admin"
    ) -> Outcome[ReplacementRequest] | OperationError:
        return self.replacements.decide(request_id, outcome, role=role, reviewed_by=reviewed_by)

    # -------------------------------------------------------------- reads
    def get_live_scores(self) -> dict[str, int]:
        """Public read. Recomputed from approved records on every call."""
        students = self.store.list_students()
        return compute_live_scores(
            self.store.list_results(status="approved"),
            team_ids=[team.id for team in self.store.list_teams()],
            student_teams={s.id: s.team_id for s in students},
        )

    def get_student_scores(self) -> dict[str, int]:
        return compute_student_scores(
            self.store.list_results(status="approved"),
            student_ids=[s.id for s in self.store.list_students()],
        )

    def get_scoreboard(self) -> list[ScoreboardRow]:
        return rank_scoreboard(self.get_live_scores(), self.store.list_teams())

    # ----------------------------------------------------------- realtime
    def subscribe(self, channel: str, callback: EventCallback) -> Subscription:
        return self.notifier.subscribe(channel, callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.notifier.unsubscribe(subscription)

    def refresh_coordinator(
        self,
        refresh: Callable[[], None],
        channels: Sequence[str],
        *,
        timer_factory: TimerFactory = thread_timer,
    ) -> ClientRefreshCoordinator:
        """The core's single coordinator, bound to ``channels`` on first use.

        Later calls with the same ``refresh`` return the same instance. Once it
        is closed (client disconnected) the next call builds a fresh one.

        Raises:
            ValueError: a different refresh callback is already running
        """
        current = self._coordinator
        if current is not None and not current.closed:
            if not current.owns(refresh):
                raise ValueError("a refresh coordinator is already running for this core")
            return current
        coordinator = ClientRefreshCoordinator(
            refresh, settings=self.settings, timer_factory=timer_factory
        )
        for channel in channels:
            coordinator.bind(self.notifier, channel)
        self._coordinator = coordinator
        return coordinator

