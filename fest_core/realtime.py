"""Change-event fan-out and coalesced client refreshes.

Events are "something changed" signals published on named channels after
the write they announce has returned. They carry no freshness contract:
delivery order across channels, and between concurrent callers on one
channel, is not guaranteed, so consumers always re-fetch current state.

``ClientRefreshCoordinator`` turns any burst of events into at most one
in-flight refresh plus one queued refresh. A client process holds one
coordinator for its lifetime and binds every channel it watches to it.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from .config import DEFAULT_SETTINGS, CoreSettings
from .types import ChangeEvent

logger = logging.getLogger(__name__)

RESULTS = "results"
ASSIGNMENTS = "assignments"
REGISTRATIONS = "registrations"
STUDENTS = "students"
SCOREBOARD = "scoreboard"

CHANNEL_EVENTS: Dict[str, tuple[str, ...]] = {
    RESULTS: ("submitted", "approved", "rejected", "updated"),
    ASSIGNMENTS: ("created", "deleted"),
    REGISTRATIONS: ("created", "deleted"),
    STUDENTS: ("created", "updated", "deleted"),
    SCOREBOARD: ("updated",),
}

EventCallback = Callable[[ChangeEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Subscription:
    id: int
    channel: str
    callback: EventCallback


class RealtimeNotifier:
    """In-process channel broker. One instance per server process."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Dict[int, Subscription]] = {c: {} for c in CHANNEL_EVENTS}
        self._ids = itertools.count(1)
        self._clock = clock

    def subscribe(self, channel: str, callback: EventCallback) -> Subscription:
        if channel not in CHANNEL_EVENTS:
            raise ValueError(f"unknown channel: {channel}")
        with self._lock:
            sub = Subscription(id=next(self._ids), channel=channel, callback=callback)
            self._subscribers[channel][sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            return self._subscribers.get(subscription.channel, {}).pop(subscription.id, None) is not None

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, {}))

    def publish(self, channel: str, kind: str, **ids: str) -> ChangeEvent:
        """Deliver one event to every subscriber of ``channel``.

        Raises:
            ValueError: channel/kind pair is not part of the channel table
        """
        kinds = CHANNEL_EVENTS.get(channel)
        if kinds is None or kind not in kinds:
            raise ValueError(f"unknown event {channel}/{kind}")
        event = ChangeEvent(channel=channel, kind=kind, timestamp=self._clock(), ids=dict(ids))
        with self._lock:
            targets = list(self._subscribers[channel].values())
        logger.debug(f"publish {channel}/{kind} to {len(targets)} subscriber(s) {ids}")
        for sub in targets:
            try:
                sub.callback(event)
            except Exception:
                # One broken viewer must not starve the others.
                logger.exception(f"subscriber {sub.id} failed on {channel}/{kind}")
        return event


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, fn: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


class ClientRefreshCoordinator:
    """Coalesces refresh triggers for every viewer bound to it.

    State is a single lock-guarded ``in_flight``/``pending`` pair:
    - trigger while idle: refresh now, then wait the quiescence window
    - trigger while in flight: set pending and return
    - window elapsed with pending set: refresh once more, then wait the
      settle window before releasing
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        *,
        settings: CoreSettings = DEFAULT_SETTINGS,
        timer_factory: TimerFactory = thread_timer,
    ) -> None:
        self._refresh = refresh
        self._quiescence = settings.refresh_quiescence
        self._settle = settings.refresh_settle
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._in_flight = False
        self._pending = False
        self._closed = False
        self._timer: Optional[TimerHandle] = None
        self._subscriptions: List[tuple[RealtimeNotifier, Subscription]] = []
        self.refresh_count = 0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def owns(self, refresh: Callable[[], None]) -> bool:
        return self._refresh is refresh

    def trigger(self, event: ChangeEvent | None = None) -> bool:
        """Handle one event. Returns True if it started a refresh."""
        with self._lock:
            if self._closed:
                return False
            if self._in_flight:
                self._pending = True
                return False
            self._in_flight = True
            self._pending = False
        self._run_refresh()
        self._arm(self._quiescence)
        return True

    def bind(
        self,
        notifier: RealtimeNotifier,
        channel: str,
        kinds: Iterable[str] | None = None,
    ) -> Subscription:
        wanted = set(kinds) if kinds is not None else None

        def on_event(event: ChangeEvent) -> None:
            if wanted is None or event.kind in wanted:
                self.trigger(event)

        sub = notifier.subscribe(channel, on_event)
        self._subscriptions.append((notifier, sub))
        return sub

    def close(self) -> None:
        """Viewer disconnected: drop subscriptions and any queued refresh."""
        with self._lock:
            self._closed = True
            self._pending = False
            self._in_flight = False
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for notifier, sub in self._subscriptions:
            notifier.unsubscribe(sub)
        self._subscriptions.clear()

    def _run_refresh(self) -> None:
        with self._lock:
            self.refresh_count += 1
        try:
            self._refresh()
        except Exception:
            logger.exception("refresh callback failed")

    def _arm(self, delay: float) -> None:
        handle = self._timer_factory(delay, self._window_elapsed)
        with self._lock:
            if self._closed:
                handle.cancel()
                return
            self._timer = handle

    def _window_elapsed(self) -> None:
        with self._lock:
            self._timer = None
            if self._closed:
                return
            if not self._pending:
                self._in_flight = False
                return
            self._pending = False
        self._run_refresh()
        self._arm(self._settle)
