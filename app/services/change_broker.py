"""In-memory appointment change feed with cursor replay and long-polling."""

import asyncio
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from app.schemas.realtime import EventKind, RealtimeEvent, UpdateBatch

logger = structlog.get_logger(__name__)

UpdateCallback = Callable[[UpdateBatch], None]


@dataclass(eq=False)
class _PendingWaiter:
    since_cursor: int
    callback: UpdateCallback
    timer: asyncio.TimerHandle | None = field(default=None)
    settled: bool = False


def _noop() -> None:
    return None


class ChangeBroker:
    """
    Append-only change log with a monotonic cursor.

    One instance is shared by the whole application and owned by its event
    loop. Cursor, log and waiter set are guarded by a mutex; waiter callbacks
    run outside it. A waiter is settled exactly once, by whichever of emit,
    timeout or cancellation reaches it first.
    """

    def __init__(self, history_limit: int = 50, default_timeout: float = 25.0):
        """
        Initialize the broker.

        Args:
            history_limit: Number of events retained for replay
            default_timeout: Seconds a waiter is held before an empty answer
        """
        if history_limit < 1:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit
        self.default_timeout = default_timeout
        self._cursor = 0
        self._history: deque[RealtimeEvent] = deque(maxlen=history_limit)
        self._waiters: set[_PendingWaiter] = set()
        self._lock = threading.Lock()

    @property
    def cursor(self) -> int:
        """Cursor of the latest emitted event (0 before the first emit)."""
        with self._lock:
            return self._cursor

    @property
    def pending_waiters(self) -> int:
        """Number of registered, unsettled waiters."""
        with self._lock:
            return len(self._waiters)

    def emit(self, kind: EventKind, snapshot: dict[str, Any]) -> RealtimeEvent:
        """
        Append an event and wake every waiter it concerns.

        All eligible waiters have been called back when this returns.

        Args:
            kind: Change kind
            snapshot: JSON-serializable appointment detail

        Returns:
            The stored event
        """
        ready: list[tuple[_PendingWaiter, UpdateBatch]] = []
        with self._lock:
            self._cursor += 1
            event = RealtimeEvent(kind=kind, appointment=snapshot, cursor=self._cursor)
            self._history.append(event)

            for waiter in list(self._waiters):
                if waiter.since_cursor < self._cursor:
                    events = self._events_since_locked(waiter.since_cursor)
                    self._settle_locked(waiter)
                    ready.append((waiter, UpdateBatch(events=events, cursor=self._cursor)))

        logger.info(
            "realtime_event_emitted",
            kind=kind.value,
            cursor=event.cursor,
            woken_waiters=len(ready),
        )

        for waiter, batch in ready:
            self._deliver(waiter.callback, batch)

        return event

    def events_since(self, cursor: int) -> list[RealtimeEvent]:
        """
        Retained events after ``cursor``, oldest first.

        Cursor 0 returns the whole retained log. Events evicted by the
        history limit are gone; callers behind the log must re-list.
        """
        with self._lock:
            return self._events_since_locked(cursor)

    def wait(
        self,
        since_cursor: int,
        callback: UpdateCallback,
        timeout: float | None = None,
    ) -> Callable[[], None]:
        """
        Call ``callback`` once with the events after ``since_cursor``.

        Answers synchronously when events are already available. Otherwise
        the waiter is held until an emit concerns it, or until ``timeout``
        seconds pass, when it is answered with no events and the current
        cursor. Must be called from the owning event loop.

        Args:
            since_cursor: Last cursor the caller has seen
            callback: Receives exactly one ``UpdateBatch``
            timeout: Seconds to hold the waiter (broker default if None)

        Returns:
            Idempotent canceller removing a still-pending waiter
        """
        hold_for = self.default_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()

        with self._lock:
            events = self._events_since_locked(since_cursor)
            cursor = self._cursor
            waiter: _PendingWaiter | None = None
            if not events and since_cursor <= cursor:
                waiter = _PendingWaiter(since_cursor=since_cursor, callback=callback)
                self._waiters.add(waiter)
                waiter.timer = loop.call_later(hold_for, self._expire, waiter)

        if waiter is None:
            if since_cursor > cursor:
                # Cursor from a previous broker lifetime; hand back ours
                logger.info("realtime_cursor_ahead", requested=since_cursor, cursor=cursor)
            self._deliver(callback, UpdateBatch(events=events, cursor=cursor))
            return _noop

        return lambda: self._cancel(waiter)

    async def poll(self, since_cursor: int, timeout: float | None = None) -> UpdateBatch:
        """
        Wait for events after ``since_cursor``; never hangs past the timeout.

        Cancelling the awaiting task cancels the underlying waiter.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[UpdateBatch] = loop.create_future()

        def resolve(batch: UpdateBatch) -> None:
            if not future.done():
                future.set_result(batch)

        cancel = self.wait(since_cursor, resolve, timeout)
        try:
            return await future
        finally:
            cancel()

    def _events_since_locked(self, cursor: int) -> list[RealtimeEvent]:
        if not cursor:
            return list(self._history)
        return [event for event in self._history if event.cursor > cursor]

    def _settle_locked(self, waiter: _PendingWaiter) -> None:
        waiter.settled = True
        self._waiters.discard(waiter)
        if waiter.timer is not None:
            waiter.timer.cancel()
            waiter.timer = None

    def _expire(self, waiter: _PendingWaiter) -> None:
        with self._lock:
            if waiter.settled:
                return
            self._settle_locked(waiter)
            cursor = self._cursor
        self._deliver(waiter.callback, UpdateBatch(events=[], cursor=cursor))

    def _cancel(self, waiter: _PendingWaiter) -> None:
        with self._lock:
            if not waiter.settled:
                self._settle_locked(waiter)

    @staticmethod
    def _deliver(callback: UpdateCallback, batch: UpdateBatch) -> None:
        try:
            callback(batch)
        except Exception:
            # One broken listener must not starve the others
            logger.exception("realtime_waiter_callback_failed", cursor=batch.cursor)
