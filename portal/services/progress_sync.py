"""Debounced lecture progress synchronization.

A lecture view produces a stream of high-frequency observations (video
time updates, scroll positions, page turns).  Sending one request per
observation would flood the LMS API, so each view gets a synchronizer:

  observe()  merge into in-memory state, (re)start the debounce timer
  timer      after ``debounce_seconds`` of quiet, push state upstream
  close()    view torn down: push once more if anything is unsynced

Sync is best-effort background replication.  Failures are logged and
counted, never raised to the viewer and never retried on their own: the
next debounce cycle re-sends the full current state, so nothing is lost
while the view stays open.

Rescheduling cancels only the *timer*, never an in-flight request, so
two syncs may overlap.  The LMS API treats progress updates as
idempotent last-write-wins, and the completion flag below keeps
overlapping syncs from reporting one completion twice.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from portal.core.metrics import (
    LECTURE_COMPLETIONS,
    OPEN_LECTURE_SESSIONS,
    PROGRESS_SYNCS,
)
from portal.models.progress import (
    DEFAULT_COMPLETION_THRESHOLD,
    ProgressState,
    ProgressUpdate,
    merge_progress,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0
DEFAULT_IDLE_TIMEOUT_SECONDS = 30 * 60.0


class ProgressSink(Protocol):
    """Where synchronized progress goes (the LMS lecture endpoints)."""

    async def update_progress(self, lecture_id: str, payload: dict) -> Any: ...
    async def mark_complete(self, lecture_id: str) -> Any: ...


class SynchronizerClosedError(RuntimeError):
    """observe() was called after the view was torn down."""


class LectureProgressSynchronizer:
    def __init__(
        self,
        lecture_id: str,
        sink: ProgressSink,
        *,
        initial_progress: float = 0.0,
        completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lecture_id = lecture_id
        self._sink = sink
        self._threshold = completion_threshold
        self._debounce = debounce_seconds
        self._clock = clock
        self.last_activity = clock()

        self._state = ProgressState.initial(initial_progress, completion_threshold)
        # The server already holds the seed, so opening a view sends nothing.
        self._last_synced = self._state
        self._completion_reported = self._state.is_completed

        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # -- read side ---------------------------------------------------------

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def last_synced(self) -> ProgressState:
        return self._last_synced

    @property
    def has_unsynced_changes(self) -> bool:
        return self._state != self._last_synced

    @property
    def sync_pending(self) -> bool:
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    # -- write side --------------------------------------------------------

    def observe(self, update: ProgressUpdate) -> ProgressState:
        """Merge one observation and restart the debounce window."""
        if self._closed:
            raise SynchronizerClosedError(f"lecture {self.lecture_id} view is closed")
        self.last_activity = self._clock()
        self._state = merge_progress(self._state, update, self._threshold)
        self._schedule()
        return self._state

    async def sync(self) -> bool:
        """Push the current state if it differs from the last synced one.

        Returns True when a request was sent.  Raises whatever the sink
        raises; callers on the background path use ``_sync_logged``.
        """
        sent = self._state
        if sent == self._last_synced:
            PROGRESS_SYNCS.labels(result="skipped").inc()
            return False

        await self._sink.update_progress(self.lecture_id, sent.to_payload())

        if sent.is_completed and not self._completion_reported:
            self._completion_reported = True
            try:
                await self._sink.mark_complete(self.lecture_id)
            except BaseException:
                self._completion_reported = False
                raise
            LECTURE_COMPLETIONS.inc()
            logger.info(
                "Lecture completed  lecture=%s progress=%.1f",
                self.lecture_id,
                sent.progress,
                extra={"lecture_id": self.lecture_id},
            )

        self._last_synced = sent
        PROGRESS_SYNCS.labels(result="sent").inc()
        return True

    async def flush(self) -> None:
        """Cancel the pending timer and sync right now."""
        self._cancel_timer()
        await self._sync_logged()

    def close(self) -> asyncio.Task[None] | None:
        """Tear down the view.

        Fires one final fire-and-forget sync when unsynced changes remain
        and returns its task (None when there was nothing to send).
        """
        if self._closed:
            return None
        self._closed = True
        self._cancel_timer()
        if not self.has_unsynced_changes:
            return None
        return self._spawn()

    async def aclose(self) -> None:
        """close() and wait for every in-flight sync to settle."""
        self.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- internals ---------------------------------------------------------

    def _schedule(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn()

    def _spawn(self) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._sync_logged())
        # Hold a reference until done so the task is not collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _sync_logged(self) -> None:
        try:
            await self.sync()
        except Exception:
            PROGRESS_SYNCS.labels(result="failed").inc()
            logger.warning(
                "Progress sync failed  lecture=%s progress=%.1f",
                self.lecture_id,
                self._state.progress,
                exc_info=True,
                extra={"lecture_id": self.lecture_id},
            )


class ProgressSyncRegistry:
    """Live synchronizers, one per (session, lecture) view.

    Views end on close, on logout, when their session stops resolving,
    or after ``idle_timeout_seconds`` without an observation (a tab that
    went away without saying so).  Idle views are swept whenever a new
    view opens.
    """

    def __init__(
        self,
        *,
        completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._threshold = completion_threshold
        self._debounce = debounce_seconds
        self._idle_timeout = idle_timeout_seconds
        self._clock = clock
        self._open: dict[tuple[str, str], LectureProgressSynchronizer] = {}

    def __len__(self) -> int:
        return len(self._open)

    def get(self, session_id: str, lecture_id: str) -> LectureProgressSynchronizer | None:
        return self._open.get((session_id, lecture_id))

    def open(
        self,
        session_id: str,
        lecture_id: str,
        sink: ProgressSink,
        *,
        initial_progress: float = 0.0,
    ) -> LectureProgressSynchronizer:
        """Return the live synchronizer for this view, creating it if needed."""
        self.reap_idle()
        key = (session_id, lecture_id)
        existing = self._open.get(key)
        if existing is not None:
            existing.last_activity = self._clock()
            return existing

        synchronizer = LectureProgressSynchronizer(
            lecture_id,
            sink,
            initial_progress=initial_progress,
            completion_threshold=self._threshold,
            debounce_seconds=self._debounce,
            clock=self._clock,
        )
        self._open[key] = synchronizer
        OPEN_LECTURE_SESSIONS.set(len(self._open))
        logger.debug(
            "Lecture view opened  lecture=%s initial_progress=%.1f",
            lecture_id,
            initial_progress,
            extra={"lecture_id": lecture_id},
        )
        return synchronizer

    def close(self, session_id: str, lecture_id: str) -> asyncio.Task[None] | None:
        synchronizer = self._open.pop((session_id, lecture_id), None)
        OPEN_LECTURE_SESSIONS.set(len(self._open))
        if synchronizer is None:
            return None
        return synchronizer.close()

    def close_session(self, session_id: str) -> list[asyncio.Task[None]]:
        """Tear down every lecture view that belongs to a session (logout)."""
        tasks = []
        for sid, lecture_id in [k for k in self._open if k[0] == session_id]:
            task = self.close(sid, lecture_id)
            if task is not None:
                tasks.append(task)
        return tasks

    def reap_idle(self) -> list[asyncio.Task[None]]:
        """Close views with no observation for ``idle_timeout_seconds``."""
        cutoff = self._clock() - self._idle_timeout
        idle = [key for key, s in self._open.items() if s.last_activity <= cutoff]
        if idle:
            logger.info("Closing %d idle lecture view(s)", len(idle))
        tasks = []
        for session_id, lecture_id in idle:
            task = self.close(session_id, lecture_id)
            if task is not None:
                tasks.append(task)
        return tasks

    async def aclose(self) -> None:
        """Flush and close everything (process shutdown)."""
        synchronizers = list(self._open.values())
        self._open.clear()
        OPEN_LECTURE_SESSIONS.set(0)
        if synchronizers:
            logger.info("Flushing %d open lecture view(s)", len(synchronizers))
            await asyncio.gather(*(s.aclose() for s in synchronizers))
