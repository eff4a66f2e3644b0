"""
Segmentation of the foreground-window signal into sessions.

``SessionTracker`` is a small state machine. Each ``tick`` probes the window;
a change of (process, title, url) closes the open session with
``duration = now - last_boundary`` and opens a new one. Suspend and lock close
the open session at the event time, so no session ever spans a sleep.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from FocusLog.categorization.engine import CategorizationEngine
from FocusLog.collectors.window_probe import WindowProbe
from FocusLog.database.sessions import SessionStore
from FocusLog.errors import PersistenceError
from FocusLog.models import Session, TrackingStatus, UNKNOWN_CATEGORY

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionTracker:
    def __init__(
        self,
        probe: WindowProbe,
        engine: CategorizationEngine,
        session_store: SessionStore,
        ignored_processes: Iterable[str] = (),
        clock: Clock = utc_now,
    ):
        self.probe = probe
        self.engine = engine
        self.session_store = session_store
        self.ignored_processes = set(ignored_processes)
        self.clock = clock

        self._lock = threading.RLock()
        self.is_tracking = False
        self.current_session: Optional[Session] = None
        self.last_boundary_time: Optional[datetime] = None
        self.is_system_sleeping = False
        self.sleep_start_time: Optional[datetime] = None

    # ------------------------------------------------------------------ lifecycle
    def start_tracking(self) -> None:
        with self._lock:
            if self.is_tracking:
                log.info("Tracker already running.")
                return
            self.is_tracking = True
            self.is_system_sleeping = False
            self.sleep_start_time = None
            log.info("Session tracking started.")

    def stop_tracking(self, at: Optional[datetime] = None) -> None:
        with self._lock:
            if not self.is_tracking:
                return
            if not self.is_system_sleeping:
                self._close_current(at or self.clock())
            self.current_session = None
            self.last_boundary_time = None
            self.is_tracking = False
            log.info("Session tracking stopped.")

    def status(self) -> TrackingStatus:
        with self._lock:
            return TrackingStatus(
                is_tracking=self.is_tracking,
                current_session=self.current_session.model_copy() if self.current_session else None,
                is_system_sleeping=self.is_system_sleeping,
                last_boundary_time=self.last_boundary_time,
            )

    # ------------------------------------------------------------------ polling
    def tick(self, at: Optional[datetime] = None) -> None:
        """One poll of the window probe. Never raises."""
        with self._lock:
            if not self.is_tracking or self.is_system_sleeping:
                return
            try:
                snapshot = self.probe.current_window()
            except Exception as e:
                log.warning(f"Window probe failed: {e}")
                return
            if snapshot is None or not snapshot.process_name:
                return
            if snapshot.process_name in self.ignored_processes:
                log.debug(f"Ignoring foreground process {snapshot.process_name}")
                return

            now = at or self.clock()
            previous_category = self.current_session.category if self.current_session else UNKNOWN_CATEGORY
            candidate = Session.from_snapshot(snapshot, now, category=previous_category)

            if self.current_session is not None and candidate.identity == self.current_session.identity:
                return

            # Only a new identity is worth a categorization round trip.
            candidate.category = self.engine.categorize(candidate)
            self._close_current(now)
            self.current_session = candidate
            self.last_boundary_time = now
            log.info(f"New session: {candidate.process_name} - {candidate.window_title!r} ({candidate.category})")

    # ------------------------------------------------------------------ power state
    def handle_suspend(self, at: Optional[datetime] = None) -> None:
        with self._lock:
            if self.is_system_sleeping:
                return
            at = at or self.clock()
            log.info("System suspending; closing the open session.")
            self._close_current(at)
            self.current_session = None
            self.last_boundary_time = None
            self.is_system_sleeping = True
            self.sleep_start_time = at

    def handle_resume(self, at: Optional[datetime] = None) -> None:
        with self._lock:
            if not self.is_system_sleeping:
                return
            at = at or self.clock()
            if self.sleep_start_time is not None:
                log.info(f"System resumed after {(at - self.sleep_start_time).total_seconds():.0f}s.")
            self.is_system_sleeping = False
            self.sleep_start_time = None
            self.current_session = None
            self.last_boundary_time = None
        self.tick(at)

    # ------------------------------------------------------------------ internals
    def _close_current(self, at: datetime) -> None:
        session = self.current_session
        if session is None or self.last_boundary_time is None:
            return
        duration = int((at - self.last_boundary_time).total_seconds())
        if duration <= 0:
            log.debug(f"Dropping zero-length session for {session.process_name}")
            return
        closed = session.model_copy(update={"duration_seconds": duration})
        try:
            closed.id = self.session_store.save_session(closed)
            log.debug(f"Closed session {closed.id}: {closed.process_name} ({duration}s)")
        except PersistenceError as e:
            log.error(f"Could not persist session for {closed.process_name}: {e}", exc_info=True)
        except Exception as e:
            log.error(f"Unexpected error persisting session for {closed.process_name}: {e}", exc_info=True)
