"""
Background tracking daemon.

Drives ``SessionTracker.tick`` from an APScheduler interval job and routes
power-state notifications through the same single-thread executor, so the
tracker state only ever has one writer at a time.
"""
import itertools
import logging
import sys
import threading
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from FocusLog.config import Settings
from FocusLog.database.settings_store import SettingsStore
from FocusLog.models import TrackingStatus
from FocusLog.tracker.session_tracker import SessionTracker

log = logging.getLogger(__name__)

TICK_JOB_ID = "session_tick_job"
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s:%(name)s] - %(message)s"
_HANDLER_TAG = "_focuslog_handler"


def setup_logging(settings: Optional[Settings] = None, level: Optional[str] = None) -> logging.Logger:
    """Configures root logging for the tracker process."""
    settings = settings or Settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Handlers from an earlier call are tagged, so repeated calls only adjust the level.
    if any(getattr(h, _HANDLER_TAG, False) for h in root_logger.handlers):
        return logging.getLogger(__name__)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(console_handler, _HANDLER_TAG, True)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        try:
            file_handler = logging.FileHandler(settings.log_file, mode="a")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            setattr(file_handler, _HANDLER_TAG, True)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Error setting up file logger at {settings.log_file}: {e}", file=sys.stderr)

    logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aw_client.client").setLevel(logging.INFO)
    return logging.getLogger(__name__)


def build_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(
        executors={"default": ThreadPoolExecutor(max_workers=1)},
        job_defaults={"max_instances": 1, "coalesce": True},
        timezone="UTC",
    )


PowerEvent = Tuple[Callable[[Optional[datetime]], None], Optional[datetime], str]


class TrackerDaemon:
    def __init__(
        self,
        tracker: SessionTracker,
        settings_store: SettingsStore,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.tracker = tracker
        self.settings_store = settings_store
        self.scheduler = scheduler or build_scheduler()
        # A scheduler that has been shut down cannot accept work again.
        self._scheduler_used = False
        # Events queued on the worker that have not started yet, in submission order.
        self._pending: Dict[int, PowerEvent] = {}
        self._pending_lock = threading.Lock()
        self._event_ids = itertools.count()

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self, interval_seconds: Optional[int] = None) -> bool:
        if self.running:
            log.info("Tracker daemon already running.")
            return True
        if self._scheduler_used:
            self.scheduler = build_scheduler()
        self._scheduler_used = True

        interval = interval_seconds or self.settings_store.tracking_interval()
        log.info("--- Starting FocusLog tracker ---")
        self.tracker.start_tracking()

        self.scheduler.add_job(
            self._tick_job,
            trigger=IntervalTrigger(seconds=interval),
            id=TICK_JOB_ID,
            name="Session Tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=interval,
            replace_existing=True,
        )
        try:
            self.scheduler.start()
        except Exception as e:
            log.error(f"Failed to start scheduler: {e}", exc_info=True)
            self.tracker.stop_tracking()
            return False
        log.info(f"Tracking every {interval} seconds.")
        # First tick right away instead of waiting a full interval.
        self._submit(self.tracker.tick, None, "Initial Tick")
        return True

    def stop(self) -> None:
        log.info("--- Stopping FocusLog tracker ---")
        if self.running:
            try:
                self.scheduler.shutdown(wait=True)
            except Exception as e:
                log.error(f"Error shutting down scheduler: {e}", exc_info=True)
        self._drain_pending()
        self.tracker.stop_tracking()

    def status(self) -> TrackingStatus:
        return self.tracker.status()

    # --------------- power-state notifications ---------------------------------
    def on_suspend(self) -> None:
        self._submit(self.tracker.handle_suspend, self.tracker.clock(), "Suspend")

    def on_lock_screen(self) -> None:
        self._submit(self.tracker.handle_suspend, self.tracker.clock(), "Lock Screen")

    def on_resume(self) -> None:
        self._submit(self.tracker.handle_resume, self.tracker.clock(), "Resume")

    def on_unlock_screen(self) -> None:
        self._submit(self.tracker.handle_resume, self.tracker.clock(), "Unlock Screen")

    # --------------- internals --------------------------------------------------
    def _tick_job(self) -> None:
        try:
            self.tracker.tick()
        except Exception as e:
            log.error(f"Error during scheduled tick: {e}", exc_info=True)

    def _submit(self, func, at: Optional[datetime], name: str) -> None:
        """Queue ``func(at)`` on the scheduler's single worker, or run it inline when stopped."""
        if not self.running:
            func(at)
            return
        event_id = next(self._event_ids)
        with self._pending_lock:
            self._pending[event_id] = (func, at, name)
        # No grace limit: the event must still run if a slow tick holds the worker.
        self.scheduler.add_job(self._run_event, args=[event_id], name=name, misfire_grace_time=None)

    def _run_event(self, event_id: int) -> None:
        with self._pending_lock:
            event = self._pending.pop(event_id, None)
        if event is None:
            return
        func, at, name = event
        try:
            func(at)
        except Exception as e:
            log.error(f"Error handling '{name}': {e}", exc_info=True)

    def _drain_pending(self) -> None:
        """Runs queued events the scheduler dropped on shutdown, oldest first."""
        with self._pending_lock:
            event_ids = list(self._pending)
        if event_ids:
            log.info(f"Applying {len(event_ids)} queued event(s) before stopping.")
        for event_id in event_ids:
            self._run_event(event_id)
