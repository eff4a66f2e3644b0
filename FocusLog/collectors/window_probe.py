"""
Foreground-window probes.

A probe answers "what is focused right now?" with a ``WindowSnapshot`` or
``None``. Probes never raise from ``current_window``; failures are logged.
"""
import logging
import subprocess
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from aw_client import ActivityWatchClient

from FocusLog.config import Settings
from FocusLog.errors import ProbeUnavailable
from FocusLog.models import WindowSnapshot

log = logging.getLogger(__name__)

APPLESCRIPT_SEPARATOR = "|||"

FRONT_WINDOW_SCRIPT = "\n".join([
    'set frontApp to ""',
    'set frontWindow to ""',
    'set currentUrl to ""',
    'set currentTitle to ""',
    'tell application "System Events"',
    'set frontApp to name of first application process whose frontmost is true',
    'set frontWindow to name of first window of process frontApp',
    'end tell',
    'try',
    'if frontApp is "Arc" then',
    'tell application "Arc"',
    'set currentUrl to URL of active tab of window 1',
    'set currentTitle to title of active tab of window 1',
    'end tell',
    'end if',
    'end try',
    'return frontApp & "|||" & frontWindow & "|||" & currentUrl & "|||" & currentTitle',
])


class WindowProbe:
    def current_window(self) -> Optional[WindowSnapshot]:
        raise NotImplementedError


class ActivityWatchProbe(WindowProbe):
    """Reads the newest event of the local aw-watcher-window bucket."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.window_bucket_id = settings.aw_window_bucket_pattern.format(hostname=settings.aw_hostname)
        self.web_bucket_ids = {
            app: pattern.format(hostname=settings.aw_hostname)
            for app, pattern in settings.aw_web_bucket_map.items()
        }
        self.stale_after = timedelta(seconds=settings.aw_stale_after_s)
        try:
            self.aw_client = ActivityWatchClient(client_name=settings.aw_client_name, testing=False)
            log.info(f"ActivityWatch client '{settings.aw_client_name}' initialized.")
        except Exception as e:
            log.error(f"Failed to initialize ActivityWatch client: {e}", exc_info=True)
            self.aw_client = None

    def _latest_event(self, bucket_id: str):
        events = self.aw_client.get_events(bucket_id=bucket_id, limit=1)
        if not events:
            return None
        event = events[0]
        timestamp = event.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - (timestamp + event.duration) > self.stale_after:
            log.debug(f"Latest event in '{bucket_id}' is stale; treating as no window.")
            return None
        return event

    def current_window(self) -> Optional[WindowSnapshot]:
        if not self.aw_client:
            log.warning("ActivityWatch client not available. Skipping probe.")
            return None
        try:
            event = self._latest_event(self.window_bucket_id)
            if event is None:
                return None
            app = event.data.get("app")
            if not app:
                return None
            title = event.data.get("title") or ""
            url = None
            web_bucket = self.web_bucket_ids.get(app)
            if web_bucket:
                web_event = self._latest_event(web_bucket)
                if web_event is not None:
                    url = web_event.data.get("url") or None
                    title = web_event.data.get("title") or title
            return WindowSnapshot(process_name=app, window_title=title, url=url)
        except Exception as e:
            log.warning(f"Error reading ActivityWatch bucket '{self.window_bucket_id}': {e}")
            return None


class AppleScriptProbe(WindowProbe):
    """macOS front window via osascript; Arc's active tab supplies URL and title."""

    def __init__(self, settings: Settings):
        if sys.platform != "darwin":
            raise ProbeUnavailable("The AppleScript probe only works on macOS.")
        self.timeout_s = settings.probe_timeout_s

    def current_window(self) -> Optional[WindowSnapshot]:
        try:
            result = subprocess.run(
                ["osascript", "-e", FRONT_WINDOW_SCRIPT],
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log.warning(f"Error getting active window via osascript: {e}")
            return None
        if result.returncode != 0:
            log.warning(f"osascript exited with {result.returncode}: {result.stderr.strip()}")
            return None
        return parse_applescript_output(result.stdout)


def parse_applescript_output(stdout: str) -> Optional[WindowSnapshot]:
    parts = stdout.strip().split(APPLESCRIPT_SEPARATOR)
    if len(parts) >= 4:
        process_name, window_title, url, tab_title = parts[:4]
        return WindowSnapshot(
            process_name=process_name,
            window_title=tab_title or window_title,
            url=url or None,
        )
    if len(parts) >= 2:
        process_name, window_title = parts[:2]
        return WindowSnapshot(process_name=process_name, window_title=window_title)
    return None


def make_probe(settings: Settings) -> WindowProbe:
    if settings.window_probe == "applescript":
        return AppleScriptProbe(settings)
    return ActivityWatchProbe(settings)
