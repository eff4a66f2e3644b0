# FocusLog/cli.py

import argparse
import json
import logging
import sys
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from FocusLog.ai.completion import CompletionProvider
from FocusLog.categorization.engine import CategorizationEngine
from FocusLog.categorization.scoring import ProductivityScorer
from FocusLog.collectors.window_probe import make_probe
from FocusLog.config import Settings
from FocusLog.database import init_database
from FocusLog.database.sessions import SessionStore
from FocusLog.database.settings_store import SettingsStore
from FocusLog.errors import FocusLogError
from FocusLog.insights import InsightGenerator
from FocusLog.models import RANGE_NAMES, DateRange, Session, WindowSnapshot
from FocusLog.recategorize.batch import BatchRecategorizer
from FocusLog.tracker.daemon import TrackerDaemon, setup_logging
from FocusLog.tracker.session_tracker import SessionTracker

log = logging.getLogger("FocusLog.cli")


def _parse_value(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _date_range(name: str, settings: Settings):
    return DateRange.named(name, tz=ZoneInfo(settings.local_tz))


def _stores(settings: Settings):
    session_store = SessionStore(settings.db_path)
    settings_store = SettingsStore(settings.db_path)
    provider = CompletionProvider(settings_store, settings)
    return session_store, settings_store, provider


def handle_init_db(args_ns, settings: Settings):
    init_database(settings.db_path)
    print(f"Database ready at {settings.db_path}")


def handle_track(args_ns, settings: Settings):
    session_store, settings_store, provider = _stores(settings)
    tracker = SessionTracker(
        probe=make_probe(settings),
        engine=CategorizationEngine(settings_store, provider, settings),
        session_store=session_store,
        ignored_processes=settings.ignored_processes,
    )
    daemon = TrackerDaemon(tracker, settings_store)
    if not daemon.start(args_ns.interval):
        return 1
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        log.info("Shutdown signal received.")
    finally:
        daemon.stop()
    return 0


def handle_categorize(args_ns, settings: Settings):
    _, settings_store, provider = _stores(settings)
    engine = CategorizationEngine(settings_store, provider, settings)
    if args_ns.template:
        with open(args_ns.template, encoding="utf-8") as f:
            template = f.read()
        label = engine.test_prompt(template, args_ns.app, args_ns.title)
        print(label if label else "(response was not a configured category)")
        return 0
    snapshot = WindowSnapshot(process_name=args_ns.app, window_title=args_ns.title, url=args_ns.url)
    session = Session.from_snapshot(snapshot, datetime.now(timezone.utc))
    print(engine.categorize(session))
    return 0


def handle_recategorize(args_ns, settings: Settings):
    session_store, settings_store, provider = _stores(settings)
    job = BatchRecategorizer(session_store, provider, settings)
    result = job.run_from_store(settings_store, _date_range(args_ns.range, settings))
    print(f"Updated {result.updated_count} of {result.total_count} sessions.")
    if result.failed_groups:
        print(f"Skipped applications: {', '.join(result.failed_groups)}")
    return 0


def handle_score(args_ns, settings: Settings):
    session_store, settings_store, provider = _stores(settings)
    sessions = session_store.fetch_sessions(_date_range(args_ns.range, settings))
    result = ProductivityScorer(settings_store, provider).score(sessions, use_ai=not args_ns.no_ai)
    print(f"{result.score}/10 - {result.explanation}")
    return 0


def handle_stats(args_ns, settings: Settings):
    session_store, _, _ = _stores(settings)
    stats = session_store.get_statistics(_date_range(args_ns.range, settings))
    print(stats.model_dump_json(indent=2))
    return 0


def handle_insights(args_ns, settings: Settings):
    session_store, _, provider = _stores(settings)
    generator = InsightGenerator(session_store, provider)
    result = generator.get_insights(args_ns.range, _date_range(args_ns.range, settings))
    print(result["insights"])
    return 0


def handle_settings(args_ns, settings: Settings):
    _, settings_store, _ = _stores(settings)
    if args_ns.action == "set":
        if not args_ns.key or args_ns.value is None:
            print("settings set needs a key and a value", file=sys.stderr)
            return 2
        settings_store.set(args_ns.key, _parse_value(args_ns.value))
        return 0
    if args_ns.key:
        print(json.dumps(settings_store.get(args_ns.key), indent=2))
    else:
        print(json.dumps(settings_store.all(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="focuslog",
        description="FocusLog: foreground activity tracking and categorization",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for all FocusLog modules.")
    subparsers = parser.add_subparsers(dest="command", title="Available Commands", required=True)

    p = subparsers.add_parser("init-db", help="Create the DuckDB schema.")
    p.set_defaults(func=handle_init_db)

    p = subparsers.add_parser("track", help="Track the focused window until interrupted.")
    p.add_argument("--interval", type=int, default=None, help="Seconds between polls (default: trackingInterval setting).")
    p.set_defaults(func=handle_track)

    p = subparsers.add_parser("categorize", help="Categorize one activity with the current settings.")
    p.add_argument("--app", required=True, help="Process name, e.g. 'Code'.")
    p.add_argument("--title", default="", help="Window title.")
    p.add_argument("--url", default=None, help="Page URL, if any.")
    p.add_argument("--template", default=None, help="Try this prompt template file instead of the configured one.")
    p.set_defaults(func=handle_categorize)

    p = subparsers.add_parser("recategorize", help="Re-categorize stored sessions in bulk with the AI.")
    p.add_argument("--range", choices=RANGE_NAMES, default="today")
    p.set_defaults(func=handle_recategorize)

    p = subparsers.add_parser("score", help="Productivity score for a date range.")
    p.add_argument("--range", choices=RANGE_NAMES, default="today")
    p.add_argument("--no-ai", action="store_true", help="Use the category-weight heuristic only.")
    p.set_defaults(func=handle_score)

    p = subparsers.add_parser("stats", help="Category, application and website totals.")
    p.add_argument("--range", choices=RANGE_NAMES, default="today")
    p.set_defaults(func=handle_stats)

    p = subparsers.add_parser("insights", help="AI productivity insights for a date range.")
    p.add_argument("--range", choices=RANGE_NAMES, default="today")
    p.set_defaults(func=handle_insights)

    p = subparsers.add_parser("settings", help="Read or change user settings.")
    p.add_argument("action", choices=["get", "set"])
    p.add_argument("key", nargs="?", default=None)
    p.add_argument("value", nargs="?", default=None, help="JSON value (plain strings are accepted as-is).")
    p.set_defaults(func=handle_settings)

    return parser


def main(argv=None) -> int:
    load_dotenv()
    settings = Settings()
    args = build_parser().parse_args(argv)
    setup_logging(settings, level="DEBUG" if args.debug else None)
    if args.debug:
        log.debug("Debug logging enabled.")
    try:
        return args.func(args, settings) or 0
    except (FocusLogError, ValueError) as e:
        log.error(f"CLI command '{args.command}' failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
