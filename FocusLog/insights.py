import logging
import random
from typing import Any, Callable, Dict, Optional, Sequence

from FocusLog.ai import prompts
from FocusLog.ai.completion import CompletionProvider
from FocusLog.database.sessions import SessionStore
from FocusLog.errors import PersistenceError, ServiceError
from FocusLog.models import DateRange, Statistics

log = logging.getLogger(__name__)


def _minutes(seconds: int) -> int:
    return round((seconds or 0) / 60)


def summarize_statistics(stats: Statistics, top_apps: int = 5):
    categories = "\n".join(f"- {c.category}: {_minutes(c.total_time)} minutes" for c in stats.category_stats)
    apps = "\n".join(f"- {a.process_name}: {_minutes(a.total_time)} minutes" for a in stats.top_apps[:top_apps])
    return categories or "- no tracked activity", apps or "- no tracked activity"


class InsightGenerator:
    """Short AI-written productivity analysis of a date range, with canned fallbacks."""

    def __init__(
        self,
        session_store: SessionStore,
        provider: CompletionProvider,
        choose: Callable[[Sequence[str]], str] = random.choice,
    ):
        self.session_store = session_store
        self.provider = provider
        self.settings = provider.settings
        self._choose = choose

    def _default(self) -> Dict[str, Any]:
        return {"insights": self._choose(prompts.DEFAULT_INSIGHTS), "generated": False, "is_default": True}

    def get_insights(self, range_name: str = "today", date_range: Optional[DateRange] = None) -> Dict[str, Any]:
        client = self.provider.get()
        if client is None:
            return self._default()
        try:
            stats = self.session_store.get_statistics(date_range)
        except PersistenceError as e:
            log.error(f"Could not load statistics for insights: {e}")
            return self._default()

        category_summary, app_summary = summarize_statistics(stats)
        try:
            text = client.complete(
                prompts.INSIGHTS_SYSTEM_PROMPT,
                prompts.INSIGHTS_PROMPT.format(
                    range_name=range_name,
                    category_summary=category_summary,
                    app_summary=app_summary,
                ),
                max_tokens=self.settings.insights_max_tokens,
                temperature=self.settings.insights_temperature,
            )
        except ServiceError as e:
            log.warning(f"AI insights failed, using a default insight: {e}")
            return self._default()
        return {"insights": text.strip(), "generated": True, "is_default": False}
