"""
Bulk re-categorization of stored sessions.

Sessions are grouped by process (first appearance order) and each group is
sent in fixed-size chunks, one completion call per chunk. The labels that come
back are matched to the chunk positionally after invalid tokens are dropped,
so a response that skips a label shifts every later label in that chunk.
Updates for a group are written only once all of its chunks succeeded.
"""
import logging
import re
import threading
import time
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from FocusLog.ai import prompts
from FocusLog.ai.completion import CompletionClient, CompletionProvider
from FocusLog.categorization.taxonomy import DEFAULT_CATEGORIES, CategorizationConfig, Taxonomy
from FocusLog.config import Settings
from FocusLog.database.sessions import SessionStore
from FocusLog.database.settings_store import SettingsStore
from FocusLog.errors import ChunkProcessingError, PersistenceError, ServiceError
from FocusLog.models import AppOverride, DateRange, RecategorizeResult, Session

log = logging.getLogger(__name__)

_SPLIT = re.compile(r"[,\n]")
_NUMBERING = re.compile(r"^\d+\.\s*")


def group_by_process(sessions: Sequence[Session]) -> Dict[str, List[Session]]:
    groups: Dict[str, List[Session]] = {}
    for s in sessions:
        groups.setdefault(s.process_name, []).append(s)
    return groups


def chunked(items: Sequence[Session], size: int) -> Iterator[Sequence[Session]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def parse_batch_response(text: str, taxonomy: Taxonomy) -> List[str]:
    """Taxonomy labels in response order; anything else is dropped."""
    labels = []
    for token in _SPLIT.split(text or ""):
        token = _NUMBERING.sub("", token.strip().lower())
        label = taxonomy.resolve(token)
        if label:
            labels.append(label)
    return labels


def build_batch_prompt(
    process_name: str,
    chunk: Sequence[Session],
    taxonomy: Taxonomy,
    app_description: Optional[str] = None,
    custom_template: Optional[str] = None,
) -> str:
    numbered = "\n".join(f"{i}. {s.window_title or '(untitled)'}" for i, s in enumerate(chunk, start=1))
    guidance = ""
    if custom_template:
        filled = prompts.fill_template(
            custom_template,
            categories=taxonomy.prompt_lines(),
            app_name=process_name,
            window_title="the numbered window titles below",
            current_category="their current categories",
        )
        guidance = prompts.BATCH_GUIDANCE.format(guidance=filled)
    description = ""
    if app_description:
        description = prompts.BATCH_APP_DESCRIPTION.format(app_name=process_name, description=app_description)
    return prompts.BATCH_CATEGORIZATION_PROMPT.format(
        app_name=process_name,
        categories=taxonomy.prompt_lines(),
        app_description=description,
        guidance=guidance,
        numbered_titles=numbered,
        count=len(chunk),
    )


class BatchRecategorizer:
    def __init__(
        self,
        session_store: SessionStore,
        provider: CompletionProvider,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_store = session_store
        self.provider = provider
        self.settings = settings or provider.settings
        self._sleep = sleep
        self._calls_made = 0

    def run_from_store(
        self,
        settings_store: SettingsStore,
        date_range: Optional[DateRange] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecategorizeResult:
        """Run with the taxonomy, overrides and prompt currently configured."""
        config = CategorizationConfig.from_store(settings_store)
        return self.run(
            date_range,
            taxonomy=config.taxonomy,
            overrides=config.overrides,
            custom_template=config.custom_prompt or None,
            cancel_event=cancel_event,
        )

    def run(
        self,
        date_range: Optional[DateRange] = None,
        taxonomy: Optional[Taxonomy] = None,
        overrides: Optional[Mapping[str, AppOverride]] = None,
        descriptions: Optional[Mapping[str, str]] = None,
        custom_template: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecategorizeResult:
        taxonomy = taxonomy or Taxonomy(DEFAULT_CATEGORIES)
        if descriptions:
            taxonomy = Taxonomy(taxonomy.labels, {**taxonomy.descriptions, **descriptions}, taxonomy.weights)
        overrides = overrides or {}

        sessions = self.session_store.fetch_sessions(date_range)
        result = RecategorizeResult(total_count=len(sessions))
        if not sessions:
            log.info("No sessions to re-categorize.")
            return result

        client = self.provider.get()
        if client is None:
            log.warning("AI categorization is disabled or has no API key; nothing re-categorized.")
            return result

        self._calls_made = 0
        groups = group_by_process(sessions)
        log.info(f"Re-categorizing {len(sessions)} sessions across {len(groups)} applications.")

        for process_name, group in groups.items():
            if cancel_event is not None and cancel_event.is_set():
                log.info("Re-categorization cancelled.")
                break
            try:
                updates = self._process_group(client, process_name, group, taxonomy, overrides.get(process_name),
                                              custom_template, cancel_event)
                result.updated_count += self._apply(updates)
            except ChunkProcessingError as e:
                log.error(f"Skipping '{process_name}': {e}")
                result.failed_groups.append(process_name)
            except Exception as e:
                log.error(f"Unexpected error re-categorizing '{process_name}': {e}", exc_info=True)
                result.failed_groups.append(process_name)

        log.info(f"Re-categorization finished: {result.updated_count}/{result.total_count} sessions updated, "
                 f"{len(result.failed_groups)} application(s) failed.")
        return result

    def _process_group(
        self,
        client: CompletionClient,
        process_name: str,
        group: List[Session],
        taxonomy: Taxonomy,
        override: Optional[AppOverride],
        custom_template: Optional[str],
        cancel_event: Optional[threading.Event],
    ) -> List[Tuple[Session, str]]:
        """(session, new label) pairs for one process. Raises ChunkProcessingError."""
        if override and override.category:
            label = taxonomy.resolve(override.category)
            if label is not None:
                return [(s, label) for s in group if s.category != label]
            log.warning(f"Override category '{override.category}' for '{process_name}' is not a configured "
                        "category; asking the model instead.")

        app_description = override.description if override else None
        updates: List[Tuple[Session, str]] = []
        for chunk in chunked(group, self.settings.recategorize_chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                raise ChunkProcessingError("cancelled before all chunks were processed", process_name)
            labels = self._call(client, process_name, chunk, taxonomy, app_description, custom_template)
            if len(labels) != len(chunk):
                log.warning(f"'{process_name}': got {len(labels)} labels for {len(chunk)} sessions; "
                            "mapping positionally.")
            for session, label in zip(chunk, labels):
                if label != session.category:
                    updates.append((session, label))
        return updates

    def _call(self, client, process_name, chunk, taxonomy, app_description, custom_template) -> List[str]:
        if self._calls_made:
            self._sleep(self.settings.recategorize_chunk_delay_s)
        self._calls_made += 1
        prompt = build_batch_prompt(process_name, chunk, taxonomy, app_description, custom_template)
        try:
            text = client.complete(
                prompts.BATCH_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.settings.recategorize_tokens_per_session * len(chunk),
                temperature=self.settings.recategorize_temperature,
            )
        except ServiceError as e:
            raise ChunkProcessingError(str(e), process_name) from e
        return parse_batch_response(text, taxonomy)

    def _apply(self, updates: List[Tuple[Session, str]]) -> int:
        applied = 0
        for session, label in updates:
            try:
                if self.session_store.update_session_category(session.id, label):
                    applied += 1
            except PersistenceError as e:
                log.error(f"Could not update session {session.id}: {e}")
        return applied
