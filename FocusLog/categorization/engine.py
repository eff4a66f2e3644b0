"""
Category resolution for a single session.

Resolvers are tried in order (app override, AI completion, keyword rules); the
first one that yields a label wins. When none does, the session keeps the
category it already had. The engine never writes anything itself.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from FocusLog.ai import prompts
from FocusLog.ai.completion import CompletionProvider
from FocusLog.categorization.rules import rule_category
from FocusLog.categorization.taxonomy import CategorizationConfig, Taxonomy
from FocusLog.config import Settings
from FocusLog.database.settings_store import SettingsStore
from FocusLog.errors import InvalidCategoryResponse, ServiceError
from FocusLog.models import Session, UNKNOWN_CATEGORY

log = logging.getLogger(__name__)

Resolver = Callable[[Session, CategorizationConfig], Optional[str]]


def parse_category_response(text: str, taxonomy: Taxonomy) -> str:
    """Trimmed, lowercased response if it names a current category."""
    candidate = (text or "").strip().lower()
    label = taxonomy.resolve(candidate)
    if label is None:
        raise InvalidCategoryResponse(candidate, taxonomy.labels)
    return label


def build_categorization_prompt(session: Session, config: CategorizationConfig, template: Optional[str] = None) -> str:
    return prompts.fill_template(
        template or config.custom_prompt or prompts.DEFAULT_CATEGORIZATION_PROMPT,
        categories=config.taxonomy.prompt_lines(),
        app_name=session.process_name,
        window_title=session.window_title,
        current_category=session.category or UNKNOWN_CATEGORY,
    )


class CategorizationEngine:
    def __init__(self, settings_store: SettingsStore, provider: CompletionProvider, settings: Optional[Settings] = None):
        self.settings_store = settings_store
        self.provider = provider
        self.settings = settings or provider.settings
        self.resolvers: Sequence[Resolver] = (self._from_override, self._from_ai, self._from_rules)

    def load_config(self) -> CategorizationConfig:
        # Read on every call: the taxonomy may change between two categorizations.
        return CategorizationConfig.from_store(self.settings_store)

    def categorize(self, session: Session, config: Optional[CategorizationConfig] = None) -> str:
        config = config or self.load_config()
        for resolver in self.resolvers:
            try:
                label = resolver(session, config)
            except Exception as e:
                log.error(f"Resolver {resolver.__name__} failed for {session.process_name}: {e}", exc_info=True)
                continue
            if label:
                return label
        return session.category

    # --------------- resolvers ------------------------------------------------
    def _from_override(self, session: Session, config: CategorizationConfig) -> Optional[str]:
        override = config.overrides.get(session.process_name)
        if override and override.category:
            log.debug(f"Override for {session.process_name}: {override.category}")
            return override.category
        return None

    def _from_ai(self, session: Session, config: CategorizationConfig) -> Optional[str]:
        client = self.provider.get()
        if client is None:
            return None
        prompt = build_categorization_prompt(session, config)
        try:
            text = client.complete(
                prompts.CATEGORIZE_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.settings.categorize_max_tokens,
                temperature=self.settings.categorize_temperature,
            )
            return parse_category_response(text, config.taxonomy)
        except ServiceError as e:
            log.warning(f"AI categorization unavailable for {session.process_name}: {e}")
        except InvalidCategoryResponse as e:
            log.warning(f"Discarding AI category for {session.process_name}: {e}")
        return None

    def _from_rules(self, session: Session, config: CategorizationConfig) -> Optional[str]:
        label = rule_category(session.process_name, session.url, session.domain)
        return config.taxonomy.resolve(label)

    # --------------- prompt testing -------------------------------------------
    def test_prompt(self, template: str, process_name: str, window_title: str) -> Optional[str]:
        """Run ``template`` against a sample activity and return the AI's label."""
        client = self.provider.get()
        if client is None:
            raise ServiceError("AI categorization is disabled or no API key is configured.")
        config = self.load_config()
        sample = Session(timestamp="1970-01-01T00:00:00Z", process_name=process_name, window_title=window_title)
        text = client.complete(
            prompts.CATEGORIZE_SYSTEM_PROMPT,
            build_categorization_prompt(sample, config, template=template),
            max_tokens=self.settings.categorize_max_tokens,
            temperature=self.settings.categorize_temperature,
        )
        try:
            return parse_category_response(text, config.taxonomy)
        except InvalidCategoryResponse as e:
            log.info(f"Prompt test returned an out-of-taxonomy label: {e}")
            return None
