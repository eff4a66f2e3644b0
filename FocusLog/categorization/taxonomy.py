from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from FocusLog.database.settings_store import (
    APP_OVERRIDES,
    CATEGORIES,
    CATEGORY_DESCRIPTIONS,
    CATEGORY_WEIGHTS,
    CUSTOM_CATEGORIZATION_PROMPT,
    SettingsStore,
)
from FocusLog.models import AppOverride

log = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    "productivity",
    "development",
    "communication",
    "social_media",
    "entertainment",
    "news",
    "shopping",
    "system",
    "other",
]


class Taxonomy:
    """
    The user's current category labels. Order is kept for display; membership is
    case-insensitive and resolves to the label as configured.
    """

    def __init__(
        self,
        labels: Iterable[str],
        descriptions: Optional[Mapping[str, str]] = None,
        weights: Optional[Mapping[str, float]] = None,
    ):
        seen: Dict[str, str] = {}
        for label in labels:
            if not isinstance(label, str):
                continue
            label = label.strip()
            if label and label.lower() not in seen:
                seen[label.lower()] = label
        self._by_key = seen
        self.labels: List[str] = list(seen.values())
        self.descriptions: Dict[str, str] = {k: v for k, v in (descriptions or {}).items() if v}
        self.weights: Dict[str, float] = {}
        for k, v in (weights or {}).items():
            try:
                self.weights[k] = min(1.0, max(0.0, float(v)))
            except (TypeError, ValueError):
                log.warning(f"Ignoring non-numeric weight {v!r} for category '{k}'")

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and label.strip().lower() in self._by_key

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)

    def resolve(self, label: Optional[str]) -> Optional[str]:
        """The configured label matching ``label``, or None when it is not a member."""
        if not label:
            return None
        return self._by_key.get(label.strip().lower())

    def prompt_lines(self) -> str:
        """One ``- label`` / ``- label: description`` line per category."""
        lines = []
        for label in self.labels:
            description = self.descriptions.get(label)
            lines.append(f"- {label}: {description}" if description else f"- {label}")
        return "\n".join(lines)


@dataclass
class CategorizationConfig:
    """Everything categorization needs, read from the settings store in one go."""

    taxonomy: Taxonomy
    overrides: Dict[str, AppOverride] = field(default_factory=dict)
    custom_prompt: str = ""

    @classmethod
    def from_store(cls, store: SettingsStore) -> "CategorizationConfig":
        labels = store.get(CATEGORIES, None)
        if not isinstance(labels, list) or not labels:
            labels = DEFAULT_CATEGORIES
        descriptions = store.get(CATEGORY_DESCRIPTIONS, {})
        weights = store.get(CATEGORY_WEIGHTS, {})
        taxonomy = Taxonomy(
            labels,
            descriptions if isinstance(descriptions, dict) else {},
            weights if isinstance(weights, dict) else {},
        )
        prompt = store.get(CUSTOM_CATEGORIZATION_PROMPT, "")
        return cls(
            taxonomy=taxonomy,
            overrides=parse_overrides(store.get(APP_OVERRIDES, {})),
            custom_prompt=prompt if isinstance(prompt, str) else "",
        )


def parse_overrides(raw) -> Dict[str, AppOverride]:
    overrides: Dict[str, AppOverride] = {}
    if not isinstance(raw, dict):
        return overrides
    for process_name, value in raw.items():
        if isinstance(value, AppOverride):
            overrides[process_name] = value
            continue
        try:
            overrides[process_name] = AppOverride.model_validate(value)
        except ValidationError as e:
            log.warning(f"Ignoring malformed override for '{process_name}': {e}")
    return overrides
