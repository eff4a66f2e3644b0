from __future__ import annotations

import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError, field_validator

from FocusLog.ai import prompts
from FocusLog.ai.completion import CompletionProvider
from FocusLog.categorization.taxonomy import CategorizationConfig
from FocusLog.database.settings_store import SettingsStore
from FocusLog.errors import ServiceError
from FocusLog.models import ProductivityScore, Session

log = logging.getLogger(__name__)

NEUTRAL_WEIGHT = 0.5
EMPTY_SCORE = 5

# Checked in order against the lowercased category name.
WEIGHT_KEYWORDS: Sequence[Tuple[Tuple[str, ...], float]] = (
    (("productivity", "work", "business"), 1.0),
    (("development", "coding", "programming"), 1.0),
    (("study", "learning", "education"), 1.0),
    (("research", "analysis"), 0.9),
    (("communication", "email", "chat"), 0.7),
    (("meeting", "call", "zoom"), 0.7),
    (("planning", "organize"), 0.8),
    (("news", "reading"), 0.5),
    (("system", "admin"), 0.5),
    (("other", "misc"), 0.5),
    (("social", "media"), 0.3),
    (("entertainment", "fun", "play"), 0.2),
    (("shopping", "buy"), 0.3),
    (("gaming", "game"), 0.1),
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def default_weight(category: str) -> float:
    """Productivity weight guessed from the category name."""
    name = (category or "").lower()
    for keywords, weight in WEIGHT_KEYWORDS:
        if any(k in name for k in keywords):
            return weight
    return NEUTRAL_WEIGHT


def heuristic_score(sessions: Iterable[Session], weights: Optional[Dict[str, float]] = None) -> ProductivityScore:
    weights = weights or {}
    total = 0
    weighted = 0.0
    for s in sessions:
        duration = s.duration_seconds or 0
        weight = weights.get(s.category)
        if weight is None:
            weight = default_weight(s.category)
        total += duration
        weighted += duration * weight

    if total > 0:
        score = int(math.floor(weighted / total * 10 + 0.5))
    else:
        score = EMPTY_SCORE
    score = min(10, max(1, score))
    return ProductivityScore(
        score=score,
        explanation=f"Based on activity categorization, your productivity score is {score}/10.",
    )


class _AIScore(BaseModel):
    score: int
    explanation: str

    @field_validator("score", mode="before")
    @classmethod
    def round_score(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return int(math.floor(float(v) + 0.5))
        return v


def parse_score_response(text: str) -> ProductivityScore:
    """Decode the first ``{...}`` span of ``text``; raises ValueError when there is none or it is invalid."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object in score response")
    try:
        parsed = _AIScore.model_validate_json(match.group(0))
    except ValidationError as e:
        raise ValueError(f"Invalid score response: {e}") from e
    return ProductivityScore(score=min(10, max(1, parsed.score)), explanation=parsed.explanation, from_ai=True)


def summarize_for_prompt(sessions: Iterable[Session]) -> str:
    return "\n".join(f"{s.process_name} ({s.category}): {s.duration_seconds // 60}min" for s in sessions)


class ProductivityScorer:
    def __init__(self, settings_store: SettingsStore, provider: CompletionProvider):
        self.settings_store = settings_store
        self.provider = provider
        self.settings = provider.settings

    def score(self, sessions: List[Session], use_ai: bool = True) -> ProductivityScore:
        config = CategorizationConfig.from_store(self.settings_store)
        weights = config.taxonomy.weights
        client = self.provider.get() if use_ai else None
        if client is None or not sessions:
            return heuristic_score(sessions, weights)

        try:
            text = client.complete(
                prompts.SCORE_SYSTEM_PROMPT,
                prompts.SCORE_PROMPT.format(activity_summary=summarize_for_prompt(sessions)),
                max_tokens=self.settings.score_max_tokens,
                temperature=self.settings.score_temperature,
            )
            return parse_score_response(text)
        except (ServiceError, ValueError) as e:
            log.warning(f"AI productivity score failed, using heuristic: {e}")
            return heuristic_score(sessions, weights)
