import pytest

from FocusLog.categorization.scoring import (
    ProductivityScorer,
    default_weight,
    heuristic_score,
    parse_score_response,
)
from FocusLog.database.settings_store import CATEGORIES, CATEGORY_WEIGHTS
from FocusLog.errors import ServiceError
from FocusLog.models import Session

from conftest import T0


def session(category, duration):
    return Session(timestamp=T0, process_name="App", category=category, duration_seconds=duration)


def test_weighted_scenario_scores_six():
    sessions = [session("productivity", 600), session("entertainment", 600)]
    result = heuristic_score(sessions, {"productivity": 1.0, "entertainment": 0.2})
    assert result.score == 6
    assert result.explanation == "Based on activity categorization, your productivity score is 6/10."
    assert result.from_ai is False


def test_empty_sessions_score_five():
    assert heuristic_score([]).score == 5
    assert heuristic_score([session("other", 0)]).score == 5


def test_score_is_clamped_to_one():
    assert heuristic_score([session("gaming", 100)], {"gaming": 0.0}).score == 1


@pytest.mark.parametrize("category,weight", [
    ("Deep Work", 1.0),
    ("development", 1.0),
    ("research", 0.9),
    ("email", 0.7),
    ("social_media", 0.3),
    ("entertainment", 0.2),
    ("gaming", 0.1),
    ("mystery", 0.5),
])
def test_default_weight_from_category_name(category, weight):
    assert default_weight(category) == weight


def test_parse_score_response_extracts_embedded_json():
    result = parse_score_response('Sure! {"score": 7.6, "explanation": "Mostly coding."} Hope that helps')
    assert result.score == 8
    assert result.explanation == "Mostly coding."
    assert result.from_ai is True


@pytest.mark.parametrize("text", ["no json here", '{"score": "high"}', "{not json}"])
def test_parse_score_response_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_score_response(text)


def test_scorer_uses_ai_when_available(settings_store, provider, fake_client):
    fake_client.responses = ['{"score": 9, "explanation": "Focused day."}']
    result = ProductivityScorer(settings_store, provider).score([session("development", 3600)])
    assert (result.score, result.from_ai) == (9, True)
    call = fake_client.calls[0]
    assert call["max_tokens"] == 100
    assert call["temperature"] == 0.5
    assert "App (development): 60min" in call["prompt"]


@pytest.mark.parametrize("response", [ServiceError("down"), "I cannot score this"])
def test_scorer_falls_back_to_heuristic(settings_store, provider, fake_client, response):
    settings_store.set(CATEGORIES, ["productivity", "entertainment"])
    settings_store.set(CATEGORY_WEIGHTS, {"productivity": 1.0, "entertainment": 0.2})
    fake_client.responses = [response]
    sessions = [session("productivity", 600), session("entertainment", 600)]
    result = ProductivityScorer(settings_store, provider).score(sessions)
    assert (result.score, result.from_ai) == (6, False)


def test_scorer_without_ai_skips_client(settings_store, provider, fake_client):
    result = ProductivityScorer(settings_store, provider).score([session("development", 60)], use_ai=False)
    assert result.score == 10
    assert fake_client.calls == []
