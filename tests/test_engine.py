import pytest

from FocusLog.ai import prompts
from FocusLog.categorization.engine import CategorizationEngine, parse_category_response
from FocusLog.categorization.taxonomy import Taxonomy
from FocusLog.database.settings_store import (
    AI_ENABLED,
    APP_OVERRIDES,
    CATEGORIES,
    CATEGORY_DESCRIPTIONS,
    CUSTOM_CATEGORIZATION_PROMPT,
)
from FocusLog.errors import InvalidCategoryResponse, ServiceError
from FocusLog.models import Session, WindowSnapshot

from conftest import T0


def make_session(process="Code", title="main.py", url=None, category="unknown"):
    return Session.from_snapshot(WindowSnapshot(process_name=process, window_title=title, url=url), T0, category)


@pytest.fixture
def engine(settings_store, provider, settings):
    return CategorizationEngine(settings_store, provider, settings)


def test_override_wins_without_calling_ai(engine, settings_store, fake_client):
    settings_store.set(APP_OVERRIDES, {"Figma": {"category": "design"}})
    fake_client.responses = ["development"]
    assert engine.categorize(make_session(process="Figma")) == "design"
    assert fake_client.calls == []


def test_ai_label_accepted_when_in_taxonomy(engine, settings_store, fake_client):
    settings_store.set(CATEGORIES, ["work", "break"])
    fake_client.responses = ["  Work\n"]
    assert engine.categorize(make_session()) == "work"
    call = fake_client.calls[0]
    assert call["system"] == prompts.CATEGORIZE_SYSTEM_PROMPT
    assert call["max_tokens"] == 20
    assert call["temperature"] == 0.3
    assert "- work\n- break" in call["prompt"]
    assert "Activity: Code - main.py" in call["prompt"]


def test_invalid_ai_label_keeps_previous_category(engine, settings_store, fake_client):
    settings_store.set(CATEGORIES, ["work", "break"])
    fake_client.responses = ["gaming"]
    # Rule fallback yields "development", which is not in this taxonomy either.
    assert engine.categorize(make_session(category="break")) == "break"


def test_service_error_falls_back_to_rules(engine, fake_client):
    fake_client.responses = [ServiceError("quota")]
    assert engine.categorize(make_session(process="Slack", title="general")) == "communication"


def test_ai_disabled_uses_domain_rules(engine, settings_store, fake_client):
    settings_store.set(AI_ENABLED, False)
    session = make_session(process="Google Chrome", title="repo", url="https://github.com/org/repo")
    assert engine.categorize(session) == "development"
    assert fake_client.calls == []


def test_taxonomy_is_read_fresh_on_every_call(engine, settings_store, fake_client):
    settings_store.set(CATEGORIES, ["work"])
    fake_client.responses = ["work", "work"]
    assert engine.categorize(make_session(category="x")) == "work"
    settings_store.set(CATEGORIES, ["break"])
    assert engine.categorize(make_session(category="x")) == "x"


def test_custom_template_fills_each_placeholder_once(engine, settings_store, fake_client):
    settings_store.set(CATEGORIES, ["work", "break"])
    settings_store.set(CATEGORY_DESCRIPTIONS, {"work": "coding"})
    settings_store.set(
        CUSTOM_CATEGORIZATION_PROMPT,
        "Pick from {categories} for {appName} / {windowTitle} (was {currentCategory}); {appName} again {unknown}",
    )
    fake_client.responses = ["break"]
    assert engine.categorize(make_session(category="work")) == "break"
    prompt = fake_client.calls[0]["prompt"]
    assert prompt == (
        "Pick from - work: coding\n- break for Code / main.py (was work); {appName} again {unknown}"
    )


def test_resolver_exception_is_logged_and_skipped(engine):
    def boom(session, config):
        raise RuntimeError("broken")

    engine.resolvers = (boom, engine._from_rules)
    assert engine.categorize(make_session(process="Terminal")) == "system"


def test_parse_category_response():
    taxonomy = Taxonomy(["work", "break"])
    assert parse_category_response(" BREAK ", taxonomy) == "break"
    with pytest.raises(InvalidCategoryResponse) as exc:
        parse_category_response("gaming", taxonomy)
    assert exc.value.label == "gaming"
    assert exc.value.allowed == ["work", "break"]


def test_test_prompt_returns_label_or_none(engine, settings_store, fake_client):
    settings_store.set(CATEGORIES, ["work", "break"])
    fake_client.responses = ["work", "nonsense"]
    assert engine.test_prompt("Classify {appName}: {windowTitle}", "Code", "main.py") == "work"
    assert fake_client.calls[0]["prompt"] == "Classify Code: main.py"
    assert engine.test_prompt("Classify {appName}", "Code", "main.py") is None


def test_test_prompt_requires_ai(engine, settings_store):
    settings_store.set(AI_ENABLED, False)
    with pytest.raises(ServiceError):
        engine.test_prompt("{appName}", "Code", "")
