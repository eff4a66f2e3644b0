from datetime import datetime, timedelta, timezone

import pytest

from FocusLog.ai.completion import CompletionClient, CompletionProvider
from FocusLog.config import Settings
from FocusLog.database.sessions import SessionStore
from FocusLog.database.settings_store import AI_ENABLED, API_KEY, SettingsStore
from FocusLog.errors import ServiceError

T0 = datetime(2025, 6, 12, 9, 0, 0, tzinfo=timezone.utc)


class FakeCompletionClient(CompletionClient):
    """Returns scripted responses in order; an Exception in the script is raised instead."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def complete(self, system_prompt, user_prompt, max_tokens, temperature):
        self.calls.append(
            {"system": system_prompt, "prompt": user_prompt, "max_tokens": max_tokens, "temperature": temperature}
        )
        if not self.responses:
            raise ServiceError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def at(self, seconds):
        self.now = T0 + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / "focuslog.db",
        gemini_api_key=None,
        recategorize_chunk_delay_s=0.0,
        llm_retry_delay_base_s=0.0,
    )


@pytest.fixture
def session_store(settings):
    return SessionStore(settings.db_path)


@pytest.fixture
def settings_store(settings):
    return SettingsStore(settings.db_path)


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture
def provider(settings_store, settings, fake_client):
    """AI enabled with a dummy key; every request goes to ``fake_client``."""
    settings_store.set(AI_ENABLED, True)
    settings_store.set(API_KEY, "test-key")
    return CompletionProvider(settings_store, settings, client_factory=lambda key: fake_client)


@pytest.fixture
def clock():
    return FakeClock()
