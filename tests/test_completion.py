from unittest.mock import MagicMock, patch

import pytest

from FocusLog.ai.completion import CompletionProvider, GeminiCompletionClient
from FocusLog.database.settings_store import AI_ENABLED, API_KEY
from FocusLog.errors import ServiceError


def gemini_response(text="work", block_reason=None):
    response = MagicMock()
    response.text = text
    response.prompt_feedback = MagicMock(block_reason=block_reason) if block_reason else None
    return response


@pytest.fixture
def mock_genai():
    with patch("FocusLog.ai.completion.genai") as mock_genai_module:
        yield mock_genai_module


def test_complete_passes_prompt_and_generation_config(settings, mock_genai):
    api = mock_genai.Client.return_value
    api.models.generate_content.return_value = gemini_response("development")

    client = GeminiCompletionClient(settings, api_key="secret")
    assert client.complete("system", "user prompt", max_tokens=20, temperature=0.3) == "development"

    mock_genai.Client.assert_called_once_with(api_key="secret")
    kwargs = api.models.generate_content.call_args.kwargs
    assert kwargs["model"] == settings.model_name
    assert kwargs["contents"] == "user prompt"
    config = kwargs["config"]
    assert config.system_instruction == "system"
    assert config.max_output_tokens == 20
    assert config.temperature == 0.3
    assert config.thinking_config.thinking_budget == 0


def test_complete_retries_with_exponential_backoff(settings, mock_genai):
    settings.llm_retry_delay_base_s = 1.0
    api = mock_genai.Client.return_value
    api.models.generate_content.side_effect = [RuntimeError("503"), RuntimeError("503"), gemini_response("ok")]
    sleeps = []

    client = GeminiCompletionClient(settings, api_key="k", sleep=sleeps.append)
    assert client.complete("s", "u", 10, 0.1) == "ok"
    assert sleeps == [1.0, 2.0]


def test_complete_raises_service_error_after_retries(settings, mock_genai):
    mock_genai.Client.return_value.models.generate_content.side_effect = RuntimeError("quota")
    client = GeminiCompletionClient(settings, api_key="k", sleep=lambda s: None)
    with pytest.raises(ServiceError):
        client.complete("s", "u", 10, 0.1)
    assert mock_genai.Client.return_value.models.generate_content.call_count == settings.llm_retries


@pytest.mark.parametrize("response", [gemini_response(""), gemini_response("x", block_reason="SAFETY")])
def test_blocked_or_empty_response_is_service_error(settings, mock_genai, response):
    mock_genai.Client.return_value.models.generate_content.return_value = response
    with pytest.raises(ServiceError):
        GeminiCompletionClient(settings, api_key="k").complete("s", "u", 10, 0.1)


def test_provider_requires_enabled_flag_and_key(settings_store, settings):
    factory = MagicMock()
    provider = CompletionProvider(settings_store, settings, client_factory=factory)
    assert provider.get() is None

    settings_store.set(API_KEY, "k1")
    assert provider.get() is factory.return_value
    assert provider.is_enabled()

    settings_store.set(AI_ENABLED, False)
    assert provider.get() is None
    assert not provider.is_enabled()


def test_provider_falls_back_to_env_key_and_rebuilds_on_key_change(settings_store, settings):
    settings.gemini_api_key = "env-key"
    factory = MagicMock(side_effect=lambda key: f"client-{key}")
    provider = CompletionProvider(settings_store, settings, client_factory=factory)

    assert provider.get() == "client-env-key"
    assert provider.get() == "client-env-key"
    settings_store.set(API_KEY, "store-key")
    assert provider.get() == "client-store-key"
    assert [c.args[0] for c in factory.call_args_list] == ["env-key", "store-key"]
