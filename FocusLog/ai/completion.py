"""
Completion capability backed by the Google Gemini API.

``CompletionProvider`` decides, on every call, whether AI is usable (the
``aiEnabled`` flag and an API key read fresh from the settings store) and hands
out a client bound to the current key.
"""
import logging
import time
from typing import Callable, Dict, Optional

from google import genai
from google.genai import types as genai_types

from FocusLog.config import Settings
from FocusLog.database.settings_store import AI_ENABLED, API_KEY, SettingsStore
from FocusLog.errors import ServiceError

log = logging.getLogger(__name__)


class CompletionClient:
    """Anything that can turn a system + user prompt into text."""

    def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        raise NotImplementedError


class GeminiCompletionClient(CompletionClient):
    def __init__(self, settings: Settings, api_key: str, sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.api_key = api_key
        self.client: Optional[genai.Client] = None
        self._sleep = sleep

    def _initialize_client(self) -> genai.Client:
        """Lazy initialization of the Gemini client."""
        if self.client is None:
            try:
                self.client = genai.Client(api_key=self.api_key)
            except Exception as e:
                raise ServiceError(f"Failed to initialize Gemini client: {e}") from e
            log.info(f"Gemini client initialized for model {self.settings.model_name}")
        return self.client

    def _build_config(self, system_prompt: str, max_tokens: int, temperature: float):
        kwargs = dict(
            system_instruction=system_prompt,
            max_output_tokens=max_tokens,
            temperature=temperature,
        )
        if self.settings.llm_thinking_budget is not None:
            kwargs["thinking_config"] = genai_types.ThinkingConfig(thinking_budget=self.settings.llm_thinking_budget)
        return genai_types.GenerateContentConfig(**kwargs)

    def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        client = self._initialize_client()
        config = self._build_config(system_prompt, max_tokens, temperature)
        retries = max(self.settings.llm_retries, 1)

        for attempt in range(retries):
            try:
                log.debug(f"Attempt {attempt + 1}/{retries} to call Gemini.")
                response = client.models.generate_content(
                    model=self.settings.model_name,
                    contents=user_prompt,
                    config=config,
                )
            except Exception as e:
                log.warning(f"Gemini API error on attempt {attempt + 1}/{retries}: {type(e).__name__} - {e}")
                if attempt + 1 == retries:
                    raise ServiceError(f"Gemini request failed after {retries} attempts: {e}") from e
                self._sleep((2 ** attempt) * self.settings.llm_retry_delay_base_s)
                continue

            if response.prompt_feedback and response.prompt_feedback.block_reason:
                raise ServiceError(f"Prompt was blocked by Gemini. Reason: {response.prompt_feedback.block_reason}")
            if not response.text:
                raise ServiceError("Empty response from Gemini.")
            return response.text

        raise ServiceError("Gemini request was not attempted.")


ClientFactory = Callable[[str], CompletionClient]


class CompletionProvider:
    """Hands out a completion client when AI is enabled and a key is configured."""

    def __init__(
        self,
        settings_store: SettingsStore,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.settings_store = settings_store
        self.settings = settings or Settings()
        self._client_factory = client_factory or (lambda key: GeminiCompletionClient(self.settings, api_key=key))
        self._clients: Dict[str, CompletionClient] = {}

    def api_key(self) -> str:
        return self.settings_store.get(API_KEY, "") or self.settings.gemini_api_key or ""

    def is_enabled(self) -> bool:
        return bool(self.settings_store.get(AI_ENABLED, True)) and bool(self.api_key())

    def get(self) -> Optional[CompletionClient]:
        if not self.settings_store.get(AI_ENABLED, True):
            return None
        key = self.api_key()
        if not key:
            return None
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(key)
            self._clients = {key: client}  # a rotated key replaces the old client
        return client
