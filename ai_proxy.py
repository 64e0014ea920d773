"""Proxy for external text-completion providers.

Each provider implements the same capability: build one request for a
prompt, send it, and pull the completion text out of the reply. ``AIProxy``
picks a provider from a hint string (the suffix of an ``ai:request_<name>``
tool call) and normalizes failures into ``AIProxyError`` subclasses.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from constants import (
    AI_MAX_TOKENS,
    AI_REQUEST_TIMEOUT_SECONDS,
    ANTHROPIC_API_KEY,
    ANTHROPIC_BASE_URL,
    ANTHROPIC_MODEL,
    ANTHROPIC_VERSION,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_MODEL,
)
from errors import AiRequestFailed, ProviderUnconfigured, UnknownProvider
from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PROMPT = "How can I help you?"
SYSTEM_PROMPT = "You are a helpful assistant."


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


class CompletionProvider(ABC):
    name = ""

    def __init__(self, api_key: Optional[str], model: str, base_url: str):
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def matches(self, hint: str) -> bool:
        return self.name in hint.lower()

    @abstractmethod
    def build_request(self, prompt: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        ...

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        ...

    async def complete(self, prompt: str, client: httpx.AsyncClient) -> str:
        url, headers, body = self.build_request(prompt)
        logger.info(f"Calling {self.name} completion API ({self.model})")
        response = await client.post(url, json=body, headers=headers)
        response.raise_for_status()
        return self.extract_text(response.json())


class OpenAIProvider(CompletionProvider):
    name = "openai"

    def build_request(self, prompt):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        return f"{self.base_url}/chat/completions", headers, body

    def extract_text(self, data):
        content = _dig(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else ""


class AnthropicProvider(CompletionProvider):
    name = "anthropic"

    def __init__(self, api_key, model, base_url, version: str = ANTHROPIC_VERSION, max_tokens: int = AI_MAX_TOKENS):
        super().__init__(api_key, model, base_url)
        self.version = version
        self.max_tokens = max_tokens

    def build_request(self, prompt):
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.version,
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
        }
        return f"{self.base_url}/messages", headers, body

    def extract_text(self, data):
        text = _dig(data, "content", 0, "text")
        return text if isinstance(text, str) else ""


def _upstream_message(error: httpx.HTTPError) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        try:
            message = _dig(error.response.json(), "error", "message")
        except ValueError:
            message = None
        if isinstance(message, str) and message:
            return message
    return str(error) or error.__class__.__name__


class AIProxy:
    def __init__(self, providers: Iterable[CompletionProvider], timeout: float = AI_REQUEST_TIMEOUT_SECONDS, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.providers: List[CompletionProvider] = list(providers)
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> "AIProxy":
        return cls([
            OpenAIProvider(OPENAI_API_KEY, OPENAI_MODEL, OPENAI_BASE_URL),
            AnthropicProvider(ANTHROPIC_API_KEY, ANTHROPIC_MODEL, ANTHROPIC_BASE_URL),
        ])

    def select(self, provider_hint: str) -> CompletionProvider:
        for provider in self.providers:
            if provider.matches(provider_hint):
                return provider
        raise UnknownProvider(f"Unknown AI provider in tool: {provider_hint}")

    async def complete(self, provider_hint: str, prompt: str) -> str:
        """Run one completion through the provider named by ``provider_hint``.

        Exactly one outbound call is made; there is no retry.
        """
        provider = self.select(provider_hint)
        if not provider.configured:
            raise ProviderUnconfigured(f"API key for {provider.name} is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await provider.complete(prompt, client)
        except httpx.HTTPError as e:
            message = _upstream_message(e)
            logger.error(f"{provider.name} completion request failed: {message}")
            raise AiRequestFailed(f"AI request failed: {message}") from e
        except ValueError as e:
            logger.error(f"{provider.name} returned an unreadable response: {e}")
            raise AiRequestFailed(f"AI request failed: {e}") from e
