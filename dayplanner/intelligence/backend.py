"""
Remote language-model backends.

Both backends take a finished prompt and return the raw reply text.
Transport and SDK failures are translated into BackendTimeout or
BackendUnreachable; nothing else escapes complete().

- AnthropicBackend: Anthropic Messages API via the official SDK
- LocalBackend: any OpenAI-compatible /v1/chat/completions server
  (LM Studio, llama.cpp, Ollama) via httpx
"""

import logging
import os
from typing import Protocol

import anthropic
import httpx

from dayplanner import config
from dayplanner.errors import BackendTimeout, BackendUnreachable
from dayplanner.observability.metrics import backend_latency, timed

logger = logging.getLogger(__name__)

LOCAL_SYSTEM_PROMPT = "You are a concise planning assistant. Follow the reply format exactly."


class Backend(Protocol):
    """
    Remote interpreter. complete() raises BackendTimeout, BackendUnreachable
    or BackendError instead of returning; it should give up after
    config.BACKEND_TIMEOUT_SECONDS, and the interpreter abandons it if not.
    """

    name: str

    def complete(self, prompt: str) -> str: ...

    def ping(self) -> bool: ...


class AnthropicBackend:
    """Anthropic Messages API. A missing API key counts as unreachable."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        client: anthropic.Anthropic | None = None,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get(config.ANTHROPIC_API_KEY_ENV)
        self.model = model or config.ANTHROPIC_MODEL
        self.timeout = timeout or config.BACKEND_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or config.BACKEND_MAX_TOKENS
        self._client = client

    def _get_client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.api_key:
                raise BackendUnreachable(f"{config.ANTHROPIC_API_KEY_ENV} is not set")
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    @timed(backend_latency)
    def complete(self, prompt: str) -> str:
        client = self._get_client()
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise BackendTimeout(f"Anthropic request exceeded {self.timeout}s") from e
        except anthropic.APIConnectionError as e:
            raise BackendUnreachable(f"Could not reach Anthropic: {e}") from e
        except anthropic.APIStatusError as e:
            raise BackendUnreachable(f"Anthropic returned HTTP {e.status_code}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        return text.strip()

    def ping(self) -> bool:
        try:
            self._get_client().models.list(limit=1)
        except (BackendUnreachable, anthropic.APIError) as e:
            logger.info(f"Anthropic backend not reachable: {e}")
            return False
        return True


class LocalBackend:
    """OpenAI-compatible chat completions server on the local machine."""

    name = "local"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or config.LOCAL_BASE_URL).rstrip("/")
        self.model = model or config.LOCAL_MODEL
        self.timeout = timeout or config.BACKEND_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or config.BACKEND_MAX_TOKENS
        self.temperature = config.BACKEND_TEMPERATURE if temperature is None else temperature
        self._client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    @timed(backend_latency)
    def complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": LOCAL_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }
        try:
            response = self._client.post("/v1/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"Local model exceeded {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise BackendUnreachable(f"Could not reach {self.base_url}: {e}") from e

        if response.status_code != 200:
            raise BackendUnreachable(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise BackendUnreachable("Local model returned an unexpected completion payload") from e
        return (content or "").strip()

    def ping(self) -> bool:
        try:
            response = self._client.get("/v1/models")
        except httpx.HTTPError as e:
            logger.info(f"Local backend not reachable: {e}")
            return False
        return response.status_code == 200

    def close(self) -> None:
        self._client.close()


def create_backend(provider: str | None = None) -> Backend:
    """Backend selected by PLANNER_BACKEND."""
    provider = (provider or config.BACKEND_PROVIDER).lower()
    if provider == "anthropic":
        return AnthropicBackend()
    if provider == "local":
        return LocalBackend()
    raise ValueError(f"Unknown backend provider: {provider!r}")
