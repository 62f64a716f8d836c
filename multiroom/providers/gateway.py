"""Provider gateway: one call interface over several LLM completion endpoints.

Each provider speaks one of three wire shapes:
- anthropic: {model, max_tokens, messages, system?} -> content[0].text
- openai:    {model, max_tokens, temperature, messages} -> choices[0].message.content
- gemini:    {contents, generationConfig} -> candidates[0].content.parts[0].text

The endpoint table is injected (DEFAULT_PROVIDER_ENDPOINTS otherwise), so adding
a provider that speaks a known wire shape is a registry entry, not a code change.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
import os
import time
from typing import Any, Literal

import httpx
import structlog

log = structlog.get_logger(__name__)

WireFormat = Literal["anthropic", "openai", "gemini"]

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
ANTHROPIC_VERSION = "2023-06-01"


class ProviderError(RuntimeError):
    """Base error for provider gateway failures."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class UnknownProviderError(ProviderError):
    pass


class MissingCredentialError(ProviderError):
    pass


class ProviderHTTPError(ProviderError):
    """Non-success HTTP status; carries the status code and body verbatim."""

    def __init__(self, message: str, *, provider: str, status_code: int, body: str) -> None:
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.body = body


class ProviderTimeoutError(ProviderError):
    pass


class ProviderResponseError(ProviderError):
    """Response body does not contain a completion where the wire shape puts it."""


@dataclass(frozen=True)
class ProviderEndpoint:
    api_key_env: str
    model: str
    base_url: str
    wire: WireFormat
    label: str


DEFAULT_PROVIDER_ENDPOINTS: dict[str, ProviderEndpoint] = {
    "claude": ProviderEndpoint(
        api_key_env="ANTHROPIC_API_KEY",
        model="claude-opus-4-5-20251101",
        base_url="https://api.anthropic.com/v1",
        wire="anthropic",
        label="Anthropic",
    ),
    "openai": ProviderEndpoint(
        api_key_env="OPENAI_API_KEY",
        model="gpt-4-turbo-preview",
        base_url="https://api.openai.com/v1",
        wire="openai",
        label="OpenAI",
    ),
    "gemini": ProviderEndpoint(
        api_key_env="GOOGLE_API_KEY",
        model="gemini-pro",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        wire="gemini",
        label="Gemini",
    ),
    "grok": ProviderEndpoint(
        api_key_env="XAI_API_KEY",
        model="grok-1",
        base_url="https://api.x.ai/v1",
        wire="openai",
        label="Grok",
    ),
}


@dataclass(frozen=True)
class ProviderOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    timeout_s: float | None = None


class ProviderGateway:
    """Calls one provider's completion endpoint and returns the completion text.

    Construction is a hard precondition check: an unknown provider name or a
    missing credential raises immediately. Upstream failures are raised to the
    caller as ProviderError subclasses and never retried here.
    """

    def __init__(
        self,
        provider: str,
        *,
        model: str | None = None,
        endpoints: Mapping[str, ProviderEndpoint] | None = None,
        env: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
    ) -> None:
        table = DEFAULT_PROVIDER_ENDPOINTS if endpoints is None else endpoints
        endpoint = table.get(provider)
        if endpoint is None:
            raise UnknownProviderError(f"Unknown provider: {provider}", provider=provider)

        environ = os.environ if env is None else env
        api_key = environ.get(endpoint.api_key_env)
        if not api_key:
            raise MissingCredentialError(f"API key not found: {endpoint.api_key_env}", provider=provider)

        self._provider = provider
        self._endpoint = endpoint
        self._api_key = api_key
        self._model = model or endpoint.model
        self._client = client
        self._timeout_s = timeout_s

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    def info(self) -> dict[str, str]:
        return {"provider": self._provider, "model": self._model}

    async def execute(self, prompt: str, options: ProviderOptions | None = None) -> str:
        """Send `prompt` to the provider and return the completion text."""
        opts = options or ProviderOptions()
        url, headers, params, body = self._build_request(prompt, opts)
        timeout_s = opts.timeout_s if opts.timeout_s is not None else self._timeout_s

        start = time.perf_counter()
        try:
            if timeout_s is not None:
                response = await asyncio.wait_for(self._post(url, headers, params, body, timeout_s), timeout=timeout_s)
            else:
                response = await self._post(url, headers, params, body, None)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            log.warning("provider_call_timeout", provider=self._provider, timeout_s=timeout_s)
            raise ProviderTimeoutError(
                f"{self._endpoint.label} API timeout after {timeout_s}s", provider=self._provider
            ) from e
        except httpx.HTTPError as e:
            log.warning("provider_call_transport_error", provider=self._provider, error=str(e))
            raise ProviderError(f"{self._endpoint.label} API transport error: {e}", provider=self._provider) from e

        latency_ms = (time.perf_counter() - start) * 1000.0
        if not response.is_success:
            log.warning(
                "provider_call_failed",
                provider=self._provider,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )
            raise ProviderHTTPError(
                f"{self._endpoint.label} API error: {response.status_code} - {response.text}",
                provider=self._provider,
                status_code=response.status_code,
                body=response.text,
            )

        text = self._extract_text(response)
        log.info(
            "provider_call_completed",
            provider=self._provider,
            model=self._model,
            prompt_chars=len(prompt),
            output_chars=len(text),
            latency_ms=latency_ms,
        )
        return text

    async def _post(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, str] | None,
        body: dict[str, Any],
        timeout_s: float | None,
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, headers=headers, params=params, json=body)
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            return await client.post(url, headers=headers, params=params, json=body)

    def _build_request(
        self, prompt: str, opts: ProviderOptions
    ) -> tuple[str, dict[str, str], dict[str, str] | None, dict[str, Any]]:
        base = self._endpoint.base_url.rstrip("/")
        max_tokens = opts.max_tokens if opts.max_tokens is not None else DEFAULT_MAX_TOKENS
        temperature = opts.temperature if opts.temperature is not None else DEFAULT_TEMPERATURE
        headers = {"Content-Type": "application/json"}

        if self._endpoint.wire == "anthropic":
            headers["x-api-key"] = self._api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
            body: dict[str, Any] = {
                "model": self._model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            }
            if opts.system_prompt:
                body["system"] = opts.system_prompt
            return f"{base}/messages", headers, None, body

        if self._endpoint.wire == "openai":
            headers["Authorization"] = f"Bearer {self._api_key}"
            messages = []
            if opts.system_prompt:
                messages.append({"role": "system", "content": opts.system_prompt})
            messages.append({"role": "user", "content": prompt})
            body = {
                "model": self._model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": messages,
            }
            return f"{base}/chat/completions", headers, None, body

        # gemini: no system role in this transport, the system prompt is dropped.
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }
        return f"{base}/models/{self._model}:generateContent", headers, {"key": self._api_key}, body

    def _extract_text(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            if self._endpoint.wire == "anthropic":
                text = data["content"][0]["text"]
            elif self._endpoint.wire == "openai":
                text = data["choices"][0]["message"]["content"]
            else:
                text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(
                f"{self._endpoint.label} API returned an unexpected response shape", provider=self._provider
            ) from e
        if not isinstance(text, str):
            raise ProviderResponseError(
                f"{self._endpoint.label} API returned a non-text completion", provider=self._provider
            )
        return text

    @staticmethod
    def is_available(
        provider: str,
        *,
        endpoints: Mapping[str, ProviderEndpoint] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> bool:
        """True when the provider is known and its credential is set."""
        table = DEFAULT_PROVIDER_ENDPOINTS if endpoints is None else endpoints
        endpoint = table.get(provider)
        if endpoint is None:
            return False
        environ = os.environ if env is None else env
        return bool(environ.get(endpoint.api_key_env))

    @staticmethod
    def list_available(
        *,
        endpoints: Mapping[str, ProviderEndpoint] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> list[str]:
        table = DEFAULT_PROVIDER_ENDPOINTS if endpoints is None else endpoints
        return [name for name in table if ProviderGateway.is_available(name, endpoints=table, env=env)]
