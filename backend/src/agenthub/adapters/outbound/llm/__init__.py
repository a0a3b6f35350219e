"""LLM provider transport: one HTTP round-trip per call, no retry logic.

Each provider-specific request is a pure function of the normalised message
list. Failures are classified here, where the HTTP status is known; the
gateway never re-derives the kind from message text.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from agenthub.domain.enums import LLMProvider, MessageRole
from agenthub.domain.exceptions import (
    ParseError,
    ProviderAuthError,
    ProviderError,
    ProviderValidationError,
    RateLimitError,
    UpstreamError,
)
from agenthub.domain.value_objects import ChatMessage, ProviderReply
from agenthub.ports.outbound import LLMTransportPort
from agenthub.shared.providers.types import ProviderConfig

logger = structlog.get_logger(__name__)

_ERROR_BODY_CHARS = 300


def build_provider_configs(
    *,
    openai_api_key: str = "",
    anthropic_api_key: str = "",
    gemini_api_key: str = "",
    openai_base_url: str = "https://api.openai.com/v1",
    anthropic_base_url: str = "https://api.anthropic.com/v1",
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    anthropic_api_version: str = "2023-06-01",
    openai_model: str = "gpt-4.1-turbo",
    anthropic_model: str = "claude-sonnet-4-20250514",
    gemini_model: str = "gemini-2.0-flash",
    openai_rpm: int = 60,
    anthropic_rpm: int = 50,
    gemini_rpm: int = 60,
    openai_tpm: int = 90_000,
    anthropic_tpm: int = 40_000,
    gemini_tpm: int = 32_000,
    openai_max_tokens: int = 4096,
    anthropic_max_tokens: int = 8192,
    gemini_max_tokens: int = 8192,
    timeout_s: float = 60.0,
) -> list[ProviderConfig]:
    """Build ProviderConfig list from settings values."""
    return [
        ProviderConfig(
            provider_id=LLMProvider.OPENAI.value,
            api_key=openai_api_key.strip(),
            base_url=openai_base_url.rstrip("/"),
            default_model=openai_model,
            rpm_limit=openai_rpm,
            tpm_limit=openai_tpm,
            max_tokens_ceiling=openai_max_tokens,
            timeout_s=timeout_s,
        ),
        ProviderConfig(
            provider_id=LLMProvider.ANTHROPIC.value,
            api_key=anthropic_api_key.strip(),
            base_url=anthropic_base_url.rstrip("/"),
            default_model=anthropic_model,
            rpm_limit=anthropic_rpm,
            tpm_limit=anthropic_tpm,
            max_tokens_ceiling=anthropic_max_tokens,
            timeout_s=timeout_s,
            metadata={"api_version": anthropic_api_version},
        ),
        ProviderConfig(
            provider_id=LLMProvider.GEMINI.value,
            api_key=gemini_api_key.strip(),
            base_url=gemini_base_url.rstrip("/"),
            default_model=gemini_model,
            rpm_limit=gemini_rpm,
            tpm_limit=gemini_tpm,
            max_tokens_ceiling=gemini_max_tokens,
            timeout_s=timeout_s,
        ),
    ]


def classify_http_error(provider: str, status_code: int, body: str = "") -> ProviderError:
    """Map an upstream HTTP status to a typed provider error."""
    detail = f"HTTP {status_code}: {body[:_ERROR_BODY_CHARS]}".rstrip(": ")
    if status_code in (401, 403):
        return ProviderAuthError(provider, detail, status_code=status_code)
    if status_code == 429:
        return RateLimitError(provider, detail, status_code=status_code)
    if status_code >= 500:
        return UpstreamError(provider, detail, status_code=status_code)
    return ProviderValidationError(provider, detail, status_code=status_code)


class HttpLLMTransport(LLMTransportPort):
    """httpx-backed transport for OpenAI, Anthropic and Gemini."""

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(
        self,
        config: ProviderConfig,
        *,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> ProviderReply:
        pid = config.provider_id
        if pid == LLMProvider.OPENAI.value:
            url, headers, body = self._openai_request(config, model, messages, temperature, max_tokens)
        elif pid == LLMProvider.ANTHROPIC.value:
            url, headers, body = self._anthropic_request(config, model, messages, temperature, max_tokens)
        elif pid == LLMProvider.GEMINI.value:
            url, headers, body = self._gemini_request(config, model, messages, temperature, max_tokens)
        else:
            raise ProviderValidationError(pid, f"Unsupported provider: {pid}")

        data = await self._post(pid, url, headers, body)
        try:
            if pid == LLMProvider.OPENAI.value:
                return self._parse_openai(data)
            if pid == LLMProvider.ANTHROPIC.value:
                return self._parse_anthropic(data)
            return self._parse_gemini(data)
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
            raise ParseError(pid, f"Unexpected response shape: {exc!r}") from exc

    async def close(self) -> None:
        await self._client.aclose()

    # ── HTTP ─────────────────────────────────────────────────
    async def _post(
        self, provider: str, url: str, headers: dict[str, str], body: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise UpstreamError(provider, f"Timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise UpstreamError(provider, f"Transport error: {exc}") from exc

        if response.status_code >= 400:
            raise classify_http_error(provider, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(provider, "Response body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ParseError(provider, "Response body is not a JSON object")
        return data

    # ── Request builders (pure) ──────────────────────────────
    @staticmethod
    def _openai_request(
        cfg: ProviderConfig,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        return (
            f"{cfg.base_url}/chat/completions",
            {
                "Authorization": f"Bearer {cfg.api_key}",
                "Content-Type": "application/json",
            },
            {
                "model": model,
                "messages": [m.as_dict() for m in messages],
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @staticmethod
    def _anthropic_request(
        cfg: ProviderConfig,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        system = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM)
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m.as_dict() for m in messages if m.role != MessageRole.SYSTEM],
        }
        if system:
            body["system"] = system
        return (
            f"{cfg.base_url}/messages",
            {
                "x-api-key": cfg.api_key,
                "anthropic-version": cfg.metadata.get("api_version", "2023-06-01"),
                "content-type": "application/json",
            },
            body,
        )

    @staticmethod
    def _gemini_request(
        cfg: ProviderConfig,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        system = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM)
        contents = [
            {
                "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != MessageRole.SYSTEM
        ]
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return (
            f"{cfg.base_url}/models/{model}:generateContent",
            {"x-goog-api-key": cfg.api_key, "Content-Type": "application/json"},
            body,
        )

    # ── Response parsers ─────────────────────────────────────
    @staticmethod
    def _parse_openai(data: dict[str, Any]) -> ProviderReply:
        content = data["choices"][0]["message"]["content"] or ""
        tokens = int((data.get("usage") or {}).get("total_tokens", 0))
        return ProviderReply(content=content, tokens=tokens)

    @staticmethod
    def _parse_anthropic(data: dict[str, Any]) -> ProviderReply:
        content = data["content"][0].get("text", "")
        usage = data.get("usage") or {}
        tokens = int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0))
        return ProviderReply(content=content, tokens=tokens)

    @staticmethod
    def _parse_gemini(data: dict[str, Any]) -> ProviderReply:
        content = data["candidates"][0]["content"]["parts"][0].get("text", "")
        tokens = int((data.get("usageMetadata") or {}).get("totalTokenCount") or 1)
        return ProviderReply(content=content, tokens=tokens)
