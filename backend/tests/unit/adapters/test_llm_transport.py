"""Tests for the httpx LLM transport: request shapes, parsing, classification."""

from __future__ import annotations

import json

import httpx
import pytest

from agenthub.adapters.outbound.llm import (
    HttpLLMTransport,
    build_provider_configs,
    classify_http_error,
)
from agenthub.domain.enums import MessageRole, ProviderErrorKind
from agenthub.domain.exceptions import (
    ParseError,
    ProviderAuthError,
    ProviderValidationError,
    RateLimitError,
    UpstreamError,
)
from agenthub.domain.value_objects import ChatMessage
from agenthub.shared.providers import ProviderConfig

MESSAGES = [
    ChatMessage(role=MessageRole.SYSTEM, content="Be brief."),
    ChatMessage(role=MessageRole.USER, content="Hello"),
    ChatMessage(role=MessageRole.ASSISTANT, content="Hi!"),
    ChatMessage(role=MessageRole.USER, content="Summarise credits."),
]


# ═══════════════════════════════════════════════════════════════
#  Fixtures
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def configs():
    cfgs = build_provider_configs(
        openai_api_key="sk-openai",
        anthropic_api_key="sk-anthropic",
        gemini_api_key="gm-key",
        openai_base_url="https://openai.test/v1/",
        anthropic_base_url="https://anthropic.test/v1",
        gemini_base_url="https://gemini.test/v1beta",
    )
    return {c.provider_id: c for c in cfgs}


def make_transport(handler) -> tuple[HttpLLMTransport, list[httpx.Request]]:
    captured: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    return HttpLLMTransport(client=client), captured


async def send(transport: HttpLLMTransport, cfg, model: str = "m"):
    return await transport.send(
        cfg, model=model, messages=MESSAGES, temperature=0.3, max_tokens=256
    )


# ═══════════════════════════════════════════════════════════════
#  Provider configs
# ═══════════════════════════════════════════════════════════════
class TestBuildProviderConfigs:
    def test_three_providers_in_priority_order(self, configs) -> None:
        assert list(configs) == ["openai", "anthropic", "gemini"]

    def test_trailing_slash_stripped(self, configs) -> None:
        assert configs["openai"].base_url == "https://openai.test/v1"

    def test_blank_key_means_not_configured(self) -> None:
        cfgs = build_provider_configs(openai_api_key="   ")
        assert cfgs[0].has_key is False

    def test_anthropic_carries_api_version(self, configs) -> None:
        assert configs["anthropic"].metadata["api_version"] == "2023-06-01"


# ═══════════════════════════════════════════════════════════════
#  Request / response shapes
# ═══════════════════════════════════════════════════════════════
class TestOpenAI:
    @pytest.mark.asyncio
    async def test_request_and_parse(self, configs) -> None:
        transport, captured = make_transport(
            lambda req: httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "Credits are units."}}],
                    "usage": {"total_tokens": 33},
                },
            )
        )
        reply = await send(transport, configs["openai"], "gpt-4.1-turbo")

        assert reply.content == "Credits are units."
        assert reply.tokens == 33
        request = captured[0]
        assert str(request.url) == "https://openai.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-openai"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4.1-turbo"
        assert body["max_tokens"] == 256
        assert body["temperature"] == 0.3
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert len(body["messages"]) == 4

    @pytest.mark.asyncio
    async def test_missing_choices_is_parse_error(self, configs) -> None:
        transport, _ = make_transport(lambda req: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ParseError):
            await send(transport, configs["openai"])


class TestAnthropic:
    @pytest.mark.asyncio
    async def test_system_prompt_lifted_out_of_messages(self, configs) -> None:
        transport, captured = make_transport(
            lambda req: httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": "Sure."}],
                    "usage": {"input_tokens": 12, "output_tokens": 4},
                },
            )
        )
        reply = await send(transport, configs["anthropic"], "claude-sonnet-4-20250514")

        assert reply.content == "Sure."
        assert reply.tokens == 16
        request = captured[0]
        assert str(request.url) == "https://anthropic.test/v1/messages"
        assert request.headers["x-api-key"] == "sk-anthropic"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["system"] == "Be brief."
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]


class TestGemini:
    @pytest.mark.asyncio
    async def test_contents_and_generation_config(self, configs) -> None:
        transport, captured = make_transport(
            lambda req: httpx.Response(
                200,
                json={
                    "candidates": [{"content": {"parts": [{"text": "Done."}]}}],
                    "usageMetadata": {"totalTokenCount": 21},
                },
            )
        )
        reply = await send(transport, configs["gemini"], "gemini-2.0-flash")

        assert reply.content == "Done."
        assert reply.tokens == 21
        request = captured[0]
        assert request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "gm-key"
        assert "key" not in request.url.params
        assert "gm-key" not in str(request.url)
        body = json.loads(request.content)
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 256}

    @pytest.mark.asyncio
    async def test_missing_usage_counts_one_token(self, configs) -> None:
        transport, _ = make_transport(
            lambda req: httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
            )
        )
        reply = await send(transport, configs["gemini"])
        assert reply.tokens == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("provider", "payload"),
        [
            (
                "gemini",
                {
                    "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
                    "usageMetadata": {"totalTokenCount": "lots"},
                },
            ),
            (
                "openai",
                {
                    "choices": [{"message": {"content": "ok"}}],
                    "usage": {"total_tokens": "n/a"},
                },
            ),
        ],
    )
    async def test_non_numeric_usage_is_parse_error(self, configs, provider, payload) -> None:
        transport, _ = make_transport(lambda req: httpx.Response(200, json=payload))
        with pytest.raises(ParseError, match="Unexpected response shape"):
            await send(transport, configs[provider])


# ═══════════════════════════════════════════════════════════════
#  Failure classification
# ═══════════════════════════════════════════════════════════════
class TestClassification:
    @pytest.mark.parametrize(
        ("status", "error_type", "retryable"),
        [
            (401, ProviderAuthError, False),
            (403, ProviderAuthError, False),
            (429, RateLimitError, True),
            (500, UpstreamError, True),
            (503, UpstreamError, True),
            (400, ProviderValidationError, False),
            (404, ProviderValidationError, False),
        ],
    )
    def test_status_mapping(self, status: int, error_type: type, retryable: bool) -> None:
        error = classify_http_error("openai", status, "body")
        assert type(error) is error_type
        assert error.retryable is retryable
        assert error.status_code == status

    def test_body_is_truncated(self) -> None:
        error = classify_http_error("openai", 500, "x" * 1000)
        assert len(error.detail) < 350

    @pytest.mark.asyncio
    async def test_http_error_raised_from_send(self, configs) -> None:
        transport, _ = make_transport(lambda req: httpx.Response(429, text="slow down"))
        with pytest.raises(RateLimitError) as exc_info:
            await send(transport, configs["openai"])
        assert exc_info.value.kind is ProviderErrorKind.RATE_LIMIT
        assert "slow down" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_connection_failure_is_upstream(self, configs) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport, _ = make_transport(boom)
        with pytest.raises(UpstreamError):
            await send(transport, configs["anthropic"])

    @pytest.mark.asyncio
    async def test_non_json_body_is_parse_error(self, configs) -> None:
        transport, _ = make_transport(lambda req: httpx.Response(200, text="<html>"))
        with pytest.raises(ParseError):
            await send(transport, configs["openai"])

    @pytest.mark.asyncio
    async def test_unsupported_provider(self) -> None:
        transport, captured = make_transport(lambda req: httpx.Response(200, json={}))
        with pytest.raises(ProviderValidationError):
            await send(transport, ProviderConfig(provider_id="mistral", api_key="k"))
        assert captured == []

    @pytest.mark.asyncio
    async def test_close_closes_client(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda req: httpx.Response(200)))
        await HttpLLMTransport(client=client).close()
        assert client.is_closed
