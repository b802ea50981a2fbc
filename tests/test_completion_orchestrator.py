"""Tests for the completion orchestrator and the OpenAI backend.

Provider exceptions are built from real ``openai`` exception classes so the
status and error-code classification runs against what the SDK raises.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from mftgateway.api.schemas import ChatRequest
from mftgateway.config import ModelBackend, Settings
from mftgateway.service.errors import ConfigurationError, UpstreamErrorKind
from mftgateway.service.llm import (
    CompletionOrchestrator,
    CompletionResult,
    classify_provider_error,
)
from mftgateway.service.model_backend import (
    DEFAULT_GENERATION_PARAMS,
    OpenAIChatBackend,
    StubBackend,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status, body=None):
    response = httpx.Response(status, request=_REQUEST)
    return cls("provider said no", response=response, body=body)


def _chat_request(count=1, language="english"):
    return ChatRequest.model_validate(
        {
            "messages": [
                {"id": str(i), "content": f"message {i}", "isUser": i % 2 == 0}
                for i in range(count)
            ],
            "language": language,
            "personality": {"humor": 1, "mockery": 1, "seriousness": 1, "professionalism": 1},
            "userId": "student-0001",
        }
    )


class _FailingBackend:
    mode = "failing"

    def __init__(self, exc):
        self.exc = exc

    async def complete(self, messages):
        raise self.exc

    async def close(self):
        return None


class TestClassifyProviderError:
    def test_provider_rate_limit(self):
        exc = _status_error(openai.RateLimitError, 429)
        assert classify_provider_error(exc) == UpstreamErrorKind.RATE_LIMITED

    def test_quota_reported_as_429(self):
        exc = _status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota"})
        assert classify_provider_error(exc) == UpstreamErrorKind.QUOTA_EXHAUSTED

    def test_provider_auth_failure(self):
        exc = _status_error(openai.AuthenticationError, 401)
        assert classify_provider_error(exc) == UpstreamErrorKind.UPSTREAM_AUTH_FAILURE

    def test_payment_required(self):
        exc = _status_error(openai.APIStatusError, 402)
        assert classify_provider_error(exc) == UpstreamErrorKind.QUOTA_EXHAUSTED

    @pytest.mark.parametrize(
        "cls,status",
        [
            (openai.InternalServerError, 500),
            (openai.BadRequestError, 400),
            (openai.NotFoundError, 404),
        ],
    )
    def test_other_statuses_are_generic(self, cls, status):
        assert classify_provider_error(_status_error(cls, status)) == (
            UpstreamErrorKind.GENERATION_FAILED
        )

    def test_timeout_without_status(self):
        exc = openai.APITimeoutError(request=_REQUEST)
        assert classify_provider_error(exc) == UpstreamErrorKind.GENERATION_FAILED

    def test_connection_error_without_status(self):
        exc = openai.APIConnectionError(request=_REQUEST)
        assert classify_provider_error(exc) == UpstreamErrorKind.GENERATION_FAILED


class TestCompletionResult:
    def test_success(self):
        result = CompletionResult(message="hello")
        assert result.ok

    def test_failure(self):
        result = CompletionResult(error=UpstreamErrorKind.EMPTY_COMPLETION)
        assert not result.ok
        assert result.message == ""


class TestOrchestratorGenerate:
    async def test_stub_success(self):
        backend = StubBackend()
        orchestrator = CompletionOrchestrator(backend)

        result = await orchestrator.generate(_chat_request())

        assert result.ok
        assert result.message == StubBackend.STUB_RESPONSE
        sent = backend.calls[0]
        assert sent[0]["role"] == "system"
        assert sent[1] == {"role": "user", "content": "message 0"}

    async def test_history_is_trimmed_before_the_call(self):
        backend = StubBackend()
        await CompletionOrchestrator(backend).generate(_chat_request(count=15))

        sent = backend.calls[0]
        assert len(sent) == 11
        assert sent[1]["content"] == "message 5"
        assert sent[-1]["content"] == "message 14"

    async def test_hebrew_request_uses_hebrew_prompt(self):
        backend = StubBackend()
        await CompletionOrchestrator(backend).generate(_chat_request(language="hebrew"))
        assert backend.calls[0][0]["content"].endswith("תמיד ענה בעברית.")

    @pytest.mark.parametrize("content", ["", None])
    async def test_empty_completion(self, content):
        backend = StubBackend()
        backend.response = content
        result = await CompletionOrchestrator(backend).generate(_chat_request())
        assert result.error == UpstreamErrorKind.EMPTY_COMPLETION
        assert result.message == ""

    async def test_provider_error_is_classified(self):
        exc = _status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota"})
        result = await CompletionOrchestrator(_FailingBackend(exc)).generate(_chat_request())
        assert result.error == UpstreamErrorKind.QUOTA_EXHAUSTED

    async def test_timeout_is_generic_failure(self):
        exc = openai.APITimeoutError(request=_REQUEST)
        result = await CompletionOrchestrator(_FailingBackend(exc)).generate(_chat_request())
        assert result.error == UpstreamErrorKind.GENERATION_FAILED

    async def test_unexpected_exception_is_generic_failure(self):
        backend = _FailingBackend(KeyError("choices"))
        with patch("mftgateway.service.llm.logger") as mock_logger:
            result = await CompletionOrchestrator(backend).generate(_chat_request())
        assert result.error == UpstreamErrorKind.GENERATION_FAILED
        mock_logger.exception.assert_called_once()

    async def test_cancellation_propagates(self):
        backend = _FailingBackend(asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await CompletionOrchestrator(backend).generate(_chat_request())


class TestFromSettings:
    def test_stub_backend_selected(self):
        orchestrator = CompletionOrchestrator.from_settings(Settings(model_backend="stub"))
        assert isinstance(orchestrator.backend, StubBackend)

    def test_missing_provider_key_is_fatal(self):
        settings = Settings(model_backend="openai", openai_api_key=None)
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            CompletionOrchestrator.from_settings(settings)

    def test_openai_backend_built_from_settings(self):
        settings = Settings(
            model_backend=ModelBackend.OPENAI,
            openai_api_key="sk-test",
            openai_base_url="http://localhost:9999/v1",
            model_name="gpt-4o-mini",
            provider_timeout_seconds=12.5,
        )
        with patch("mftgateway.service.model_backend.AsyncOpenAI") as client_cls:
            orchestrator = CompletionOrchestrator.from_settings(settings)

        assert isinstance(orchestrator.backend, OpenAIChatBackend)
        assert orchestrator.backend.model == "gpt-4o-mini"
        client_cls.assert_called_once_with(
            api_key="sk-test",
            base_url="http://localhost:9999/v1",
            timeout=12.5,
            max_retries=0,
        )


class TestOpenAIChatBackend:
    def _client(self, completion):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion)
        client.close = AsyncMock()
        return client

    async def test_sends_fixed_generation_parameters(self):
        completion = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Photosynthesis is..."))],
            usage=SimpleNamespace(prompt_tokens=30, completion_tokens=12, total_tokens=42),
        )
        client = self._client(completion)
        backend = OpenAIChatBackend("gpt-3.5-turbo", api_key="sk-test", client=client)
        messages = [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]

        result = await backend.complete(messages)

        client.chat.completions.create.assert_awaited_once_with(
            model="gpt-3.5-turbo",
            messages=messages,
            max_tokens=1000,
            temperature=0.7,
            presence_penalty=0.1,
            frequency_penalty=0.1,
        )
        assert result["content"] == "Photosynthesis is..."
        assert result["usage"]["total_tokens"] == 42

    async def test_no_choices_yields_empty_content(self):
        client = self._client(SimpleNamespace(choices=[], usage=None))
        backend = OpenAIChatBackend("gpt-3.5-turbo", api_key="sk-test", client=client)

        result = await backend.complete([{"role": "user", "content": "hi"}])

        assert result["content"] is None
        assert result["usage"]["total_tokens"] == 0

    async def test_close_closes_client(self):
        client = self._client(None)
        backend = OpenAIChatBackend("gpt-3.5-turbo", api_key="sk-test", client=client)
        await backend.close()
        client.close.assert_awaited_once()

    def test_default_parameters(self):
        assert DEFAULT_GENERATION_PARAMS.max_tokens == 1000
        assert DEFAULT_GENERATION_PARAMS.temperature == 0.7
        assert DEFAULT_GENERATION_PARAMS.presence_penalty == 0.1
        assert DEFAULT_GENERATION_PARAMS.frequency_penalty == 0.1
