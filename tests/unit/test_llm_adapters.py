"""Tests for the concrete LLM adapters and the JSONL logging wrapper."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from mission_loop.errors import LLMError
from mission_loop.llm.base import CompletionOptions, UsageInfo
from mission_loop.llm.logging_adapter import (
    LoggingLLMAdapter,
    log_file_for,
    log_llm_interaction,
    read_log_records,
)
from mission_loop.llm.providers import (
    AnthropicAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    Provider,
    create_adapter,
)


def openai_response(content, usage=(10, 5)):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1], total_tokens=sum(usage)),
    )


class TestCompletionOptions:
    def test_to_dict_drops_unset(self):
        assert CompletionOptions(temperature=0.0).to_dict() == {"temperature": 0.0}

    def test_usage_to_dict_is_camel_case(self):
        usage = UsageInfo(prompt_tokens=1, completion_tokens=2, total_tokens=3)
        assert usage.to_dict() == {"promptTokens": 1, "completionTokens": 2, "totalTokens": 3}


class TestOpenAIAdapter:
    """OpenAI chat completions."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMError):
            OpenAIAdapter()

    @pytest.mark.asyncio
    async def test_complete_builds_request(self):
        adapter = OpenAIAdapter(model="gpt-4.1-mini", api_key="test-key")
        create = AsyncMock(return_value=openai_response('{"ok": true}'))
        adapter.client = MagicMock()
        adapter.client.chat.completions.create = create

        text = await adapter.complete("prompt", CompletionOptions(temperature=0.0, max_tokens=64, stop="END"))

        assert text == '{"ok": true}'
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert kwargs["max_completion_tokens"] == 64
        assert "max_tokens" not in kwargs
        assert kwargs["stop"] == "END"
        assert adapter.last_usage == UsageInfo(prompt_tokens=10, completion_tokens=5, total_tokens=15)

    @pytest.mark.asyncio
    async def test_older_models_use_max_tokens(self):
        adapter = OpenAIAdapter(model="gpt-4o-mini", api_key="test-key")
        create = AsyncMock(return_value=openai_response("x"))
        adapter.client = MagicMock()
        adapter.client.chat.completions.create = create

        await adapter.complete("prompt", CompletionOptions(max_tokens=10))
        assert create.call_args.kwargs["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_list_content_joined(self):
        adapter = OpenAIAdapter(api_key="test-key")
        adapter.client = MagicMock()
        adapter.client.chat.completions.create = AsyncMock(
            return_value=openai_response([{"type": "text", "text": "a"}, SimpleNamespace(text="b")])
        )
        assert await adapter.complete("p") == "ab"

    @pytest.mark.asyncio
    async def test_empty_completion(self):
        adapter = OpenAIAdapter(api_key="test-key")
        adapter.client = MagicMock()
        adapter.client.chat.completions.create = AsyncMock(return_value=openai_response(None))
        assert await adapter.complete("p") == ""

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self):
        adapter = OpenAIAdapter(api_key="test-key")
        adapter.client = MagicMock()
        adapter.client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("rate limited"))
        with pytest.raises(LLMError, match="rate limited"):
            await adapter.complete("p")


class TestAnthropicAdapter:
    """Anthropic messages."""

    def test_auth_token_fallback(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.setenv("ANTHROPIC_AUTH_TOKEN", "token")
        adapter = AnthropicAdapter()
        assert adapter.api_key == "token"

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_AUTH_TOKEN", raising=False)
        with pytest.raises(LLMError):
            AnthropicAdapter()

    @pytest.mark.asyncio
    async def test_text_blocks_joined(self):
        adapter = AnthropicAdapter(api_key="test-key", default_max_tokens=256)
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"history'),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text='Summary": "x"}'),
            ],
            usage=SimpleNamespace(input_tokens=7, output_tokens=3),
        )
        create = AsyncMock(return_value=response)
        adapter.client = MagicMock()
        adapter.client.messages.create = create

        text = await adapter.complete("prompt", CompletionOptions(stop="END"))

        assert text == '{"historySummary": "x"}'
        assert create.call_args.kwargs["max_tokens"] == 256
        assert create.call_args.kwargs["stop_sequences"] == ["END"]
        assert adapter.last_usage.total_tokens == 10


class TestOllamaAdapter:
    """Local Ollama over httpx."""

    @pytest.mark.asyncio
    async def test_generate(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "hi", "prompt_eval_count": 4, "eval_count": 2})

        real_client = httpx.AsyncClient
        adapter = OllamaAdapter(model="qwen3:0.6b", host="http://ollama:11434/")
        with patch.object(httpx, "AsyncClient", lambda: real_client(transport=httpx.MockTransport(handler))):
            text = await adapter.complete("prompt", CompletionOptions(temperature=0.0, max_tokens=32))

        assert text == "hi"
        assert seen["url"] == "http://ollama:11434/api/generate"
        assert seen["body"]["stream"] is False
        assert seen["body"]["options"] == {"temperature": 0.0, "num_predict": 32}
        assert adapter.last_usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        adapter = OllamaAdapter(host="http://ollama:11434")
        with patch.object(httpx, "AsyncClient", lambda: real_client(transport=transport)):
            with pytest.raises(LLMError):
                await adapter.complete("prompt")


class TestCreateAdapter:
    def test_by_string(self):
        adapter = create_adapter("ollama", "llama3")
        assert isinstance(adapter, OllamaAdapter)
        assert adapter.model == "llama3"

    def test_by_enum_with_kwargs(self):
        adapter = create_adapter(Provider.OPENAI, "gpt-4.1-mini", api_key="k")
        assert isinstance(adapter, OpenAIAdapter)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_adapter("palm", "x")


class TestLoggingLLMAdapter:
    """One JSON line per call."""

    def test_log_file_name(self, tmp_path):
        assert log_file_for("2026-03-04T10:00:00+00:00", tmp_path) == tmp_path / "llm-20260304.jsonl"

    @pytest.mark.asyncio
    async def test_success_logged(self, tmp_path, scripted_llm):
        inner = scripted_llm(["answer"])
        inner.last_usage = UsageInfo(prompt_tokens=3, completion_tokens=1, total_tokens=4)
        adapter = LoggingLLMAdapter(inner, log_dir=tmp_path)

        text = await adapter.complete("question", CompletionOptions(temperature=0.0))

        assert text == "answer"
        files = list(tmp_path.glob("llm-*.jsonl"))
        assert len(files) == 1
        [record] = read_log_records(files[0])
        assert record["adapterName"] == "scripted"
        assert record["model"] == "scripted-model"
        assert record["prompt"] == "question"
        assert record["completion"] == "answer"
        assert record["options"] == {"temperature": 0.0}
        assert record["usage"] == {"promptTokens": 3, "completionTokens": 1, "totalTokens": 4}
        assert record["durationMs"] >= 0
        assert "errorMessage" not in record

    @pytest.mark.asyncio
    async def test_error_logged_and_reraised(self, tmp_path, scripted_llm):
        adapter = LoggingLLMAdapter(scripted_llm([LLMError("down")]), adapter_name="actor", log_dir=tmp_path)

        with pytest.raises(LLMError):
            await adapter.complete("question")

        [record] = read_log_records(next(tmp_path.glob("llm-*.jsonl")))
        assert record["adapterName"] == "actor"
        assert record["errorMessage"] == "down"
        assert record["completion"] == ""
        assert "usage" not in record

    @pytest.mark.asyncio
    async def test_calls_appended(self, tmp_path, scripted_llm):
        adapter = LoggingLLMAdapter(scripted_llm(["a", "b"]), log_dir=tmp_path)
        await adapter.complete("1")
        await adapter.complete("2")
        records = read_log_records(next(tmp_path.glob("llm-*.jsonl")))
        assert [r["completion"] for r in records] == ["a", "b"]
        assert records[0]["runId"] != records[1]["runId"]

    def test_log_write_failure_does_not_raise(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        log_llm_interaction({"timestamp": "2026-01-01T00:00:00"}, blocker)
        assert "Could not write LLM log record" in caplog.text
