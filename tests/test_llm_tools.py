"""Unit tests for the litellm chat helpers."""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from tools.llm_tools import LlmError, chat_completion, chat_json

LLM_MODULE = "tools.llm_tools"


def _completion(text, total_tokens=150):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


class TestChatCompletion:
    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_returns_text_and_tokens(self, mock_acompletion):
        mock_acompletion.return_value = _completion("  Resumo da semana.  ", 210)

        reply = await chat_completion("gpt-4o-mini", "system", "user", api_key="sk-x", max_tokens=300)

        assert reply.text == "Resumo da semana."
        assert reply.tokens_used == 210
        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["api_key"] == "sk-x"
        assert kwargs["max_tokens"] == 300
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_provider_error_is_llm_error(self, mock_acompletion):
        mock_acompletion.side_effect = RuntimeError("429 rate limited")
        with pytest.raises(LlmError, match="429"):
            await chat_completion("gpt-4o", None, "user")

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion")
    async def test_timeout_is_llm_error(self, mock_acompletion):
        async def slow(**kwargs):
            await asyncio.sleep(5)

        mock_acompletion.side_effect = slow
        with pytest.raises(LlmError, match="timed out"):
            await chat_completion("gpt-4o", None, "user", timeout=0.01)

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_missing_usage_counts_zero(self, mock_acompletion):
        mock_acompletion.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))], usage=None
        )
        reply = await chat_completion("gpt-4o", None, "user")
        assert reply.tokens_used == 0

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_null_choices_is_llm_error(self, mock_acompletion):
        mock_acompletion.return_value = SimpleNamespace(choices=None, usage=None)
        with pytest.raises(LlmError, match="no usable choices"):
            await chat_completion("gpt-4o", None, "user")

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_empty_choices_is_llm_error(self, mock_acompletion):
        mock_acompletion.return_value = SimpleNamespace(choices=[], usage=None)
        with pytest.raises(LlmError, match="no usable choices"):
            await chat_completion("gpt-4o", None, "user")

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_non_text_content_is_llm_error(self, mock_acompletion):
        mock_acompletion.return_value = _completion([{"type": "text", "text": "ok"}])
        with pytest.raises(LlmError, match="no usable choices"):
            await chat_completion("gpt-4o", None, "user")


class TestChatJson:
    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_parses_fenced_json(self, mock_acompletion):
        mock_acompletion.return_value = _completion('```json\n{"score": 70}\n```', 99)

        parsed, tokens = await chat_json("gpt-4o", "system", "user")

        assert parsed == {"score": 70}
        assert tokens == 99
        assert mock_acompletion.call_args.kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_malformed_json_is_llm_error(self, mock_acompletion):
        mock_acompletion.return_value = _completion("Here is your analysis: score 70")
        with pytest.raises(LlmError, match="malformed JSON"):
            await chat_json("gpt-4o", "system", "user")

    @pytest.mark.asyncio
    @patch(f"{LLM_MODULE}.litellm.acompletion", new_callable=AsyncMock)
    async def test_non_object_json_is_llm_error(self, mock_acompletion):
        mock_acompletion.return_value = _completion("[1, 2, 3]")
        with pytest.raises(LlmError, match="not an object"):
            await chat_json("gpt-4o", "system", "user")
