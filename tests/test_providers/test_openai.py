"""Tests for the OpenAI provider."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("openai")

from journey_autogen.core.providers.openai import OpenAIProvider  # noqa: E402


def _mock_completion(content, prompt_tokens=80, completion_tokens=20):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    return response


class TestOpenAIProvider:
    @patch("journey_autogen.core.providers.openai.openai.OpenAI")
    def test_complete_returns_text_and_usage(self, MockOpenAI):
        MockOpenAI.return_value.chat.completions.create.return_value = _mock_completion(
            '{"fixes": []}', 90, 15
        )

        result = OpenAIProvider("gpt-4o").complete("system", "user")

        assert result.text == '{"fixes": []}'
        assert result.input_tokens == 90
        assert result.output_tokens == 15

    @patch("journey_autogen.core.providers.openai.openai.OpenAI")
    def test_sends_system_message_and_json_format(self, MockOpenAI):
        create = MockOpenAI.return_value.chat.completions.create
        create.return_value = _mock_completion("{}")

        OpenAIProvider("gpt-4o").complete("sys", "code", max_tokens=512, temperature=0.1)

        kwargs = create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1] == {"role": "user", "content": "code"}
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 512

    @patch("journey_autogen.core.providers.openai.openai.OpenAI")
    def test_missing_usage_counts_as_zero(self, MockOpenAI):
        response = _mock_completion("{}")
        response.usage = None
        MockOpenAI.return_value.chat.completions.create.return_value = response

        result = OpenAIProvider("gpt-4o").complete("s", "u")
        assert (result.input_tokens, result.output_tokens) == (0, 0)

    @patch("journey_autogen.core.providers.openai.openai.OpenAI")
    def test_empty_content_raises(self, MockOpenAI):
        MockOpenAI.return_value.chat.completions.create.return_value = _mock_completion(None)

        with pytest.raises(ValueError, match="did not contain any text"):
            OpenAIProvider("gpt-4o").complete("s", "u")

    def test_check_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert OpenAIProvider.check_api_key() == (False, "OPENAI_API_KEY")
