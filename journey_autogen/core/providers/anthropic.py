"""Anthropic (Claude) LLM provider."""

from __future__ import annotations

import os

import anthropic

from journey_autogen.core.providers.base import BaseLLMProvider, ProviderResponse


class AnthropicProvider(BaseLLMProvider):
    """Provider for Anthropic Claude models."""

    def __init__(self, model: str):
        super().__init__(model)
        self.client = anthropic.Anthropic()

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        )

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if not text:
            raise ValueError(
                "LLM response did not contain a text block. "
                "Response: " + str(response.content)
            )
        return ProviderResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    @staticmethod
    def check_api_key() -> tuple[bool, str]:
        return bool(os.environ.get("ANTHROPIC_API_KEY")), "ANTHROPIC_API_KEY"
