"""OpenAI LLM provider."""

from __future__ import annotations

import os

import openai

from journey_autogen.core.providers.base import BaseLLMProvider, ProviderResponse


class OpenAIProvider(BaseLLMProvider):
    """Provider for OpenAI models (GPT-4o, o1, o3, etc.)."""

    def __init__(self, model: str):
        super().__init__(model)
        self.client = openai.OpenAI()

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        response = self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        )

        choice = response.choices[0].message
        if not choice.content:
            raise ValueError(
                "OpenAI response did not contain any text. "
                "Response: " + str(choice)
            )
        usage = response.usage
        return ProviderResponse(
            text=choice.content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    @staticmethod
    def check_api_key() -> tuple[bool, str]:
        return bool(os.environ.get("OPENAI_API_KEY")), "OPENAI_API_KEY"
