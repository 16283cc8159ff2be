"""Google Gemini LLM provider."""

from __future__ import annotations

import os

from google import genai
from google.genai import types

from journey_autogen.core.providers.base import BaseLLMProvider, ProviderResponse


class GoogleProvider(BaseLLMProvider):
    """Provider for Google Gemini models."""

    def __init__(self, model: str):
        super().__init__(model)
        self.client = genai.Client()

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        response = self.client.models.generate_content(
            model=self.model,
            contents=[
                types.Content(
                    role="user",
                    parts=[types.Part.from_text(text=user_message)],
                ),
            ],
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                max_output_tokens=max_tokens,
                temperature=temperature,
                response_mime_type="application/json",
            ),
        )

        if not response.text:
            raise ValueError(
                "Gemini response did not contain any text. "
                "Response: " + str(response)
            )
        usage = response.usage_metadata
        return ProviderResponse(
            text=response.text,
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
        )

    @staticmethod
    def check_api_key() -> tuple[bool, str]:
        return bool(os.environ.get("GOOGLE_API_KEY")), "GOOGLE_API_KEY"
