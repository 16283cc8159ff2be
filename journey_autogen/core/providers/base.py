"""Base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ProviderResponse:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class BaseLLMProvider(ABC):
    """Abstract base for LLM provider implementations."""

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        """Send one prompt and return the text reply with token counts.

        Args:
            system_prompt: Instructions for the model.
            user_message: The test source, errors and prior attempts.
            max_tokens: Upper bound on the reply length.
            temperature: Sampling temperature.

        Returns:
            The concatenated text of the reply.
        """

    @staticmethod
    @abstractmethod
    def check_api_key() -> tuple[bool, str]:
        """Check whether the required API key is set.

        Returns:
            (is_set, env_var_name), e.g. (True, "ANTHROPIC_API_KEY").
        """
