"""Provider detection, pricing and construction for the fix generator."""

from __future__ import annotations

from typing import Type

from journey_autogen.core.providers.base import BaseLLMProvider

PROVIDER_NAMES = ("anthropic", "openai", "google")

_OPENAI_PREFIXES = ("gpt-", "o1-", "o3-", "o4-")

# USD per million (input, output) tokens
RATES = {
    "anthropic": (3.0, 15.0),
    "openai": (2.5, 10.0),
    "google": (1.25, 10.0),
}


def detect_provider(model: str) -> str:
    """Provider name for a model string; unknown models go to Anthropic."""
    name = model.lower()
    if name.startswith(_OPENAI_PREFIXES):
        return "openai"
    if name.startswith("gemini-"):
        return "google"
    return "anthropic"


def get_provider_class(name: str) -> Type[BaseLLMProvider]:
    """Return the provider class for ``name``.

    The openai and google-genai SDKs are optional extras and are imported
    only here.

    Raises:
        ImportError: If the required SDK is not installed.
        ValueError: If the provider name is unknown.
    """
    if name == "anthropic":
        from journey_autogen.core.providers.anthropic import AnthropicProvider
        return AnthropicProvider

    if name == "openai":
        try:
            from journey_autogen.core.providers.openai import OpenAIProvider
        except ImportError:
            raise ImportError(
                "OpenAI SDK not installed. Install it with: "
                "pip install journey-autogen[openai]"
            )
        return OpenAIProvider

    if name == "google":
        try:
            from journey_autogen.core.providers.google import GoogleProvider
        except ImportError:
            raise ImportError(
                "Google GenAI SDK not installed. Install it with: "
                "pip install journey-autogen[google]"
            )
        return GoogleProvider

    raise ValueError(f"Unknown provider: {name!r}. Known: {', '.join(PROVIDER_NAMES)}")


def create_provider(model: str) -> BaseLLMProvider:
    return get_provider_class(detect_provider(model))(model)


def estimate_cost(provider_name: str, input_tokens: int, output_tokens: int) -> float:
    """Rough USD cost of one completion; providers without a rate are free."""
    in_rate, out_rate = RATES.get(provider_name, (0.0, 0.0))
    return (input_tokens * in_rate + output_tokens * out_rate) / 1_000_000
