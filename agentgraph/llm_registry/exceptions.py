"""
Exception hierarchy for LLM provider errors.
"""


class LLMProviderError(Exception):
    """Base exception for all LLM provider errors."""

    pass


class ProviderNotFoundError(LLMProviderError):
    """Raised when a requested provider is not registered."""

    pass


class ProviderConfigError(LLMProviderError):
    """Raised when provider configuration is invalid (e.g. missing API key)."""

    pass
