"""LLM Provider Registry - explicit provider selection and chat client adapter"""
from .client import ChatModelClient
from .provider_registry import ProviderRegistry
from .exceptions import LLMProviderError, ProviderConfigError, ProviderNotFoundError

__all__ = [
    "ChatModelClient",
    "ProviderRegistry",
    "LLMProviderError",
    "ProviderConfigError",
    "ProviderNotFoundError",
]
