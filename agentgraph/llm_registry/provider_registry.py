"""
Explicit LLM Provider Registry.
Maps provider identifiers to constructor functions that build LangChain chat
models from ProviderSettings. The configured provider is validated once at
startup instead of being picked through cascading conditionals at call time.
Built in: OpenAI, Anthropic, Groq, Google Gemini, Ollama (local).
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from agentgraph.config.settings import ProviderSettings, Settings, settings as default_settings
from agentgraph.llm_registry.client import ChatModelClient
from agentgraph.llm_registry.exceptions import ProviderConfigError, ProviderNotFoundError

logger = logging.getLogger(__name__)

ProviderConstructor = Callable[[ProviderSettings], Any]


def _create_openai(cfg: ProviderSettings) -> Any:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=cfg.model,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        openai_api_key=cfg.api_key,
    )


def _create_anthropic(cfg: ProviderSettings) -> Any:
    from langchain_anthropic import ChatAnthropic

    return ChatAnthropic(
        model=cfg.model,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        anthropic_api_key=cfg.api_key,
    )


def _create_groq(cfg: ProviderSettings) -> Any:
    from langchain_groq import ChatGroq

    return ChatGroq(
        model=cfg.model,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        groq_api_key=cfg.api_key,
    )


def _create_google(cfg: ProviderSettings) -> Any:
    from langchain_google_genai import ChatGoogleGenerativeAI

    return ChatGoogleGenerativeAI(
        model=cfg.model,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        google_api_key=cfg.api_key,
    )


def _create_ollama(cfg: ProviderSettings) -> Any:
    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=cfg.model,
        temperature=cfg.temperature,
        num_predict=cfg.max_tokens,
        base_url=cfg.base_url,
    )


class ProviderRegistry:
    """
    Registry of provider id -> constructor.

    Usage:
        registry = ProviderRegistry.with_builtins()
        registry.validate("anthropic")          # at startup
        client = registry.create_client("anthropic")
        text = await client.ainvoke("Hello")
    """

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or default_settings
        self._constructors: Dict[str, ProviderConstructor] = {}
        self._requires_key: Dict[str, bool] = {}
        self._instance_cache: Dict[str, ChatModelClient] = {}

    @classmethod
    def with_builtins(cls, app_settings: Optional[Settings] = None) -> "ProviderRegistry":
        registry = cls(app_settings)
        registry.register("openai", _create_openai)
        registry.register("anthropic", _create_anthropic)
        registry.register("groq", _create_groq)
        registry.register("google", _create_google)
        registry.register("ollama", _create_ollama, requires_api_key=False)
        return registry

    def register(self, name: str, constructor: ProviderConstructor, requires_api_key: bool = True) -> None:
        name = name.lower()
        self._constructors[name] = constructor
        self._requires_key[name] = requires_api_key
        self._instance_cache.pop(name, None)
        logger.debug(f"[PROVIDER] Registered LLM provider: {name}")

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._constructors

    def list_providers(self) -> List[str]:
        return list(self._constructors)

    def validate(self, name: Optional[str] = None) -> ProviderSettings:
        """
        Check that `name` (default: LLM_PROVIDER) is registered and configured.

        Raises:
            ProviderNotFoundError: provider id not registered.
            ProviderConfigError: settings block missing or API key absent.
        """
        name = (name or self._settings.llm_provider).lower()
        if name not in self._constructors:
            raise ProviderNotFoundError(
                f"Provider '{name}' not found. Available: {', '.join(self._constructors)}"
            )
        try:
            cfg = self._settings.provider_config(name)
        except ValueError as e:
            if self._requires_key[name]:
                raise ProviderConfigError(str(e)) from e
            cfg = ProviderSettings(provider=name, model=name)
        if self._requires_key[name] and not cfg.api_key:
            raise ProviderConfigError(f"{name.upper()}_API_KEY not set. Required for provider '{name}'.")
        return cfg

    def create_client(self, name: Optional[str] = None) -> ChatModelClient:
        """Build (or reuse) the chat client for `name` (default: LLM_PROVIDER)."""
        name = (name or self._settings.llm_provider).lower()
        if name in self._instance_cache:
            return self._instance_cache[name]
        cfg = self.validate(name)
        model = self._constructors[name](cfg)
        client = ChatModelClient(model, provider=name, model_name=cfg.model)
        self._instance_cache[name] = client
        logger.info(f"[PROVIDER] Created client {name}/{cfg.model}")
        return client

    def list_available_providers(self) -> Dict[str, bool]:
        """Which registered providers have valid configuration."""
        available = {}
        for name in self._constructors:
            try:
                self.validate(name)
                available[name] = True
            except Exception:
                available[name] = False
        return available
