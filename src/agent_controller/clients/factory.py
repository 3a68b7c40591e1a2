"""Factory for creating LLM clients.

This module provides a centralized way to create LLM clients based on provider
id, using a registry pattern that makes it easy to add new providers.
"""

import importlib
from dataclasses import dataclass
from enum import Enum

from ..exceptions import ConfigurationError
from ..logging import get_logger
from .base import BaseLLMClient

logger = get_logger(__name__)


class ApiKeyRequirement(Enum):
    """Whether a provider needs a credential."""
    REQUIRED = "required"
    OPTIONAL = "optional"
    NONE = "none"


@dataclass(frozen=True)
class ProviderInfo:
    """Static description of a model provider.

    Attributes:
        id: Provider id used in settings (e.g. "anthropic")
        name: Human readable name
        class_path: Dotted path of the BaseLLMClient subclass
        api_key_requirement: Whether a credential is needed
        default_model: Model used when none is configured
        default_base_url: Endpoint used when none is configured
        supports_base_url: Whether a custom endpoint may be configured
        supports_tool_calling: Whether the models can be offered tools
    """
    id: str
    name: str
    class_path: str
    api_key_requirement: ApiKeyRequirement = ApiKeyRequirement.REQUIRED
    default_model: str | None = None
    default_base_url: str | None = None
    supports_base_url: bool = True
    supports_tool_calling: bool = True

    @property
    def requires_api_key(self) -> bool:
        return self.api_key_requirement == ApiKeyRequirement.REQUIRED


# registry of provider configurations
_PROVIDER_REGISTRY: dict[str, ProviderInfo] = {}


def register_provider(info: ProviderInfo) -> None:
    """Register (or replace) a provider.

    Args:
        info: The provider description.
    """
    if info.id in _PROVIDER_REGISTRY:
        logger.info(f"replacing provider registration: {info.id}")
    _PROVIDER_REGISTRY[info.id] = info


for _info in (
    ProviderInfo(
        id="anthropic",
        name="Anthropic Claude",
        class_path="agent_controller.clients.anthropic.AnthropicClient",
        default_model="claude-sonnet-4-5",
    ),
    ProviderInfo(
        id="openai",
        name="OpenAI",
        class_path="agent_controller.clients.openai.OpenAIClient",
        default_model="gpt-4o",
    ),
    ProviderInfo(
        id="google",
        name="Google Generative AI",
        class_path="agent_controller.clients.google.GoogleClient",
        default_model="gemini-2.5-flash",
    ),
    ProviderInfo(
        id="mistral",
        name="Mistral AI",
        class_path="agent_controller.clients.openai.MistralClient",
        default_model="mistral-large-latest",
    ),
    ProviderInfo(
        id="generic",
        name="Generic (OpenAI-compatible)",
        class_path="agent_controller.clients.openai.GenericClient",
        api_key_requirement=ApiKeyRequirement.OPTIONAL,
        default_model="gpt-4o",
        default_base_url="http://localhost:4000",
    ),
):
    register_provider(_info)


def get_available_providers() -> list[str]:
    """Get list of available provider ids.

    Returns:
        List of registered provider ids.
    """
    return list(_PROVIDER_REGISTRY.keys())


def get_provider_info(provider: str) -> ProviderInfo | None:
    return _PROVIDER_REGISTRY.get(provider)


def get_default_model(provider: str) -> str | None:
    """Get the default model for a provider.

    Raises:
        ConfigurationError: If provider is unknown.
    """
    return _require_provider(provider).default_model


def create_model(
    provider: str,
    model: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    client_config: dict | None = None,
    headers: dict[str, str] | None = None,
) -> BaseLLMClient:
    """Create an LLM client for the specified provider.

    Args:
        provider: The provider id (anthropic, openai, google, mistral, generic).
        model: Optional model override. If not provided, uses provider default.
        api_key: The credential, required unless the provider makes it optional.
        base_url: Optional endpoint override.
        client_config: Optional configuration dict for the client.
        headers: Optional extra request headers.

    Returns:
        An initialized LLM client instance. No network I/O happens here.

    Raises:
        ConfigurationError: If the provider is unknown, no model can be
            resolved, the credential is missing or the client rejects its
            configuration.
    """
    info = _require_provider(provider)

    if info.requires_api_key and not api_key:
        raise ConfigurationError(f"API key required for {info.name}")

    resolved_model = model or info.default_model
    if not resolved_model:
        raise ConfigurationError(f"No model configured for provider '{provider}'")

    client_class = _import_client_class(info.class_path)

    kwargs: dict = {
        "api_key": api_key,
        "model": resolved_model,
        "client_config": client_config,
        "headers": headers,
    }
    if info.supports_base_url:
        kwargs["base_url"] = base_url or info.default_base_url

    try:
        return client_class(**kwargs)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration for {info.name}: {e}") from e


def _require_provider(provider: str) -> ProviderInfo:
    info = _PROVIDER_REGISTRY.get(provider)
    if info is None:
        raise ConfigurationError(
            f"Unknown provider: {provider}. Available: {get_available_providers()}"
        )
    return info


def _import_client_class(class_path: str) -> type[BaseLLMClient]:
    """Dynamically import a client class from its path.

    Args:
        class_path: Dot-separated path to the class (e.g., 'agent_controller.clients.openai.OpenAIClient').

    Returns:
        The client class.
    """
    module_path, class_name = class_path.rsplit(".", 1)
    try:
        module = importlib.import_module(module_path)
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load client class '{class_path}': {e}") from e
