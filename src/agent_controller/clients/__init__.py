"""LLM client implementations.

All clients implement the BaseLLMClient interface and normalize
provider-specific streams to unified types.
"""

from .anthropic import AnthropicClient
from .base import BaseLLMClient, with_retry
from .factory import (
    ApiKeyRequirement,
    ProviderInfo,
    create_model,
    get_available_providers,
    get_provider_info,
    register_provider,
)
from .google import GoogleClient
from .openai import GenericClient, MistralClient, OpenAIClient
from .openai_compat import OpenAICompatibleClient

__all__ = [
    "BaseLLMClient",
    "OpenAICompatibleClient",
    "OpenAIClient",
    "MistralClient",
    "GenericClient",
    "AnthropicClient",
    "GoogleClient",
    "with_retry",
    "ApiKeyRequirement",
    "ProviderInfo",
    "create_model",
    "get_available_providers",
    "get_provider_info",
    "register_provider",
]
