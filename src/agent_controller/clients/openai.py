"""OpenAI-compatible provider clients.

OpenAI, Mistral and any generic OpenAI-compatible server (LiteLLM, Ollama)
share the chat completions wire format and differ only in endpoint,
credential handling and supported parameters.
"""

from typing import Any

from .openai_compat import OpenAICompatibleClient


class OpenAIClient(OpenAICompatibleClient):
    """OpenAI API client with unified response handling."""

    provider_label = "OpenAI"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key, model, client_config, base_url, headers)

    def _get_supported_config_keys(self) -> set[str]:
        """Return config keys supported by OpenAI."""
        return super()._get_supported_config_keys() | {"reasoning_effort", "seed"}


class MistralClient(OpenAICompatibleClient):
    """Mistral AI client over its OpenAI-compatible endpoint."""

    provider_label = "Mistral"
    default_base_url = "https://api.mistral.ai/v1"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "mistral-large-latest",
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key, model, client_config, base_url, headers)

    def _get_supported_config_keys(self) -> set[str]:
        # Mistral rejects the OpenAI penalty parameters
        return {"temperature", "top_p", "max_tokens", "stop"}


class GenericClient(OpenAICompatibleClient):
    """Client for a self-hosted OpenAI-compatible server.

    Local servers usually accept any key, so a placeholder is sent when
    none is configured.
    """

    provider_label = "Generic"
    default_base_url = "http://localhost:4000"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key or "dummy", model, client_config, base_url, headers)

    def _get_default_api_args(self) -> dict[str, Any]:
        return {}
