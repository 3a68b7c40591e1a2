"""centralized configuration management using pydantic settings.

this module provides type-safe, validated configuration for the agent
controller. configuration is loaded from environment variables, an optional
.env file and an optional yaml file.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TURNS = 25

# environment variables probed when no provider is configured explicitly
_API_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "anthropic": ("ANTHROPIC_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "mistral": ("MISTRAL_API_KEY",),
}


class ProviderParameters(BaseModel):
    """per-provider generation parameters.

    attributes:
        temperature: sampling temperature (default 0.7)
        max_tokens: max output tokens per response (provider default if None)
        max_turns: max model/tool round-trips per turn (default 25)
    """

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    max_turns: int | None = Field(default=None, gt=0)


class ProviderConfig(BaseModel):
    """one configured provider.

    attributes:
        id: name this entry is referred to by (e.g. default_provider)
        provider: provider id in the client registry (anthropic, openai, ...)
        model: model name (provider default if None)
        api_key: credential, unless kept in the secrets store
        base_url: endpoint override
        headers: extra request headers
        parameters: generation parameters
    """

    id: str
    provider: str
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    headers: dict[str, str] | None = None
    parameters: ProviderParameters = Field(default_factory=ProviderParameters)


class MCPServerConfig(BaseModel):
    """an external tool server reachable over streamable http.

    attributes:
        url: server endpoint
        name: label shown in connection status
        enabled: whether the server is connected at startup
        require_approval: whether calls to its tools need approval
    """

    url: str
    name: str
    enabled: bool = True
    require_approval: bool = False


class Settings(BaseSettings):
    """main settings class for the agent controller.

    configuration is loaded from AGENT_CONTROLLER_* environment variables
    (nested fields use "__", e.g. AGENT_CONTROLLER_PROVIDERS). a .env file in
    the working directory is also loaded if present.

    attributes:
        default_provider: id of the provider entry to use
        providers: configured provider entries
        tools_enabled: whether the model may be offered tools
        system_prompt: base instructions for the model
        mcp_servers: external tool servers
        use_secrets_manager: read credentials from the secrets store
        auto_approve_patterns: operation type -> fnmatch patterns that skip approval
        session_timeout: session timeout in seconds for api server
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_CONTROLLER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore extra env vars
    )

    default_provider: str | None = None
    providers: list[ProviderConfig] = Field(default_factory=list)
    tools_enabled: bool = True
    system_prompt: str = ""
    mcp_servers: list[MCPServerConfig] = Field(default_factory=list)
    use_secrets_manager: bool = False
    auto_approve_patterns: dict[str, list[str]] = Field(default_factory=dict)
    session_timeout: int = Field(default=3600, ge=60)

    @model_validator(mode="after")
    def _detect_providers(self) -> "Settings":
        """auto-detect providers from well-known api key variables.

        only runs when no provider is configured explicitly.
        """
        if not self.providers:
            for provider, env_vars in _API_KEY_ENV_VARS.items():
                key = next((os.environ[v] for v in env_vars if os.environ.get(v)), None)
                if key:
                    self.providers.append(ProviderConfig(id=provider, provider=provider, api_key=key))
        if self.default_provider is None and self.providers:
            self.default_provider = self.providers[0].id
        return self

    def get_provider(self, provider_id: str | None = None) -> ProviderConfig | None:
        """get a configured provider entry.

        args:
            provider_id: entry id (default_provider if None)

        returns:
            the entry or None if not configured
        """
        wanted = provider_id or self.default_provider
        if wanted is None:
            return None
        return next((p for p in self.providers if p.id == wanted), None)

    def get_parameters(self, provider_id: str | None = None) -> ProviderParameters:
        """get generation parameters with defaults applied."""
        config = self.get_provider(provider_id)
        params = config.parameters if config else ProviderParameters()
        return ProviderParameters(
            temperature=params.temperature if params.temperature is not None else DEFAULT_TEMPERATURE,
            max_tokens=params.max_tokens,
            max_turns=params.max_turns or DEFAULT_MAX_TURNS,
        )


def load_settings(path: str | Path | None = None, **overrides: Any) -> Settings:
    """load settings, merging an optional yaml file.

    values from the yaml file take precedence over environment variables;
    keyword overrides take precedence over both.

    args:
        path: yaml file to read
        **overrides: explicit field values

    returns:
        a new settings instance
    """
    data: dict[str, Any] = {}
    if path is not None:
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"config file {path} must contain a mapping")
        data.update(loaded)
    data.update(overrides)
    return Settings(**data)


@lru_cache
def get_settings() -> Settings:
    """get the singleton settings instance.

    uses lru_cache to ensure only one instance is created.
    call get_settings.cache_clear() to reload settings if needed.

    returns:
        the settings instance
    """
    return Settings()
