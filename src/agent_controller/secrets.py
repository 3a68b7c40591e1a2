"""Secrets stores for provider credentials.

Credentials are addressed by a namespace and a key; provider API keys live
under ``SECRETS_NAMESPACE`` with the key ``<provider id>:api_key``.
"""

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

SECRETS_NAMESPACE = "agent-controller"


def api_key_secret_name(provider_id: str) -> str:
    return f"{provider_id}:api_key"


@dataclass(frozen=True)
class Secret:
    namespace: str
    key: str
    value: str


@runtime_checkable
class SecretsStore(Protocol):
    """Read/write access to named secrets."""

    async def get(self, namespace: str, key: str) -> Secret | None:
        ...

    async def set(self, namespace: str, key: str, value: str) -> None:
        ...


class InMemorySecretsStore:
    """Secrets kept in process memory."""

    def __init__(self, secrets: dict[tuple[str, str], str] | None = None):
        self._secrets = dict(secrets or {})

    async def get(self, namespace: str, key: str) -> Secret | None:
        value = self._secrets.get((namespace, key))
        if value is None:
            return None
        return Secret(namespace, key, value)

    async def set(self, namespace: str, key: str, value: str) -> None:
        self._secrets[(namespace, key)] = value


class EnvSecretsStore:
    """Secrets read from environment variables.

    ``agent-controller`` / ``openai:api_key`` maps to
    ``AGENT_CONTROLLER__OPENAI__API_KEY``. Values set through the store are
    written to the process environment.
    """

    @staticmethod
    def variable_name(namespace: str, key: str) -> str:
        parts = [namespace, *key.split(":")]
        return "__".join(p.upper().replace("-", "_") for p in parts)

    async def get(self, namespace: str, key: str) -> Secret | None:
        value = os.environ.get(self.variable_name(namespace, key))
        if not value:
            return None
        return Secret(namespace, key, value)

    async def set(self, namespace: str, key: str, value: str) -> None:
        os.environ[self.variable_name(namespace, key)] = value
