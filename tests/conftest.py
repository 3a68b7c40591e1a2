"""Shared test fixtures and configuration."""

import asyncio
import json
from typing import Any

import pytest

from agent_controller.agent import AgentManager
from agent_controller.clients.base import BaseLLMClient
from agent_controller.config import ProviderConfig, ProviderParameters, Settings
from agent_controller.tools.base import BaseTool
from agent_controller.tools.registry import ToolRegistry
from agent_controller.types import (
    FinishReason,
    PartialToolCall,
    StreamChunk,
    ToolCall,
    UnifiedMessage,
    MessageRole,
    UsageStats,
)

API_KEY_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "MISTRAL_API_KEY",
)


class Pause:
    """Marker placed in a scripted response to suspend the stream.

    The stream sets ``reached`` and waits for ``release`` before going on.
    """

    def __init__(self):
        self.reached = asyncio.Event()
        self.release = asyncio.Event()


class ScriptedClient(BaseLLMClient):
    """LLM client replaying scripted responses, one per stream() call.

    A response is a list of StreamChunk (and Pause markers), or an exception
    raised when the stream is opened.
    """

    def __init__(self, responses: list | None = None):
        super().__init__()
        self.responses = list(responses or [])
        self.calls: list[tuple[list[UnifiedMessage], list[BaseTool] | None]] = []
        self.closed_streams = 0

    async def stream(self, messages, tools=None):
        self.calls.append((list(messages), tools))
        if not self.responses:
            raise AssertionError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        try:
            for chunk in response:
                if isinstance(chunk, Pause):
                    chunk.reached.set()
                    await chunk.release.wait()
                    continue
                yield chunk
        finally:
            self.closed_streams += 1

    def _convert_messages(self, messages):
        return [m.to_dict() for m in messages]

    def _convert_tools(self, tools):
        return [t.to_schema() for t in tools]


def text_response(*pieces: str, usage: tuple[int, int] = (10, 5)) -> list:
    """Chunks of a plain text answer."""
    chunks: list = [StreamChunk(delta_content=p) for p in pieces]
    chunks.append(StreamChunk(
        finish_reason=FinishReason.STOP,
        usage=UsageStats(usage[0], usage[1], usage[0] + usage[1]),
    ))
    return chunks


def tool_response(*calls: tuple[str, str, dict], usage: tuple[int, int] = (10, 5)) -> list:
    """Chunks of a response requesting tool calls given as (id, name, args)."""
    chunks: list = []
    for index, (call_id, name, args) in enumerate(calls):
        chunks.append(StreamChunk(delta_tool_call=PartialToolCall(index=index, id=call_id, name=name)))
        chunks.append(StreamChunk(
            delta_tool_call=PartialToolCall(index=index, arguments_delta=json.dumps(args))
        ))
    chunks.append(StreamChunk(
        finish_reason=FinishReason.TOOL_USE,
        usage=UsageStats(usage[0], usage[1], usage[0] + usage[1]),
    ))
    return chunks


class EchoTool(BaseTool):
    """Returns its input; never needs approval."""

    def __init__(self):
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the given text"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]}

    def execute(self, text: str) -> str:
        self.calls.append(text)
        return text


class WriteFileTool(BaseTool):
    """In-memory file writer that needs approval."""

    REQUIRES_APPROVAL = True
    OPERATION_TYPE = "write"

    def __init__(self):
        self.files: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"path": {"type": "string"}, "content": {"type": "string"}},
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str) -> str:
        self.files[path] = content
        return f"Wrote {len(content)} characters to {path}"


class FailingTool(BaseTool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    def execute(self) -> str:
        raise RuntimeError("boom")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials and overrides out of settings auto-detection."""
    for var in API_KEY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("AGENT_CONTROLLER_DEFAULT_PROVIDER", raising=False)


def make_settings(**overrides) -> Settings:
    """Settings with one OpenAI entry, ignoring any .env file."""
    parameters = overrides.pop("parameters", ProviderParameters())
    data: dict[str, Any] = {
        "providers": [
            ProviderConfig(id="openai", provider="openai", api_key="sk-test", parameters=parameters)
        ],
        "system_prompt": "You are a test assistant.",
    }
    data.update(overrides)
    return Settings(_env_file=None, **data)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def write_tool():
    return WriteFileTool()


@pytest.fixture
def registry(echo_tool, write_tool):
    return ToolRegistry([echo_tool, write_tool, FailingTool()])


@pytest.fixture
def client(monkeypatch):
    """A scripted client returned by every create_model call."""
    scripted = ScriptedClient()
    monkeypatch.setattr("agent_controller.agent.create_model", lambda *args, **kwargs: scripted)
    return scripted


@pytest.fixture
def manager(settings, registry, client):
    return AgentManager(settings=settings, tool_registry=registry)


@pytest.fixture
def events(manager):
    """Every event emitted by the manager fixture."""
    received = []
    manager.add_event_listener(received.append)
    return received


@pytest.fixture
def sample_tool_call():
    return ToolCall(id="call_123", name="write_file", arguments={"path": "a.txt", "content": "hi"})


@pytest.fixture
def sample_messages():
    return [
        UnifiedMessage(role=MessageRole.SYSTEM, content="You are a helpful assistant."),
        UnifiedMessage(role=MessageRole.USER, content="Hello!"),
        UnifiedMessage(role=MessageRole.ASSISTANT, content="Hi there!"),
    ]


async def wait_until(predicate, attempts: int = 500) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
