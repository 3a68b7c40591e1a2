"""Main agent implementation.

The AgentManager drives one conversation: it runs each user turn against the
configured model and tools, halts the turn while tool calls wait for human
approval, resumes it once every pending approval is resolved, and reports
everything that happens as AgentEvent items to its listeners.
"""

import asyncio
from typing import AsyncIterator, Callable

from .clients.factory import create_model, get_provider_info
from .config import ProviderConfig, Settings, get_settings
from .core.approval_gate import ApprovalGate, PendingApproval
from .core.prompt_builder import PromptBuilder
from .core.session import SessionState
from .events import AgentEvent, ErrorData, EventListener, make_event
from .exceptions import (
    AgentBusyError,
    AgentError,
    ConfigurationError,
    RunCancelled,
)
from .logging import get_logger, turn_context
from .mcp.server import MCPServerStreamableHttp
from .runner import CancellationToken, Runner, RunState
from .secrets import SECRETS_NAMESPACE, SecretsStore, api_key_secret_name
from .tools.base import BaseTool
from .tools.registry import ToolRegistry
from .translator import EventTranslator
from .types import (
    PHASE_TRANSITIONS,
    AgentConfig,
    RunPhase,
    TokenUsage,
    TurnOutcome,
    TurnResult,
    UnifiedMessage,
)
from .utils.ids import turn_id

logger = get_logger(__name__)

TokenUsageListener = Callable[[TokenUsage], None]


class AgentManager:
    """Agent that coordinates a conversation with a model and its tools.

    A turn goes through the phases:
    1. STREAMING - the model responds, tools that need no approval run
    2. AWAITING_APPROVAL - the run halted on tool calls needing approval
    3. back to STREAMING once every approval of the batch is resolved
    4. COMPLETED, CANCELLED or FAILED, then IDLE again

    Only one turn may be in flight at a time. The conversation history is
    updated with the run's output only when a turn completes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tool_registry: ToolRegistry | None = None,
        secrets_store: SecretsStore | None = None,
        active_provider: str | None = None,
        token_usage: TokenUsage | None = None,
        runner: Runner | None = None,
    ):
        """Initialize the agent manager.

        Args:
            settings: Controller settings (global settings if None)
            tool_registry: Tools the user may select from
            secrets_store: Credential store, used when settings enable it
            active_provider: Provider entry id (settings default if None)
            token_usage: Initial usage counters, e.g. from a previous session
            runner: Run engine (a default Runner if None)
        """
        self._settings = settings or get_settings()
        self._registry = tool_registry or ToolRegistry()
        self._secrets = secrets_store
        self._active_provider = active_provider or self._settings.default_provider
        self._runner = runner or Runner(auto_approve_patterns=self._settings.auto_approve_patterns)

        self._session = SessionState(token_usage)
        self._event_listeners: list[EventListener] = []
        self._usage_listeners: list[TokenUsageListener] = []
        self._gate = ApprovalGate(self._emit)
        self._translator = EventTranslator(
            self._emit, self._session.token_usage, self._notify_token_usage
        )

        self._phase = RunPhase.IDLE
        self._config: AgentConfig | None = None
        self._selected_tools: list[str] | None = None
        self._mcp_servers: list[MCPServerStreamableHttp] = []
        self._cancel_token: CancellationToken | None = None
        self._interrupted_state: RunState | None = None
        self.last_result: TurnResult | None = None

    # ==================== state ====================

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def active_provider(self) -> str | None:
        return self._active_provider

    @property
    def history(self) -> list[UnifiedMessage]:
        return list(self._session.history)

    @property
    def token_usage(self) -> TokenUsage:
        return self._session.token_usage.snapshot()

    @property
    def pending_approvals(self) -> dict[str, PendingApproval]:
        return dict(self._gate.pending)

    @property
    def interrupted_state(self) -> RunState | None:
        """Run state of the turn currently awaiting approval, if any."""
        return self._interrupted_state

    @property
    def selected_tools(self) -> list[str]:
        if self._selected_tools is None:
            return self._registry.names
        return list(self._selected_tools)

    @property
    def config(self) -> AgentConfig | None:
        """The configuration the next turn will use, if already built."""
        return self._config

    def get_history(self) -> list[dict]:
        return self._session.get_history()

    # ==================== listeners ====================

    def add_event_listener(self, listener: EventListener) -> None:
        self._event_listeners.append(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        if listener in self._event_listeners:
            self._event_listeners.remove(listener)

    def add_token_usage_listener(self, listener: TokenUsageListener) -> None:
        self._usage_listeners.append(listener)

    def remove_token_usage_listener(self, listener: TokenUsageListener) -> None:
        if listener in self._usage_listeners:
            self._usage_listeners.remove(listener)

    def _emit(self, event: AgentEvent) -> None:
        # a cancelled turn goes silent
        if self._cancel_token is not None and self._cancel_token.cancelled:
            return
        for listener in list(self._event_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"event listener failed on {event.type.value}")

    def _notify_token_usage(self, usage: TokenUsage) -> None:
        snapshot = usage.snapshot()
        for listener in list(self._usage_listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("token usage listener failed")

    # ==================== configuration ====================

    def set_active_provider(self, provider_id: str) -> None:
        """Switch provider; the next turn rebuilds the configuration."""
        self._active_provider = provider_id
        self._invalidate_config()

    def set_selected_tools(self, names: list[str]) -> None:
        """Select registry tools by name; the next turn rebuilds the configuration."""
        self._selected_tools = list(names)
        self._invalidate_config()

    def update_settings(self, settings: Settings) -> None:
        """Replace settings; the next turn rebuilds the configuration.

        The active provider is kept if the new settings still configure it.
        """
        self._settings = settings
        if settings.get_provider(self._active_provider) is None:
            self._active_provider = settings.default_provider
        self._runner.auto_approve_patterns = settings.auto_approve_patterns
        self._invalidate_config()

    def set_mcp_servers(self, servers: list[MCPServerStreamableHttp]) -> None:
        self._mcp_servers = list(servers)
        self._invalidate_config()

    def has_valid_config(self) -> bool:
        """Check the active provider can be used without building a model.

        With the secrets manager enabled the credential is only checked when
        the configuration is built.
        """
        provider_config = self._settings.get_provider(self._active_provider)
        if provider_config is None:
            return False
        info = get_provider_info(provider_config.provider)
        if info is None:
            return False
        if not (provider_config.model or info.default_model):
            return False
        if info.requires_api_key and not self._settings.use_secrets_manager:
            return bool(provider_config.api_key)
        return True

    async def initialize_agent(
        self, mcp_servers: list[MCPServerStreamableHttp] | None = None
    ) -> AgentConfig:
        """Build the agent configuration.

        Args:
            mcp_servers: External tool servers to offer (kept if None)

        Returns:
            The new configuration.

        Raises:
            ConfigurationError: If no usable provider, model or credential is
                configured. No network request is made in that case.
        """
        if mcp_servers is not None:
            self._mcp_servers = list(mcp_servers)
        self._config = None

        provider_config = self._settings.get_provider(self._active_provider)
        if provider_config is None:
            raise ConfigurationError(
                f"No provider configured (active: {self._active_provider or 'none'})"
            )
        info = get_provider_info(provider_config.provider)
        if info is None:
            raise ConfigurationError(f"Unknown provider: {provider_config.provider}")

        api_key = await self._resolve_api_key(provider_config)
        params = self._settings.get_parameters(provider_config.id)
        client_config = {
            key: value
            for key, value in (("temperature", params.temperature), ("max_tokens", params.max_tokens))
            if value is not None
        }
        try:
            model = create_model(
                provider_config.provider,
                model=provider_config.model,
                api_key=api_key,
                base_url=provider_config.base_url,
                client_config=client_config,
                headers=provider_config.headers,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Cannot create client for provider '{provider_config.id}': {e}"
            ) from e

        tools: list[BaseTool] = []
        if self._settings.tools_enabled and info.supports_tool_calling:
            tools = await self._collect_tools()

        prompts = PromptBuilder(self._settings.system_prompt)
        self._config = AgentConfig(
            model=model,
            instructions=prompts.build_instructions(tools_enabled=bool(tools)),
            tools=tuple(tools),
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            max_turns=params.max_turns,
        )
        logger.info(
            f"agent initialized: provider={provider_config.id} "
            f"tools={[t.name for t in tools]} max_turns={params.max_turns}"
        )
        return self._config

    async def _resolve_api_key(self, provider_config: ProviderConfig) -> str | None:
        if not self._settings.use_secrets_manager:
            return provider_config.api_key
        if self._secrets is None:
            raise ConfigurationError("Secrets manager enabled but no secrets store provided")
        name = api_key_secret_name(provider_config.id)
        try:
            secret = await self._secrets.get(SECRETS_NAMESPACE, name)
        except Exception as e:
            raise ConfigurationError(f"Cannot read secret '{name}': {e}") from e
        return secret.value if secret else None

    async def _collect_tools(self) -> list[BaseTool]:
        tools: dict[str, BaseTool] = {}
        for name in self.selected_tools:
            tool = self._registry.get(name)
            if tool is None:
                logger.warning(f"selected tool '{name}' is not registered")
                continue
            tools[name] = tool

        for server in self._mcp_servers:
            try:
                server_tools = await server.list_tools()
            except Exception as e:
                logger.warning(f"failed to list tools of MCP server '{server.name}': {e}")
                continue
            for tool in server_tools:
                if tool.name in tools:
                    logger.warning(f"MCP tool '{tool.name}' from '{server.name}' shadows an existing tool, skipped")
                    continue
                tools[tool.name] = tool

        return list(tools.values())

    def _invalidate_config(self) -> None:
        self._config = None

    # ==================== turns ====================

    async def run_turn(self, message: str) -> TurnResult:
        """Run one logical turn for a user message.

        Events are emitted to the registered listeners while the turn runs.
        The turn pauses whenever tool calls need approval and resumes once
        they are all resolved through approve/reject.

        Args:
            message: The user's message

        Returns:
            TurnResult with the outcome, history and token usage.

        Raises:
            AgentBusyError: If another turn is still in flight.
        """
        if self._phase is not RunPhase.IDLE:
            raise AgentBusyError(f"A turn is already in progress (phase: {self._phase.name})")

        token = CancellationToken()
        self._cancel_token = token
        self._translator.reset()
        self._set_phase(RunPhase.STREAMING)

        with turn_context(turn_id()):
            logger.info(f"turn started with {len(self._session.history)} messages of history")
            return await self._run_claimed(message, token)

    async def _run_claimed(self, message: str, token: CancellationToken) -> TurnResult:
        outcome = TurnOutcome.FAILED
        content: str | None = None
        error: Exception | None = None
        try:
            config = self._config or await self.initialize_agent()
            self._session.add_user_message(message)
            content = await self._drive(config, token)
            outcome = TurnOutcome.COMPLETED
        except RunCancelled:
            outcome = TurnOutcome.CANCELLED
            self._settle(RunPhase.CANCELLED)
            logger.info("turn cancelled")
        except AgentError as e:
            error = e
            self._settle(RunPhase.FAILED)
            logger.error(f"turn failed: {e}")
            self._emit(make_event(ErrorData(error=e)))
        finally:
            self._interrupted_state = None
            self._translator.reset()
            # unexpected exceptions propagate but still release the driver
            self._phase = RunPhase.IDLE

        result = TurnResult(
            outcome=outcome,
            history=self.history,
            usage=self.token_usage,
            content=content,
            error=error,
        )
        self.last_result = result
        return result

    async def _drive(self, config: AgentConfig, token: CancellationToken) -> str | None:
        """Run, approve and resume until the run completes, then commit."""
        result = self._runner.run(
            config, self._session.history, max_turns=config.max_turns, cancel_token=token
        )
        while True:
            await self._translator.consume(result)
            if not result.has_interruptions:
                break

            self._interrupted_state = result.state
            self._set_phase(RunPhase.AWAITING_APPROVAL)
            batch = self._gate.request_approval(result.interruptions, result.state)
            await self._gate.wait(batch, token)

            self._interrupted_state = None
            self._set_phase(RunPhase.STREAMING)
            result = self._runner.run(
                config, result.state, max_turns=config.max_turns, cancel_token=token
            )

        token.raise_if_cancelled()
        self._session.commit(result.history)
        self._set_phase(RunPhase.COMPLETED)
        return result.final_output

    async def stream(self, message: str) -> AsyncIterator[AgentEvent]:
        """Run a turn and yield its events as they happen.

        The TurnResult is available as ``last_result`` once iteration ends.
        Leaving the iteration early cancels the turn.
        """
        if self._phase is not RunPhase.IDLE:
            raise AgentBusyError(f"A turn is already in progress (phase: {self._phase.name})")

        queue: asyncio.Queue = asyncio.Queue()
        done = object()
        listener = queue.put_nowait

        self.add_event_listener(listener)
        task = asyncio.ensure_future(self.run_turn(message))
        task.add_done_callback(lambda _: queue.put_nowait(done))
        try:
            while True:
                item = await queue.get()
                if item is done:
                    break
                yield item
            task.result()
        finally:
            self.remove_event_listener(listener)
            if not task.done():
                self.cancel()
                await task

    def cancel(self) -> None:
        """Cancel the in-flight turn.

        Observed at the next streamed chunk or immediately while awaiting
        approval. The turn settles as cancelled, emits no further events and
        commits nothing.
        """
        if self._phase is RunPhase.IDLE or self._cancel_token is None:
            logger.debug("cancel requested with no turn in flight")
            return
        self._cancel_token.cancel()

    def _set_phase(self, phase: RunPhase) -> None:
        if phase not in PHASE_TRANSITIONS[self._phase]:
            raise AgentError(f"Illegal phase transition: {self._phase.name} -> {phase.name}")
        logger.debug(f"phase {self._phase.name} -> {phase.name}")
        self._phase = phase

    def _settle(self, phase: RunPhase) -> None:
        if not self._phase.is_terminal:
            self._set_phase(phase)

    # ==================== approvals ====================

    def approve(self, interruption_id: str) -> bool:
        return self._gate.approve(interruption_id)

    def reject(self, interruption_id: str) -> bool:
        return self._gate.reject(interruption_id)

    def approve_group(self, group_id: str, interruption_ids: list[str] | None = None) -> int:
        return self._gate.approve_group(group_id, interruption_ids)

    def reject_group(self, group_id: str, interruption_ids: list[str] | None = None) -> int:
        return self._gate.reject_group(group_id, interruption_ids)

    def clear_history(self) -> None:
        """Clear conversation history, token usage and pending approvals.

        A turn still in flight is cancelled first.
        """
        self.cancel()
        self._session.clear()
        self._gate.clear()
        self._interrupted_state = None
        self._translator.reset()
        self._notify_token_usage(self._session.token_usage)


ConnectionListener = Callable[[frozenset[str]], None]


class AgentManagerFactory:
    """Creates agent managers that share external tool server connections.

    Attributes:
        settings: Settings handed to every created manager
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tool_registry: ToolRegistry | None = None,
        secrets_store: SecretsStore | None = None,
        server_class: Callable[..., MCPServerStreamableHttp] = MCPServerStreamableHttp,
    ):
        self.settings = settings or get_settings()
        self._registry = tool_registry or ToolRegistry()
        self._secrets = secrets_store
        self._server_class = server_class
        self._managers: list[AgentManager] = []
        self._servers: list[MCPServerStreamableHttp] = []
        self._connection_listeners: list[ConnectionListener] = []

    @property
    def managers(self) -> list[AgentManager]:
        return list(self._managers)

    @property
    def mcp_servers(self) -> list[MCPServerStreamableHttp]:
        return list(self._servers)

    def create_agent(
        self,
        active_provider: str | None = None,
        token_usage: TokenUsage | None = None,
    ) -> AgentManager:
        manager = AgentManager(
            settings=self.settings,
            tool_registry=self._registry,
            secrets_store=self._secrets,
            active_provider=active_provider,
            token_usage=token_usage,
        )
        manager.set_mcp_servers(self._servers)
        self._managers.append(manager)
        return manager

    def remove_agent(self, manager: AgentManager) -> None:
        """Stop tracking a manager; its turn in flight is cancelled."""
        manager.cancel()
        if manager in self._managers:
            self._managers.remove(manager)

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings
        for manager in self._managers:
            manager.update_settings(settings)

    async def initialize(self) -> None:
        """(Re)connect the enabled MCP servers and hand them to every manager.

        Servers that fail to connect are logged and skipped.
        """
        await self._close_servers()

        for server_config in self.settings.mcp_servers:
            if not server_config.enabled:
                continue
            server = self._server_class(
                url=server_config.url,
                name=server_config.name,
                require_approval=server_config.require_approval,
            )
            try:
                await server.connect()
            except Exception as e:
                logger.warning(
                    f"failed to connect to MCP server '{server_config.name}' "
                    f"at {server_config.url}: {e}"
                )
                continue
            self._servers.append(server)

        for manager in self._managers:
            manager.set_mcp_servers(self._servers)
        self._notify_connection_changed()

    def is_mcp_server_connected(self, name: str) -> bool:
        return any(server.name == name for server in self._servers)

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        self._connection_listeners.append(listener)

    def remove_connection_listener(self, listener: ConnectionListener) -> None:
        if listener in self._connection_listeners:
            self._connection_listeners.remove(listener)

    async def close(self) -> None:
        await self._close_servers()
        for manager in self._managers:
            manager.set_mcp_servers([])
        self._notify_connection_changed()

    async def _close_servers(self) -> None:
        servers, self._servers = self._servers, []
        for server in servers:
            try:
                await server.close()
            except Exception as e:
                logger.warning(f"error closing MCP server '{server.name}': {e}")

    def _notify_connection_changed(self) -> None:
        connected = frozenset(server.name for server in self._servers)
        for listener in list(self._connection_listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("MCP connection listener failed")
