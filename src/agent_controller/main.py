"""Main entry point for the agent controller CLI.

Handles provider selection, settings loading, and the interactive loop in
which tool calls are approved or rejected as the agent requests them.
"""

import argparse
import asyncio
import os
import signal
import sys

from .agent import AgentManager, AgentManagerFactory
from .clients.factory import get_available_providers
from .config import Settings, load_settings
from .events import AgentEvent, AgentEventType
from .exceptions import AgentBusyError
from .logging import setup_logging

_MAX_OUTPUT_PREVIEW = 500


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Agent Controller CLI")
    parser.add_argument(
        "--provider",
        help=f"Provider entry to use (built-in providers: {', '.join(get_available_providers())})"
    )
    parser.add_argument(
        "--model",
        help="Model to use (overrides config)"
    )
    parser.add_argument(
        "--config",
        help="YAML settings file (default: config.yaml if present)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (also settable via AGENT_CONTROLLER_LOG_LEVEL env var)"
    )
    parser.add_argument(
        "--no-tools",
        action="store_true",
        help="Do not offer tools to the model"
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the API server instead of CLI"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the API server (default: 8000)"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for the API server (default: 127.0.0.1)"
    )
    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Load settings and apply the CLI overrides.

    Priority order:
    1. CLI arguments
    2. Config file (--config, or config.yaml)
    3. Environment variables (via pydantic settings)
    4. Auto-detection based on available API keys
    """
    path = args.config
    if path is None and os.path.exists("config.yaml"):
        path = "config.yaml"

    overrides = {}
    if args.no_tools:
        overrides["tools_enabled"] = False
    settings = load_settings(path, **overrides)

    if args.provider:
        settings.default_provider = args.provider
    if args.model:
        provider_config = settings.get_provider()
        if provider_config is not None:
            provider_config.model = args.model
    return settings


def _start_server(host: str, port: int) -> None:
    """Start the API server."""
    try:
        import uvicorn

        from .api import app
    except ImportError:
        print("Error: API dependencies not installed.")
        print("Install with: pip install 'agent-controller[api]'")
        sys.exit(1)

    print(f"Starting API server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    uvicorn.run(app, host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the agent controller CLI."""
    args = build_parser().parse_args(argv)

    # setup logging early
    setup_logging(args.log_level)

    if args.serve:
        _start_server(args.host, args.port)
        return

    settings = resolve_settings(args)
    if settings.get_provider() is None:
        print("Error: No provider configured and no API keys found.")
        print("Please set one of the following:")
        print("  - providers / default_provider in config.yaml")
        print("  - ANTHROPIC_API_KEY, OPENAI_API_KEY, GOOGLE_API_KEY or MISTRAL_API_KEY")
        sys.exit(1)

    provider_config = settings.get_provider()
    print(f"Using provider: {provider_config.id}")
    if provider_config.model:
        print(f"Using model: {provider_config.model}")

    try:
        asyncio.run(run_cli(settings))
    except KeyboardInterrupt:
        print("\nGoodbye!")


async def run_cli(settings: Settings) -> None:
    factory = AgentManagerFactory(settings)
    await factory.initialize()
    for server in settings.mcp_servers:
        if server.enabled and not factory.is_mcp_server_connected(server.name):
            print(f"  Warning: MCP server '{server.name}' is not connected, skipping.")

    manager = factory.create_agent()
    if not manager.has_valid_config():
        print("Warning: the active provider is not fully configured.")
    try:
        await run_repl(manager)
    finally:
        await factory.close()


class EventPrinter:
    """Renders agent events to the terminal.

    Approval requests are queued for the REPL to prompt for.
    """

    def __init__(self):
        self.approvals: asyncio.Queue[AgentEvent] = asyncio.Queue()

    def __call__(self, event: AgentEvent) -> None:
        data = event.data
        if event.type == AgentEventType.MESSAGE_START:
            print("\nAgent: ", end="", flush=True)
        elif event.type == AgentEventType.MESSAGE_CHUNK:
            print(data.chunk, end="", flush=True)
        elif event.type == AgentEventType.MESSAGE_COMPLETE:
            print()
        elif event.type == AgentEventType.TOOL_CALL_START:
            print(f"\n[tool] {data.tool_name}\n{data.input}")
        elif event.type == AgentEventType.TOOL_CALL_COMPLETE:
            output = data.output
            if len(output) > _MAX_OUTPUT_PREVIEW:
                output = output[:_MAX_OUTPUT_PREVIEW] + "..."
            label = "error" if data.is_error else "result"
            print(f"[{label}] {data.tool_name}: {output}")
        elif event.type == AgentEventType.ERROR:
            print(f"\nError: {data.error}")
        elif event.type in (
            AgentEventType.TOOL_APPROVAL_REQUIRED,
            AgentEventType.GROUPED_APPROVAL_REQUIRED,
        ):
            self.approvals.put_nowait(event)


async def _ask(prompt: str) -> str:
    try:
        answer = await asyncio.to_thread(input, prompt)
    except EOFError:
        return ""
    return answer.strip().lower()


async def prompt_approval(manager: AgentManager, event: AgentEvent) -> None:
    """Ask the user to resolve an approval event."""
    data = event.data
    if event.type == AgentEventType.TOOL_APPROVAL_REQUIRED:
        print(f"\n[Approve] {data.tool_name}\n{data.tool_input}")
        answer = await _ask("Run this tool? (y/n): ")
        if answer == "y":
            manager.approve(data.interruption_id)
        else:
            manager.reject(data.interruption_id)
        return

    print(f"\n[Approve] {len(data.approvals)} tool calls:")
    for i, request in enumerate(data.approvals, 1):
        print(f"  {i}. {request.tool_name}\n{request.tool_input}")
    answer = await _ask("(a)pprove all, (r)eject all, or decide (o)ne by one: ")
    if answer == "a":
        manager.approve_group(data.group_id)
    elif answer == "o":
        for request in data.approvals:
            one = await _ask(f"Run {request.tool_name}? (y/n): ")
            if one == "y":
                manager.approve(request.interruption_id)
            else:
                manager.reject(request.interruption_id)
    else:
        manager.reject_group(data.group_id)


async def run_turn_interactive(manager: AgentManager, printer: EventPrinter, message: str) -> None:
    """Run one turn, prompting for approvals; Ctrl-C cancels the turn."""
    loop = asyncio.get_running_loop()
    # approvals left over from a cancelled turn
    while not printer.approvals.empty():
        printer.approvals.get_nowait()
    task = asyncio.ensure_future(manager.run_turn(message))

    try:
        loop.add_signal_handler(signal.SIGINT, manager.cancel)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        handles_sigint = False

    try:
        while not task.done():
            approval = asyncio.ensure_future(printer.approvals.get())
            await asyncio.wait({task, approval}, return_when=asyncio.FIRST_COMPLETED)
            if approval.done():
                await prompt_approval(manager, approval.result())
            else:
                approval.cancel()
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    result = task.result()
    if result.is_cancelled:
        print("\n[cancelled]")


async def run_repl(manager: AgentManager) -> None:
    """Run the interactive REPL loop.

    Args:
        manager: The AgentManager instance to use.
    """
    printer = EventPrinter()
    manager.add_event_listener(printer)

    print("Agent Controller Initialized. Type 'exit' to quit, '/clear' to reset, '/usage' for tokens.")
    print("-" * 50)

    while True:
        try:
            user_input = await asyncio.to_thread(input, "\nYou: ")
        except EOFError:
            print("\nGoodbye!")
            break

        command = user_input.strip()
        if command.lower() in ("exit", "quit"):
            print("Goodbye!")
            break
        if not command:
            continue
        if command == "/clear":
            manager.clear_history()
            print("History cleared.")
            continue
        if command == "/usage":
            usage = manager.token_usage
            print(f"Tokens: {usage.input_tokens} in / {usage.output_tokens} out")
            continue

        try:
            await run_turn_interactive(manager, printer, user_input)
        except AgentBusyError as e:
            print(f"Agent busy: {e}")


if __name__ == "__main__":
    main()
