"""Tests for the command line entry point."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import text_response, tool_response

from agent_controller import main as cli
from agent_controller.events import (
    ApprovalRequest,
    GroupedApprovalRequired,
    ToolApprovalRequired,
    make_event,
)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestResolveSettings:
    def test_config_yaml_in_working_directory(self, workdir):
        (workdir / "config.yaml").write_text(
            "providers:\n"
            "  - id: local\n"
            "    provider: generic\n"
        )

        settings = cli.resolve_settings(parse())
        assert settings.default_provider == "local"

    def test_cli_overrides(self, workdir):
        path = workdir / "agent.yaml"
        path.write_text(
            "providers:\n"
            "  - id: local\n"
            "    provider: generic\n"
            "  - id: other\n"
            "    provider: generic\n"
        )

        settings = cli.resolve_settings(
            parse("--config", str(path), "--provider", "other", "--model", "qwen", "--no-tools")
        )

        assert settings.default_provider == "other"
        assert settings.get_provider().model == "qwen"
        assert settings.get_provider("local").model is None
        assert settings.tools_enabled is False


class TestPromptApproval:
    @pytest.mark.anyio
    async def test_single_approval(self, monkeypatch):
        monkeypatch.setattr(cli, "_ask", AsyncMock(return_value="y"))
        manager = MagicMock()
        event = make_event(ToolApprovalRequired("int-1", "write_file", "{}", call_id="call_1"))

        await cli.prompt_approval(manager, event)

        manager.approve.assert_called_once_with("int-1")

    @pytest.mark.anyio
    async def test_single_rejection(self, monkeypatch):
        monkeypatch.setattr(cli, "_ask", AsyncMock(return_value="n"))
        manager = MagicMock()
        event = make_event(ToolApprovalRequired("int-1", "write_file", "{}"))

        await cli.prompt_approval(manager, event)

        manager.reject.assert_called_once_with("int-1")

    @pytest.mark.anyio
    async def test_grouped_one_by_one(self, monkeypatch):
        monkeypatch.setattr(cli, "_ask", AsyncMock(side_effect=["o", "y", "n"]))
        manager = MagicMock()
        event = make_event(GroupedApprovalRequired("group-1", (
            ApprovalRequest("int-1", "write_file", "{}"),
            ApprovalRequest("int-2", "write_file", "{}"),
        )))

        await cli.prompt_approval(manager, event)

        manager.approve.assert_called_once_with("int-1")
        manager.reject.assert_called_once_with("int-2")

    @pytest.mark.anyio
    async def test_grouped_reject_all(self, monkeypatch):
        monkeypatch.setattr(cli, "_ask", AsyncMock(return_value="r"))
        manager = MagicMock()
        event = make_event(GroupedApprovalRequired("group-1", (
            ApprovalRequest("int-1", "write_file", "{}"),
        )))

        await cli.prompt_approval(manager, event)

        manager.reject_group.assert_called_once_with("group-1")


class TestInteractiveTurn:
    @pytest.mark.anyio
    async def test_approval_prompted_during_turn(self, manager, client, write_tool, monkeypatch, capsys):
        monkeypatch.setattr(cli, "_ask", AsyncMock(return_value="y"))
        client.responses.extend([
            tool_response(("call_1", "write_file", {"path": "notes.txt", "content": "hi"})),
            text_response("Done"),
        ])
        printer = cli.EventPrinter()
        manager.add_event_listener(printer)

        await cli.run_turn_interactive(manager, printer, "write my notes")

        assert write_tool.files == {"notes.txt": "hi"}
        out = capsys.readouterr().out
        assert "[Approve] write_file" in out
        assert "Agent: Done" in out
