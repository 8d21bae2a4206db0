"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from floraa import __version__
from floraa.chat.models import AgentResponse, ChatAction, ChatResponse
from floraa.cli.main import cli
from floraa.core.exceptions import GitHubAPIError
from floraa.updates.models import UpdateHistoryEntry, UpdateInfo, UpdateState, UpdateStatus
from floraa.voice.models import VoiceAction, VoiceResponse


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("floraa.cli.main.setup_logging") as setup:
        yield setup


@pytest.fixture
def update_manager():
    manager = MagicMock()
    manager.current_version = "1.0.0"
    with patch("floraa.updates.update_manager.get_update_manager", return_value=manager):
        yield manager


class TestCliBasics:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        for command in ("serve", "chat", "voice", "config", "updates", "models"):
            assert command in result.output

    def test_serve(self, runner):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--port", "9000"])

        assert result.exit_code == 0
        run.assert_called_once_with(
            "floraa.web_api.app:create_app", factory=True, host="127.0.0.1", port=9000, reload=False,
        )


class TestChatCommand:

    def test_multi_agent_reply(self, runner):
        service = MagicMock()
        service.handle = AsyncMock(return_value=ChatResponse(
            responses=[AgentResponse(
                agent="System Architect", content="Use a modular monolith.",
                confidence=0.85, processing_time=4, model="claude-3-5-sonnet",
            )],
            actions=[ChatAction(type="generate_code")],
            confidence=0.85, processing_time=12, model="claude-3-5-sonnet",
        ))

        with patch("floraa.chat.service.get_chat_service", return_value=service):
            result = runner.invoke(cli, ["chat", "Design a todo app", "-p", "proj-1"])

        assert result.exit_code == 0
        assert "System Architect" in result.output
        assert "Use a modular monolith." in result.output
        assert "generate_code" in result.output
        request = service.handle.call_args.args[0]
        assert request.project_id == "proj-1"
        assert request.chat_mode == "multi-agent"
        assert request.conversation_id

    def test_single_mode_with_conversation(self, runner):
        service = MagicMock()
        service.handle = AsyncMock(return_value=ChatResponse(
            response="Here is how it works.", confidence=0.8, processing_time=3, model="gpt-4",
        ))

        with patch("floraa.chat.service.get_chat_service", return_value=service):
            result = runner.invoke(cli, ["chat", "Explain it", "--mode", "single", "-c", "conv-7"])

        assert result.exit_code == 0
        assert "Here is how it works." in result.output
        assert service.handle.call_args.args[0].conversation_id == "conv-7"

    def test_error_exits_non_zero(self, runner):
        service = MagicMock()
        service.handle = AsyncMock(return_value=ChatResponse(
            error="Model not available", confidence=0, processing_time=1, model="error",
        ))

        with patch("floraa.chat.service.get_chat_service", return_value=service):
            result = runner.invoke(cli, ["chat", "Generate a form"])

        assert result.exit_code == 1
        assert "Model not available" in result.output


class TestVoiceCommand:

    def test_prints_reply_and_actions(self, runner):
        voice = MagicMock()
        voice.process_text_command = AsyncMock(return_value=VoiceResponse(
            text="Navigating to settings",
            actions=[VoiceAction(type="navigate", data={"target": "settings"})],
        ))

        with patch("floraa.voice.system.get_voice_system", return_value=voice):
            result = runner.invoke(cli, ["voice", "open settings", "--project", "proj-1"])

        assert result.exit_code == 0
        assert "Navigating to settings" in result.output
        assert '"target": "settings"' in result.output
        voice.process_text_command.assert_awaited_once_with("open settings", project_id="proj-1")

    def test_reply_without_actions(self, runner):
        voice = MagicMock()
        voice.process_text_command = AsyncMock(return_value=VoiceResponse(text="Sorry"))

        with patch("floraa.voice.system.get_voice_system", return_value=voice):
            result = runner.invoke(cli, ["voice", "hmm"])

        assert result.exit_code == 0
        assert "Sorry" in result.output

    def test_busy(self, runner):
        voice = MagicMock()
        voice.process_text_command = AsyncMock(return_value=None)

        with patch("floraa.voice.system.get_voice_system", return_value=voice):
            result = runner.invoke(cli, ["voice", "open settings"])

        assert "still being processed" in result.output


class TestConfigCommands:

    def test_show_section(self, runner, config_manager):
        result = runner.invoke(cli, ["config", "show", "--section", "update"])

        assert result.exit_code == 0
        assert "floraa-dev/floraa-saas" in result.output

    def test_show_unknown_section(self, runner, config_manager):
        result = runner.invoke(cli, ["config", "show", "-s", "nope"])

        assert result.exit_code == 1
        assert "Unknown section" in result.output

    def test_features(self, runner, config_manager):
        result = runner.invoke(cli, ["config", "features"])

        assert result.exit_code == 0
        assert "team_collaboration" in result.output

    def test_set_feature(self, runner, config_manager):
        result = runner.invoke(cli, ["config", "set-feature", "team_collaboration", "--enable"])

        assert result.exit_code == 0
        assert config_manager.is_feature_enabled("team_collaboration")

        runner.invoke(cli, ["config", "set-feature", "team_collaboration", "--disable"])
        assert not config_manager.is_feature_enabled("team_collaboration")

    def test_set_unknown_feature(self, runner, config_manager):
        result = runner.invoke(cli, ["config", "set-feature", "time_travel"])

        assert result.exit_code == 1
        assert "Unknown feature flag" in result.output


class TestUpdateCommands:

    def test_check_with_update(self, runner, update_manager):
        update_manager.check_for_updates = AsyncMock(return_value=UpdateInfo(
            current_version="1.0.0", latest_version="v1.1.0", has_update=True, changelog="- Faster",
        ))

        result = runner.invoke(cli, ["updates", "check"])

        assert result.exit_code == 0
        assert "v1.1.0" in result.output
        assert "- Faster" in result.output

    def test_check_up_to_date(self, runner, update_manager):
        update_manager.check_for_updates = AsyncMock(return_value=UpdateInfo(
            current_version="1.1.0", latest_version="v1.1.0", has_update=False,
        ))

        result = runner.invoke(cli, ["updates", "check"])

        assert "Up to date (1.1.0)" in result.output

    def test_check_failure(self, runner, update_manager):
        update_manager.check_for_updates = AsyncMock(side_effect=GitHubAPIError("GitHub API error", 404))

        result = runner.invoke(cli, ["updates", "check"])

        assert result.exit_code == 1
        assert "GitHub API error" in result.output

    def test_status(self, runner, update_manager):
        update_manager.get_update_status.return_value = UpdateStatus(
            state=UpdateState.FAILED, progress=0, message="Update failed", error="disk full",
        )

        result = runner.invoke(cli, ["updates", "status"])

        assert "Installed version: 1.0.0" in result.output
        assert "State: failed (0%)" in result.output
        assert "disk full" in result.output

    def test_empty_history(self, runner, update_manager):
        update_manager.get_update_history.return_value = []

        result = runner.invoke(cli, ["updates", "history"])

        assert "No updates recorded." in result.output

    def test_history(self, runner, update_manager):
        update_manager.get_update_history.return_value = [
            UpdateHistoryEntry(version="1.1.0", date="2024-01-01", status="success"),
        ]

        result = runner.invoke(cli, ["updates", "history"])

        assert "1.1.0" in result.output
        assert "success" in result.output


class TestModelsCommand:

    def test_lists_cards(self, runner):
        service = MagicMock()
        service.get_available_models.return_value = ["openai:gpt-4"]

        with patch("floraa.llm.llm_service.get_llm_service", return_value=service):
            result = runner.invoke(cli, ["models"])

        assert result.exit_code == 0
        assert "Models" in result.output
        service.get_available_models.assert_called_once_with()
