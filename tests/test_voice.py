"""Tests for voice command handling."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from floraa.core.message_bus import MessageBus, VoiceCommandReceived, VoiceResponseReady
from floraa.voice import intent as intents
from floraa.voice.models import ContextAnalysis, VoiceCommand, VoiceIntent, VoiceProcessResult
from floraa.voice.processor import AGENT_HANDLERS, VoiceCommandProcessor
from floraa.voice.system import ERROR_REPLY, VoiceToCodeSystem


@pytest.fixture
def agents():
    system = MagicMock()
    system.process_user_query = AsyncMock(return_value="Agent reply")
    return system


@pytest.fixture
def processor(agents, context_manager):
    return VoiceCommandProcessor(multi_agent_system=agents, context_manager=context_manager)


class TestIntentAnalysis:

    @pytest.mark.parametrize("transcript,expected", [
        ("Create a login form", VoiceIntent.CODE_GENERATION),
        ("new file utils.py", VoiceIntent.FILE_OPERATION),
        ("create file helpers.ts", VoiceIntent.FILE_OPERATION),
        ("Explain this loop", VoiceIntent.CODE_EXPLANATION),
        ("Please update the header", VoiceIntent.CODE_MODIFICATION),
        ("open the settings page", VoiceIntent.NAVIGATION),
        ("fix the error in login", VoiceIntent.DEBUGGING),
        ("run the test suite", VoiceIntent.TESTING),
        ("deploy to production", VoiceIntent.DEPLOYMENT),
        ("hello there", VoiceIntent.CODE_GENERATION),
    ])
    def test_analyze_intent(self, transcript, expected):
        assert intents.analyze_intent(transcript) == expected

    def test_extract_entities(self):
        entities = intents.extract_entities("create a react component in typescript with function handleClick")

        found = {(e.type, e.value) for e in entities}
        assert ("programming_language", "typescript") in found
        assert ("programming_language", "react") in found
        assert ("file_type", "component") in found
        assert ("file_type", "function") in found
        assert ("function_name", "handleClick") in found
        assert intents.find_entity(entities, "function_name").confidence == 0.7
        assert intents.find_entity(entities, "missing") is None

    def test_enhance_keeps_existing_values(self):
        command = VoiceCommand(transcript="create a python class", intent=VoiceIntent.TESTING, entities=[])

        enhanced = intents.enhance_command(command)

        assert enhanced.intent == VoiceIntent.TESTING
        assert enhanced.entities == []
        assert command.intent == VoiceIntent.TESTING

    def test_enhance_fills_missing(self):
        enhanced = intents.enhance_command(VoiceCommand(transcript="create a python class"))

        assert enhanced.intent == VoiceIntent.CODE_GENERATION
        assert {e.value for e in enhanced.entities} == {"python", "class"}

    def test_conversation_context(self):
        context = [
            VoiceCommand(transcript="create an api route in app.py", intent=VoiceIntent.CODE_GENERATION),
            VoiceCommand(transcript="explain the database layer in models.py", intent=VoiceIntent.CODE_EXPLANATION),
            VoiceCommand(transcript="open app.py", intent=VoiceIntent.NAVIGATION),
        ]

        analysis = intents.analyze_conversation_context(context)

        assert analysis.current_task == "create an api route in app.py"
        assert analysis.recent_topics == ["api", "database"]
        assert analysis.working_files == ["app.py", "models.py"]

    def test_refine_intent(self):
        analysis = ContextAnalysis(current_task="create a form")

        assert intents.refine_intent(VoiceIntent.CODE_GENERATION, "add a field", analysis) == VoiceIntent.CODE_MODIFICATION
        assert intents.refine_intent(VoiceIntent.CODE_GENERATION, "add a field", None) == VoiceIntent.CODE_GENERATION
        assert intents.refine_intent(VoiceIntent.CODE_GENERATION, "add a field",
                                     ContextAnalysis()) == VoiceIntent.CODE_GENERATION
        assert intents.refine_intent(VoiceIntent.DEBUGGING, "add logging", analysis) == VoiceIntent.DEBUGGING

    def test_navigation_and_file_names(self):
        assert intents.extract_navigation_target("go to the dashboard") == "the dashboard"
        assert intents.extract_navigation_target("show me the logs") == "the logs"
        assert intents.extract_navigation_target("nowhere") is None
        assert intents.extract_file_name("make a file called notes.md") == "notes.md"
        assert intents.extract_file_name("file please") is None

    def test_command_patterns_cover_categories(self):
        assert set(intents.VOICE_COMMAND_PATTERNS) == {
            "code_generation", "code_modification", "navigation", "debugging", "explanation",
        }


class TestVoiceCommandProcessor:

    @pytest.mark.asyncio
    async def test_code_generation(self, processor, agents):
        result = await processor.process(VoiceCommand(transcript="create a react component"))

        assert result.response == "I've generated the code for you. Agent reply"
        assert result.confidence == 0.9
        assert [a.type for a in result.actions] == ["create_file", "open_editor"]
        assert result.actions[0].data == {"type": "component", "language": "react", "content": "Agent reply"}
        assert result.actions[1].data == {"content": "Agent reply", "language": "react"}

        project_id, query, conversation_id = agents.process_user_query.call_args.args
        assert project_id == "default"
        assert query == "Generate code: create a react component"
        assert conversation_id

    @pytest.mark.asyncio
    async def test_generation_defaults_to_javascript(self, processor):
        result = await processor.process(VoiceCommand(transcript="generate a login form"))

        assert [a.type for a in result.actions] == ["open_editor"]
        assert result.actions[0].data["language"] == "javascript"

    @pytest.mark.asyncio
    async def test_uses_given_ids(self, processor, agents):
        await processor.process(VoiceCommand(transcript="explain it"), project_id="proj-9", conversation_id="conv-9")

        agents.process_user_query.assert_awaited_once_with("proj-9", "Explain code: explain it", "conv-9")

    @pytest.mark.parametrize("transcript,action_type,data_key,confidence", [
        ("explain the router", "highlight_code", "explanation", 0.85),
        ("fix the crash", "debug_code", "analysis", 0.8),
        ("run the test suite", "create_tests", "tests", 0.85),
        ("release version two", "deploy", "deployment", 0.8),
    ])
    @pytest.mark.asyncio
    async def test_agent_handlers(self, processor, transcript, action_type, data_key, confidence):
        result = await processor.process(VoiceCommand(transcript=transcript))

        assert result.confidence == confidence
        assert result.actions[0].type == action_type
        assert result.actions[0].data == {data_key: "Agent reply"}

    @pytest.mark.asyncio
    async def test_modification_with_context(self, processor, agents):
        context = [VoiceCommand(transcript="create a login form", intent=VoiceIntent.CODE_GENERATION)]

        result = await processor.process(VoiceCommand(transcript="add a password field"), context)

        assert result.response == "I've made the requested modifications. Agent reply"
        assert result.actions[0].type == "modify_code"
        assert result.actions[0].data["context"]["current_task"] == "create a login form"
        assert agents.process_user_query.call_args.args[1] == "Modify code: add a password field"

    @pytest.mark.asyncio
    async def test_agent_failure_apologises(self, processor, agents):
        agents.process_user_query.side_effect = RuntimeError("offline")

        result = await processor.process(VoiceCommand(transcript="debug the parser"))

        assert result.response == AGENT_HANDLERS[VoiceIntent.DEBUGGING].apology
        assert result.confidence == 0.3
        assert result.actions is None

    @pytest.mark.asyncio
    async def test_navigation(self, processor, agents):
        result = await processor.process(VoiceCommand(transcript="Open the Settings page"))

        assert result.response == "Navigating to the settings page"
        assert result.actions[0].data == {"target": "the settings page"}
        agents.process_user_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_navigation_without_target(self, processor):
        result = await processor.process(VoiceCommand(transcript="navigate somewhere"))

        assert result.confidence == 0.3
        assert result.actions is None

    @pytest.mark.asyncio
    async def test_file_operation(self, processor):
        result = await processor.process(VoiceCommand(transcript="create file utils.py"))

        assert result.response == "Creating file utils.py"
        assert result.actions[0].type == "create_file"
        assert result.actions[0].data == {"file_name": "utils.py"}
        assert result.confidence == 0.9

    @pytest.mark.asyncio
    async def test_file_operation_without_name(self, processor):
        result = await processor.process(VoiceCommand(transcript="make a file called"))

        assert result.confidence == 0.3
        assert result.actions is None


class TestVoiceToCodeSystem:

    @pytest.fixture
    def bus(self):
        return MessageBus()

    @pytest.fixture
    def voice(self, processor, bus):
        return VoiceToCodeSystem(processor=processor, message_bus=bus)

    @pytest.mark.asyncio
    async def test_process_text_command(self, voice, bus):
        received, ready = [], []
        bus.subscribe(VoiceCommandReceived, received.append)
        bus.subscribe(VoiceResponseReady, ready.append)

        response = await voice.process_text_command("open the dashboard")

        assert response.text == "Navigating to the dashboard"
        assert response.actions[0].type == "navigate"
        assert received[0].intent == "navigation"
        assert ready[0].response_id == response.id
        assert ready[0].command_id == received[0].command_id
        assert not voice.is_processing

    @pytest.mark.asyncio
    async def test_listeners(self, voice):
        commands, responses = [], []
        voice.on_voice_command(commands.append)
        unsubscribe = voice.on_voice_response(responses.append)

        await voice.process_text_command("open the dashboard")
        unsubscribe()
        await voice.process_text_command("open the logs")

        assert [c.transcript for c in commands] == ["open the dashboard", "open the logs"]
        assert commands[0].intent == VoiceIntent.NAVIGATION
        assert len(responses) == 1

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self, voice):
        def broken(_command):
            raise RuntimeError("listener bug")

        voice.on_voice_command(broken)

        response = await voice.process_text_command("open the dashboard")

        assert response.text == "Navigating to the dashboard"

    @pytest.mark.asyncio
    async def test_busy_drops_command(self, voice):
        voice.is_processing = True

        assert await voice.process_text_command("open the dashboard") is None
        assert voice.get_context() == []

    @pytest.mark.asyncio
    async def test_context_is_bounded(self, processor, bus):
        voice = VoiceToCodeSystem(processor=processor, message_bus=bus, max_context_size=3)

        for name in ("a", "b", "c", "d"):
            await voice.process_text_command(f"open {name}")

        assert [c.transcript for c in voice.get_context()] == ["open b", "open c", "open d"]
        voice.clear_context()
        assert voice.get_context() == []

    @pytest.mark.asyncio
    async def test_history_excludes_current_command(self, bus):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=VoiceProcessResult(response="ok", confidence=1.0))
        voice = VoiceToCodeSystem(processor=processor, message_bus=bus, context_window=2)

        for text in ("one", "two", "three", "four"):
            await voice.process_text_command(text, project_id="proj-1")

        command, history, project_id, conversation_id = processor.process.call_args.args
        assert command.transcript == "four"
        assert [c.transcript for c in history] == ["two", "three"]
        assert project_id == "proj-1"
        assert conversation_id is None

    @pytest.mark.asyncio
    async def test_processor_error(self, bus):
        processor = MagicMock()
        processor.process = AsyncMock(side_effect=RuntimeError("boom"))
        voice = VoiceToCodeSystem(processor=processor, message_bus=bus)

        response = await voice.process_text_command("anything")

        assert response.text == ERROR_REPLY
        assert not voice.is_processing

    @pytest.mark.asyncio
    async def test_language(self, voice):
        voice.set_language("de-DE")

        await voice.process_text_command("open the dashboard")

        assert voice.get_context()[0].language == "de-DE"
