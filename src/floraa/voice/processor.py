"""
Voice command processor behind ``POST /api/voice/process``.

Each intent has a handler. Most forward a prefixed query to the multi-agent
system and attach a client action; navigation and file operations are
answered locally.
"""

from typing import Any, Dict, List, NamedTuple, Optional

from floraa.core.logging import get_logger
from floraa.context.models import new_id
from floraa.voice import intent as intents
from floraa.voice.models import (
    ContextAnalysis, VoiceAction, VoiceCommand, VoiceIntent, VoiceProcessResult,
)

logger = get_logger(__name__)

DEFAULT_PROJECT = "default"
DEFAULT_LANGUAGE = "javascript"


class AgentHandler(NamedTuple):
    """How an intent is forwarded to the agents and presented back."""
    prefix: str
    action_type: str
    data_key: str
    lead_in: str
    confidence: float
    apology: str


AGENT_HANDLERS: Dict[VoiceIntent, AgentHandler] = {
    VoiceIntent.CODE_GENERATION: AgentHandler(
        "Generate code: ", "open_editor", "content",
        "I've generated the code for you.", 0.9,
        "I encountered an error while generating the code. Could you please try rephrasing your request?",
    ),
    VoiceIntent.CODE_EXPLANATION: AgentHandler(
        "Explain code: ", "highlight_code", "explanation",
        "Let me explain that for you.", 0.85,
        "I had trouble explaining that code. Could you be more specific about what you'd like me to explain?",
    ),
    VoiceIntent.CODE_MODIFICATION: AgentHandler(
        "Modify code: ", "modify_code", "modification",
        "I've made the requested modifications.", 0.8,
        "I couldn't complete the modification. Could you provide more details about what you'd like to change?",
    ),
    VoiceIntent.DEBUGGING: AgentHandler(
        "Debug: ", "debug_code", "analysis",
        "I've analyzed the issue.", 0.8,
        "I had trouble debugging that issue. Could you provide more details about the problem?",
    ),
    VoiceIntent.TESTING: AgentHandler(
        "Generate tests: ", "create_tests", "tests",
        "I've created tests for you.", 0.85,
        "I had trouble creating tests. Could you specify what you'd like to test?",
    ),
    VoiceIntent.DEPLOYMENT: AgentHandler(
        "Deploy: ", "deploy", "deployment",
        "I've initiated the deployment process.", 0.8,
        "I encountered an issue with the deployment. Could you check the deployment configuration?",
    ),
}

APOLOGY_CONFIDENCE = 0.3


class VoiceCommandProcessor:
    """Turns voice commands into spoken replies and client actions."""

    def __init__(self, multi_agent_system=None, context_manager=None):
        self._multi_agent_system = multi_agent_system
        self._context_manager = context_manager

    @property
    def multi_agent_system(self):
        if self._multi_agent_system is None:
            from floraa.agents.system import get_multi_agent_system
            self._multi_agent_system = get_multi_agent_system()
        return self._multi_agent_system

    @property
    def context_manager(self):
        if self._context_manager is None:
            from floraa.context.manager import get_context_manager
            self._context_manager = get_context_manager()
        return self._context_manager

    async def process(self,
                      command: VoiceCommand,
                      context: Optional[List[VoiceCommand]] = None,
                      project_id: Optional[str] = None,
                      conversation_id: Optional[str] = None) -> VoiceProcessResult:
        """
        Handle one command.

        ``context`` holds the previous commands of the session and is used to
        refine the intent. Handler failures become a low-confidence apology.
        """
        command = intents.enhance_command(command)
        analysis = intents.analyze_conversation_context(context) if context else None
        intent = intents.refine_intent(command.intent, command.transcript, analysis)

        if project_id:
            await self.context_manager.get_project_context(project_id)

        logger.info(f"Voice command {command.id} classified as {intent.value}")

        if intent == VoiceIntent.NAVIGATION:
            return self._handle_navigation(command)
        if intent == VoiceIntent.FILE_OPERATION:
            return self._handle_file_operation(command)

        return await self._handle_with_agents(
            intent, command, analysis,
            project_id or DEFAULT_PROJECT,
            conversation_id or new_id(),
        )

    async def _handle_with_agents(self,
                                  intent: VoiceIntent,
                                  command: VoiceCommand,
                                  analysis: Optional[ContextAnalysis],
                                  project_id: str,
                                  conversation_id: str) -> VoiceProcessResult:
        handler = AGENT_HANDLERS[intent]
        try:
            response = await self.multi_agent_system.process_user_query(
                project_id, f"{handler.prefix}{command.transcript}", conversation_id
            )
        except Exception as e:
            logger.error(f"{intent.value} handler error: {e}")
            return VoiceProcessResult(response=handler.apology, confidence=APOLOGY_CONFIDENCE)

        actions = self._actions_for(intent, handler, command, analysis, response)
        return VoiceProcessResult(
            response=f"{handler.lead_in} {response}",
            actions=actions,
            confidence=handler.confidence,
        )

    @staticmethod
    def _actions_for(intent: VoiceIntent,
                     handler: AgentHandler,
                     command: VoiceCommand,
                     analysis: Optional[ContextAnalysis],
                     response: str) -> List[VoiceAction]:
        data: Dict[str, Any] = {handler.data_key: response}

        if intent == VoiceIntent.CODE_MODIFICATION:
            data["context"] = analysis.model_dump() if analysis else None

        if intent != VoiceIntent.CODE_GENERATION:
            return [VoiceAction(type=handler.action_type, data=data)]

        language_entity = intents.find_entity(command.entities, "programming_language")
        type_entity = intents.find_entity(command.entities, "file_type")
        language = language_entity.value if language_entity else DEFAULT_LANGUAGE
        data["language"] = language

        actions = []
        if type_entity:
            actions.append(VoiceAction(type="create_file", data={
                "type": type_entity.value,
                "language": language,
                "content": response,
            }))
        actions.append(VoiceAction(type=handler.action_type, data=data))
        return actions

    @staticmethod
    def _handle_navigation(command: VoiceCommand) -> VoiceProcessResult:
        transcript = command.transcript.lower()
        if "open" in transcript or "go to" in transcript:
            target = intents.extract_navigation_target(transcript)
            if target:
                return VoiceProcessResult(
                    response=f"Navigating to {target}",
                    actions=[VoiceAction(type="navigate", data={"target": target})],
                    confidence=0.9,
                )
        return VoiceProcessResult(
            response="I'm not sure where you'd like to navigate. Could you be more specific?",
            confidence=APOLOGY_CONFIDENCE,
        )

    @staticmethod
    def _handle_file_operation(command: VoiceCommand) -> VoiceProcessResult:
        file_name = intents.extract_file_name(command.transcript)
        if file_name:
            return VoiceProcessResult(
                response=f"Creating file {file_name}",
                actions=[VoiceAction(type="create_file", data={"file_name": file_name})],
                confidence=0.9,
            )
        return VoiceProcessResult(
            response="I'm not sure what file operation you'd like to perform. Could you be more specific?",
            confidence=APOLOGY_CONFIDENCE,
        )
