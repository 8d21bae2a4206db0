"""
Voice session: keeps a bounded buffer of recent commands, notifies command
and response listeners and executes commands through the processor.
"""

from collections import deque
from typing import Callable, Deque, List, Optional, Set

from floraa.core.logging import get_logger
from floraa.core.message_bus import MessageBus, VoiceCommandReceived, VoiceResponseReady, get_message_bus
from floraa.voice.intent import enhance_command
from floraa.voice.models import VoiceCommand, VoiceResponse
from floraa.voice.processor import VoiceCommandProcessor

logger = get_logger(__name__)

ERROR_REPLY = "Sorry, I encountered an error processing your request."

CommandListener = Callable[[VoiceCommand], None]
ResponseListener = Callable[[VoiceResponse], None]


class VoiceToCodeSystem:
    """Text-driven voice-to-code session."""

    def __init__(self,
                 processor: Optional[VoiceCommandProcessor] = None,
                 message_bus: Optional[MessageBus] = None,
                 max_context_size: int = 10,
                 context_window: int = 5):
        self.processor = processor or VoiceCommandProcessor()
        self.message_bus = message_bus or get_message_bus()
        self.language = "en-US"
        self.is_processing = False
        self.context_window = context_window
        self._context: Deque[VoiceCommand] = deque(maxlen=max_context_size)
        self._command_listeners: Set[CommandListener] = set()
        self._response_listeners: Set[ResponseListener] = set()

    def on_voice_command(self, listener: CommandListener) -> Callable[[], None]:
        self._command_listeners.add(listener)
        return lambda: self._command_listeners.discard(listener)

    def on_voice_response(self, listener: ResponseListener) -> Callable[[], None]:
        self._response_listeners.add(listener)
        return lambda: self._response_listeners.discard(listener)

    def _notify(self, listeners, item) -> None:
        for listener in list(listeners):
            try:
                listener(item)
            except Exception as e:
                logger.error(f"Voice listener failed: {e}")

    async def process_text_command(self,
                                   text: str,
                                   project_id: Optional[str] = None,
                                   conversation_id: Optional[str] = None) -> Optional[VoiceResponse]:
        """Treat typed text as a fully confident voice command."""
        command = VoiceCommand(transcript=text, confidence=1.0, language=self.language)
        return await self.process_voice_command(command, project_id, conversation_id)

    async def process_voice_command(self,
                                    command: VoiceCommand,
                                    project_id: Optional[str] = None,
                                    conversation_id: Optional[str] = None) -> Optional[VoiceResponse]:
        """
        Enrich, announce and execute one command.

        Returns:
            The response, or None when another command is still being processed
        """
        if self.is_processing:
            logger.debug(f"Dropped voice command {command.id}: already processing")
            return None

        self.is_processing = True
        try:
            self._context.append(command)
            command = enhance_command(command)
            self._context[-1] = command

            self._notify(self._command_listeners, command)
            await self.message_bus.publish(VoiceCommandReceived(
                source="voice",
                command_id=command.id,
                transcript=command.transcript,
                intent=command.intent.value if command.intent else None,
            ))

            response = await self._execute(command, project_id, conversation_id)
            self._notify(self._response_listeners, response)
            await self.message_bus.publish(VoiceResponseReady(
                source="voice",
                command_id=command.id,
                response_id=response.id,
                text=response.text,
            ))
            return response
        finally:
            self.is_processing = False

    async def _execute(self,
                       command: VoiceCommand,
                       project_id: Optional[str],
                       conversation_id: Optional[str]) -> VoiceResponse:
        history = list(self._context)[:-1][-self.context_window:]
        try:
            result = await self.processor.process(command, history, project_id, conversation_id)
            return VoiceResponse(text=result.response, actions=result.actions)
        except Exception as e:
            logger.error(f"Error executing voice command: {e}")
            return VoiceResponse(text=ERROR_REPLY)

    def get_context(self) -> List[VoiceCommand]:
        return list(self._context)

    def clear_context(self) -> None:
        self._context.clear()

    def set_language(self, language: str) -> None:
        self.language = language


_voice_system: Optional[VoiceToCodeSystem] = None


def get_voice_system() -> VoiceToCodeSystem:
    global _voice_system
    if _voice_system is None:
        _voice_system = VoiceToCodeSystem()
    return _voice_system
