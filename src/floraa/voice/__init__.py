"""
Voice-to-code: intent analysis, command processing and sessions.
"""

from floraa.voice.models import (
    VoiceIntent, VoiceEntity, VoiceCommand, VoiceAction, VoiceResponse,
    VoiceProcessRequest, VoiceProcessResult,
)
from floraa.voice.intent import VOICE_COMMAND_PATTERNS, analyze_intent, extract_entities
from floraa.voice.processor import VoiceCommandProcessor
from floraa.voice.system import VoiceToCodeSystem, get_voice_system

__all__ = [
    "VoiceIntent",
    "VoiceEntity",
    "VoiceCommand",
    "VoiceAction",
    "VoiceResponse",
    "VoiceProcessRequest",
    "VoiceProcessResult",
    "VOICE_COMMAND_PATTERNS",
    "analyze_intent",
    "extract_entities",
    "VoiceCommandProcessor",
    "VoiceToCodeSystem",
    "get_voice_system",
]
