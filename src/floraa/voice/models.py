"""
Voice command and response models.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from floraa.context.models import new_id, now_iso


class VoiceIntent(str, Enum):
    CODE_GENERATION = "code_generation"
    CODE_EXPLANATION = "code_explanation"
    CODE_MODIFICATION = "code_modification"
    NAVIGATION = "navigation"
    FILE_OPERATION = "file_operation"
    DEBUGGING = "debugging"
    TESTING = "testing"
    DEPLOYMENT = "deployment"


class VoiceEntity(BaseModel):
    type: str
    value: str
    confidence: float


class VoiceCommand(BaseModel):
    """A final transcript, optionally enriched with intent and entities."""
    id: str = Field(default_factory=new_id)
    transcript: str
    confidence: float = 1.0
    language: str = "en-US"
    timestamp: str = Field(default_factory=now_iso)
    intent: Optional[VoiceIntent] = None
    entities: Optional[List[VoiceEntity]] = None


class VoiceAction(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class VoiceResponse(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    audio_url: Optional[str] = None
    actions: Optional[List[VoiceAction]] = None
    timestamp: str = Field(default_factory=now_iso)


class ContextAnalysis(BaseModel):
    """What the recent commands of a session were about."""
    recent_topics: List[str] = Field(default_factory=list)
    current_task: Optional[str] = None
    working_files: List[str] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)


class VoiceProcessRequest(BaseModel):
    command: VoiceCommand
    context: List[VoiceCommand] = Field(default_factory=list)
    project_id: Optional[str] = None
    conversation_id: Optional[str] = None


class VoiceProcessResult(BaseModel):
    response: str
    actions: Optional[List[VoiceAction]] = None
    should_speak: bool = True
    confidence: float
    processing_time: int = 0
