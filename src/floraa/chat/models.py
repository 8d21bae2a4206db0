"""
Request and response payloads of the AI chat endpoint.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    project_id: str
    conversation_id: str
    chat_mode: Literal["single", "multi-agent"] = "multi-agent"
    selected_model: str = "claude-3-5-sonnet"
    context: Optional[Dict[str, Any]] = None


class ChatAction(BaseModel):
    """Client-side follow-up, e.g. inserting generated code."""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class AgentResponse(BaseModel):
    agent: str
    content: str
    confidence: float
    processing_time: int
    model: str
    actions: Optional[List[ChatAction]] = None


class ChatResponse(BaseModel):
    """
    Result of one chat exchange.

    Multi-agent mode fills ``responses``; single mode fills ``response``.
    ``error`` is only set on failure.
    """
    response: Optional[str] = None
    responses: Optional[List[AgentResponse]] = None
    actions: Optional[List[ChatAction]] = None
    confidence: float
    processing_time: int
    model: str
    error: Optional[str] = None

    @property
    def status_code(self) -> int:
        return 500 if self.error else 200
