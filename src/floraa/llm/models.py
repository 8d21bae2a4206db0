"""
Request and result models for the LLM service.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from floraa.context.models import ProjectContext
from floraa.llm_providers.base import Message


class LLMConfig(BaseModel):
    """Explicit model choice and sampling parameters for one call."""
    provider: Literal["openai", "anthropic", "google"]
    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0


class ConversationContext(BaseModel):
    project_id: str
    agent_type: str
    conversation_id: str
    messages: List[Message] = Field(default_factory=list)
    system_prompt: str = ""
    project_context: Optional[ProjectContext] = None
    relevant_memories: Optional[List[Any]] = None


class CodeGenerationResult(BaseModel):
    code: str
    explanation: str = ""
    suggestions: List[str] = Field(default_factory=list)
    tests: Optional[str] = None
    language: Optional[str] = None


class ReviewIssue(BaseModel):
    type: Literal["error", "warning", "suggestion"]
    message: str
    line: Optional[int] = None
    severity: Literal["low", "medium", "high"] = "medium"


class CodeReviewResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    issues: List[ReviewIssue] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    summary: str = ""


class CodeExplanationResult(BaseModel):
    explanation: str
    key_components: List[str] = Field(default_factory=list)
    flow_description: str = ""
    related_concepts: List[str] = Field(default_factory=list)
