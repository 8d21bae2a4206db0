"""
Message and task models for the multi-agent system.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from floraa.context.models import new_id, now_iso

Priority = Literal["low", "medium", "high", "urgent"]

PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


class AgentType(str, Enum):
    """Roles an agent can play."""
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    REVIEWER = "reviewer"
    TESTER = "tester"
    DEVOPS = "devops"
    DESIGNER = "designer"
    SECURITY = "security"
    PERFORMANCE = "performance"
    COORDINATOR = "coordinator"


class AgentMessage(BaseModel):
    """
    A message between agents (or between the user and an agent).

    ``to`` of None means broadcast to every agent except the sender.
    """
    id: str = Field(default_factory=new_id)
    from_agent: str = Field(..., alias="from")
    to: Optional[str] = None
    type: Literal["request", "response", "notification", "collaboration"]
    content: str
    data: Optional[Dict[str, Any]] = None
    priority: Priority = "medium"
    timestamp: str = Field(default_factory=now_iso)
    project_id: str
    conversation_id: str

    class Config:
        populate_by_name = True

    def reply(self, sender: str, content: str, data: Optional[Dict[str, Any]] = None) -> "AgentMessage":
        """Response addressed back to this message's sender."""
        return AgentMessage(
            from_agent=sender,
            to=self.from_agent,
            type="response",
            content=content,
            data=data,
            priority=self.priority,
            project_id=self.project_id,
            conversation_id=self.conversation_id,
        )


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    type: Literal["code", "review", "test", "deploy", "design", "architecture", "security"]
    priority: Priority = "medium"
    status: Literal["pending", "in_progress", "completed", "failed", "blocked"] = "pending"
    assigned_to: str = ""
    dependencies: List[str] = Field(default_factory=list)
    estimated_time: Optional[float] = None
    actual_time: Optional[float] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
