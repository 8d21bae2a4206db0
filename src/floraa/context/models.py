"""
Data models for project memory.
"""

from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
import uuid

from pydantic import BaseModel, Field


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class Architecture(BaseModel):
    type: Literal["monolith", "microservices", "serverless", "jamstack"] = "monolith"
    framework: str = ""
    database: str = ""
    deployment: str = ""
    patterns: List[str] = Field(default_factory=list)


class TechStack(BaseModel):
    frontend: List[str] = Field(default_factory=list)
    backend: List[str] = Field(default_factory=list)
    database: List[str] = Field(default_factory=list)
    infrastructure: List[str] = Field(default_factory=list)
    tools: List[str] = Field(default_factory=list)


class BusinessContext(BaseModel):
    goals: List[str] = Field(default_factory=list)
    target_audience: str = ""
    budget: Optional[float] = None
    timeline: Optional[str] = None
    constraints: List[str] = Field(default_factory=list)


class DevelopmentContext(BaseModel):
    phase: Literal["planning", "development", "testing", "deployment", "maintenance"] = "planning"
    current_features: List[str] = Field(default_factory=list)
    completed_features: List[str] = Field(default_factory=list)
    next_features: List[str] = Field(default_factory=list)
    blockers: List[str] = Field(default_factory=list)


class TeamMember(BaseModel):
    id: str
    name: str
    role: str
    skills: List[str] = Field(default_factory=list)
    preferences: Dict[str, Any] = Field(default_factory=dict)


class TeamContext(BaseModel):
    members: List[TeamMember] = Field(default_factory=list)
    working_hours: str = ""
    timezone: str = "UTC"
    communication_style: str = ""


class Learning(BaseModel):
    timestamp: str = Field(default_factory=now_iso)
    context: str
    decision: str
    outcome: str


class LearnedPattern(BaseModel):
    pattern: str
    frequency: int = 0
    success_rate: float = 0.0


class AIContext(BaseModel):
    preferences: Dict[str, Any] = Field(default_factory=dict)
    learnings: List[Learning] = Field(default_factory=list)
    patterns: List[LearnedPattern] = Field(default_factory=list)


class VersionEntry(BaseModel):
    version: str
    timestamp: str = Field(default_factory=now_iso)
    changes: List[str] = Field(default_factory=list)
    author: str = ""


class VersionInfo(BaseModel):
    current: str = "0.1.0"
    history: List[VersionEntry] = Field(default_factory=list)


class ContextMetadata(BaseModel):
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    last_accessed: str = Field(default_factory=now_iso)
    access_count: int = 0


class ProjectContext(BaseModel):
    """Everything the assistants know about one project."""
    id: str
    name: str
    description: str = ""
    architecture: Architecture = Field(default_factory=Architecture)
    tech_stack: TechStack = Field(default_factory=TechStack)
    business: BusinessContext = Field(default_factory=BusinessContext)
    development: DevelopmentContext = Field(default_factory=DevelopmentContext)
    team: TeamContext = Field(default_factory=TeamContext)
    ai: AIContext = Field(default_factory=AIContext)
    version: VersionInfo = Field(default_factory=VersionInfo)
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)

    @classmethod
    def default(cls, project_id: str) -> "ProjectContext":
        """Minimal context used when a project has not been set up yet."""
        return cls(
            id=project_id,
            name="Default Project",
            description="AI-powered development project",
            architecture=Architecture(type="monolith", framework="React", database="PostgreSQL",
                                      deployment="Vercel", patterns=["MVC", "Component-based"]),
            tech_stack=TechStack(frontend=["React", "TypeScript"], backend=["Node.js"],
                                 database=["PostgreSQL"], infrastructure=["Vercel"], tools=["Vite"]),
            development=DevelopmentContext(phase="development"),
        )


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: str = Field(default_factory=now_iso)
    context: Dict[str, Any] = Field(default_factory=dict)
    embeddings: Optional[List[float]] = None


class KeyDecision(BaseModel):
    decision: str
    reasoning: str = ""
    timestamp: str = Field(default_factory=now_iso)
    impact: Literal["low", "medium", "high"] = "medium"


class ConversationMemory(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    agent_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    summary: str = ""
    key_decisions: List[KeyDecision] = Field(default_factory=list)


class CodeMemory(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    file_path: str
    content: str
    purpose: str = ""
    dependencies: List[str] = Field(default_factory=list)
    related_files: List[str] = Field(default_factory=list)
    last_modified: str = Field(default_factory=now_iso)
    modification_reason: str = ""
    embeddings: Optional[List[float]] = None


class DecisionMemory(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    decision: str
    reasoning: str = ""
    alternatives: List[str] = Field(default_factory=list)
    consequences: List[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=now_iso)
    author: str = ""
    status: Literal["active", "deprecated", "changed"] = "active"
    related_decisions: List[str] = Field(default_factory=list)


class Interaction(BaseModel):
    """One query/response exchange and how it turned out."""
    query: str
    response: str
    outcome: Literal["success", "failure", "partial"]
    feedback: Optional[str] = None
    pattern: Optional[str] = None


class SearchHit(BaseModel):
    content: Any
    similarity: float
    type: str


class RelevantContext(BaseModel):
    project_context: Optional[ProjectContext] = None
    relevant_memories: List[SearchHit] = Field(default_factory=list)
    related_decisions: List[DecisionMemory] = Field(default_factory=list)
    code_context: List[CodeMemory] = Field(default_factory=list)
