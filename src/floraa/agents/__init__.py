"""
Multi-agent system: role agents, message routing and task execution.
"""

from floraa.agents.models import AgentMessage, AgentType, Task
from floraa.agents.base import BaseAgent
from floraa.agents.architect import ArchitectAgent
from floraa.agents.developer import DeveloperAgent
from floraa.agents.reviewer import ReviewerAgent
from floraa.agents.system import (
    Conversation, MessageRouter, MultiAgentSystem,
    get_multi_agent_system, set_multi_agent_system,
)

__all__ = [
    "AgentMessage",
    "AgentType",
    "Task",
    "BaseAgent",
    "ArchitectAgent",
    "DeveloperAgent",
    "ReviewerAgent",
    "Conversation",
    "MessageRouter",
    "MultiAgentSystem",
    "get_multi_agent_system",
    "set_multi_agent_system",
]
