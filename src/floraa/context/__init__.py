"""
Project memory: context models, embeddings, vector and graph stores, and the
ContextManager that ties them together.
"""

from .models import (
    ProjectContext, ConversationMemory, CodeMemory, DecisionMemory,
    Interaction, SearchHit, RelevantContext,
)
from .manager import ContextManager, get_context_manager

__all__ = [
    "ProjectContext",
    "ConversationMemory",
    "CodeMemory",
    "DecisionMemory",
    "Interaction",
    "SearchHit",
    "RelevantContext",
    "ContextManager",
    "get_context_manager",
]
