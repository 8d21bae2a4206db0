"""
AI chat: single and multi-agent chat modes.
"""

from floraa.chat.models import AgentResponse, ChatAction, ChatRequest, ChatResponse
from floraa.chat.service import ChatService, get_chat_service, set_chat_service

__all__ = [
    "AgentResponse",
    "ChatAction",
    "ChatRequest",
    "ChatResponse",
    "ChatService",
    "get_chat_service",
    "set_chat_service",
]
