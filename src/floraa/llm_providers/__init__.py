"""
LLM Providers Package.

Unified interfaces for the hosted model providers:
- OpenAI (GPT-4, GPT-3.5 series)
- Anthropic (Claude 3 series)
- Google (Gemini series)
"""

from .base import LLMProvider, Message, CompletionResponse, GenerationConfig, ResponseFormat
from .factory import ProviderFactory
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider
from .google_provider import GoogleProvider

__all__ = [
    "LLMProvider",
    "Message",
    "CompletionResponse",
    "GenerationConfig",
    "ResponseFormat",
    "ProviderFactory",
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
]
