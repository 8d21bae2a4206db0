"""
Common interface of the hosted-model adapters.

``LLMService`` only ever talks to ``LLMProvider``: it hands over a list of
``Message`` objects plus a ``GenerationConfig`` and gets a
``CompletionResponse`` back, whichever vendor is behind the model key.
Subclasses plug in three hooks (``_connect``, ``_complete``, ``_stream``);
key lookup, error logging and model-card limits live here.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from floraa.core.model_cards import ModelProvider, ModelSelector

logger = logging.getLogger(__name__)


class ResponseFormat(Enum):
    TEXT = "text"
    JSON = "json_object"


@dataclass
class GenerationConfig:
    """Sampling options shared by every provider."""
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    top_p: float = 1.0
    top_k: Optional[int] = None
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    stop_sequences: Optional[List[str]] = None
    response_format: ResponseFormat = ResponseFormat.TEXT


@dataclass
class Message:
    role: str  # system, user or assistant
    content: str


@dataclass
class CompletionResponse:
    """One finished completion with its token counts."""
    content: str
    finish_reason: str = "stop"
    usage: Optional[Dict[str, int]] = None
    raw_response: Any = None

    @classmethod
    def with_counts(cls, content: str, prompt_tokens: int, completion_tokens: int,
                    finish_reason: Optional[str] = None, raw_response: Any = None) -> "CompletionResponse":
        return cls(
            content=content,
            finish_reason=finish_reason or "stop",
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            raw_response=raw_response,
        )

    @property
    def input_tokens(self) -> int:
        return (self.usage or {}).get("prompt_tokens", 0)

    @property
    def output_tokens(self) -> int:
        return (self.usage or {}).get("completion_tokens", 0)


class LLMProvider(ABC):
    """
    Base adapter for one model vendor.

    The vendor SDKs are blocking, so ``agenerate`` pushes ``generate`` onto a
    worker thread for the async services.
    """

    name: str = "base"
    provider: Optional[ModelProvider] = None
    api_key_env: str = ""
    model_prefixes: Tuple[str, ...] = ()
    features: FrozenSet[str] = frozenset()
    max_temperature: float = 2.0
    chars_per_token: int = 4

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.getenv(self.api_key_env)
        if not self.api_key:
            raise ValueError(f"{self.api_key_env} not provided")
        self.client = self._connect(self.api_key)
        logger.info(f"{self.name} provider ready")

    @abstractmethod
    def _connect(self, api_key: str) -> Any:
        """Build the vendor client."""

    @abstractmethod
    def _complete(self, messages: List[Message], model: str, config: GenerationConfig) -> CompletionResponse:
        pass

    @abstractmethod
    def _stream(self, messages: List[Message], model: str, config: GenerationConfig) -> Iterator[str]:
        pass

    def generate(self,
                 messages: List[Message],
                 model: str,
                 config: Optional[GenerationConfig] = None) -> CompletionResponse:
        """
        Run one completion.

        Args:
            messages: Conversation, system messages included
            model: Vendor model id (not the ``provider:model`` key)
            config: Sampling options, defaults when omitted

        Raises:
            Whatever the vendor SDK raises; it is logged and re-raised so the
            caller's retry policy can decide what to do.
        """
        try:
            return self._complete(messages, model, config or GenerationConfig())
        except Exception as e:
            logger.error(f"{self.name} completion failed for {model}: {e}")
            raise

    async def agenerate(self,
                        messages: List[Message],
                        model: str,
                        config: Optional[GenerationConfig] = None) -> CompletionResponse:
        return await asyncio.to_thread(self.generate, messages, model, config)

    def generate_stream(self,
                        messages: List[Message],
                        model: str,
                        config: Optional[GenerationConfig] = None) -> Iterator[str]:
        """Yield text fragments as the vendor produces them."""
        try:
            yield from self._stream(messages, model, config or GenerationConfig())
        except Exception as e:
            logger.error(f"{self.name} stream failed for {model}: {e}")
            raise

    def count_tokens(self, text: str, model: str) -> int:
        """Rough local estimate; subclasses with a real tokenizer override it."""
        return len(text) // self.chars_per_token

    def supports_feature(self, feature: str) -> bool:
        return feature in self.features

    def validate_model(self, model: str) -> bool:
        """True when the model card (or, lacking one, the name) belongs to this vendor."""
        card = ModelSelector.get_model_card(model)
        if card is not None:
            return card.provider == self.provider
        return model.startswith(self.model_prefixes)

    def clamp_temperature(self, model: str, temperature: float) -> float:
        card = ModelSelector.get_model_card(model)
        low, high = card.temperature_range if card else (0.0, self.max_temperature)
        return max(low, min(temperature, high))

    def prepare_messages(self, messages: List[Message]) -> List[Dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in messages]

    @staticmethod
    def split_system(messages: List[Message]) -> Tuple[Optional[str], List[Message]]:
        """Separate system text (joined by blank lines) from the rest of the conversation."""
        system_parts = [m.content for m in messages if m.role == "system"]
        rest = [m for m in messages if m.role != "system"]
        return ("\n\n".join(system_parts) or None), rest
