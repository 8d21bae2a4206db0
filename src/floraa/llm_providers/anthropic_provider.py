"""
Anthropic Messages API adapter.
"""

import logging
from typing import Any, Dict, Iterator, List

import anthropic

from floraa.core.model_cards import ModelProvider
from .base import CompletionResponse, GenerationConfig, LLMProvider, Message, ResponseFormat

logger = logging.getLogger(__name__)

# The Messages API rejects requests without max_tokens
DEFAULT_MAX_TOKENS = 4096

JSON_INSTRUCTION = "Please respond with valid JSON only."


class AnthropicProvider(LLMProvider):
    """Claude models. System text travels in the ``system`` field, not in the messages."""

    name = "anthropic"
    provider = ModelProvider.ANTHROPIC
    api_key_env = "ANTHROPIC_API_KEY"
    model_prefixes = ("claude-",)
    features = frozenset({"function_calling", "vision", "streaming", "system_messages"})
    max_temperature = 1.0
    chars_per_token = 3

    def _connect(self, api_key: str) -> anthropic.Anthropic:
        return anthropic.Anthropic(api_key=api_key)

    def _params(self, messages: List[Message], model: str, config: GenerationConfig) -> Dict[str, Any]:
        system, conversation = self.split_system(messages)
        if config.response_format is ResponseFormat.JSON:
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        params: Dict[str, Any] = {
            "model": model,
            "messages": self.prepare_messages(conversation),
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": self.clamp_temperature(model, config.temperature),
        }
        if system:
            params["system"] = system
        if config.stop_sequences:
            params["stop_sequences"] = config.stop_sequences
        return params

    def _complete(self, messages: List[Message], model: str, config: GenerationConfig) -> CompletionResponse:
        response = self.client.messages.create(**self._params(messages, model, config))
        text = "".join(block.text for block in response.content if block.type == "text")

        usage = getattr(response, "usage", None)
        if usage is None:
            return CompletionResponse(content=text, finish_reason=response.stop_reason or "stop",
                                      raw_response=response)
        return CompletionResponse.with_counts(
            text,
            usage.input_tokens,
            usage.output_tokens,
            finish_reason=response.stop_reason,
            raw_response=response,
        )

    def _stream(self, messages: List[Message], model: str, config: GenerationConfig) -> Iterator[str]:
        with self.client.messages.stream(**self._params(messages, model, config)) as stream:
            yield from stream.text_stream
