"""
OpenAI chat completions adapter.
"""

import logging
from typing import Any, Dict, Iterator, List

import tiktoken
from openai import OpenAI

from floraa.core.model_cards import ModelProvider
from .base import CompletionResponse, GenerationConfig, LLMProvider, Message, ResponseFormat

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """GPT-4, GPT-4 Turbo and GPT-3.5 Turbo through the chat completions API."""

    name = "openai"
    provider = ModelProvider.OPENAI
    api_key_env = "OPENAI_API_KEY"
    model_prefixes = ("gpt-", "text-embedding")
    features = frozenset({"function_calling", "json_mode", "vision", "streaming", "system_messages"})

    def _connect(self, api_key: str) -> OpenAI:
        return OpenAI(api_key=api_key)

    def _request(self, messages: List[Message], model: str, config: GenerationConfig) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": model,
            "messages": self.prepare_messages(messages),
            "temperature": self.clamp_temperature(model, config.temperature),
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
        }
        if config.max_tokens:
            request["max_tokens"] = config.max_tokens
        if config.stop_sequences:
            request["stop"] = config.stop_sequences
        if config.response_format is ResponseFormat.JSON:
            request["response_format"] = {"type": "json_object"}
        return request

    def _complete(self, messages: List[Message], model: str, config: GenerationConfig) -> CompletionResponse:
        response = self.client.chat.completions.create(**self._request(messages, model, config))
        choice = response.choices[0]
        content = choice.message.content or ""

        if response.usage is None:
            return CompletionResponse(content=content, finish_reason=choice.finish_reason or "stop",
                                      raw_response=response)
        return CompletionResponse.with_counts(
            content,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
            finish_reason=choice.finish_reason,
            raw_response=response,
        )

    def _stream(self, messages: List[Message], model: str, config: GenerationConfig) -> Iterator[str]:
        request = self._request(messages, model, config)
        request.pop("response_format", None)
        for chunk in self.client.chat.completions.create(stream=True, **request):
            delta = chunk.choices[0].delta.content if chunk.choices else None
            if delta:
                yield delta

    def count_tokens(self, text: str, model: str) -> int:
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            encoding = tiktoken.get_encoding("cl100k_base")
        return len(encoding.encode(text))
