"""
Google Gemini adapter.

Gemini has no separate system role, so the conversation is flattened into a
single prompt with the system text first.
"""

import logging
from typing import Any, Dict, Iterator, List

import google.generativeai as genai

from floraa.core.model_cards import ModelProvider
from .base import CompletionResponse, GenerationConfig, LLMProvider, Message, ResponseFormat

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 40


class GoogleProvider(LLMProvider):

    name = "google"
    provider = ModelProvider.GOOGLE
    api_key_env = "GOOGLE_API_KEY"
    model_prefixes = ("gemini-",)
    features = frozenset({"vision", "streaming", "system_messages", "json_mode"})
    max_temperature = 1.0

    def _connect(self, api_key: str) -> Any:
        genai.configure(api_key=api_key)
        return genai

    def _sampling(self, model: str, config: GenerationConfig) -> Dict[str, Any]:
        sampling: Dict[str, Any] = {
            "temperature": self.clamp_temperature(model, config.temperature),
            "top_p": config.top_p,
            "top_k": config.top_k or DEFAULT_TOP_K,
        }
        if config.max_tokens:
            sampling["max_output_tokens"] = config.max_tokens
        if config.stop_sequences:
            sampling["stop_sequences"] = config.stop_sequences
        return sampling

    def flatten(self, messages: List[Message], response_format: ResponseFormat) -> str:
        system, conversation = self.split_system(messages)
        parts = ([system] if system else []) + [m.content for m in conversation]
        prompt = "\n\n".join(parts)
        if response_format is ResponseFormat.JSON:
            prompt += "\n\nRespond with valid JSON format only."
        return prompt

    @staticmethod
    def _text_of(response: Any) -> str:
        try:
            return response.text
        except ValueError as e:
            # .text raises when the candidate was blocked or has several parts
            logger.warning(f"Gemini returned no plain text: {e}")
        candidates = getattr(response, "candidates", None) or []
        if not candidates or not candidates[0].content:
            return ""
        return "".join(getattr(part, "text", "") for part in candidates[0].content.parts)

    def _complete(self, messages: List[Message], model: str, config: GenerationConfig) -> CompletionResponse:
        prompt = self.flatten(messages, config.response_format)
        response = self.client.GenerativeModel(model).generate_content(
            prompt, generation_config=self._sampling(model, config)
        )
        text = self._text_of(response)

        # Usage metadata is not reliable across Gemini versions; estimate locally
        return CompletionResponse.with_counts(
            text,
            self.count_tokens(prompt, model),
            self.count_tokens(text, model),
            raw_response=response,
        )

    def _stream(self, messages: List[Message], model: str, config: GenerationConfig) -> Iterator[str]:
        response = self.client.GenerativeModel(model).generate_content(
            self.flatten(messages, config.response_format),
            generation_config=self._sampling(model, config),
            stream=True,
        )
        for chunk in response:
            if chunk.text:
                yield chunk.text
