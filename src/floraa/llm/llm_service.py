"""
LLM service.

Holds one handle per configured ``provider:model`` key, builds contextual
prompts from project memory and parses the structured replies used by code
generation, review and explanation.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pydantic_core import to_jsonable_python
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from floraa.core.exceptions import LLMError, ModelNotAvailableError
from floraa.core.logging import get_logger
from floraa.core.model_cards import ModelSelector, UsageTracker, get_usage_tracker
from floraa.core.settings import ConfigManager, get_config_manager
from floraa.context.models import Interaction, ProjectContext
from floraa.llm import prompts
from floraa.llm.models import (
    LLMConfig, ConversationContext, CodeGenerationResult,
    CodeReviewResult, CodeExplanationResult,
)
from floraa.llm_providers.base import LLMProvider, Message, GenerationConfig
from floraa.llm_providers.factory import ProviderFactory

logger = get_logger(__name__)

PROVIDER_NAMES = ("openai", "anthropic", "google")


@dataclass
class ModelHandle:
    """A model id bound to the provider instance that serves it."""
    key: str
    provider_name: str
    model_id: str
    provider: LLMProvider


def _to_json(value: Any) -> str:
    return json.dumps(to_jsonable_python(value), indent=2, default=str)


class LLMService:
    """Dispatches prompts to the configured hosted models."""

    def __init__(self,
                 config_manager: Optional[ConfigManager] = None,
                 context_manager=None,
                 usage_tracker: Optional[UsageTracker] = None):
        self.config_manager = config_manager or get_config_manager()
        self._context_manager = context_manager
        self.usage_tracker = usage_tracker or get_usage_tracker()
        self.models: Dict[str, ModelHandle] = {}

        self.initialize_models()
        self.config_manager.subscribe(lambda _config: self.refresh_models())

    @property
    def context_manager(self):
        if self._context_manager is None:
            from floraa.context.manager import get_context_manager
            self._context_manager = get_context_manager()
        return self._context_manager

    # Model registry

    def initialize_models(self) -> None:
        """Register a handle for every model of every enabled, keyed provider."""
        providers = self.config_manager.get_config().ai.providers

        for name in PROVIDER_NAMES:
            provider_settings = getattr(providers, name)
            api_key = provider_settings.usable_api_key()
            if not provider_settings.enabled or not api_key:
                continue

            try:
                provider = ProviderFactory.create(name, api_key)
            except Exception as e:
                logger.error(f"Failed to initialize {name} provider: {e}")
                continue

            for model_id in provider_settings.models:
                key = f"{name}:{model_id}"
                self.models[key] = ModelHandle(key, name, model_id, provider)

        logger.info(f"Initialized {len(self.models)} models")

    def refresh_models(self) -> None:
        self.models.clear()
        self.initialize_models()

    def has_models(self) -> bool:
        return bool(self.models)

    def get_available_models(self) -> List[str]:
        return list(self.models)

    def _model_key(self, config: Optional[LLMConfig]) -> str:
        if config is not None:
            return f"{config.provider}:{ModelSelector.resolve(config.model)}"

        default_model = self.config_manager.get_config().ai.default_model
        card = ModelSelector.get_model_card(default_model)
        if card:
            return card.key
        if ":" in default_model:
            return default_model
        raise ModelNotAvailableError(default_model)

    def get_model(self, config: Optional[LLMConfig] = None) -> ModelHandle:
        """
        Handle for the requested (or default) model.

        Raises:
            ModelNotAvailableError: If the model is still missing after re-initialising
        """
        key = self._model_key(config)
        if key not in self.models:
            self.initialize_models()
        handle = self.models.get(key)
        if handle is None:
            raise ModelNotAvailableError(key)
        return handle

    def _generation_config(self, config: Optional[LLMConfig] = None, **overrides) -> GenerationConfig:
        ai = self.config_manager.get_config().ai
        generation_config = GenerationConfig(
            temperature=ai.temperature,
            max_tokens=ai.max_tokens,
        )
        if config is not None:
            if config.temperature is not None:
                generation_config.temperature = config.temperature
            if config.max_tokens is not None:
                generation_config.max_tokens = config.max_tokens
            generation_config.top_p = config.top_p
            generation_config.frequency_penalty = config.frequency_penalty
            generation_config.presence_penalty = config.presence_penalty
        for field_name, value in overrides.items():
            setattr(generation_config, field_name, value)
        return generation_config

    async def _complete(self,
                        handle: ModelHandle,
                        messages: List[Message],
                        generation_config: GenerationConfig,
                        agent_type: Optional[str] = None) -> str:
        """Call the provider with retries and record token usage."""
        ai = self.config_manager.get_config().ai

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(ai.max_retries, 1)),
            wait=wait_exponential(multiplier=ai.retry_delay_seconds, max=10),
            reraise=True
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying {handle.key} (attempt {attempt.retry_state.attempt_number})")
                response = await handle.provider.agenerate(messages, handle.model_id, generation_config)

        if response.usage:
            self.usage_tracker.track_usage(
                model_name=handle.model_id,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                agent_name=agent_type
            )
        return response.content

    # Generation

    async def generate_response(self, context: ConversationContext, config: Optional[LLMConfig] = None) -> str:
        """
        Answer a conversation using the project context and memories.

        Raises:
            LLMError: If no model is available or the provider call fails
        """
        try:
            handle = self.get_model(config)
            system_prompt = prompts.CONTEXTUAL_SYSTEM_TEMPLATE.format(
                system_prompt=context.system_prompt,
                project_context=_to_json(context.project_context),
                relevant_memories=_to_json(context.relevant_memories),
            )
            messages = [Message(role="system", content=system_prompt)] + list(context.messages)

            response = await self._complete(
                handle, messages, self._generation_config(config), context.agent_type
            )
        except Exception as e:
            logger.error(f"LLM generation error: {e}")
            raise LLMError(f"Failed to generate response: {e}") from e

        await self._store_interaction(context, response)
        return response

    async def _store_interaction(self, context: ConversationContext, response: str) -> None:
        try:
            query = context.messages[-1].content if context.messages else ""
            await self.context_manager.learn_from_interaction(
                context.project_id,
                Interaction(query=query, response=response, outcome="success")
            )
        except Exception as e:
            logger.error(f"Failed to store interaction: {e}")

    async def _structured_call(self, system_prompt: str, user_prompt: str, agent_type: str) -> str:
        handle = self.get_model()
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_prompt),
        ]
        try:
            return await self._complete(handle, messages, self._generation_config(), agent_type)
        except Exception as e:
            logger.error(f"{agent_type} call to {handle.key} failed: {e}")
            raise LLMError(f"Failed to generate response: {e}") from e

    async def generate_code_with_context(self,
                                         request: str,
                                         project_context: ProjectContext,
                                         agent_type: str,
                                         conversation_id: str) -> CodeGenerationResult:
        """Generate code for ``request`` in the style of the project."""
        relevant = await self.context_manager.get_relevant_context(project_context.id, request, agent_type)

        response = await self._structured_call(
            prompts.CODE_GENERATION_SYSTEM_TEMPLATE.format(
                agent_type=agent_type, **prompts.project_fields(project_context)
            ),
            prompts.CODE_GENERATION_USER_TEMPLATE.format(
                request=request,
                project_context=_to_json(project_context),
                relevant_memories=_to_json(relevant.relevant_memories),
            ),
            agent_type
        )

        parsed = prompts.parse_json_response(response)
        if parsed is not None:
            try:
                return CodeGenerationResult(
                    code=str(parsed.get("code") or ""),
                    explanation=str(parsed.get("explanation") or ""),
                    suggestions=[str(s) for s in parsed.get("suggestions") or []],
                    tests=parsed.get("tests") or None,
                    language=parsed.get("language") or None,
                )
            except ValidationError as e:
                logger.warning(f"Unexpected code generation reply shape: {e}")

        logger.debug(f"Code generation reply for conversation {conversation_id} was not JSON")
        return CodeGenerationResult(code=response, explanation="Code generated successfully")

    async def review_code_with_context(self,
                                       code: str,
                                       project_context: ProjectContext,
                                       conversation_id: str) -> CodeReviewResult:
        """Review ``code`` against the project's standards."""
        response = await self._structured_call(
            prompts.CODE_REVIEW_SYSTEM_TEMPLATE.format(**prompts.project_fields(project_context)),
            prompts.CODE_REVIEW_USER_TEMPLATE.format(
                code=code, project_context=_to_json(project_context)
            ),
            "reviewer"
        )

        parsed = prompts.parse_json_response(response)
        if parsed is not None:
            try:
                return CodeReviewResult.model_validate(parsed)
            except ValidationError as e:
                logger.warning(f"Unexpected code review reply shape: {e}")

        logger.debug(f"Code review reply for conversation {conversation_id} was not JSON")
        return CodeReviewResult(score=70, suggestions=[response], summary="Code review completed")

    async def explain_code_with_context(self,
                                        code: str,
                                        project_context: ProjectContext,
                                        conversation_id: str) -> CodeExplanationResult:
        """Explain ``code`` in the context of the project."""
        response = await self._structured_call(
            prompts.CODE_EXPLANATION_SYSTEM_TEMPLATE.format(**prompts.project_fields(project_context)),
            prompts.CODE_EXPLANATION_USER_TEMPLATE.format(
                code=code, project_context=_to_json(project_context)
            ),
            "explainer"
        )

        parsed = prompts.parse_json_response(response)
        if parsed is not None:
            try:
                return CodeExplanationResult.model_validate(parsed)
            except ValidationError as e:
                logger.warning(f"Unexpected code explanation reply shape: {e}")

        logger.debug(f"Code explanation reply for conversation {conversation_id} was not JSON")
        return CodeExplanationResult(explanation=response)

    async def test_model_connection(self, provider: str, model: str) -> bool:
        """Send a fixed prompt and check the reply."""
        handle = self.models.get(f"{provider}:{ModelSelector.resolve(model)}")
        if handle is None:
            return False

        try:
            reply = await self._complete(
                handle,
                [Message(role="user", content=prompts.CONNECTION_TEST_PROMPT)],
                self._generation_config(max_tokens=20)
            )
            return "Connection successful" in reply
        except Exception as e:
            logger.error(f"Model connection test failed for {handle.key}: {e}")
            return False


_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Get the global LLM service."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service


def set_llm_service(service: Optional[LLMService]) -> None:
    global _llm_service
    _llm_service = service
