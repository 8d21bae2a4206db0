"""
Builds provider adapters on demand and reuses them per (vendor, key).
"""

import logging
from typing import Dict, Optional, Tuple, Type, Union

from floraa.core.model_cards import ModelProvider, ModelSelector
from .anthropic_provider import AnthropicProvider
from .base import LLMProvider
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

ProviderKey = Tuple[ModelProvider, Optional[str]]


class ProviderFactory:
    """Class-level registry of adapter classes and live adapter instances."""

    _registry: Dict[ModelProvider, Type[LLMProvider]] = {
        ModelProvider.OPENAI: OpenAIProvider,
        ModelProvider.ANTHROPIC: AnthropicProvider,
        ModelProvider.GOOGLE: GoogleProvider,
    }
    _live: Dict[ProviderKey, LLMProvider] = {}

    @staticmethod
    def _vendor(provider: Union[str, ModelProvider]) -> ModelProvider:
        if isinstance(provider, ModelProvider):
            return provider
        try:
            return ModelProvider(provider)
        except ValueError:
            raise ValueError(f"Unsupported provider: {provider}") from None

    @classmethod
    def create(cls, provider: Union[str, ModelProvider], api_key: Optional[str] = None) -> LLMProvider:
        """
        Return the adapter for ``provider`` authenticated with ``api_key``.

        Raises:
            ValueError: Unknown vendor, or no key given and none in the environment
        """
        vendor = cls._vendor(provider)
        key = (vendor, api_key)
        if key not in cls._live:
            adapter_class = cls._registry.get(vendor)
            if adapter_class is None:
                raise ValueError(f"Unsupported provider: {vendor.value}")
            cls._live[key] = adapter_class(api_key=api_key)
            logger.info(f"Created {vendor.value} provider")
        return cls._live[key]

    @classmethod
    def get_provider(cls, model_name: str, api_key: Optional[str] = None) -> LLMProvider:
        """Adapter for the vendor serving ``model_name`` (id, alias or ``provider:model`` key)."""
        card = ModelSelector.get_model_card(model_name)
        if card is None:
            raise ValueError(f"Unknown model: {model_name}")
        return cls.create(card.provider, api_key)

    @classmethod
    def clear_cache(cls) -> None:
        cls._live.clear()

    @classmethod
    def register_provider(cls, vendor: ModelProvider, adapter_class: Type[LLMProvider]) -> None:
        cls._registry[vendor] = adapter_class
        logger.info(f"Registered provider class for {vendor.value}")
