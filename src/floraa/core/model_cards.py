"""
Model cards for the hosted models Floraa can talk to.

A central registry of model pricing, limits and capabilities, plus usage
tracking for the admin model statistics.
"""

from typing import Dict, Optional, List, Tuple, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import threading

from floraa.core.logging import get_logger

logger = get_logger(__name__)


class ModelProvider(Enum):
    """Supported model providers."""
    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


@dataclass
class ModelCard:
    """
    Model card containing pricing, limits, and capabilities.

    All prices are in USD per 1M tokens.
    """
    provider: ModelProvider
    model_id: str  # API model name
    display_name: str
    input_price: float
    output_price: float
    context_window: int
    max_output_tokens: int
    features: List[str] = field(default_factory=list)
    supports_tools: bool = True
    supports_vision: bool = False
    supports_json_mode: bool = True
    temperature_range: Tuple[float, float] = (0.0, 2.0)
    supports_streaming: bool = True
    supports_system_messages: bool = True
    requires_max_tokens: bool = False

    @property
    def key(self) -> str:
        """``provider:model`` key used by the LLM service."""
        return f"{self.provider.value}:{self.model_id}"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """
        Estimate cost for a specific usage.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens

        Returns:
            Estimated cost in USD
        """
        input_cost = (input_tokens / 1_000_000) * self.input_price
        output_cost = (output_tokens / 1_000_000) * self.output_price
        return input_cost + output_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "provider": self.provider.value,
            "model_id": self.model_id,
            "display_name": self.display_name,
            "input_price": self.input_price,
            "output_price": self.output_price,
            "context_window": self.context_window,
            "max_output_tokens": self.max_output_tokens,
            "features": list(self.features),
            "supports_vision": self.supports_vision,
        }


MODEL_CARDS: Dict[str, ModelCard] = {
    # OpenAI
    "gpt-4": ModelCard(
        provider=ModelProvider.OPENAI,
        model_id="gpt-4",
        display_name="GPT-4",
        input_price=30.00,
        output_price=60.00,
        context_window=8_192,
        max_output_tokens=8_192,
        features=["reasoning", "code"],
    ),
    "gpt-4-turbo": ModelCard(
        provider=ModelProvider.OPENAI,
        model_id="gpt-4-turbo",
        display_name="GPT-4 Turbo",
        input_price=10.00,
        output_price=30.00,
        context_window=128_000,
        max_output_tokens=4_096,
        features=["large context", "vision", "code"],
        supports_vision=True,
    ),
    "gpt-3.5-turbo": ModelCard(
        provider=ModelProvider.OPENAI,
        model_id="gpt-3.5-turbo",
        display_name="GPT-3.5 Turbo",
        input_price=0.50,
        output_price=1.50,
        context_window=16_385,
        max_output_tokens=4_096,
        features=["fast", "budget"],
    ),

    # Anthropic
    "claude-3-5-sonnet-20241022": ModelCard(
        provider=ModelProvider.ANTHROPIC,
        model_id="claude-3-5-sonnet-20241022",
        display_name="Claude 3.5 Sonnet",
        input_price=3.00,
        output_price=15.00,
        context_window=200_000,
        max_output_tokens=8_192,
        features=["coding", "balanced", "vision"],
        supports_vision=True,
        supports_json_mode=False,
        temperature_range=(0.0, 1.0),
        requires_max_tokens=True,
    ),
    "claude-3-haiku-20240307": ModelCard(
        provider=ModelProvider.ANTHROPIC,
        model_id="claude-3-haiku-20240307",
        display_name="Claude 3 Haiku",
        input_price=0.25,
        output_price=1.25,
        context_window=200_000,
        max_output_tokens=4_096,
        features=["fast", "budget"],
        supports_vision=True,
        supports_json_mode=False,
        temperature_range=(0.0, 1.0),
        requires_max_tokens=True,
    ),

    # Google
    "gemini-pro": ModelCard(
        provider=ModelProvider.GOOGLE,
        model_id="gemini-pro",
        display_name="Gemini Pro",
        input_price=0.50,
        output_price=1.50,
        context_window=32_760,
        max_output_tokens=8_192,
        features=["balanced"],
        temperature_range=(0.0, 1.0),
        supports_system_messages=False,
    ),
    "gemini-pro-vision": ModelCard(
        provider=ModelProvider.GOOGLE,
        model_id="gemini-pro-vision",
        display_name="Gemini Pro Vision",
        input_price=0.50,
        output_price=1.50,
        context_window=16_384,
        max_output_tokens=2_048,
        features=["multimodal"],
        supports_vision=True,
        supports_tools=False,
        temperature_range=(0.0, 1.0),
        supports_system_messages=False,
    ),
}


# Short names used by the chat UI and the configuration
MODEL_ALIASES = {
    "claude-3-5-sonnet": "claude-3-5-sonnet-20241022",
    "claude-3-haiku": "claude-3-haiku-20240307",
    "gpt-4o": "gpt-4-turbo",
}


class ModelSelector:
    """Helper class for looking up model cards."""

    @staticmethod
    def resolve(model_name: str) -> str:
        """Map an alias or ``provider:model`` key to a model id."""
        if ":" in model_name:
            model_name = model_name.split(":", 1)[1]
        return MODEL_ALIASES.get(model_name, model_name)

    @staticmethod
    def get_model_card(model_name: str) -> Optional[ModelCard]:
        """
        Get model card by id, alias or ``provider:model`` key.

        Returns:
            ModelCard if found, None otherwise
        """
        return MODEL_CARDS.get(ModelSelector.resolve(model_name))

    @staticmethod
    def get_models_by_provider(provider: ModelProvider) -> List[ModelCard]:
        return [
            card for card in MODEL_CARDS.values()
            if card.provider == provider
        ]

    @staticmethod
    def get_models_with_context(min_context: int) -> List[ModelCard]:
        return [
            card for card in MODEL_CARDS.values()
            if card.context_window >= min_context
        ]


class UsageTracker:
    """Track LLM calls, tokens and estimated cost per model and per agent."""

    def __init__(self):
        self._lock = threading.Lock()
        self.usage_log: List[Dict[str, Any]] = []
        self.total_cost = 0.0
        self.by_model: Dict[str, Dict[str, float]] = {}
        self.by_agent: Dict[str, Dict[str, float]] = {}

    @staticmethod
    def _bump(table: Dict[str, Dict[str, float]], key: str, input_tokens: int,
              output_tokens: int, cost: float) -> None:
        stats = table.setdefault(key, {
            "calls": 0, "input_tokens": 0, "output_tokens": 0, "cost": 0.0
        })
        stats["calls"] += 1
        stats["input_tokens"] += input_tokens
        stats["output_tokens"] += output_tokens
        stats["cost"] += cost

    def track_usage(
        self,
        model_name: str,
        input_tokens: int,
        output_tokens: int,
        agent_name: Optional[str] = None
    ) -> float:
        """
        Record one call.

        Args:
            model_name: Model id, alias or ``provider:model`` key
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            agent_name: Agent type that made the call, if any

        Returns:
            Estimated cost of the call (0 for models without a card)
        """
        card = ModelSelector.get_model_card(model_name)
        if card:
            model_id = card.model_id
            cost = card.estimate_cost(input_tokens, output_tokens)
        else:
            logger.warning(f"No model card for {model_name}, recording usage without cost")
            model_id = ModelSelector.resolve(model_name)
            cost = 0.0

        with self._lock:
            self.usage_log.append({
                "agent": agent_name,
                "model": model_id,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cost": cost,
                "timestamp": datetime.now(timezone.utc).isoformat()
            })
            self.total_cost += cost
            self._bump(self.by_model, model_id, input_tokens, output_tokens, cost)
            if agent_name:
                self._bump(self.by_agent, agent_name, input_tokens, output_tokens, cost)

        return cost

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_cost": self.total_cost,
                "total_calls": len(self.usage_log),
                "by_model": {k: dict(v) for k, v in self.by_model.items()},
                "by_agent": {k: dict(v) for k, v in self.by_agent.items()},
            }

    def reset(self):
        with self._lock:
            self.usage_log.clear()
            self.total_cost = 0.0
            self.by_model.clear()
            self.by_agent.clear()


_usage_tracker: Optional[UsageTracker] = None


def get_usage_tracker() -> UsageTracker:
    """Get the global usage tracker instance."""
    global _usage_tracker
    if _usage_tracker is None:
        _usage_tracker = UsageTracker()
    return _usage_tracker
