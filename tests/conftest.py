"""Shared fixtures for the Floraa test suite."""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from floraa.core.message_bus import get_message_bus
from floraa.core.model_cards import UsageTracker
from floraa.core.settings import ConfigManager, Settings, deep_merge, set_config_manager
from floraa.context.embeddings import EmbeddingService
from floraa.context.manager import ContextManager, set_context_manager
from floraa.llm.llm_service import LLMService, ModelHandle, set_llm_service
from floraa.llm_providers.base import CompletionResponse

BASE_TEST_SETTINGS: Dict[str, Any] = {
    "overrides_file": None,
    "ai": {
        "providers": {
            "openai": {"api_key": None},
            "anthropic": {"api_key": None},
            "google": {"api_key": None},
        },
        "retry_delay_seconds": 0,
    },
    "auth": {
        "github": {"client_id": None, "client_secret": None},
    },
    "context": {"use_remote_embeddings": False, "embedding_dimension": 512},
    "logging": {"log_to_file": False},
    "update": {"step_delay_seconds": 0},
}

DEFAULT_MODEL_KEY = "anthropic:claude-3-5-sonnet-20241022"


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the environment, with ``overrides`` merged in."""
    return Settings(**deep_merge(BASE_TEST_SETTINGS, overrides))


class InMemoryVectorStore:
    """Vector store double with the same interface as ``VectorStore``."""

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    def store(self, record_id: str, content: Any, embedding: List[float], metadata: Dict[str, Any]) -> None:
        self.records[record_id] = {
            "id": record_id,
            "content": json.loads(json.dumps(content, default=str)),
            "metadata": dict(metadata),
            "embedding": np.asarray(embedding, dtype=float),
        }

    def retrieve(self, record_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(record_id)
        if record is None:
            return None
        return {"id": record["id"], "content": record["content"], "metadata": record["metadata"]}

    def search(self, embedding: List[float], filters: Optional[Dict[str, Any]] = None,
               limit: int = 10) -> List[Dict[str, Any]]:
        query = np.asarray(embedding, dtype=float)
        hits = []
        for record in self.records.values():
            if any(value is not None and record["metadata"].get(key) != value
                   for key, value in (filters or {}).items()):
                continue
            similarity = float(np.dot(query, record["embedding"]) /
                               (np.linalg.norm(query) * np.linalg.norm(record["embedding"])))
            hits.append({
                "id": record["id"],
                "content": record["content"],
                "metadata": record["metadata"],
                "similarity": similarity,
            })
        hits.sort(key=lambda hit: hit["similarity"], reverse=True)
        return hits[:limit]

    def count(self) -> int:
        return len(self.records)


@pytest.fixture(autouse=True)
def clean_message_bus():
    yield
    get_message_bus().clear()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def config_manager(settings) -> ConfigManager:
    manager = ConfigManager(settings)
    set_config_manager(manager)
    yield manager
    set_config_manager(None)


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def context_manager(settings, vector_store) -> ContextManager:
    manager = ContextManager(
        vector_store=vector_store,
        embedding_service=EmbeddingService(dimension=512),
        settings=settings,
    )
    set_context_manager(manager)
    yield manager
    set_context_manager(None)


@pytest.fixture
def usage_tracker() -> UsageTracker:
    return UsageTracker()


@pytest.fixture
def llm_service(config_manager, context_manager, usage_tracker) -> LLMService:
    """LLM service with no configured provider (agents use their templates)."""
    service = LLMService(config_manager=config_manager, context_manager=context_manager,
                         usage_tracker=usage_tracker)
    set_llm_service(service)
    yield service
    set_llm_service(None)


def completion(content: str, prompt_tokens: int = 10, completion_tokens: int = 5) -> CompletionResponse:
    return CompletionResponse(
        content=content,
        usage={
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    )


@pytest.fixture
def mock_provider() -> MagicMock:
    provider = MagicMock()
    provider.agenerate = AsyncMock(return_value=completion("Model answer"))
    return provider


@pytest.fixture
def model_llm_service(llm_service, mock_provider) -> LLMService:
    """LLM service whose default model is served by ``mock_provider``."""
    llm_service.models[DEFAULT_MODEL_KEY] = ModelHandle(
        DEFAULT_MODEL_KEY, "anthropic", "claude-3-5-sonnet-20241022", mock_provider
    )
    return llm_service
