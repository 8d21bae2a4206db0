"""Tests for project memory: embeddings, graph store and context manager."""

import numpy as np
import pytest

from floraa.core.exceptions import ContextError, ProjectNotFoundError
from floraa.context.embeddings import EmbeddingService
from floraa.context.graph_store import HAS_DECISION, USES_PATTERN, USES_TECH, GraphStore
from floraa.context.manager import CODE_MEMORY
from floraa.context.models import (
    ChatMessage, CodeMemory, ConversationMemory, DecisionMemory, Interaction, ProjectContext,
)
from floraa.context.vector_store import VectorStore


def project(project_id="p1", **fields):
    data = {
        "id": project_id,
        "name": "Shop",
        "architecture": {"type": "microservices", "framework": "FastAPI", "patterns": ["CQRS"]},
        "tech_stack": {"frontend": ["React"], "backend": ["Python"], "infrastructure": ["AWS"]},
    }
    data.update(fields)
    return ProjectContext.model_validate(data)


def cosine(a, b):
    a, b = np.asarray(a), np.asarray(b)
    return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))


class TestEmbeddingService:
    """Test local hashing embeddings."""

    @pytest.mark.asyncio
    async def test_deterministic_and_normalised(self):
        service = EmbeddingService(dimension=64)
        first = await service.embed("user login form")
        service.clear_cache()
        second = await service.embed("user login form")

        assert first == second
        assert len(first) == 64
        assert np.linalg.norm(first) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_similar_texts_are_closer(self):
        service = EmbeddingService(dimension=256)
        query = await service.embed("login form validation")
        related = await service.embed("validation of the login form")
        unrelated = await service.embed("kubernetes cluster autoscaling")

        assert cosine(query, related) > cosine(query, unrelated)

    @pytest.mark.asyncio
    async def test_empty_text_has_direction(self):
        embedding = await EmbeddingService(dimension=16).embed("")
        assert np.linalg.norm(embedding) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self):
        service = EmbeddingService(dimension=16, cache_size=2)
        await service.embed_batch(["a", "b", "c"])
        assert len(service._cache) == 2


class TestGraphStore:
    """Test project relationship graph."""

    def test_project_relationships(self):
        store = GraphStore()
        store.store_project_relationships(project())

        techs = {n["label"] for n in store.neighbors("p1", USES_TECH)}
        assert techs == {"React", "Python", "AWS", "FastAPI"}
        assert [n["label"] for n in store.neighbors("p1", USES_PATTERN)] == ["CQRS"]

    def test_relationships_replaced_on_update(self):
        store = GraphStore()
        store.store_project_relationships(project())
        store.store_project_relationships(project(tech_stack={"frontend": ["Vue"]}))

        techs = {n["label"] for n in store.neighbors("p1", USES_TECH)}
        assert techs == {"Vue", "FastAPI"}

    def test_related_decisions(self):
        store = GraphStore()
        store.add_decision(DecisionMemory(id="d1", project_id="p1", decision="Use Postgres"))
        store.add_decision(DecisionMemory(id="d2", project_id="p1", decision="Use SQLAlchemy",
                                          related_decisions=["d1"]))
        store.add_decision(DecisionMemory(id="d3", project_id="p1", decision="Use Alembic",
                                          related_decisions=["d2"]))

        assert store.related_decisions("d1") == ["d2"]
        assert store.related_decisions("d1", depth=2) == ["d2", "d3"]
        assert store.related_decisions("unknown") == []
        assert sorted(store.project_decisions("p1")) == ["d1", "d2", "d3"]
        assert len(store.neighbors("p1", HAS_DECISION)) == 3


class TestContextManager:
    """Test storing and retrieving project memory."""

    @pytest.mark.asyncio
    async def test_store_and_get_project_context(self, context_manager):
        await context_manager.store_project_context(project())
        context_manager.clear_cache()

        loaded = await context_manager.get_project_context("p1")
        assert loaded.name == "Shop"
        assert loaded.architecture.type == "microservices"

    @pytest.mark.asyncio
    async def test_unknown_project(self, context_manager):
        assert await context_manager.get_project_context("missing") is None
        with pytest.raises(ProjectNotFoundError):
            await context_manager.update_project_context("missing", {"name": "x"})

    @pytest.mark.asyncio
    async def test_invalid_project_context(self, context_manager):
        with pytest.raises(ContextError):
            await context_manager.store_project_context({"id": "p1"})

    @pytest.mark.asyncio
    async def test_update_merges_and_counts(self, context_manager):
        await context_manager.store_project_context(project())

        updated = await context_manager.update_project_context("p1", {
            "description": "Online shop",
            "tech_stack": {"database": ["PostgreSQL"]},
        })

        assert updated.description == "Online shop"
        assert updated.tech_stack.frontend == ["React"]
        assert updated.tech_stack.database == ["PostgreSQL"]
        assert updated.metadata.access_count == 1

    @pytest.mark.asyncio
    async def test_semantic_search_ranks_by_similarity(self, context_manager):
        await context_manager.store_code_memory(CodeMemory(
            project_id="p1", file_path="src/auth/login.ts",
            content="function validateLoginForm(email, password) {}", purpose="login form validation",
        ))
        await context_manager.store_code_memory(CodeMemory(
            project_id="p1", file_path="deploy/cluster.yaml",
            content="replicas: 3", purpose="kubernetes cluster autoscaling",
        ))
        await context_manager.store_code_memory(CodeMemory(
            project_id="other", file_path="src/auth/login.ts",
            content="login form", purpose="login form validation",
        ))

        hits = await context_manager.semantic_search("p1", "login form validation", memory_type=CODE_MEMORY)

        assert len(hits) == 2
        assert hits[0].content["file_path"] == "src/auth/login.ts"
        assert hits[0].similarity > hits[1].similarity
        assert all(hit.type == CODE_MEMORY for hit in hits)

    @pytest.mark.asyncio
    async def test_conversation_memory_embeds_messages(self, context_manager, vector_store):
        memory = await context_manager.store_conversation_memory(ConversationMemory(
            project_id="p1", agent_id="multi-agent-system",
            messages=[ChatMessage(role="user", content="hello")],
        ))

        assert memory.messages[0].embeddings is not None
        stored = vector_store.retrieve(f"conversation_memory:{memory.id}")
        assert "embeddings" not in stored["content"]["messages"][0]

    @pytest.mark.asyncio
    async def test_related_decisions_follow_graph(self, context_manager):
        await context_manager.store_decision_memory(DecisionMemory(
            id="d1", project_id="p1", decision="Use PostgreSQL for orders",
        ))
        await context_manager.store_decision_memory(DecisionMemory(
            id="d2", project_id="p1", decision="Use SQLAlchemy", related_decisions=["d1"],
        ))

        decisions = await context_manager.get_related_decisions("p1", "PostgreSQL orders", limit=1)

        assert [d.id for d in decisions] == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_relevant_context(self, context_manager):
        await context_manager.store_project_context(project())
        relevant = await context_manager.get_relevant_context("p1", "React", "developer")

        assert relevant.project_context.id == "p1"
        assert relevant.relevant_memories

    @pytest.mark.asyncio
    async def test_learn_from_interaction_tracks_patterns(self, context_manager):
        await context_manager.store_project_context(project())

        await context_manager.learn_from_interaction("p1", Interaction(
            query="create a login form", response="...", outcome="success"))
        await context_manager.learn_from_interaction("p1", Interaction(
            query="generate a signup form", response="...", outcome="failure"))
        await context_manager.learn_from_interaction("p1", {
            "query": "review this", "response": "...", "outcome": "partial", "pattern": "custom"})

        context = await context_manager.get_project_context("p1")
        patterns = {p.pattern: p for p in context.ai.patterns}
        assert patterns["code_generation"].frequency == 2
        assert patterns["code_generation"].success_rate == pytest.approx(0.5)
        assert patterns["custom"].success_rate == pytest.approx(0.5)
        assert len(context.ai.learnings) == 3

    @pytest.mark.asyncio
    async def test_learning_for_unknown_project_is_ignored(self, context_manager):
        await context_manager.learn_from_interaction("ghost", Interaction(
            query="q", response="r", outcome="success"))
        assert await context_manager.get_project_context("ghost") is None


class TestVectorStore:
    """Test the Chroma-backed store."""

    def test_store_retrieve_and_search(self):
        store = VectorStore(collection_prefix="test")
        store.store("a", {"text": "alpha"}, [1.0, 0.0, 0.0], {"type": "code_memory", "project_id": "p1",
                                                             "tags": ["dropped"]})
        store.store("b", {"text": "beta"}, [0.0, 1.0, 0.0], {"type": "code_memory", "project_id": "p2"})

        assert store.count() == 2
        record = store.retrieve("a")
        assert record["content"] == {"text": "alpha"}
        assert "tags" not in record["metadata"]
        assert store.retrieve("missing") is None

        hits = store.search([1.0, 0.1, 0.0], filters={"project_id": "p1", "type": None})
        assert [hit["id"] for hit in hits] == ["a"]
        assert hits[0]["similarity"] > 0.9

        store.delete("a")
        assert store.count() == 1
