"""
Context manager: per-project memory with semantic search.

Project contexts are cached in memory and persisted to the vector store
alongside conversation, code and decision memories. Relationships go into
the graph store.
"""

from typing import Dict, List, Optional, Union, Any

from pydantic import ValidationError

from floraa.core.exceptions import ContextError, ProjectNotFoundError
from floraa.core.logging import get_logger
from floraa.core.settings import Settings, get_settings, deep_merge
from floraa.context.embeddings import EmbeddingService
from floraa.context.graph_store import GraphStore
from floraa.context.vector_store import VectorStore
from floraa.context.models import (
    ProjectContext, ConversationMemory, CodeMemory, DecisionMemory,
    Interaction, Learning, LearnedPattern, SearchHit, RelevantContext, now_iso,
)
from floraa.llm.prompts import classify_request

logger = get_logger(__name__)

# Memory record types stored in the vector store
PROJECT_CONTEXT = "project_context"
CONVERSATION_MEMORY = "conversation_memory"
CODE_MEMORY = "code_memory"
DECISION_MEMORY = "decision_memory"

_OUTCOME_SCORES = {"success": 1.0, "partial": 0.5, "failure": 0.0}


def _record_id(memory_type: str, item_id: str) -> str:
    return f"{memory_type}:{item_id}"


class ContextManager:
    """Store and retrieve project memory."""

    def __init__(self,
                 vector_store: Optional[VectorStore] = None,
                 graph_store: Optional[GraphStore] = None,
                 embedding_service: Optional[EmbeddingService] = None,
                 settings: Optional[Settings] = None):
        settings = settings or get_settings()
        context_settings = settings.context

        if vector_store is None:
            persist = context_settings.persist_directory
            vector_store = VectorStore(
                persist_directory=str(persist) if persist else None,
                collection_prefix=context_settings.collection_prefix
            )
        if embedding_service is None:
            api_key = None
            if context_settings.use_remote_embeddings:
                api_key = settings.ai.providers.openai.usable_api_key()
            embedding_service = EmbeddingService(
                api_key=api_key,
                model=context_settings.embedding_model,
                dimension=context_settings.embedding_dimension,
                cache_size=context_settings.cache_size
            )

        self.vector_store = vector_store
        self.graph_store = graph_store or GraphStore()
        self.embeddings = embedding_service
        self._cache: Dict[str, ProjectContext] = {}

    # Project context

    async def store_project_context(self, context: Union[ProjectContext, Dict[str, Any]]) -> ProjectContext:
        """
        Validate and persist a project context.

        Raises:
            ContextError: If the context is invalid or cannot be stored
        """
        try:
            validated = (context if isinstance(context, ProjectContext)
                         else ProjectContext.model_validate(context))
        except ValidationError as e:
            raise ContextError(f"Invalid project context: {e}") from e

        try:
            embedding = await self.embeddings.embed(validated.model_dump_json())
            self.vector_store.store(
                _record_id(PROJECT_CONTEXT, validated.id),
                validated.model_dump(mode="json"),
                embedding,
                {
                    "type": PROJECT_CONTEXT,
                    "project_id": validated.id,
                    "timestamp": now_iso(),
                }
            )
            self.graph_store.store_project_relationships(validated)
        except Exception as e:
            logger.error(f"Failed to store project context {validated.id}: {e}")
            raise ContextError(f"Failed to store project context: {e}") from e

        self._cache[validated.id] = validated
        logger.info(f"Project context stored for {validated.name}")
        return validated

    async def get_project_context(self, project_id: str) -> Optional[ProjectContext]:
        """Cached or persisted project context, or None."""
        try:
            context = self._cache.get(project_id)
            if context is None:
                record = self.vector_store.retrieve(_record_id(PROJECT_CONTEXT, project_id))
                if record is None:
                    return None
                context = ProjectContext.model_validate(record["content"])
                self._cache[project_id] = context

            context.metadata.last_accessed = now_iso()
            return context
        except Exception as e:
            logger.error(f"Failed to retrieve project context {project_id}: {e}")
            return None

    async def update_project_context(self, project_id: str, updates: Dict[str, Any]) -> ProjectContext:
        """
        Deep-merge ``updates`` into a stored project context.

        Raises:
            ProjectNotFoundError: If the project has no stored context
            ContextError: If the merged context is invalid
        """
        current = await self.get_project_context(project_id)
        if current is None:
            raise ProjectNotFoundError(project_id)

        merged = deep_merge(current.model_dump(mode="json"), updates)
        merged["id"] = project_id
        merged["metadata"] = {
            **merged.get("metadata", {}),
            "updated_at": now_iso(),
            "access_count": current.metadata.access_count + 1,
        }

        updated = await self.store_project_context(merged)
        logger.info(f"Project context updated for {project_id}")
        return updated

    # Memories

    async def store_conversation_memory(self, memory: Union[ConversationMemory, Dict[str, Any]]) -> ConversationMemory:
        """Embed and persist a conversation. Raises ContextError on failure."""
        try:
            memory = (memory if isinstance(memory, ConversationMemory)
                      else ConversationMemory.model_validate(memory))
            for message in memory.messages:
                if message.embeddings is None:
                    message.embeddings = await self.embeddings.embed(message.content)

            summary_text = memory.summary or " ".join(m.content for m in memory.messages)
            self.vector_store.store(
                _record_id(CONVERSATION_MEMORY, memory.id),
                memory.model_dump(mode="json", exclude={"messages": {"__all__": {"embeddings"}}}),
                await self.embeddings.embed(summary_text),
                {
                    "type": CONVERSATION_MEMORY,
                    "project_id": memory.project_id,
                    "agent_id": memory.agent_id,
                    "timestamp": now_iso(),
                }
            )
        except Exception as e:
            logger.error(f"Failed to store conversation memory: {e}")
            raise ContextError(f"Failed to store conversation memory: {e}") from e

        logger.info(f"Conversation memory stored for project {memory.project_id}")
        return memory

    async def store_code_memory(self, memory: Union[CodeMemory, Dict[str, Any]]) -> CodeMemory:
        """Embed and persist a code memory. Raises ContextError on failure."""
        try:
            memory = memory if isinstance(memory, CodeMemory) else CodeMemory.model_validate(memory)
            if memory.embeddings is None:
                memory.embeddings = await self.embeddings.embed(
                    f"{memory.file_path}\n{memory.purpose}\n{memory.content}"
                )
            self.vector_store.store(
                _record_id(CODE_MEMORY, memory.id),
                memory.model_dump(mode="json", exclude={"embeddings"}),
                memory.embeddings,
                {
                    "type": CODE_MEMORY,
                    "project_id": memory.project_id,
                    "file_path": memory.file_path,
                    "timestamp": now_iso(),
                }
            )
        except Exception as e:
            logger.error(f"Failed to store code memory: {e}")
            raise ContextError(f"Failed to store code memory: {e}") from e

        logger.info(f"Code memory stored for {memory.file_path}")
        return memory

    async def store_decision_memory(self, memory: Union[DecisionMemory, Dict[str, Any]]) -> DecisionMemory:
        """Embed and persist a decision and link it in the graph. Raises ContextError on failure."""
        try:
            memory = memory if isinstance(memory, DecisionMemory) else DecisionMemory.model_validate(memory)
            embedding = await self.embeddings.embed(f"{memory.decision}\n{memory.reasoning}")
            self.vector_store.store(
                _record_id(DECISION_MEMORY, memory.id),
                memory.model_dump(mode="json"),
                embedding,
                {
                    "type": DECISION_MEMORY,
                    "project_id": memory.project_id,
                    "status": memory.status,
                    "timestamp": now_iso(),
                }
            )
            self.graph_store.add_decision(memory)
        except Exception as e:
            logger.error(f"Failed to store decision memory: {e}")
            raise ContextError(f"Failed to store decision memory: {e}") from e

        logger.info(f"Decision memory stored for project {memory.project_id}")
        return memory

    # Retrieval

    async def semantic_search(self,
                              project_id: str,
                              query: str,
                              limit: int = 10,
                              memory_type: Optional[str] = None) -> List[SearchHit]:
        """Memories of a project ranked by similarity to ``query``. Failures yield []."""
        try:
            query_embedding = await self.embeddings.embed(query)
            results = self.vector_store.search(
                query_embedding,
                filters={"project_id": project_id, "type": memory_type},
                limit=limit
            )
            return [
                SearchHit(
                    content=result["content"],
                    similarity=result["similarity"],
                    type=result["metadata"].get("type", "unknown")
                )
                for result in results
            ]
        except Exception as e:
            logger.error(f"Semantic search failed: {e}")
            return []

    async def get_related_decisions(self, project_id: str, query: str, limit: int = 5) -> List[DecisionMemory]:
        """Decisions matching the query plus the decisions linked to them."""
        try:
            hits = await self.semantic_search(project_id, query, limit, memory_type=DECISION_MEMORY)
            decisions = [DecisionMemory.model_validate(hit.content) for hit in hits]

            seen = {d.id for d in decisions}
            for decision in list(decisions):
                for related_id in self.graph_store.related_decisions(decision.id):
                    if related_id in seen:
                        continue
                    record = self.vector_store.retrieve(_record_id(DECISION_MEMORY, related_id))
                    if record:
                        decisions.append(DecisionMemory.model_validate(record["content"]))
                        seen.add(related_id)
            return decisions
        except Exception as e:
            logger.error(f"Failed to get related decisions: {e}")
            return []

    async def get_relevant_code_context(self, project_id: str, query: str, limit: int = 5) -> List[CodeMemory]:
        try:
            hits = await self.semantic_search(project_id, query, limit, memory_type=CODE_MEMORY)
            return [CodeMemory.model_validate(hit.content) for hit in hits]
        except Exception as e:
            logger.error(f"Failed to get code context: {e}")
            return []

    async def get_relevant_context(self, project_id: str, query: str, agent_type: str) -> RelevantContext:
        """Everything an agent of ``agent_type`` should see when answering ``query``."""
        try:
            context = RelevantContext(
                project_context=await self.get_project_context(project_id),
                relevant_memories=await self.semantic_search(project_id, query, 5),
                related_decisions=await self.get_related_decisions(project_id, query),
                code_context=await self.get_relevant_code_context(project_id, query),
            )
            logger.debug(f"Relevant context for {agent_type}: "
                         f"{len(context.relevant_memories)} memories, "
                         f"{len(context.related_decisions)} decisions, "
                         f"{len(context.code_context)} code files")
            return context
        except Exception as e:
            logger.error(f"Failed to get relevant context: {e}")
            return RelevantContext()

    # Learning

    async def learn_from_interaction(self, project_id: str, interaction: Union[Interaction, Dict[str, Any]]) -> None:
        """Record the outcome of an exchange. Unknown projects are ignored."""
        try:
            interaction = (interaction if isinstance(interaction, Interaction)
                           else Interaction.model_validate(interaction))
            context = await self.get_project_context(project_id)
            if context is None:
                return

            context.ai.learnings.append(Learning(
                context=interaction.query,
                decision=interaction.response,
                outcome=interaction.outcome,
            ))
            self._update_patterns(context, interaction)

            await self.store_project_context(context)
            logger.info(f"Learning stored for project {project_id}")
        except Exception as e:
            logger.error(f"Failed to learn from interaction: {e}")

    @staticmethod
    def _update_patterns(context: ProjectContext, interaction: Interaction) -> None:
        """Bump the pattern's frequency and fold the outcome into its running success rate."""
        name = interaction.pattern or classify_request(interaction.query)
        score = _OUTCOME_SCORES[interaction.outcome]

        for pattern in context.ai.patterns:
            if pattern.pattern == name:
                pattern.frequency += 1
                pattern.success_rate += (score - pattern.success_rate) / pattern.frequency
                return

        context.ai.patterns.append(LearnedPattern(pattern=name, frequency=1, success_rate=score))

    def clear_cache(self) -> None:
        self._cache.clear()
        self.embeddings.clear_cache()


_context_manager: Optional[ContextManager] = None


def get_context_manager() -> ContextManager:
    """Get the global context manager."""
    global _context_manager
    if _context_manager is None:
        _context_manager = ContextManager()
    return _context_manager


def set_context_manager(manager: Optional[ContextManager]) -> None:
    global _context_manager
    _context_manager = manager
