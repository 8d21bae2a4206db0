"""
Vector store for project memory, backed by ChromaDB.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional

import chromadb
from chromadb.config import Settings

logger = logging.getLogger(__name__)

# Only scalar values can be stored as Chroma metadata
_SCALAR_TYPES = (str, int, float, bool)


def _build_where(filters: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    clauses = [{k: v} for k, v in (filters or {}).items() if v is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class VectorStore:
    """
    Stores memory records (project contexts, conversations, code, decisions)
    as JSON documents with caller-supplied embeddings.
    """

    def __init__(self,
                 persist_directory: Optional[str] = None,
                 collection_prefix: str = "floraa"):
        """
        Initialize the vector store.

        Args:
            persist_directory: Directory for persistence (None for in-memory)
            collection_prefix: Prefix of the collection name
        """
        if persist_directory:
            self.persist_directory = Path(persist_directory)
            self.persist_directory.mkdir(parents=True, exist_ok=True)

            self.client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=Settings(anonymized_telemetry=False, allow_reset=True)
            )
            self.collection_name = f"{collection_prefix}_memory"
        else:
            self.persist_directory = None
            self.client = chromadb.EphemeralClient(
                settings=Settings(anonymized_telemetry=False, allow_reset=True)
            )
            # Ephemeral clients share one in-process backend
            self.collection_name = f"{collection_prefix}_{uuid.uuid4().hex[:12]}"

        # We supply our own embeddings, so no embedding function
        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None
        )
        logger.info(f"Using vector collection: {self.collection_name}")

    def store(self,
              record_id: str,
              content: Any,
              embedding: List[float],
              metadata: Dict[str, Any]) -> None:
        """
        Insert or replace a record.

        Raises:
            Exception: Whatever ChromaDB raises; store failures are not swallowed
        """
        clean_metadata = {
            k: v for k, v in metadata.items()
            if isinstance(v, _SCALAR_TYPES)
        }
        self.collection.upsert(
            ids=[record_id],
            embeddings=[embedding],
            metadatas=[clean_metadata],
            documents=[json.dumps(content, default=str)]
        )
        logger.debug(f"Stored {clean_metadata.get('type', 'record')} {record_id}")

    def retrieve(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Get a record by id as ``{"id", "content", "metadata"}``."""
        try:
            result = self.collection.get(ids=[record_id], include=["documents", "metadatas"])
        except Exception as e:
            logger.error(f"Error retrieving {record_id}: {e}")
            return None

        if not result["ids"]:
            return None

        return {
            "id": result["ids"][0],
            "content": json.loads(result["documents"][0]),
            "metadata": result["metadatas"][0] or {},
        }

    def search(self,
               embedding: List[float],
               filters: Optional[Dict[str, Any]] = None,
               limit: int = 10) -> List[Dict[str, Any]]:
        """
        Nearest-neighbour search.

        Returns:
            Records with ``content``, ``metadata`` and ``similarity``
            (1 - cosine distance), best first
        """
        try:
            count = self.collection.count()
            if count == 0 or limit <= 0:
                return []

            results = self.collection.query(
                query_embeddings=[embedding],
                n_results=min(limit, count),
                where=_build_where(filters),
                include=["documents", "metadatas", "distances"]
            )
        except Exception as e:
            logger.error(f"Error searching vector store: {e}")
            return []

        hits = []
        if results["ids"] and results["ids"][0]:
            for i, record_id in enumerate(results["ids"][0]):
                hits.append({
                    "id": record_id,
                    "content": json.loads(results["documents"][0][i]),
                    "metadata": results["metadatas"][0][i] or {},
                    "similarity": 1.0 - results["distances"][0][i],
                })
        return hits

    def delete(self, record_id: str) -> None:
        self.collection.delete(ids=[record_id])

    def count(self) -> int:
        return self.collection.count()
