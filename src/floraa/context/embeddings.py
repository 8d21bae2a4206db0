"""
Embedding generation for project memory.
"""

import asyncio
import hashlib
import logging
import re
from collections import OrderedDict
from typing import List, Optional

import numpy as np
from openai import OpenAI

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


class EmbeddingService:
    """
    Service for generating embeddings from text.

    Uses OpenAI embeddings when an API key is available. Without one it falls
    back to a deterministic feature-hashing embedding of the same dimension,
    so similar texts still land close together. Embeddings are cached by
    content hash.
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = "text-embedding-3-small",
                 dimension: int = 1536,
                 cache_size: int = 1000):
        self.model = model
        self.dimension = dimension
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._encoding = None

        if api_key:
            self.client = OpenAI(api_key=api_key)
            self.enabled = True
            logger.info(f"Embedding service initialized with model: {model}")
        else:
            self.client = None
            self.enabled = False
            logger.info("No OpenAI API key, using local hashing embeddings")

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        cache_key = self._get_cache_key(text)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._cache.move_to_end(cache_key)
            return cached

        embedding = None
        if self.enabled:
            try:
                embedding = await asyncio.to_thread(self._embed_remote, text)
            except Exception as e:
                logger.error(f"Error generating embedding, using local fallback: {e}")

        if embedding is None:
            embedding = self.hash_embedding(text)

        self._cache_embedding(cache_key, embedding)
        return embedding

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [await self.embed(text) for text in texts]

    def _embed_remote(self, text: str) -> List[float]:
        response = self.client.embeddings.create(
            input=self._truncate_text(text, max_tokens=8000),
            model=self.model
        )
        return response.data[0].embedding

    def hash_embedding(self, text: str) -> List[float]:
        """
        Deterministic bag-of-words embedding.

        Each word and adjacent word pair is hashed to a signed bucket, and the
        result is L2-normalised.
        """
        vector = np.zeros(self.dimension, dtype=np.float64)
        tokens = _TOKEN_RE.findall(text.lower())
        features = tokens + [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]

        for feature in features:
            digest = hashlib.sha256(feature.encode()).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm == 0:
            # Empty text still needs a valid direction for cosine distance
            vector[0] = 1.0
            norm = 1.0
        return (vector / norm).tolist()

    def _truncate_text(self, text: str, max_tokens: int) -> str:
        """Truncate text to maximum token length."""
        if self._encoding is None:
            import tiktoken
            self._encoding = tiktoken.get_encoding("cl100k_base")
        tokens = self._encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return self._encoding.decode(tokens[:max_tokens])

    def _get_cache_key(self, text: str) -> str:
        return hashlib.sha256(f"{self.model}:{text}".encode()).hexdigest()

    def _cache_embedding(self, cache_key: str, embedding: List[float]) -> None:
        self._cache[cache_key] = embedding
        self._cache.move_to_end(cache_key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()
