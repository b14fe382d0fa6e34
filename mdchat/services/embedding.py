"""Embedding service — wraps LiteLLM for provider-agnostic vector generation."""

from __future__ import annotations

import logging

from litellm import aembedding

from mdchat.core.cache import TTLCache
from mdchat.core.config import Settings
from mdchat.core.errors import ProviderError
from mdchat.services.retry import call_with_retries

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

# Query embeddings are memoized for an hour, 100 distinct queries at most
QUERY_CACHE_TTL = 60 * 60
QUERY_CACHE_SIZE = 100


class EmbeddingClient:
    """Maps text to a fixed-length vector using the configured provider model."""

    def __init__(self, settings: Settings, query_cache: TTLCache | None = None) -> None:
        self.settings = settings
        self.model = settings.embedding_model or DEFAULT_EMBEDDING_MODEL
        self.query_cache = query_cache or TTLCache(ttl=QUERY_CACHE_TTL, max_entries=QUERY_CACHE_SIZE)

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            ProviderError: if the provider call fails after retries.
        """
        kwargs: dict = {
            "model": self.model,
            "input": [text],
            "timeout": self.settings.provider_timeout_seconds,
        }
        if self.settings.provider_api_key:
            kwargs["api_key"] = self.settings.provider_api_key

        async def _call():
            return await aembedding(**kwargs)

        response = await call_with_retries(
            _call,
            operation="create embedding",
            max_retries=self.settings.provider_max_retries,
            base_delay=self.settings.provider_retry_base_delay,
            max_delay=self.settings.provider_retry_max_delay,
        )
        if not response.data:
            raise ProviderError("Failed to create embedding: provider returned no vectors")
        return list(response.data[0]["embedding"])

    async def embed_query(self, query: str) -> list[float]:
        """Embed a chat query, reusing vectors for repeated questions."""
        key = query.lower().strip()
        cached = self.query_cache.get(key)
        if cached is not None:
            logger.debug("Query embedding cache hit")
            return cached
        vector = await self.embed(query)
        self.query_cache.put(key, vector)
        return vector
