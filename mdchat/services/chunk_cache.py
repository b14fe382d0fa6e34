"""In-memory snapshot of every searchable chunk.

The snapshot holds the embedded chunks of all completed documents together
with their document rows. It is rebuilt wholesale from storage when it is
older than the TTL or after ``invalidate()``; it is never patched in place.

One ChunkCache is created per process (see ``mdchat.core.deps``) and shared
by the chat path, the hybrid ranker and the processing pipeline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document
from mdchat.services.similarity import ScoredItem, score_candidates, top_k
from mdchat.services.storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60
DEFAULT_BATCH_SIZE = 100
DEFAULT_THRESHOLD = 0.3
DEFAULT_LIMIT = 5


@dataclass(frozen=True, eq=False)
class CachedChunk:
    chunk: DocumentChunk
    document: Document
    embedding: np.ndarray


@dataclass(frozen=True)
class SearchResult:
    chunk: DocumentChunk
    document: Document
    similarity: float


class ChunkCache:
    def __init__(
        self,
        storage: Storage,
        ttl: float = DEFAULT_TTL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        threshold: float = DEFAULT_THRESHOLD,
        default_limit: int = DEFAULT_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.storage = storage
        self.ttl = ttl
        self.batch_size = batch_size
        self.threshold = threshold
        self.default_limit = default_limit
        self._clock = clock

        self._snapshot: tuple[CachedChunk, ...] | None = None
        self._loaded_at = 0.0
        # Bumped by invalidate(); a rebuild that started under an older
        # generation is discarded instead of installed.
        self._generation = 0
        self._rebuild_lock = asyncio.Lock()
        self.rebuild_count = 0

    def invalidate(self) -> None:
        """Drop the snapshot so the next reader rebuilds it."""
        self._snapshot = None
        self._generation += 1
        logger.debug("Chunk cache invalidated (generation %d)", self._generation)

    def _fresh_snapshot(self) -> tuple[CachedChunk, ...] | None:
        if self._snapshot is None:
            return None
        if self._clock() - self._loaded_at > self.ttl:
            return None
        return self._snapshot

    async def snapshot(self) -> tuple[CachedChunk, ...]:
        """Return the current snapshot, rebuilding it first if stale.

        Concurrent callers share one rebuild: whoever holds the lock builds,
        the rest wait and then reuse the freshly installed snapshot.
        """
        current = self._fresh_snapshot()
        if current is not None:
            return current

        async with self._rebuild_lock:
            while True:
                current = self._fresh_snapshot()
                if current is not None:
                    return current

                generation = self._generation
                entries = await self._load()
                if generation != self._generation:
                    logger.info("Chunk cache invalidated during rebuild; reloading")
                    continue

                self._snapshot = entries
                self._loaded_at = self._clock()
                return entries

    async def _load(self) -> tuple[CachedChunk, ...]:
        started = time.monotonic()
        rows = await self.storage.list_completed_chunks()
        entries = tuple(
            CachedChunk(
                chunk=chunk,
                document=document,
                embedding=np.asarray(chunk.embedding, dtype=np.float64),
            )
            for chunk, document in rows
            if chunk.embedding
        )
        self.rebuild_count += 1
        logger.info(
            "Chunk cache loaded in %dms (%d chunks)",
            int((time.monotonic() - started) * 1000),
            len(entries),
        )
        return entries

    async def is_empty(self) -> bool:
        return not await self.snapshot()

    async def score_all(
        self,
        query_vector: Sequence[float],
        threshold: float | None = None,
        section_filter: str | None = None,
    ) -> list[ScoredItem[CachedChunk]]:
        """Score every cached chunk against the query, batch by batch.

        Each batch is one matrix-vector product over its stacked embeddings.
        The event loop gets control back between batches so a large snapshot
        does not monopolize it.
        """
        entries = await self.snapshot()
        if section_filter is not None:
            entries = tuple(e for e in entries if e.chunk.section_title == section_filter)

        scored: list[ScoredItem[CachedChunk]] = []
        for i in range(0, len(entries), self.batch_size):
            batch = entries[i : i + self.batch_size]
            scored.extend(score_candidates(query_vector, ((e.embedding, e) for e in batch), threshold))
            await asyncio.sleep(0)
        return scored

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Top ``limit`` chunks by cosine similarity at or above ``threshold``.

        ``limit`` and ``threshold`` default to the values the cache was
        configured with.
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.threshold if threshold is None else threshold

        scored = await self.score_all(query_vector, threshold=threshold)
        return [
            SearchResult(
                chunk=item.payload.chunk,
                document=item.payload.document,
                similarity=item.score,
            )
            for item in top_k(scored, limit)
        ]
