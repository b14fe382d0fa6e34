"""Hybrid search — cosine similarity fused with BM25 keyword relevance.

Semantic search alone misses chunks that use different wording for the same
idea; keyword search alone rewards lexical overlap without meaning. Each
side nominates ``2 * limit`` candidates, and a chunk's combined score is the
weighted sum of whichever scores it received.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from rank_bm25 import BM25Plus

from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document
from mdchat.services.chunk_cache import CachedChunk, ChunkCache
from mdchat.services.embedding import EmbeddingClient
from mdchat.services.similarity import ScoredItem, top_k

logger = logging.getLogger(__name__)

DEFAULT_SEMANTIC_WEIGHT = 0.7
DEFAULT_KEYWORD_WEIGHT = 0.3

_TOKEN = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")

# Common English words ignored by keyword matching
STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because
    been before being below between both but by can could did do does doing
    down during each few for from further had has have having he her here hers
    herself him himself his how i if in into is it its itself just me more most
    my myself no nor not now of off on once only or other our ours ourselves out
    over own same she should so some such than that the their theirs them
    themselves then there these they this those through to too under until up
    very was we were what when where which while who whom why will with would
    you your yours yourself yourselves
    """.split()
)


def tokenize(text: str) -> list[str]:
    """Lower-cased word tokens with stopwords removed."""
    return [t for t in _TOKEN.findall(text.lower()) if t not in STOPWORDS]


@dataclass(frozen=True)
class HybridResult:
    chunk: DocumentChunk
    document: Document
    semantic_score: float | None
    keyword_score: float | None
    combined_score: float

    @property
    def similarity(self) -> float:
        return self.combined_score


class KeywordIndex:
    """BM25Plus index over a fixed set of cached chunks."""

    def __init__(self, entries: Sequence[CachedChunk]) -> None:
        self.entries = tuple(entries)
        self.corpus = [tokenize(e.chunk.content) for e in self.entries]
        # rank_bm25 divides by the average document length
        self.bm25 = BM25Plus(self.corpus) if any(self.corpus) else None

    def scores(self, query: str) -> list[ScoredItem[CachedChunk]]:
        """BM25 relevance of each entry that contains at least one query term.

        Scores are divided by the best score so they land in (0, 1].
        """
        query_terms = tokenize(query)
        if not query_terms or self.bm25 is None:
            return []

        raw_scores = self.bm25.get_scores(query_terms)
        wanted = set(query_terms)
        matches = [
            (entry, float(score))
            for entry, tokens, score in zip(self.entries, self.corpus, raw_scores)
            if wanted.intersection(tokens)
        ]
        if not matches:
            return []

        best = max(score for _, score in matches)
        if best <= 0:
            return []
        return [ScoredItem(payload=entry, score=score / best) for entry, score in matches]


def keyword_scores(
    query: str,
    entries: Sequence[CachedChunk],
) -> list[ScoredItem[CachedChunk]]:
    """One-off keyword scoring; builds a throwaway index."""
    return KeywordIndex(entries).scores(query)


def fuse(
    semantic: Sequence[ScoredItem[CachedChunk]],
    keyword: Sequence[ScoredItem[CachedChunk]],
    semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
    keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
) -> list[HybridResult]:
    """Merge two candidate lists keyed by chunk id, best combined score first."""
    merged: dict[uuid.UUID, dict] = {}

    for item in semantic:
        merged[item.payload.chunk.id] = {
            "entry": item.payload,
            "semantic": item.score,
            "keyword": None,
            "combined": item.score * semantic_weight,
        }

    for item in keyword:
        existing = merged.get(item.payload.chunk.id)
        if existing is not None:
            existing["keyword"] = item.score
            existing["combined"] += item.score * keyword_weight
        else:
            merged[item.payload.chunk.id] = {
                "entry": item.payload,
                "semantic": None,
                "keyword": item.score,
                "combined": item.score * keyword_weight,
            }

    results = [
        HybridResult(
            chunk=row["entry"].chunk,
            document=row["entry"].document,
            semantic_score=row["semantic"],
            keyword_score=row["keyword"],
            combined_score=row["combined"],
        )
        for row in merged.values()
    ]
    results.sort(key=lambda r: r.combined_score, reverse=True)
    return results


class HybridRanker:
    def __init__(
        self,
        cache: ChunkCache,
        embedder: EmbeddingClient,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
    ) -> None:
        self.cache = cache
        self.embedder = embedder
        self.semantic_weight = semantic_weight
        self.keyword_weight = keyword_weight
        # Keyword indexes for the snapshot they were built from, by section filter
        self._indexed_snapshot: tuple[CachedChunk, ...] | None = None
        self._indexes: dict[str | None, KeywordIndex] = {}

    async def keyword_index(self, section_filter: str | None = None) -> KeywordIndex:
        """The BM25 index for the current cache snapshot, built once per snapshot."""
        entries = await self.cache.snapshot()
        if entries is not self._indexed_snapshot:
            self._indexed_snapshot = entries
            self._indexes = {}

        index = self._indexes.get(section_filter)
        if index is None:
            if section_filter is not None:
                entries = tuple(e for e in entries if e.chunk.section_title == section_filter)
            index = KeywordIndex(entries)
            self._indexes[section_filter] = index
            logger.debug("Built keyword index over %d chunks", len(entries))
        return index

    async def search(
        self,
        query: str,
        limit: int = 5,
        section_filter: str | None = None,
        query_vector: Sequence[float] | None = None,
    ) -> list[HybridResult]:
        """Rank cached chunks for ``query`` by fused semantic + keyword score.

        Args:
            query: The user's question.
            limit: Number of results to return.
            section_filter: Only consider chunks with this exact section title.
            query_vector: Pre-computed query embedding; embedded when omitted.
        """
        if limit <= 0:
            return []
        candidates = limit * 2

        if query_vector is None:
            query_vector = await self.embedder.embed_query(query)

        semantic = top_k(
            await self.cache.score_all(query_vector, section_filter=section_filter),
            candidates,
        )

        index = await self.keyword_index(section_filter)
        keyword = top_k(index.scores(query), candidates)

        results = fuse(semantic, keyword, self.semantic_weight, self.keyword_weight)[:limit]
        logger.debug(
            "Hybrid search: %d semantic, %d keyword candidates -> %d results",
            len(semantic), len(keyword), len(results),
        )
        return results
