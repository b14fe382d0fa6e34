"""Document processing pipeline — chunk, embed and persist one document.

State machine: ``processing -> completed`` on success, ``processing -> error``
on any failure. A failed document never ends up ``completed`` with a partial
set of chunks.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mdchat.models.document import DocumentStatus
from mdchat.services.chunk_cache import ChunkCache
from mdchat.services.chunking import chunk_document, extract_chapter_title
from mdchat.services.embedding import EmbeddingClient
from mdchat.services.storage import Storage

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE = 2000


class KeyedLock:
    """One asyncio.Lock per key, dropped again once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: defaultdict[uuid.UUID, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def locked(self, key: uuid.UUID) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


@dataclass
class ProcessingResult:
    document_id: uuid.UUID
    status: DocumentStatus | None
    chunk_count: int = 0
    error: str | None = None


class DocumentProcessor:
    def __init__(
        self,
        storage: Storage,
        embedder: EmbeddingClient,
        cache: ChunkCache,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.cache = cache
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.locks = KeyedLock()

    async def process(self, document_id: uuid.UUID) -> ProcessingResult:
        """Run the full pipeline for one document.

        Failures are recorded on the document (status ``error``) and returned,
        not raised. A document deleted mid-run is reported as not found and
        leaves no chunks behind. Cancellation is not caught.
        """
        async with self.locks.hold(document_id):
            document = await self.storage.get_document(document_id)
            if document is None:
                logger.warning("Document %s not found; skipping processing", document_id)
                return _not_found(document_id)

            logger.info("Processing document %s (%s)", document.filename, document_id)
            try:
                chunk_count = await self._run(document_id, document.content, document.filename)
            except Exception as exc:
                logger.exception("Error processing document %s", document.filename)
                message = (str(exc) or type(exc).__name__)[:MAX_ERROR_MESSAGE]
                updated = await self.storage.update_document_status(
                    document_id, DocumentStatus.ERROR, error_message=message,
                )
                await self.storage.delete_document_chunks(document_id)
                self.cache.invalidate()
                if updated is None:
                    return _not_found(document_id)
                return ProcessingResult(
                    document_id=document_id, status=DocumentStatus.ERROR, error=message,
                )

            if chunk_count is None:
                logger.warning("Document %s was deleted during processing", document_id)
                await self.storage.delete_document_chunks(document_id)
                self.cache.invalidate()
                return _not_found(document_id)

            self.cache.invalidate()
            logger.info("Successfully processed %s: %d chunks", document.filename, chunk_count)
            return ProcessingResult(
                document_id=document_id, status=DocumentStatus.COMPLETED, chunk_count=chunk_count,
            )

    async def _run(self, document_id: uuid.UUID, content: str, filename: str) -> int | None:
        """Chunk, embed and persist. Returns None if the document row disappeared."""
        # 1. Back to processing so searches skip the document while its chunks are rebuilt
        started = await self.storage.update_document(
            document_id,
            status=DocumentStatus.PROCESSING,
            error_message=None,
            chapter_title=extract_chapter_title(content),
        )
        self.cache.invalidate()
        if started is None:
            return None

        # 2. Clear chunks from an earlier run
        await self.storage.delete_document_chunks(document_id)

        # 3. Chunk
        chunks = chunk_document(content, self.chunk_size, self.chunk_overlap)
        logger.info("Created %d chunks for %s", len(chunks), filename)

        # 4. Embed + persist, in order
        for chunk in chunks:
            logger.debug("Processing chunk %d/%d for %s", chunk.index + 1, len(chunks), filename)
            embedding = await self.embedder.embed(chunk.content)
            await self.storage.add_chunk(
                document_id,
                chunk.content,
                embedding,
                chunk.index,
                chunk.section_title,
            )

        # 5. Mark complete
        finished = await self.storage.update_document(
            document_id,
            chunk_count=len(chunks),
            status=DocumentStatus.COMPLETED,
            error_message=None,
        )
        if finished is None:
            return None
        return len(chunks)


def _not_found(document_id: uuid.UUID) -> ProcessingResult:
    return ProcessingResult(document_id=document_id, status=None, error="document_not_found")
