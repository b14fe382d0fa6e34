"""Document lifecycle — upload, list, delete, reprocess."""

from __future__ import annotations

import logging
import uuid

from mdchat.core.errors import DocumentNotFoundError
from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document, DocumentStatus
from mdchat.services.chunk_cache import ChunkCache
from mdchat.services.extract import MAX_FILE_SIZE, extract_text
from mdchat.services.jobs import Dispatcher
from mdchat.services.storage import Storage

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(
        self,
        storage: Storage,
        queue: Dispatcher,
        cache: ChunkCache,
        max_upload_bytes: int = MAX_FILE_SIZE,
    ) -> None:
        self.storage = storage
        self.queue = queue
        self.cache = cache
        self.max_upload_bytes = max_upload_bytes

    async def upload(self, filename: str, data: bytes) -> Document:
        """Store an uploaded file and start processing it in the background.

        A document with the same filename is replaced. The returned document
        is still ``processing``; poll ``get_document`` for the outcome.

        Raises:
            InvalidInputError: wrong extension, oversize or undecodable file.
        """
        content = extract_text(filename, data, self.max_upload_bytes)

        existing = await self.storage.find_document_by_filename(filename)
        if existing is not None:
            await self._remove(existing.id)
            logger.info("Replaced existing document: %s", filename)

        document = await self.storage.create_document(filename, content, len(data))
        await self.queue.submit(document.id)
        logger.info("Accepted upload %s (%d bytes) as %s", filename, len(data), document.id)
        return document

    async def list_documents(self) -> list[Document]:
        return await self.storage.list_documents()

    async def get_document(self, document_id: uuid.UUID) -> Document:
        document = await self.storage.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_chunks(self, document_id: uuid.UUID) -> list[DocumentChunk]:
        await self.get_document(document_id)
        return await self.storage.list_document_chunks(document_id)

    async def delete_document(self, document_id: uuid.UUID) -> None:
        """Delete a document and its chunks, stopping any in-flight processing."""
        await self.get_document(document_id)
        await self._remove(document_id)
        logger.info("Deleted document %s", document_id)

    async def reprocess(self, document_id: uuid.UUID) -> Document:
        """Run the processing pipeline again for an existing document."""
        await self.get_document(document_id)
        document = await self.storage.update_document(
            document_id,
            status=DocumentStatus.PROCESSING,
            error_message=None,
        )
        if document is None:
            raise DocumentNotFoundError(document_id)
        self.cache.invalidate()
        await self.queue.submit(document_id)
        return document

    async def _remove(self, document_id: uuid.UUID) -> None:
        await self.queue.cancel(document_id)
        await self.storage.delete_document(document_id)
        self.cache.invalidate()
