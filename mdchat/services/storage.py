"""Persistence for documents, chunks and chat messages.

Each method opens its own short-lived session from the factory so callers on
different tasks never share a session.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from mdchat.models.base import utcnow
from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document, DocumentStatus
from mdchat.models.message import ChatMessage, MessageRole, SourceReference


class Storage:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    # ── Documents ────────────────────────────────────────────

    async def create_document(self, filename: str, content: str, size: int) -> Document:
        doc = Document(
            filename=filename,
            content=content,
            size=size,
            status=DocumentStatus.PROCESSING,
        )
        async with self.session_factory() as session:
            session.add(doc)
            await session.commit()
            await session.refresh(doc)
        return doc

    async def get_document(self, document_id: uuid.UUID) -> Document | None:
        async with self.session_factory() as session:
            return await session.get(Document, document_id)

    async def list_documents(self) -> list[Document]:
        """All documents, newest first."""
        stmt = select(Document).order_by(Document.created_at.desc())  # type: ignore[union-attr]
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_document_by_filename(self, filename: str) -> Document | None:
        stmt = select(Document).where(Document.filename == filename)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> Document | None:
        """Set the given columns on a document. Returns None if it no longer exists."""
        async with self.session_factory() as session:
            doc = await session.get(Document, document_id)
            if doc is None:
                return None
            for name, value in fields.items():
                setattr(doc, name, value)
            doc.updated_at = utcnow()
            session.add(doc)
            await session.commit()
            await session.refresh(doc)
            return doc

    async def update_document_status(
        self,
        document_id: uuid.UUID,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document | None:
        return await self.update_document(document_id, status=status, error_message=error_message)

    async def delete_document(self, document_id: uuid.UUID) -> bool:
        """Delete a document and its chunks. Returns False if it did not exist."""
        async with self.session_factory() as session:
            await session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            result = await session.execute(delete(Document).where(Document.id == document_id))
            await session.commit()
            return result.rowcount > 0

    # ── Chunks ───────────────────────────────────────────────

    async def add_chunk(
        self,
        document_id: uuid.UUID,
        content: str,
        embedding: list[float],
        chunk_index: int,
        section_title: str | None = None,
    ) -> DocumentChunk:
        chunk = DocumentChunk(
            document_id=document_id,
            content=content,
            embedding=embedding,
            chunk_index=chunk_index,
            section_title=section_title,
        )
        async with self.session_factory() as session:
            session.add(chunk)
            await session.commit()
            await session.refresh(chunk)
        return chunk

    async def delete_document_chunks(self, document_id: uuid.UUID) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            await session.commit()
            return result.rowcount

    async def list_document_chunks(self, document_id: uuid.UUID) -> list[DocumentChunk]:
        """Chunks of one document in ascending chunk_index order."""
        stmt = (
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index.asc())  # type: ignore[union-attr]
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_completed_chunks(self) -> list[tuple[DocumentChunk, Document]]:
        """Embedded chunks of completed documents, paired with their document."""
        stmt = (
            select(DocumentChunk, Document)
            .join(Document, DocumentChunk.document_id == Document.id)
            .where(
                Document.status == DocumentStatus.COMPLETED,
                DocumentChunk.embedding.is_not(None),  # type: ignore[union-attr]
            )
            .order_by(Document.created_at, DocumentChunk.document_id, DocumentChunk.chunk_index)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [(chunk, doc) for chunk, doc in result.all()]

    # ── Chat messages ────────────────────────────────────────

    async def create_message(
        self,
        role: MessageRole,
        content: str,
        sources: list[SourceReference] | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            role=role,
            content=content,
            sources=[s.model_dump() for s in sources] if sources is not None else None,
        )
        async with self.session_factory() as session:
            session.add(message)
            await session.commit()
            await session.refresh(message)
        return message

    async def list_messages(self, limit: int = 50) -> list[ChatMessage]:
        """The last ``limit`` messages, oldest first."""
        stmt = (
            select(ChatMessage)
            .order_by(ChatMessage.created_at.desc())  # type: ignore[union-attr]
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            messages = list(result.scalars().all())
        messages.reverse()
        return messages

    async def clear_messages(self) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(ChatMessage))
            await session.commit()
