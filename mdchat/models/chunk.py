"""Chunk model — an embedded text segment of a Document."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Text
from sqlmodel import Column, Field, SQLModel

from mdchat.models.base import CreatedAtMixin, new_uuid


class DocumentChunk(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "document_chunks"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    document_id: uuid.UUID = Field(
        foreign_key="documents.id", nullable=False, index=True, ondelete="CASCADE",
    )

    # Position within the document
    chunk_index: int = Field(nullable=False)

    content: str = Field(sa_column=Column(Text, nullable=False))

    # Vector as a JSON array; dimensionality fixed by the embedding model
    embedding: list[float] | None = Field(
        default=None, sa_column=Column(JSON(none_as_null=True), nullable=True),
    )

    # Nearest preceding `##`+ heading
    section_title: str | None = Field(default=None, max_length=500)


# ── Pydantic schemas ─────────────────────────────────────────

class ChunkRead(SQLModel):
    id: uuid.UUID
    document_id: uuid.UUID
    chunk_index: int
    content: str
    section_title: str | None = None
    created_at: datetime
