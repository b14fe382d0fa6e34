"""Document model — one uploaded markdown / Quarto file."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from mdchat.models.base import TimestampMixin, new_uuid


class DocumentStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Document(TimestampMixin, SQLModel, table=True):
    __tablename__ = "documents"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    filename: str = Field(max_length=500, nullable=False, index=True)
    content: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    size: int = Field(default=0)

    chunk_count: int = Field(default=0)
    status: DocumentStatus = Field(default=DocumentStatus.PROCESSING)
    error_message: str | None = Field(default=None, max_length=2000)

    # From YAML frontmatter `title:` or the first `# ` heading
    chapter_title: str | None = Field(default=None, max_length=500)


# ── Pydantic schemas ─────────────────────────────────────────

class DocumentRead(SQLModel):
    id: uuid.UUID
    filename: str
    size: int
    chunk_count: int
    status: DocumentStatus
    error_message: str | None = None
    chapter_title: str | None = None
    created_at: datetime
