"""Chat message model — one turn of the (single, global) conversation."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel
from sqlalchemy import JSON, Text
from sqlmodel import Column, Field, SQLModel

from mdchat.models.base import CreatedAtMixin, new_uuid


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class SourceReference(BaseModel):
    """Snapshot of where an answer came from.

    Copied by value so a message keeps its citations after the document is
    deleted.
    """

    filename: str
    chapter_title: str | None = None
    section_title: str | None = None
    similarity: float


class ChatMessage(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    role: MessageRole = Field(nullable=False)
    content: str = Field(sa_column=Column(Text, nullable=False))

    # List of SourceReference dicts for assistant answers, else None
    sources: list[dict] | None = Field(
        default=None, sa_column=Column(JSON(none_as_null=True), nullable=True),
    )

    def source_references(self) -> list[SourceReference]:
        return [SourceReference.model_validate(s) for s in self.sources or []]


# ── Pydantic schemas ─────────────────────────────────────────

class ChatMessageRead(SQLModel):
    id: uuid.UUID
    role: MessageRole
    content: str
    sources: list[SourceReference] | None = None
    created_at: datetime
