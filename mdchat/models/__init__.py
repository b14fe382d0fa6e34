"""Import all models so SQLModel.metadata picks them up."""

from mdchat.models.chunk import ChunkRead, DocumentChunk
from mdchat.models.document import Document, DocumentRead, DocumentStatus
from mdchat.models.message import ChatMessage, ChatMessageRead, MessageRole, SourceReference

__all__ = [
    "ChatMessage",
    "ChatMessageRead",
    "ChunkRead",
    "Document",
    "DocumentChunk",
    "DocumentRead",
    "DocumentStatus",
    "MessageRole",
    "SourceReference",
]
