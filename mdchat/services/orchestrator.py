"""Chat orchestrator — retrieval-augmented answer generation.

Flow:
  1. Store the user message
  2. Embed the query and retrieve the most relevant cached chunks
     (semantic, or hybrid semantic + keyword)
  3. Assemble context labelled with chapter / section titles
  4. Call the LLM via LiteLLM
  5. Store the assistant message with its source references
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mdchat.core.config import Settings
from mdchat.core.errors import InvalidInputError
from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document
from mdchat.models.message import ChatMessage, MessageRole, SourceReference
from mdchat.services.chunk_cache import ChunkCache
from mdchat.services.embedding import EmbeddingClient
from mdchat.services.hybrid import HybridRanker
from mdchat.services.llm import complete_chat
from mdchat.services.storage import Storage

logger = logging.getLogger(__name__)

NO_DOCUMENTS_REPLY = (
    "I don't have any documents to search through yet. "
    "Please upload some markdown files first."
)

SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided markdown documents. Use the context below to answer the user's question.

IMPORTANT: When referencing information from the sources, you MUST use the specific chapter and section titles provided in the context, NOT generic source numbers. For example:
- Say: "According to the Black-Scholes chapter, Greeks section..."
- Say: "As discussed in the 'European Call and Put Values' section..."
- Do NOT say: "As noted in Source 1" or "According to Source 3"

Always cite the actual chapter and section names when they are provided in the source information.

If the context doesn't contain relevant information, say so clearly.

Context from documents:
"""


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk selected for the answer context."""
    chunk: DocumentChunk
    document: Document
    score: float


@dataclass
class ChatTurn:
    user_message: ChatMessage
    assistant_message: ChatMessage
    retrieved: list[RetrievedChunk]


class ChatService:
    def __init__(
        self,
        storage: Storage,
        cache: ChunkCache,
        embedder: EmbeddingClient,
        settings: Settings,
        hybrid: HybridRanker | None = None,
    ) -> None:
        self.storage = storage
        self.cache = cache
        self.embedder = embedder
        self.settings = settings
        self.hybrid = hybrid

    async def send_message(self, content: str) -> ChatTurn:
        """Answer one user message from the uploaded documents.

        Raises:
            InvalidInputError: if ``content`` is empty.
            ProviderError: if embedding or completion fails; no answer is stored.
        """
        if not content or not content.strip():
            raise InvalidInputError("Content is required")

        user_message = await self.storage.create_message(MessageRole.USER, content)

        retrieved: list[RetrievedChunk] = []
        if not await self.cache.is_empty():
            retrieved = await self.retrieve(content)

        if not retrieved:
            assistant_message = await self.storage.create_message(
                MessageRole.ASSISTANT, NO_DOCUMENTS_REPLY,
            )
            return ChatTurn(user_message, assistant_message, [])

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT + build_context(retrieved)},
            {"role": "user", "content": content},
        ]
        answer = await complete_chat(messages, self.settings)

        assistant_message = await self.storage.create_message(
            MessageRole.ASSISTANT,
            answer,
            sources=[
                SourceReference(
                    filename=r.document.filename,
                    chapter_title=r.document.chapter_title,
                    section_title=r.chunk.section_title,
                    similarity=r.score,
                )
                for r in retrieved
            ],
        )
        return ChatTurn(user_message, assistant_message, retrieved)

    async def retrieve(self, query: str) -> list[RetrievedChunk]:
        """Top chunks for ``query`` using the configured retrieval mode."""
        limit = self.settings.search_top_k
        query_vector = await self.embedder.embed_query(query)

        if self.settings.retrieval_mode == "hybrid" and self.hybrid is not None:
            results = await self.hybrid.search(query, limit=limit, query_vector=query_vector)
            retrieved = [RetrievedChunk(r.chunk, r.document, r.combined_score) for r in results]
        else:
            results = await self.cache.search(query_vector, limit=limit)
            retrieved = [RetrievedChunk(r.chunk, r.document, r.similarity) for r in results]

        logger.info("Retrieved %d chunks (%s)", len(retrieved), self.settings.retrieval_mode)
        return retrieved

    async def list_messages(self, limit: int | None = None) -> list[ChatMessage]:
        return await self.storage.list_messages(limit or self.settings.chat_history_limit)

    async def clear_history(self) -> None:
        await self.storage.clear_messages()


def source_label(document: Document, chunk: DocumentChunk) -> str:
    parts = []
    if document.chapter_title:
        parts.append(f'Chapter: "{document.chapter_title}"')
    if chunk.section_title:
        parts.append(f'Section: "{chunk.section_title}"')
    if not parts:
        return f"Document: {document.filename}"
    return ", ".join(parts)


def build_context(retrieved: list[RetrievedChunk]) -> str:
    """Join retrieved chunks, each prefixed with where it came from."""
    return "\n\n---\n\n".join(
        f"From {source_label(r.document, r.chunk)}:\n{r.chunk.content}"
        for r in retrieved
    )
