"""Chat orchestrator tests — full RAG flow with fake embeddings and mocked LLM."""

from unittest.mock import AsyncMock, patch

import pytest

from mdchat.core.errors import InvalidInputError, ProviderError
from mdchat.models.chunk import DocumentChunk
from mdchat.models.document import Document
from mdchat.models.message import MessageRole
from mdchat.services.orchestrator import NO_DOCUMENTS_REPLY, RetrievedChunk, build_context

BOOK = (
    b"---\ntitle: Pricing Derivatives\n---\n\n"
    b"## Black-Scholes Greeks\n"
    + b"Delta is the sensitivity of the option value to the underlying price. " * 15
    + b"\n\n## Binomial Trees\n"
    + b"A binomial tree discretizes the underlying price path into up and down moves. " * 15
)


async def _upload_book(services):
    doc = await services.documents.upload("pricing.qmd", BOOK)
    await services.queue.join()
    return doc


async def test_empty_content_rejected(services):
    with pytest.raises(InvalidInputError):
        await services.chat.send_message("   ")
    assert await services.chat.list_messages() == []


async def test_no_documents_gives_canned_reply_without_provider_calls(services, embedder):
    mock_llm = AsyncMock(return_value="should not be called")

    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        turn = await services.chat.send_message("What is delta?")

    assert turn.assistant_message.content == NO_DOCUMENTS_REPLY
    assert turn.assistant_message.role == MessageRole.ASSISTANT
    assert turn.assistant_message.sources is None
    assert turn.retrieved == []
    assert embedder.calls == []
    mock_llm.assert_not_called()


async def test_chat_answers_with_sources(services):
    await _upload_book(services)
    mock_llm = AsyncMock(return_value="Delta measures sensitivity to the underlying.")

    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        turn = await services.chat.send_message("What does delta measure for the option value?")

    assert turn.user_message.role == MessageRole.USER
    assert turn.assistant_message.content == "Delta measures sensitivity to the underlying."

    sources = turn.assistant_message.source_references()
    assert 0 < len(sources) <= services.settings.search_top_k
    assert all(s.filename == "pricing.qmd" for s in sources)
    assert all(s.chapter_title == "Pricing Derivatives" for s in sources)
    similarities = [s.similarity for s in sources]
    assert similarities == sorted(similarities, reverse=True)

    messages = mock_llm.call_args[0][0]
    assert messages[0]["role"] == "system"
    assert 'Chapter: "Pricing Derivatives"' in messages[0]["content"]
    assert messages[1] == {
        "role": "user",
        "content": "What does delta measure for the option value?",
    }


async def test_chat_in_hybrid_mode(services):
    await _upload_book(services)
    services.settings.retrieval_mode = "hybrid"
    mock_llm = AsyncMock(return_value="Binomial trees model up and down moves.")

    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        turn = await services.chat.send_message("binomial tree up and down moves")

    sections = {s.section_title for s in turn.assistant_message.source_references()}
    assert "Binomial Trees" in sections


async def test_provider_failure_propagates(services):
    await _upload_book(services)
    mock_llm = AsyncMock(side_effect=ProviderError("Failed to generate response: timeout"))

    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        with pytest.raises(ProviderError):
            await services.chat.send_message("What is delta?")

    messages = await services.chat.list_messages()
    assert [m.role for m in messages] == [MessageRole.USER]


async def test_sources_survive_document_deletion(services):
    doc = await _upload_book(services)
    mock_llm = AsyncMock(return_value="Answer.")
    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        await services.chat.send_message("delta option value")

    await services.documents.delete_document(doc.id)

    messages = await services.chat.list_messages()
    assert messages[-1].source_references()[0].filename == "pricing.qmd"


async def test_history_order_and_clear(services):
    await services.chat.send_message("first question")
    await services.chat.send_message("second question")

    messages = await services.chat.list_messages()
    assert [m.content for m in messages[::2]] == ["first question", "second question"]
    assert [m.role for m in messages] == [
        MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
    ]
    assert len(await services.chat.list_messages(limit=3)) == 3

    await services.chat.clear_history()
    assert await services.chat.list_messages() == []


async def test_query_embeddings_are_memoized(services, embedder):
    await _upload_book(services)
    embedder.calls.clear()
    mock_llm = AsyncMock(return_value="Answer.")

    with patch("mdchat.services.orchestrator.complete_chat", mock_llm):
        await services.chat.send_message("What is Delta?")
        await services.chat.send_message("  what is delta?")

    assert embedder.calls == ["What is Delta?"]


def test_context_labels_fall_back_to_filename():
    doc = Document(filename="notes.md")
    chunk = DocumentChunk(document_id=doc.id, chunk_index=0, content="Body text.")
    context = build_context([RetrievedChunk(chunk, doc, 0.9)])

    assert context == "From Document: notes.md:\nBody text."
