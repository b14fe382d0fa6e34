"""Unit tests for the chunking service."""

import pytest

from mdchat.services.chunking import (
    chunk_document,
    extract_chapter_title,
    find_section_headings,
)


def _sentences(n: int, prefix: str = "Sentence") -> str:
    return " ".join(f"{prefix} number {i} is here." for i in range(n))


def test_chunk_empty_returns_empty():
    assert chunk_document("") == []
    assert chunk_document("   \n\n  ") == []


def test_chunk_short_text_single_chunk():
    chunks = chunk_document("Hello, world!", chunk_size=100, chunk_overlap=10)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].content == "Hello, world!"
    assert chunks[0].start == 0
    assert chunks[0].section_title is None


@pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_chunk_rejects_configuration_that_cannot_progress(size, overlap):
    with pytest.raises(ValueError):
        chunk_document("some text", chunk_size=size, chunk_overlap=overlap)


def test_2500_char_document_gives_three_or_four_chunks_under_its_heading():
    body = _sentences(200)
    text = "## Overview\n" + body
    text = text[:2500]
    assert len(text) == 2500

    chunks = chunk_document(text, chunk_size=1000, chunk_overlap=200)

    assert len(chunks) in (3, 4)
    assert all(c.section_title == "Overview" for c in chunks)


def test_chunks_cover_document_with_bounded_overlap():
    text = _sentences(300)
    chunks = chunk_document(text, chunk_size=500, chunk_overlap=100)

    assert len(chunks) > 1
    assert chunks[0].start == 0
    assert chunks[-1].end == len(text)
    for prev, nxt in zip(chunks, chunks[1:]):
        overlap = prev.end - nxt.start
        assert 0 < overlap <= 100


def test_chunk_starts_are_ordered_and_indices_sequential():
    text = "\n\n".join(f"## Part {i}\n" + _sentences(15) for i in range(6))
    chunks = chunk_document(text, chunk_size=400, chunk_overlap=80)

    for i, chunk in enumerate(chunks):
        assert chunk.index == i
    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.start <= nxt.start


def test_chunk_prefers_sentence_boundary():
    text = _sentences(100)
    chunks = chunk_document(text, chunk_size=300, chunk_overlap=50)

    # Every chunk but the last ends on a full stop
    for chunk in chunks[:-1]:
        assert chunk.content.endswith(".")
        assert chunk.end - chunk.start > 150


def test_chunk_cuts_at_size_without_break_point():
    text = "x" * 2500
    chunks = chunk_document(text, chunk_size=1000, chunk_overlap=200)

    assert [(c.start, c.end) for c in chunks] == [(0, 1000), (800, 1800), (1600, 2500)]


def test_section_attribution_uses_last_preceding_heading():
    text = (
        "Intro paragraph without a heading. " * 5
        + "\n## Black-Scholes\n"
        + _sentences(30, "Greek")
        + "\n### Delta Hedging\n"
        + _sentences(30, "Hedge")
    )
    chunks = chunk_document(text, chunk_size=300, chunk_overlap=50)
    headings = find_section_headings(text)

    assert chunks[0].section_title is None
    for chunk in chunks:
        preceding = [h for h in headings if h.position <= chunk.start]
        expected = preceding[-1].title if preceding else None
        assert chunk.section_title == expected
    assert chunks[-1].section_title == "Delta Hedging"


def test_rechunking_is_deterministic():
    text = "# Chapter\n\n## A\n" + _sentences(40) + "\n## B\n" + _sentences(40)
    first = chunk_document(text, chunk_size=350, chunk_overlap=70)
    second = chunk_document(text, chunk_size=350, chunk_overlap=70)
    assert first == second


def test_top_level_heading_is_not_a_section():
    headings = find_section_headings("# Chapter\n\n## Section\n\n#### Deep one\n")
    assert [(h.title, h.level) for h in headings] == [("Section", 2), ("Deep one", 4)]


def test_chapter_title_from_frontmatter():
    text = '---\ntitle: "Pricing Derivatives"\nauthor: Someone\n---\n\n# Other heading\n'
    assert extract_chapter_title(text) == "Pricing Derivatives"


def test_chapter_title_from_first_h1():
    text = "Some preface\n\n# The Black-Scholes Model\n\n## Greeks\n"
    assert extract_chapter_title(text) == "The Black-Scholes Model"


def test_chapter_title_absent():
    assert extract_chapter_title("## Only a section\n\nBody text.") is None
