"""Markdown chunking with section tracking."""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

_SECTION_HEADING = re.compile(r"^(#{2,})\s+(.+)$", re.MULTILINE)
_CHAPTER_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_FRONTMATTER_TITLE = re.compile(
    r"^---\s*\n.*?title:\s*[\"']?([^\"'\n]+)[\"']?\s*\n.*?---",
    re.DOTALL,
)


@dataclass(frozen=True)
class SectionHeading:
    position: int
    title: str
    level: int


@dataclass(frozen=True)
class TextChunk:
    """A chunk of text with its position in the source document.

    ``start`` and ``end`` delimit the untrimmed window in the original text;
    ``content`` is that window stripped of surrounding whitespace.
    """
    index: int
    content: str
    start: int
    end: int
    section_title: str | None = None


def extract_chapter_title(text: str) -> str | None:
    """Return the YAML frontmatter title, else the first `# ` heading, else None."""
    match = _FRONTMATTER_TITLE.match(text)
    if match:
        return match.group(1).strip()
    match = _CHAPTER_HEADING.search(text)
    if match:
        return match.group(1).strip()
    return None


def find_section_headings(text: str) -> list[SectionHeading]:
    """Every `##`-or-deeper heading with its character offset, in order."""
    return [
        SectionHeading(position=m.start(), title=m.group(2).strip(), level=len(m.group(1)))
        for m in _SECTION_HEADING.finditer(text)
    ]


def chunk_document(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Split text into overlapping chunks that prefer sentence/line breaks.

    Args:
        text: The document text.
        chunk_size: Target characters per chunk.
        chunk_overlap: Characters shared by consecutive chunks. Must be smaller
            than ``chunk_size`` or the window would never advance.

    Returns:
        Chunks in document order, each tagged with the title of the last
        section heading at or before its start offset.

    Raises:
        ValueError: If the size/overlap combination cannot make progress.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} "
            f"with chunk_size={chunk_size}"
        )

    headings = find_section_headings(text)
    heading_positions = [h.position for h in headings]

    chunks: list[TextChunk] = []
    length = len(text)
    start = 0

    while start < length:
        end = start + chunk_size

        if end < length:
            # Prefer to cut just after the last period or newline in the window
            break_point = max(text.rfind(".", start, end + 1), text.rfind("\n", start, end + 1))
            if break_point > start + chunk_size / 2 and break_point + 1 - chunk_overlap > start:
                end = break_point + 1
        else:
            end = length

        content = text[start:end].strip()
        if content:
            section_idx = bisect_right(heading_positions, start) - 1
            chunks.append(TextChunk(
                index=len(chunks),
                content=content,
                start=start,
                end=end,
                section_title=headings[section_idx].title if section_idx >= 0 else None,
            ))

        if end >= length:
            break
        start = end - chunk_overlap

    return chunks
