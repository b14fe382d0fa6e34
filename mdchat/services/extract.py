"""Upload validation and text extraction for markdown / Quarto files."""

from __future__ import annotations

from pathlib import Path

from mdchat.core.errors import InvalidInputError

ALLOWED_EXTENSIONS = {".md", ".markdown", ".qmd"}
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB


def validate_upload(filename: str, size: int, max_size: int = MAX_FILE_SIZE) -> None:
    """Reject uploads with a missing name, a foreign extension or too many bytes."""
    if not filename or not filename.strip():
        raise InvalidInputError("No file uploaded")
    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidInputError("Only markdown and Quarto files are allowed")
    if size > max_size:
        raise InvalidInputError(
            f"File too large: {size} bytes (limit {max_size} bytes)"
        )


def extract_text(filename: str, content: bytes, max_size: int = MAX_FILE_SIZE) -> str:
    """Validate an upload and decode it to text.

    Args:
        filename: Original filename (used to determine type).
        content: Raw file bytes.
        max_size: Upper bound on ``len(content)``.

    Returns:
        The decoded document text.

    Raises:
        InvalidInputError: If the file is not an accepted markdown/Quarto file
            or is not valid UTF-8.
    """
    validate_upload(filename, len(content), max_size)
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidInputError(f"File is not valid UTF-8: {exc.reason}") from exc
    # Drop a leading byte-order mark so frontmatter detection still works
    return text.removeprefix("\ufeff")
