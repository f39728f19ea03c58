"""Text normalization and chunking service."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass

from chatrag.core.errors import InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 50


@dataclass
class TextChunk:
    """A chunk of text with its position index."""
    index: int
    content: str
    char_count: int


def normalize_text(text: str) -> str:
    """Normalize unicode, collapse whitespace, strip control characters."""
    # Normalize unicode to NFC form
    text = unicodedata.normalize("NFC", text)
    # Windows / old-Mac line endings
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Remove control characters (except newlines and tabs)
    text = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", "", text)
    # Collapse multiple spaces/tabs into a single space
    text = re.sub(r"[^\S\n]+", " ", text)
    # Strip trailing/leading spaces on each line
    text = re.sub(r" *\n *", "\n", text)
    # Collapse multiple blank lines into at most two newlines
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# Separators ordered by preference — try to split on semantic boundaries first.
# Each entry is (separator, joiner): the joiner is the whitespace put back
# between two pieces when they are merged into one chunk.
_SEPARATORS: list[tuple[str, str]] = [
    ("\n\n", "\n\n"),  # paragraph breaks
    ("\n", "\n"),      # line breaks
    (". ", " "),       # sentence boundaries
    ("! ", " "),
    ("? ", " "),
    (", ", " "),
    (" ", " "),        # word boundaries
    ("", ""),          # character-level fallback
]


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Split text into overlapping chunks using recursive character splitting.

    Args:
        text: The extracted document text to chunk.
        chunk_size: Target maximum characters per chunk.
        chunk_overlap: Maximum characters repeated from the end of one chunk
            at the start of the next.

    Returns:
        List of TextChunk objects; empty for empty or whitespace-only text.

    Raises:
        InvalidInputError: If ``text`` is not a string or the size/overlap
            combination is unusable.
    """
    if not isinstance(text, str):
        raise InvalidInputError("Text to chunk must be a string")
    if chunk_size <= 0:
        raise InvalidInputError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise InvalidInputError("chunk_overlap must be >= 0 and smaller than chunk_size")

    text = normalize_text(text)
    if not text:
        return []

    try:
        contents = _semantic_split(text, chunk_size, chunk_overlap)
    except Exception:
        # Degraded chunking beats a failed ingestion
        logger.warning(
            "Semantic splitter failed on %d chars, falling back to fixed-size split",
            len(text),
            exc_info=True,
        )
        contents = split_fixed_size(text, chunk_size)

    contents = [c for c in contents if c.strip()]
    return [
        TextChunk(index=i, content=c, char_count=len(c))
        for i, c in enumerate(contents)
    ]


def split_fixed_size(text: str, chunk_size: int) -> list[str]:
    """Naive fixed-size character split without overlap."""
    return [text[i:i + chunk_size] for i in range(0, len(text), chunk_size)]


def _semantic_split(text: str, chunk_size: int, chunk_overlap: int) -> list[str]:
    if len(text) <= chunk_size:
        return [text]
    pieces = _recursive_split(text, _SEPARATORS, chunk_size)
    return _merge_pieces(pieces, chunk_size, chunk_overlap)


def _recursive_split(
    text: str,
    separators: list[tuple[str, str]],
    chunk_size: int,
    joiner: str = "",
) -> list[tuple[str, str]]:
    """Recursively split text using the first separator that produces segments.

    Returns (piece, joiner) pairs, where the joiner is what separated the
    piece from its predecessor in the source text.
    """
    if not separators:
        return [(text, joiner)]

    (sep, sep_joiner), remaining_seps = separators[0], separators[1:]

    if sep == "":
        # Character-level split
        parts = split_fixed_size(text, chunk_size)
        return [(p, joiner if i == 0 else "") for i, p in enumerate(parts)]

    if sep not in text:
        return _recursive_split(text, remaining_seps, chunk_size, joiner)

    # Punctuation stays with the sentence it ends
    kept = sep.rstrip()
    raw_parts = text.split(sep)
    parts = [p + kept for p in raw_parts[:-1]] + [raw_parts[-1]]

    result: list[tuple[str, str]] = []
    for part in parts:
        part = part.strip()
        if not part:
            continue
        part_joiner = joiner if not result else sep_joiner
        if len(part) <= chunk_size:
            result.append((part, part_joiner))
        else:
            # Still too large, recurse with the next separator
            result.extend(_recursive_split(part, remaining_seps, chunk_size, part_joiner))

    return result


def _merge_pieces(
    pieces: list[tuple[str, str]],
    chunk_size: int,
    chunk_overlap: int,
) -> list[str]:
    """Greedily merge pieces into chunks, carrying trailing pieces as overlap."""
    chunks: list[str] = []
    window: list[tuple[str, str]] = []
    window_len = 0

    def joined_len(items: list[tuple[str, str]]) -> int:
        return sum(len(p) for p, _ in items) + sum(len(j) for _, j in items[1:])

    for piece, joiner in pieces:
        added = len(piece) + (len(joiner) if window else 0)
        if window and window_len + added > chunk_size:
            chunks.append(_join(window))
            # Drop leading pieces until what remains fits the overlap budget
            # and leaves room for the incoming piece
            while window and (
                window_len > chunk_overlap
                or window_len + len(piece) + len(joiner) > chunk_size
            ):
                window.pop(0)
                window_len = joined_len(window)
            added = len(piece) + (len(joiner) if window else 0)
        window.append((piece, joiner))
        window_len += added

    if window:
        chunks.append(_join(window))
    return chunks


def _join(window: list[tuple[str, str]]) -> str:
    text = window[0][0]
    for piece, joiner in window[1:]:
        text += (joiner or "") + piece
    return text.strip()
