"""Word-window text chunking with overlap.

Splits source text into overlapping windows of whitespace-separated words
for per-chunk embedding.  Consecutive windows share ``overlap`` words so a
phrase spanning a boundary ("chest pain radiating to the left arm") is
fully contained in at least one chunk.

Windows start every ``chunk_size - overlap`` words until the start passes
the last word, so the final window may be short.  A window is only
emitted if its re-joined text is longer than ``min_chars``; this drops
trailing fragments too small to embed meaningfully.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import NamedTuple

import structlog

from meddocs.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_WORD = re.compile(r"\S+")


class ChunkWindow(NamedTuple):
    """A window's text and its character span in the source text."""

    start: int
    end: int
    text: str


class TextChunker:
    """Produces overlapping word windows from plain text."""

    def __init__(self, chunk_size: int = 500, overlap: int = 100, min_chars: int = 50) -> None:
        self.validate(chunk_size, overlap)
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_chars = min_chars

    def chunk(
        self,
        text: str,
        chunk_size: int | None = None,
        overlap: int | None = None,
        min_chars: int | None = None,
    ) -> Iterator[str]:
        """Return a one-shot iterator over the windows of *text*.

        Arguments left as ``None`` fall back to the values given at
        construction.  Invalid sizes raise immediately, before iteration.

        Raises
        ------
        ConfigurationError
            If ``chunk_size <= 0``, ``overlap < 0`` or
            ``overlap >= chunk_size``.
        """
        return (w.text for w in self.windows(text, chunk_size, overlap, min_chars))

    def windows(
        self,
        text: str,
        chunk_size: int | None = None,
        overlap: int | None = None,
        min_chars: int | None = None,
    ) -> Iterator[ChunkWindow]:
        """Like :meth:`chunk`, but each window also carries its source span.

        ``start`` is the offset of the window's first word in *text* and
        ``end`` the offset just past its last word.
        """
        size = self._chunk_size if chunk_size is None else chunk_size
        shared = self._overlap if overlap is None else overlap
        floor = self._min_chars if min_chars is None else min_chars
        self.validate(size, shared)
        return self._windows(list(_WORD.finditer(text)), size, size - shared, floor)

    def count_words(self, text: str) -> int:
        return len(text.split())

    @staticmethod
    def validate(chunk_size: int, overlap: int) -> None:
        """Raise :class:`ConfigurationError` for unusable window sizes."""
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ConfigurationError(f"overlap must not be negative, got {overlap}")
        if chunk_size - overlap <= 0:
            raise ConfigurationError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )

    @staticmethod
    def _windows(
        words: list[re.Match[str]], size: int, step: int, min_chars: int
    ) -> Iterator[ChunkWindow]:
        for start in range(0, len(words), step):
            span = words[start : start + size]
            window = " ".join(m.group() for m in span)
            if len(window) > min_chars:
                yield ChunkWindow(span[0].start(), span[-1].end(), window)
