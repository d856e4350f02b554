"""Split page text into overlapping chunks sized for embedding."""

import re
from typing import List

from crawlrag.constants import (
    DEFAULT_CHUNK_MAX_CHARS,
    DEFAULT_CHUNK_OVERLAP_CHARS,
    MAX_CHUNK_OVERLAP_RATIO,
)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class TextChunker:
    """Chunk text on paragraph, then sentence, then word boundaries."""

    def __init__(
        self,
        max_chars: int = DEFAULT_CHUNK_MAX_CHARS,
        overlap: int = DEFAULT_CHUNK_OVERLAP_CHARS,
    ):
        """Initialize the text chunker.

        Args:
            max_chars: Maximum characters per chunk
            overlap: Characters of the previous chunk repeated at the start of
                the next one, capped at a quarter of ``max_chars``
        """
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars
        self._overlap = max(0, min(overlap, int(max_chars * MAX_CHUNK_OVERLAP_RATIO)))

    @property
    def max_chars(self) -> int:
        return self._max_chars

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> List[str]:
        """Split text into chunks.

        Args:
            text: Text to split into chunks

        Returns:
            List of chunk strings, each at most ``max_chars`` long
        """
        if not text or not text.strip():
            return []

        chunks: List[str] = []
        current = ""
        for piece in self._pieces(text):
            if not current:
                current = piece
            elif len(current) + 1 + len(piece) <= self._max_chars:
                current = f"{current} {piece}"
            else:
                chunks.append(current)
                tail = self._tail(current, self._max_chars - len(piece) - 1)
                current = f"{tail} {piece}" if tail else piece

        if current:
            chunks.append(current)
        return chunks

    def _pieces(self, text: str) -> List[str]:
        """Units no longer than ``max_chars``, in reading order."""
        pieces: List[str] = []
        for paragraph in _PARAGRAPH_BREAK.split(text):
            paragraph = " ".join(paragraph.split())
            if not paragraph:
                continue
            if len(paragraph) <= self._max_chars:
                pieces.append(paragraph)
                continue
            for sentence in _SENTENCE_END.split(paragraph):
                if len(sentence) <= self._max_chars:
                    pieces.append(sentence)
                else:
                    pieces.extend(self._split_words(sentence))
        return pieces

    def _split_words(self, sentence: str) -> List[str]:
        out: List[str] = []
        current = ""
        for word in sentence.split():
            while len(word) > self._max_chars:
                if current:
                    out.append(current)
                    current = ""
                out.append(word[: self._max_chars])
                word = word[self._max_chars :]
            if not word:
                continue
            if not current:
                current = word
            elif len(current) + 1 + len(word) <= self._max_chars:
                current = f"{current} {word}"
            else:
                out.append(current)
                current = word
        if current:
            out.append(current)
        return out

    def _tail(self, chunk: str, room: int) -> str:
        """Trailing overlap of ``chunk``, starting on a word boundary."""
        size = min(self._overlap, room)
        if size <= 0:
            return ""
        tail = chunk[-size:]
        if len(chunk) > size and not chunk[-size - 1].isspace():
            # Drop the partial leading word
            _, _, tail = tail.partition(" ")
        return tail.strip()
