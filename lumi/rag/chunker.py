"""Text chunking with overlap for RAG pipeline.

Two policies share one sliding-window algorithm:
- character mode counts characters
- token mode counts tiktoken tokens and decodes each slice back to text
"""
from typing import List, Sequence
from dataclasses import dataclass
import structlog
import tiktoken

from lumi import config
from lumi.errors import ConfigurationError

logger = structlog.get_logger()

CHAR_MODE = "char"
TOKEN_MODE = "token"


@dataclass
class TextChunk:
    """Represents a chunk of text with position information.

    ``start`` and ``end`` are offsets in the chunker's unit (characters or tokens).
    """

    content: str
    start: int
    end: int
    chunk_index: int


def sliding_windows(length: int, size: int, overlap: int) -> List[tuple]:
    """Return ``(start, end)`` windows covering ``range(length)``.

    Windows advance by ``size - overlap`` and stop at the first one that
    reaches ``length``.
    """
    windows = []
    step = size - overlap
    start = 0

    while start < length:
        end = min(start + size, length)
        windows.append((start, end))
        if end == length:
            break
        start += step

    return windows


class CharacterChunker:
    """Character-based text chunker with overlap support."""

    mode = CHAR_MODE

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk (default from config)
            chunk_overlap: Overlap between chunks (default from config)

        Raises:
            ValueError: If the overlap would keep the window from advancing
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        # Validate parameters
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.info(
            "chunker_initialized",
            mode=self.mode,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def _units(self, text: str) -> Sequence:
        return text

    def _render(self, units: Sequence) -> str:
        return units

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects, first to last offset
        """
        if not text:
            return []

        units = self._units(text)
        chunks = [
            TextChunk(
                content=self._render(units[start:end]),
                start=start,
                end=end,
                chunk_index=index,
            )
            for index, (start, end) in enumerate(
                sliding_windows(len(units), self.chunk_size, self.chunk_overlap)
            )
        ]

        logger.debug(
            "text_chunked",
            mode=self.mode,
            text_length=len(units),
            chunk_count=len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


class TokenChunker(CharacterChunker):
    """Token-based chunker. Owns its tokenizer, built once per instance."""

    mode = TOKEN_MODE

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        encoding_name: str = None,
        encoding=None,
    ):
        """Initialize the token chunker.

        Args:
            chunk_size: Tokens per chunk (default from config)
            chunk_overlap: Overlapping tokens (default from config)
            encoding_name: tiktoken encoding to load (default from config)
            encoding: Already-built tokenizer with ``encode``/``decode``; skips loading
        """
        super().__init__(
            chunk_size=config.TOKEN_CHUNK_SIZE if chunk_size is None else chunk_size,
            chunk_overlap=config.TOKEN_CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap,
        )
        self.encoding_name = encoding_name or config.TOKEN_ENCODING
        self.encoding = encoding or tiktoken.get_encoding(self.encoding_name)

    def _units(self, text: str) -> Sequence:
        return self.encoding.encode(text)

    def _render(self, units: Sequence) -> str:
        return self.encoding.decode(list(units))

    def count_tokens(self, text: str) -> int:
        """Count tokens in text with this chunker's encoding."""
        return len(self.encoding.encode(text))


def make_chunker(
    mode: str = None, chunk_size: int = None, chunk_overlap: int = None
) -> CharacterChunker:
    """Build a chunker for the given policy.

    Args:
        mode: "char" or "token" (default from config)
        chunk_size: Window size in the mode's unit (default from config)
        chunk_overlap: Overlap in the mode's unit (default from config)

    Raises:
        ConfigurationError: If the mode is unknown
    """
    mode = (mode or config.CHUNK_MODE).strip().lower()
    if mode == CHAR_MODE:
        return CharacterChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    if mode == TOKEN_MODE:
        return TokenChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    raise ConfigurationError(f"Unknown chunk mode {mode!r} (expected 'char' or 'token')")
