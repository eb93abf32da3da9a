"""Tests for character and token chunking."""
import math
import re

import pytest

from lumi.errors import ConfigurationError
from lumi.rag.chunker import (
    CharacterChunker,
    TokenChunker,
    make_chunker,
    sliding_windows,
)


def reconstruct(chunks, overlap):
    if not chunks:
        return ""
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])


def test_empty_text_yields_no_chunks():
    assert CharacterChunker(chunk_size=10, chunk_overlap=2).chunk_text("") == []


def test_short_text_is_single_chunk():
    chunks = CharacterChunker(chunk_size=100, chunk_overlap=20).chunk_text("short text")

    assert [c.content for c in chunks] == ["short text"]
    assert (chunks[0].start, chunks[0].end, chunks[0].chunk_index) == (0, 10, 0)


def test_windows_overlap_and_stop_at_end():
    chunks = CharacterChunker(chunk_size=4, chunk_overlap=1).chunk_text("abcdefghij")

    assert [c.content for c in chunks] == ["abcd", "defg", "ghij"]
    assert [c.start for c in chunks] == [0, 3, 6]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]


def test_last_window_may_be_shorter():
    chunks = CharacterChunker(chunk_size=4, chunk_overlap=0).chunk_text("abcdefghij")

    assert [c.content for c in chunks] == ["abcd", "efgh", "ij"]


def test_chunk_count_length_and_reconstruction_properties():
    text = "The quick brown fox jumps over the lazy dog. " * 3

    for size in range(1, 9):
        for overlap in range(size):
            chunker = CharacterChunker(chunk_size=size, chunk_overlap=overlap)
            for length in range(0, len(text), 7):
                sample = text[:length]
                chunks = [c.content for c in chunker.chunk_text(sample)]

                expected = 0 if length == 0 else math.ceil(max(length - overlap, 1) / (size - overlap))
                assert len(chunks) == expected, (length, size, overlap)
                assert all(len(c) <= size for c in chunks)
                assert reconstruct(chunks, overlap) == sample


@pytest.mark.parametrize("size,overlap", [(10, 10), (10, 15), (0, 0), (5, -1)])
def test_invalid_window_is_rejected(size, overlap):
    with pytest.raises(ValueError):
        CharacterChunker(chunk_size=size, chunk_overlap=overlap)


def test_zero_overlap_is_not_replaced_by_default():
    chunker = CharacterChunker(chunk_size=5, chunk_overlap=0)

    assert chunker.chunk_overlap == 0


def test_sliding_windows_cover_length():
    assert sliding_windows(0, 5, 1) == []
    assert sliding_windows(5, 5, 1) == [(0, 5)]
    assert sliding_windows(9, 5, 1) == [(0, 5), (4, 9)]


def test_token_chunker_windows_over_tokens(char_encoding):
    chunker = TokenChunker(chunk_size=4, chunk_overlap=1, encoding=char_encoding)
    chunks = chunker.chunk_text("abcdefghij")

    assert chunker.mode == "token"
    assert [c.content for c in chunks] == ["abcd", "defg", "ghij"]
    assert chunker.count_tokens("abc") == 3


class WordEncoding:
    """Tokenizer stand-in whose tokens span several UTF-8 bytes, like BPE merges."""

    def __init__(self):
        self.vocab = {}
        self.pieces = []

    def encode(self, text):
        tokens = []
        for piece in re.findall(r"\S+|\s+", text):
            if piece not in self.vocab:
                self.vocab[piece] = len(self.pieces)
                self.pieces.append(piece)
            tokens.append(self.vocab[piece])
        return tokens

    def decode(self, tokens):
        return "".join(self.pieces[t] for t in tokens)


def test_token_chunker_keeps_multibyte_text_intact():
    encoding = WordEncoding()
    text = "Énergie solaire ☀️ et éolienne 风力发电 produisent l'électricité ⚡ propre à Zürich"
    chunker = TokenChunker(chunk_size=6, chunk_overlap=2, encoding=encoding)

    chunks = chunker.chunk_text(text)
    token_count = len(encoding.encode(text))

    assert len(chunks) == math.ceil((token_count - 2) / 4)
    assert all("\ufffd" not in c.content for c in chunks)
    assert all(len(encoding.encode(c.content)) <= 6 for c in chunks)
    tokens = encoding.encode(chunks[0].content)
    for chunk in chunks[1:]:
        tokens += encoding.encode(chunk.content)[2:]
    assert encoding.decode(tokens) == text


def test_token_chunker_with_tiktoken():
    tiktoken = pytest.importorskip("tiktoken")
    try:
        encoding = tiktoken.get_encoding("cl100k_base")
    except Exception as e:  # encoding files are downloaded on first use
        pytest.skip(f"cl100k_base unavailable: {e}")

    text = "Solar panels convert sunlight into electricity. " * 40
    chunker = TokenChunker(chunk_size=50, chunk_overlap=10, encoding=encoding)
    chunks = chunker.chunk_text(text)
    token_count = len(encoding.encode(text))

    assert len(chunks) == math.ceil((token_count - 10) / 40)
    assert all(len(encoding.encode(c.content)) <= 50 + 2 for c in chunks)
    assert chunks[0].content.startswith("Solar panels")


def test_make_chunker_selects_policy(char_encoding, monkeypatch):
    assert isinstance(make_chunker("char", 100, 10), CharacterChunker)
    assert not isinstance(make_chunker("char", 100, 10), TokenChunker)

    monkeypatch.setattr("lumi.rag.chunker.tiktoken.get_encoding", lambda name: char_encoding)
    token_chunker = make_chunker("TOKEN", 100, 10)
    assert isinstance(token_chunker, TokenChunker)
    assert token_chunker.chunk_size == 100


def test_make_chunker_rejects_unknown_mode():
    with pytest.raises(ConfigurationError):
        make_chunker("sentences", 100, 10)


def test_chunk_stats():
    chunker = CharacterChunker(chunk_size=4, chunk_overlap=1)
    stats = chunker.get_chunk_stats(chunker.chunk_text("abcdefghij"))

    assert stats["chunk_count"] == 3
    assert stats["max_chunk_size"] == 4
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
