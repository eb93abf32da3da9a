"""Shared fixtures for the LUMI test suite."""
from typing import Dict, List, Sequence

import pytest

from lumi.rag.embedder import EmbeddingProvider
from lumi.rag.models import ChunkMeta, IndexManifest, VectorIndex


class StubEmbeddingProvider(EmbeddingProvider):
    """Returns handcrafted vectors; unknown texts map to ``default``."""

    profile = "stub"
    provider_name = "stub"

    def __init__(self, vectors: Dict[str, List[float]], default: List[float] = None, model: str = "stub-model"):
        super().__init__(model, base_url="http://stub.test", dimension=len(next(iter(vectors.values()))))
        self.vectors = vectors
        self.default = default or [0.0] * self.dimension
        self.calls: List[List[str]] = []

    def _lookup(self, text: str) -> List[float]:
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._lookup(text) for text in texts]

    async def embed_query(self, text: str) -> List[float]:
        self.calls.append([text])
        return self._lookup(text)


class CharEncoding:
    """Tokenizer stand-in: one token per character."""

    def encode(self, text: str) -> List[int]:
        return [ord(c) for c in text]

    def decode(self, tokens: Sequence[int]) -> str:
        return "".join(chr(t) for t in tokens)


@pytest.fixture
def energy_provider() -> StubEmbeddingProvider:
    """Vectors where solar/photovoltaic point one way and wind another."""
    return StubEmbeddingProvider({
        "solar": [1.0, 0.1, 0.0],
        "photovoltaic": [0.9, 0.2, 0.0],
        "wind": [0.0, 1.0, 0.1],
    })


@pytest.fixture
def energy_docs(tmp_path):
    """Data directory with the two-document solar/wind corpus."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "a.txt").write_text("solar panels convert sunlight", encoding="utf-8")
    (data_dir / "b.md").write_text("wind turbines generate electricity", encoding="utf-8")
    return data_dir


@pytest.fixture
def char_encoding() -> CharEncoding:
    return CharEncoding()


def make_index(vectors: List[List[float]], model: str = None) -> VectorIndex:
    """Index whose chunk texts are ``chunk-<position>``."""
    metas = [ChunkMeta(doc_id=f"doc-{i}", text=f"chunk-{i}") for i in range(len(vectors))]
    manifest = None
    if model is not None:
        manifest = IndexManifest(
            embedding_provider="stub",
            embedding_model=model,
            embedding_dimension=len(vectors[0]),
            chunk_mode="char",
            chunk_size=1500,
            chunk_overlap=200,
            chunk_count=len(vectors),
            document_count=len(vectors),
            built_at="2026-01-01T00:00:00Z",
        )
    return VectorIndex(embeddings=vectors, metas=metas, manifest=manifest)
