"""Data model shared by the indexing and retrieval components."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, model_validator


@dataclass(frozen=True)
class Document:
    """A source document; ``id`` is its absolute path."""

    id: str
    text: str


class ChunkMeta(BaseModel):
    """Metadata stored alongside each vector in the index."""

    doc_id: str
    text: str


class IndexManifest(BaseModel):
    """How an index was built. Persisted next to the index file."""

    embedding_provider: str
    embedding_model: str
    embedding_dimension: int
    chunk_mode: str
    chunk_size: int
    chunk_overlap: int
    chunk_count: int
    document_count: int
    built_at: datetime


class IndexPayload(BaseModel):
    """On-disk shape of the index file: exactly ``embeddings`` and ``metas``."""

    embeddings: List[List[float]]
    metas: List[ChunkMeta]

    @model_validator(mode="after")
    def check_alignment(self) -> "IndexPayload":
        if len(self.embeddings) != len(self.metas):
            raise ValueError(
                f"embeddings ({len(self.embeddings)}) and metas ({len(self.metas)}) "
                f"have different lengths"
            )
        dimensions = {len(vector) for vector in self.embeddings}
        if len(dimensions) > 1:
            raise ValueError(f"embeddings have mixed dimensions: {sorted(dimensions)}")
        return self


@dataclass
class VectorIndex:
    """A loaded, read-only index. ``embeddings[i]`` describes ``metas[i]``."""

    embeddings: List[List[float]]
    metas: List[ChunkMeta]
    manifest: Optional[IndexManifest] = None
    _matrix: Optional[np.ndarray] = field(default=None, init=False, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.metas)

    @property
    def dimension(self) -> Optional[int]:
        """Vector length, or None for an empty index."""
        return len(self.embeddings[0]) if self.embeddings else None

    def matrix(self) -> np.ndarray:
        """Embeddings as a 2-D float array, computed once."""
        if self._matrix is None:
            self._matrix = np.asarray(self.embeddings, dtype=np.float64).reshape(
                len(self.embeddings), self.dimension or 0
            )
        return self._matrix


@dataclass(frozen=True)
class ScoredResult:
    """One retrieved chunk with its cosine score and storage position."""

    score: float
    meta: ChunkMeta
    position: int
