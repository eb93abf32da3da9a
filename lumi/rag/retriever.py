"""Retriever for semantic search over the index.

Handles:
- Query embedding generation
- Full-scan cosine similarity
- Stable top-K ranking
- Context formatting for the chat prompt
"""
from typing import List, Optional, Sequence

import numpy as np
import structlog

from lumi import config
from lumi.errors import DimensionMismatchError, EmbeddingModelMismatchError
from lumi.rag.embedder import EmbeddingProvider
from lumi.rag.models import ScoredResult, VectorIndex

logger = structlog.get_logger()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 if either is a zero vector.

    Raises:
        DimensionMismatchError: If the vectors have different lengths
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise DimensionMismatchError(f"Cannot compare vectors of length {a.size} and {b.size}")

    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def score_index(query_embedding: Sequence[float], index: VectorIndex) -> np.ndarray:
    """Cosine similarity of the query against every stored vector, in storage order."""
    if len(index) == 0:
        return np.zeros(0)

    query = np.asarray(query_embedding, dtype=np.float64)
    if query.size != index.dimension:
        raise DimensionMismatchError(
            f"Query dimension {query.size} does not match index dimension {index.dimension}. "
            f"Use the embedding model the index was built with, or rebuild the index."
        )

    matrix = index.matrix()
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query

    scores = np.zeros(len(index))
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    return scores


def rank(scores: np.ndarray, index: VectorIndex, top_k: int) -> List[ScoredResult]:
    """Highest scores first; equal scores keep storage order."""
    if top_k <= 0:
        return []

    order = np.argsort(-scores, kind="stable")[:top_k]
    return [
        ScoredResult(score=float(scores[i]), meta=index.metas[i], position=int(i))
        for i in order
    ]


def check_compatible(index: VectorIndex, provider: EmbeddingProvider) -> None:
    """Fail fast when the index was built with a different embedding model.

    Raises:
        EmbeddingModelMismatchError: If the manifest names another model
    """
    manifest = index.manifest
    if manifest is not None and manifest.embedding_model != provider.model:
        raise EmbeddingModelMismatchError(
            f"Index was built with {manifest.embedding_provider}/{manifest.embedding_model}, "
            f"but queries use {provider.provider_name}/{provider.model}. Rebuild the index."
        )


async def retrieve(
    query: str,
    index: VectorIndex,
    provider: EmbeddingProvider,
    top_k: int = None,
) -> List[ScoredResult]:
    """Return the ``top_k`` chunks most similar to ``query``.

    Args:
        query: User query text
        index: Loaded index
        provider: Embedding provider matching the one the index was built with
        top_k: Maximum number of results (default from config)

    Returns:
        Results sorted by descending score, at most ``min(top_k, len(index))``

    Raises:
        EmbeddingModelMismatchError: If the index was built with another model
        DimensionMismatchError: If query and index vectors differ in length
    """
    top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k

    if not query or not query.strip():
        logger.warning("empty_query_provided")
        return []

    if len(index) == 0 or top_k <= 0:
        logger.warning("retrieval_skipped", index_size=len(index), top_k=top_k)
        return []

    check_compatible(index, provider)

    logger.info("retrieval_started", query_length=len(query), top_k=top_k)

    query_embedding = await provider.embed_query(query)
    results = rank(score_index(query_embedding, index), index, top_k)

    logger.info(
        "retrieval_completed",
        results_returned=len(results),
        top_score=round(results[0].score, 4) if results else None,
    )
    for position, result in enumerate(results, 1):
        logger.debug(
            "retrieval_result",
            rank=position,
            score=round(result.score, 4),
            doc_id=result.meta.doc_id,
            preview=result.meta.text[:100],
        )

    return results


def format_context(results: Sequence[ScoredResult]) -> str:
    """Render results as numbered sources separated by blank lines."""
    return "\n\n".join(
        f"Source {i}:\n{result.meta.text}" for i, result in enumerate(results, 1)
    )


class Retriever:
    """Semantic retriever bound to one index and embedding provider."""

    def __init__(
        self,
        index: VectorIndex,
        provider: EmbeddingProvider,
        top_k: Optional[int] = None,
    ):
        """Initialize the retriever.

        Args:
            index: Loaded index (shared read-only)
            provider: Embedding provider for queries
            top_k: Number of results to retrieve (default from config)
        """
        self.index = index
        self.provider = provider
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k

        check_compatible(index, provider)

        logger.info(
            "retriever_initialized",
            embedding_model=provider.model,
            index_size=len(index),
            top_k=self.top_k,
        )

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[ScoredResult]:
        """Retrieve relevant chunks for a query."""
        return await retrieve(
            query,
            self.index,
            self.provider,
            top_k=self.top_k if top_k is None else top_k,
        )

    async def retrieve_context(self, query: str, top_k: Optional[int] = None) -> str:
        """Retrieve and format context for the LLM prompt."""
        return format_context(await self.retrieve(query, top_k=top_k))
