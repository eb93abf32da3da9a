"""Ingest pipeline for building the vector index.

Orchestrates:
- File discovery
- Text chunking
- Embedding generation
- Index persistence
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union
import structlog

from lumi import config
from lumi.errors import EmptyCorpusError
from lumi.rag.chunker import CharacterChunker, make_chunker
from lumi.rag.embedder import EmbeddingProvider, make_embedding_provider
from lumi.rag.models import ChunkMeta, Document, IndexManifest, VectorIndex
from lumi.rag.store import IndexStore, JSONIndexStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], None]


def load_documents(
    data_dir: Union[str, Path], extensions: Sequence[str] = None
) -> List[Document]:
    """Collect all text documents below ``data_dir``.

    Args:
        data_dir: Root directory, searched recursively
        extensions: File suffixes to include (default: .txt and .md)

    Returns:
        Documents sorted by path; ``id`` is the absolute path

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Data directory not found: {data_dir}")

    suffixes = {ext.lower() for ext in (extensions or config.DOCUMENT_EXTENSIONS)}
    paths = sorted(
        path for path in data_dir.rglob("*")
        if path.is_file() and path.suffix.lower() in suffixes
    )

    documents = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("document_read_failed", path=str(path), error=str(e))
            continue
        documents.append(Document(id=str(path.resolve()), text=text))

    logger.info("documents_discovered", count=len(documents), data_dir=str(data_dir))
    return documents


def _align_dimensions(vectors: List[List[float]]) -> List[List[float]]:
    """Resize placeholder zero vectors to the dimension of the real ones.

    Zero vectors emitted before a provider saw its first real vector may use a
    guessed length; any real vector of a different length is an error.
    """
    real = [v for v in vectors if any(v)]
    if not real:
        return vectors

    dimension = len(real[0])
    aligned = []
    for position, vector in enumerate(vectors):
        if len(vector) != dimension:
            if any(vector):
                raise RuntimeError(
                    f"Embedding {position} has length {len(vector)}, expected {dimension}"
                )
            vector = [0.0] * dimension
        aligned.append(vector)
    return aligned


class IndexBuilder:
    """Builds a complete index from documents in one pass."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        chunker: Optional[CharacterChunker] = None,
        store: Optional[IndexStore] = None,
        batch_size: int = None,
    ):
        """Initialize the builder.

        Args:
            provider: Embedding provider used for every chunk
            chunker: Chunking policy (default from config)
            store: Where the index is written (default: JSON file from config)
            batch_size: Number of chunks handed to the provider per call
        """
        self.provider = provider
        self.chunker = chunker or make_chunker()
        self.store = store
        self.batch_size = batch_size or config.EMBED_BATCH_SIZE

        self.stats = self._empty_stats()

        logger.info(
            "index_builder_initialized",
            provider=provider.provider_name,
            embedding_model=provider.model,
            chunk_mode=self.chunker.mode,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "documents": 0,
            "chunks_created": 0,
            "chunks_skipped": 0,
            "embeddings_generated": 0,
            "embedding_failures": 0,
        }

    def collect_chunks(self, documents: Iterable[Document]) -> List[ChunkMeta]:
        """Chunk every document, dropping whitespace-only chunks."""
        metas = []

        for doc in documents:
            self.stats["documents"] += 1
            chunks = self.chunker.chunk_text(doc.text)
            kept = [chunk for chunk in chunks if chunk.content.strip()]
            self.stats["chunks_skipped"] += len(chunks) - len(kept)

            logger.debug("document_chunked", doc_id=doc.id, chunk_count=len(kept))
            metas.extend(ChunkMeta(doc_id=doc.id, text=chunk.content) for chunk in kept)

        self.stats["chunks_created"] = len(metas)
        return metas

    async def embed_chunks(
        self,
        metas: Sequence[ChunkMeta],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[List[float]]:
        """Embed chunk texts batch by batch, preserving order."""
        texts = [meta.text for meta in metas]
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        failures_before = self.provider.stats["failures"]
        embeddings: List[List[float]] = []

        for batch_number, start in enumerate(range(0, len(texts), self.batch_size), 1):
            batch = texts[start : start + self.batch_size]
            logger.info(
                "embedding_batch_started",
                batch=batch_number,
                total_batches=total_batches,
                batch_size=len(batch),
            )

            vectors = await self.provider.embed(batch)
            if len(vectors) != len(batch):
                raise RuntimeError(
                    f"Provider returned {len(vectors)} vectors for {len(batch)} chunks"
                )
            embeddings.extend(vectors)

            if progress_callback:
                progress_callback(len(embeddings), len(texts))

        self.stats["embedding_failures"] = self.provider.stats["failures"] - failures_before
        self.stats["embeddings_generated"] = len(embeddings) - self.stats["embedding_failures"]
        return _align_dimensions(embeddings)

    async def build(
        self,
        documents: Sequence[Document],
        output_path: Union[str, Path] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> VectorIndex:
        """Chunk, embed and persist ``documents`` as a new index.

        Nothing is written unless every step succeeds.

        Args:
            documents: Documents to index
            output_path: Index file; overrides the builder's store
            progress_callback: Optional callback(done, total) after each batch

        Returns:
            The VectorIndex that was written

        Raises:
            EmptyCorpusError: If there are no documents or no non-empty chunks
        """
        self.stats = self._empty_stats()

        if not documents:
            raise EmptyCorpusError("No documents to index")

        logger.info("index_build_started", document_count=len(documents))

        metas = self.collect_chunks(documents)
        if not metas:
            raise EmptyCorpusError(
                f"No text chunks created from {len(documents)} documents"
            )

        embeddings = await self.embed_chunks(metas, progress_callback=progress_callback)

        index = VectorIndex(
            embeddings=embeddings,
            metas=metas,
            manifest=IndexManifest(
                embedding_provider=self.provider.provider_name,
                embedding_model=self.provider.model,
                embedding_dimension=len(embeddings[0]),
                chunk_mode=self.chunker.mode,
                chunk_size=self.chunker.chunk_size,
                chunk_overlap=self.chunker.chunk_overlap,
                chunk_count=len(metas),
                document_count=len(documents),
                built_at=datetime.now(timezone.utc),
            ),
        )

        store = JSONIndexStore(output_path) if output_path else (self.store or JSONIndexStore())
        store.save(index)

        logger.info("index_build_completed", stats=self.stats)
        return index


# Convenience function for a full rebuild
async def build_index(
    data_dir: Union[str, Path] = None,
    index_path: Union[str, Path] = None,
    provider: Optional[EmbeddingProvider] = None,
    chunker: Optional[CharacterChunker] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> IndexBuilder:
    """Load documents and rebuild the index from scratch.

    Returns:
        The builder, whose ``stats`` describe the run
    """
    documents = load_documents(data_dir or config.DATA_DIR)
    builder = IndexBuilder(
        provider or make_embedding_provider(),
        chunker=chunker,
        store=JSONIndexStore(index_path),
    )
    await builder.build(documents, progress_callback=progress_callback)
    return builder
