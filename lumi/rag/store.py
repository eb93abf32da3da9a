"""Persisted vector index.

Handles:
- Atomic JSON writes of ``{embeddings, metas}``
- Manifest sidecar recording how the index was built
- Load-time validation of alignment and dimensions
- Build-if-missing via ``ensure_index``
"""
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from lumi import config
from lumi.errors import IndexFormatError, IndexNotFoundError
from lumi.rag.embedder import make_embedding_provider
from lumi.rag.models import IndexManifest, IndexPayload, VectorIndex

logger = structlog.get_logger()


class IndexStore(ABC):
    """Storage backend for a single point-in-time index."""

    @abstractmethod
    def exists(self) -> bool:
        """Whether an index has been persisted."""

    @abstractmethod
    def load(self) -> VectorIndex:
        """Load and validate the index.

        Raises:
            IndexNotFoundError: If nothing has been persisted
            IndexFormatError: If the stored index is malformed
        """

    @abstractmethod
    def save(self, index: VectorIndex) -> None:
        """Persist the whole index in one write."""


def _stage_json(path: Path, payload: dict) -> str:
    """Write JSON to a temp file next to ``path`` and return the temp file's name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return tmp_name


class JSONIndexStore(IndexStore):
    """Flat JSON file plus a ``.meta.json`` manifest next to it."""

    def __init__(self, index_path: Union[str, Path] = None):
        """Initialize the store.

        Args:
            index_path: Path of the index file (default from config)
        """
        self.index_path = Path(index_path or config.INDEX_FILE)
        self.manifest_path = self.index_path.with_name(self.index_path.name + ".meta.json")

    def exists(self) -> bool:
        return self.index_path.exists()

    def _load_manifest(self) -> Optional[IndexManifest]:
        if not self.manifest_path.exists():
            logger.warning("index_manifest_missing", path=str(self.manifest_path))
            return None

        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                return IndexManifest.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise IndexFormatError(f"Invalid index manifest {self.manifest_path}: {e}") from e

    def load(self) -> VectorIndex:
        if not self.index_path.exists():
            raise IndexNotFoundError(f"Index not found: {self.index_path}")

        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                payload = IndexPayload.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise IndexFormatError(f"Invalid index file {self.index_path}: {e}") from e

        manifest = self._load_manifest()
        index = VectorIndex(embeddings=payload.embeddings, metas=payload.metas)

        if manifest is not None and (
            manifest.chunk_count != len(index)
            or (index.dimension is not None and manifest.embedding_dimension != index.dimension)
        ):
            # Left behind by an interrupted save; the index file itself is intact
            logger.warning(
                "index_manifest_stale",
                path=str(self.manifest_path),
                manifest_chunks=manifest.chunk_count,
                index_chunks=len(index),
                manifest_dimension=manifest.embedding_dimension,
                index_dimension=index.dimension,
            )
            manifest = None
        index.manifest = manifest

        logger.info(
            "index_loaded",
            path=str(self.index_path),
            chunk_count=len(index),
            dimension=index.dimension,
            model=manifest.embedding_model if manifest else None,
        )

        return index

    def save(self, index: VectorIndex) -> None:
        payload = {
            "embeddings": index.embeddings,
            "metas": [meta.model_dump() for meta in index.metas],
        }

        staged = []
        try:
            index_tmp = _stage_json(self.index_path, payload)
            staged.append(index_tmp)
            manifest_tmp = None
            if index.manifest is not None:
                manifest_tmp = _stage_json(self.manifest_path, index.manifest.model_dump(mode="json"))
                staged.append(manifest_tmp)

            # Old manifest goes before the index is swapped, so an interruption
            # leaves an index without a manifest, never one with a wrong manifest
            self.manifest_path.unlink(missing_ok=True)
            os.replace(index_tmp, self.index_path)
            if manifest_tmp is not None:
                os.replace(manifest_tmp, self.manifest_path)
        finally:
            for tmp_name in staged:
                Path(tmp_name).unlink(missing_ok=True)

        logger.info(
            "index_saved",
            path=str(self.index_path),
            chunk_count=len(index),
            dimension=index.dimension,
        )


def load_index(index_path: Union[str, Path] = None) -> VectorIndex:
    """Load an index from a JSON file (convenience function).

    Raises:
        IndexNotFoundError: If the file does not exist
        IndexFormatError: If the file is malformed
    """
    return JSONIndexStore(index_path).load()


async def ensure_index(
    data_dir: Union[str, Path] = None,
    index_path: Union[str, Path] = None,
    provider=None,
    chunker=None,
) -> VectorIndex:
    """Load the index, building it from ``data_dir`` first if it is missing.

    An existing index is never checked against the documents; rebuild it
    explicitly to refresh.

    Args:
        data_dir: Directory with source documents (default from config)
        index_path: Index file (default from config)
        provider: EmbeddingProvider used if a build is needed (default from config)
        chunker: Chunker used if a build is needed (default from config)

    Returns:
        The loaded VectorIndex
    """
    from lumi.rag.ingest import IndexBuilder, load_documents

    store = JSONIndexStore(index_path)

    if not store.exists():
        data_dir = Path(data_dir or config.DATA_DIR)
        logger.info("index_missing_building", index_path=str(store.index_path), data_dir=str(data_dir))

        if provider is None:
            provider = make_embedding_provider()

        documents = load_documents(data_dir)
        builder = IndexBuilder(provider, chunker=chunker, store=store)
        await builder.build(documents)

    return store.load()
