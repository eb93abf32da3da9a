"""Tests for index persistence and ensure_index."""
import json

import pytest

from lumi.errors import EmptyCorpusError, IndexFormatError, IndexNotFoundError
from lumi.rag.chunker import CharacterChunker
from lumi.rag.store import JSONIndexStore, ensure_index, load_index

from conftest import make_index


def test_load_missing_index_raises_not_found(tmp_path):
    with pytest.raises(IndexNotFoundError):
        load_index(tmp_path / "missing.json")

    # Also catchable as the builtin
    with pytest.raises(FileNotFoundError):
        load_index(tmp_path / "missing.json")


def test_save_writes_exactly_two_members(tmp_path):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0], [0.0, 1.0]], model="stub-model"))

    data = json.loads(path.read_text(encoding="utf-8"))

    assert set(data) == {"embeddings", "metas"}
    assert data["metas"][1] == {"doc_id": "doc-1", "text": "chunk-1"}
    assert (tmp_path / "index.json.meta.json").exists()
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []


def test_round_trip_keeps_alignment_and_manifest(tmp_path):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0], [0.5, 0.5], [0.0, 1.0]], model="stub-model"))

    index = load_index(path)

    assert len(index.embeddings) == len(index.metas) == 3
    assert index.embeddings[1] == [0.5, 0.5]
    assert index.metas[1].text == "chunk-1"
    assert index.dimension == 2
    assert index.manifest.embedding_model == "stub-model"


def test_index_without_manifest_still_loads(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps({
        "embeddings": [[0.1, 0.2]],
        "metas": [{"doc_id": "/data/a.txt", "text": "hello"}],
    }), encoding="utf-8")

    index = load_index(path)

    assert index.manifest is None
    assert index.metas[0].doc_id == "/data/a.txt"


@pytest.mark.parametrize("payload", [
    {"embeddings": [[0.1]]},
    {"embeddings": [[0.1], [0.2]], "metas": [{"doc_id": "a", "text": "x"}]},
    {"embeddings": [[0.1, 0.2], [0.3]], "metas": [{"doc_id": "a", "text": "x"}, {"doc_id": "b", "text": "y"}]},
])
def test_malformed_index_is_rejected(tmp_path, payload):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(IndexFormatError):
        load_index(path)


def test_invalid_json_is_rejected(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(IndexFormatError):
        load_index(path)


@pytest.mark.asyncio
async def test_ensure_index_builds_when_missing(tmp_path, energy_docs, energy_provider):
    path = tmp_path / "out" / "index.json"

    index = await ensure_index(energy_docs, path, energy_provider, chunker=CharacterChunker(100, 10))

    assert path.exists()
    assert len(index) == 2
    assert index.manifest.document_count == 2


@pytest.mark.asyncio
async def test_ensure_index_loads_existing_without_rebuilding(tmp_path, energy_docs, energy_provider):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0, 0.0]], model="stub-model"))

    index = await ensure_index(energy_docs, path, energy_provider)

    assert len(index) == 1
    assert energy_provider.calls == []


@pytest.mark.asyncio
async def test_ensure_index_with_empty_corpus_writes_nothing(tmp_path, energy_provider):
    data_dir = tmp_path / "empty"
    data_dir.mkdir()
    path = tmp_path / "index.json"

    with pytest.raises(EmptyCorpusError):
        await ensure_index(data_dir, path, energy_provider)

    assert not path.exists()


def interrupt_index_dump(monkeypatch):
    """Make serialising the index payload fail as if the user hit Ctrl+C."""
    real_dump = json.dump

    def dump(payload, f, *args, **kwargs):
        if "embeddings" in payload:
            raise KeyboardInterrupt
        return real_dump(payload, f, *args, **kwargs)

    monkeypatch.setattr("lumi.rag.store.json.dump", dump)


@pytest.mark.asyncio
async def test_interrupted_rebuild_keeps_previous_index_loadable(tmp_path, energy_docs, energy_provider, monkeypatch):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0, 0.0]], model="stub-model"))
    before = path.read_bytes()

    interrupt_index_dump(monkeypatch)
    store = JSONIndexStore(path)
    with pytest.raises(KeyboardInterrupt):
        store.save(make_index([[1.0, 0.0, 0.0]] * 3, model="stub-model"))
    monkeypatch.undo()

    assert path.read_bytes() == before
    index = await ensure_index(energy_docs, path, energy_provider)
    assert len(index) == 1
    assert index.manifest.chunk_count == 1
    assert energy_provider.calls == []
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []


def test_interrupted_swap_leaves_index_without_manifest(tmp_path, monkeypatch):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0]], model="stub-model"))

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("lumi.rag.store.os.replace", failing_replace)
    with pytest.raises(OSError):
        JSONIndexStore(path).save(make_index([[1.0, 0.0]] * 3, model="stub-model"))
    monkeypatch.undo()

    index = load_index(path)
    assert len(index) == 1
    assert index.manifest is None


def test_stale_manifest_is_ignored(tmp_path):
    path = tmp_path / "index.json"
    JSONIndexStore(path).save(make_index([[1.0, 0.0]], model="stub-model"))
    stale = make_index([[1.0, 0.0, 0.0]] * 3, model="stub-model").manifest
    (tmp_path / "index.json.meta.json").write_text(stale.model_dump_json(), encoding="utf-8")

    index = load_index(path)

    assert len(index) == 1
    assert index.manifest is None
