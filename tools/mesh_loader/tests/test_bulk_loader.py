"""Tests for concurrent bulk mesh loading."""
import io
import threading
import time
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bulk_loader import BulkMeshLoader
from mesh_errors import ErrorKind, MeshError
from mesh_types import HEADER_SIZE
from mesh_fixtures import QUAD, QUAD_INDICES, TRIANGLE, build_mesh_bytes


GOOD = build_mesh_bytes(QUAD, QUAD_INDICES)
TRUNCATED = GOOD[:HEADER_SIZE + 50]


def make_batch(count, bad=()):
    """Map source names to file contents; names in bad get truncated data."""
    return {
        f"mesh_{i:03d}": (TRUNCATED if i in bad else GOOD)
        for i in range(count)
    }


class InstrumentedOpener:
    """Opener that serves in-memory files and tracks concurrent calls."""

    def __init__(self, files, delay=0.0):
        self.files = files
        self.delay = delay
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.calls = []

    def __call__(self, identity):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append(identity)
        try:
            if self.delay:
                time.sleep(self.delay)
            if identity not in self.files:
                raise FileNotFoundError(identity)
            return self.files[identity]
        finally:
            with self.lock:
                self.active -= 1


def test_batch_with_truncated_files():
    """200 sources with 5 truncated give 195 meshes and 5 UnexpectedEof errors."""
    bad = {3, 50, 101, 150, 199}
    files = make_batch(200, bad=bad)
    loader = BulkMeshLoader(max_active=15, opener=files.__getitem__)

    results = loader.load_all(files)

    assert len(results) == 200
    assert list(results) == list(files)
    ok = [name for name, r in results.items() if r.ok]
    failed = {name: r.error.kind for name, r in results.items() if not r.ok}
    assert len(ok) == 195
    assert failed == {f"mesh_{i:03d}": ErrorKind.UNEXPECTED_EOF for i in bad}
    for name, result in results.items():
        assert result.source == name

    assert loader.stats.total == 200
    assert loader.stats.succeeded == 195
    assert loader.stats.failed == 5
    assert loader.stats.failures_by_kind() == {ErrorKind.UNEXPECTED_EOF: 5}


def test_same_outcomes_for_any_admission_limit():
    """Loading with P=1 and P=15 classifies every input the same way."""
    files = make_batch(40, bad={0, 7, 8, 39})
    files["bad_magic"] = b"XXXX" + GOOD[4:]
    files["bad_index"] = build_mesh_bytes(TRIANGLE, [0, 1, 3])
    sources = list(files) + ["missing"]

    outcomes = []
    for max_active in (1, 15):
        loader = BulkMeshLoader(max_active=max_active, opener=InstrumentedOpener(files))
        results = loader.load_all(sources)
        outcomes.append({
            name: (None if r.ok else r.error.kind) for name, r in results.items()
        })

    assert outcomes[0] == outcomes[1]
    assert outcomes[0]["bad_magic"] == ErrorKind.INVALID_MAGIC
    assert outcomes[0]["bad_index"] == ErrorKind.INDEX_OUT_OF_RANGE
    assert outcomes[0]["missing"] == ErrorKind.IO_ERROR
    assert outcomes[0]["mesh_001"] is None


@pytest.mark.parametrize("max_active,count", [(1, 5), (3, 12), (4, 4), (8, 30)])
def test_peak_active_never_exceeds_limit(max_active, count):
    files = make_batch(count)
    opener = InstrumentedOpener(files, delay=0.01)
    loader = BulkMeshLoader(max_active=max_active, opener=opener)

    results = loader.load_all(files)

    assert len(results) == count
    assert opener.peak <= max_active
    assert 1 <= loader.stats.peak_active <= max_active


def test_loads_overlap_when_allowed():
    """With room for several loads, slow opens run side by side."""
    files = make_batch(8)
    opener = InstrumentedOpener(files, delay=0.05)
    loader = BulkMeshLoader(max_active=8, opener=opener)

    loader.load_all(files)

    assert opener.peak > 1


def test_every_source_reported_exactly_once():
    files = make_batch(57, bad={5, 6})
    opener = InstrumentedOpener(files)
    loader = BulkMeshLoader(max_active=6, opener=opener)

    results = list(loader.iter_load(files))

    assert sorted(r.source for r in results) == sorted(files)
    assert sorted(opener.calls) == sorted(files)


def test_io_error_isolated_to_one_source():
    files = make_batch(10)
    loader = BulkMeshLoader(max_active=3, opener=InstrumentedOpener(files))

    results = loader.load_all(list(files) + ["gone.mesh"])

    assert results["gone.mesh"].error.kind == ErrorKind.IO_ERROR
    assert isinstance(results["gone.mesh"].error.__cause__, FileNotFoundError)
    assert all(results[name].ok for name in files)


def test_permit_released_when_opener_fails():
    """Failed opens must hand their permit back, or a P=1 run would hang."""
    loader = BulkMeshLoader(max_active=1, opener=InstrumentedOpener({}))

    results = loader.load_all([f"missing_{i}" for i in range(5)])

    assert all(r.error.kind == ErrorKind.IO_ERROR for r in results.values())


def test_unexpected_opener_bug_propagates():
    """A crash that is not an I/O failure is a programming error and surfaces."""
    def broken_opener(identity):
        raise RuntimeError("bug")

    loader = BulkMeshLoader(max_active=1, opener=broken_opener)

    with pytest.raises(RuntimeError):
        loader.load_all(["a", "b", "c", "d"])


def test_stream_sources_are_closed():
    streams = {}

    def opener(identity):
        streams[identity] = io.BytesIO(GOOD)
        return streams[identity]

    loader = BulkMeshLoader(max_active=2, opener=opener)
    results = loader.load_all(["a", "b", "c"])

    assert all(r.ok for r in results.values())
    assert all(stream.closed for stream in streams.values())


def test_default_opener_reads_paths(tmp_path):
    good = tmp_path / "good.mesh"
    good.write_bytes(GOOD)
    bad = tmp_path / "bad.mesh"
    bad.write_bytes(TRUNCATED)
    missing = tmp_path / "missing.mesh"

    results = BulkMeshLoader(max_active=2).load_all([good, bad, missing])

    assert results[good].ok
    assert results[bad].error.kind == ErrorKind.UNEXPECTED_EOF
    assert results[missing].error.kind == ErrorKind.IO_ERROR


@pytest.mark.parametrize("max_active", [0, -1, 1.5, None])
def test_invalid_admission_limit(max_active):
    """Bad configuration is a plain ValueError, never a MeshError."""
    with pytest.raises(ValueError) as excinfo:
        BulkMeshLoader(max_active=max_active)

    assert not isinstance(excinfo.value, MeshError)


def test_empty_batch_rejected():
    loader = BulkMeshLoader(max_active=2, opener=InstrumentedOpener({}))

    with pytest.raises(ValueError, match="No mesh sources"):
        loader.load_all([])
    with pytest.raises(ValueError):
        loader.iter_load([])


def test_duplicate_sources_rejected():
    loader = BulkMeshLoader(max_active=2, opener=InstrumentedOpener({}))

    with pytest.raises(ValueError, match="Duplicate"):
        loader.load_all(["a", "b", "a"])


def test_none_identity_keeps_its_key():
    files = {None: GOOD, "a": GOOD, "b": TRUNCATED}
    loader = BulkMeshLoader(max_active=2, opener=files.__getitem__)

    results = loader.load_all([None, "a", "b"])

    assert list(results) == [None, "a", "b"]
    assert results[None].ok
    assert results[None].source is None
    assert results["b"].error.source == "b"


def test_none_identity_failure_reported_under_none():
    loader = BulkMeshLoader(max_active=1, opener=lambda identity: TRUNCATED)

    results = loader.load_all([None])

    assert results[None].error.kind == ErrorKind.UNEXPECTED_EOF
    assert results[None].error.source is None


def test_elapsed_includes_open_time():
    files = make_batch(2)
    loader = BulkMeshLoader(max_active=2, opener=InstrumentedOpener(files, delay=0.05))

    results = loader.load_all(files)

    assert all(r.elapsed >= 0.04 for r in results.values())


def test_concurrent_runs_keep_separate_stats():
    first = make_batch(6)
    second = {f"other_{i}": TRUNCATED for i in range(4)}
    opener = InstrumentedOpener({**first, **second}, delay=0.02)
    loader = BulkMeshLoader(max_active=2, opener=opener)

    first_run = loader.iter_load(first)
    first_stats = loader.stats
    second_run = loader.iter_load(second)
    second_stats = loader.stats

    collected = {}
    threads = [
        threading.Thread(target=lambda: collected.update(a=list(first_run))),
        threading.Thread(target=lambda: collected.update(b=list(second_run))),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert first_stats is not second_stats
    assert loader.stats is second_stats
    assert len(collected["a"]) == 6 and len(collected["b"]) == 4
    assert (first_stats.total, first_stats.succeeded, first_stats.failed) == (6, 6, 0)
    assert (second_stats.total, second_stats.succeeded, second_stats.failed) == (4, 0, 4)
    assert first_stats.peak_active <= 2
    assert second_stats.peak_active <= 2
    assert opener.peak <= 4
