"""Concurrent loading of many mesh files under an admission limit.

Each source is loaded on a worker thread. A counting permit pool sized to the
admission limit is acquired by the submitting thread before a load is handed
to the pool, and released by the worker when the load finishes, whatever the
outcome. At no point are more than max_active loads in flight, and nothing is
queued ahead of a free permit.
"""
import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Hashable, Iterable, Iterator, List, Optional, Union

from mesh_errors import ErrorKind, MeshIoError
from mesh_loader import DecodeStage, LoadResult, MeshLoader

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIVE = 15

Opener = Callable[[Hashable], Union[bytes, BinaryIO]]


def read_file_bytes(path: Union[str, Path]) -> bytes:
    """Default opener: read a whole file from disk."""
    with open(path, "rb") as f:
        return f.read()


@dataclass
class BulkLoadStats:
    """Counters for one bulk run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    peak_active: int = 0
    elapsed: float = 0.0
    failure_kinds: Counter = field(default_factory=Counter)

    def record(self, result: LoadResult):
        if result.ok:
            self.succeeded += 1
        else:
            self.failed += 1
            self.failure_kinds[result.error.kind] += 1

    def failures_by_kind(self) -> Dict[ErrorKind, int]:
        return dict(self.failure_kinds)


class _RunState:
    """Per-run counters shared between the submitting thread and workers."""

    def __init__(self, total: int, max_active: int):
        self.stats = BulkLoadStats(total=total)
        self.permits = threading.BoundedSemaphore(max_active)
        self._lock = threading.Lock()
        self._active = 0

    def enter(self):
        with self._lock:
            self._active += 1
            if self._active > self.stats.peak_active:
                self.stats.peak_active = self._active

    def leave(self):
        with self._lock:
            self._active -= 1
        self.permits.release()


class BulkMeshLoader:
    """Loads batches of meshes concurrently, one result per source.

    Every call to iter_load or load_all keeps its own permits and counters,
    so concurrent runs on one instance do not share an admission limit.
    The stats attribute points at the counters of the most recently started
    run.

    Args:
        max_active: Admission limit, the most loads allowed in flight at once
        opener: Callable turning a source identity into bytes or an open
            binary stream. Defaults to reading the identity as a file path.
        loader: Single-file loader to run for each source
    """

    def __init__(
        self,
        max_active: int = DEFAULT_MAX_ACTIVE,
        opener: Optional[Opener] = None,
        loader: Optional[MeshLoader] = None,
    ):
        if not isinstance(max_active, int) or max_active < 1:
            raise ValueError(f"max_active must be a positive integer, got {max_active!r}")

        self.max_active = max_active
        self.opener = opener or read_file_bytes
        self.loader = loader or MeshLoader()
        self.stats = BulkLoadStats()

    def _load_one(self, identity: Hashable, run: _RunState) -> LoadResult:
        """Open and decode one source. Runs on a worker thread holding a permit."""
        run.enter()
        try:
            started = time.perf_counter()
            try:
                source = self.opener(identity)
            except OSError as exc:
                error = MeshIoError(f"Failed to open mesh source: {exc}")
                error.__cause__ = exc
                error.stage = DecodeStage.START
                error.source = identity
                return LoadResult(
                    source=identity, error=error, elapsed=time.perf_counter() - started
                )

            try:
                result = self.loader.load(source, identity=identity)
            finally:
                if hasattr(source, "close"):
                    source.close()
            if result.error is not None:
                result.error.source = identity
            return replace(result, source=identity, elapsed=time.perf_counter() - started)
        finally:
            run.leave()

    def _check_sources(self, sources: Iterable[Hashable]) -> List[Hashable]:
        identities = list(sources)
        if not identities:
            raise ValueError("No mesh sources given")

        duplicates = [identity for identity, count in Counter(identities).items() if count > 1]
        if duplicates:
            raise ValueError(f"Duplicate mesh sources: {duplicates[:5]}")
        return identities

    def iter_load(self, sources: Iterable[Hashable]) -> Iterator[LoadResult]:
        """Load every source, yielding results as they complete.

        Completion order is not input order; use LoadResult.source to match
        results to inputs.

        Raises:
            ValueError: If sources is empty or contains duplicates
        """
        identities = self._check_sources(sources)
        run = _RunState(len(identities), self.max_active)
        self.stats = run.stats
        return self._run(identities, run)

    def _run(self, identities: List[Hashable], run: _RunState) -> Iterator[LoadResult]:
        stats = run.stats
        started = time.perf_counter()
        logger.debug("Loading %d meshes with at most %d active", len(identities), self.max_active)

        with ThreadPoolExecutor(
            max_workers=self.max_active, thread_name_prefix="mesh-loader"
        ) as executor:
            futures = set()
            for identity in identities:
                run.permits.acquire()
                futures.add(executor.submit(self._load_one, identity, run))
                # Hand back finished results while still admitting new work
                done = {f for f in futures if f.done()}
                futures -= done
                for future in done:
                    yield self._finish(stats, future.result())

            for future in as_completed(futures):
                yield self._finish(stats, future.result())

        stats.elapsed = time.perf_counter() - started
        logger.info(
            "Loaded %d/%d meshes in %.3fs (peak %d active)",
            stats.succeeded,
            stats.total,
            stats.elapsed,
            stats.peak_active,
        )

    def _finish(self, stats: BulkLoadStats, result: LoadResult) -> LoadResult:
        stats.record(result)
        if result.ok:
            logger.debug("Loaded %s in %.3fs", result.source, result.elapsed)
        else:
            logger.warning(
                "Failed %s: %s (%s)", result.source, result.error.message, result.error.kind.value
            )
        return result

    def load_all(self, sources: Iterable[Hashable]) -> Dict[Hashable, LoadResult]:
        """Load every source and return results keyed by source, in input order.

        Raises:
            ValueError: If sources is empty or contains duplicates
        """
        identities = self._check_sources(sources)
        results = {result.source: result for result in self.iter_load(identities)}
        return {identity: results[identity] for identity in identities}
