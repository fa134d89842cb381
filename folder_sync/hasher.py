"""Parallel content hashing of walked files."""

import logging
import os
import time
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import xxhash
from tqdm import tqdm

from .db import HashCache
from .models import MetadataHint, WalkEntry
from .priority import PriorityScorer, prioritize

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning

DIGEST_ALGORITHM = "xxh3_128"
DEFAULT_CHUNK_SIZE = 65536

#: In-flight tasks allowed per worker before submission blocks
QUEUE_DEPTH_PER_WORKER = 4


def default_workers() -> int:
    """Number of hashing workers used when none is configured."""
    return os.cpu_count() or 1


def long_path(path: Path) -> str:
    """Convert path to long path format on Windows to handle paths > 260 chars."""
    path_str = str(path.resolve())
    if os.name == 'nt' and not path_str.startswith('\\\\?\\'):
        return '\\\\?\\' + path_str
    return path_str


def compute_file_hash(file_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute the xxh3-128 digest of a file, read sequentially in chunks."""
    hasher = xxhash.xxh3_128()
    with open(long_path(Path(file_path)), 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


@dataclass(frozen=True)
class HashResult:
    """Digest (or failure) for one file."""
    relative_path: str
    digest: Optional[str] = None
    error: Optional[str] = None
    metadata_hint: Optional[MetadataHint] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.digest is not None


def _hash_entry(root: Path, entry: WalkEntry, chunk_size: int) -> HashResult:
    _log_debug("Started hashing '%s'", entry.relative_path)
    started = time.perf_counter()
    try:
        digest = compute_file_hash(root / entry.relative_path, chunk_size)
    except OSError as e:
        return HashResult(
            entry.relative_path,
            error=e.strerror or str(e),
            metadata_hint=entry.metadata_hint,
        )
    _log_debug("Finished hashing '%s' in %.3fs", entry.relative_path, time.perf_counter() - started)
    return HashResult(entry.relative_path, digest=digest, metadata_hint=entry.metadata_hint)


def hash_files(
    root: Path,
    entries: Iterable[WalkEntry],
    *,
    workers: Optional[int] = None,
    queue_size: Optional[int] = None,
    scorer: Optional[PriorityScorer] = None,
    hash_cache: Optional[HashCache] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    show_progress: bool = False,
    desc: str = "Hashing",
) -> dict[str, HashResult]:
    """
    Hash every file entry using a fixed-size worker pool.

    Args:
        root: Root directory the entries are relative to
        entries: Walker output; directory entries are ignored
        workers: Pool size (default: available CPUs)
        queue_size: Maximum in-flight tasks before submission blocks
        scorer: Optional priority scorer deciding dispatch order
        hash_cache: Optional cache consulted by metadata hint
        chunk_size: Read size used while hashing one file
        show_progress: Display a tqdm progress bar
        desc: Description for the progress bar

    Returns:
        Dictionary of relative path to HashResult. Per-file read failures
        are reported in the result rather than raised.
    """
    root = Path(root)
    workers = workers or default_workers()
    queue_size = queue_size or workers * QUEUE_DEPTH_PER_WORKER
    if workers < 1 or queue_size < 1:
        raise ValueError("workers and queue_size must be positive")

    files = [entry for entry in entries if entry.is_file]
    cache_root = str(root.resolve())
    results: dict[str, HashResult] = {}
    pending: list[WalkEntry] = []

    for entry in files:
        if entry.error is not None:
            results[entry.relative_path] = HashResult(entry.relative_path, error=entry.error)
            continue
        if hash_cache is not None:
            digest = hash_cache.lookup(cache_root, entry.relative_path, entry.metadata_hint)
            if digest is not None:
                results[entry.relative_path] = HashResult(
                    entry.relative_path,
                    digest=digest,
                    metadata_hint=entry.metadata_hint,
                    cached=True,
                )
                continue
        pending.append(entry)

    if results:
        _log_debug("%d of %d files resolved without hashing", len(results), len(files))

    ordered = prioritize(pending, scorer)
    _log_info("Hashing %d files with %d workers", len(ordered), workers)

    with tqdm(total=len(files), initial=len(results), desc=desc, unit="file",
              disable=not show_progress) as pbar:

        def _collect(done: Iterable[Future]) -> None:
            for future in done:
                result = future.result()
                if result.error is not None:
                    _log_warn("Cannot hash '%s': %s", result.relative_path, result.error)
                results[result.relative_path] = result
                pbar.update(1)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="folder-sync-hash") as executor:
            in_flight: set[Future] = set()
            try:
                for entry in ordered:
                    if len(in_flight) >= queue_size:
                        done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                        _collect(done)
                    in_flight.add(executor.submit(_hash_entry, root, entry, chunk_size))
                done, in_flight = wait(in_flight)
                _collect(done)
            except BaseException:
                for future in in_flight:
                    future.cancel()
                raise

    if hash_cache is not None:
        fresh = [
            (r.relative_path, r.metadata_hint, r.digest)
            for r in results.values()
            if r.ok and not r.cached and r.metadata_hint is not None
        ]
        if fresh:
            hash_cache.store_batch(cache_root, fresh)

    return results
