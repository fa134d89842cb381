"""Scan one reachable directory tree into a Snapshot."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import SyncOptions
from .db import HashCache
from .hasher import DIGEST_ALGORITHM, hash_files
from .models import ScanError, Snapshot
from .priority import PriorityScorer
from .snapshot import build_snapshot
from .walker import TreeWalker

_log = logging.getLogger(__name__)

_log_info = _log.info


@dataclass
class ScanResult:
    """A snapshot together with the per-entry errors met while building it."""
    snapshot: Snapshot
    errors: list[ScanError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def scan_tree(
    root: Path,
    root_label: str,
    options: Optional[SyncOptions] = None,
    *,
    scorer: Optional[PriorityScorer] = None,
    hash_cache: Optional[HashCache] = None,
) -> ScanResult:
    """
    Walk, hash and snapshot the tree at ``root``.

    Args:
        root: Path to the tree root
        root_label: Label stored in the snapshot ("reference" or "target")
        options: Scan options (defaults apply when omitted)
        scorer: Optional priority scorer for hash dispatch order (default:
            the scorer named by ``options.priority``)
        hash_cache: Open hash cache; when omitted and options name a cache
            file, one is opened for the duration of the scan

    Returns:
        ScanResult with the snapshot and the walk and hash errors

    Raises:
        IoError: if the root cannot be read
        InvalidTreeError: if the walk output violates snapshot invariants
    """
    options = options or SyncOptions()
    root = Path(root)

    if hash_cache is None and options.hash_cache is not None:
        with HashCache(options.hash_cache, DIGEST_ALGORITHM) as cache:
            return scan_tree(root, root_label, options, scorer=scorer, hash_cache=cache)

    if scorer is None:
        scorer = options.scorer

    started = time.perf_counter()
    walker = TreeWalker(root, options.path_filter)
    entries = list(walker.walk())
    walked = time.perf_counter()
    _log_info("Walked %d entries under %s in %.2fs", len(entries), root, walked - started)

    hashes = hash_files(
        root,
        entries,
        workers=options.workers,
        queue_size=options.queue_size,
        scorer=scorer,
        hash_cache=hash_cache,
        chunk_size=options.chunk_size,
        show_progress=options.show_progress,
        desc=f"Hashing {root_label}",
    )
    _log_info("Hashed %s tree in %.2fs", root_label, time.perf_counter() - walked)

    if hash_cache is not None:
        hash_cache.prune(str(root.resolve()), (e.relative_path for e in entries if e.is_file))

    snapshot = build_snapshot(entries, hashes, root_label)

    errors = list(walker.errors)
    reported = {error.relative_path for error in errors}
    for result in hashes.values():
        if result.error is not None and result.relative_path not in reported:
            errors.append(ScanError(
                result.relative_path,
                str(root / result.relative_path),
                result.error,
            ))
    errors.sort(key=lambda error: error.relative_path)

    return ScanResult(snapshot, errors)
