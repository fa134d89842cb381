"""Reduce a reference and a target snapshot to an ordered operation list.

Operations are emitted in blocks so that applying them in order keeps the
target tree structurally valid at every step:

1. writes outside kind-conflicted subtrees: directory creations (parents
   first), moves, then copies;
2. for paths that are a file on one side and a directory on the other: the
   target subtree is cleared (deepest first), then the reference subtree is
   created, moved into and copied into;
3. remaining deletions, deepest first.

Without kind conflicts block 2 is empty and every write precedes every
delete.
"""

import logging
import time
from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

from .errors import UnreadableReferenceError
from .models import (
    ContentSource,
    CopyOrUpdate,
    CreateDirectory,
    Delete,
    Move,
    Operation,
    Snapshot,
    SourceOrigin,
    parent_path,
    path_depth,
    path_key,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def _region_of(path: str, conflicts: set[str]) -> Optional[str]:
    """Return the kind-conflicted path containing ``path``, if any."""
    current: Optional[str] = path
    while current is not None:
        if current in conflicts:
            return current
        current = parent_path(current)
    return None


def _deepest_first(paths: Iterable[str]) -> list[str]:
    return sorted(paths, key=lambda p: (-path_depth(p), p))


class _LocalSources:
    """Tracks target paths known to hold a digest at the current point in the plan."""

    def __init__(self):
        self._by_digest: dict[str, set[str]] = defaultdict(set)

    def add(self, digest: str, path: str) -> None:
        self._by_digest[digest].add(path)

    def discard(self, digest: str, path: str) -> None:
        self._by_digest[digest].discard(path)

    def earliest(self, digest: str) -> Optional[str]:
        paths = self._by_digest.get(digest)
        return min(paths) if paths else None


def diff(reference: Snapshot, target: Snapshot) -> list[Operation]:
    """
    Compute the ordered operations that turn ``target`` into ``reference``.

    Content identity is decided by digest equality only. A reference file
    whose digest matches a surplus target file becomes a Move from the
    lexicographically earliest unused such path. Raises
    UnreadableReferenceError if the reference has unreadable entries.
    """
    unreadable = [record.relative_path for record in reference.unreadable()]
    if unreadable:
        raise UnreadableReferenceError(unreadable)

    started = time.perf_counter()
    ref_paths = set(reference)
    tgt_paths = set(target)
    in_both = ref_paths & tgt_paths

    conflicts = {p for p in in_both if reference[p].kind is not target[p].kind}
    stable = in_both - conflicts
    # Paths the plan must create (reference side) or remove (target side).
    added = (ref_paths - tgt_paths) | conflicts
    removed = (tgt_paths - ref_paths) | conflicts

    region = {p: _region_of(p, conflicts) for p in added | removed} if conflicts else {}

    def in_region(path: str) -> bool:
        return region.get(path) is not None

    _log_debug(
        "Partitioned paths: %d only in reference, %d only in target, %d in both, %d kind conflicts",
        len(ref_paths - tgt_paths), len(tgt_paths - ref_paths), len(in_both), len(conflicts),
    )

    # Index surplus readable target files by digest for move detection.
    move_index: dict[str, list[str]] = defaultdict(list)
    for path in removed:
        record = target[path]
        if record.is_file and not record.unreadable and record.digest is not None:
            move_index[record.digest].append(path)
    for paths in move_index.values():
        paths.sort()

    added_files = sorted((p for p in added if reference[p].is_file), key=path_key)
    added_dirs = sorted((p for p in added if reference[p].is_dir), key=path_key)

    consumed: set[str] = set()
    moves: dict[str, Move] = {}
    for dest in added_files:
        digest = reference[dest].digest
        for source in move_index.get(digest, ()):
            if source in consumed:
                continue
            if in_region(source) and in_region(dest):
                continue
            consumed.add(source)
            moves[dest] = Move(source, dest, digest)
            break

    needs_content = [p for p in added_files if p not in moves]
    for path in stable:
        ref_record = reference[path]
        tgt_record = target[path]
        if ref_record.is_file and (tgt_record.unreadable or tgt_record.digest != ref_record.digest):
            needs_content.append(path)
    needs_content.sort(key=path_key)

    sources = _LocalSources()
    for path in stable:
        ref_record = reference[path]
        tgt_record = target[path]
        if (ref_record.is_file and not tgt_record.unreadable
                and tgt_record.digest == ref_record.digest):
            sources.add(ref_record.digest, path)
    # Surplus files outside conflicted subtrees survive until the final deletes.
    for digest, paths in move_index.items():
        for path in paths:
            if path not in consumed and not in_region(path):
                sources.add(digest, path)

    operations: list[Operation] = []

    def _emit_writes(dirs: list[str], dests: list[str], copies: list[str]) -> None:
        operations.extend(CreateDirectory(p) for p in dirs)
        for dest in dests:
            move = moves[dest]
            operations.append(move)
            sources.discard(move.digest, move.from_path)
            sources.add(move.digest, dest)
        for dest in copies:
            digest = reference[dest].digest
            local = sources.earliest(digest)
            if local is not None and local != dest:
                source = ContentSource(SourceOrigin.TARGET, local, digest)
            else:
                source = ContentSource(SourceOrigin.REFERENCE, dest, digest)
            operations.append(CopyOrUpdate(source, dest))
            sources.add(digest, dest)

    def _emit_deletes(paths: Iterable[str]) -> None:
        for path in _deepest_first(paths):
            operations.append(Delete(path, target[path].kind))

    # Block 1: writes outside conflicted subtrees
    _emit_writes(
        [p for p in added_dirs if not in_region(p)],
        sorted((p for p in moves if not in_region(p)), key=path_key),
        [p for p in needs_content if not in_region(p)],
    )

    # Block 2: replace conflicted subtrees
    if conflicts:
        _emit_deletes(p for p in removed if in_region(p) and p not in consumed)
        _emit_writes(
            [p for p in added_dirs if in_region(p)],
            sorted((p for p in moves if in_region(p)), key=path_key),
            [p for p in needs_content if in_region(p)],
        )

    # Block 3: surplus target entries
    _emit_deletes(p for p in removed if not in_region(p) and p not in consumed)

    _log_info(
        "Diff produced %d operations (%d moves, %d kind conflicts) in %.3fs",
        len(operations), len(moves), len(conflicts), time.perf_counter() - started,
    )
    return operations
