"""Snapshot construction from walker entries and hash results."""

from collections.abc import Iterable, Mapping

from .errors import InvalidTreeError
from .hasher import HashResult
from .models import FileRecord, Snapshot, WalkEntry, normalize_path


def build_snapshot(
    entries: Iterable[WalkEntry],
    hashes: Mapping[str, HashResult],
    root_label: str,
) -> Snapshot:
    """
    Join walker entries with their digests into an immutable Snapshot.

    Pure function of its inputs. Entries whose walk or hash failed become
    unreadable records. Raises InvalidTreeError for duplicate paths, missing
    ancestor directories, or a readable file without a hash result.
    """
    records = []
    for entry in entries:
        path = normalize_path(entry.relative_path)
        if not entry.is_file:
            records.append(FileRecord(path, entry.kind, error=entry.error))
            continue

        result = hashes.get(entry.relative_path)
        if result is None and path != entry.relative_path:
            result = hashes.get(path)
        if result is None:
            if entry.error is None:
                raise InvalidTreeError(f"No digest computed for file: {path}")
            records.append(FileRecord(path, entry.kind, size=entry.size, error=entry.error))
            continue

        records.append(FileRecord(
            relative_path=path,
            kind=entry.kind,
            size=entry.size,
            digest=result.digest if result.error is None else None,
            metadata_hint=entry.metadata_hint,
            error=entry.error or result.error,
        ))

    return Snapshot.from_records(records, root_label)
