"""Data models for folder sync."""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import PurePosixPath
from typing import ClassVar, Optional

from .errors import InvalidTreeError

FORMAT_VERSION = 1

REFERENCE_LABEL = "reference"
TARGET_LABEL = "target"


class EntryKind(Enum):
    """Kinds of tree entries tracked in a snapshot."""
    FILE = "file"
    DIRECTORY = "directory"


class SourceOrigin(Enum):
    """Where the bytes for a CopyOrUpdate come from."""
    REFERENCE = "reference"
    TARGET = "target"


def normalize_path(path: str) -> str:
    """
    Normalize a relative path to POSIX form.

    Backslashes become forward slashes, and leading "./" and trailing "/"
    are dropped. Absolute paths, empty paths and paths containing ".."
    raise InvalidTreeError.
    """
    value = str(path).replace("\\", "/")
    if value.startswith("/"):
        raise InvalidTreeError(f"Path must be relative: {path!r}")
    parts = [part for part in value.split("/") if part not in ("", ".")]
    if not parts:
        raise InvalidTreeError(f"Empty relative path: {path!r}")
    if ".." in parts:
        raise InvalidTreeError(f"Path escapes the tree root: {path!r}")
    return "/".join(parts)


def path_key(path: str) -> tuple[str, ...]:
    """Sort key ordering paths component by component (parents before children)."""
    return tuple(path.split("/"))


def path_depth(path: str) -> int:
    """Number of components in a normalized relative path."""
    return path.count("/") + 1


def parent_path(path: str) -> Optional[str]:
    """Parent of a normalized relative path, or None for top-level entries."""
    head, sep, _ = path.rpartition("/")
    return head if sep else None


@dataclass(frozen=True)
class MetadataHint:
    """Cheap pre-hash attributes used to skip rehashing unchanged files."""
    size: int
    mtime_ns: int


@dataclass(frozen=True)
class WalkEntry:
    """One entry produced by the tree walker."""
    relative_path: str
    kind: EntryKind
    size: Optional[int] = None
    mtime_ns: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def metadata_hint(self) -> Optional[MetadataHint]:
        if self.size is None or self.mtime_ns is None:
            return None
        return MetadataHint(self.size, self.mtime_ns)


@dataclass(frozen=True)
class FileRecord:
    """One entry in a Snapshot."""
    relative_path: str
    kind: EntryKind
    size: Optional[int] = None
    digest: Optional[str] = None
    metadata_hint: Optional[MetadataHint] = None
    error: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def unreadable(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        data = {
            "path": self.relative_path,
            "kind": self.kind.value,
            "size": self.size,
            "digest": self.digest,
            "hint": None,
            "error": self.error,
        }
        if self.metadata_hint is not None:
            data["hint"] = asdict(self.metadata_hint)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        hint = data.get("hint")
        return cls(
            relative_path=data["path"],
            kind=EntryKind(data["kind"]),
            size=data.get("size"),
            digest=data.get("digest"),
            metadata_hint=MetadataHint(**hint) if hint else None,
            error=data.get("error"),
        )


def _check_tree(records: Mapping[str, FileRecord]) -> None:
    """Raise InvalidTreeError unless ``records`` forms a well-formed tree."""
    for path, record in records.items():
        if normalize_path(path) != path:
            raise InvalidTreeError(f"Path is not normalized: {path!r}")
        if record.relative_path != path:
            raise InvalidTreeError(f"Record {record.relative_path!r} stored under {path!r}")
        if record.is_dir and (record.size is not None or record.digest is not None):
            raise InvalidTreeError(f"Directory carries file content: {path}")

    for path in records:
        parent = parent_path(path)
        if parent is None:
            continue
        ancestor = records.get(parent)
        if ancestor is None:
            raise InvalidTreeError(f"Missing ancestor directory {parent!r} for {path!r}")
        if not ancestor.is_dir:
            raise InvalidTreeError(f"Ancestor {parent!r} of {path!r} is not a directory")


class Snapshot(Mapping):
    """
    Immutable content-addressed manifest of a directory tree.

    Maps normalized relative paths to FileRecords, ordered by path
    components. Two snapshots compare equal when their records are equal;
    the root label is informational only.
    """

    __slots__ = ("_records", "_root_label", "_format_version")

    def __init__(
        self,
        records: Mapping[str, FileRecord],
        root_label: str,
        format_version: int = FORMAT_VERSION,
    ):
        _check_tree(records)
        self._records = {path: records[path] for path in sorted(records, key=path_key)}
        self._root_label = root_label
        self._format_version = format_version

    @classmethod
    def from_records(
        cls,
        records: Iterable[FileRecord],
        root_label: str,
        format_version: int = FORMAT_VERSION,
    ) -> "Snapshot":
        """Build a snapshot from records, rejecting duplicate paths."""
        by_path: dict[str, FileRecord] = {}
        for record in records:
            if record.relative_path in by_path:
                raise InvalidTreeError(f"Duplicate path in tree: {record.relative_path}")
            by_path[record.relative_path] = record
        return cls(by_path, root_label, format_version)

    @classmethod
    def empty(cls, root_label: str = TARGET_LABEL) -> "Snapshot":
        return cls({}, root_label)

    @property
    def root_label(self) -> str:
        return self._root_label

    @property
    def format_version(self) -> int:
        return self._format_version

    def __getitem__(self, path: str) -> FileRecord:
        return self._records[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"Snapshot(root_label={self._root_label!r}, entries={len(self._records)})"

    def files(self) -> list[FileRecord]:
        return [r for r in self._records.values() if r.is_file]

    def directories(self) -> list[FileRecord]:
        return [r for r in self._records.values() if r.is_dir]

    def unreadable(self) -> list[FileRecord]:
        return [r for r in self._records.values() if r.unreadable]

    def digests(self) -> dict[str, str]:
        """Map of path to digest for every readable file."""
        return {
            path: record.digest
            for path, record in self._records.items()
            if record.is_file and record.digest is not None
        }


@dataclass(frozen=True)
class ContentSource:
    """Identifies the known bytes a CopyOrUpdate reproduces."""
    origin: SourceOrigin
    path: str
    digest: Optional[str]


@dataclass(frozen=True)
class CreateDirectory:
    op: ClassVar[str] = "create_directory"
    path: str

    def to_dict(self) -> dict:
        return {"op": self.op, "path": self.path}


@dataclass(frozen=True)
class CopyOrUpdate:
    op: ClassVar[str] = "copy_or_update"
    source: ContentSource
    destination_path: str

    @property
    def path(self) -> str:
        return self.destination_path

    def to_dict(self) -> dict:
        return {
            "op": self.op,
            "path": self.destination_path,
            "source": {
                "origin": self.source.origin.value,
                "path": self.source.path,
                "digest": self.source.digest,
            },
        }


@dataclass(frozen=True)
class Move:
    op: ClassVar[str] = "move"
    from_path: str
    to_path: str
    digest: Optional[str] = None

    @property
    def path(self) -> str:
        return self.to_path

    def to_dict(self) -> dict:
        return {"op": self.op, "from": self.from_path, "path": self.to_path, "digest": self.digest}


@dataclass(frozen=True)
class Delete:
    op: ClassVar[str] = "delete"
    path: str
    kind: EntryKind = EntryKind.FILE

    def to_dict(self) -> dict:
        return {"op": self.op, "path": self.path, "kind": self.kind.value}


Operation = CreateDirectory | CopyOrUpdate | Move | Delete


@dataclass(frozen=True)
class FileCandidate:
    """Attributes a priority scorer sees for one pending hash."""
    relative_path: str
    size: int
    depth: int
    extension: str
    asset_type: Optional[str] = None


class ScanError:
    """Record of an entry that failed to walk or hash."""

    def __init__(self, relative_path: str, absolute_path: str, error: str):
        self.relative_path = relative_path
        self.absolute_path = absolute_path
        self.error = error

    def __repr__(self) -> str:
        return f"ScanError({self.relative_path!r}, {self.error!r})"

    def to_dict(self) -> dict:
        return {
            "path": self.relative_path,
            "absolute_path": self.absolute_path,
            "error": self.error,
        }


def file_extension(path: str) -> str:
    """Lower-cased extension of a relative path including the dot, or ''."""
    return PurePosixPath(path).suffix.lower()
