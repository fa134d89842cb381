"""Persisted snapshot state.

A state file holds exactly one Snapshot. Layout::

    magic     8 bytes   b"FSYNCST\\x00"
    version   4 bytes   big-endian format version
    checksum 16 bytes   xxh3-128 over (version bytes + payload)
    payload             compact UTF-8 JSON

The envelope is the same for every format version; only the payload schema
changes. The checksum is verified before anything else is interpreted.
"""

import contextlib
import json
import logging
import os
import struct
import tempfile
from pathlib import Path

import xxhash

from .errors import CorruptStateError, InvalidTreeError, IoError, UnsupportedVersionError
from .hasher import DIGEST_ALGORITHM
from .models import FORMAT_VERSION, EntryKind, FileRecord, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info

MAGIC = b"FSYNCST\x00"
_VERSION = struct.Struct(">I")
_CHECKSUM_SIZE = 16
HEADER_SIZE = len(MAGIC) + _VERSION.size + _CHECKSUM_SIZE


def _checksum(data: bytes) -> bytes:
    return xxhash.xxh3_128_digest(data)


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Serialize a snapshot into the state file format."""
    payload = json.dumps(
        {
            "root_label": snapshot.root_label,
            "digest_algorithm": DIGEST_ALGORITHM,
            "records": [record.to_dict() for record in snapshot.values()],
        },
        separators=(",", ":"),
        sort_keys=True,
    ).encode("utf-8")
    version = _VERSION.pack(FORMAT_VERSION)
    return MAGIC + version + _checksum(version + payload) + payload


def _record_from_dict(data: dict) -> FileRecord:
    record = FileRecord.from_dict(data)
    if not isinstance(record.relative_path, str):
        raise ValueError(f"bad path {record.relative_path!r}")
    if record.digest is not None and not isinstance(record.digest, str):
        raise ValueError(f"bad digest for {record.relative_path}")
    if record.size is not None and not isinstance(record.size, int):
        raise ValueError(f"bad size for {record.relative_path}")
    if record.kind is EntryKind.FILE and record.digest is None and record.error is None:
        raise ValueError(f"file {record.relative_path} has no digest")
    return record


def decode_snapshot(data: bytes, source: str = "<state>") -> Snapshot:
    """
    Deserialize state file bytes.

    Raises CorruptStateError for damaged data and UnsupportedVersionError
    for a newer format version or unknown digest algorithm.
    """
    if len(data) < HEADER_SIZE or not data.startswith(MAGIC):
        raise CorruptStateError(f"{source} is not a folder sync state file")

    version_bytes = data[len(MAGIC):len(MAGIC) + _VERSION.size]
    checksum = data[len(MAGIC) + _VERSION.size:HEADER_SIZE]
    payload = data[HEADER_SIZE:]

    if _checksum(version_bytes + payload) != checksum:
        raise CorruptStateError(f"Checksum mismatch in {source}: state file is corrupt")

    (version,) = _VERSION.unpack(version_bytes)
    if version > FORMAT_VERSION:
        raise UnsupportedVersionError(
            f"{source} uses state format version {version}; "
            f"this version supports up to {FORMAT_VERSION}"
        )
    if version < 1:
        raise CorruptStateError(f"Invalid state format version {version} in {source}")

    try:
        document = json.loads(payload.decode("utf-8"))
    except ValueError as e:
        raise CorruptStateError(f"Cannot decode payload of {source}: {e}") from e
    if not isinstance(document, dict):
        raise CorruptStateError(f"Unexpected payload structure in {source}")

    algorithm = document.get("digest_algorithm")
    if algorithm != DIGEST_ALGORITHM:
        raise UnsupportedVersionError(
            f"{source} uses digest algorithm {algorithm!r}; expected {DIGEST_ALGORITHM!r}"
        )

    try:
        root_label = document["root_label"]
        records = [_record_from_dict(item) for item in document["records"]]
        return Snapshot.from_records(records, str(root_label), version)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptStateError(f"Malformed record in {source}: {e}") from e
    except InvalidTreeError as e:
        raise CorruptStateError(f"Invalid tree in {source}: {e}") from e


def _fsync_dir(directory: Path) -> None:
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def save(snapshot: Snapshot, path: Path) -> Path:
    """
    Atomically write ``snapshot`` to ``path``, replacing any previous state.

    The data goes to a temporary file in the destination directory which
    is renamed into place once flushed, so readers only ever see the old or
    the new complete file.
    """
    path = Path(path)
    directory = path.parent if str(path.parent) else Path(".")
    data = encode_snapshot(snapshot)

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    except OSError as e:
        raise IoError(f"Cannot write state file {path}: {e}") from e
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException as e:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        if isinstance(e, OSError):
            raise IoError(f"Cannot write state file {path}: {e}") from e
        raise
    _fsync_dir(directory)

    _log_info("Saved %s snapshot with %d entries to %s",
              snapshot.root_label, len(snapshot), path)
    return path


def load(path: Path) -> Snapshot:
    """Load and verify the snapshot stored at ``path``."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise IoError(f"Cannot read state file {path}: {e}") from e
    snapshot = decode_snapshot(data, str(path))
    _log_debug("Loaded %s snapshot with %d entries from %s",
               snapshot.root_label, len(snapshot), path)
    return snapshot
