"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from folder_sync.db import HashCache
from folder_sync.hasher import DIGEST_ALGORITHM
from folder_sync.models import EntryKind, FileRecord, Snapshot, parent_path


def _write_tree(root: Path, layout: dict) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for rel_path, content in layout.items():
        path = root / rel_path
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
    return root


def _synthetic_snapshot(layout: dict, root_label: str = "reference", unreadable=()) -> Snapshot:
    records = {}
    for rel_path, content in layout.items():
        parent = parent_path(rel_path)
        while parent is not None and parent not in records:
            records[parent] = FileRecord(parent, EntryKind.DIRECTORY)
            parent = parent_path(parent)
        if content is None:
            records[rel_path] = FileRecord(rel_path, EntryKind.DIRECTORY)
        elif rel_path in unreadable:
            records[rel_path] = FileRecord(rel_path, EntryKind.FILE, error="Permission denied")
        else:
            records[rel_path] = FileRecord(
                rel_path, EntryKind.FILE, size=len(content), digest=f"digest-{content}"
            )
    return Snapshot.from_records(records.values(), root_label)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_tree(temp_dir):
    """Factory writing {relative_path: content} (None for directories) under temp_dir."""
    def _make(name: str, layout: dict) -> Path:
        return _write_tree(temp_dir / name, layout)
    return _make


@pytest.fixture
def make_snapshot():
    """Factory building a snapshot from {path: content}; digests derive from content."""
    return _synthetic_snapshot


@pytest.fixture
def sample_tree(make_tree):
    """A small reference-like tree with nesting and duplicate content."""
    return make_tree("reference", {
        "README.md": "readme",
        "assets/hero.uasset": b"\x00\x01binary asset",
        "assets/textures/stone.png": b"\x89PNG stone",
        "assets/textures/stone_copy.png": b"\x89PNG stone",
        "build/out.bin": b"output",
        "empty": None,
    })


@pytest.fixture
def state_path(temp_dir):
    """Path for a persisted state file."""
    return temp_dir / "state.fss"


@pytest.fixture
def cache_path(temp_dir):
    """Path for a hash cache database."""
    return temp_dir / "hashes.db"


@pytest.fixture
def hash_cache(cache_path):
    """Create a HashCache instance for testing."""
    cache = HashCache(cache_path, DIGEST_ALGORITHM)
    yield cache
    cache.close()
