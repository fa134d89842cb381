"""Directory tree walking."""

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from .errors import IoError
from .filters import PathFilter
from .models import EntryKind, ScanError, WalkEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning


class TreeWalker:
    """
    Depth-first walker producing WalkEntry values for a directory tree.

    Children of each directory are visited in name order, so two walks of
    an unchanged tree produce the same sequence. Excluded entries are pruned
    together with their subtree. Per-entry failures are collected in
    ``errors`` and do not stop the walk.
    """

    def __init__(self, root: Path, path_filter: Optional[PathFilter] = None):
        self.root = Path(root)
        self.path_filter = path_filter or PathFilter()
        self.errors: list[ScanError] = []

        if not self.root.exists():
            raise IoError(f"Tree root does not exist: {self.root}")
        if not self.root.is_dir():
            raise IoError(f"Tree root is not a directory: {self.root}")
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise IoError(f"Tree root is not readable: {self.root}")

    def _record_error(self, relative_path: str, exc: OSError) -> str:
        message = exc.strerror or str(exc)
        self.errors.append(ScanError(relative_path, str(self.root / relative_path), message))
        _log_warn("Cannot read '%s': %s", relative_path, message)
        return message

    def _list_dir(self, relative_dir: str) -> Optional[list[os.DirEntry]]:
        path = self.root / relative_dir if relative_dir else self.root
        try:
            with os.scandir(path) as it:
                return sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            if not relative_dir:
                raise IoError(f"Cannot list tree root {self.root}: {e}") from e
            self._record_error(relative_dir, e)
            return None

    def _entry_for(self, dir_entry: os.DirEntry, relative_path: str) -> Optional[WalkEntry]:
        try:
            if dir_entry.is_symlink():
                _log_debug("Skipping symbolic link '%s'", relative_path)
                return None
            if dir_entry.is_dir(follow_symlinks=False):
                return WalkEntry(relative_path, EntryKind.DIRECTORY)
            if not dir_entry.is_file(follow_symlinks=False):
                _log_debug("Skipping special file '%s'", relative_path)
                return None
        except OSError as e:
            message = self._record_error(relative_path, e)
            return WalkEntry(relative_path, EntryKind.FILE, error=message)

        try:
            st = dir_entry.stat(follow_symlinks=False)
        except OSError as e:
            message = self._record_error(relative_path, e)
            return WalkEntry(relative_path, EntryKind.FILE, error=message)
        return WalkEntry(relative_path, EntryKind.FILE, size=st.st_size, mtime_ns=st.st_mtime_ns)

    def walk(self) -> Iterator[WalkEntry]:
        """Lazily yield every non-excluded entry below the root."""
        # Stack of directories still to expand, each holding its sorted
        # children in reverse so pop() yields them in name order.
        root_children = self._list_dir("")
        stack = [("", list(reversed(root_children or [])))]

        while stack:
            relative_dir, pending = stack[-1]
            if not pending:
                stack.pop()
                continue
            dir_entry = pending.pop()
            relative_path = f"{relative_dir}/{dir_entry.name}" if relative_dir else dir_entry.name

            entry = self._entry_for(dir_entry, relative_path)
            if entry is None:
                continue
            if self.path_filter.excludes(relative_path, is_dir=not entry.is_file):
                _log_debug("Excluding '%s'", relative_path)
                continue

            if entry.is_file:
                yield entry
                continue

            children = self._list_dir(relative_path)
            if children is None:
                yield WalkEntry(relative_path, EntryKind.DIRECTORY, error=self.errors[-1].error)
                continue
            yield entry
            stack.append((relative_path, list(reversed(children))))

    def __iter__(self) -> Iterator[WalkEntry]:
        return self.walk()


def walk_tree(
    root: Path,
    path_filter: Optional[PathFilter] = None,
) -> tuple[list[WalkEntry], list[ScanError]]:
    """Walk a tree eagerly, returning its entries and any per-entry errors."""
    walker = TreeWalker(root, path_filter)
    entries = list(walker.walk())
    return entries, walker.errors
