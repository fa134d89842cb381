"""Apply an operation list to a local target tree."""

import contextlib
import logging
import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .hasher import compute_file_hash, long_path
from .models import (
    CopyOrUpdate,
    CreateDirectory,
    Delete,
    EntryKind,
    Move,
    Operation,
    SourceOrigin,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning


class ApplyError:
    """Record of an operation that failed to apply."""

    def __init__(self, operation: Operation, error: str):
        self.operation = operation
        self.error = error

    @property
    def relative_path(self) -> str:
        return self.operation.path

    def __repr__(self) -> str:
        return f"ApplyError({self.operation.op} {self.relative_path!r}: {self.error})"


def copy_file(src: Path, dst: Path) -> None:
    """Copy a file over ``dst``, replacing it atomically."""
    dst_long = long_path(dst)
    fd, tmp = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=os.path.dirname(dst_long))
    os.close(fd)
    try:
        shutil.copy2(long_path(src), tmp)
        os.replace(tmp, dst_long)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


def _source_path(
    op: CopyOrUpdate,
    target_root: Path,
    reference_root: Optional[Path],
) -> Path:
    if op.source.origin is SourceOrigin.TARGET:
        return target_root / op.source.path
    if reference_root is None:
        raise FileNotFoundError(
            f"reference content needed for '{op.destination_path}' but no reference root given"
        )
    return reference_root / op.source.path


def apply_operation(
    op: Operation,
    target_root: Path,
    reference_root: Optional[Path] = None,
    verify: bool = True,
) -> None:
    """Apply one operation; raises OSError on failure."""
    if isinstance(op, CreateDirectory):
        os.makedirs(long_path(target_root / op.path), exist_ok=True)
    elif isinstance(op, CopyOrUpdate):
        src = _source_path(op, target_root, reference_root)
        dst = target_root / op.destination_path
        if verify and op.source.digest is not None:
            actual = compute_file_hash(src)
            if actual != op.source.digest:
                raise OSError(
                    f"source {src} has digest {actual}, expected {op.source.digest}"
                )
        copy_file(src, dst)
    elif isinstance(op, Move):
        src = target_root / op.from_path
        dst = target_root / op.to_path
        if verify and op.digest is not None:
            actual = compute_file_hash(src)
            if actual != op.digest:
                raise OSError(f"{src} has digest {actual}, expected {op.digest}")
        os.replace(long_path(src), long_path(dst))
    elif isinstance(op, Delete):
        path = long_path(target_root / op.path)
        if op.kind is EntryKind.DIRECTORY:
            os.rmdir(path)
        else:
            os.unlink(path)
    else:
        raise TypeError(f"Unknown operation: {op!r}")


def apply_operations(
    operations: Sequence[Operation],
    target_root: Path,
    reference_root: Optional[Path] = None,
    *,
    verify: bool = True,
    show_progress: bool = False,
) -> list[ApplyError]:
    """
    Apply operations in order against ``target_root``.

    Reference-sourced copies read from ``reference_root``. With ``verify``
    set, the bytes of each copy and move source are hashed and checked
    against the expected digest first. Failures are collected and the
    remaining operations are still attempted.
    """
    target_root = Path(target_root)
    reference_root = Path(reference_root) if reference_root is not None else None
    errors = []

    with tqdm(operations, desc="Applying", unit="op", disable=not show_progress) as pbar:
        for op in pbar:
            try:
                apply_operation(op, target_root, reference_root, verify)
                _log_debug("Applied %s '%s'", op.op, op.path)
            except OSError as e:
                _log_warn("Failed to apply %s '%s': %s", op.op, op.path, e)
                errors.append(ApplyError(op, str(e)))

    return errors
