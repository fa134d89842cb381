"""Rendering of sync plans as text or JSON."""

import json
from collections import Counter
from pathlib import Path

from .models import (
    CopyOrUpdate,
    CreateDirectory,
    Delete,
    EntryKind,
    Move,
    Operation,
    ScanError,
    SourceOrigin,
)
from .sync import SyncPlan


def format_operation(op: Operation, verbose: bool = False) -> str:
    """Format one operation as a single line."""
    if isinstance(op, CreateDirectory):
        return f"mkdir  `{op.path}`"
    if isinstance(op, Move):
        line = f"move   `{op.from_path}` -> `{op.to_path}`"
        if verbose and op.digest:
            line += f"  [{op.digest[:16]}]"
        return line
    if isinstance(op, CopyOrUpdate):
        if op.source.origin is SourceOrigin.TARGET:
            line = f"copy   `{op.destination_path}` (from target `{op.source.path}`)"
        else:
            line = f"copy   `{op.destination_path}` (from reference)"
        if verbose and op.source.digest:
            line += f"  [{op.source.digest[:16]}]"
        return line
    if isinstance(op, Delete):
        suffix = "/" if op.kind is EntryKind.DIRECTORY else ""
        return f"delete `{op.path}{suffix}`"
    raise TypeError(f"Unknown operation: {op!r}")


def summarize(operations: list[Operation]) -> dict[str, int]:
    """Count operations by type."""
    counts = Counter(op.op for op in operations)
    return {
        name: counts.get(name, 0)
        for name in (CreateDirectory.op, CopyOrUpdate.op, Move.op, Delete.op)
    }


def print_operations(operations: list[Operation], verbose: bool = False) -> None:
    """Print operations in order, with a summary when verbose."""
    if verbose:
        print("-" * 40)
    for op in operations:
        print(format_operation(op, verbose))
    if verbose:
        print("-" * 40)
        counts = summarize(operations)
        print(
            f"{len(operations)} operations: "
            f"{counts['create_directory']} mkdir, {counts['copy_or_update']} copy, "
            f"{counts['move']} move, {counts['delete']} delete"
        )


def print_errors(errors: list[ScanError], limit: int = 10) -> None:
    """Print unreadable entries, showing at most ``limit`` of them."""
    if not errors:
        return
    print(f"\n--- Unreadable entries ({len(errors)}) ---")
    for error in errors[:limit]:
        print(f"  {error.relative_path}")
        print(f"    {error.error}")
    if len(errors) > limit:
        print(f"  ... and {len(errors) - limit} more errors")
    print("-" * 20)


def plan_to_dict(plan: SyncPlan) -> dict:
    return {
        "operations": [op.to_dict() for op in plan.operations],
        "errors": [error.to_dict() for error in plan.errors],
        "summary": summarize(plan.operations),
    }


def write_json(plan: SyncPlan, path: Path) -> Path:
    """Write the plan as indented JSON to ``path``."""
    path = Path(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(plan_to_dict(plan), fh, indent=2)
        fh.write("\n")
    return path
