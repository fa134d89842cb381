"""Command-line interface for folder sync."""

import argparse
import logging
import sys
from pathlib import Path

from .applier import apply_operations
from .config import DEFAULT_STATE_FILENAME, SyncOptions, load_options
from .emitter import print_errors, print_operations, write_json
from .errors import FolderSyncError
from .filters import IGNORE, INCLUDE
from .priority import PRIORITY_CHOICES
from .sync import capture_reference, diff_against_state


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="folder-sync",
        description="Synchronize a target folder to a previously captured reference folder.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s capture /path/to/reference --state build.fss
  %(prog)s diff /path/to/target --state build.fss --json ops.json
  %(prog)s diff /path/to/target --state build.fss --apply-from /mnt/staged
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--state", "-s",
        type=Path,
        default=Path(DEFAULT_STATE_FILENAME),
        help=f"Path of the persisted reference state (default: {DEFAULT_STATE_FILENAME})"
    )
    common.add_argument(
        "--verbose", "-v",
        dest="verbosity",
        action="count",
        default=0,
        help="Increase verbosity (-v for progress details, -vv for per-file debug output)"
    )
    common.add_argument("--workers", "-j", type=int, help="Number of hashing workers")
    common.add_argument(
        "--exclude", "-x",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Ignore paths matching PATTERN (repeatable)"
    )
    common.add_argument(
        "--include",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Keep paths matching PATTERN even if an exclude matches (repeatable)"
    )
    common.add_argument("--config", "-c", type=Path, help="JSON file with scan options")
    common.add_argument(
        "--hash-cache",
        type=Path,
        help="SQLite database reusing digests of files whose size and mtime are unchanged"
    )
    common.add_argument(
        "--priority",
        choices=PRIORITY_CHOICES,
        help="Order in which files are hashed (default: walk order)"
    )
    common.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not show progress bars"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    capture = subparsers.add_parser(
        "capture", parents=[common], help="Snapshot a reference folder into the state file"
    )
    capture.add_argument("folder", type=Path, help="Reference folder to capture")

    diff = subparsers.add_parser(
        "diff", parents=[common], help="Diff a target folder against the state file"
    )
    diff.add_argument("folder", type=Path, help="Target folder to synchronize")
    diff.add_argument("--json", type=Path, help="Write operations to this JSON file")
    diff.add_argument(
        "--apply-from",
        type=Path,
        metavar="DIR",
        help="Apply the operations to the target, reading reference content from DIR"
    )

    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments."""
    if not args.folder.exists():
        print(f"Error: Folder does not exist: {args.folder}")
        sys.exit(1)
    if not args.folder.is_dir():
        print(f"Error: Folder is not a directory: {args.folder}")
        sys.exit(1)
    if args.command == "diff" and not args.state.exists():
        print(f"Error: State file does not exist: {args.state}")
        print("Capture a reference first with: folder-sync capture <reference> --state <file>")
        sys.exit(1)
    apply_from = getattr(args, "apply_from", None)
    if apply_from is not None and not apply_from.is_dir():
        print(f"Error: Reference content folder is not a directory: {apply_from}")
        sys.exit(1)


def configure_logging(verbosity: int) -> None:
    """Route library logging to stderr at a level set by -v flags."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(name)s: %(message)s")


def build_options(args: argparse.Namespace) -> SyncOptions:
    """Merge the config file (if any) with command-line overrides."""
    options = load_options(args.config) if args.config else SyncOptions()
    if args.workers is not None:
        options.workers = args.workers
    if args.hash_cache is not None:
        options.hash_cache = args.hash_cache
    if args.priority is not None:
        options.priority = args.priority
    for pattern in args.exclude:
        options.exclude[pattern] = IGNORE
    for pattern in args.include:
        options.exclude[pattern] = INCLUDE
    options.show_progress = not args.no_progress
    # Re-run validation on the merged values
    return SyncOptions(**vars(options))


def run_capture(args: argparse.Namespace, options: SyncOptions) -> int:
    """Capture the reference folder. Returns the exit status."""
    print(f"Capturing reference: {args.folder.absolute()}")
    result = capture_reference(args.folder.absolute(), args.state, options)
    print(f"Saved {len(result.snapshot)} entries to {args.state}")
    if result.errors:
        print_errors(result.errors)
        print("Warning: a diff against this state will fail until these entries are readable.")
        return 1
    return 0


def run_diff(args: argparse.Namespace, options: SyncOptions) -> int:
    """Diff the target folder against the state file. Returns the exit status."""
    target = args.folder.absolute()
    plan = diff_against_state(target, args.state, options)

    if args.json:
        write_json(plan, args.json)
        print(f"Wrote {len(plan.operations)} operations to {args.json}")
    else:
        print_operations(plan.operations, verbose=args.verbosity >= 1)
        if plan.in_sync and args.verbosity >= 1:
            print("Target is in sync with the reference.")

    print_errors(plan.errors)
    status = 0 if plan.ok else 1

    if args.apply_from is not None and plan.operations:
        errors = apply_operations(
            plan.operations,
            target,
            args.apply_from.absolute(),
            show_progress=options.show_progress,
        )
        if errors:
            print(f"\n--- Apply Errors ({len(errors)} operations failed) ---")
            for error in errors[:10]:
                print(f"  {error.operation.op} {error.relative_path}")
                print(f"    {error.error}")
            if len(errors) > 10:
                print(f"  ... and {len(errors) - 10} more errors")
            status = 1
        else:
            print(f"Applied {len(plan.operations)} operations.")

    return status


def main() -> None:
    """Main entry point."""
    args = parse_args()
    configure_logging(args.verbosity)
    validate_args(args)

    try:
        options = build_options(args)
        if args.command == "capture":
            status = run_capture(args, options)
        else:
            status = run_diff(args, options)
    except FolderSyncError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted! The run was aborted before completing.")
        sys.exit(1)

    if status:
        sys.exit(status)
