"""Entry points for the two phases of a sync.

Capturing the reference and diffing a target against it are independent
calls. They share nothing but the state file.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from . import state
from .config import SyncOptions
from .differ import diff
from .errors import UnreadableReferenceError
from .models import REFERENCE_LABEL, TARGET_LABEL, Operation, ScanError, Snapshot
from .priority import PriorityScorer
from .scanner import ScanResult, scan_tree

_log = logging.getLogger(__name__)

_log_info = _log.info
_log_warn = _log.warning


CaptureResult = ScanResult


@dataclass
class SyncPlan:
    """Ordered operations for a target plus the entries that could not be read."""
    operations: list[Operation]
    errors: list[ScanError] = field(default_factory=list)
    reference: Optional[Snapshot] = None
    target: Optional[Snapshot] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def in_sync(self) -> bool:
        return self.ok and not self.operations


def capture_reference(
    reference_root: Path,
    state_path: Path,
    options: Optional[SyncOptions] = None,
    *,
    scorer: Optional[PriorityScorer] = None,
) -> CaptureResult:
    """
    Snapshot the reference tree and persist it to ``state_path``.

    Unreadable entries are saved as such and reported in the result; a
    later diff against this state refuses to run until they are fixed.
    """
    result = scan_tree(reference_root, REFERENCE_LABEL, options, scorer=scorer)
    if result.errors:
        _log_warn("%d reference entries could not be read", len(result.errors))
    state.save(result.snapshot, state_path)
    _log_info("Captured %d reference entries from %s", len(result.snapshot), reference_root)
    return result


def diff_against_state(
    target_root: Path,
    state_path: Path,
    options: Optional[SyncOptions] = None,
    *,
    scorer: Optional[PriorityScorer] = None,
) -> SyncPlan:
    """
    Diff the target tree against the reference snapshot stored in ``state_path``.

    The state is loaded and verified before the target is scanned, so a
    corrupt or unsupported state file, or one with unreadable reference
    entries, aborts without any hashing work.
    """
    reference = state.load(state_path)
    unreadable = reference.unreadable()
    if unreadable:
        raise UnreadableReferenceError([record.relative_path for record in unreadable])
    scan = scan_tree(target_root, TARGET_LABEL, options, scorer=scorer)
    operations = diff(reference, scan.snapshot)
    return SyncPlan(operations, scan.errors, reference, scan.snapshot)
