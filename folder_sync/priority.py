"""Priority scoring of pending hash work.

Scores only change the order in which files are handed to the hashing pool.
They never affect digests or the resulting snapshot.
"""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Optional

from .models import FileCandidate, WalkEntry, file_extension, path_depth

_log = logging.getLogger(__name__)

_log_warn = _log.warning

#: Extension to asset family tags
ASSET_TYPES = {
    ".uasset": "unreal",
    ".umap": "unreal",
    ".pak": "archive",
    ".zip": "archive",
    ".psd": "image",
    ".exr": "image",
    ".fbx": "mesh",
    ".wav": "audio",
    ".mp4": "video",
}


def make_candidate(entry: WalkEntry) -> FileCandidate:
    """Build the scorer input for one walked file."""
    extension = file_extension(entry.relative_path)
    return FileCandidate(
        relative_path=entry.relative_path,
        size=entry.size or 0,
        depth=path_depth(entry.relative_path),
        extension=extension,
        asset_type=ASSET_TYPES.get(extension),
    )


class PriorityScorer(ABC):
    """Ranks pending hash work; higher scores are hashed first."""

    @abstractmethod
    def score(self, candidate: FileCandidate) -> float:
        """Return the priority of ``candidate``."""


class LargestFirstScorer(PriorityScorer):
    """
    Start long hashes first so the pool does not finish on one big file.

    Scores by log size, with a bonus for tagged asset types, which tend to
    be the large binary files in asset repositories.
    """

    def __init__(self, asset_bonus: float = 1.0):
        self.asset_bonus = asset_bonus

    def score(self, candidate: FileCandidate) -> float:
        value = math.log1p(candidate.size)
        if candidate.asset_type is not None:
            value += self.asset_bonus
        return value


def _safe_score(scorer: PriorityScorer, candidate: FileCandidate) -> float:
    try:
        value = float(scorer.score(candidate))
    except Exception as e:
        _log_warn("Priority scorer failed for '%s': %s", candidate.relative_path, e)
        return 0.0
    if not math.isfinite(value):
        _log_warn("Priority scorer returned %r for '%s'", value, candidate.relative_path)
        return 0.0
    return value


def prioritize(
    entries: Sequence[WalkEntry],
    scorer: Optional[PriorityScorer] = None,
) -> list[WalkEntry]:
    """
    Order file entries for dispatch.

    Without a scorer the input order is kept. With one, entries are sorted
    by descending score; the sort is stable so equal scores keep input order.
    """
    if scorer is None:
        return list(entries)
    scores = [_safe_score(scorer, make_candidate(entry)) for entry in entries]
    order = sorted(range(len(entries)), key=lambda i: -scores[i])
    return [entries[i] for i in order]


#: Names accepted by the ``priority`` option; "none" keeps walk order
PRIORITY_NONE = "none"
PRIORITY_LARGEST_FIRST = "largest-first"
PRIORITY_CHOICES = (PRIORITY_NONE, PRIORITY_LARGEST_FIRST)


def make_scorer(name: str) -> Optional[PriorityScorer]:
    """Build the stock scorer registered under ``name``."""
    if name == PRIORITY_LARGEST_FIRST:
        return LargestFirstScorer()
    if name == PRIORITY_NONE:
        return None
    raise ValueError(f"Unknown priority {name!r} (expected one of: {', '.join(PRIORITY_CHOICES)})")
