"""Exclusion predicate built from {pattern: action} rules."""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath

from .errors import ConfigError

IGNORE = "ignore"
INCLUDE = "include"
ACTIONS = (IGNORE, INCLUDE)

DEFAULT_EXCLUDES = {
    ".git": IGNORE,
    ".hg": IGNORE,
    ".svn": IGNORE,
}


def _normalize_pattern(pattern: str) -> str:
    normalized = pattern.strip().replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _match_pattern(path: str, pattern: str, is_dir: bool) -> bool:
    if pattern.endswith("/"):
        # Directory-only pattern
        if not is_dir:
            return False
        pattern = pattern.rstrip("/")
    if not pattern:
        return False
    path_obj = PurePosixPath(path)
    # Relative patterns match from the right, so "name" matches at any depth.
    if pattern.startswith("/"):
        return path_obj.match(pattern.lstrip("/")) and len(path_obj.parts) == len(
            PurePosixPath(pattern.lstrip("/")).parts
        )
    return path_obj.match(pattern)


@dataclass(frozen=True)
class PathFilter:
    """Decides which walked paths are excluded."""
    ignore_patterns: tuple[str, ...] = ()
    include_patterns: tuple[str, ...] = ()

    def excludes(self, path: str, is_dir: bool = False) -> bool:
        if not any(_match_pattern(path, p, is_dir) for p in self.ignore_patterns):
            return False
        return not any(_match_pattern(path, p, is_dir) for p in self.include_patterns)


def build_path_filter(rules: Mapping[str, str] | None = None) -> PathFilter:
    """
    Build a PathFilter from a {pattern: action} mapping.

    Actions are "ignore" (prune the match and its subtree) and "include"
    (keep a path an ignore pattern would otherwise prune). Patterns ending
    in "/" only match directories; a leading "/" anchors the pattern at the
    tree root.
    """
    ignore = []
    include = []
    for pattern, action in (rules or {}).items():
        norm = _normalize_pattern(pattern)
        if not norm:
            continue
        action_value = str(action).strip().lower()
        if action_value == IGNORE:
            ignore.append(norm)
        elif action_value == INCLUDE:
            include.append(norm)
        else:
            raise ConfigError(
                f"Unknown action {action!r} for pattern {pattern!r} "
                f"(expected one of: {', '.join(ACTIONS)})"
            )
    return PathFilter(ignore_patterns=tuple(ignore), include_patterns=tuple(include))
