"""Exception types raised by folder sync."""


class FolderSyncError(Exception):
    """Base class for folder sync errors."""


class IoError(FolderSyncError, OSError):
    """A tree root or state file could not be accessed."""


class InvalidTreeError(FolderSyncError):
    """Walk output violates snapshot invariants (duplicate or orphaned paths)."""


class StateError(FolderSyncError):
    """Base class for persisted state failures."""


class CorruptStateError(StateError):
    """The state file is damaged or is not a state file at all."""


class UnsupportedVersionError(StateError):
    """The state file was written by a newer, unsupported format version."""


class UnreadableReferenceError(FolderSyncError):
    """The reference snapshot has entries whose content could not be read."""

    def __init__(self, paths: list[str]):
        self.paths = list(paths)
        shown = ", ".join(self.paths[:5])
        more = f" (and {len(self.paths) - 5} more)" if len(self.paths) > 5 else ""
        super().__init__(
            f"Reference snapshot has {len(self.paths)} unreadable entries: {shown}{more}"
        )


class ConfigError(FolderSyncError):
    """Invalid options or configuration file."""
