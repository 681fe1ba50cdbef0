"""
Run-level failures of the backup engine.

Table, page and batch failures never raise; they are recorded as outcome
data. These exceptions cover the cases where a run cannot continue at all.
"""


class BackupError(RuntimeError):
    """Base exception for backup engine failures."""


class SnapshotWriteError(BackupError):
    """The snapshot directory or its metadata could not be written."""


class SnapshotNotFoundError(BackupError):
    """No snapshot directory exists for the requested id."""


class SnapshotMetadataError(BackupError):
    """A snapshot's metadata.json is missing or unreadable."""


class InvalidSelectionError(BackupError):
    """A snapshot selection did not match any available snapshot."""


class BackupCancelled(BackupError):
    """A cooperative cancellation check stopped the run between tables."""
