"""
Backup Engine Package
Snapshot, retention and restore pipeline for the hospital CRM database.

Components (leaf-first):
- extractor: paginated per-table reads from the data store
- snapshot_writer: timestamped snapshot directories with metadata and report
- retention: prunes snapshots beyond the configured maximum
- restorer: destructive table replace from a chosen snapshot
- scheduler: one full backup cycle with activity log and failure alert
"""

from .extractor import extract_table, extract_tables
from .models import (
    BackupRunOutcome,
    RestoreOutcome,
    RestoreStatus,
    RetentionPolicy,
    RunState,
    Snapshot,
    SnapshotMetadata,
    TableBackupOutcome,
    TableExtractionResult,
    TableRestoreOutcome,
)
from .restorer import Restorer, run_restore_session
from .retention import RetentionManager
from .scheduler import ActivityLog, BackupScheduler, generate_cron_config
from .snapshot_writer import SnapshotWriter

__all__ = [
    "extract_table",
    "extract_tables",
    "SnapshotWriter",
    "RetentionManager",
    "Restorer",
    "run_restore_session",
    "BackupScheduler",
    "ActivityLog",
    "generate_cron_config",
    "BackupRunOutcome",
    "RestoreOutcome",
    "RestoreStatus",
    "RetentionPolicy",
    "RunState",
    "Snapshot",
    "SnapshotMetadata",
    "TableBackupOutcome",
    "TableExtractionResult",
    "TableRestoreOutcome",
]
