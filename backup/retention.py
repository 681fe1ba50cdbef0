"""
Retention: keep only the most recent snapshots.

The directory listing is the retained set; nothing else is persisted.
"""

import logging
import shutil
from pathlib import Path

from backup import layout
from backup.models import RetentionPolicy

logger = logging.getLogger(__name__)


class RetentionManager:
    """Deletes the oldest snapshot directories beyond the configured maximum."""

    def __init__(self, backup_root: Path):
        self.backup_root = Path(backup_root)

    def enforce_retention(self, policy: RetentionPolicy) -> list[str]:
        """
        Remove the oldest snapshots so at most policy.max_snapshots remain.

        Each deletion is attempted independently; a directory that cannot
        be removed is logged and skipped.

        Returns:
            Ids of the snapshots actually removed, oldest first
        """
        snapshots = layout.list_snapshot_ids(self.backup_root)

        if len(snapshots) <= policy.max_snapshots:
            logger.info(
                f"Current backups ({len(snapshots)}) within limit ({policy.max_snapshots})"
            )
            return []

        to_remove = snapshots[:len(snapshots) - policy.max_snapshots]
        removed = []
        for snapshot_id in to_remove:
            try:
                shutil.rmtree(self.backup_root / snapshot_id)
            except OSError as e:
                logger.error(f"[ERROR] Could not remove old backup {snapshot_id}: {e}")
                continue
            removed.append(snapshot_id)
            logger.info(f"Removed old backup: {snapshot_id}")

        logger.info(f"[OK] Cleaned up {len(removed)} old backups")
        self._drop_dangling_latest()
        return removed

    def _drop_dangling_latest(self) -> None:
        pointer = self.backup_root / layout.LATEST_POINTER
        latest = layout.read_latest_pointer(self.backup_root)
        if latest is None or (self.backup_root / latest).is_dir():
            return
        try:
            pointer.unlink()
            logger.info(f"Removed latest pointer to deleted backup {latest}")
        except OSError as e:
            logger.warning(f"⚠️  Could not remove stale latest pointer: {e}")
