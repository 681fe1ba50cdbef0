"""
Destructive restore of a snapshot into the live database.

For every table recorded as successfully backed up, the restore:
1. Loads <table>.json from the snapshot
2. Deletes all rows of the live table
3. Inserts the snapshot rows in fixed-size batches

Invariants:
    - Nothing is deleted or inserted unless confirmed=True
    - A table failure never stops the other tables
    - A failed delete is logged and insertion still proceeds, so the table
      may end up holding old and restored rows together
    - A failed batch stops that table at the last successful batch boundary
    - There is no transaction: partial restores are not rolled back
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from backup import layout
from backup.errors import InvalidSelectionError, SnapshotMetadataError, SnapshotNotFoundError
from backup.models import RestoreOutcome, RestoreStatus, SnapshotMetadata, TableRestoreOutcome
from backup.prompts import SelectionProvider
from config import DEFAULT_RESTORE_BATCH_SIZE
from datastore import DataStoreError

logger = logging.getLogger(__name__)


class Restorer:
    """
    Lists, inspects and restores snapshots.

    Example:
        >>> restorer = Restorer(store, Path("backups"))
        >>> outcome = restorer.restore(restorer.list_snapshots()[0], confirmed=True)
        >>> outcome.total_restored
        1234
    """

    def __init__(self, store, backup_root: Path, batch_size: int = DEFAULT_RESTORE_BATCH_SIZE):
        """
        Args:
            store: Data store exposing delete_all(table) and insert(table, rows)
            backup_root: Directory holding snapshot directories
            batch_size: Rows per insert request
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.backup_root = Path(backup_root)
        self.batch_size = batch_size

    def list_snapshots(self) -> list[str]:
        """Snapshot ids, most recent first."""
        return layout.list_snapshot_ids(self.backup_root, newest_first=True)

    def resolve_selection(self, selection: str, snapshot_ids: Optional[list[str]] = None) -> str:
        """
        Resolve "latest", a 1-based index into snapshot_ids, or an exact id.

        Raises:
            InvalidSelectionError: nothing matches the selection
        """
        if snapshot_ids is None:
            snapshot_ids = self.list_snapshots()
        if not snapshot_ids:
            raise InvalidSelectionError("No backups available")

        choice = (selection or "").strip()
        if choice.lower() == "latest":
            return snapshot_ids[0]
        if choice in snapshot_ids:
            return choice
        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(snapshot_ids):
                return snapshot_ids[index]
        raise InvalidSelectionError(f"Invalid selection: '{selection}'")

    def load_metadata(self, snapshot_id: str) -> SnapshotMetadata:
        """
        Read a snapshot's metadata.json.

        Raises:
            SnapshotNotFoundError: no such snapshot directory
            SnapshotMetadataError: metadata missing or unreadable
        """
        snapshot_dir = self._snapshot_dir(snapshot_id)
        path = snapshot_dir / layout.METADATA_FILE
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotMetadataError(f"Could not read metadata for {snapshot_id}: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotMetadataError(f"Metadata for {snapshot_id} is not a JSON object")
        try:
            return SnapshotMetadata.from_dict(snapshot_id, data)
        except (TypeError, ValueError, AttributeError) as e:
            raise SnapshotMetadataError(f"Malformed metadata for {snapshot_id}: {e}") from e

    def _snapshot_dir(self, snapshot_id: str) -> Path:
        if not layout.is_snapshot_name(snapshot_id):
            raise SnapshotNotFoundError(f"'{snapshot_id}' is not a backup id")
        snapshot_dir = self.backup_root / snapshot_id
        if not snapshot_dir.is_dir():
            raise SnapshotNotFoundError(f"Backup {snapshot_id} not found in {self.backup_root}")
        return snapshot_dir

    def restore(self, snapshot_id: str, confirmed: bool = False) -> RestoreOutcome:
        """
        Replace live table contents with the snapshot's data.

        Never raises for table-level failures; the returned outcome carries
        per-table results and the aggregate counts.
        """
        if confirmed is not True:
            logger.warning(f"Restore of {snapshot_id} not confirmed - no data touched")
            return RestoreOutcome(status=RestoreStatus.NOT_CONFIRMED, snapshot_id=snapshot_id)

        try:
            metadata = self.load_metadata(snapshot_id)
        except SnapshotNotFoundError as e:
            logger.error(f"[ERROR] {e}")
            return RestoreOutcome(status=RestoreStatus.SNAPSHOT_NOT_FOUND, snapshot_id=snapshot_id, error=str(e))
        except SnapshotMetadataError as e:
            logger.error(f"[ERROR] {e}")
            return RestoreOutcome(status=RestoreStatus.METADATA_UNAVAILABLE, snapshot_id=snapshot_id, error=str(e))

        snapshot_dir = self.backup_root / snapshot_id
        logger.info(f"Starting restore from {snapshot_id}...")

        outcome = RestoreOutcome(status=RestoreStatus.COMPLETED, snapshot_id=snapshot_id)
        for table_name, backup_info in metadata.tables.items():
            if not backup_info.success:
                logger.info(f"Skipping {table_name} (not captured in this backup)")
                continue
            outcome.tables[table_name] = self._restore_table(snapshot_dir, table_name)

        logger.info(
            f"[OK] Restore completed: {outcome.total_restored} records restored, "
            f"{outcome.failed_table_count} failed table(s)"
        )
        return outcome

    def _load_rows(self, snapshot_dir: Path, table_name: str) -> list[dict[str, Any]]:
        path = layout.table_file(snapshot_dir, table_name)
        with open(path, 'r', encoding='utf-8') as f:
            rows = json.load(f)
        if not isinstance(rows, list):
            raise ValueError(f"{path.name} does not contain a list of rows")
        return rows

    def _restore_table(self, snapshot_dir: Path, table_name: str) -> TableRestoreOutcome:
        logger.info(f"Restoring {table_name}...")

        try:
            rows = self._load_rows(snapshot_dir, table_name)
        except (OSError, ValueError) as e:
            logger.error(f"[ERROR] Error loading {table_name}: {e}")
            return TableRestoreOutcome(success=False, inserted_count=0, error_message=str(e))

        delete_warning = None
        try:
            self.store.delete_all(table_name)
        except DataStoreError as e:
            # Insertion still proceeds; see module docstring
            delete_warning = str(e)
            logger.warning(f"   ⚠️  Could not clear {table_name}: {e}")

        inserted = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            try:
                self.store.insert(table_name, batch)
            except DataStoreError as e:
                logger.error(f"   [ERROR] Error inserting batch into {table_name}: {e}")
                return TableRestoreOutcome(
                    success=False,
                    inserted_count=inserted,
                    error_message=str(e),
                    delete_warning=delete_warning,
                )
            inserted += len(batch)
            logger.debug(f"   Restored {inserted}/{len(rows)} records...")

        logger.info(f"[OK] Restored {inserted} records to {table_name}")
        return TableRestoreOutcome(success=True, inserted_count=inserted, delete_warning=delete_warning)


def run_restore_session(restorer: Restorer, provider: SelectionProvider) -> RestoreOutcome:
    """
    Select, confirm and restore a snapshot.

    Every terminal state is returned as a RestoreOutcome status:
    NO_SNAPSHOTS, INVALID_SELECTION, METADATA_UNAVAILABLE, NOT_CONFIRMED
    or COMPLETED (possibly with failed tables).
    """
    snapshot_ids = restorer.list_snapshots()
    if not snapshot_ids:
        logger.error("[ERROR] No backups found")
        return RestoreOutcome(status=RestoreStatus.NO_SNAPSHOTS)

    selection = provider.choose_snapshot(snapshot_ids)
    try:
        snapshot_id = restorer.resolve_selection(selection, snapshot_ids)
    except InvalidSelectionError as e:
        logger.error(f"[ERROR] {e}")
        return RestoreOutcome(status=RestoreStatus.INVALID_SELECTION, error=str(e))

    try:
        metadata = restorer.load_metadata(snapshot_id)
    except (SnapshotNotFoundError, SnapshotMetadataError) as e:
        logger.error(f"[ERROR] Could not read backup metadata: {e}")
        return RestoreOutcome(status=RestoreStatus.METADATA_UNAVAILABLE, snapshot_id=snapshot_id, error=str(e))

    if not provider.confirm_restore(metadata):
        logger.info("Restore cancelled")
        return RestoreOutcome(status=RestoreStatus.NOT_CONFIRMED, snapshot_id=snapshot_id)

    return restorer.restore(snapshot_id, confirmed=True)
