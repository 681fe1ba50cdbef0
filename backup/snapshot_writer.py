"""
Snapshot writer.

Turns per-table extraction results into a timestamp-named snapshot
directory: one JSON file per table, metadata.json, a markdown report and
the `latest` pointer at the backup root.

Invariants:
    - metadata totalRecords == sum of recordCount over successful tables
    - A table whose file could not be written is recorded as failed
    - Table files are kept when a later table fails; a run whose
      metadata.json cannot be written leaves no directory behind
    - Existing snapshot directories are never reused or modified
"""

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from backup import layout
from backup.errors import SnapshotWriteError
from backup.models import Snapshot, TableBackupOutcome, TableExtractionResult, total_records

logger = logging.getLogger(__name__)

METADATA_VERSION = "1.0.0"


class SnapshotWriter:
    """
    Persists one backup run as a snapshot directory.

    Example:
        >>> writer = SnapshotWriter(Path("backups"), source_identifier="https://x.supabase.co")
        >>> snapshot = writer.write_snapshot(results)
        >>> snapshot.total_records
        1234
    """

    def __init__(
        self,
        backup_root: Path,
        source_identifier: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            backup_root: Directory holding snapshot directories
            source_identifier: Identifies the source database in metadata
            clock: Returns the current local time (injectable for tests)
        """
        self.backup_root = Path(backup_root)
        self.source_identifier = source_identifier
        self._clock = clock or datetime.now

    def write_snapshot(self, results: list[TableExtractionResult], label: Optional[str] = None) -> Snapshot:
        """
        Write a new snapshot.

        Returns the Snapshot even when some tables failed; table failures
        are recorded in its outcomes.

        Raises:
            SnapshotWriteError: the directory or metadata.json could not be written
        """
        created_at = self._clock()
        snapshot_dir = self._create_directory(created_at)
        logger.info(f"Created backup directory: {snapshot_dir}")

        outcomes: dict[str, TableBackupOutcome] = {}
        for result in results:
            outcomes[result.table_name] = self._write_table(snapshot_dir, result)

        snapshot = Snapshot(
            id=snapshot_dir.name,
            directory=snapshot_dir,
            tables=outcomes,
            total_records=total_records(outcomes),
            created_at=created_at,
        )

        try:
            self._write_metadata(snapshot, label)
        except SnapshotWriteError:
            self._discard(snapshot_dir)
            raise
        self._write_report(snapshot)
        self.update_latest_pointer(snapshot_dir)

        failed = snapshot.failed_tables
        if failed:
            logger.warning(f"⚠️  Snapshot {snapshot.id} has {len(failed)} failed table(s): {', '.join(failed)}")
        logger.info(f"[OK] Snapshot {snapshot.id} written ({snapshot.total_records} records)")
        return snapshot

    def _create_directory(self, created_at: datetime) -> Path:
        snapshot_dir = self.backup_root / layout.snapshot_id_for(created_at)
        try:
            self.backup_root.mkdir(parents=True, exist_ok=True)
            # exist_ok=False: a snapshot directory is write-once
            snapshot_dir.mkdir()
        except OSError as e:
            raise SnapshotWriteError(f"Could not create backup directory {snapshot_dir}: {e}") from e
        return snapshot_dir

    def _discard(self, snapshot_dir: Path) -> None:
        """Remove a snapshot directory whose metadata never made it to disk."""
        try:
            shutil.rmtree(snapshot_dir)
        except OSError as e:
            logger.error(f"[ERROR] Could not remove incomplete backup {snapshot_dir}: {e}")
            return
        logger.info(f"Removed incomplete backup directory: {snapshot_dir}")

    def _write_table(self, snapshot_dir: Path, result: TableExtractionResult) -> TableBackupOutcome:
        if result.rows is None:
            return TableBackupOutcome(
                success=False,
                record_count=0,
                error_message=result.error or "extraction failed",
            )

        try:
            path = layout.table_file(snapshot_dir, result.table_name)
        except ValueError as e:
            logger.error(f"[ERROR] Not saving {result.table_name}: {e}")
            return TableBackupOutcome(success=False, record_count=0, error_message=str(e))

        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(result.rows, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[ERROR] Error saving {path.name}: {e}")
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Could not remove partial file {path}: {cleanup_error}")
            return TableBackupOutcome(success=False, record_count=0, error_message=str(e))

        logger.info(f"Saved {path.name} ({len(result.rows)} records)")
        return TableBackupOutcome(success=True, record_count=len(result.rows))

    def _write_metadata(self, snapshot: Snapshot, label: Optional[str]) -> None:
        metadata = {
            "timestamp": layout.format_timestamp(snapshot.created_at),
            "date": snapshot.created_at.astimezone().isoformat(),
            "sourceIdentifier": self.source_identifier,
            "tables": {name: outcome.to_dict() for name, outcome in snapshot.tables.items()},
            "totalRecords": snapshot.total_records,
            "version": METADATA_VERSION,
        }
        if label:
            metadata["label"] = label

        path = snapshot.directory / layout.METADATA_FILE
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise SnapshotWriteError(f"Could not write {path}: {e}") from e
        logger.info("Created backup metadata")

    def _write_report(self, snapshot: Snapshot) -> None:
        path = snapshot.directory / layout.REPORT_FILE
        try:
            path.write_text(render_report(snapshot), encoding='utf-8')
        except OSError as e:
            logger.warning(f"⚠️  Could not write backup report {path}: {e}")
            return
        logger.info("Created backup report")

    def update_latest_pointer(self, snapshot_dir: Path) -> bool:
        """
        Point `latest` at the given snapshot.

        Tries a relative symlink first; where links are not supported it
        writes a pointer file holding the snapshot id instead. Failure is
        logged and reported as False, never raised.
        """
        pointer = self.backup_root / layout.LATEST_POINTER
        try:
            if pointer.is_symlink() or pointer.is_file():
                pointer.unlink()
        except OSError as e:
            logger.warning(f"⚠️  Could not replace latest pointer {pointer}: {e}")
            return False

        try:
            os.symlink(snapshot_dir.name, pointer, target_is_directory=True)
            return True
        except (OSError, NotImplementedError) as e:
            logger.info(f"Symlink not available for latest pointer ({e}), writing pointer file")

        try:
            pointer.write_text(snapshot_dir.name + "\n", encoding='utf-8')
            return True
        except OSError as e:
            logger.warning(f"⚠️  Could not write latest pointer file {pointer}: {e}")
            return False


def _file_size(snapshot_dir: Path, table_name: str) -> str:
    try:
        path = layout.table_file(snapshot_dir, table_name)
        return f"{path.stat().st_size / 1024:.2f} KB"
    except (OSError, ValueError):
        return "unavailable"


def render_report(snapshot: Snapshot) -> str:
    """Human-readable markdown summary of a snapshot."""
    lines = [
        "# Hospital CRM Database Backup Report",
        "",
        f"**Date:** {snapshot.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Backup ID:** {snapshot.id}",
        f"**Total Records:** {snapshot.total_records}",
        "",
        "## Table Summary",
        "",
        "| Table | Status | Records | File Size |",
        "|-------|--------|---------|-----------|",
    ]

    for table_name, outcome in snapshot.tables.items():
        if outcome.success:
            size = _file_size(snapshot.directory, table_name)
            lines.append(f"| {table_name} | ✅ Success | {outcome.record_count} | {size} |")
        else:
            lines.append(f"| {table_name} | ❌ Failed | 0 | unavailable |")

    failed = [(name, o) for name, o in snapshot.tables.items() if not o.success]
    if failed:
        lines += ["", "## Failures", ""]
        for table_name, outcome in failed:
            lines.append(f"- **{table_name}**: {outcome.error_message}")

    return "\n".join(lines) + "\n"
