"""
Data model for snapshots, retention and restore outcomes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


@dataclass
class TableExtractionResult:
    """
    Rows read from one table.

    rows is None when extraction failed (error is then populated); an empty
    table yields an empty list.
    """
    table_name: str
    rows: Optional[list[dict[str, Any]]]
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.rows is not None


@dataclass(frozen=True)
class TableBackupOutcome:
    """Recorded success/failure and record count for one table in one snapshot."""
    success: bool
    record_count: int
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "recordCount": self.record_count}
        if self.error_message:
            data["error"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'TableBackupOutcome':
        return cls(
            success=bool(data.get("success")),
            record_count=int(data.get("recordCount", 0)),
            error_message=data.get("error"),
        )


def total_records(tables: dict[str, TableBackupOutcome]) -> int:
    """Sum of record counts over successfully backed-up tables."""
    return sum(outcome.record_count for outcome in tables.values() if outcome.success)


@dataclass
class Snapshot:
    """One complete, timestamped backup of all configured tables."""
    id: str
    directory: Path
    tables: dict[str, TableBackupOutcome]
    total_records: int
    created_at: datetime

    @property
    def failed_tables(self) -> list[str]:
        return [name for name, outcome in self.tables.items() if not outcome.success]


@dataclass
class SnapshotMetadata:
    """Parsed contents of a snapshot's metadata.json."""
    snapshot_id: str
    timestamp: str
    date: str
    source_identifier: Optional[str]
    tables: dict[str, TableBackupOutcome]
    total_records: int
    version: str
    label: Optional[str] = None

    @classmethod
    def from_dict(cls, snapshot_id: str, data: dict[str, Any]) -> 'SnapshotMetadata':
        tables = {
            name: TableBackupOutcome.from_dict(info)
            for name, info in (data.get("tables") or {}).items()
        }
        return cls(
            snapshot_id=snapshot_id,
            timestamp=data.get("timestamp", ""),
            date=data.get("date", ""),
            source_identifier=data.get("sourceIdentifier"),
            tables=tables,
            total_records=int(data.get("totalRecords", total_records(tables))),
            version=data.get("version", ""),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep only the max_snapshots most recent snapshots."""
    max_snapshots: int

    def __post_init__(self):
        if self.max_snapshots < 1:
            raise ValueError(f"max_snapshots must be at least 1, got {self.max_snapshots}")


@dataclass
class TableRestoreOutcome:
    success: bool
    inserted_count: int
    error_message: Optional[str] = None
    # Set when the delete-all step failed but insertion was still attempted
    delete_warning: Optional[str] = None


class RestoreStatus(Enum):
    """Terminal states of a restore request."""
    COMPLETED = "completed"
    NOT_CONFIRMED = "not_confirmed"
    NO_SNAPSHOTS = "no_snapshots"
    INVALID_SELECTION = "invalid_selection"
    SNAPSHOT_NOT_FOUND = "snapshot_not_found"
    METADATA_UNAVAILABLE = "metadata_unavailable"


@dataclass
class RestoreOutcome:
    status: RestoreStatus
    snapshot_id: Optional[str] = None
    tables: dict[str, TableRestoreOutcome] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status is RestoreStatus.COMPLETED

    @property
    def total_restored(self) -> int:
        return sum(outcome.inserted_count for outcome in self.tables.values() if outcome.success)

    @property
    def failed_table_count(self) -> int:
        return sum(1 for outcome in self.tables.values() if not outcome.success)


class RunState(Enum):
    """Progress of one scheduled backup run."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    WRITING = "writing"
    SUCCEEDED = "succeeded"
    PRUNING = "pruning"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BackupRunOutcome:
    label: str
    success: bool
    state: RunState
    snapshot: Optional[Snapshot] = None
    error: Optional[str] = None
    removed: list[str] = field(default_factory=list)
