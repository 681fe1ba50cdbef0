"""
On-disk snapshot layout.

    <backup root>/
        backup_2025-01-20_02-00-00/
            patients.json
            ...
            metadata.json
            backup-report.md
        latest -> backup_2025-01-20_02-00-00   (symlink, or a pointer file)

Snapshot ids are the directory names; the timestamp format makes
lexicographic order equal to chronological order.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "backup_"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
SNAPSHOT_NAME_RE = re.compile(r"^backup_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}$")

LATEST_POINTER = "latest"
METADATA_FILE = "metadata.json"
REPORT_FILE = "backup-report.md"


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def snapshot_id_for(moment: datetime) -> str:
    return f"{SNAPSHOT_PREFIX}{format_timestamp(moment)}"


def is_snapshot_name(name: str) -> bool:
    return bool(SNAPSHOT_NAME_RE.match(name))


def table_file(snapshot_dir: Path, table_name: str) -> Path:
    """
    Path of a table's JSON file inside a snapshot.

    Raises:
        ValueError: the name is empty, a dot segment or contains a path separator
    """
    if not table_name or table_name in (".", "..") or "/" in table_name or "\\" in table_name:
        raise ValueError(f"Invalid table name: '{table_name}'")
    return snapshot_dir / f"{table_name}.json"


def list_snapshot_ids(backup_root: Path, newest_first: bool = False) -> list[str]:
    """
    List snapshot directory names under the backup root.

    A missing root means no snapshots; any other listing error propagates.
    """
    if not backup_root.exists():
        return []
    ids = [
        entry.name
        for entry in backup_root.iterdir()
        if is_snapshot_name(entry.name) and entry.is_dir() and not entry.is_symlink()
    ]
    return sorted(ids, reverse=newest_first)


def read_latest_pointer(backup_root: Path) -> Optional[str]:
    """Resolve the `latest` pointer (symlink or pointer file) to a snapshot id."""
    pointer = backup_root / LATEST_POINTER
    try:
        if pointer.is_symlink():
            name = Path(pointer.readlink()).name
        elif pointer.is_file():
            name = pointer.read_text(encoding="utf-8").strip()
        else:
            return None
    except OSError as e:
        logger.warning(f"Could not read latest pointer {pointer}: {e}")
        return None
    return name if is_snapshot_name(name) else None


def directory_size(path: Path) -> int:
    """Total size in bytes of the regular files directly inside a directory."""
    total = 0
    for entry in path.iterdir():
        if entry.is_file():
            total += entry.stat().st_size
    return total
