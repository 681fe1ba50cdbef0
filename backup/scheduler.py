"""
Scheduled backup runs.

One run: extract every configured table, write the snapshot, append a line
to the activity log, raise the failure notification if needed and, only
after a successful backup, prune old snapshots.

    IDLE -> EXTRACTING -> WRITING -> SUCCEEDED -> PRUNING -> DONE
                    \\            \\
                     +-> FAILED    +-> FAILED

run_scheduled_backup() never raises: a cron job always gets a terminal
BackupRunOutcome. Pruning failures leave the run successful.

Usage (crontab):
    0 2 * * * cd /opt/hospital-backup && hospital-backup backup daily
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from backup.extractor import extract_tables
from backup.models import BackupRunOutcome, RetentionPolicy, RunState
from backup.retention import RetentionManager
from backup.snapshot_writer import SnapshotWriter
from config import BACKUP_SCHEDULES, BackupConfig

logger = logging.getLogger(__name__)

NotificationHook = Callable[[BackupRunOutcome], None]


def log_failure_alert(outcome: BackupRunOutcome) -> None:
    """Default notification hook: a CRITICAL log record for failed runs."""
    logger.critical(
        f"🚨 BACKUP FAILED ({outcome.label}) - Manual intervention required! {outcome.error}"
    )


class ActivityLog:
    """Append-only history of scheduled runs, one line per run."""

    def __init__(self, path: Path, clock: Optional[Callable[[], datetime]] = None):
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def format_entry(self, outcome: BackupRunOutcome) -> str:
        timestamp = self._clock().isoformat()
        if outcome.success and outcome.snapshot is not None:
            return (
                f"[{timestamp}] SUCCESS - backed up {outcome.snapshot.total_records} records "
                f"to {outcome.snapshot.directory}\n"
            )
        return f"[{timestamp}] FAILED - {outcome.error}\n"

    def append(self, outcome: BackupRunOutcome) -> bool:
        """Append one entry; a write failure is logged and reported as False."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(self.format_entry(outcome))
        except OSError as e:
            logger.error(f"Error writing to activity log {self.path}: {e}")
            return False
        return True


class BackupScheduler:
    """
    Orchestrates one full backup cycle.

    Collaborators default to the filesystem implementations under
    config.backup_root and can be replaced individually.
    """

    def __init__(
        self,
        store,
        config: BackupConfig,
        source_identifier: Optional[str] = None,
        writer: Optional[SnapshotWriter] = None,
        retention: Optional[RetentionManager] = None,
        activity_log: Optional[ActivityLog] = None,
        notify: Optional[NotificationHook] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            store: Data store client shared with the extractor
            config: Tables, sizes, retention count and paths
            source_identifier: Recorded in snapshot metadata
            writer: Snapshot writer (default: writes under config.backup_root)
            retention: Retention manager (default: prunes config.backup_root)
            activity_log: Run history (default: config.activity_log_path)
            notify: Called with the outcome of failed runs (default: CRITICAL log)
            should_continue: Cooperative cancellation check between tables
        """
        self.store = store
        self.config = config
        self.writer = writer or SnapshotWriter(config.backup_root, source_identifier=source_identifier)
        self.retention = retention or RetentionManager(config.backup_root)
        self.activity_log = activity_log or ActivityLog(config.activity_log_path)
        self.notify = notify or log_failure_alert
        self.should_continue = should_continue
        self.state = RunState.IDLE

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Backup run: {self.state.value} -> {state.value}")
        self.state = state

    def run_scheduled_backup(self, label: str = "manual") -> BackupRunOutcome:
        """Run one backup cycle and return its terminal outcome."""
        logger.info("=" * 60)
        logger.info(f"Starting {label} backup at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 60)

        self.state = RunState.IDLE
        try:
            self._transition(RunState.EXTRACTING)
            results = extract_tables(
                self.store,
                self.config.tables,
                page_size=self.config.page_size,
                workers=self.config.extract_workers,
                should_continue=self.should_continue,
            )

            self._transition(RunState.WRITING)
            snapshot = self.writer.write_snapshot(results, label=label)
            self._transition(RunState.SUCCEEDED)
            outcome = BackupRunOutcome(label=label, success=True, state=RunState.SUCCEEDED, snapshot=snapshot)
        except Exception as e:
            logger.error(f"[ERROR] {label} backup failed during {self.state.value}: {e}", exc_info=True)
            self._transition(RunState.FAILED)
            outcome = BackupRunOutcome(label=label, success=False, state=RunState.FAILED, error=str(e))

        self.activity_log.append(outcome)

        if not outcome.success:
            self._notify(outcome)
            return outcome

        self._transition(RunState.PRUNING)
        try:
            outcome.removed = self.retention.enforce_retention(RetentionPolicy(self.config.max_snapshots))
        except Exception as e:
            logger.warning(f"⚠️  Retention cleanup failed, backup result unaffected: {e}", exc_info=True)

        self._transition(RunState.DONE)
        outcome.state = RunState.DONE
        logger.info(
            f"🏁 {label} backup completed: {outcome.snapshot.total_records} records "
            f"in {outcome.snapshot.directory}"
        )
        return outcome

    def _notify(self, outcome: BackupRunOutcome) -> None:
        try:
            self.notify(outcome)
        except Exception as e:
            logger.error(f"Backup failure notification hook raised: {e}", exc_info=True)


def _next_run(cron_expr: str, after: Optional[datetime] = None) -> datetime:
    """Compute the next run time for a cron expression using croniter."""
    from croniter import croniter
    base = after or datetime.now()
    return croniter(cron_expr, base).get_next(datetime)


def generate_cron_config(
    working_dir: Path,
    command: str = "hospital-backup",
    log_file: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> str:
    """Crontab lines for daily (active), weekly and monthly (commented) backups."""
    log_target = log_file or (Path(working_dir) / "logs" / "cron.log")
    descriptions = {
        'daily': "Daily backup at 2 AM",
        'weekly': "Weekly backup at 3 AM on Sunday (optional - for extra safety)",
        'monthly': "Monthly backup at 4 AM on the 1st (optional - for long-term archives)",
    }

    lines = [
        "# Hospital CRM Database Backup Schedule",
        "# Add these lines to your crontab (crontab -e)",
    ]
    for label, cron_expr in BACKUP_SCHEDULES.items():
        next_run = _next_run(cron_expr, now)
        entry = f"{cron_expr} cd {working_dir} && {command} backup {label} >> {log_target} 2>&1"
        lines += [
            "",
            f"# {descriptions[label]} - next run {next_run.strftime('%Y-%m-%d %H:%M')}",
            entry if label == 'daily' else f"# {entry}",
        ]
    return "\n".join(lines) + "\n"
