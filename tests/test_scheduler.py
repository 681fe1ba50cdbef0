"""
Tests for BackupScheduler, the activity log and the cron template
"""

from datetime import datetime, timezone

import pytest

from backup import layout
from backup.errors import SnapshotWriteError
from backup.models import BackupRunOutcome, RunState
from backup.retention import RetentionManager
from backup.scheduler import ActivityLog, BackupScheduler, _next_run, generate_cron_config
from backup.snapshot_writer import SnapshotWriter


FIXED_UTC = datetime(2025, 1, 20, 2, 0, 5, tzinfo=timezone.utc)


class ExplodingStore:
    """Raises something the extractor does not treat as a table failure."""

    def select_page(self, table, offset, limit):
        raise RuntimeError("connection pool exhausted")


class FailingRetention:
    def __init__(self):
        self.calls = 0

    def enforce_retention(self, policy):
        self.calls += 1
        raise OSError("read-only file system")


class RecordingRetention(RetentionManager):
    def __init__(self, backup_root):
        super().__init__(backup_root)
        self.calls = 0

    def enforce_retention(self, policy):
        self.calls += 1
        return super().enforce_retention(policy)


@pytest.fixture
def seeded_store(store):
    store.seed("patients", 12)
    store.seed("appointments", 1500)
    store.seed("bills", 3)
    return store


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def make_scheduler(backup_config, clock, notifications):
    def factory(store, **overrides):
        kwargs = dict(
            source_identifier="https://crm.example.co",
            writer=SnapshotWriter(backup_config.backup_root, "https://crm.example.co", clock=clock),
            activity_log=ActivityLog(backup_config.activity_log_path, clock=lambda: FIXED_UTC),
            notify=notifications.append,
        )
        kwargs.update(overrides)
        return BackupScheduler(store, backup_config, **kwargs)
    return factory


class TestRunScheduledBackup:

    def test_successful_run(self, seeded_store, make_scheduler, notifications):
        scheduler = make_scheduler(seeded_store)

        outcome = scheduler.run_scheduled_backup("daily")

        assert outcome.success
        assert outcome.state is RunState.DONE
        assert scheduler.state is RunState.DONE
        assert outcome.label == "daily"
        assert outcome.snapshot.total_records == 1515
        assert outcome.snapshot.failed_tables == []
        assert notifications == []

    def test_table_failure_is_isolated(self, seeded_store, make_scheduler, notifications):
        seeded_store.fail("select_page", "appointments", on_call=2)

        outcome = make_scheduler(seeded_store).run_scheduled_backup()

        assert outcome.success
        assert outcome.snapshot.failed_tables == ["appointments"]
        assert outcome.snapshot.total_records == 15
        assert not (outcome.snapshot.directory / "appointments.json").exists()
        assert (outcome.snapshot.directory / "bills.json").exists()
        assert notifications == []

    def test_every_table_failing_still_writes_snapshot(self, store, make_scheduler):
        outcome = make_scheduler(store).run_scheduled_backup()

        assert outcome.success
        assert outcome.snapshot.failed_tables == ["patients", "appointments", "bills"]
        assert outcome.snapshot.total_records == 0

    def test_unexpected_error_fails_run_without_raising(self, make_scheduler, notifications):
        scheduler = make_scheduler(ExplodingStore())

        outcome = scheduler.run_scheduled_backup("weekly")

        assert not outcome.success
        assert outcome.state is RunState.FAILED
        assert scheduler.state is RunState.FAILED
        assert "connection pool exhausted" in outcome.error
        assert notifications == [outcome]

    def test_write_failure_fails_run(self, seeded_store, make_scheduler, backup_root, notifications):
        # The first clock tick collides with an existing directory
        (backup_root / "backup_2025-01-20_02-00-00").mkdir(parents=True)

        outcome = make_scheduler(seeded_store).run_scheduled_backup()

        assert not outcome.success
        assert outcome.state is RunState.FAILED
        assert "Could not create backup directory" in outcome.error
        assert len(notifications) == 1

    def test_failed_run_skips_retention(self, make_scheduler, backup_root):
        retention = RecordingRetention(backup_root)

        make_scheduler(ExplodingStore(), retention=retention).run_scheduled_backup()

        assert retention.calls == 0

    def test_retention_runs_after_success(self, seeded_store, make_scheduler, backup_root):
        scheduler = make_scheduler(seeded_store)

        outcomes = [scheduler.run_scheduled_backup() for _ in range(5)]

        assert len(layout.list_snapshot_ids(backup_root)) == 3
        assert outcomes[3].removed == [outcomes[0].snapshot.id]
        assert outcomes[4].removed == [outcomes[1].snapshot.id]
        assert layout.read_latest_pointer(backup_root) == outcomes[4].snapshot.id

    def test_retention_failure_leaves_run_successful(self, seeded_store, make_scheduler):
        retention = FailingRetention()

        outcome = make_scheduler(seeded_store, retention=retention).run_scheduled_backup()

        assert retention.calls == 1
        assert outcome.success
        assert outcome.state is RunState.DONE
        assert outcome.removed == []

    def test_notification_hook_errors_are_contained(self, make_scheduler):
        def broken_hook(outcome):
            raise RuntimeError("smtp down")

        outcome = make_scheduler(ExplodingStore(), notify=broken_hook).run_scheduled_backup()

        assert outcome.state is RunState.FAILED

    def test_cancellation_fails_run(self, seeded_store, make_scheduler, notifications):
        scheduler = make_scheduler(seeded_store, should_continue=lambda: False)

        outcome = scheduler.run_scheduled_backup()

        assert not outcome.success
        assert "cancelled" in outcome.error
        assert seeded_store.calls == []
        assert len(notifications) == 1


class TestActivityLog:

    def test_success_and_failure_lines(self, seeded_store, make_scheduler, backup_config):
        scheduler = make_scheduler(seeded_store)
        success = scheduler.run_scheduled_backup()
        make_scheduler(ExplodingStore()).run_scheduled_backup()

        lines = backup_config.activity_log_path.read_text(encoding="utf-8").splitlines()

        assert lines == [
            f"[2025-01-20T02:00:05+00:00] SUCCESS - backed up 1515 records to {success.snapshot.directory}",
            "[2025-01-20T02:00:05+00:00] FAILED - connection pool exhausted",
        ]

    def test_write_failure_does_not_raise(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        log = ActivityLog(blocker / "backup-history.log")

        outcome = BackupRunOutcome(label="manual", success=False, state=RunState.FAILED, error="boom")

        assert log.append(outcome) is False

    def test_unwritable_log_does_not_fail_backup(self, seeded_store, make_scheduler, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("", encoding="utf-8")

        outcome = make_scheduler(
            seeded_store, activity_log=ActivityLog(blocker / "history.log")
        ).run_scheduled_backup()

        assert outcome.success


class TestCronTemplate:

    def test_next_run(self):
        after = datetime(2025, 1, 20, 12, 0)

        assert _next_run("0 2 * * *", after) == datetime(2025, 1, 21, 2, 0)
        assert _next_run("0 3 * * 0", after) == datetime(2025, 1, 26, 3, 0)
        assert _next_run("0 4 1 * *", after) == datetime(2025, 2, 1, 4, 0)

    def test_daily_active_others_commented(self, tmp_path):
        config = generate_cron_config(tmp_path, now=datetime(2025, 1, 20, 12, 0))

        lines = config.splitlines()
        assert f"0 2 * * * cd {tmp_path} && hospital-backup backup daily >> {tmp_path / 'logs' / 'cron.log'} 2>&1" in lines
        assert any(line.startswith("# 0 3 * * 0 cd ") and "backup weekly" in line for line in lines)
        assert any(line.startswith("# 0 4 1 * * cd ") and "backup monthly" in line for line in lines)
        assert "next run 2025-01-21 02:00" in config
        assert "next run 2025-01-26 03:00" in config
        assert "next run 2025-02-01 04:00" in config
