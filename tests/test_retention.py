"""
Tests for RetentionManager
"""

import shutil

import pytest

from backup import layout
from backup.models import RetentionPolicy
from backup.retention import RetentionManager
from backup.snapshot_writer import SnapshotWriter


def _make_snapshots(backup_root, clock, count):
    writer = SnapshotWriter(backup_root, clock=clock)
    return [writer.write_snapshot([]).id for _ in range(count)]


class TestEnforceRetention:

    @pytest.mark.parametrize("existing,limit", [(0, 3), (2, 3), (3, 3), (5, 3), (10, 1)])
    def test_converges_to_limit(self, backup_root, clock, existing, limit):
        ids = _make_snapshots(backup_root, clock, existing)

        removed = RetentionManager(backup_root).enforce_retention(RetentionPolicy(limit))

        remaining = layout.list_snapshot_ids(backup_root)
        assert len(remaining) == min(existing, limit)
        # Survivors are the newest; removals are the oldest, oldest first
        assert remaining == ids[len(ids) - len(remaining):]
        assert removed == ids[:len(ids) - len(remaining)]

    def test_idempotent(self, backup_root, clock):
        _make_snapshots(backup_root, clock, 6)
        manager = RetentionManager(backup_root)

        manager.enforce_retention(RetentionPolicy(4))
        after_first = layout.list_snapshot_ids(backup_root)
        removed_again = manager.enforce_retention(RetentionPolicy(4))

        assert removed_again == []
        assert layout.list_snapshot_ids(backup_root) == after_first

    def test_missing_root_is_empty(self, backup_root):
        assert RetentionManager(backup_root).enforce_retention(RetentionPolicy(3)) == []

    def test_ignores_unrelated_entries(self, backup_root, clock):
        _make_snapshots(backup_root, clock, 4)
        (backup_root / "notes").mkdir()
        (backup_root / "backup_manual_copy").mkdir()
        (backup_root / "README.txt").write_text("keep me", encoding="utf-8")

        RetentionManager(backup_root).enforce_retention(RetentionPolicy(2))

        assert (backup_root / "notes").is_dir()
        assert (backup_root / "backup_manual_copy").is_dir()
        assert (backup_root / "README.txt").exists()

    def test_deletion_failures_are_independent(self, backup_root, clock, monkeypatch):
        ids = _make_snapshots(backup_root, clock, 5)
        real_rmtree = shutil.rmtree

        def flaky_rmtree(path, *args, **kwargs):
            if path.name == ids[0]:
                raise PermissionError("in use")
            return real_rmtree(path, *args, **kwargs)

        monkeypatch.setattr("backup.retention.shutil.rmtree", flaky_rmtree)

        removed = RetentionManager(backup_root).enforce_retention(RetentionPolicy(2))

        assert removed == ids[1:3]
        assert layout.list_snapshot_ids(backup_root) == [ids[0], ids[3], ids[4]]

    def test_keeps_latest_pointer_to_survivor(self, backup_root, clock):
        ids = _make_snapshots(backup_root, clock, 4)

        RetentionManager(backup_root).enforce_retention(RetentionPolicy(2))

        assert layout.read_latest_pointer(backup_root) == ids[-1]

    def test_drops_dangling_latest_pointer(self, backup_root, clock):
        ids = _make_snapshots(backup_root, clock, 3)
        writer = SnapshotWriter(backup_root)
        writer.update_latest_pointer(backup_root / ids[0])

        RetentionManager(backup_root).enforce_retention(RetentionPolicy(1))

        pointer = backup_root / layout.LATEST_POINTER
        assert not pointer.exists() and not pointer.is_symlink()


class TestRetentionPolicy:

    @pytest.mark.parametrize("value", [0, -1])
    def test_rejects_non_positive(self, value):
        with pytest.raises(ValueError):
            RetentionPolicy(value)
