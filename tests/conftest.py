"""
Pytest configuration and shared fixtures for the backup engine tests

APPROACH: No live database
- Every test runs against FakeDataStore (in-memory tables)
- Snapshots are written under pytest's tmp_path
- A fixed clock gives each snapshot a predictable id
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import BackupConfig
from tests.datastore_test_utils import FakeDataStore


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    """
    os.environ['APP_ENV'] = 'test'
    os.environ['PYTEST_RUNNING'] = '1'


class StepClock:
    """Returns start, start + step, start + 2*step, ... on successive calls."""

    def __init__(self, start: datetime = datetime(2025, 1, 20, 2, 0, 0), step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    return FakeDataStore()


@pytest.fixture
def backup_root(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def backup_config(tmp_path, backup_root):
    return BackupConfig(
        backup_root=backup_root,
        log_dir=tmp_path / "logs",
        tables=["patients", "appointments", "bills"],
        max_snapshots=3,
        page_size=1000,
        restore_batch_size=100,
    )


CONFIG_ENV_VARS = [
    "SUPABASE_URL", "VITE_SUPABASE_URL", "SUPABASE_KEY", "VITE_SUPABASE_ANON_KEY",
    "DATASTORE_TIMEOUT", "DATASTORE_DELETE_FILTER_COLUMN",
    "BACKUP_ROOT", "BACKUP_LOG_DIR", "BACKUP_TABLES", "BACKUP_MAX_SNAPSHOTS",
    "BACKUP_PAGE_SIZE", "BACKUP_RESTORE_BATCH_SIZE", "BACKUP_EXTRACT_WORKERS", "BACKUP_STATUS_TABLE",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Environment with every configuration variable unset and APP_ENV=test."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    return monkeypatch
