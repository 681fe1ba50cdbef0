"""
Backup engine configuration
Environment-aware configuration based on APP_ENV
Covers the hosted data store connection and the snapshot/retention settings
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Literal
from pathlib import Path
from dotenv import load_dotenv

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]

# Business tables captured by every snapshot, in report order
DEFAULT_TABLES = [
    'users',
    'patients',
    'departments',
    'appointments',
    'bills',
    'patient_admissions',
    'bed_assignments',
    'beds',
    'doctors',
    'patient_visits',
    'patient_transactions',
    'discharge_summaries',
    'doctors_departments',
    'admission_doctors',
    'hospital_experience',
    'transaction_types',
    'medications',
    'prescriptions',
    'lab_tests',
    'lab_results',
    'inventory_items',
    'inventory_transactions',
    'refunds',
]

# Cron expressions offered by `backup setup`
BACKUP_SCHEDULES = {
    'daily': '0 2 * * *',     # 2 AM every day
    'weekly': '0 3 * * 0',    # 3 AM every Sunday
    'monthly': '0 4 1 * *',   # 4 AM first day of month
}

DEFAULT_MAX_SNAPSHOTS = 30
DEFAULT_PAGE_SIZE = 1000
DEFAULT_RESTORE_BATCH_SIZE = 100


def load_app_environment(mode: Optional[str] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} if it exists, falling back to .env
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    base_path = Path(__file__).parent
    env_file = base_path / f'.env.{mode}'
    if not env_file.exists():
        env_file = base_path / '.env'

    if env_file.exists():
        # override=False lets the host environment (cron, CI) win over .env values
        load_dotenv(env_file, override=False)

    return mode


def get_environment_mode() -> EnvironmentMode:
    """Get current environment mode from APP_ENV variable"""
    mode = os.getenv('APP_ENV', 'development').lower()
    if mode not in ('development', 'test', 'production'):
        mode = 'development'
    return mode  # type: ignore


def get_backup_root() -> Path:
    r"""
    Get the root directory holding snapshot directories.

    Storage by Environment:
    - BACKUP_ROOT, when set, always wins
    - Development: ./backups
    - Test: ./backups_test
    - Production: Platform-specific user data directory
      * Windows: %LOCALAPPDATA%\HospitalBackup\backups
      * Linux/Mac: ~/.local/share/hospital-backup/backups
    """
    override = os.getenv('BACKUP_ROOT')
    if override:
        return Path(override).expanduser()

    mode = get_environment_mode()

    if mode == 'production':
        if os.name == 'nt':
            base = os.getenv('LOCALAPPDATA', os.path.expanduser('~\\AppData\\Local'))
            return Path(base) / 'HospitalBackup' / 'backups'
        base = os.getenv('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
        return Path(base) / 'hospital-backup' / 'backups'
    elif mode == 'test':
        return Path(__file__).parent / "backups_test"
    else:
        return Path(__file__).parent / "backups"


def get_log_dir(backup_root: Optional[Path] = None) -> Path:
    """Directory for the backup activity log (sibling of the backup root)."""
    override = os.getenv('BACKUP_LOG_DIR')
    if override:
        return Path(override).expanduser()
    root = backup_root or get_backup_root()
    return root.parent / 'logs'


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass
class DataStoreConfig:
    """Hosted REST database connection settings"""

    url: str
    api_key: str
    timeout: float = 30.0

    # Column used to address "every row" on delete; the REST
    # service rejects DELETE requests without a filter
    delete_filter_column: str = 'id'

    def __post_init__(self):
        if not self.url:
            raise ValueError("SUPABASE_URL is not set - cannot reach the data store")
        if not self.api_key:
            raise ValueError("SUPABASE_KEY is not set - cannot authenticate to the data store")
        self.url = self.url.rstrip('/')

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    @property
    def source_identifier(self) -> str:
        """Identifies the backed-up database in snapshot metadata (never the key)."""
        return self.url

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DataStoreConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - SUPABASE_URL (or VITE_SUPABASE_URL): data store endpoint
        - SUPABASE_KEY (or VITE_SUPABASE_ANON_KEY): access credential
        - DATASTORE_TIMEOUT: request timeout in seconds (default: 30)
        - DATASTORE_DELETE_FILTER_COLUMN: column for delete-all (default: id)
        """
        load_app_environment(mode)

        return cls(
            url=os.getenv('SUPABASE_URL') or os.getenv('VITE_SUPABASE_URL', ''),
            api_key=os.getenv('SUPABASE_KEY') or os.getenv('VITE_SUPABASE_ANON_KEY', ''),
            timeout=float(os.getenv('DATASTORE_TIMEOUT', '30')),
            delete_filter_column=os.getenv('DATASTORE_DELETE_FILTER_COLUMN', 'id'),
        )


@dataclass
class BackupConfig:
    """Snapshot, retention and restore settings"""

    backup_root: Path
    log_dir: Path
    tables: list[str] = field(default_factory=lambda: list(DEFAULT_TABLES))
    max_snapshots: int = DEFAULT_MAX_SNAPSHOTS
    page_size: int = DEFAULT_PAGE_SIZE
    restore_batch_size: int = DEFAULT_RESTORE_BATCH_SIZE
    extract_workers: int = 1
    status_table: str = 'patients'

    def __post_init__(self):
        self.backup_root = Path(self.backup_root)
        self.log_dir = Path(self.log_dir)
        for name in ('max_snapshots', 'page_size', 'restore_batch_size', 'extract_workers'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not self.tables:
            raise ValueError("At least one table must be configured for backup")

    @property
    def activity_log_path(self) -> Path:
        return self.log_dir / 'backup-history.log'

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'BackupConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - BACKUP_ROOT: snapshot root directory (default depends on APP_ENV)
        - BACKUP_LOG_DIR: activity log directory (default: <root>/../logs)
        - BACKUP_TABLES: comma-separated table list (default: all business tables)
        - BACKUP_MAX_SNAPSHOTS: snapshots kept by retention (default: 30)
        - BACKUP_PAGE_SIZE: rows per extraction page (default: 1000)
        - BACKUP_RESTORE_BATCH_SIZE: rows per insert batch (default: 100)
        - BACKUP_EXTRACT_WORKERS: tables extracted in parallel (default: 1)
        - BACKUP_STATUS_TABLE: table probed by `status` (default: patients)
        """
        load_app_environment(mode)

        backup_root = get_backup_root()
        tables_env = os.getenv('BACKUP_TABLES', '')
        tables = [t.strip() for t in tables_env.split(',') if t.strip()] or list(DEFAULT_TABLES)

        return cls(
            backup_root=backup_root,
            log_dir=get_log_dir(backup_root),
            tables=tables,
            max_snapshots=_positive_int('BACKUP_MAX_SNAPSHOTS', DEFAULT_MAX_SNAPSHOTS),
            page_size=_positive_int('BACKUP_PAGE_SIZE', DEFAULT_PAGE_SIZE),
            restore_batch_size=_positive_int('BACKUP_RESTORE_BATCH_SIZE', DEFAULT_RESTORE_BATCH_SIZE),
            extract_workers=_positive_int('BACKUP_EXTRACT_WORKERS', 1),
            status_table=os.getenv('BACKUP_STATUS_TABLE', 'patients'),
        )


# Example .env file content
ENV_TEMPLATE = """
# Application Environment
# Options: development, test, production
APP_ENV=development

# Hosted database (REST endpoint + key)
SUPABASE_URL=https://your-project.supabase.co
SUPABASE_KEY=your_service_key_here
DATASTORE_TIMEOUT=30

# Snapshot storage (defaults depend on APP_ENV)
# BACKUP_ROOT=/var/backups/hospital
# BACKUP_LOG_DIR=/var/log/hospital-backup

# Retention and sizing
BACKUP_MAX_SNAPSHOTS=30
BACKUP_PAGE_SIZE=1000
BACKUP_RESTORE_BATCH_SIZE=100
BACKUP_EXTRACT_WORKERS=1

# Optional: restrict the tables captured (comma-separated)
# BACKUP_TABLES=patients,appointments,bills
"""


def create_env_file(filepath: str = ".env", overwrite: bool = False) -> Path:
    """
    Create a template .env file

    Raises:
        FileExistsError: the file exists and overwrite is False
    """
    path = Path(filepath)
    with open(path, 'w' if overwrite else 'x', encoding='utf-8') as f:
        f.write(ENV_TEMPLATE.lstrip())
    return path
