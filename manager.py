#!/usr/bin/env python3
"""
Hospital CRM Backup Manager - command-line front door for the backup engine.

Usage:
    python manager.py backup                 # Manual backup now
    python manager.py backup daily           # Scheduled run (used by cron)
    python manager.py backup setup           # Print crontab template
    python manager.py restore                # Interactive restore
    python manager.py restore --snapshot latest --yes
    python manager.py history                # List snapshots
    python manager.py cleanup                # Apply retention now
    python manager.py status                 # Check data store connection
    python manager.py init-env               # Write a template .env
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Fix Windows console encoding for Unicode
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

from backup import layout
from backup.errors import BackupError
from backup.models import RestoreStatus, RetentionPolicy
from backup.prompts import ScriptedSelectionProvider, SelectionProvider, TerminalSelectionProvider
from backup.restorer import Restorer, run_restore_session
from backup.retention import RetentionManager
from backup.scheduler import BackupScheduler, generate_cron_config
from config import BackupConfig, DataStoreConfig, create_env_file, load_app_environment
from datastore import DataStoreClient, DataStoreError

logger = logging.getLogger(__name__)

BACKUP_LABELS = ["manual", "daily", "weekly", "monthly"]


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Hospital CRM Backup Manager - snapshot, restore and retention",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    hospital-backup backup                    # Manual backup
    hospital-backup backup daily              # Scheduled daily run
    hospital-backup backup setup              # Show cron configuration
    hospital-backup restore                   # Pick a backup interactively
    hospital-backup restore --snapshot 2 --yes
    hospital-backup --env production history
    hospital-backup init-env --path .env.production
        """
    )
    parser.add_argument("--env", dest="env_mode", default=None,
                        help="Environment mode (development, test, production)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    backup = sub.add_parser("backup", help="Run one backup cycle, or print the cron template")
    backup.add_argument("label", nargs="?", default="manual", choices=BACKUP_LABELS + ["setup"],
                        help="Run label (default: manual); 'setup' prints the cron template")

    restore = sub.add_parser("restore", help="Restore a backup (DESTRUCTIVE)")
    restore.add_argument("--snapshot", default=None,
                         help="Backup number, backup id or 'latest' (skips the selection prompt)")
    restore.add_argument("--yes", action="store_true",
                         help="Confirm the destructive restore without prompting (requires --snapshot)")

    sub.add_parser("history", help="List existing backups")
    sub.add_parser("cleanup", help="Delete backups beyond the retention limit")
    sub.add_parser("status", help="Check the data store connection")

    init_env = sub.add_parser("init-env", help="Write a template .env file")
    init_env.add_argument("--path", default=".env", help="Destination file (default: .env)")
    init_env.add_argument("--force", action="store_true", help="Overwrite an existing file")

    args = parser.parse_args(argv)
    if args.command == "restore" and args.yes and not args.snapshot:
        parser.error("--yes requires --snapshot")
    return args


def cmd_init_env(path: str, force: bool = False) -> int:
    try:
        created = create_env_file(path, overwrite=force)
    except FileExistsError:
        print(f"❌ {path} already exists (use --force to overwrite)")
        return 1
    except OSError as e:
        print(f"❌ Could not write {path}: {e}")
        return 1
    print(f"✅ Created template .env file at {created}")
    print("   Fill in SUPABASE_URL and SUPABASE_KEY before running a backup.")
    return 0


def cmd_backup_setup(config: BackupConfig) -> int:
    print("📋 Cron Setup Instructions:\n")
    print(generate_cron_config(Path.cwd(), log_file=config.log_dir / "cron.log"))
    print("To install:")
    print("1. Run: crontab -e")
    print("2. Add the lines above")
    print("3. Save and exit")
    print("\nTo verify: crontab -l")
    print("\nFor Windows, use Task Scheduler to run 'hospital-backup backup daily'.")
    return 0


def cmd_backup(store, config: BackupConfig, source_identifier: str, label: str) -> int:
    scheduler = BackupScheduler(store, config, source_identifier=source_identifier)
    outcome = scheduler.run_scheduled_backup(label)

    if not outcome.success:
        print(f"\n❌ Backup failed: {outcome.error}")
        return 1

    snapshot = outcome.snapshot
    print("\n✨ Backup completed successfully!")
    print(f"📍 Location: {snapshot.directory}")
    print(f"📊 Total records backed up: {snapshot.total_records}")
    if snapshot.failed_tables:
        print(f"⚠️  Failed tables: {', '.join(snapshot.failed_tables)}")
    if outcome.removed:
        print(f"🧹 Removed {len(outcome.removed)} old backup(s)")
    return 0


def cmd_restore(store, config: BackupConfig, provider: SelectionProvider) -> int:
    print("🔄 Hospital CRM Database Restore Tool\n")
    restorer = Restorer(store, config.backup_root, batch_size=config.restore_batch_size)
    outcome = run_restore_session(restorer, provider)

    if outcome.status is RestoreStatus.NO_SNAPSHOTS:
        print("❌ No backups found")
        return 1
    if outcome.status is RestoreStatus.INVALID_SELECTION:
        print("❌ Invalid selection")
        return 1
    if outcome.status in (RestoreStatus.METADATA_UNAVAILABLE, RestoreStatus.SNAPSHOT_NOT_FOUND):
        print(f"❌ Could not read backup metadata: {outcome.error}")
        return 1
    if outcome.status is RestoreStatus.NOT_CONFIRMED:
        print("❌ Restore cancelled")
        return 1

    print("\n📊 Restore Summary:")
    for table_name, result in outcome.tables.items():
        if result.success:
            print(f"   ✅ {table_name}: {result.inserted_count} records")
        else:
            print(f"   ❌ {table_name}: Failed after {result.inserted_count} records - {result.error_message}")
        if result.delete_warning:
            print(f"      ⚠️  existing rows may remain: {result.delete_warning}")

    print("\n✨ Restore completed!")
    print(f"   Total records restored: {outcome.total_restored}")
    if outcome.failed_table_count:
        print(f"   ⚠️  Failed tables: {outcome.failed_table_count}")
    return 0


def cmd_history(config: BackupConfig) -> int:
    print("\n📋 Backup History:\n")
    restorer = Restorer(store=None, backup_root=config.backup_root)
    try:
        snapshot_ids = restorer.list_snapshots()
    except OSError as e:
        print(f"Error reading backup history: {e}")
        return 1

    if not snapshot_ids:
        print("No backups found.")
        return 0

    latest = layout.read_latest_pointer(config.backup_root)
    for snapshot_id in snapshot_ids:
        marker = " (latest)" if snapshot_id == latest else ""
        try:
            metadata = restorer.load_metadata(snapshot_id)
            size = layout.directory_size(config.backup_root / snapshot_id)
        except (BackupError, OSError) as e:
            logger.debug(f"History entry {snapshot_id} unreadable: {e}")
            print(f"📁 {snapshot_id}{marker} (metadata unavailable)\n")
            continue

        failed = [name for name, o in metadata.tables.items() if not o.success]
        print(f"📁 {snapshot_id}{marker}")
        print(f"   Date: {metadata.date}")
        if metadata.label:
            print(f"   Type: {metadata.label}")
        print(f"   Records: {metadata.total_records}")
        print(f"   Size: {size / 1024 / 1024:.2f} MB")
        if failed:
            print(f"   Failed tables: {', '.join(failed)}")
        print()
    return 0


def cmd_cleanup(config: BackupConfig) -> int:
    print("\n🧹 Cleaning old backups...\n")
    try:
        removed = RetentionManager(config.backup_root).enforce_retention(RetentionPolicy(config.max_snapshots))
    except OSError as e:
        print(f"❌ Error during cleanup: {e}")
        return 1
    print(f"Removed {len(removed)} backup(s); keeping at most {config.max_snapshots}")
    return 0


def cmd_status(store, config: BackupConfig, datastore_config: DataStoreConfig) -> int:
    print("\n📊 Checking Database Status...\n")
    print(f"✅ Data store URL: {datastore_config.url}")
    print("✅ Credentials: Configured")
    try:
        count = store.count(config.status_table)
    except DataStoreError as e:
        print(f"❌ Connection test failed: {e}")
        return 1
    print("✅ Connection successful")
    print(f"📊 {config.status_table} table has {count} records")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "init-env":
        return cmd_init_env(args.path, args.force)

    load_app_environment(args.env_mode)

    try:
        config = BackupConfig.from_environment(args.env_mode)
    except ValueError as e:
        print(f"❌ Invalid backup configuration: {e}")
        return 1

    # Commands that never touch the live database
    if args.command == "backup" and args.label == "setup":
        return cmd_backup_setup(config)
    if args.command == "history":
        return cmd_history(config)
    if args.command == "cleanup":
        return cmd_cleanup(config)

    try:
        datastore_config = DataStoreConfig.from_environment(args.env_mode)
    except ValueError as e:
        print(f"❌ Error: {e}")
        return 1

    with DataStoreClient(datastore_config) as store:
        if args.command == "backup":
            return cmd_backup(store, config, datastore_config.source_identifier, args.label)
        if args.command == "restore":
            return cmd_restore(store, config, build_selection_provider(args))
        if args.command == "status":
            return cmd_status(store, config, datastore_config)

    return 1


def build_selection_provider(args: argparse.Namespace) -> SelectionProvider:
    """--snapshot/--yes answer the prompts up front; otherwise ask on the terminal."""
    if args.snapshot and args.yes:
        return ScriptedSelectionProvider(selection=args.snapshot, confirm=True)
    return TerminalSelectionProvider(selection=args.snapshot)


def cli_entry():
    """Console script entry point"""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
