"""
Paginated table extraction.

Each table is read page by page until the server-reported total is reached
or an empty page comes back. A failed page request abandons that table only
(the rows collected so far are discarded); other tables are unaffected.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from backup.errors import BackupCancelled
from backup.models import TableExtractionResult
from config import DEFAULT_PAGE_SIZE
from datastore import DataStoreError

logger = logging.getLogger(__name__)


def extract_table(store, table_name: str, page_size: int = DEFAULT_PAGE_SIZE) -> TableExtractionResult:
    """
    Read every row of a table.

    Args:
        store: Data store exposing select_page(table, offset, limit)
        table_name: Table to read
        page_size: Rows requested per page

    Returns:
        TableExtractionResult with rows in server order, or rows=None and
        error set if any page request failed
    """
    rows = []
    offset = 0

    logger.info(f"Fetching data from {table_name}...")

    while True:
        try:
            page = store.select_page(table_name, offset=offset, limit=page_size)
        except DataStoreError as e:
            logger.warning(f"⚠️  Could not fetch {table_name}: {e}")
            return TableExtractionResult(table_name=table_name, rows=None, error=str(e))

        if not page.rows:
            break

        rows.extend(page.rows)
        offset += len(page.rows)
        logger.debug(f"   Fetched {len(rows)}/{page.total if page.total is not None else '?'} records...")

        if page.total is not None:
            if len(rows) >= page.total:
                break
        elif len(page.rows) < page_size:
            # No total reported: a short page is the last one
            break

    logger.info(f"[OK] Fetched {len(rows)} records from {table_name}")
    return TableExtractionResult(table_name=table_name, rows=rows)


def extract_tables(
    store,
    tables: list[str],
    page_size: int = DEFAULT_PAGE_SIZE,
    workers: int = 1,
    should_continue: Optional[Callable[[], bool]] = None,
) -> list[TableExtractionResult]:
    """
    Extract several tables, returning results in the configured table order.

    Args:
        store: Data store client
        tables: Table names in report order
        page_size: Rows requested per page
        workers: Tables extracted concurrently (1 = sequential)
        should_continue: Checked before each table starts; returning False
                         raises BackupCancelled

    Raises:
        BackupCancelled: should_continue() returned False
    """

    def run(table_name: str) -> TableExtractionResult:
        if should_continue is not None and not should_continue():
            raise BackupCancelled(f"Backup cancelled before extracting {table_name}")
        return extract_table(store, table_name, page_size)

    if workers <= 1 or len(tables) <= 1:
        return [run(table_name) for table_name in tables]

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as pool:
        # map() yields in submission order regardless of completion order
        return list(pool.map(run, tables))
