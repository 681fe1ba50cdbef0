"""
Tests for paginated table extraction
"""

import math

import pytest

from backup.errors import BackupCancelled
from backup.extractor import extract_table, extract_tables
from tests.datastore_test_utils import FakeDataStore


class TestExtractTable:
    """Pagination and per-table failure handling."""

    @pytest.mark.parametrize("row_count", [0, 1, 999, 1000, 1001, 2500])
    def test_returns_every_row(self, row_count):
        store = FakeDataStore()
        expected = store.seed("patients", row_count)

        result = extract_table(store, "patients", page_size=1000)

        assert result.error is None
        assert result.rows == expected

    @pytest.mark.parametrize("row_count", [0, 1, 999, 1000, 1001, 2500])
    def test_stops_at_reported_total(self, row_count):
        store = FakeDataStore()
        store.seed("patients", row_count)

        extract_table(store, "patients", page_size=1000)

        # One request per page; an empty table still needs one request
        assert len(store.calls_for("select_page")) == max(1, math.ceil(row_count / 1000))

    def test_offsets_advance_by_page(self):
        store = FakeDataStore()
        store.seed("bills", 2500)

        extract_table(store, "bills", page_size=1000)

        offsets = [call[2] for call in store.calls_for("select_page")]
        assert offsets == [0, 1000, 2000]

    @pytest.mark.parametrize("row_count", [0, 999, 1000, 2500])
    def test_without_reported_total(self, row_count):
        store = FakeDataStore(report_total=False)
        expected = store.seed("patients", row_count)

        result = extract_table(store, "patients", page_size=1000)

        assert result.rows == expected

    def test_empty_table_is_not_a_failure(self):
        store = FakeDataStore({"refunds": []})

        result = extract_table(store, "refunds")

        assert result.rows == []
        assert result.succeeded

    def test_page_failure_discards_collected_rows(self):
        store = FakeDataStore()
        store.seed("patients", 2500)
        store.fail("select_page", "patients", on_call=2)

        result = extract_table(store, "patients", page_size=1000)

        assert result.rows is None
        assert not result.succeeded
        assert "simulated select_page failure" in result.error
        # No retry after the failed page
        assert len(store.calls_for("select_page")) == 2

    def test_missing_table_fails(self):
        store = FakeDataStore()

        result = extract_table(store, "lab_results")

        assert result.rows is None
        assert "does not exist" in result.error


class TestExtractTables:
    """Multi-table extraction: order, isolation, workers, cancellation."""

    def _store(self):
        store = FakeDataStore()
        store.seed("patients", 5)
        store.seed("appointments", 1200)
        store.seed("bills", 0)
        return store

    def test_results_follow_configured_order(self):
        store = self._store()

        results = extract_tables(store, ["bills", "patients", "appointments"])

        assert [r.table_name for r in results] == ["bills", "patients", "appointments"]
        assert [len(r.rows) for r in results] == [0, 5, 1200]

    def test_failure_is_isolated_to_one_table(self):
        store = self._store()
        store.fail("select_page", "appointments")

        results = extract_tables(store, ["patients", "appointments", "bills"])

        by_name = {r.table_name: r for r in results}
        assert by_name["appointments"].rows is None
        assert len(by_name["patients"].rows) == 5
        assert by_name["bills"].rows == []

    def test_worker_pool_keeps_configured_order(self):
        store = self._store()
        tables = ["appointments", "bills", "patients"]

        sequential = extract_tables(store, tables, workers=1)
        parallel = extract_tables(store, tables, workers=3)

        assert [r.table_name for r in parallel] == tables
        assert [r.rows for r in parallel] == [r.rows for r in sequential]

    def test_cancellation_between_tables(self):
        store = self._store()
        answers = iter([True, False])

        with pytest.raises(BackupCancelled):
            extract_tables(store, ["patients", "appointments", "bills"], should_continue=lambda: next(answers))

        assert store.calls_for("select_page", "appointments") == []
