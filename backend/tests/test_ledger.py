"""
Inventory ledger tests.

Verifies:
- Row writes on inventory tables produce add/update/remove entries
- A failing ledger write never breaks the caller's transaction
- Analytics and summaries aggregate the entries
"""

from datetime import timedelta

import pytest

from tablestore.errors import ValidationError
from tablestore.models import InventoryTransaction, TableRow
from tablestore.services.ledger_service import parse_date_filters
from tablestore.time_utils import utcnow


def entries(db_session, **filters):
    return db_session.query(InventoryTransaction).filter_by(**filters).order_by(InventoryTransaction.id).all()


class TestRecording:
    def test_row_lifecycle_entries(self, db_session, tables, sale_table, owner):
        row = tables.create_row(sale_table.id, {"sku": "S-1", "price": 10, "qty": 4}, owner)
        tables.update_row(sale_table.id, row.id, {"qty": 7}, owner)
        tables.delete_row(sale_table.id, row.id, owner)

        recorded = entries(db_session, table_id=sale_table.id)
        assert [(e.transaction_type, e.quantity_change) for e in recorded] == [
            ("add", 4),
            ("update", 3),
            ("remove", -7),
        ]
        assert recorded[1].previous_data["qty"] == 4
        assert recorded[1].new_data["qty"] == 7
        assert recorded[2].new_data is None
        assert all(e.table_name == "Shop" for e in recorded)

    def test_rent_table_entries_have_no_quantity(self, db_session, tables, rent_table, owner):
        tables.create_row(rent_table.id, {"tool": "Saw", "price": 3}, owner)
        assert [e.quantity_change for e in entries(db_session, table_id=rent_table.id)] == [None]

    def test_default_tables_are_not_ledgered(self, db_session, tables, default_table, owner):
        tables.create_row(default_table.id, {"sku": "A", "name": "B"}, owner)
        assert entries(db_session) == []

    def test_failed_write_is_swallowed(self, db_session, ledger, tables, sale_table, owner):
        row = tables.create_row(sale_table.id, {"sku": "S-1", "price": 10, "qty": 1}, owner)
        before = len(entries(db_session))

        result = ledger.record(table=sale_table, item_id=row.id, transaction_type="teleport", created_by="x")
        assert result is None

        # The surrounding transaction is still usable
        row.data = {**row.data, "qty": 2}
        db_session.commit()
        assert db_session.get(TableRow, row.id).data["qty"] == 2
        assert len(entries(db_session)) == before


class TestReads:
    @pytest.fixture
    def activity(self, tables, sale_table, owner):
        first = tables.create_row(sale_table.id, {"sku": "S-1", "price": 10, "qty": 4}, owner)
        second = tables.create_row(sale_table.id, {"sku": "S-2", "price": 5, "qty": 2}, owner)
        tables.update_row(sale_table.id, first.id, {"qty": 1}, owner)
        return first, second

    def test_list_transactions_filters(self, ledger, sale_table, activity):
        first, _ = activity
        listed = ledger.list_transactions(table_id=sale_table.id, item_id=first.id)
        assert listed["total"] == 2
        assert [i["transaction_type"] for i in listed["items"]] == ["update", "add"]
        assert ledger.list_transactions(transaction_type="add")["total"] == 2
        with pytest.raises(ValidationError):
            ledger.list_transactions(transaction_type="teleport")

    def test_date_filters_are_inclusive_days(self, ledger, activity):
        today = utcnow().date()
        assert ledger.list_transactions(date_from=today, date_to=today)["total"] == 3
        assert ledger.list_transactions(date_to=today - timedelta(days=1))["total"] == 0

    def test_analytics(self, ledger, sale_table, activity):
        analytics = ledger.query_analytics(table_id=sale_table.id)
        assert analytics["totalTransactions"] == 3
        assert analytics["transactionsByType"]["add"] == 2
        assert analytics["mostActiveTables"][0]["tableId"] == sale_table.id
        assert analytics["mostActiveTables"][0]["count"] == 3
        assert sum(d["count"] for d in analytics["transactionsByDate"]) == 3

    def test_analytics_cache_invalidated_by_new_entries(self, ledger, tables, sale_table, owner, activity):
        assert ledger.query_analytics()["totalTransactions"] == 3
        tables.create_row(sale_table.id, {"sku": "S-3", "price": 1, "qty": 1}, owner)
        assert ledger.query_analytics()["totalTransactions"] == 4

    def test_item_summary(self, ledger, sale_table, activity):
        first, _ = activity
        summary = ledger.item_summary(sale_table.id, first.id)
        assert summary["currentQuantity"] == 1
        assert summary["totalAdded"] == 4
        assert summary["totalAdjustments"] == -3
        assert summary["transactionCount"] == 2
        assert summary["lastTransactionDate"].endswith("Z")

    def test_table_summary(self, ledger, tables, sale_table, activity):
        summary = ledger.table_summary(sale_table.id, tables.all_rows(sale_table))
        assert summary["totalItems"] == 2
        assert summary["totalQuantity"] == 3
        assert summary["totalTransactions"] == 3


class TestDateFilters:
    def test_parse(self):
        start, end = parse_date_filters("2026-01-01", "2026-01-31")
        assert (start.day, end.day) == (1, 31)

    @pytest.mark.parametrize("raw", ["2026/01/01", "01-01-2026", "2026-13-01", "tomorrow"])
    def test_bad_dates(self, raw):
        with pytest.raises(ValidationError):
            parse_date_filters(raw, None)

    def test_reversed_range(self):
        with pytest.raises(ValidationError):
            parse_date_filters("2026-02-01", "2026-01-01")
