"""
Import pipeline tests.

Verifies:
- All-or-nothing: any invalid row rejects the whole batch
- Exhaustive error collection with the first error as the message
- Sale tables get one `add` ledger entry per imported row
- Replace mode clears rows only after validation passed
"""

import pytest

from tablestore.errors import ForbiddenError, ImportValidationError, ValidationError
from tablestore.models import InventoryTransaction, TableRow
from tablestore.services.import_service import ImportRequest


def request_for(rows, mappings=None, **extra):
    payload = {
        "hasHeaders": True,
        "data": rows,
        "columnMappings": mappings or [
            {"sourceColumn": "SKU", "targetColumn": "sku"},
            {"sourceColumn": "Name", "targetColumn": "name"},
            {"sourceColumn": "Country", "targetColumn": "country"},
        ],
    }
    payload.update(extra)
    return ImportRequest.from_payload(payload)


def row_count(db_session, table):
    return db_session.query(TableRow).filter_by(table_id=table.id).count()


class TestImportRequest:
    def test_accepts_snake_case(self):
        req = ImportRequest.from_payload({
            "data": [["a"]],
            "column_mappings": [{"source_column": "A", "target_column": "a"}],
            "import_mode": "replace",
            "has_headers": False,
        })
        assert req.mode == "replace"
        assert not req.has_headers
        assert req.column_mappings[0].target_column == "a"

    @pytest.mark.parametrize("payload", [
        None,
        {"data": "nope", "columnMappings": [{"sourceColumn": "A", "targetColumn": "a"}]},
        {"data": [["a"]], "columnMappings": []},
        {"data": [["a"]], "columnMappings": [{"sourceColumn": "A", "targetColumn": "a"}], "importMode": "merge"},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(ValidationError):
            ImportRequest.from_payload(payload)

    @pytest.mark.parametrize("flag, expected", [("false", False), ("No", False), (0, False), ("true", True), (True, True)])
    def test_has_headers_tokens(self, flag, expected):
        req = ImportRequest.from_payload({
            "data": [["a"]],
            "columnMappings": [{"sourceColumn": "A", "targetColumn": "a"}],
            "hasHeaders": flag,
        })
        assert req.has_headers is expected

    def test_has_headers_rejects_garbage(self):
        with pytest.raises(ValidationError) as exc_info:
            ImportRequest.from_payload({
                "data": [["a"]],
                "columnMappings": [{"sourceColumn": "A", "targetColumn": "a"}],
                "hasHeaders": "maybe",
            })
        assert exc_info.value.message == "hasHeaders must be true or false"


class TestImportPipeline:
    def test_imports_valid_batch(self, db_session, importer, default_table, owner):
        result = importer.run(default_table.id, request_for([
            ["SKU", "Name", "Country"],
            ["A-1", "Lamp", "uk"],
            ["A-2", "Desk", "Germany"],
        ]), owner)

        assert result.to_dict()["importedRows"] == 2
        assert result.to_dict()["message"] == "Successfully imported 2 rows"
        stored = sorted(r.data["country"] for r in db_session.query(TableRow).filter_by(table_id=default_table.id))
        assert stored == ["DE", "GB"]

    def test_any_invalid_row_rejects_batch(self, db_session, importer, default_table, owner):
        with pytest.raises(ImportValidationError) as exc_info:
            importer.run(default_table.id, request_for([
                ["SKU", "Name", "Country"],
                ["A-1", "Lamp", "uk"],
                ["A-2", "", "Atlantis"],
                ["A-3", "Chair", "ZZ"],
            ]), owner)

        err = exc_info.value
        assert err.total_errors == 3
        assert err.message == 'No rows were imported. First error: Row 2: Required field "name" is missing or empty'
        assert err.to_dict()["totalErrors"] == 3
        db_session.rollback()
        assert row_count(db_session, default_table) == 0

    def test_intra_batch_duplicates_rejected(self, db_session, importer, default_table, owner):
        with pytest.raises(ImportValidationError) as exc_info:
            importer.run(default_table.id, request_for([
                ["SKU", "Name", "Country"],
                ["A-1", "Lamp", "uk"],
                ["A-1", "Desk", "uk"],
            ]), owner)

        assert 'Column "sku"' in exc_info.value.errors[0]
        assert "appears more than once in this import" in exc_info.value.errors[0]
        db_session.rollback()
        assert row_count(db_session, default_table) == 0

    def test_persisted_duplicates_rejected_in_add_mode(self, db_session, importer, default_table, owner):
        importer.run(default_table.id, request_for([["SKU", "Name"], ["A-1", "Lamp"]]), owner)
        with pytest.raises(ImportValidationError) as exc_info:
            importer.run(default_table.id, request_for([["SKU", "Name"], ["A-1", "Desk"]]), owner)
        assert exc_info.value.errors == [
            'Row 1: Column "sku" does not allow duplicate values. Value "A-1" already exists.'
        ]

    def test_replace_mode_clears_after_validation(self, db_session, importer, default_table, owner):
        importer.run(default_table.id, request_for([["SKU", "Name"], ["A-1", "Lamp"], ["A-2", "Desk"]]), owner)

        # Failing replace leaves the old rows alone
        with pytest.raises(ImportValidationError):
            importer.run(default_table.id, request_for([["SKU", "Name"], ["B-1", ""]], importMode="replace"), owner)
        db_session.rollback()
        assert row_count(db_session, default_table) == 2

        result = importer.run(default_table.id, request_for([["SKU", "Name"], ["A-1", "Sofa"]], importMode="replace"), owner)
        assert result.imported_rows == 1
        assert [r.data["name"] for r in db_session.query(TableRow).filter_by(table_id=default_table.id)] == ["Sofa"]

    def test_blank_rows_skipped(self, importer, default_table, owner):
        result = importer.run(default_table.id, request_for([
            ["SKU", "Name", "Country"],
            ["A-1", "Lamp", "uk"],
            [None, "", "  "],
        ]), owner)
        assert result.imported_rows == 1
        assert result.to_dict()["skippedRows"] == 1

    def test_explicit_headers_and_headerless_data(self, importer, default_table, owner):
        result = importer.run(default_table.id, request_for(
            [["A-1", "Lamp"]],
            mappings=[{"sourceColumn": "Column 1", "targetColumn": "sku"}, {"sourceColumn": "Column 2", "targetColumn": "name"}],
            hasHeaders=False,
        ), owner)
        assert result.imported_rows == 1

        result = importer.run(default_table.id, request_for(
            [["A-2", "Desk"]],
            headers=["SKU", "Name"],
        ), owner)
        assert result.imported_rows == 1

    def test_no_usable_mappings(self, importer, default_table, owner):
        with pytest.raises(ValidationError) as exc_info:
            importer.run(default_table.id, request_for(
                [["X"], ["1"]],
                mappings=[{"sourceColumn": "X", "targetColumn": "missing"}],
            ), owner)
        assert exc_info.value.message == "No valid column mappings found"

    def test_row_cap(self, importer, default_table, owner):
        rows = [["SKU", "Name"]] + [[f"S-{i}", "n"] for i in range(101)]
        with pytest.raises(ValidationError):
            importer.run(default_table.id, request_for(rows), owner)

    def test_only_owner_can_import(self, importer, default_table, other_user):
        with pytest.raises(ForbiddenError):
            importer.run(default_table.id, request_for([["SKU", "Name"], ["A-1", "Lamp"]]), other_user)

    def test_sale_import_writes_add_entries_and_defaults(self, db_session, importer, sale_table, owner):
        result = importer.run(sale_table.id, request_for(
            [["SKU", "Price"], ["S-1", "9.50"], ["S-2", "4"]],
            mappings=[{"sourceColumn": "SKU", "targetColumn": "sku"}, {"sourceColumn": "Price", "targetColumn": "price"}],
        ), owner)

        assert result.imported_rows == 2
        rows = db_session.query(TableRow).filter_by(table_id=sale_table.id).order_by(TableRow.id).all()
        assert [r.data["qty"] for r in rows] == [1, 1]
        entries = db_session.query(InventoryTransaction).filter_by(table_id=sale_table.id).all()
        assert len(entries) == 2
        assert {e.transaction_type for e in entries} == {"add"}
        assert {e.item_id for e in entries} == {r.id for r in rows}

    def test_replace_mode_records_removals_on_sale_tables(self, db_session, importer, sale_table, owner):
        mappings = [{"sourceColumn": "SKU", "targetColumn": "sku"}, {"sourceColumn": "Qty", "targetColumn": "qty"}]
        importer.run(sale_table.id, request_for([["SKU", "Qty"], ["S-1", "3"], ["S-2", "4"]], mappings), owner)
        old_ids = {r.id for r in db_session.query(TableRow).filter_by(table_id=sale_table.id)}

        importer.run(sale_table.id, request_for([["SKU", "Qty"], ["S-3", "2"]], mappings, importMode="replace"), owner)

        entries = db_session.query(InventoryTransaction).filter_by(table_id=sale_table.id).order_by(InventoryTransaction.id).all()
        assert [e.transaction_type for e in entries] == ["add", "add", "remove", "remove", "add"]
        removals = [e for e in entries if e.transaction_type == "remove"]
        assert {e.item_id for e in removals} == old_ids
        assert sorted(e.quantity_change for e in removals) == [-4, -3]
        assert row_count(db_session, sale_table) == 1

    def test_invalid_rows_still_count_for_duplicates(self, importer, default_table, owner):
        with pytest.raises(ImportValidationError) as exc_info:
            importer.run(default_table.id, request_for([
                ["SKU", "Name"],
                ["A-1", ""],
                ["A-1", "Desk"],
            ]), owner)

        assert exc_info.value.errors == [
            'Row 1: Required field "name" is missing or empty',
            'Row 2: Column "sku" does not allow duplicate values. '
            'Value "A-1" appears more than once in this import (first seen in row 1).',
        ]

    def test_failed_insert_keeps_other_rows(self, db_session, importer, default_table, owner, monkeypatch):
        real_flush = db_session.flush
        calls = []

        def flush_failing_second_insert(*args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return real_flush(*args, **kwargs)

        monkeypatch.setattr(db_session, "flush", flush_failing_second_insert)
        result = importer.run(default_table.id, request_for([
            ["SKU", "Name"],
            ["A-1", "Lamp"],
            ["A-2", "Desk"],
            ["A-3", "Sofa"],
        ]), owner)
        monkeypatch.undo()

        payload = result.to_dict()
        assert payload["importedRows"] == 2
        assert payload["errors"] == ["Row 2: Failed to save row (RuntimeError)"]
        assert payload["totalErrors"] == 1
        assert payload["message"] == "Successfully imported 2 rows (1 rows failed to save)"
        stored = sorted(r.data["sku"] for r in db_session.query(TableRow).filter_by(table_id=default_table.id))
        assert stored == ["A-1", "A-3"]
