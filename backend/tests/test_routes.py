"""
HTTP surface tests.

Exercise the blueprints end to end through the Flask test client: identity
headers, the JSON error envelope and the storefront flow.
"""

import io

import pytest

from conftest import OTHER_EMAIL, user_headers


@pytest.fixture(autouse=True)
def clean_db(db_session):
    return db_session


def create_table(client, **payload):
    body = {"name": "Shop", "columns": [{"name": "sku", "type": "text", "allow_duplicates": False}]}
    body.update(payload)
    resp = client.post("/api/tables", json=body, headers=user_headers())
    assert resp.status_code == 201
    return resp.get_json()["table"]


def add_row(client, table_id, data):
    resp = client.post(f"/api/tables/{table_id}/rows", json={"data": data}, headers=user_headers())
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["row"]


class TestIdentity:
    def test_writes_require_identity(self, client):
        resp = client.post("/api/tables", json={"name": "x"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

    def test_private_table_hidden_from_others(self, client):
        table = create_table(client)
        resp = client.get(f"/api/tables/{table['id']}", headers=user_headers(OTHER_EMAIL))
        assert resp.status_code == 403

    def test_identity_does_not_carry_between_requests(self, app, client):
        table = create_table(client)
        with app.app_context():
            assert client.get("/api/tables", headers=user_headers(admin=True)).status_code == 200
            assert client.get("/api/tables").status_code == 401
            assert client.get(f"/api/tables/{table['id']}", headers=user_headers()).status_code == 200
            assert client.get(f"/api/tables/{table['id']}", headers=user_headers(OTHER_EMAIL)).status_code == 403

    def test_table_access_header_grants_read(self, client):
        table = create_table(client)
        resp = client.get(
            f"/api/tables/{table['id']}",
            headers=user_headers(OTHER_EMAIL, table_access=[table["id"]]),
        )
        assert resp.status_code == 200


class TestTablesApi:
    def test_create_and_list(self, client):
        table = create_table(client, table_type="sale")
        assert [c["name"] for c in table["columns"]] == ["price", "qty", "sku"]

        listed = client.get("/api/tables?table_type=sale", headers=user_headers()).get_json()
        assert [t["id"] for t in listed["tables"]] == [table["id"]]

    def test_duplicate_column_conflict(self, client):
        table = create_table(client)
        resp = client.post(f"/api/tables/{table['id']}/columns", json={"name": "SKU"}, headers=user_headers())
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Conflict"

    def test_row_validation_envelope(self, client):
        table = create_table(client, columns=[{"name": "count", "type": "integer"}])
        resp = client.post(
            f"/api/tables/{table['id']}/rows",
            json={"data": {"count": "many"}},
            headers=user_headers(),
        )
        body = resp.get_json()
        assert resp.status_code == 400
        assert body["error"] == "Validation failed"
        assert body["details"] == [body["message"]]

    def test_export_csv(self, client):
        table = create_table(client)
        row = add_row(client, table["id"], {"sku": "A-1"})
        resp = client.get(f"/api/tables/{table['id']}/export?format=csv", headers=user_headers())
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert resp.data.decode().splitlines() == ["id,sku", f"{row['id']},A-1"]

    def test_validate_and_rules(self, client):
        table = create_table(client)
        add_row(client, table["id"], {"sku": "A-1"})

        report = client.get(f"/api/tables/{table['id']}/validate", headers=user_headers()).get_json()
        assert report["tableId"] == table["id"]
        assert report["message"] == "All data is valid"

        rules = client.get(f"/api/tables/{table['id']}/validate/rules", headers=user_headers()).get_json()
        assert rules["columns"][0]["columnName"] == "sku"
        assert rules["columns"][0]["knownType"] is True


class TestImportApi:
    def test_parse_then_import(self, client):
        table = create_table(client, columns=[
            {"name": "sku", "type": "text", "allow_duplicates": False},
            {"name": "country", "type": "country"},
        ])
        upload = {"file": (io.BytesIO(b"SKU,Country\nA-1,uk\nA-2,France\n"), "items.csv")}
        parsed = client.post(
            f"/api/tables/{table['id']}/data/parse-import-file",
            data=upload,
            content_type="multipart/form-data",
            headers=user_headers(),
        ).get_json()
        assert parsed["headers"] == ["SKU", "Country"]
        assert parsed["totalRows"] == 2

        resp = client.post(f"/api/tables/{table['id']}/data/import", json={
            "hasHeaders": True,
            "headers": parsed["headers"],
            "data": parsed["data"],
            "columnMappings": [
                {"sourceColumn": "SKU", "targetColumn": "sku"},
                {"sourceColumn": "Country", "targetColumn": "country"},
            ],
        }, headers=user_headers())
        assert resp.status_code == 200
        assert resp.get_json()["importedRows"] == 2

    def test_rejected_import_envelope(self, client):
        table = create_table(client, columns=[{"name": "n", "type": "integer", "is_required": True}])
        resp = client.post(f"/api/tables/{table['id']}/data/import", json={
            "data": [["N"], ["1"], ["x"], [""]],
            "columnMappings": [{"sourceColumn": "N", "targetColumn": "n"}],
        }, headers=user_headers())
        body = resp.get_json()
        assert resp.status_code == 400
        assert body["error"] == "Import failed"
        assert body["message"].startswith("No rows were imported. First error: Row 2")
        assert body["totalErrors"] == 1

    def test_unsupported_upload(self, client):
        table = create_table(client)
        resp = client.post(
            f"/api/tables/{table['id']}/data/parse-import-file",
            data={"file": (io.BytesIO(b"x"), "items.txt")},
            content_type="multipart/form-data",
            headers=user_headers(),
        )
        assert resp.status_code == 400


class TestStorefrontApi:
    def test_buy_flow(self, client):
        table = create_table(client, table_type="sale", visibility="public")
        item = add_row(client, table["id"], {"sku": "A-1", "price": 10, "qty": 3})

        availability = client.get(
            f"/api/public/tables/{table['id']}/items/{item['id']}/availability?quantity=2"
        ).get_json()
        assert availability["canFulfill"] is True

        resp = client.post("/api/public/buy", json={"tableId": table["id"], "itemId": item["id"], "quantitySold": 2})
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["total_amount"] == 20.0

        short = client.post("/api/public/buy", json={"tableId": table["id"], "itemId": item["id"], "quantitySold": 2})
        assert short.status_code == 400
        assert short.get_json()["message"] == "Insufficient quantity. Available: 1, Requested: 2"

    def test_rent_and_release(self, client):
        table = create_table(client, table_type="rent", visibility="public", columns=[])
        item = add_row(client, table["id"], {"price": 5})

        rented = client.post("/api/public/rent", json={"tableId": table["id"], "itemId": item["id"]})
        assert rented.status_code == 201
        rental_id = rented.get_json()["rental"]["id"]

        released = client.post("/api/public/release", json={"rentalId": rental_id})
        assert released.status_code == 200
        assert released.get_json()["rental"]["rental_status"] == "released"

        again = client.post("/api/public/rent", json={"tableId": table["id"], "itemId": item["id"]})
        assert again.status_code == 400

    def test_availability_needs_inventory_table(self, client):
        table = create_table(client, visibility="public")
        item = add_row(client, table["id"], {"sku": "A-1"})
        resp = client.get(f"/api/public/tables/{table['id']}/items/{item['id']}/availability")
        assert resp.status_code == 400


class TestInventoryApi:
    def test_transactions_require_table_for_non_admin(self, client):
        resp = client.get("/api/inventory/transactions", headers=user_headers())
        assert resp.status_code == 403

    def test_owner_sees_ledger(self, client):
        table = create_table(client, table_type="sale")
        add_row(client, table["id"], {"sku": "A-1", "price": 10, "qty": 3})
        resp = client.get(f"/api/inventory/transactions?table_id={table['id']}", headers=user_headers())
        assert resp.status_code == 200


def test_health(client):
    resp = client.get("/api/system/health")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["checks"]["database"]["status"] == "healthy"
    assert "country" in body["checks"]["column_types"]["types"]
