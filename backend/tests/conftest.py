"""
Pytest fixtures for tablestore backend tests.

Provides the test app on an in-memory database, a per-test clean session,
service objects wired the same way the routes wire them, and table fixtures.
"""

import pytest

from tablestore import create_app
from tablestore.access import UserContext
from tablestore.extensions import db
from tablestore.services.import_service import ImportPipeline
from tablestore.services.ledger_service import InventoryLedger
from tablestore.services.rental_service import RentalEngine
from tablestore.services.sales_service import SaleEngine
from tablestore.services.table_service import TableService
from tablestore.services.validation_summary_service import ValidationSummaryService

OWNER_EMAIL = "owner@example.com"
OTHER_EMAIL = "other@example.com"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["tablestore_cache"].clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def registry(app):
    return app.extensions["column_types"]


@pytest.fixture(scope='function')
def cache(app):
    return app.extensions["tablestore_cache"]


@pytest.fixture(scope='function')
def ledger(db_session, cache):
    return InventoryLedger(db_session, cache=cache, cache_ttl=60)


@pytest.fixture(scope='function')
def tables(db_session, registry, ledger, cache):
    return TableService(db_session, registry, ledger=ledger, cache=cache)


@pytest.fixture(scope='function')
def importer(db_session, registry, ledger, cache):
    return ImportPipeline(db_session, registry, ledger=ledger, cache=cache, max_rows=100, error_limit=10)


@pytest.fixture(scope='function')
def sales(db_session, ledger, cache):
    return SaleEngine(db_session, ledger, cache=cache)


@pytest.fixture(scope='function')
def rentals(db_session, ledger):
    return RentalEngine(db_session, ledger)


@pytest.fixture(scope='function')
def summaries(db_session, registry, ledger, cache):
    return ValidationSummaryService(db_session, registry, ledger=ledger, cache=cache, scan_limit=1000)


@pytest.fixture(scope='function')
def owner():
    return UserContext(user_id="u-owner", email=OWNER_EMAIL)


@pytest.fixture(scope='function')
def other_user():
    return UserContext(user_id="u-other", email=OTHER_EMAIL)


@pytest.fixture(scope='function')
def admin():
    return UserContext(user_id="u-admin", email="admin@example.com", is_admin=True)


@pytest.fixture(scope='function')
def default_table(tables, owner):
    """Private default table with a unique SKU, a required name and a country."""
    return tables.create_table({
        "name": "Catalog",
        "columns": [
            {"name": "sku", "type": "text", "is_required": True, "allow_duplicates": False},
            {"name": "name", "type": "text", "is_required": True},
            {"name": "country", "type": "country"},
            {"name": "released", "type": "date"},
        ],
    }, owner)


@pytest.fixture(scope='function')
def sale_table(tables, owner):
    """Public sale table (price, qty are added automatically) with a unique SKU."""
    return tables.create_table({
        "name": "Shop",
        "table_type": "sale",
        "visibility": "public",
        "columns": [
            {"name": "sku", "type": "text", "allow_duplicates": False},
            {"name": "title", "type": "text"},
        ],
    }, owner)


@pytest.fixture(scope='function')
def rent_table(tables, owner):
    """Public rent table (price, fee, used, available are added automatically)."""
    return tables.create_table({
        "name": "Tools",
        "table_type": "rent",
        "visibility": "public",
        "columns": [{"name": "tool", "type": "text", "is_required": True}],
    }, owner)


def user_headers(email: str = OWNER_EMAIL, *, admin: bool = False, table_access=()) -> dict:
    """Helper to create the trusted identity headers the upstream gateway sets."""
    headers = {"X-User-Id": email, "X-User-Email": email}
    if admin:
        headers["X-User-Admin"] = "true"
    if table_access:
        headers["X-Table-Access"] = ",".join(str(t) for t in table_access)
    return headers
