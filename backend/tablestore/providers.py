# Overview: Builds request-scoped service objects from the app's shared handles (session, type registry, cache).

from __future__ import annotations

from flask import current_app

from .extensions import db
from .services.import_service import ImportPipeline
from .services.ledger_service import InventoryLedger
from .services.rental_service import RentalEngine
from .services.sales_service import SaleEngine
from .services.table_service import TableService
from .services.validation_summary_service import ValidationSummaryService


def type_registry():
    return current_app.extensions["column_types"]


def cache():
    return current_app.extensions["tablestore_cache"]


def inventory_ledger() -> InventoryLedger:
    return InventoryLedger(db.session, cache=cache(), cache_ttl=current_app.config["CACHE_DEFAULT_TTL"])


def table_service() -> TableService:
    return TableService(db.session, type_registry(), ledger=inventory_ledger(), cache=cache())


def import_pipeline() -> ImportPipeline:
    return ImportPipeline(
        db.session,
        type_registry(),
        ledger=inventory_ledger(),
        cache=cache(),
        max_rows=current_app.config["IMPORT_MAX_ROWS"],
        error_limit=current_app.config["IMPORT_ERROR_LIMIT"],
    )


def validation_summary_service() -> ValidationSummaryService:
    return ValidationSummaryService(
        db.session,
        type_registry(),
        ledger=inventory_ledger(),
        cache=cache(),
        scan_limit=current_app.config["INVALID_ROWS_SCAN_LIMIT"],
    )


def sale_engine() -> SaleEngine:
    return SaleEngine(db.session, inventory_ledger(), cache=cache())


def rental_engine() -> RentalEngine:
    return RentalEngine(db.session, inventory_ledger())
