# Overview: Flask API routes for the inventory ledger; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_user
from ..errors import AppError
from ..providers import inventory_ledger, table_service
from ..responses import error_response, internal_error
from ..services.ledger_service import parse_date_filters

"""
Date semantics:
- date_from/date_to are YYYY-MM-DD and inclusive (whole days, UTC).
- Non-admin callers only see entries for tables they own.
"""

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/transactions")
@require_user
def list_transactions_route():
    try:
        date_from, date_to = parse_date_filters(request.args.get("date_from"), request.args.get("date_to"))
        table_id = request.args.get("table_id", type=int)
        if table_id is not None:
            table_service().get_owned_table(table_id, g.user, "view the ledger")
        elif not g.user.is_admin:
            return jsonify({"error": "Forbidden", "message": "table_id is required"}), 403
        result = inventory_ledger().list_transactions(
            table_id=table_id,
            item_id=request.args.get("item_id", type=int),
            transaction_type=request.args.get("transaction_type"),
            date_from=date_from,
            date_to=date_to,
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(result), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list transactions")


@inventory_bp.get("/analytics")
@require_user
def analytics_route():
    try:
        date_from, date_to = parse_date_filters(request.args.get("date_from"), request.args.get("date_to"))
        table_id = request.args.get("table_id", type=int)
        if table_id is not None:
            table_service().get_owned_table(table_id, g.user, "view the ledger")
        elif not g.user.is_admin:
            return jsonify({"error": "Forbidden", "message": "table_id is required"}), 403
        result = inventory_ledger().query_analytics(date_from=date_from, date_to=date_to, table_id=table_id)
        return jsonify(result), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load inventory analytics")


@inventory_bp.get("/tables/<int:table_id>/summary")
@require_user
def table_summary_route(table_id: int):
    try:
        service = table_service()
        table = service.get_owned_table(table_id, g.user, "view the ledger")
        return jsonify(inventory_ledger().table_summary(table.id, service.all_rows(table))), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load table summary")


@inventory_bp.get("/tables/<int:table_id>/items/<int:item_id>/summary")
@require_user
def item_summary_route(table_id: int, item_id: int):
    try:
        table = table_service().get_owned_table(table_id, g.user, "view the ledger")
        return jsonify(inventory_ledger().item_summary(table.id, item_id)), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load item summary")
