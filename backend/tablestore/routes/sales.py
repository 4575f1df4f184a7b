# Overview: Flask API routes for sale records; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_user
from ..errors import AppError, ValidationError
from ..providers import sale_engine
from ..responses import error_response, internal_error
from ..services.ledger_service import parse_date_filters

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_user
def list_sales_route():
    try:
        date_from, date_to = parse_date_filters(request.args.get("date_from"), request.args.get("date_to"))
        result = sale_engine().list_sales(
            g.user,
            table_id=request.args.get("table_id", type=int),
            customer_id=request.args.get("customer_id"),
            status=request.args.get("status"),
            date_from=date_from,
            date_to=date_to,
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(result), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list sales")


@sales_bp.get("/analytics")
@require_user
def sales_analytics_route():
    try:
        date_from, date_to = parse_date_filters(request.args.get("date_from"), request.args.get("date_to"))
        result = sale_engine().sales_analytics(
            g.user,
            date_from=date_from,
            date_to=date_to,
            table_id=request.args.get("table_id", type=int),
        )
        return jsonify(result), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load sales analytics")


@sales_bp.get("/<int:sale_id>")
@require_user
def get_sale_route(sale_id: int):
    try:
        sale = sale_engine().get_sale(sale_id, g.user)
        return jsonify({"sale": sale.to_dict()}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load sale")


@sales_bp.patch("/<int:sale_id>")
@require_user
def update_sale_route(sale_id: int):
    try:
        changes = request.get_json(silent=True)
        if not changes:
            raise ValidationError("No update data provided")
        sale = sale_engine().update_sale(sale_id, changes, g.user)
        return jsonify({"sale": sale.to_dict()}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update sale")
