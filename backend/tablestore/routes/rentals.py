# Overview: Flask API routes for rental records; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_user
from ..errors import AppError
from ..providers import rental_engine
from ..responses import error_response, internal_error

rentals_bp = Blueprint("rentals", __name__, url_prefix="/api/rentals")


@rentals_bp.get("")
@require_user
def list_rentals_route():
    try:
        result = rental_engine().list_rentals(
            g.user,
            table_id=request.args.get("table_id", type=int),
            customer_id=request.args.get("customer_id"),
            status=request.args.get("status"),
            page=request.args.get("page", default=1, type=int),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(result), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list rentals")


@rentals_bp.post("/<int:rental_id>/cancel")
@require_user
def cancel_rental_route(rental_id: int):
    try:
        rental = rental_engine().cancel(rental_id, g.user)
        return jsonify({"rental": rental.to_dict(), "message": "Rental cancelled"}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel rental")
