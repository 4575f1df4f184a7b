# Overview: Flask API routes for storefront buy/rent/release; parses input and returns JSON responses.

"""
Public storefront routes.

Callers may be anonymous; their actor is recorded as "anonymous". Bodies accept
snake_case and camelCase keys.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import optional_user
from ..errors import AppError
from ..providers import rental_engine, sale_engine, table_service
from ..responses import error_response, internal_error
from ..services.rental_service import RELEASED_MESSAGE, ReleaseRequest, RentRequest
from ..services.sales_service import PurchaseRequest, positive_int

public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.post("/buy")
@optional_user
def buy_route():
    try:
        purchase = PurchaseRequest.from_payload(request.get_json(silent=True))
        sale = sale_engine().buy(purchase, g.user)
        return jsonify({"sale": sale.to_dict(), "message": "Purchase completed successfully"}), 201
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to process purchase")


@public_bp.post("/rent")
@optional_user
def rent_route():
    try:
        rent_request = RentRequest.from_payload(request.get_json(silent=True))
        rental = rental_engine().rent(rent_request, g.user)
        return jsonify({"rental": rental.to_dict(), "message": "Item rented successfully"}), 201
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to process rental")


@public_bp.post("/release")
@optional_user
def release_route():
    try:
        release_request = ReleaseRequest.from_payload(request.get_json(silent=True))
        rental = rental_engine().release(release_request, g.user)
        return jsonify({"rental": rental.to_dict(), "message": RELEASED_MESSAGE}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to release rental")


@public_bp.get("/tables/<int:table_id>/items/<int:item_id>/availability")
@optional_user
def availability_route(table_id: int, item_id: int):
    try:
        table = table_service().get_readable_table(table_id, g.user)
        if table.table_type == "sale":
            quantity = positive_int(request.args.get("quantity", 1), "quantity")
            payload = sale_engine().check_availability(table, item_id, quantity)
        elif table.table_type == "rent":
            payload = rental_engine().check_availability(table, item_id)
        else:
            return jsonify({
                "error": "Validation failed",
                "message": "Availability is only tracked for sale and rent tables",
            }), 400
        return jsonify(payload), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to check availability")
