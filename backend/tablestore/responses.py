# Overview: JSON error envelopes shared by the API routes.

from flask import current_app, jsonify

from .errors import AppError
from .extensions import db


def error_response(e: AppError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def internal_error(message: str):
    """Log the active exception and return the generic 500 envelope."""
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "message": message}), 500
