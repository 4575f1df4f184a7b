# Overview: Request decorators that attach the caller's UserContext to flask.g.

from functools import wraps
from flask import request, jsonify, g

from .access import ANONYMOUS, UserContext


def _context_from_headers() -> UserContext | None:
    """
    Build the caller identity from headers set by the upstream auth gateway.

    SECURITY: these headers are trusted; the gateway must strip them from
    client requests before forwarding.
    """
    email = (request.headers.get("X-User-Email") or "").strip()
    user_id = (request.headers.get("X-User-Id") or "").strip() or None
    if not email and not user_id:
        return None

    is_admin = (request.headers.get("X-User-Admin") or "").strip().lower() in {"1", "true", "yes"}

    access = set()
    for part in (request.headers.get("X-Table-Access") or "").split(","):
        part = part.strip()
        if part.isdigit():
            access.add(int(part))

    return UserContext(user_id=user_id, email=email or user_id, is_admin=is_admin, table_access=frozenset(access))


def require_user(f):
    """
    Require a caller identity.

    Sets g.user (UserContext). Returns 401 when no identity was forwarded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = _context_from_headers()
        if context is None:
            return jsonify({"error": "Authentication required", "message": "Authentication required"}), 401
        g.user = context
        return f(*args, **kwargs)

    return decorated_function


def optional_user(f):
    """Like require_user, but anonymous callers get ANONYMOUS instead of a 401."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = _context_from_headers() or ANONYMOUS
        return f(*args, **kwargs)

    return decorated_function
