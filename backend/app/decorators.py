# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Business
from .services.context import RequestContext


def _int_header(name: str):
    raw = request.headers.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


def require_context(f):
    """
    Establish the tenant/cashier context for an engine call.

    Authentication happens upstream; this trusts the identity headers it
    forwards and only checks they are present and name an active business.

    Sets:
    - g.request_context: RequestContext passed to every service call

    Returns 401 when X-Business-Id or X-User-Id is missing or the business
    is unknown/inactive, 400 when a header is not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            business_id = _int_header("X-Business-Id")
            user_id = _int_header("X-User-Id")
            shift_id = _int_header("X-Shift-Id")
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        if not business_id or not user_id:
            return jsonify({"error": "Authentication required"}), 401

        business = db.session.get(Business, business_id)
        if not business or not business.is_active:
            return jsonify({"error": "Invalid business context"}), 401

        g.request_context = RequestContext(
            business_id=business.id,
            cashier_id=user_id,
            tenant_id=request.headers.get("X-Tenant-Id") or business.tenant_id,
            shift_id=shift_id,
        )
        return f(*args, **kwargs)

    return decorated_function
