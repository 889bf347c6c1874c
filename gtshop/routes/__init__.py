from functools import wraps

from flask import jsonify, request
from flask_jwt_extended import current_user, verify_jwt_in_request

from gtshop.errors import PermissionDeniedError


def ok(data=None, status=200):
    return jsonify({"success": True, "data": data}), status


def already_processed(order):
    """HTTP 200 but success false: the order was settled by someone else."""
    return jsonify({
        "success": False,
        "already_processed": True,
        "message": "Order already processed",
        "data": order.to_dict() if order is not None else None,
    }), 200


def json_body():
    """The JSON object sent by the caller; anything else counts as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def admin_required(fn):
    """JWT plus the is_admin flag, read fresh from the users table."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not current_user.is_admin:
            raise PermissionDeniedError("Admin privileges required")
        return fn(*args, **kwargs)
    return wrapper
