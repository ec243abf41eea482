# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import get_cart_registry


SESSION_HEADER = "X-Session-Id"


def require_session(f):
    """
    Require an operator session and bind its cart.

    The session id is issued by the external sign-in provider; this service
    only uses it to key the operator's cart. Sets:
    - g.session_id: the opaque session identifier
    - g.cart: the Cart owned by that session
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session_id = (request.headers.get(SESSION_HEADER) or "").strip()
        if not session_id:
            return jsonify({"success": False, "error": "Operator session required"}), 401

        g.session_id = session_id
        g.cart = get_cart_registry().get(session_id)
        return f(*args, **kwargs)

    return decorated_function
