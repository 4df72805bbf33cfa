# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


OPERATOR_HEADER = "X-Operator"


def require_operator(f):
    """
    Require an operator identity on write requests.

    Sets g.operator to the trimmed X-Operator header value. The header only
    names who is at the till; it is not an authentication mechanism.

    Returns 401 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator = (request.headers.get(OPERATOR_HEADER) or "").strip()
        if not operator:
            return jsonify({"error": f"{OPERATOR_HEADER} header required"}), 401
        if len(operator) > 128:
            return jsonify({"error": f"{OPERATOR_HEADER} must be at most 128 characters"}), 400

        g.operator = operator
        return f(*args, **kwargs)

    return decorated_function
