# Overview: Request decorators for API routes (store context + result envelope).

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .validation import ValidationError, ConflictError, NotFoundError, coerce_int


def _status_for(exc: Exception) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    return 400


def require_store(f):
    """
    Establish store context for the request.

    The store is taken from the X-Store-Id header, falling back to a
    store_id query parameter or JSON body field. Sets g.store_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Store-Id") or request.args.get("store_id")
        if raw is None and request.is_json:
            body = request.get_json(silent=True) or {}
            if isinstance(body, dict):
                raw = body.get("store_id")
        if raw in (None, ""):
            return jsonify({"success": False, "error": "store_id is required"}), 400
        try:
            g.store_id = coerce_int(raw, "store_id")
        except ValidationError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return f(*args, **kwargs)

    return decorated_function


def service_result(status: int = 200):
    """
    Wrap a route whose body returns service data.

    The wrapped view returns the payload for "data" (or a full dict with
    "data" plus list metadata when it already carries a "data" key). Errors
    from the validation taxonomy become {"success": false, "error": msg} with
    their HTTP status; anything else is logged and reported as a 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                result = f(*args, **kwargs)
            except (ValidationError, ConflictError, NotFoundError) as e:
                db.session.rollback()
                return jsonify({"success": False, "error": str(e)}), _status_for(e)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Unhandled error in %s", request.path)
                return jsonify({"success": False, "error": "Internal server error"}), 500

            if isinstance(result, dict) and "data" in result:
                body = {"success": True, **result}
            else:
                body = {"success": True, "data": result}
            return jsonify(body), status

        return decorated_function

    return decorator
