# auth_middleware.py
from functools import wraps
from flask import current_app, request, jsonify
from firebase_admin import auth as fb_auth


def _decode_bearer():
    """
    Returns (user, error_response). user is None when no Authorization header
    was sent; error_response is set when a token was sent but is invalid.
    """
    hdr = request.headers.get("Authorization", "")
    if not hdr:
        return None, None
    if not hdr.startswith("Bearer "):
        return None, (jsonify({"ok": False, "error": "Missing Firebase ID token"}), 401)
    try:
        token = hdr.split(" ", 1)[1]
        decoded = fb_auth.verify_id_token(token)
    except Exception as e:
        return None, (jsonify({"ok": False, "error": f"Invalid or expired token: {e}"}), 401)
    return {
        "uid": decoded["uid"],
        "email": decoded.get("email"),
        "name": decoded.get("name"),
        "admin": decoded.get("admin") is True,
    }, None


def require_auth(fn):
    """
    Verify Firebase ID token from 'Authorization: Bearer <token>'.
    Sets request.user = {"uid": ..., "email": ..., "name": ..., "admin": bool}
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, err = _decode_bearer()
        if err:
            return err
        if user is None:
            return jsonify({"ok": False, "error": "Missing Firebase ID token"}), 401
        request.user = user
        return fn(*args, **kwargs)
    return wrapper


def optional_auth(fn):
    """Like require_auth, but a request without a token runs as a guest (request.user = None)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, err = _decode_bearer()
        if err:
            return err
        request.user = user
        return fn(*args, **kwargs)
    return wrapper


def is_admin_user(user) -> bool:
    """Admin = `admin` custom claim, or isAdmin on the Player document."""
    if not user:
        return False
    if user.get("admin"):
        return True
    services = current_app.extensions["quiz"]
    return services.progress.is_admin(user["uid"])


def require_admin(fn):
    @wraps(fn)
    @require_auth
    def wrapper(*args, **kwargs):
        if not is_admin_user(request.user):
            return jsonify({"ok": False, "error": "forbidden"}), 403
        return fn(*args, **kwargs)
    return wrapper
