# Overview: Request decorators for API routes (caller identity and profile gates).

from functools import wraps

from flask import current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import User
from .profiles import parse_profile
from .time_utils import utcnow

USER_HEADER = "X-User-Id"


def _touch_last_seen(user: User) -> None:
    """Best-effort presence stamp; a failure here never blocks the request."""
    try:
        user.last_seen_at = utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not update last_seen_at for user %s", user.id, exc_info=True)


def require_auth(f):
    """
    Resolve the caller from the X-User-Id header set by the upstream gateway.

    Sets:
    - g.current_user: the active User
    - g.profile: the caller's UserProfile

    Returns 401 when the header is missing, malformed, or names an unknown
    or inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required", "kind": "UNAUTHORIZED"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user", "kind": "UNAUTHORIZED"}), 401

        g.current_user = user
        g.profile = parse_profile(user.profile)
        _touch_last_seen(user)

        return f(*args, **kwargs)

    return decorated_function


def require_profile(*profiles):
    """
    Gate a route to the given UserProfile values. Must follow @require_auth.

    Usage:
        @require_auth
        @require_profile(UserProfile.ADMINISTRADOR, UserProfile.GERENTE_TIENDA)
        def create_grant(): ...
    """
    allowed = frozenset(profiles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "profile", None) not in allowed:
                return jsonify({"error": "Insufficient profile for this action", "kind": "FORBIDDEN"}), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
