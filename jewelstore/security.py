"""
jewelstore/security.py

Admin-only access for the JSON API.

Anonymous requests get 401 and authenticated non-admins get 403, both as
{"error": ...} bodies. Wrapped views keep their names (functools.wraps) so
blueprint endpoints do not collide.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Tuple

from flask import jsonify
from flask_login import current_user


def _error(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({"error": message}), status


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            return _error("Authentication required", 401)
        if not is_admin():
            return _error("Admin access required", 403)
        return view_func(*args, **kwargs)

    return wrapper
