"""
Request authentication.

Demo-grade auth: the bearer token is just "user_id:email" and is not signed,
so anyone who knows a user's id and email can act as them. Do not expose
this API beyond a trusted network without replacing it with signed tokens.
"""
from __future__ import annotations

from flask import abort, current_app, request

from .db import query


def get_current_user() -> dict | None:
    """
    Extract and validate the current user from the request.
    Expects Authorization header with format: "Bearer user_id:email"
    Returns user dict with user_id, email, and is_admin, or None if not authenticated.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    try:
        token = auth_header[7:]  # Remove "Bearer " prefix
        user_id_str, email = token.split(":", 1)
        user_id = int(user_id_str)
    except (ValueError, IndexError):
        return None

    rows = query(
        "SELECT user_id, email, is_admin FROM users WHERE user_id = ? AND lower(email) = lower(?)",
        (user_id, email),
    )
    if not rows:
        return None

    row = dict(rows[0])
    admin_emails = current_app.config.get("ADMIN_EMAILS") or set()
    return {
        "user_id": row["user_id"],
        "email": row["email"],
        "is_admin": bool(row.get("is_admin")) or row["email"].lower() in admin_emails,
    }


def require_user() -> dict:
    user = get_current_user()
    if not user:
        abort(401, description="Unauthorized")
    return user


def require_admin() -> dict:
    """
    Require that the current user is authenticated and is an admin.
    Returns the user dict if admin, otherwise aborts with 401/403.
    """
    user = require_user()
    if not user.get("is_admin"):
        abort(403, description="Forbidden")
    return user
