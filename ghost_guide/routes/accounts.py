import sqlite3

from flask import Blueprint, current_app, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from ..db import get_db, query

bp = Blueprint("accounts", __name__, url_prefix="/api")


def _display_name(email: str) -> str:
    return email.split("@", 1)[0] if "@" in email else email


@bp.get("/health")
def health():
    """
    Lightweight readiness check.

    We run a trivial query to ensure the SQLite connection works; any
    failure returns a 503 so callers can surface the issue clearly.
    """
    try:
        query("SELECT 1")
    except sqlite3.Error as exc:
        current_app.logger.error(f"health check failed: {exc}")
        return jsonify({"status": "unhealthy"}), 503
    return jsonify({"status": "healthy"})


@bp.post("/signup")
def signup():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = (data.get("password") or "").strip()
    if not email or not password:
        return jsonify({"ok": False, "error": "Missing email or password"}), 400

    conn = get_db()
    try:
        admin_emails = current_app.config.get("ADMIN_EMAILS") or set()
        cur = conn.execute(
            "INSERT INTO users (email, password_hash, is_admin) VALUES (?, ?, ?)",
            (email, generate_password_hash(password), int(email.lower() in admin_emails)),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        return jsonify({"ok": False, "error": "Email already exists"}), 409

    return jsonify({
        "ok": True,
        "user": _display_name(email),
        "email": email,
        "user_id": cur.lastrowid,
    }), 201


@bp.post("/login")
def login():
    """Match email and password; the response carries the bearer token pieces."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = (data.get("password") or "").strip()
    if not email or not password:
        return jsonify({"ok": False, "error": "Missing email or password"}), 400

    rows = query(
        "SELECT user_id, email, password_hash, is_admin FROM users WHERE lower(email) = lower(?) LIMIT 1",
        (email,),
    )
    if not rows or not check_password_hash(rows[0]["password_hash"], password):
        return jsonify({"ok": False, "error": "Invalid credentials"}), 401

    record = dict(rows[0])
    admin_emails = current_app.config.get("ADMIN_EMAILS") or set()
    return jsonify({
        "ok": True,
        "user": _display_name(record["email"]),
        "email": record["email"],
        "user_id": record["user_id"],
        "token": f"{record['user_id']}:{record['email']}",
        "is_admin": bool(record["is_admin"]) or record["email"].lower() in admin_emails,
    })
