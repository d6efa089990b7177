import json
import sqlite3

from flask import Blueprint, current_app, jsonify, request

from ..auth import get_current_user
from ..db import get_db

bp = Blueprint("tracking", __name__, url_prefix="/api/track")

EVENT_TYPES = {"page_view", "filter_change", "card_click", "list_view", "heartbeat"}


@bp.post("/click-out")
def click_out():
    """
    Log a click-out to a streaming service.

    Tracking never blocks the user: storage failures still answer 200 with
    logged=false.
    """
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("cardId")
    service = payload.get("service")
    if not card_id or not service:
        return jsonify({"error": "cardId and service are required"}), 400

    user = get_current_user()
    conn = get_db()
    try:
        with conn:
            cur = conn.execute(
                """
                INSERT INTO click_events
                    (user_id, card_id, service, service_type, deep_link, session_id, user_agent, referrer)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user["user_id"] if user else None,
                    str(card_id),
                    service,
                    payload.get("serviceType"),
                    payload.get("deepLink"),
                    payload.get("sessionId"),
                    request.headers.get("User-Agent"),
                    request.headers.get("Referer"),
                ),
            )
    except sqlite3.Error:
        current_app.logger.exception("Error logging click event")
        return jsonify({"success": True, "logged": False})

    return jsonify({"success": True, "logged": True, "eventId": cur.lastrowid})


@bp.post("")
def track_events():
    """Accept a single session event or a batch of them."""
    body = request.get_json(silent=True)
    events = body if isinstance(body, list) else [body] if isinstance(body, dict) else []

    valid = [
        e for e in events
        if isinstance(e, dict) and e.get("session_id") and e.get("event_type") in EVENT_TYPES
    ]
    if not valid:
        return jsonify({"error": "No valid events"}), 400

    conn = get_db()
    try:
        with conn:
            conn.executemany(
                "INSERT INTO session_events (session_id, event_type, page_path, event_data) VALUES (?, ?, ?, ?)",
                [
                    (
                        str(e["session_id"]),
                        e["event_type"],
                        e.get("page_path"),
                        json.dumps(e.get("event_data") or {}),
                    )
                    for e in valid
                ],
            )
    except sqlite3.Error:
        current_app.logger.exception("Track error")
        return jsonify({"error": "Failed to track"}), 500

    return jsonify({"success": True, "count": len(valid)})
