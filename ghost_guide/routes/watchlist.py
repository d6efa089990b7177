import sqlite3

from flask import Blueprint, current_app, jsonify, request

from ..auth import require_user
from ..cards import get_cards_by_ids
from ..db import get_db, query

bp = Blueprint("watchlist", __name__, url_prefix="/api/user")

WATCHLIST_CARD_COLUMNS = (
    "id, title, year, poster_url, imdb_rating, runtime_minutes, "
    "sources, genres, mpaa_rating, synopsis"
)


def watchlist_rows(user_id: int) -> list[sqlite3.Row]:
    return query(
        """
        SELECT id, card_id, added_at, position
        FROM user_list_items
        WHERE user_id = ? AND list_type = 'watchlist'
        ORDER BY (position IS NULL), position ASC, added_at DESC, id DESC
        """,
        (user_id,),
    )


@bp.get("/watchlist")
def get_watchlist():
    user = require_user()
    try:
        items = watchlist_rows(user["user_id"])
        cards = get_cards_by_ids(get_db(), [row["card_id"] for row in items], WATCHLIST_CARD_COLUMNS)
    except sqlite3.Error:
        current_app.logger.exception("Error fetching watchlist")
        return jsonify({"error": "Failed to fetch watchlist"}), 500

    by_id = {card["id"]: card for card in cards}
    watchlist = [
        {
            "id": row["id"],
            "cardId": row["card_id"],
            "addedAt": row["added_at"],
            "position": row["position"],
            "card": by_id.get(row["card_id"]),
        }
        for row in items
    ]
    response = jsonify({"watchlist": watchlist})
    # user-specific data
    response.headers["Cache-Control"] = "private, max-age=60, stale-while-revalidate=120"
    return response


@bp.post("/watchlist")
def add_to_watchlist():
    user = require_user()
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("cardId")
    if not card_id:
        return jsonify({"error": "cardId is required"}), 400

    conn = get_db()
    if not conn.execute("SELECT 1 FROM availability_cards WHERE id = ?", (str(card_id),)).fetchone():
        return jsonify({"error": "Card not found"}), 404

    max_row = conn.execute(
        "SELECT MAX(position) AS max_pos FROM user_list_items WHERE user_id = ? AND list_type = 'watchlist'",
        (user["user_id"],),
    ).fetchone()
    next_position = (max_row["max_pos"] if max_row["max_pos"] is not None else -1) + 1

    try:
        with conn:
            cur = conn.execute(
                """
                INSERT INTO user_list_items (user_id, card_id, list_type, position)
                VALUES (?, ?, 'watchlist', ?)
                """,
                (user["user_id"], str(card_id), next_position),
            )
    except sqlite3.IntegrityError:
        return jsonify({"error": "Already in watchlist"}), 409

    item = dict(conn.execute("SELECT * FROM user_list_items WHERE id = ?", (cur.lastrowid,)).fetchone())
    return jsonify({"item": item}), 201


@bp.delete("/watchlist")
def remove_from_watchlist():
    user = require_user()
    card_id = request.args.get("cardId")
    if not card_id:
        return jsonify({"error": "cardId is required"}), 400

    conn = get_db()
    with conn:
        conn.execute(
            "DELETE FROM user_list_items WHERE user_id = ? AND card_id = ? AND list_type = 'watchlist'",
            (user["user_id"], card_id),
        )
    return jsonify({"success": True})


@bp.patch("/watchlist")
def reorder_watchlist():
    user = require_user()
    payload = request.get_json(silent=True) or {}
    items = payload.get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items array is required"}), 400

    updates = []
    for item in items:
        if not isinstance(item, dict) or not item.get("cardId") or not isinstance(item.get("position"), int):
            return jsonify({"error": "each item needs cardId and an integer position"}), 400
        updates.append((item["position"], user["user_id"], str(item["cardId"])))

    conn = get_db()
    with conn:
        conn.executemany(
            """
            UPDATE user_list_items SET position = ?
            WHERE user_id = ? AND card_id = ? AND list_type = 'watchlist'
            """,
            updates,
        )
    return jsonify({"success": True})
