"""
Shared, community and curated list endpoints.

Shared lists are snapshots of a user's watchlist at the time they were
created; community lists are the public subset of them. Curated lists are
editorial rows managed through the admin API and served here as "binge" rows.
"""
from __future__ import annotations

import json
import re
import sqlite3
from uuid import uuid4

from flask import Blueprint, current_app, jsonify, request

from ..auth import require_user
from ..cards import get_cards_by_ids
from ..db import get_db, query
from ..schema import list_row_to_dict

bp = Blueprint("lists", __name__, url_prefix="/api")

PUBLIC_CACHE = "public, s-maxage=60, stale-while-revalidate=300"

COMMUNITY_CARD_COLUMNS = (
    "id, title, year, poster_url, imdb_rating, runtime_minutes, sources, "
    "genres, mpaa_rating, synopsis, backdrop_url"
)


def generate_slug(name: str) -> str:
    """URL-friendly slug with a random suffix so equal names don't collide."""
    base = name.lower().strip()
    base = re.sub(r"[^\w\s-]", "", base)
    base = re.sub(r"[\s_-]+", "-", base)
    base = base.strip("-") or "list"
    return f"{base}-{uuid4().hex[:6]}"


# ----- shared lists (owner views) -----

@bp.get("/user/shared-lists")
def get_shared_lists():
    user = require_user()
    rows = query(
        "SELECT * FROM shared_lists WHERE user_id = ? ORDER BY created_at DESC, id DESC",
        (user["user_id"],),
    )
    return jsonify({"lists": [list_row_to_dict(row) for row in rows]})


@bp.post("/user/shared-lists")
def create_shared_list():
    user = require_user()
    payload = request.get_json(silent=True) or {}
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return jsonify({"error": "Name is required"}), 400
    description = payload.get("description")
    description = description.strip() if isinstance(description, str) and description.strip() else None

    conn = get_db()
    items = conn.execute(
        """
        SELECT i.card_id, c.poster_url
        FROM user_list_items i
        JOIN availability_cards c ON c.id = i.card_id
        WHERE i.user_id = ? AND i.list_type = 'watchlist'
        ORDER BY (i.position IS NULL), i.position ASC, i.added_at DESC
        """,
        (user["user_id"],),
    ).fetchall()
    if not items:
        return jsonify({"error": "Watchlist is empty"}), 400

    card_ids = [row["card_id"] for row in items]
    try:
        with conn:
            cur = conn.execute(
                """
                INSERT INTO shared_lists
                    (user_id, name, slug, description, card_ids, header_image_url, card_count, is_public)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1)
                """,
                (
                    user["user_id"],
                    name.strip(),
                    generate_slug(name),
                    description,
                    json.dumps(card_ids),
                    items[0]["poster_url"],
                    len(card_ids),
                ),
            )
    except sqlite3.Error:
        current_app.logger.exception("Error creating shared list")
        return jsonify({"error": "Failed to create shared list"}), 500

    row = conn.execute("SELECT * FROM shared_lists WHERE id = ?", (cur.lastrowid,)).fetchone()
    return jsonify({"list": list_row_to_dict(row)}), 201


@bp.delete("/user/shared-lists")
def delete_shared_list():
    user = require_user()
    list_id = request.args.get("id")
    if not list_id:
        return jsonify({"error": "List ID is required"}), 400

    conn = get_db()
    with conn:
        # owner check is part of the WHERE clause
        conn.execute("DELETE FROM shared_lists WHERE id = ? AND user_id = ?", (list_id, user["user_id"]))
    return jsonify({"success": True})


# ----- community (public) -----

@bp.get("/community/lists")
def community_lists():
    rows = query(
        """
        SELECT l.id, l.name, l.slug, l.description, l.header_image_url, l.card_count,
               l.created_at, l.user_id, u.email AS user_email
        FROM shared_lists l
        LEFT JOIN users u ON u.user_id = l.user_id
        WHERE l.is_public = 1
        ORDER BY l.created_at DESC, l.id DESC
        """
    )
    lists = []
    for row in rows:
        data = dict(row)
        data["user_email"] = data.get("user_email") or "Anonymous"
        lists.append(data)

    response = jsonify({"lists": lists})
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return response


@bp.get("/community/lists/<slug>")
def community_list(slug: str):
    rows = query(
        """
        SELECT l.*, u.email AS user_email
        FROM shared_lists l
        LEFT JOIN users u ON u.user_id = l.user_id
        WHERE l.slug = ? AND l.is_public = 1
        """,
        (slug,),
    )
    if not rows:
        return jsonify({"error": "List not found"}), 404

    data = list_row_to_dict(rows[0])
    data["user_email"] = data.get("user_email") or "Anonymous"
    card_ids = data.pop("card_ids")
    data["cards"] = get_cards_by_ids(get_db(), card_ids, COMMUNITY_CARD_COLUMNS)

    response = jsonify({"list": data})
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return response


# ----- binge rows (curated lists) -----

@bp.get("/binge")
def binge():
    """
    Published curated lists with their cards.

    filter: all | editorial | my-lists; type=editorial-lists returns only the
    editorial list records without cards.
    """
    list_filter = request.args.get("filter") or "all"
    conditions = ["published = 1"]
    if request.args.get("type") == "editorial-lists" or list_filter == "editorial":
        conditions.append("type = 'editorial'")
    elif list_filter == "my-lists":
        conditions.append("type IN ('user-watchlist', 'user-custom')")

    try:
        rows = query(
            f"""
            SELECT * FROM curated_lists
            WHERE {" AND ".join(conditions)}
            ORDER BY featured DESC, updated_at DESC, id ASC
            """
        )
    except sqlite3.Error:
        current_app.logger.exception("Error fetching binge lists")
        return jsonify({"error": "Failed to fetch lists"}), 500

    lists = [list_row_to_dict(row, ids_column="cards") for row in rows]

    if request.args.get("type") == "editorial-lists":
        response = jsonify({"lists": lists})
        response.headers["Cache-Control"] = PUBLIC_CACHE
        return response

    # one query for every card referenced by any row
    all_ids = list(dict.fromkeys(cid for lst in lists for cid in lst["cards"]))
    by_id = {card["id"]: card for card in get_cards_by_ids(get_db(), all_ids)}

    rows_payload = [
        {"list": lst, "cards": [by_id[cid] for cid in lst["cards"] if cid in by_id]}
        for lst in lists
    ]
    response = jsonify({"rows": rows_payload})
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return response
