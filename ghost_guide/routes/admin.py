"""
Admin API: catalog maintenance, curated lists, trailer review and analytics.

Every endpoint calls `require_admin()` first, so anonymous callers get 401
and signed-in non-admins get 403.
"""
from __future__ import annotations

import json
import re
import sqlite3
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request

from ..auth import require_admin
from ..cards import CARD_COLUMNS, CardValidationError, delete_card, get_card, insert_card, update_card
from ..db import get_db, query
from ..omdb import OMDbClient, OMDbError, enrichment_updates, normalize
from ..schema import list_row_to_dict
from ..watchmode import WatchmodeClient, WatchmodeError

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

IMDB_ID_RE = re.compile(r"^tt\d{7,}$")
TRAILER_STATUSES = ("approved", "rejected")
SQL_TS = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.utcnow()


def _omdb_client() -> OMDbClient:
    return OMDbClient(current_app.config.get("OMDB_API_KEY"))


# ============================================================================
# Titles
# ============================================================================

@bp.get("/cards")
def list_cards():
    require_admin()
    rows = query("SELECT id, title, year, poster_url FROM availability_cards ORDER BY title COLLATE NOCASE, id")
    return jsonify({"cards": [dict(r) for r in rows]})


@bp.post("/add-title")
def add_title():
    require_admin()
    payload = request.get_json(silent=True) or {}
    imdb_id = (payload.get("imdb_id") or "").strip()
    if not imdb_id:
        return jsonify({"error": "imdb_id is required"}), 400

    conn = get_db()
    if conn.execute("SELECT 1 FROM availability_cards WHERE imdb_id = ?", (imdb_id,)).fetchone():
        return jsonify({"error": "Title with this IMDB ID already exists"}), 409

    try:
        card_id = insert_card(conn, {**payload, "imdb_id": imdb_id})
    except CardValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except sqlite3.IntegrityError:
        return jsonify({"error": "Title with this IMDB ID already exists"}), 409

    current_app.logger.info(f"Added title {card_id} ({imdb_id})")
    return jsonify({"success": True, "data": get_card(conn, card_id)}), 201


@bp.delete("/delete-title")
def delete_title():
    require_admin()
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("card_id") or request.args.get("card_id")
    if not card_id:
        return jsonify({"error": "card_id is required"}), 400

    if not delete_card(get_db(), str(card_id)):
        return jsonify({"error": "Title not found"}), 404
    return jsonify({"success": True})


@bp.post("/enrich-title")
def enrich_title():
    """Fill a card's metadata from OMDb by its imdb_id."""
    require_admin()
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("card_id")
    if not card_id:
        return jsonify({"error": "card_id is required"}), 400

    conn = get_db()
    card = get_card(conn, str(card_id))
    if not card:
        return jsonify({"error": "Title not found"}), 404
    if not card.get("imdb_id"):
        return jsonify({"error": "Title has no IMDB ID"}), 400

    try:
        data = _omdb_client().get_by_imdb_id(card["imdb_id"])
    except OMDbError as exc:
        current_app.logger.error(f"Enrich title error: {exc}")
        return jsonify({"error": "Failed to enrich title"}), 502
    if data is None:
        return jsonify({"error": "Title not found in OMDB"}), 404

    updates = enrichment_updates(data)
    if not updates:
        return jsonify({"success": True, "updated_fields": [], "message": "No new data to update"})

    update_card(conn, card["id"], updates)
    return jsonify({
        "success": True,
        "updated_fields": list(updates),
        "data": {k: updates.get(k) for k in ("poster_url", "synopsis", "imdb_rating", "runtime_minutes")},
    })


@bp.get("/lookup-title")
def lookup_title():
    """
    OMDb lookup for the add-title form.

    ?imdb_id=tt0000000 returns one normalized record (plus whether it is
    already in the catalog); ?title=&year= returns search hits.
    """
    require_admin()
    imdb_id = (request.args.get("imdb_id") or "").strip()
    title = (request.args.get("title") or "").strip()
    if not imdb_id and not title:
        return jsonify({"error": "imdb_id or title is required"}), 400
    if imdb_id and not IMDB_ID_RE.match(imdb_id):
        return jsonify({"error": "Invalid IMDB ID format"}), 400

    try:
        client = _omdb_client()
        if imdb_id:
            data = client.get_by_imdb_id(imdb_id)
            if data is None:
                return jsonify({"error": "Title not found"}), 404
            exists = bool(query("SELECT 1 FROM availability_cards WHERE imdb_id = ?", (imdb_id,)))
            return jsonify({"title": normalize(data), "exists": exists})

        try:
            year = int(request.args["year"]) if request.args.get("year") else None
        except ValueError:
            return jsonify({"error": "year must be a whole number"}), 400
        return jsonify({"results": client.search(title, year)})
    except OMDbError as exc:
        current_app.logger.error(f"Lookup title error: {exc}")
        return jsonify({"error": "Failed to lookup title"}), 502


@bp.post("/manual-enrich")
def manual_enrich():
    """Hand-edit card fields, including sources and the featured flag."""
    require_admin()
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("id")
    if not card_id:
        return jsonify({"error": "id is required"}), 400

    updates = {k: v for k, v in payload.items() if k in CARD_COLUMNS}
    if not updates:
        return jsonify({"error": "No updatable fields given"}), 400

    conn = get_db()
    try:
        found = update_card(conn, str(card_id), updates)
    except CardValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except sqlite3.IntegrityError:
        return jsonify({"error": "Title with this IMDB ID already exists"}), 409
    if not found:
        return jsonify({"error": "Title not found"}), 404

    current_app.logger.info(f"Manually updated {card_id}: {sorted(updates)}")
    return jsonify({"success": True, "data": get_card(conn, str(card_id))})


@bp.post("/refresh-availability")
def refresh_availability():
    """Replace a card's sources with Watchmode's current US availability."""
    require_admin()
    payload = request.get_json(silent=True) or {}
    card_id = payload.get("card_id")
    if not card_id:
        return jsonify({"error": "card_id is required"}), 400

    conn = get_db()
    card = get_card(conn, str(card_id))
    if not card:
        return jsonify({"error": "Title not found"}), 404

    try:
        client = WatchmodeClient(current_app.config.get("WATCHMODE_API_KEY"))
    except WatchmodeError:
        return jsonify({"error": "Watchmode API key not configured"}), 500

    watchmode_id = card.get("watchmode_id")
    if not watchmode_id and card.get("imdb_id"):
        try:
            watchmode_id = client.find_title_id(card["imdb_id"])
        except WatchmodeError as exc:
            current_app.logger.error(f"Watchmode search error: {exc}")
        if watchmode_id:
            update_card(conn, card["id"], {"watchmode_id": watchmode_id})
    if not watchmode_id:
        return jsonify({"error": "Could not find title in Watchmode"}), 404

    try:
        sources = client.get_sources(watchmode_id)
    except WatchmodeError as exc:
        current_app.logger.error(f"Watchmode sources error: {exc}")
        return jsonify({"error": "Failed to fetch sources from Watchmode"}), 502

    update_card(conn, card["id"], {"sources": sources})
    return jsonify({"success": True, "sources_count": len(sources), "sources": sources})


# ============================================================================
# Curated lists
# ============================================================================

def _curated_list(conn: sqlite3.Connection, list_id) -> dict | None:
    row = conn.execute("SELECT * FROM curated_lists WHERE id = ?", (list_id,)).fetchone()
    return list_row_to_dict(row, ids_column="cards") if row else None


@bp.get("/lists")
def get_lists():
    require_admin()
    rows = query("SELECT * FROM curated_lists ORDER BY updated_at DESC, id DESC")
    return jsonify({"lists": [list_row_to_dict(r, ids_column="cards") for r in rows]})


@bp.post("/lists")
def create_list():
    user = require_admin()
    payload = request.get_json(silent=True) or {}
    title = (payload.get("title") or "").strip()
    slug = (payload.get("slug") or "").strip()
    if not title or not slug:
        return jsonify({"error": "Title and slug are required"}), 400

    cards = payload.get("cards") or []
    if not isinstance(cards, list):
        return jsonify({"error": "cards must be a list of card ids"}), 400
    published = bool(payload.get("published"))

    conn = get_db()
    try:
        with conn:
            cur = conn.execute(
                """
                INSERT INTO curated_lists
                    (title, slug, description, cover_image, cards, type, author, featured, published, published_at)
                VALUES (?, ?, ?, ?, ?, 'editorial', ?, ?, ?, ?)
                """,
                (
                    title,
                    slug,
                    payload.get("description") or "",
                    payload.get("cover_image"),
                    json.dumps(list(dict.fromkeys(str(c) for c in cards))),
                    user["email"],
                    int(bool(payload.get("featured"))),
                    int(published),
                    _utcnow().strftime(SQL_TS) if published else None,
                ),
            )
    except sqlite3.IntegrityError:
        return jsonify({"error": "A list with this slug already exists"}), 409

    return jsonify({"success": True, "list": _curated_list(conn, cur.lastrowid)}), 201


@bp.put("/lists")
def update_list():
    require_admin()
    payload = request.get_json(silent=True) or {}
    list_id = payload.get("id")
    if not list_id:
        return jsonify({"error": "List ID is required"}), 400

    conn = get_db()
    existing = _curated_list(conn, list_id)
    if not existing:
        return jsonify({"error": "List not found"}), 404

    fields: dict = {}
    for key in ("title", "slug", "description", "cover_image"):
        if key in payload:
            fields[key] = payload[key]
    if "cards" in payload:
        if not isinstance(payload["cards"], list):
            return jsonify({"error": "cards must be a list of card ids"}), 400
        fields["cards"] = json.dumps(list(dict.fromkeys(str(c) for c in payload["cards"])))
    if "featured" in payload:
        fields["featured"] = int(bool(payload["featured"]))
    if "published" in payload:
        fields["published"] = int(bool(payload["published"]))
        if payload["published"] and not existing["published"]:
            fields["published_at"] = _utcnow().strftime(SQL_TS)

    fields["updated_at"] = _utcnow().strftime(SQL_TS)
    assignments = ", ".join(f"{col} = ?" for col in fields)
    try:
        with conn:
            conn.execute(f"UPDATE curated_lists SET {assignments} WHERE id = ?", [*fields.values(), list_id])
    except sqlite3.IntegrityError:
        return jsonify({"error": "A list with this slug already exists"}), 409

    return jsonify({"success": True, "list": _curated_list(conn, list_id)})


@bp.delete("/lists")
def delete_lists():
    require_admin()
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids")
    if not isinstance(ids, list) or not ids:
        return jsonify({"error": "List IDs are required"}), 400

    conn = get_db()
    placeholders = ", ".join("?" for _ in ids)
    with conn:
        cur = conn.execute(f"DELETE FROM curated_lists WHERE id IN ({placeholders})", ids)
    return jsonify({"success": True, "deleted": cur.rowcount})


# ============================================================================
# Trailer review
# ============================================================================

@bp.get("/trailers")
def get_trailers():
    require_admin()
    status = request.args.get("status")
    sql = """
        SELECT id, title, year, poster_url, trailer_youtube_id, trailer_status, trailer_reviewed_at
        FROM availability_cards
        WHERE trailer_youtube_id IS NOT NULL AND trailer_youtube_id != ''
    """
    params: list = []
    if status:
        sql += " AND trailer_status = ?"
        params.append(status)
    sql += " ORDER BY title COLLATE NOCASE, id"

    trailers = [dict(r) for r in query(sql, params)]
    counts = {
        r["trailer_status"]: r["n"]
        for r in query(
            """
            SELECT trailer_status, COUNT(*) AS n FROM availability_cards
            WHERE trailer_youtube_id IS NOT NULL AND trailer_youtube_id != ''
            GROUP BY trailer_status
            """
        )
    }
    return jsonify({"trailers": trailers, "counts": counts})


def _set_trailer_status(ids: list, status: str) -> int:
    conn = get_db()
    placeholders = ", ".join("?" for _ in ids)
    with conn:
        cur = conn.execute(
            f"UPDATE availability_cards SET trailer_status = ?, trailer_reviewed_at = ? WHERE id IN ({placeholders})",
            [status, _utcnow().strftime(SQL_TS), *[str(i) for i in ids]],
        )
    return cur.rowcount


@bp.patch("/trailers")
def review_trailer():
    require_admin()
    payload = request.get_json(silent=True) or {}
    card_id, status = payload.get("id"), payload.get("status")
    if not card_id or not status:
        return jsonify({"error": "Missing id or status"}), 400
    if status not in TRAILER_STATUSES:
        return jsonify({"error": 'Invalid status. Must be "approved" or "rejected"'}), 400

    if not _set_trailer_status([card_id], status):
        return jsonify({"error": "Title not found"}), 404
    return jsonify({"success": True, "id": card_id, "status": status})


@bp.post("/trailers")
def bulk_review_trailers():
    require_admin()
    payload = request.get_json(silent=True) or {}
    ids, status = payload.get("ids"), payload.get("status")
    if not isinstance(ids, list) or not ids:
        return jsonify({"error": "Missing or invalid ids array"}), 400
    if status not in TRAILER_STATUSES:
        return jsonify({"error": 'Invalid status. Must be "approved" or "rejected"'}), 400

    count = _set_trailer_status(ids, status)
    return jsonify({"success": True, "count": count, "status": status})


# ============================================================================
# Users & analytics
# ============================================================================

@bp.get("/users")
def get_users():
    require_admin()
    rows = query(
        """
        SELECT u.user_id, u.email, u.is_admin, u.created_at,
               COUNT(i.id) AS watchlist_count
        FROM users u
        LEFT JOIN user_list_items i ON i.user_id = u.user_id AND i.list_type = 'watchlist'
        GROUP BY u.user_id
        ORDER BY u.created_at DESC, u.user_id DESC
        """
    )
    admin_emails = current_app.config.get("ADMIN_EMAILS") or set()
    users = [
        {
            "id": r["user_id"],
            "email": r["email"],
            "is_admin": bool(r["is_admin"]) or r["email"].lower() in admin_emails,
            "watchlist_count": r["watchlist_count"],
            "joined": r["created_at"],
        }
        for r in rows
    ]
    return jsonify({"users": users, "total": len(users)})


def _daily_series(counts: dict, start, days: int, key: str = "count") -> list[dict]:
    series = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        series.append({"date": day, key: counts.get(day, 0)})
    return series


@bp.get("/analytics")
def analytics():
    """Click-out totals, breakdowns and a zero-filled 30-day series."""
    require_admin()
    try:
        totals = query(
            """
            SELECT COUNT(*) AS total,
                   COUNT(DISTINCT user_id) AS users,
                   COUNT(DISTINCT session_id) AS sessions
            FROM click_events
            """
        )[0]
        by_service = query(
            """
            SELECT service, COUNT(*) AS count FROM click_events
            GROUP BY service ORDER BY count DESC, service ASC LIMIT 20
            """
        )
        top_titles = query(
            """
            SELECT e.card_id, c.title, c.year, c.poster_url, COUNT(*) AS count
            FROM click_events e
            JOIN availability_cards c ON c.id = e.card_id
            GROUP BY e.card_id
            ORDER BY count DESC, c.title ASC LIMIT 10
            """
        )
        today = _utcnow().date()
        start = today - timedelta(days=30)
        per_day = query(
            """
            SELECT substr(created_at, 1, 10) AS day, COUNT(*) AS count
            FROM click_events WHERE created_at >= ?
            GROUP BY day
            """,
            (start.isoformat(),),
        )
    except sqlite3.Error:
        current_app.logger.exception("Analytics error")
        return jsonify({"error": "Failed to fetch analytics"}), 500

    return jsonify({
        "totalClicks": totals["total"],
        "uniqueUsers": totals["users"],
        "uniqueSessions": totals["sessions"],
        "byService": [dict(r) for r in by_service],
        "topTitles": [dict(r) for r in top_titles],
        "clicksOverTime": _daily_series({r["day"]: r["count"] for r in per_day}, start, 31),
    })


@bp.get("/sessions")
def sessions():
    require_admin()
    now = _utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0).strftime(SQL_TS)
    week_start_day = now.date() - timedelta(days=6)
    week_ago = (now - timedelta(days=7)).strftime(SQL_TS)

    try:
        sessions_today = query(
            "SELECT COUNT(DISTINCT session_id) AS n FROM session_events WHERE created_at >= ?",
            (today_start,),
        )[0]["n"]
        sessions_week = query(
            "SELECT COUNT(DISTINCT session_id) AS n FROM session_events WHERE created_at >= ?",
            (week_ago,),
        )[0]["n"]
        page_views_today = query(
            "SELECT COUNT(*) AS n FROM session_events WHERE event_type = 'page_view' AND created_at >= ?",
            (today_start,),
        )[0]["n"]
        avg_duration = query(
            """
            SELECT AVG((julianday(last_seen) - julianday(first_seen)) * 86400.0) AS avg_seconds
            FROM (
                SELECT MIN(created_at) AS first_seen, MAX(created_at) AS last_seen
                FROM session_events WHERE created_at >= ?
                GROUP BY session_id
            )
            """,
            (week_ago,),
        )[0]["avg_seconds"]
        popular_pages = query(
            """
            SELECT page_path AS path, COUNT(*) AS count FROM session_events
            WHERE event_type = 'page_view' AND page_path IS NOT NULL AND created_at >= ?
            GROUP BY page_path ORDER BY count DESC, path ASC LIMIT 10
            """,
            (week_ago,),
        )
        event_rows = query(
            """
            SELECT event_type, event_data FROM session_events
            WHERE event_type IN ('filter_change', 'card_click') AND created_at >= ?
            """,
            (week_ago,),
        )
        by_day = query(
            """
            SELECT substr(created_at, 1, 10) AS day,
                   COUNT(DISTINCT session_id) AS sessions,
                   SUM(event_type = 'page_view') AS page_views
            FROM session_events WHERE created_at >= ?
            GROUP BY day
            """,
            (week_start_day.isoformat(),),
        )
    except sqlite3.Error:
        current_app.logger.exception("Sessions API error")
        return jsonify({"error": "Failed to fetch sessions"}), 500

    filter_counts: dict[str, int] = {}
    card_counts: dict[str, dict] = {}
    for row in event_rows:
        try:
            data = json.loads(row["event_data"] or "{}")
        except ValueError:
            continue
        if not isinstance(data, dict):
            continue
        if row["event_type"] == "filter_change":
            if data.get("filterType") and data.get("filterValue"):
                key = f"{data['filterType']}: {data['filterValue']}"
                filter_counts[key] = filter_counts.get(key, 0) + 1
        elif data.get("cardId"):
            entry = card_counts.setdefault(
                str(data["cardId"]), {"title": data.get("cardTitle") or "Unknown", "count": 0}
            )
            entry["count"] += 1

    popular_filters = sorted(
        ({"filter": k, "count": v} for k, v in filter_counts.items()),
        key=lambda item: (-item["count"], item["filter"]),
    )[:10]
    popular_cards = sorted(
        ({"cardId": k, **v} for k, v in card_counts.items()),
        key=lambda item: (-item["count"], item["cardId"]),
    )[:10]

    days = {r["day"]: r for r in by_day}
    sessions_by_day = []
    for offset in range(7):
        day = (week_start_day + timedelta(days=offset)).isoformat()
        row = days.get(day)
        sessions_by_day.append({
            "date": day,
            "sessions": row["sessions"] if row else 0,
            "pageViews": (row["page_views"] or 0) if row else 0,
        })

    return jsonify({
        "sessionsToday": sessions_today,
        "sessionsWeek": sessions_week,
        "pageViewsToday": page_views_today,
        "avgSessionDuration": round(avg_duration or 0),
        "popularPages": [dict(r) for r in popular_pages],
        "popularFilters": popular_filters,
        "popularCards": popular_cards,
        "sessionsByDay": sessions_by_day,
    })


@bp.get("/sync-runs")
def sync_runs():
    """Recent EPG sync runs recorded by the scheduler's monitor."""
    require_admin()
    from sync.monitoring import SyncMonitor

    try:
        limit = max(1, min(100, int(request.args.get("limit", 10))))
    except ValueError:
        limit = 10
    monitor = SyncMonitor(current_app.config["SYNC_METRICS_DB"])
    return jsonify({"runs": monitor.get_recent_runs(limit), "statistics": monitor.get_statistics(7)})
