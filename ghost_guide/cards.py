"""
Catalog card persistence helpers.

Cards are written by the admin API and the sync job; the browse path only
reads them. Every write also rewrites the normalized genre/service lookup
rows so that filtering can run entirely in SQL.
"""
from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Iterable
from uuid import uuid4

from .schema import card_row_to_dict

CARD_COLUMNS = (
    "imdb_id",
    "watchmode_id",
    "title",
    "year",
    "type",
    "genres",
    "sources",
    "poster_url",
    "backdrop_url",
    "synopsis",
    "runtime_minutes",
    "mpaa_rating",
    "director",
    "country",
    "imdb_rating",
    "featured",
    "trailer_youtube_id",
    "trailer_status",
)

MIN_YEAR = 1870
MAX_YEAR = 2100
CARD_TYPES = ("movie", "series")


class CardValidationError(ValueError):
    """Raised when a card payload violates the catalog invariants."""


def normalize_key(value: str) -> str:
    return " ".join(str(value).split()).lower()


def _clean_genres(genres: Any) -> list[str]:
    if genres is None:
        return []
    if isinstance(genres, str):
        genres = genres.split(",")
    cleaned = []
    for genre in genres:
        text = str(genre).strip()
        if text:
            cleaned.append(text)
    return cleaned


def _clean_sources(sources: Any) -> list[dict]:
    if not sources:
        return []
    if not isinstance(sources, list):
        raise CardValidationError("sources must be a list of records")
    cleaned = []
    for source in sources:
        if not isinstance(source, dict):
            raise CardValidationError("each source must be an object")
        service = str(source.get("service") or "").strip()
        if not service:
            raise CardValidationError("each source needs a non-empty service name")
        cleaned.append({**source, "service": service})
    return cleaned


def _parse_year(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise CardValidationError(f"year must be an integer, got {value!r}")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise CardValidationError(f"year {year} is out of range")
    return year


def _parse_runtime(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        runtime = int(value)
    except (TypeError, ValueError):
        raise CardValidationError(f"runtime_minutes must be an integer, got {value!r}")
    if runtime < 0:
        raise CardValidationError("runtime_minutes cannot be negative")
    return runtime


def _parse_rating(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        raise CardValidationError(f"imdb_rating must be a number, got {value!r}")
    if not 0 <= rating <= 10:
        raise CardValidationError(f"imdb_rating {rating} is out of range")
    return rating


def _parse_title(value: Any) -> str:
    title = str(value or "").strip()
    if not title:
        raise CardValidationError("title is required")
    return title


def _parse_type(value: Any) -> str:
    card_type = str(value or "movie").strip().lower()
    if card_type not in CARD_TYPES:
        raise CardValidationError(f"type must be one of {', '.join(CARD_TYPES)}")
    return card_type


# column -> validator, shared by inserts and partial updates
_FIELD_PARSERS = {
    "title": _parse_title,
    "type": _parse_type,
    "year": _parse_year,
    "runtime_minutes": _parse_runtime,
    "imdb_rating": _parse_rating,
    "genres": _clean_genres,
    "sources": _clean_sources,
    "featured": lambda value: 1 if value else 0,
}


def _prepare_card_payload(data: dict) -> dict:
    """Normalise an incoming card dict for storage."""
    return {
        "imdb_id": data.get("imdb_id") or None,
        "watchmode_id": data.get("watchmode_id") or None,
        "title": _parse_title(data.get("title")),
        "year": _parse_year(data.get("year")),
        "type": _parse_type(data.get("type")),
        "genres": _clean_genres(data.get("genres")),
        "sources": _clean_sources(data.get("sources")),
        "poster_url": data.get("poster_url"),
        "backdrop_url": data.get("backdrop_url"),
        "synopsis": data.get("synopsis"),
        "runtime_minutes": _parse_runtime(data.get("runtime_minutes")),
        "mpaa_rating": data.get("mpaa_rating"),
        "director": data.get("director"),
        "country": data.get("country"),
        "imdb_rating": _parse_rating(data.get("imdb_rating")),
        "featured": 1 if data.get("featured") else 0,
        "trailer_youtube_id": data.get("trailer_youtube_id"),
        "trailer_status": data.get("trailer_status") or "none",
    }


def _sync_lookup_rows(conn: sqlite3.Connection, card_id: str, genres: Iterable[str], sources: Iterable[dict]) -> None:
    conn.execute("DELETE FROM card_genres WHERE card_id = ?", (card_id,))
    conn.execute("DELETE FROM card_services WHERE card_id = ?", (card_id,))
    genre_keys = {normalize_key(g) for g in genres if normalize_key(g)}
    conn.executemany(
        "INSERT INTO card_genres (card_id, genre_key) VALUES (?, ?)",
        [(card_id, key) for key in sorted(genre_keys)],
    )
    conn.executemany(
        "INSERT INTO card_services (card_id, service_name, service_key) VALUES (?, ?, ?)",
        [(card_id, s["service"], normalize_key(s["service"])) for s in sources],
    )


def insert_card(conn: sqlite3.Connection, data: dict) -> str:
    """Insert a new card and its lookup rows. Returns the card id."""
    payload = _prepare_card_payload(data)
    card_id = str(data.get("id") or uuid4())
    now = data.get("created_at") or datetime.utcnow().isoformat(timespec="seconds")
    values = [
        json.dumps(payload[col]) if col in ("genres", "sources") else payload[col]
        for col in CARD_COLUMNS
    ]
    with conn:
        conn.execute(
            f"""
            INSERT INTO availability_cards (id, {", ".join(CARD_COLUMNS)}, created_at, updated_at)
            VALUES (?, {", ".join("?" for _ in CARD_COLUMNS)}, ?, ?)
            """,
            [card_id, *values, now, now],
        )
        _sync_lookup_rows(conn, card_id, payload["genres"], payload["sources"])
    return card_id


def update_card(conn: sqlite3.Connection, card_id: str, updates: dict) -> bool:
    """Apply a partial update to a card. Returns False when the card is missing."""
    fields = {k: v for k, v in updates.items() if k in CARD_COLUMNS}
    for column, parse in _FIELD_PARSERS.items():
        if column in fields:
            fields[column] = parse(fields[column])
    if not fields:
        return get_card(conn, card_id) is not None

    assignments = ", ".join(f"{col} = ?" for col in fields)
    params = [json.dumps(v) if k in ("genres", "sources") else v for k, v in fields.items()]
    params.append(datetime.utcnow().isoformat(timespec="seconds"))
    params.append(card_id)

    with conn:
        cur = conn.execute(
            f"UPDATE availability_cards SET {assignments}, updated_at = ? WHERE id = ?",
            params,
        )
        if cur.rowcount == 0:
            return False
        if "genres" in fields or "sources" in fields:
            row = conn.execute(
                "SELECT genres, sources FROM availability_cards WHERE id = ?", (card_id,)
            ).fetchone()
            _sync_lookup_rows(conn, card_id, json.loads(row["genres"]), json.loads(row["sources"]))
    return True


def delete_card(conn: sqlite3.Connection, card_id: str) -> int:
    with conn:
        conn.execute("DELETE FROM card_genres WHERE card_id = ?", (card_id,))
        conn.execute("DELETE FROM card_services WHERE card_id = ?", (card_id,))
        conn.execute("DELETE FROM user_list_items WHERE card_id = ?", (card_id,))
        cur = conn.execute("DELETE FROM availability_cards WHERE id = ?", (card_id,))
    return cur.rowcount


def get_card(conn: sqlite3.Connection, card_id: str) -> dict | None:
    row = conn.execute("SELECT * FROM availability_cards WHERE id = ?", (card_id,)).fetchone()
    return card_row_to_dict(row) if row else None


def get_cards_by_ids(conn: sqlite3.Connection, card_ids: Iterable[str], columns: str = "*") -> list[dict]:
    """Fetch cards in the order of `card_ids`, skipping ids that no longer exist."""
    ordered = [str(cid) for cid in card_ids]
    if not ordered:
        return []
    unique = list(dict.fromkeys(ordered))
    placeholders = ", ".join("?" for _ in unique)
    rows = conn.execute(
        f"SELECT {columns} FROM availability_cards WHERE id IN ({placeholders})",
        unique,
    ).fetchall()
    by_id = {row["id"]: card_row_to_dict(row) for row in rows}
    return [by_id[cid] for cid in ordered if cid in by_id]


def find_card_id_by_title(conn: sqlite3.Connection, title: str) -> str | None:
    row = conn.execute(
        "SELECT id FROM availability_cards WHERE lower(title) = lower(?) ORDER BY id LIMIT 1",
        (title.strip(),),
    ).fetchone()
    return row["id"] if row else None
