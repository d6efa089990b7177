from __future__ import annotations

import json
import sqlite3
from typing import Mapping, Sequence

CARDS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS availability_cards (
    id TEXT PRIMARY KEY,
    imdb_id TEXT UNIQUE,
    watchmode_id TEXT,
    title TEXT NOT NULL,
    year INTEGER,
    type TEXT NOT NULL DEFAULT 'movie' CHECK (type IN ('movie', 'series')),
    genres TEXT NOT NULL DEFAULT '[]',
    sources TEXT NOT NULL DEFAULT '[]',
    poster_url TEXT,
    backdrop_url TEXT,
    synopsis TEXT,
    runtime_minutes INTEGER,
    mpaa_rating TEXT,
    director TEXT,
    country TEXT,
    imdb_rating REAL,
    featured INTEGER NOT NULL DEFAULT 0,
    trailer_youtube_id TEXT,
    trailer_status TEXT NOT NULL DEFAULT 'none',
    trailer_reviewed_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

CARD_GENRES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS card_genres (
    card_id TEXT NOT NULL REFERENCES availability_cards(id) ON DELETE CASCADE,
    genre_key TEXT NOT NULL,
    PRIMARY KEY (card_id, genre_key)
);
"""

CARD_SERVICES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS card_services (
    card_id TEXT NOT NULL REFERENCES availability_cards(id) ON DELETE CASCADE,
    service_name TEXT NOT NULL,
    service_key TEXT NOT NULL
);
"""

USERS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
    password_hash TEXT NOT NULL,
    is_admin INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

LIST_ITEMS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_list_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    card_id TEXT NOT NULL REFERENCES availability_cards(id) ON DELETE CASCADE,
    list_type TEXT NOT NULL DEFAULT 'watchlist',
    position INTEGER,
    added_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, card_id, list_type)
);
"""

SHARED_LISTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS shared_lists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    description TEXT,
    card_ids TEXT NOT NULL DEFAULT '[]',
    header_image_url TEXT,
    card_count INTEGER NOT NULL DEFAULT 0,
    is_public INTEGER NOT NULL DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

CURATED_LISTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS curated_lists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    description TEXT DEFAULT '',
    cover_image TEXT,
    cards TEXT NOT NULL DEFAULT '[]',
    type TEXT NOT NULL DEFAULT 'editorial'
        CHECK (type IN ('editorial', 'user-watchlist', 'user-custom')),
    author TEXT,
    featured INTEGER NOT NULL DEFAULT 0,
    published INTEGER NOT NULL DEFAULT 0,
    published_at TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

CLICK_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS click_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    card_id TEXT NOT NULL,
    service TEXT NOT NULL,
    service_type TEXT,
    deep_link TEXT,
    session_id TEXT,
    user_agent TEXT,
    referrer TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

SESSION_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS session_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    page_path TEXT,
    event_data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

EPG_SCHEDULE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS epg_schedule (
    id TEXT PRIMARY KEY,
    channel_id TEXT NOT NULL,
    channel_name TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    card_id TEXT REFERENCES availability_cards(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    synopsis TEXT,
    is_genre_highlight INTEGER NOT NULL DEFAULT 0,
    source TEXT NOT NULL CHECK (source IN ('api', 'spreadsheet', 'manual')),
    imported_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

TABLES_SQL: Sequence[str] = (
    CARDS_TABLE_SQL,
    CARD_GENRES_TABLE_SQL,
    CARD_SERVICES_TABLE_SQL,
    USERS_TABLE_SQL,
    LIST_ITEMS_TABLE_SQL,
    SHARED_LISTS_TABLE_SQL,
    CURATED_LISTS_TABLE_SQL,
    CLICK_EVENTS_TABLE_SQL,
    SESSION_EVENTS_TABLE_SQL,
    EPG_SCHEDULE_TABLE_SQL,
)

INDEX_SQL: Sequence[str] = (
    "CREATE INDEX IF NOT EXISTS ix_cards_featured_rating ON availability_cards (featured, imdb_rating);",
    "CREATE INDEX IF NOT EXISTS ix_cards_year ON availability_cards (year);",
    "CREATE INDEX IF NOT EXISTS ix_cards_runtime ON availability_cards (runtime_minutes);",
    "CREATE INDEX IF NOT EXISTS ix_card_genres_key ON card_genres (genre_key);",
    "CREATE INDEX IF NOT EXISTS ix_card_services_card ON card_services (card_id);",
    "CREATE INDEX IF NOT EXISTS ix_card_services_key ON card_services (service_key);",
    "CREATE INDEX IF NOT EXISTS ix_list_items_user ON user_list_items (user_id, list_type);",
    "CREATE INDEX IF NOT EXISTS ix_shared_lists_user ON shared_lists (user_id);",
    "CREATE INDEX IF NOT EXISTS ix_click_events_created ON click_events (created_at);",
    "CREATE INDEX IF NOT EXISTS ix_session_events_session ON session_events (session_id);",
    "CREATE INDEX IF NOT EXISTS ix_session_events_created ON session_events (created_at);",
    "CREATE INDEX IF NOT EXISTS ix_epg_schedule_time ON epg_schedule (start_time, end_time);",
)


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they do not yet exist."""
    for stmt in TABLES_SQL:
        conn.execute(stmt)
    for stmt in INDEX_SQL:
        conn.execute(stmt)
    conn.commit()


def _json_list(value) -> list:
    if not value:
        return []
    if isinstance(value, list):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


def card_row_to_dict(row: Mapping[str, object]) -> dict:
    """Convert a sqlite3.Row from availability_cards into an API-friendly dict."""
    data = dict(row)
    result = {}
    for key, value in data.items():
        if key in ("genres", "sources"):
            result[key] = _json_list(value)
        elif key == "featured":
            result[key] = bool(value)
        else:
            result[key] = value
    return result


def list_row_to_dict(row: Mapping[str, object], ids_column: str = "card_ids") -> dict:
    """Decode a shared/curated list row; boolean flags come back as bools."""
    data = dict(row)
    if ids_column in data:
        data[ids_column] = _json_list(data[ids_column])
    for flag in ("is_public", "featured", "published"):
        if flag in data:
            data[flag] = bool(data[flag])
    return data
