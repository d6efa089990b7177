"""
Catalog query builder.

Translates browse filter selections into a single paginated SQL query over
availability_cards. Genre and service matching run against the normalized
card_genres / card_services lookup tables, so every filter is applied before
LIMIT/OFFSET and the count query shares the exact same WHERE clause.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Mapping

from .cards import normalize_key
from .schema import card_row_to_dict

logger = logging.getLogger(__name__)

PAGE_SIZE = 24
# pages past this are treated as malformed input
MAX_PAGE = 10**6

# label -> (min, max), inclusive; None means open-ended
DECADE_BUCKETS: dict[str, tuple[int | None, int | None]] = {
    "2020s": (2020, 2029),
    "2010s": (2010, 2019),
    "2000s": (2000, 2009),
    "1990s": (1990, 1999),
    "1980s": (1980, 1989),
    "1970s": (1970, 1979),
    "classic": (1900, 1969),
}

RUNTIME_BUCKETS: dict[str, tuple[int | None, int | None]] = {
    "short": (None, 89),
    "medium": (90, 120),
    "long": (121, None),
}

# Unknown ratings (NULL or 0) always sort last; every order ends on id.
_RATING_UNKNOWN = "(c.imdb_rating IS NULL OR c.imdb_rating = 0)"
SORT_ORDERS: dict[str, str] = {
    "default": f"c.featured DESC, {_RATING_UNKNOWN}, COALESCE(c.imdb_rating, 0) DESC, c.id ASC",
    "rating": f"{_RATING_UNKNOWN}, COALESCE(c.imdb_rating, 0) DESC, c.id ASC",
    "year_desc": "(c.year IS NULL), c.year DESC, c.id ASC",
    "year_asc": "(c.year IS NULL), c.year ASC, c.id ASC",
    "title": "c.title COLLATE NOCASE ASC, c.id ASC",
    "recently_added": "c.created_at DESC, c.id ASC",
}

BROWSE_COLUMNS = (
    "c.id, c.title, c.year, c.poster_url, c.imdb_rating, c.runtime_minutes, "
    "c.sources, c.genres, c.featured, c.mpaa_rating"
)


class CatalogQueryError(RuntimeError):
    """The catalog backend failed while running a browse query."""


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class CatalogFilters:
    genre: str | None = None
    decade: str | None = None
    runtime: str | None = None
    service: str | None = None
    q: str | None = None
    sort: str = "default"

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "CatalogFilters":
        """Build filters from request args, dropping values we don't recognise."""
        decade = _clean(args.get("decade"))
        if decade is not None and decade not in DECADE_BUCKETS:
            logger.debug(f"Ignoring unknown decade bucket: {decade!r}")
            decade = None
        runtime = _clean(args.get("runtime"))
        if runtime is not None and runtime not in RUNTIME_BUCKETS:
            logger.debug(f"Ignoring unknown runtime bucket: {runtime!r}")
            runtime = None
        sort = _clean(args.get("sort")) or "default"
        if sort not in SORT_ORDERS:
            sort = "default"
        return cls(
            genre=_clean(args.get("genre")),
            decade=decade,
            runtime=runtime,
            service=_clean(args.get("service")),
            q=_clean(args.get("q")),
            sort=sort,
        )

    def as_params(self) -> dict[str, str]:
        params = {
            "genre": self.genre,
            "decade": self.decade,
            "runtime": self.runtime,
            "service": self.service,
            "q": self.q,
        }
        if self.sort != "default":
            params["sort"] = self.sort
        return {k: v for k, v in params.items() if v}


@dataclass
class CatalogPage:
    cards: list[dict]
    total_count: int
    next_page: int | None
    page: int

    def to_payload(self) -> dict:
        return {
            "cards": self.cards,
            "totalCount": self.total_count,
            "nextPage": self.next_page,
            "page": self.page,
        }


def parse_page(raw: Any) -> int:
    try:
        page = int(raw) if raw is not None and str(raw).strip() != "" else 0
    except (TypeError, ValueError):
        page = 0
    return page if 0 <= page <= MAX_PAGE else 0


@dataclass
class CatalogQuery:
    """A WHERE clause plus its parameters, built from CatalogFilters."""

    filters: CatalogFilters
    conditions: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        f = self.filters

        if f.genre:
            self.conditions.append(
                "EXISTS (SELECT 1 FROM card_genres g WHERE g.card_id = c.id AND g.genre_key = ?)"
            )
            self.params.append(normalize_key(f.genre))

        if f.decade:
            low, high = DECADE_BUCKETS[f.decade]
            self._add_range("c.year", low, high)

        if f.runtime:
            low, high = RUNTIME_BUCKETS[f.runtime]
            self.conditions.append("c.runtime_minutes > 0")
            self._add_range("c.runtime_minutes", low, high)

        if f.service:
            self.conditions.append(
                "EXISTS (SELECT 1 FROM card_services s "
                "WHERE s.card_id = c.id AND s.service_key LIKE ? ESCAPE '\\')"
            )
            self.params.append(f"%{_escape_like(normalize_key(f.service))}%")

        if f.q:
            # title search, case-insensitive substring
            self.conditions.append("lower(c.title) LIKE ? ESCAPE '\\'")
            self.params.append(f"%{_escape_like(f.q.lower())}%")

    def _add_range(self, column: str, low: int | None, high: int | None) -> None:
        if low is not None:
            self.conditions.append(f"{column} >= ?")
            self.params.append(low)
        if high is not None:
            self.conditions.append(f"{column} <= ?")
            self.params.append(high)

    @property
    def where_clause(self) -> str:
        return " AND ".join(self.conditions) if self.conditions else "1 = 1"

    @property
    def order_clause(self) -> str:
        return SORT_ORDERS[self.filters.sort]

    def count_sql(self) -> tuple[str, list]:
        sql = f"SELECT COUNT(*) AS cnt FROM availability_cards c WHERE {self.where_clause}"
        return sql, list(self.params)

    def page_sql(self, page: int, page_size: int = PAGE_SIZE) -> tuple[str, list]:
        sql = f"""
            SELECT {BROWSE_COLUMNS}
            FROM availability_cards c
            WHERE {self.where_clause}
            ORDER BY {self.order_clause}
            LIMIT ? OFFSET ?
        """
        return sql, list(self.params) + [page_size, page * page_size]


def browse_catalog(
    conn: sqlite3.Connection,
    filters: CatalogFilters,
    page: int = 0,
    page_size: int = PAGE_SIZE,
) -> CatalogPage:
    """Run one filtered, sorted page of the catalog plus its total count."""
    page = page if 0 <= page <= MAX_PAGE else 0
    built = CatalogQuery(filters)
    count_sql, count_params = built.count_sql()
    page_sql, page_params = built.page_sql(page, page_size)

    try:
        total = conn.execute(count_sql, count_params).fetchone()["cnt"]
        rows = conn.execute(page_sql, page_params).fetchall()
    except sqlite3.Error as exc:
        raise CatalogQueryError(f"browse query failed: {exc}") from exc

    cards = [card_row_to_dict(row) for row in rows]
    has_more = page * page_size + len(cards) < total
    logger.debug(
        f"browse filters={filters.as_params()} page={page} -> {len(cards)} of {total}"
    )
    return CatalogPage(
        cards=cards,
        total_count=total,
        next_page=page + 1 if has_more else None,
        page=page,
    )
