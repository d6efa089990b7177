from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional

import requests

from .config import OMDB_BASE_URL

RUNTIME_RE = re.compile(r"(\d+)")


class OMDbError(RuntimeError):
    pass


def _value(raw: Any) -> Optional[str]:
    """OMDb spells missing values as "N/A"."""
    if raw is None:
        return None
    raw = str(raw).strip()
    return None if not raw or raw == "N/A" else raw


class OMDbClient:
    def __init__(self, api_key: str | None = None, base_url: str = OMDB_BASE_URL, timeout: int = 20):
        self.api_key = api_key or os.getenv("OMDB_API_KEY")
        if not self.api_key:
            raise OMDbError("OMDB API key not configured")
        self.base_url = base_url
        self.timeout = timeout

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {**params, "apikey": self.api_key}
        try:
            r = requests.get(self.base_url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as exc:
            raise OMDbError(f"OMDb request failed: {exc}") from exc

    # ----- public helpers -----
    def get_by_imdb_id(self, imdb_id: str, plot: str = "full") -> Optional[Dict[str, Any]]:
        """Raw OMDb record, or None when OMDb does not know the id."""
        data = self._get({"i": imdb_id, "plot": plot})
        if data.get("Response") != "True":
            return None
        return data

    def search(self, title: str, year: int | None = None, page: int = 1) -> List[Dict[str, Any]]:
        if not title:
            return []
        params: Dict[str, Any] = {"s": title, "page": page}
        if year:
            params["y"] = year
        data = self._get(params)
        if data.get("Response") != "True":
            return []
        return [
            {
                "imdb_id": item.get("imdbID"),
                "title": item.get("Title"),
                "year": parse_year(item.get("Year")),
                "type": "series" if item.get("Type") == "series" else "movie",
                "poster_url": _value(item.get("Poster")),
            }
            for item in data.get("Search") or []
        ]


def parse_runtime(raw: Any) -> Optional[int]:
    value = _value(raw)
    if not value:
        return None
    match = RUNTIME_RE.search(value)
    return int(match.group(1)) if match else None


def parse_year(raw: Any) -> Optional[int]:
    # series years look like "1993–2002"
    value = _value(raw)
    match = RUNTIME_RE.search(value or "")
    return int(match.group(1)) if match else None


def parse_rating(raw: Any) -> Optional[float]:
    value = _value(raw)
    try:
        return float(value) if value else None
    except ValueError:
        return None


def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """OMDb record -> card column names; missing values come back as None."""
    genre = _value(data.get("Genre"))
    return {
        "imdb_id": data.get("imdbID"),
        "title": _value(data.get("Title")),
        "year": parse_year(data.get("Year")),
        "type": "series" if data.get("Type") == "series" else "movie",
        "poster_url": _value(data.get("Poster")),
        "synopsis": _value(data.get("Plot")),
        "imdb_rating": parse_rating(data.get("imdbRating")),
        "mpaa_rating": _value(data.get("Rated")),
        "runtime_minutes": parse_runtime(data.get("Runtime")),
        "director": _value(data.get("Director")),
        "country": _value(data.get("Country")),
        "genres": [g.strip().lower() for g in genre.split(",") if g.strip()] if genre else [],
    }


ENRICH_FIELDS = (
    "poster_url",
    "synopsis",
    "imdb_rating",
    "mpaa_rating",
    "runtime_minutes",
    "director",
    "country",
    "genres",
)


def enrichment_updates(data: Dict[str, Any]) -> Dict[str, Any]:
    """Only the fields OMDb actually filled in."""
    normalized = normalize(data)
    return {field: normalized[field] for field in ENRICH_FIELDS if normalized[field] not in (None, [])}
