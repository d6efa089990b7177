"""
Watchmode client for refreshing a card's streaming sources.

Every Watchmode call costs an API credit, so callers keep the resolved
watchmode_id on the card and only search by imdb_id once.
"""
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .config import WATCHMODE_BASE_URL

# Watchmode source type -> our source type
SOURCE_TYPES = {
    "sub": "subscription",
    "addon": "subscription",
    "free": "free",
    "rent": "rent",
    "buy": "buy",
}


class WatchmodeError(RuntimeError):
    pass


def map_source(source: Dict[str, Any], verified_at: str | None = None) -> Dict[str, Any]:
    """One Watchmode source record as a card source."""
    return {
        "service": (source.get("name") or "").strip(),
        "service_id": str(source.get("source_id") or ""),
        "type": SOURCE_TYPES.get(source.get("type"), "subscription"),
        "deep_link": source.get("web_url") or source.get("ios_url") or source.get("android_url") or "",
        "price": source.get("price"),
        "quality": source.get("format"),
        "region": source.get("region"),
        "last_verified": verified_at,
    }


class WatchmodeClient:
    def __init__(self, api_key: str | None = None, base_url: str = WATCHMODE_BASE_URL, timeout: int = 20):
        self.api_key = api_key or os.getenv("WATCHMODE_API_KEY")
        if not self.api_key:
            raise WatchmodeError("Watchmode API key not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        params = {**(params or {}), "apiKey": self.api_key}
        try:
            r = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as exc:
            raise WatchmodeError(f"Watchmode request failed: {exc}") from exc

    def find_title_id(self, imdb_id: str) -> Optional[str]:
        data = self._get("/search/", {"search_field": "imdb_id", "search_value": imdb_id})
        results = data.get("title_results") if isinstance(data, dict) else None
        if not results:
            return None
        return str(results[0]["id"])

    def get_sources(self, watchmode_id: str, region: str = "US") -> List[Dict[str, Any]]:
        """Streaming sources for a title, mapped to card sources; nameless entries are dropped."""
        data = self._get(f"/title/{watchmode_id}/sources/", {"regions": region})
        if not isinstance(data, list):
            raise WatchmodeError("Watchmode returned an unexpected sources payload")
        now = datetime.now(timezone.utc).isoformat()
        sources = [map_source(item, now) for item in data if isinstance(item, dict)]
        return [s for s in sources if s["service"]]
