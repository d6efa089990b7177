"""
HTTP client for the Ghost Guide API plus a small client-side query cache.

`WatchlistStore` and `SharedListStore` keep the caller's view of the user's
lists responsive: a mutation is applied to the cached entry right away, sent
to the server, and then either reconciled (the entry is invalidated and the
next read refetches server truth) or rolled back to the snapshot taken
before the change.
"""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

import requests

logger = logging.getLogger(__name__)

_MISSING = object()


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class GhostGuideClient:
    def __init__(self, base_url: str, token: str | None = None, session: requests.Session | None = None,
                 timeout: int = 20):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            r = self.session.request(method, f"{self.base_url}{path}", headers=headers,
                                     timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ApiError(0, str(exc)) from exc

        if not r.ok:
            try:
                message = r.json().get("error") or r.reason
            except ValueError:
                message = r.reason
            raise ApiError(r.status_code, message or "Request failed")
        return r.json() if r.content else None

    # ----- auth -----
    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    # ----- catalog -----
    def browse(self, filters: Dict[str, Any] | None = None, page: int = 0) -> dict:
        params = {k: v for k, v in (filters or {}).items() if v}
        params["page"] = page
        return self._request("GET", "/api/browse", params=params)

    def iter_browse(self, filters: Dict[str, Any] | None = None) -> Iterator[dict]:
        """Yield every matching card, following nextPage until it is null."""
        page: Optional[int] = 0
        while page is not None:
            data = self.browse(filters, page)
            yield from data["cards"]
            page = data.get("nextPage")

    # ----- watchlist -----
    def get_watchlist(self) -> List[dict]:
        try:
            return self._request("GET", "/api/user/watchlist")["watchlist"]
        except ApiError as exc:
            if exc.status == 401:
                # signed out reads as an empty watchlist
                return []
            raise

    def add_to_watchlist(self, card_id: str) -> dict:
        return self._request("POST", "/api/user/watchlist", json={"cardId": card_id})

    def remove_from_watchlist(self, card_id: str) -> dict:
        return self._request("DELETE", "/api/user/watchlist", params={"cardId": card_id})

    def reorder_watchlist(self, items: List[dict]) -> dict:
        return self._request("PATCH", "/api/user/watchlist", json={"items": items})

    # ----- shared lists -----
    def get_shared_lists(self) -> List[dict]:
        return self._request("GET", "/api/user/shared-lists")["lists"]

    def create_shared_list(self, name: str, description: str | None = None) -> dict:
        return self._request("POST", "/api/user/shared-lists",
                             json={"name": name, "description": description})["list"]

    def delete_shared_list(self, list_id) -> dict:
        return self._request("DELETE", "/api/user/shared-lists", params={"id": list_id})

    # ----- tracking -----
    def track_click_out(self, card_id: str, service: str, service_type: str | None = None,
                        deep_link: str | None = None, session_id: str | None = None) -> dict:
        return self._request("POST", "/api/track/click-out", json={
            "cardId": card_id,
            "service": service,
            "serviceType": service_type,
            "deepLink": deep_link,
            "sessionId": session_id,
        })

    def track_events(self, events: List[dict]) -> dict:
        return self._request("POST", "/api/track", json=events)


class QueryCache:
    """Keyed cache with snapshot/restore for optimistic updates."""

    def __init__(self):
        self._data: Dict[Hashable, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self, key: Hashable) -> Any:
        with self._lock:
            value = self._data.get(key, _MISSING)
            # the sentinel must keep its identity for restore()
            return value if value is _MISSING else copy.deepcopy(value)

    def restore(self, key: Hashable, snapshot: Any) -> None:
        with self._lock:
            if snapshot is _MISSING:
                self._data.pop(key, None)
            else:
                self._data[key] = snapshot

    def optimistic(self, key: Hashable, update: Callable[[Any], Any], commit: Callable[[], Any]) -> Any:
        """
        Apply `update` to the cached value, then run `commit` against the server.

        Success invalidates the key so the next read reconciles with the
        server; any exception restores the snapshot and is re-raised.
        """
        with self._lock:
            previous = self.snapshot(key)
            self._data[key] = update(copy.deepcopy(self._data.get(key)))
        try:
            result = commit()
        except Exception:
            self.restore(key, previous)
            raise
        self.invalidate(key)
        return result


class WatchlistStore:
    KEY = ("watchlist",)

    def __init__(self, client: GhostGuideClient, cache: QueryCache | None = None):
        self.client = client
        self.cache = cache or QueryCache()

    def items(self) -> List[dict]:
        cached = self.cache.get(self.KEY)
        if cached is None:
            cached = self.client.get_watchlist()
            self.cache.set(self.KEY, cached)
        return cached

    def contains(self, card_id: str) -> bool:
        return any(item["cardId"] == card_id for item in self.items())

    def cards(self) -> List[dict]:
        # placeholders added optimistically have no card yet
        return [item["card"] for item in self.items() if item.get("card")]

    def add(self, card_id: str) -> None:
        def update(old):
            old = old or []
            if any(item["cardId"] == card_id for item in old):
                return old
            return old + [{
                "id": f"temp-{card_id}",
                "cardId": card_id,
                "addedAt": datetime.now(timezone.utc).isoformat(),
                "position": len(old),
                "card": None,
            }]

        def commit():
            try:
                self.client.add_to_watchlist(card_id)
            except ApiError as exc:
                if exc.status != 409:
                    raise
                logger.debug("Card %s already in watchlist", card_id)

        self.cache.optimistic(self.KEY, update, commit)

    def remove(self, card_id: str) -> None:
        self.cache.optimistic(
            self.KEY,
            lambda old: [item for item in old or [] if item["cardId"] != card_id],
            lambda: self.client.remove_from_watchlist(card_id),
        )

    def reorder(self, items: List[dict]) -> None:
        positions = {item["cardId"]: item["position"] for item in items}

        def update(old):
            moved = [{**item, "position": positions.get(item["cardId"], item["position"])} for item in old or []]
            return sorted(moved, key=lambda item: item["position"])

        self.cache.optimistic(self.KEY, update, lambda: self.client.reorder_watchlist(items))


class SharedListStore:
    KEY = ("shared-lists",)

    def __init__(self, client: GhostGuideClient, cache: QueryCache | None = None):
        self.client = client
        self.cache = cache or QueryCache()

    def lists(self) -> List[dict]:
        cached = self.cache.get(self.KEY)
        if cached is None:
            cached = self.client.get_shared_lists()
            self.cache.set(self.KEY, cached)
        return cached

    def create(self, name: str, description: str | None = None) -> dict:
        def update(old):
            placeholder = {
                "id": f"temp-{datetime.now(timezone.utc).timestamp()}",
                "name": name,
                "description": description,
                "card_ids": [],
                "card_count": 0,
            }
            return [placeholder] + (old or [])

        return self.cache.optimistic(self.KEY, update, lambda: self.client.create_shared_list(name, description))

    def delete(self, list_id) -> None:
        self.cache.optimistic(
            self.KEY,
            lambda old: [lst for lst in old or [] if lst["id"] != list_id],
            lambda: self.client.delete_shared_list(list_id),
        )
