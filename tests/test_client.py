from unittest.mock import Mock

import pytest
import requests

from ghost_guide.client import ApiError, GhostGuideClient, QueryCache, SharedListStore, WatchlistStore


def _response(status=200, payload=None, reason="OK"):
    r = Mock(ok=status < 400, status_code=status, reason=reason)
    r.content = b"{}" if payload is not None else b""
    r.json.return_value = payload
    return r


def _item(card_id, position):
    return {"id": f"w-{card_id}", "cardId": card_id, "position": position, "card": {"id": card_id}}


def test_request_sends_token_and_maps_errors():
    session = Mock()
    session.request.return_value = _response(404, {"error": "Card not found"}, "Not Found")
    client = GhostGuideClient("https://ghost.example/", token="7:viewer@example.com", session=session)

    with pytest.raises(ApiError) as excinfo:
        client.add_to_watchlist("nope")

    assert excinfo.value.status == 404
    assert excinfo.value.message == "Card not found"
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "https://ghost.example/api/user/watchlist")
    assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer 7:viewer@example.com"}


def test_request_wraps_transport_errors():
    session = Mock()
    session.request.side_effect = requests.Timeout("read timed out")
    with pytest.raises(ApiError) as excinfo:
        GhostGuideClient("https://ghost.example", session=session).browse()
    assert excinfo.value.status == 0


def test_login_stores_token():
    session = Mock()
    session.request.return_value = _response(200, {"token": "3:a@b.c", "user": {"user_id": 3}})
    client = GhostGuideClient("https://ghost.example", session=session)
    client.login("a@b.c", "pw")
    assert client.token == "3:a@b.c"


def test_signed_out_watchlist_is_empty():
    session = Mock()
    session.request.return_value = _response(401, {"error": "Unauthorized"}, "Unauthorized")
    assert GhostGuideClient("https://ghost.example", session=session).get_watchlist() == []


def test_iter_browse_follows_next_page():
    client = GhostGuideClient("https://ghost.example", session=Mock())
    pages = {
        0: {"cards": [{"id": "a"}, {"id": "b"}], "nextPage": 1},
        1: {"cards": [{"id": "c"}], "nextPage": None},
    }
    client.browse = Mock(side_effect=lambda filters, page: pages[page])

    assert [c["id"] for c in client.iter_browse({"genre": "horror"})] == ["a", "b", "c"]
    assert client.browse.call_count == 2


def test_optimistic_success_invalidates_key():
    cache = QueryCache()
    cache.set("k", [1])
    result = cache.optimistic("k", lambda old: old + [2], lambda: "ok")
    assert result == "ok"
    assert cache.get("k") is None


def test_optimistic_failure_restores_snapshot():
    cache = QueryCache()
    cache.set("k", [1])
    seen = []

    def commit():
        seen.append(cache.get("k"))
        raise ApiError(500, "boom")

    with pytest.raises(ApiError):
        cache.optimistic("k", lambda old: old + [2], commit)

    assert seen == [[1, 2]]
    assert cache.get("k") == [1]


def test_optimistic_failure_on_empty_cache_leaves_it_empty():
    cache = QueryCache()
    with pytest.raises(RuntimeError):
        cache.optimistic("k", lambda old: ["x"], Mock(side_effect=RuntimeError("down")))
    assert cache.get("k", "unset") == "unset"


def test_failed_add_on_cold_cache_refetches_next_read():
    api = Mock()
    api.add_to_watchlist.side_effect = ApiError(500, "Failed to add to watchlist")
    api.get_watchlist.return_value = [_item("b", 0)]
    store = WatchlistStore(api, QueryCache())

    with pytest.raises(ApiError):
        store.add("a")

    assert store.cache.get(WatchlistStore.KEY) is None
    assert not store.contains("a")
    assert store.contains("b")


def test_watchlist_add_shows_placeholder_then_refetches():
    api = Mock()
    api.get_watchlist.side_effect = [[_item("a", 0)], [_item("a", 0), _item("b", 1)]]
    store = WatchlistStore(api)
    assert store.contains("a")

    during = []
    api.add_to_watchlist.side_effect = lambda card_id: during.append(store.cache.get(WatchlistStore.KEY))
    store.add("b")

    placeholder = during[0][-1]
    assert placeholder["id"] == "temp-b"
    assert placeholder["position"] == 1
    assert placeholder["card"] is None

    assert [c["id"] for c in store.cards()] == ["a", "b"]
    assert api.get_watchlist.call_count == 2


def test_watchlist_add_conflict_counts_as_success():
    api = Mock()
    api.get_watchlist.return_value = []
    api.add_to_watchlist.side_effect = ApiError(409, "Already in watchlist")
    store = WatchlistStore(api)
    store.items()

    store.add("a")
    assert store.cache.get(WatchlistStore.KEY) is None


def test_watchlist_remove_rolls_back_on_failure():
    api = Mock()
    api.get_watchlist.return_value = [_item("a", 0), _item("b", 1)]
    api.remove_from_watchlist.side_effect = ApiError(500, "Failed to remove from watchlist")
    store = WatchlistStore(api)
    store.items()

    with pytest.raises(ApiError):
        store.remove("a")

    assert [i["cardId"] for i in store.cache.get(WatchlistStore.KEY)] == ["a", "b"]


def test_watchlist_reorder_applies_positions_locally():
    api = Mock()
    api.get_watchlist.return_value = [_item("a", 0), _item("b", 1), _item("c", 2)]
    store = WatchlistStore(api)
    store.items()
    during = []
    api.reorder_watchlist.side_effect = lambda items: during.append(
        [i["cardId"] for i in store.cache.get(WatchlistStore.KEY)])

    store.reorder([{"cardId": "c", "position": 0}, {"cardId": "a", "position": 1}, {"cardId": "b", "position": 2}])

    assert during == [["c", "a", "b"]]


def test_shared_list_create_and_failed_delete():
    api = Mock()
    api.get_shared_lists.return_value = [{"id": 1, "name": "Old"}]
    api.create_shared_list.return_value = {"id": 2, "name": "New"}
    store = SharedListStore(api)
    store.lists()

    during = []
    api.create_shared_list.side_effect = lambda name, description: (
        during.append([lst["name"] for lst in store.cache.get(SharedListStore.KEY)]) or {"id": 2, "name": name})
    assert store.create("New")["id"] == 2
    assert during == [["New", "Old"]]

    store.lists()
    api.delete_shared_list.side_effect = ApiError(0, "offline")
    with pytest.raises(ApiError):
        store.delete(1)
    assert [lst["id"] for lst in store.cache.get(SharedListStore.KEY)] == [1]
