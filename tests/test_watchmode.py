from unittest.mock import Mock

import pytest
import requests

from ghost_guide.watchmode import WatchmodeClient, WatchmodeError, map_source


def _response(payload):
    r = Mock()
    r.json.return_value = payload
    return r


def test_client_needs_an_api_key(monkeypatch):
    monkeypatch.delenv("WATCHMODE_API_KEY", raising=False)
    with pytest.raises(WatchmodeError):
        WatchmodeClient()


def test_map_source_prefers_web_link_and_maps_types():
    mapped = map_source({
        "source_id": 251, "name": "Shudder", "type": "sub", "region": "US",
        "ios_url": "shudder://title/1", "web_url": "https://shudder.com/title/1", "format": "HD",
    }, "2026-10-31T00:00:00+00:00")
    assert mapped["service"] == "Shudder"
    assert mapped["service_id"] == "251"
    assert mapped["type"] == "subscription"
    assert mapped["deep_link"] == "https://shudder.com/title/1"
    assert mapped["quality"] == "HD"

    assert map_source({"name": "Tubi", "type": "free", "android_url": "tubi://1"})["deep_link"] == "tubi://1"
    assert map_source({"name": "Odd", "type": "tvod"})["type"] == "subscription"


def test_find_title_id(monkeypatch):
    get = Mock(return_value=_response({"title_results": [{"id": 1234}, {"id": 99}]}))
    monkeypatch.setattr("ghost_guide.watchmode.requests.get", get)
    client = WatchmodeClient("key")

    assert client.find_title_id("tt0084787") == "1234"
    params = get.call_args.kwargs["params"]
    assert params == {"search_field": "imdb_id", "search_value": "tt0084787", "apiKey": "key"}

    get.return_value = _response({"title_results": []})
    assert client.find_title_id("tt0000000") is None


def test_get_sources_drops_nameless_entries(monkeypatch):
    get = Mock(return_value=_response([
        {"source_id": 389, "name": "Peacock", "type": "free", "region": "US"},
        {"source_id": 1, "name": "", "type": "buy"},
    ]))
    monkeypatch.setattr("ghost_guide.watchmode.requests.get", get)

    sources = WatchmodeClient("key").get_sources("1234")

    assert [s["service"] for s in sources] == ["Peacock"]
    assert sources[0]["last_verified"]
    assert get.call_args.args[0] == "https://api.watchmode.com/v1/title/1234/sources/"


def test_errors_are_wrapped(monkeypatch):
    client = WatchmodeClient("key")

    monkeypatch.setattr("ghost_guide.watchmode.requests.get", Mock(return_value=_response({"error": "x"})))
    with pytest.raises(WatchmodeError):
        client.get_sources("1234")

    monkeypatch.setattr("ghost_guide.watchmode.requests.get", Mock(side_effect=requests.Timeout("slow")))
    with pytest.raises(WatchmodeError):
        client.find_title_id("tt0084787")
