from ghost_guide.catalog import CatalogQueryError

from .conftest import make_card


def test_browse_returns_page_and_cache_headers(client, seed_cards):
    seed_cards(*(make_card(f"c{i:02d}") for i in range(26)))

    resp = client.get("/api/browse")
    assert resp.status_code == 200
    assert resp.json["totalCount"] == 26
    assert resp.json["nextPage"] == 1
    assert len(resp.json["cards"]) == 24
    assert resp.headers["Cache-Control"] == "public, s-maxage=60, stale-while-revalidate=300"

    resp = client.get("/api/browse?page=1")
    assert len(resp.json["cards"]) == 2
    assert resp.json["nextPage"] is None


def test_browse_applies_query_filters(client, seed_cards):
    seed_cards(
        make_card("a", year=1982, genres=["Horror"], sources=[{"service": "Shudder"}]),
        make_card("b", year=1982, genres=["Horror"], sources=[{"service": "Tubi"}]),
        make_card("c", year=2001, genres=["Horror"], sources=[{"service": "Shudder"}]),
    )

    resp = client.get("/api/browse?genre=horror&decade=1980s&service=shudder")
    assert [c["id"] for c in resp.json["cards"]] == ["a"]
    assert resp.json["totalCount"] == 1


def test_browse_ignores_malformed_params(client, seed_cards):
    seed_cards(make_card("a"), make_card("b"))

    resp = client.get("/api/browse?page=abc&decade=1850s&sort=sideways&runtime=epic")
    assert resp.status_code == 200
    assert resp.json["page"] == 0
    assert resp.json["totalCount"] == 2


def test_browse_backend_failure_is_generic(client, monkeypatch):
    def boom(*args, **kwargs):
        raise CatalogQueryError("disk I/O error")

    monkeypatch.setattr("ghost_guide.routes.browse.browse_catalog", boom)
    resp = client.get("/api/browse")
    assert resp.status_code == 500
    assert resp.json == {"error": "Failed to fetch data"}


def test_browse_huge_page_is_treated_as_first_page(client, seed_cards):
    seed_cards(make_card("a"))

    resp = client.get("/api/browse?page=99999999999999999999")
    assert resp.status_code == 200
    assert resp.json["page"] == 0
    assert resp.json["totalCount"] == 1


def test_browse_title_search(client, seed_cards):
    seed_cards(make_card("a", title="Night of the Creeps"), make_card("b", title="Creepshow"), make_card("c"))

    resp = client.get("/api/browse?q=creep&sort=title")
    assert [c["id"] for c in resp.json["cards"]] == ["b", "a"]
    assert resp.json["totalCount"] == 2
