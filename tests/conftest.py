import pytest

from ghost_guide import create_app
from ghost_guide.cards import insert_card
from ghost_guide.db import connect
from ghost_guide.schema import init_db

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "DATABASE_PATH": str(tmp_path / "ghost_guide_test.db"),
        "SYNC_METRICS_DB": str(tmp_path / "sync_metrics_test.db"),
        "ADMIN_EMAILS": {ADMIN_EMAIL},
        "OMDB_API_KEY": "test-key",
        "WATCHMODE_API_KEY": "test-watchmode-key",
        "PLUTO_API_BASE": "https://pluto.example.com/v2",
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def conn(tmp_path):
    """Bare SQLite connection with the schema, for tests below the HTTP layer."""
    connection = connect(str(tmp_path / "catalog_test.db"))
    init_db(connection)
    yield connection
    connection.close()


def signup_and_login(client, email, password="secret"):
    client.post("/api/signup", json={"email": email, "password": password})
    resp = client.post("/api/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.json
    return {"Authorization": f"Bearer {resp.json['token']}"}


@pytest.fixture
def user_headers(client):
    return signup_and_login(client, "viewer@example.com")


@pytest.fixture
def admin_headers(client):
    return signup_and_login(client, ADMIN_EMAIL)


@pytest.fixture
def seed_cards(app):
    """Insert card dicts straight into the app database; returns their ids."""
    def _seed(*cards):
        connection = connect(app.config["DATABASE_PATH"])
        try:
            return [insert_card(connection, card) for card in cards]
        finally:
            connection.close()
    return _seed


def make_card(card_id, **overrides):
    card = {
        "id": card_id,
        "title": f"Title {card_id}",
        "year": 1985,
        "genres": ["Horror"],
        "sources": [{"service": "Shudder", "type": "subscription"}],
        "poster_url": f"https://img.example.com/{card_id}.jpg",
        "runtime_minutes": 95,
        "imdb_rating": 6.5,
    }
    card.update(overrides)
    return card
