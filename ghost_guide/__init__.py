"""
Ghost Guide: horror and sci-fi streaming availability API.

`create_app` builds the Flask application, makes sure the SQLite schema
exists and registers one Blueprint per API area.
"""
from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import load_config
from .db import close_db, connect
from .schema import init_db

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("ghost_guide").setLevel(getattr(logging, level, logging.INFO))


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    _configure_logging(app.config["LOG_LEVEL"])
    app.teardown_appcontext(close_db)

    conn = connect(app.config["DATABASE_PATH"])
    try:
        init_db(conn)
    finally:
        conn.close()

    from .routes import register_blueprints

    register_blueprints(app)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        # abort(401/403/404) from helpers comes back as JSON like every other route
        return jsonify({"error": exc.description}), exc.code

    return app
