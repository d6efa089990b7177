from flask import Flask

from .accounts import bp as accounts_bp
from .admin import bp as admin_bp
from .browse import bp as browse_bp
from .epg import bp as epg_bp
from .lists import bp as lists_bp
from .tracking import bp as tracking_bp
from .watchlist import bp as watchlist_bp


def register_blueprints(app: Flask) -> None:
    for blueprint in (accounts_bp, browse_bp, watchlist_bp, lists_bp, tracking_bp, epg_bp, admin_bp):
        app.register_blueprint(blueprint)
