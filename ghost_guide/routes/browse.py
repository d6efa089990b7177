from flask import Blueprint, current_app, jsonify, request

from ..catalog import CatalogFilters, CatalogQueryError, browse_catalog, parse_page
from ..db import get_db

bp = Blueprint("browse", __name__, url_prefix="/api")

CACHE_MAX_AGE = 60
STALE_WHILE_REVALIDATE = 300


@bp.get("/browse")
def browse():
    """
    Paginated, filtered catalog.

    Query params: q (title search), genre, decade, service, runtime, sort,
    page (0-indexed).
    Unknown bucket or sort values are ignored rather than rejected.
    """
    filters = CatalogFilters.from_args(request.args)
    page = parse_page(request.args.get("page"))

    try:
        result = browse_catalog(get_db(), filters, page)
    except CatalogQueryError:
        current_app.logger.exception("Browse API error")
        return jsonify({"error": "Failed to fetch data"}), 500

    response = jsonify(result.to_payload())
    response.headers["Cache-Control"] = (
        f"public, s-maxage={CACHE_MAX_AGE}, stale-while-revalidate={STALE_WHILE_REVALIDATE}"
    )
    return response
