from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from ..pluto import EPG_FILTERS, EPGService, PlutoTVClient

bp = Blueprint("epg", __name__, url_prefix="/api")

DEFAULT_HOURS = 4


def _parse_hours(raw) -> int:
    try:
        hours = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_HOURS
    return max(1, min(24, hours))


@bp.get("/epg")
def epg():
    """
    Live guide for horror / sci-fi programming.

    Query params: filter (now | upcoming | all), hours (upcoming window).
    A feed outage answers with an empty program list.
    """
    list_filter = request.args.get("filter") or "all"
    if list_filter not in EPG_FILTERS:
        list_filter = "all"
    hours = _parse_hours(request.args.get("hours"))

    now = datetime.now(timezone.utc)
    service = EPGService(PlutoTVClient(current_app.config.get("PLUTO_API_BASE")))
    programs = service.get_programs(list_filter, hours, now=now)

    response = jsonify({
        "programs": [p.to_dict() for p in programs],
        "count": len(programs),
        "filter": list_filter,
        "timestamp": now.isoformat(),
    })
    response.headers["Cache-Control"] = "public, s-maxage=300, stale-while-revalidate=600"
    return response
