from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from ghost_guide.pluto import (
    EPGService,
    PlutoTVClient,
    PlutoTVError,
    filter_now,
    filter_upcoming,
    is_horror_or_scifi,
    is_target_channel,
    normalize_programs,
    parse_timestamp,
)

NOW = datetime(2026, 10, 31, 20, 0, tzinfo=timezone.utc)


def stamp(hours):
    return (NOW + timedelta(hours=hours)).isoformat().replace("+00:00", "Z")


def entry(title, start, stop, **episode):
    return {"title": title, "start": stamp(start), "stop": stamp(stop), "episode": episode}


def channel(slug, *timelines, name=None):
    return {
        "_id": f"id-{slug}",
        "slug": slug,
        "name": name or slug.title(),
        "colorLogoSVG": {"path": f"https://images.pluto.tv/{slug}.svg"},
        "timelines": list(timelines),
    }


def test_parse_timestamp_handles_zulu_and_naive():
    assert parse_timestamp("2026-10-31T20:00:00Z") == NOW
    assert parse_timestamp("2026-10-31T20:00:00") == NOW


@pytest.mark.parametrize("program, expected", [
    ({"title": "Night of the Living Dead"}, False),
    ({"title": "Zombie Apocalypse"}, True),
    ({"title": "Cooking Show", "episode": {"genre": "Sci-Fi & Fantasy"}}, True),
    ({"title": "Late Movie", "episode": {"description": "A haunted lighthouse."}}, True),
    ({"title": "News at Nine", "episode": {"genre": "News"}}, False),
])
def test_is_horror_or_scifi(program, expected):
    assert is_horror_or_scifi(program) is expected


def test_is_target_channel_matches_slug_substrings():
    assert is_target_channel({"slug": "pluto-tv-horror-classics"})
    assert is_target_channel({"slug": "MST3K"})
    assert not is_target_channel({"slug": "cooking"})
    assert not is_target_channel({})


def test_normalize_keeps_target_channels_and_relevant_programs():
    channels = [
        channel("pluto-tv-horror", entry("Late Night Double Feature", 1, 3)),
        channel("cooking", entry("Pasta Hour", 0, 1), entry("Vampire Brunch", -1, 0.5, genre="Comedy")),
        channel("empty"),
    ]

    programs = normalize_programs(channels)

    assert [p.title for p in programs] == ["Vampire Brunch", "Late Night Double Feature"]
    first = programs[0]
    assert first.id == f"id-cooking-{stamp(-1)}"
    assert first.channel_logo == "https://images.pluto.tv/cooking.svg"
    assert first.is_horror_or_scifi is True
    assert programs[1].is_horror_or_scifi is False

    everything = normalize_programs(channels, relevant_only=False)
    assert len(everything) == 3


def test_normalize_drops_programs_with_bad_times():
    broken = {"title": "Ghost Story", "start": "not a date", "stop": stamp(1)}
    missing = {"title": "Ghost Story II", "stop": stamp(1)}
    programs = normalize_programs([channel("pluto-tv-horror", broken, missing, entry("Ghost Story III", 0, 1))])
    assert [p.title for p in programs] == ["Ghost Story III"]


def test_to_dict_uses_camel_case():
    program = normalize_programs([channel("pluto-tv-sci-fi", entry("Alien Planet", 0, 2, duration=7200000,
                                                                   subGenre="Space Opera"))])[0]
    data = program.to_dict()
    assert data["channelSlug"] == "pluto-tv-sci-fi"
    assert data["subGenre"] == "Space Opera"
    assert data["duration"] == 7200000
    assert data["isHorrorOrSciFi"] is True
    assert data["startTime"] == stamp(0)


def test_filter_now_and_upcoming():
    programs = normalize_programs([channel(
        "pluto-tv-horror",
        entry("Already Over", -3, -1),
        entry("On Now", -1, 1),
        entry("Soon", 2, 3),
        entry("Much Later", 6, 7),
    )])

    assert [p.title for p in filter_now(programs, NOW)] == ["On Now"]
    assert [p.title for p in filter_upcoming(programs, NOW, hours=4)] == ["Soon"]
    assert [p.title for p in filter_upcoming(programs, NOW, hours=8)] == ["Soon", "Much Later"]


def test_client_requests_window_and_wraps_errors():
    session = Mock()
    session.get.return_value.json.return_value = [channel("pluto-tv-horror")]
    client = PlutoTVClient("https://api.example.com/v2/", session=session)

    channels = client.fetch_channels(hours_ahead=8, now=NOW)

    assert channels[0]["slug"] == "pluto-tv-horror"
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://api.example.com/v2/channels"
    assert params == {"start": "2026-10-31T20:00:00.000Z", "stop": "2026-11-01T04:00:00.000Z"}

    session.get.side_effect = requests.ConnectionError("offline")
    with pytest.raises(PlutoTVError):
        client.fetch_channels(now=NOW)


def test_client_rejects_unexpected_payload():
    session = Mock()
    session.get.return_value.json.return_value = {"error": "nope"}
    with pytest.raises(PlutoTVError):
        PlutoTVClient(session=session).fetch_channels(now=NOW)


def test_service_degrades_to_empty_list():
    client = Mock()
    client.fetch_channels.side_effect = PlutoTVError("down")
    assert EPGService(client).get_programs("now", now=NOW) == []


def test_service_filters_programs():
    client = Mock()
    client.fetch_channels.return_value = [channel("pluto-tv-horror", entry("On Now", -1, 1), entry("Soon", 2, 3))]
    service = EPGService(client, hours_ahead=6)

    assert [p.title for p in service.get_programs("upcoming", hours=4, now=NOW)] == ["Soon"]
    assert len(service.get_programs("all", now=NOW)) == 2
    client.fetch_channels.assert_called_with(6, now=NOW)
