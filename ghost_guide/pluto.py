"""
Pluto TV EPG client.

Fetches the public channel guide, keeps horror / sci-fi relevant programs and
answers "what's on now" and "what's coming up" questions over them.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from .config import PLUTO_API_BASE

logger = logging.getLogger(__name__)

TARGET_CHANNEL_SLUGS = (
    "pluto-tv-horror",
    "pluto-tv-sci-fi",
    "mst3k",
    "amc",
    "classic-movies",
    "the-asylum",
    "pluto-tv-thrillers",
    "pluto-tv-action",
)

HORROR_KEYWORDS = (
    "horror", "terror", "scary", "fright", "nightmare", "haunted",
    "zombie", "vampire", "ghost", "demon", "monster", "slasher",
    "sci-fi", "science fiction", "alien", "space", "robot",
    "thriller", "suspense", "mystery", "supernatural",
)

EPG_FILTERS = ("now", "upcoming", "all")


class PlutoTVError(RuntimeError):
    """The guide feed could not be fetched or decoded."""


@dataclass
class EPGProgram:
    id: str
    channel: str
    channel_slug: str
    title: str
    start_time: str
    end_time: str
    duration: int = 0
    channel_logo: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[str] = None
    genre: Optional[str] = None
    sub_genre: Optional[str] = None
    poster: Optional[str] = None
    thumbnail: Optional[str] = None
    is_horror_or_scifi: bool = False

    @property
    def starts_at(self) -> datetime:
        return parse_timestamp(self.start_time)

    @property
    def ends_at(self) -> datetime:
        return parse_timestamp(self.end_time)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "channel": data["channel"],
            "channelSlug": data["channel_slug"],
            "channelLogo": data["channel_logo"],
            "title": data["title"],
            "description": data["description"],
            "startTime": data["start_time"],
            "endTime": data["end_time"],
            "duration": data["duration"],
            "rating": data["rating"],
            "genre": data["genre"],
            "subGenre": data["sub_genre"],
            "poster": data["poster"],
            "thumbnail": data["thumbnail"],
            "isHorrorOrSciFi": data["is_horror_or_scifi"],
        }


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 to an aware datetime; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_horror_or_scifi(program: Dict[str, Any]) -> bool:
    episode = program.get("episode") or {}
    text = " ".join(
        (value or "").lower()
        for value in (
            program.get("title"),
            episode.get("description"),
            episode.get("genre"),
            episode.get("subGenre"),
        )
    )
    return any(keyword in text for keyword in HORROR_KEYWORDS)


def is_target_channel(channel: Dict[str, Any]) -> bool:
    slug = (channel.get("slug") or "").lower()
    return any(target in slug for target in TARGET_CHANNEL_SLUGS)


def _path(obj: Any) -> Optional[str]:
    return obj.get("path") if isinstance(obj, dict) else None


def normalize_programs(channels: List[Dict[str, Any]], relevant_only: bool = True) -> List[EPGProgram]:
    """
    Flatten channel timelines into relevant programs sorted by start time.

    Every program on a target channel is kept; on other channels only
    programs that look like horror or sci-fi, unless `relevant_only` is off.
    Entries without a parseable start/stop are dropped.
    """
    programs: List[EPGProgram] = []
    for channel in channels or []:
        timelines = channel.get("timelines") or []
        if not timelines:
            continue
        target = is_target_channel(channel)
        logo = _path(channel.get("colorLogoSVG")) or _path(channel.get("logo"))

        for entry in timelines:
            relevant = is_horror_or_scifi(entry)
            if relevant_only and not (target or relevant):
                continue
            start, stop = entry.get("start"), entry.get("stop")
            try:
                parse_timestamp(start)
                parse_timestamp(stop)
            except (TypeError, ValueError, AttributeError):
                logger.debug("Skipping program with bad times on %s", channel.get("slug"))
                continue

            episode = entry.get("episode") or {}
            programs.append(EPGProgram(
                id=f"{channel.get('_id')}-{start}",
                channel=channel.get("name") or "",
                channel_slug=channel.get("slug") or "",
                channel_logo=logo,
                title=entry.get("title") or "",
                description=episode.get("description"),
                start_time=start,
                end_time=stop,
                duration=int(episode.get("duration") or 0),
                rating=episode.get("rating"),
                genre=episode.get("genre"),
                sub_genre=episode.get("subGenre"),
                poster=_path(episode.get("poster")),
                thumbnail=_path(episode.get("thumbnail")),
                is_horror_or_scifi=relevant,
            ))

    programs.sort(key=lambda p: p.starts_at)
    return programs


def filter_now(programs: List[EPGProgram], now: Optional[datetime] = None) -> List[EPGProgram]:
    now = now or _utcnow()
    return [p for p in programs if p.starts_at <= now < p.ends_at]


def filter_upcoming(programs: List[EPGProgram], now: Optional[datetime] = None, hours: float = 4) -> List[EPGProgram]:
    now = now or _utcnow()
    cutoff = now + timedelta(hours=hours)
    return [p for p in programs if now < p.starts_at < cutoff]


class PlutoTVClient:
    def __init__(self, base_url: str | None = None, timeout: int = 20, session: requests.Session | None = None):
        self.base_url = (base_url or PLUTO_API_BASE).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_channels(self, hours_ahead: float = 8, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or _utcnow()
        params = {"start": _iso(now), "stop": _iso(now + timedelta(hours=hours_ahead))}
        try:
            r = self.session.get(
                f"{self.base_url}/channels",
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            channels = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise PlutoTVError(f"Pluto TV API error: {exc}") from exc

        if not isinstance(channels, list):
            raise PlutoTVError("Pluto TV API returned an unexpected payload")
        return channels


class EPGService:
    """Guide lookups that degrade to an empty list when the feed is down."""

    def __init__(self, client: PlutoTVClient | None = None, hours_ahead: float = 8):
        self.client = client or PlutoTVClient()
        self.hours_ahead = hours_ahead

    def get_all(self, now: Optional[datetime] = None) -> List[EPGProgram]:
        try:
            channels = self.client.fetch_channels(self.hours_ahead, now=now)
        except PlutoTVError as exc:
            logger.warning("Failed to fetch Pluto TV channels: %s", exc)
            return []
        return normalize_programs(channels)

    def get_programs(self, filter: str = "all", hours: float = 4, now: Optional[datetime] = None) -> List[EPGProgram]:
        now = now or _utcnow()
        programs = self.get_all(now=now)
        if filter == "now":
            return filter_now(programs, now)
        if filter == "upcoming":
            return filter_upcoming(programs, now, hours)
        return programs
