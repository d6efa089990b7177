#!/usr/bin/env python3
"""
EPG Sync Service
Pulls the Pluto TV guide, links programs to catalog cards and stores them
in the epg_schedule table
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from dotenv import load_dotenv

from ghost_guide.cards import find_card_id_by_title
from ghost_guide.config import resolve_project_path
from ghost_guide.db import connect
from ghost_guide.pluto import EPGProgram, PlutoTVClient, normalize_programs
from ghost_guide.schema import init_db

STORED_TS = "%Y-%m-%dT%H:%M:%SZ"


def _stored(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(STORED_TS)


class EPGSyncService:
    """
    Imports the upcoming guide window into epg_schedule with source='api'
    """

    def __init__(self, config: dict, client: Optional[PlutoTVClient] = None):
        load_dotenv()

        self.config = config
        self.logger = logging.getLogger('EPGSyncService')

        db_path = os.getenv("DATABASE_PATH") or config.get('database', {}).get('path', 'ghost_guide.db')
        self.db_path = resolve_project_path(db_path)
        self.logger.info(f"Database path: {self.db_path}")

        epg_config = config.get('epg', {})
        self.hours_ahead = epg_config.get('hours_ahead', 8)
        self.only_relevant = epg_config.get('only_relevant', True)
        self.client = client or PlutoTVClient(
            os.getenv("PLUTO_API_BASE") or epg_config.get('base_url'),
            timeout=epg_config.get('timeout', 20),
        )

        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'channels_seen': 0,
            'programs_fetched': 0,
            'programs_stored': 0,
            'programs_linked': 0,
            'api_calls': 0,
            'errors': 0,
        }

    def _schedule_rows(self, conn, programs: List[EPGProgram]) -> List[tuple]:
        rows = []
        card_ids: Dict[str, Optional[str]] = {}
        for program in programs:
            key = program.title.strip().lower()
            if key not in card_ids:
                card_ids[key] = find_card_id_by_title(conn, program.title) if key else None
            card_id = card_ids[key]
            if card_id:
                self.stats['programs_linked'] += 1

            start, end = program.starts_at, program.ends_at
            rows.append((
                program.id,
                program.channel_slug or program.channel,
                program.channel,
                _stored(start),
                _stored(end),
                max(0, int((end - start).total_seconds() // 60)),
                card_id,
                program.title,
                program.description,
                int(program.is_horror_or_scifi),
            ))
        return rows

    def run_sync(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Fetch the guide window starting at `now` and replace the api rows in it.

        Rows imported from spreadsheets or entered manually are never touched.
        PlutoTVError propagates so the scheduler can record a failed run.
        """
        self.stats = self._empty_stats()
        now = now or datetime.now(timezone.utc)
        window_end = now + timedelta(hours=self.hours_ahead)

        self.logger.info(f"Fetching Pluto TV guide for the next {self.hours_ahead} hours")
        self.stats['api_calls'] += 1
        channels = self.client.fetch_channels(self.hours_ahead, now=now)
        self.stats['channels_seen'] = len(channels)

        programs = normalize_programs(channels, relevant_only=self.only_relevant)
        self.stats['programs_fetched'] = len(programs)

        conn = connect(self.db_path)
        try:
            init_db(conn)
            rows = self._schedule_rows(conn, programs)
            with conn:
                conn.execute(
                    """
                    DELETE FROM epg_schedule
                    WHERE source = 'api' AND start_time >= ? AND start_time < ?
                    """,
                    (_stored(now), _stored(window_end)),
                )
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO epg_schedule
                        (id, channel_id, channel_name, start_time, end_time, duration_minutes,
                         card_id, title, synopsis, is_genre_highlight, source)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'api')
                    """,
                    rows,
                )
            self.stats['programs_stored'] = len(rows)
        finally:
            conn.close()

        self.logger.info(f"EPG sync stored {self.stats['programs_stored']} programs "
                         f"({self.stats['programs_linked']} linked to catalog cards)")
        return self.stats
