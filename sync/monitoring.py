"""
Run metrics for the EPG sync job.

Each scheduled run gets one row in `sync_runs`; exceptions raised during a
run are kept in `sync_errors` with their traceback.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from typing import Dict, List, Optional

RUN_COUNTERS = (
    "channels_seen",
    "programs_fetched",
    "programs_stored",
    "programs_linked",
    "api_calls",
    "errors",
)


class SyncMonitor:
    """
    Records EPG sync runs in a small SQLite metrics database
    """

    def __init__(self, db_path: str = "sync_metrics.db"):
        self.db_path = db_path
        self._init_metrics_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_metrics_db(self):
        conn = self._connect()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_runs (
                run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration_seconds REAL,
                status TEXT,
                error_message TEXT,
                channels_seen INTEGER DEFAULT 0,
                programs_fetched INTEGER DEFAULT 0,
                programs_stored INTEGER DEFAULT 0,
                programs_linked INTEGER DEFAULT 0,
                api_calls INTEGER DEFAULT 0,
                errors INTEGER DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_errors (
                error_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER,
                timestamp TEXT NOT NULL,
                error_type TEXT,
                error_message TEXT,
                traceback TEXT,
                FOREIGN KEY (run_id) REFERENCES sync_runs(run_id)
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_sync_runs_start_time ON sync_runs(start_time)")
        conn.commit()
        conn.close()

    def start_run(self) -> int:
        conn = self._connect()
        cursor = conn.execute(
            "INSERT INTO sync_runs (start_time, status) VALUES (?, ?)",
            (datetime.now().isoformat(), "running"),
        )
        run_id = cursor.lastrowid
        conn.commit()
        conn.close()
        return run_id

    def end_run(self, run_id: int, stats: Dict, status: str = "success",
                error_message: Optional[str] = None):
        conn = self._connect()
        row = conn.execute("SELECT start_time FROM sync_runs WHERE run_id = ?", (run_id,)).fetchone()

        end_time = datetime.now()
        duration = (end_time - datetime.fromisoformat(row["start_time"])).total_seconds() if row else None

        assignments = ", ".join(f"{name} = ?" for name in RUN_COUNTERS)
        conn.execute(
            f"""
            UPDATE sync_runs SET
                end_time = ?, duration_seconds = ?, status = ?, error_message = ?, {assignments}
            WHERE run_id = ?
            """,
            (
                end_time.isoformat(),
                duration,
                status,
                error_message,
                *(stats.get(name, 0) for name in RUN_COUNTERS),
                run_id,
            ),
        )
        conn.commit()
        conn.close()

    def log_error(self, run_id: int, error_type: str, error_message: str,
                  traceback: Optional[str] = None):
        conn = self._connect()
        conn.execute(
            """
            INSERT INTO sync_errors (run_id, timestamp, error_type, error_message, traceback)
            VALUES (?, ?, ?, ?, ?)
            """,
            (run_id, datetime.now().isoformat(), error_type, error_message, traceback),
        )
        conn.commit()
        conn.close()

    def get_recent_runs(self, limit: int = 10) -> List[Dict]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM sync_runs ORDER BY start_time DESC, run_id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def get_statistics(self, days: int = 7) -> Dict:
        """Aggregate counters over runs started in the last `days` days"""
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        conn = self._connect()
        row = conn.execute("""
            SELECT
                COUNT(*) as total_runs,
                SUM(CASE WHEN status = 'success' THEN 1 ELSE 0 END) as successful_runs,
                SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) as failed_runs,
                AVG(duration_seconds) as avg_duration,
                SUM(programs_stored) as total_programs_stored,
                SUM(programs_linked) as total_programs_linked,
                SUM(api_calls) as total_api_calls,
                SUM(errors) as total_errors
            FROM sync_runs
            WHERE start_time >= ?
        """, (cutoff,)).fetchone()
        conn.close()
        return dict(row) if row else {}

    def get_error_summary(self, days: int = 7) -> List[Dict]:
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        conn = self._connect()
        rows = conn.execute("""
            SELECT error_type, COUNT(*) as count, MAX(timestamp) as last_occurrence
            FROM sync_errors
            WHERE timestamp >= ?
            GROUP BY error_type
            ORDER BY count DESC
        """, (cutoff,)).fetchall()
        conn.close()
        return [dict(row) for row in rows]
