from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import yaml

import run_sync_scheduler
from ghost_guide.cards import insert_card
from ghost_guide.config import PROJECT_ROOT
from ghost_guide.db import connect
from ghost_guide.pluto import PlutoTVError
from ghost_guide.schema import init_db
from sync.epg_sync_service import EPGSyncService
from sync.monitoring import SyncMonitor
from sync.scheduler import SyncScheduler, load_sync_config, metrics_db_path

from .conftest import make_card

NOW = datetime(2026, 10, 31, 20, 0, tzinfo=timezone.utc)


def stamp(hours):
    return (NOW + timedelta(hours=hours)).strftime("%Y-%m-%dT%H:%M:%SZ")


class FakeGuide:
    def __init__(self, *titles):
        self.titles = list(titles)
        self.calls = []

    def fetch_channels(self, hours_ahead=8, now=None):
        self.calls.append((hours_ahead, now))
        return [{
            "_id": "horror",
            "slug": "pluto-tv-horror",
            "name": "Pluto TV Horror",
            "timelines": [
                {"title": title, "start": stamp(i), "stop": stamp(i + 1)}
                for i, title in enumerate(self.titles)
            ],
        }]


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_PATH", raising=False)
    monkeypatch.delenv("PLUTO_API_BASE", raising=False)
    path = str(tmp_path / "guide.db")
    conn = connect(path)
    init_db(conn)
    insert_card(conn, make_card("thing", title="The Thing"))
    conn.close()
    return path


def _schedule(path):
    conn = connect(path)
    try:
        return [dict(r) for r in conn.execute("SELECT * FROM epg_schedule ORDER BY start_time, id")]
    finally:
        conn.close()


def test_sync_stores_and_links_programs(db_path):
    guide = FakeGuide("the thing", "Unknown Late Show")
    service = EPGSyncService({"database": {"path": db_path}, "epg": {"hours_ahead": 6}}, client=guide)

    stats = service.run_sync(now=NOW)

    assert guide.calls == [(6, NOW)]
    assert stats["programs_fetched"] == 2
    assert stats["programs_stored"] == 2
    assert stats["programs_linked"] == 1

    rows = _schedule(db_path)
    assert rows[0]["card_id"] == "thing"
    assert rows[0]["start_time"] == "2026-10-31T20:00:00Z"
    assert rows[0]["duration_minutes"] == 60
    assert rows[0]["channel_id"] == "pluto-tv-horror"
    assert rows[0]["source"] == "api"
    assert rows[1]["card_id"] is None


def test_resync_replaces_api_rows_and_keeps_manual_ones(db_path):
    conn = connect(db_path)
    with conn:
        conn.execute(
            """
            INSERT INTO epg_schedule (id, channel_id, channel_name, start_time, end_time, duration_minutes,
                                      title, source)
            VALUES ('manual-1', 'local', 'Local Access', ?, ?, 30, 'Creature Feature', 'manual')
            """,
            (stamp(1), stamp(1.5)),
        )
    conn.close()

    config = {"database": {"path": db_path}}
    EPGSyncService(config, client=FakeGuide("A", "B", "C")).run_sync(now=NOW)
    EPGSyncService(config, client=FakeGuide("A", "B")).run_sync(now=NOW)

    rows = _schedule(db_path)
    assert sorted(r["title"] for r in rows if r["source"] == "api") == ["A", "B"]
    assert [r["id"] for r in rows if r["source"] == "manual"] == ["manual-1"]


def test_sync_propagates_feed_errors(db_path):
    guide = Mock()
    guide.fetch_channels.side_effect = PlutoTVError("down")
    with pytest.raises(PlutoTVError):
        EPGSyncService({"database": {"path": db_path}}, client=guide).run_sync(now=NOW)


def test_monitor_records_runs_and_errors(tmp_path):
    monitor = SyncMonitor(str(tmp_path / "metrics.db"))

    ok = monitor.start_run()
    monitor.end_run(ok, {"programs_stored": 12, "programs_linked": 3, "api_calls": 1})
    failed = monitor.start_run()
    monitor.end_run(failed, {"errors": 1}, status="failed", error_message="boom")
    monitor.log_error(failed, "PlutoTVError", "boom", "Traceback ...")

    runs = monitor.get_recent_runs(5)
    assert [r["run_id"] for r in runs] == [failed, ok]
    assert runs[1]["programs_stored"] == 12
    assert runs[0]["error_message"] == "boom"

    stats = monitor.get_statistics(7)
    assert stats["total_runs"] == 2
    assert stats["successful_runs"] == 1
    assert stats["failed_runs"] == 1
    assert stats["total_programs_stored"] == 12

    assert monitor.get_error_summary(7)[0]["error_type"] == "PlutoTVError"


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sync_config.yaml"
    path.write_text(yaml.safe_dump({
        "schedule": {"interval_hours": 2, "timezone": "UTC"},
        "epg": {"hours_ahead": 8},
        "database": {"path": str(tmp_path / "guide.db")},
        "logging": {"level": "INFO", "file": str(tmp_path / "sync.log")},
        "monitoring": {"enable_metrics": True, "metrics_db": str(tmp_path / "metrics.db")},
    }))
    return str(path)


def test_load_sync_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_sync_config(str(tmp_path / "missing.yaml"))

    bad = tmp_path / "bad.yaml"
    bad.write_text("epg:\n  hours_ahead: 8\n")
    with pytest.raises(ValueError):
        load_sync_config(str(bad))


def test_scheduler_records_failed_run(config_file):
    service = Mock()
    service.stats = {"api_calls": 1}
    service.run_sync.side_effect = PlutoTVError("503 Service Unavailable")
    scheduler = SyncScheduler(config_file, service=service)

    scheduler.run_sync_job()

    assert scheduler.last_run_status.startswith("Failed")
    last = scheduler.monitor.get_recent_runs(1)[0]
    assert last["status"] == "failed"
    assert last["errors"] == 1
    assert last["api_calls"] == 1

    service.run_sync.side_effect = None
    service.run_sync.return_value = {"programs_stored": 4}
    scheduler.run_sync_job()

    status = scheduler.get_status()
    assert status["last_run_status"] == "Success"
    assert status["total_runs"] == 2
    assert status["running"] is False
    assert status["last_recorded_run"]["programs_stored"] == 4


def test_runner_validate_config(config_file, tmp_path, capsys):
    assert run_sync_scheduler.main(["--validate-config", "--config", config_file]) == 0
    assert "is valid" in capsys.readouterr().out

    assert run_sync_scheduler.main(["--validate-config", "--config", str(tmp_path / "nope.yaml")]) == 1


def test_metrics_db_resolves_against_project_root(tmp_path, monkeypatch):
    monkeypatch.delenv("SYNC_METRICS_DB", raising=False)
    monkeypatch.chdir(tmp_path)
    config = {"monitoring": {"metrics_db": "sync_metrics.db"}}

    assert metrics_db_path(config) == str(PROJECT_ROOT / "sync_metrics.db")
    assert metrics_db_path({}) == str(PROJECT_ROOT / "sync_metrics.db")
    assert metrics_db_path({"monitoring": {"metrics_db": str(tmp_path / "m.db")}}) == str(tmp_path / "m.db")

    monkeypatch.setenv("SYNC_METRICS_DB", str(tmp_path / "env.db"))
    assert metrics_db_path(config) == str(tmp_path / "env.db")


def test_sync_service_database_path_ignores_cwd(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    service = EPGSyncService({"database": {"path": "ghost_guide.db"}}, client=FakeGuide())
    assert service.db_path == str(PROJECT_ROOT / "ghost_guide.db")
