#!/usr/bin/env python3
"""
EPG sync scheduler using APScheduler
Refreshes the epg_schedule table from Pluto TV on a configurable schedule
"""
from __future__ import annotations

import logging
import os
import time
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import yaml
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from ghost_guide.config import resolve_project_path

from .epg_sync_service import EPGSyncService
from .monitoring import SyncMonitor

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def metrics_db_path(config: dict) -> str:
    """Metrics DB shared with the admin API; SYNC_METRICS_DB wins over the YAML value"""
    path = os.getenv("SYNC_METRICS_DB") or config.get('monitoring', {}).get('metrics_db', 'sync_metrics.db')
    return resolve_project_path(path)


def load_sync_config(config_path: str) -> dict:
    """Load configuration from YAML file"""
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config.get('schedule'), dict):
        raise ValueError("Configuration needs a 'schedule' section")
    return config


class SyncScheduler:
    """
    Manages automated scheduling and execution of the EPG sync job
    """

    def __init__(self, config_path: str = "sync_config.yaml", service: Optional[EPGSyncService] = None):
        load_dotenv()

        self.config = load_sync_config(config_path)
        self.scheduler = BackgroundScheduler(
            timezone=self.config['schedule'].get('timezone', 'UTC')
        )
        self.sync_service = service
        self.last_run_time: Optional[datetime] = None
        self.last_run_status: str = "Never run"
        self.run_count: int = 0

        monitoring = self.config.get('monitoring', {})
        self.monitor: Optional[SyncMonitor] = None
        if monitoring.get('enable_metrics', True):
            self.monitor = SyncMonitor(metrics_db_path(self.config))

        self._setup_logging()
        self.logger.info("EPG Sync Scheduler initialized")

    def _setup_logging(self):
        log_config = self.config.get('logging', {})
        log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)

        self.logger = logging.getLogger('SyncScheduler')
        self.logger.setLevel(log_level)
        # a second scheduler in the same process must not double every line
        if self.logger.handlers:
            return

        formatter = logging.Formatter(LOG_FORMAT)

        file_handler = RotatingFileHandler(
            log_config.get('file', 'sync_scheduler.log'),
            maxBytes=log_config.get('max_bytes', 10485760),
            backupCount=log_config.get('backup_count', 5)
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

    def run_sync_job(self):
        """Execute one EPG sync and record the outcome"""
        self.run_count += 1
        run_id = f"RUN-{self.run_count}-{datetime.now().strftime('%Y%m%d-%H%M%S')}"
        self.logger.info(f"Starting EPG sync: {run_id}")

        start_time = time.time()
        monitor_run_id = self.monitor.start_run() if self.monitor else None

        try:
            if self.sync_service is None:
                self.sync_service = EPGSyncService(self.config)

            stats = self.sync_service.run_sync()

            execution_time = time.time() - start_time
            self.logger.info(f"EPG sync {run_id} completed in {execution_time:.2f} seconds")
            self.logger.info(f"Statistics: {stats}")

            self.last_run_time = datetime.now()
            self.last_run_status = "Success"
            if self.monitor and monitor_run_id:
                self.monitor.end_run(monitor_run_id, stats, status='success')

        except Exception as e:
            # the scheduler thread must survive a failed run
            execution_time = time.time() - start_time
            self.logger.error(f"EPG sync {run_id} failed after {execution_time:.2f} seconds: {e}", exc_info=True)

            self.last_run_time = datetime.now()
            self.last_run_status = f"Failed: {e}"
            if self.monitor and monitor_run_id:
                stats = dict(getattr(self.sync_service, 'stats', None) or {})
                stats['errors'] = stats.get('errors', 0) + 1
                self.monitor.end_run(monitor_run_id, stats, status='failed', error_message=str(e))
                self.monitor.log_error(monitor_run_id, type(e).__name__, str(e), traceback.format_exc())

    def _build_trigger(self):
        schedule_config = self.config['schedule']
        tz = schedule_config.get('timezone', 'UTC')
        if 'cron' in schedule_config:
            cron_config = schedule_config['cron']
            self.logger.info(f"Scheduled EPG sync with cron: {cron_config}")
            return CronTrigger(
                hour=cron_config.get('hour', '*'),
                minute=cron_config.get('minute', 0),
                day_of_week=cron_config.get('day_of_week', '*'),
                timezone=tz
            )

        interval_hours = schedule_config.get('interval_hours', 4)
        self.logger.info(f"Scheduled EPG sync to run every {interval_hours} hours")
        return IntervalTrigger(hours=interval_hours, timezone=tz)

    def start(self):
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=self._build_trigger(),
            id='epg_sync_job',
            name='Pluto TV EPG Sync',
            replace_existing=True
        )
        self.scheduler.start()
        self.logger.info("EPG Sync Scheduler started successfully")

        if self.config['schedule'].get('run_on_startup', False):
            self.logger.info("Running initial EPG sync on startup...")
            self.run_sync_job()

    def stop(self):
        self.logger.info("Stopping EPG Sync Scheduler...")
        self.scheduler.shutdown()
        self.logger.info("EPG Sync Scheduler stopped")

    def get_status(self) -> dict:
        jobs = self.scheduler.get_jobs()
        next_run = getattr(jobs[0], 'next_run_time', None) if jobs else None
        last_recorded = self.monitor.get_recent_runs(1) if self.monitor else []
        return {
            'running': self.scheduler.running,
            'last_run_time': self.last_run_time.isoformat() if self.last_run_time else None,
            'last_run_status': self.last_run_status,
            'total_runs': self.run_count,
            'next_run_time': next_run.isoformat() if next_run else None,
            'last_recorded_run': last_recorded[0] if last_recorded else None,
        }
