#!/usr/bin/env python3
"""
Standalone runner for the EPG sync scheduler
Can be used to run the scheduler as a daemon or one-off job
"""
from __future__ import annotations

import argparse
import signal
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from sync.monitoring import SyncMonitor
from sync.scheduler import SyncScheduler, load_sync_config, metrics_db_path


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    print("\n\nReceived shutdown signal. Stopping scheduler...")
    sys.exit(0)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Ghost Guide EPG Sync Scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run scheduler continuously with default config
  python run_sync_scheduler.py

  # Sync once and exit
  python run_sync_scheduler.py --run-once

  # Use custom configuration file
  python run_sync_scheduler.py --config my_config.yaml
        """
    )
    parser.add_argument(
        '--config',
        default='sync_config.yaml',
        help='Path to configuration file (default: sync_config.yaml)'
    )
    parser.add_argument(
        '--run-once',
        action='store_true',
        help='Run the sync once and exit (no continuous scheduling)'
    )
    parser.add_argument(
        '--status',
        action='store_true',
        help='Show recent sync runs and exit'
    )
    parser.add_argument(
        '--validate-config',
        action='store_true',
        help='Validate configuration file and exit'
    )
    args = parser.parse_args(argv)

    if args.validate_config:
        try:
            config = load_sync_config(args.config)
        except (OSError, ValueError) as e:
            print(f"[ERROR] Configuration validation failed: {e}")
            return 1
        schedule = config['schedule']
        print(f"[OK] Configuration file '{args.config}' is valid")
        print("\nConfiguration summary:")
        if 'cron' in schedule:
            print(f"  Schedule: cron {schedule['cron']}")
        else:
            print(f"  Schedule: Every {schedule.get('interval_hours', 'N/A')} hours")
        print(f"  Guide window: {config.get('epg', {}).get('hours_ahead', 'N/A')} hours")
        print(f"  Database: {config.get('database', {}).get('path', 'N/A')}")
        return 0

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found")
        print("Please create a configuration file or specify a different path with --config")
        return 1

    if args.status:
        config = load_sync_config(args.config)
        runs = SyncMonitor(metrics_db_path(config)).get_recent_runs(5)
        print("\nEPG Sync Status:")
        if not runs:
            print("  No runs recorded yet")
        for run in runs:
            duration = run.get('duration_seconds')
            print(f"  #{run['run_id']} {run['start_time'][:19]} {run['status']:<8} "
                  f"stored={run['programs_stored']} linked={run['programs_linked']} "
                  f"duration={f'{duration:.1f}s' if duration is not None else 'N/A'}")
        return 0

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler = SyncScheduler(config_path=args.config)

    if args.run_once:
        print("Running EPG sync once (no continuous scheduling)...\n")
        scheduler.run_sync_job()
        print(f"\nEPG sync finished: {scheduler.last_run_status}")
        return 0 if scheduler.last_run_status == "Success" else 1

    try:
        scheduler.start()
        print("\n" + "=" * 80)
        print("EPG Sync Scheduler is now running")
        print("=" * 80)
        print(f"\nConfiguration: {args.config}")
        jobs = scheduler.scheduler.get_jobs()
        if jobs:
            print(f"Next scheduled run: {jobs[0].next_run_time}")
        print("\nPress Ctrl+C to stop the scheduler")
        print("=" * 80 + "\n")

        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        print("\n\nShutdown requested")
        scheduler.stop()
        return 0


if __name__ == "__main__":
    sys.exit(main())
