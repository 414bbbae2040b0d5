#!/usr/bin/env python3
"""
Run the Saramin company harvest.

Usage:
    python scripts/run_harvest.py --now
    python scripts/run_harvest.py --recover
    python scripts/run_harvest.py --serve
    python scripts/run_harvest.py --history 20
"""

import argparse
import sys
from pathlib import Path

from apscheduler.schedulers.blocking import BlockingScheduler

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings
from processing.batch import BatchError, JobRepository
from processing.database import SessionLocal, init_db
from processing.harvest import RunCoordinator, build_harvest_job, describe
from processing.models import BatchStatus
from processing.scheduler import build_scheduler
from scrapers.saramin import SaraminScraper


def show_history(limit: int) -> None:
    """Print the most recent executions of the harvest job."""
    db = SessionLocal()

    try:
        executions = JobRepository(db).find_executions_by_job_name(
            settings.HARVEST_JOB_NAME, 0, limit
        )

        print("=" * 90)
        print(f"RECENT EXECUTIONS: {settings.HARVEST_JOB_NAME}")
        print("=" * 90)
        print(f"{'ID':>5}  {'Status':<10} {'Started':<20} {'Read':>6} {'Written':>8} {'Skipped':>8}  Run date")
        print("-" * 90)
        for e in executions:
            started = e.start_time.strftime("%Y-%m-%d %H:%M:%S") if e.start_time else "-"
            run_date = (e.parameters or {}).get("run_date", "-")
            print(
                f"{e.id:>5}  {e.status.value:<10} {started:<20} "
                f"{e.read_count:>6} {e.write_count:>8} {e.skip_count:>8}  {run_date}"
            )
            if e.status == BatchStatus.FAILED and e.exit_message:
                print(f"       {e.exit_message[:80]}")
        if not executions:
            print("No executions recorded.")

    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Harvest Saramin company data into the company store"
    )
    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument(
        "--now",
        action="store_true",
        help="Run one fresh harvest and print its status",
    )
    mode_group.add_argument(
        "--recover",
        action="store_true",
        help="Rerun the latest failed run from the lookback window, or a fresh run",
    )
    mode_group.add_argument(
        "--serve",
        action="store_true",
        help="Run the weekly and daily triggers until interrupted",
    )
    mode_group.add_argument(
        "--history",
        type=int,
        metavar="N",
        help="Show the N most recent executions",
    )
    parser.add_argument(
        "--max-page",
        type=int,
        default=settings.HARVEST_MAX_PAGE,
        help=f"Last listing page to read (default: {settings.HARVEST_MAX_PAGE})",
    )

    args = parser.parse_args()

    init_db()

    if args.history is not None:
        show_history(args.history)
        return

    job = build_harvest_job(SaraminScraper(), max_page=args.max_page)
    coordinator = RunCoordinator(job)

    if args.now:
        try:
            status = coordinator.run_now()
        except BatchError as e:
            print(f"Job not started: {e}")
            sys.exit(1)
        print(describe(status))
        sys.exit(0 if status == BatchStatus.COMPLETED else 1)

    if args.recover:
        coordinator.recover_or_run()
        return

    scheduler = build_scheduler(
        coordinator, BlockingScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    )
    print(f"Scheduler started ({settings.SCHEDULER_TIMEZONE}):")
    print(f"  Full run:  {settings.FULL_RUN_CRON}")
    print(f"  Recovery:  {settings.RECOVERY_CRON}")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        print("\nScheduler stopped.")


if __name__ == "__main__":
    main()
