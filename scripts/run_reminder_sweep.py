"""
Run one reminder sweep outside the scheduler.

    python -m scripts.run_reminder_sweep pre-deadline
    python -m scripts.run_reminder_sweep overdue --date 2026-04-10
"""
import argparse
from dataclasses import asdict
from datetime import date

from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.services.dispatcher import NotificationDispatcher
from app.services.reminders import ReminderSweeper


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a KPI reminder sweep once")
    parser.add_argument("sweep", choices=["pre-deadline", "overdue", "all"])
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Sweep as of this date (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()
    sweeper = ReminderSweeper(SessionLocal, NotificationDispatcher(SessionLocal))

    reports = []
    if args.sweep in ("pre-deadline", "all"):
        reports.append(sweeper.run_pre_deadline(today=args.date))
    if args.sweep in ("overdue", "all"):
        reports.append(sweeper.run_overdue(today=args.date))

    for report in reports:
        print(asdict(report))
    return 1 if any(r.companies_failed for r in reports) else 0


if __name__ == "__main__":
    raise SystemExit(main())
