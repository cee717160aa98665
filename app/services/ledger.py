"""
Reminder dedup ledger.

The scheduler claims a (kpi, reminder type, date) key before sending
anything for it. The claim is a conflict-ignoring insert, so of any number
of concurrent sweeps exactly one gets the row back and goes on to send.
"""
from datetime import date
from typing import Iterable, List, Set, Tuple

from sqlalchemy.orm import Session

from app.database import insert_ignoring_conflicts
from app.models.reminder_tracking import ReminderTrackingRecord

LedgerKey = Tuple[int, str, date]


def sent_keys(db: Session, kpi_ids: Iterable[int]) -> Set[Tuple[int, str]]:
    """(kpi_id, reminder_type) pairs already in the ledger, regardless of date."""
    kpi_ids = list(kpi_ids)
    if not kpi_ids:
        return set()
    rows = db.query(ReminderTrackingRecord.kpi_id, ReminderTrackingRecord.reminder_type).filter(
        ReminderTrackingRecord.kpi_id.in_(kpi_ids)
    )
    return {(kpi_id, reminder_type) for kpi_id, reminder_type in rows}


def sent_on(db: Session, kpi_ids: Iterable[int], reminder_type: str, day: date) -> Set[int]:
    kpi_ids = list(kpi_ids)
    if not kpi_ids:
        return set()
    rows = db.query(ReminderTrackingRecord.kpi_id).filter(
        ReminderTrackingRecord.kpi_id.in_(kpi_ids),
        ReminderTrackingRecord.reminder_type == reminder_type,
        ReminderTrackingRecord.reminder_date == day,
    )
    return {kpi_id for (kpi_id,) in rows}


def claim(db: Session, company_id: int, keys: Iterable[LedgerKey]) -> Set[LedgerKey]:
    """
    Insert the keys, ignoring ones that already exist, and return those this
    call inserted. A key lost to another writer counts as already sent.
    """
    rows: List[dict] = []
    seen = set()
    for kpi_id, reminder_type, reminder_date in keys:
        if (kpi_id, reminder_type, reminder_date) in seen:
            continue
        seen.add((kpi_id, reminder_type, reminder_date))
        rows.append({
            "kpi_id": kpi_id,
            "company_id": company_id,
            "reminder_type": reminder_type,
            "reminder_date": reminder_date,
        })
    inserted = insert_ignoring_conflicts(
        db,
        ReminderTrackingRecord,
        rows,
        returning=(
            ReminderTrackingRecord.kpi_id,
            ReminderTrackingRecord.reminder_type,
            ReminderTrackingRecord.reminder_date,
        ),
    )
    return {(row[0], row[1], row[2]) for row in inserted}
