from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base

DAILY_OVERDUE_REMINDER = "daily_overdue"


class ReminderTrackingRecord(Base):
    """
    Ledger of reminders already sent.

    One row per (kpi, reminder type, date). Pre-deadline reminders use the
    KPI's meeting date so each tag is sent once per KPI; overdue reminders use
    the sweep date so they repeat at most once a day.
    """
    __tablename__ = "kpi_setting_reminders"
    __table_args__ = (
        UniqueConstraint("kpi_id", "reminder_type", "reminder_date", name="uq_kpi_reminder"),
    )

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    reminder_type = Column(String(50), nullable=False)
    reminder_date = Column(Date, nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())
