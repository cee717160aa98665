"""
Per-company reminder policy.

ReminderSetting rows drive the pre-deadline sweep, DailyReminderSetting drives
the overdue sweep and HrNotificationSetting controls whether HR is copied on
workflow and reminder messages.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base

KPI_SETTING_REMINDER = "kpi_setting"
DEFAULT_DAILY_DAYS_BEFORE_MEETING = 3


class ReminderSetting(Base):
    __tablename__ = "reminder_settings"
    __table_args__ = (
        UniqueConstraint("company_id", "reminder_type", "period_type", "reminder_number", name="uq_reminder_setting"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    reminder_type = Column(String(50), nullable=False, default=KPI_SETTING_REMINDER)
    # NULL matches every period type
    period_type = Column(String(20), nullable=True)
    reminder_number = Column(Integer, nullable=False, default=1)
    reminder_days_before = Column(Integer, nullable=False)
    reminder_label = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class DailyReminderSetting(Base):
    __tablename__ = "daily_reminder_settings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True, index=True)
    send_daily_reminders = Column(Boolean, default=False, nullable=False)
    # Days after a period's end date before overdue reminders start
    days_before_meeting = Column(Integer, default=DEFAULT_DAILY_DAYS_BEFORE_MEETING, nullable=False)
    cc_emails = Column(Text, nullable=True)  # comma separated
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def cc_list(self):
        if not self.cc_emails:
            return []
        return [e.strip() for e in self.cc_emails.split(",") if e.strip()]


class HrNotificationSetting(Base):
    __tablename__ = "hr_notification_settings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True, index=True)
    receive_email_notifications = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
