# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    company, user, department, kpi, kpi_review, kpi_period_setting,
    reminder_setting, reminder_tracking, message_template, notification, audit_log
)

# Explicit class exports for cleaner imports
from .company import Company, UserCompany
from .user import User, UserRole
from .department import Department
from .kpi import Kpi, KpiItem, KpiStatus, PeriodType
from .kpi_review import KpiReview, ReviewStatus, ConfirmationStatus, ResolutionStatus
from .kpi_period_setting import KpiPeriodSetting
from .reminder_setting import ReminderSetting, DailyReminderSetting, HrNotificationSetting
from .reminder_tracking import ReminderTrackingRecord
from .message_template import EmailTemplate, WebhookConfig
from .notification import Notification
from .audit_log import AuditLog

__all__ = [
    "Company",
    "UserCompany",
    "User",
    "UserRole",
    "Department",
    "Kpi",
    "KpiItem",
    "KpiStatus",
    "PeriodType",
    "KpiReview",
    "ReviewStatus",
    "ConfirmationStatus",
    "ResolutionStatus",
    "KpiPeriodSetting",
    "ReminderSetting",
    "DailyReminderSetting",
    "HrNotificationSetting",
    "ReminderTrackingRecord",
    "EmailTemplate",
    "WebhookConfig",
    "Notification",
    "AuditLog",
]
