from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.kpi import PeriodType

Quarter = Literal["Q1", "Q2", "Q3", "Q4"]


class PeriodSettingIn(BaseModel):
    id: Optional[int] = None
    period_type: PeriodType
    quarter: Optional[Quarter] = None
    year: int = Field(ge=2000, le=2100)
    start_date: date
    end_date: date
    is_active: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.period_type == PeriodType.QUARTERLY and not self.quarter:
            raise ValueError("quarter is required for quarterly periods")
        if self.period_type == PeriodType.ANNUAL:
            self.quarter = None
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class PeriodSettingOut(BaseModel):
    id: int
    period_type: str
    quarter: Optional[str] = None
    year: int
    start_date: date
    end_date: date
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ReminderSettingIn(BaseModel):
    id: Optional[int] = None
    reminder_type: str = "kpi_setting"
    period_type: Optional[PeriodType] = None
    reminder_number: int = Field(default=1, ge=1)
    reminder_days_before: int = Field(ge=0, le=365)
    reminder_label: Optional[str] = None
    is_active: bool = True


class ReminderSettingOut(BaseModel):
    id: int
    reminder_type: str
    period_type: Optional[str] = None
    reminder_number: int
    reminder_days_before: int
    reminder_label: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class DailyReminderSettingsIn(BaseModel):
    send_daily_reminders: bool = False
    days_before_meeting: int = Field(default=3, ge=0, le=365)
    cc_emails: Optional[str] = None

    @field_validator("cc_emails")
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class DailyReminderSettingsOut(BaseModel):
    send_daily_reminders: bool
    days_before_meeting: int
    cc_emails: Optional[str] = None


class HrNotificationSettingIn(BaseModel):
    receive_email_notifications: bool


class HrNotificationSettingOut(BaseModel):
    receive_email_notifications: bool


class EmailTemplateIn(BaseModel):
    template_type: str = Field(min_length=1, max_length=80)
    subject: str = Field(min_length=1, max_length=255)
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    is_active: bool = True


class EmailTemplateOut(BaseModel):
    id: int
    template_type: str
    subject: str
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    is_active: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WebhookConfigIn(BaseModel):
    webhook_url: str = Field(min_length=1, max_length=1000)
    is_active: bool = True
    description: Optional[str] = None

    @field_validator("webhook_url")
    @classmethod
    def must_be_http(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return v


class WebhookConfigOut(BaseModel):
    webhook_url: str
    is_active: bool
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AvailablePeriods(BaseModel):
    periods: List[PeriodSettingOut]
