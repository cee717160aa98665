from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.auth_deps import require_company, require_hr
from app.schemas.settings import (
    DailyReminderSettingsIn,
    DailyReminderSettingsOut,
    EmailTemplateIn,
    EmailTemplateOut,
    HrNotificationSettingIn,
    HrNotificationSettingOut,
    PeriodSettingIn,
    PeriodSettingOut,
    ReminderSettingIn,
    ReminderSettingOut,
    WebhookConfigIn,
    WebhookConfigOut,
)
from app.services.access import Actor
from app.services.policy import PolicyService

router = APIRouter(prefix="/settings", tags=["Settings"])


def _hr_policy(db: Session = Depends(get_db), actor: Actor = Depends(require_hr())) -> PolicyService:
    if actor.company_id is None:
        raise HTTPException(status_code=400, detail="Select a company for this request")
    return PolicyService(db, actor.company_id, actor=actor)


# --- Periods -------------------------------------------------------------

@router.get("/periods", response_model=List[PeriodSettingOut])
def list_periods(
    period_type: Optional[str] = None,
    year: Optional[int] = None,
    policy: PolicyService = Depends(_hr_policy),
):
    return policy.list_periods(period_type=period_type, year=year)


@router.get("/periods/available", response_model=List[PeriodSettingOut])
def available_periods(db: Session = Depends(get_db), actor: Actor = Depends(require_company)):
    return PolicyService(db, actor.company_id).available_periods(today=date.today())


@router.post("/periods", response_model=PeriodSettingOut)
def save_period(payload: PeriodSettingIn, policy: PolicyService = Depends(_hr_policy)):
    return policy.save_period(payload)


@router.delete("/periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_period(period_id: int, policy: PolicyService = Depends(_hr_policy)):
    policy.delete_period(period_id)


# --- Reminder rules ------------------------------------------------------

@router.get("/reminders", response_model=List[ReminderSettingOut])
def list_reminder_settings(
    reminder_type: Optional[str] = None,
    period_type: Optional[str] = None,
    policy: PolicyService = Depends(_hr_policy),
):
    return policy.list_reminder_settings(reminder_type=reminder_type, period_type=period_type)


@router.post("/reminders", response_model=ReminderSettingOut)
def save_reminder_setting(payload: ReminderSettingIn, policy: PolicyService = Depends(_hr_policy)):
    return policy.save_reminder_setting(payload)


@router.delete("/reminders/{setting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reminder_setting(setting_id: int, policy: PolicyService = Depends(_hr_policy)):
    policy.delete_reminder_setting(setting_id)


# --- Overdue reminders ---------------------------------------------------

@router.get("/daily-reminders", response_model=DailyReminderSettingsOut)
def get_daily_reminders(policy: PolicyService = Depends(_hr_policy)):
    return policy.get_daily_settings()


@router.post("/daily-reminders", response_model=DailyReminderSettingsOut)
def save_daily_reminders(payload: DailyReminderSettingsIn, policy: PolicyService = Depends(_hr_policy)):
    return policy.save_daily_settings(payload)


# --- HR notifications ----------------------------------------------------

@router.get("/hr-notifications", response_model=HrNotificationSettingOut)
def get_hr_notifications(policy: PolicyService = Depends(_hr_policy)):
    return {"receive_email_notifications": policy.get_hr_notifications()}


@router.post("/hr-notifications", response_model=HrNotificationSettingOut)
def set_hr_notifications(payload: HrNotificationSettingIn, policy: PolicyService = Depends(_hr_policy)):
    return {"receive_email_notifications": policy.set_hr_notifications(payload.receive_email_notifications)}


# --- Message templates and webhook --------------------------------------

@router.get("/email-templates", response_model=List[EmailTemplateOut])
def list_templates(policy: PolicyService = Depends(_hr_policy)):
    return policy.list_templates()


@router.post("/email-templates", response_model=EmailTemplateOut)
def save_template(payload: EmailTemplateIn, policy: PolicyService = Depends(_hr_policy)):
    return policy.save_template(payload)


@router.get("/webhook", response_model=Optional[WebhookConfigOut])
def get_webhook(policy: PolicyService = Depends(_hr_policy)):
    return policy.get_webhook()


@router.post("/webhook", response_model=WebhookConfigOut)
def save_webhook(payload: WebhookConfigIn, policy: PolicyService = Depends(_hr_policy)):
    return policy.save_webhook(payload)
