"""
Per-company policy store: review periods, reminder cadences, overdue
reminders, HR copy preference, message templates and the webhook relay.
Reads are used by the workflow and the scheduler; writes come from HR.
"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from pydantic import validate_email
from pydantic_core import PydanticCustomError
from sqlalchemy.orm import Session

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.kpi import PeriodType
from app.models.kpi_period_setting import KpiPeriodSetting
from app.models.message_template import EmailTemplate, WebhookConfig
from app.models.reminder_setting import (
    DEFAULT_DAILY_DAYS_BEFORE_MEETING,
    KPI_SETTING_REMINDER,
    DailyReminderSetting,
    HrNotificationSetting,
    ReminderSetting,
)
from app.schemas.settings import (
    DailyReminderSettingsIn,
    DailyReminderSettingsOut,
    EmailTemplateIn,
    PeriodSettingIn,
    ReminderSettingIn,
    WebhookConfigIn,
)
from app.services.audit import AuditService
from app.services.base import BaseService


def find_active_period(
    db: Session,
    company_id: int,
    period_type: str,
    quarter: Optional[str],
    year: Optional[int],
) -> Optional[KpiPeriodSetting]:
    query = db.query(KpiPeriodSetting).filter(
        KpiPeriodSetting.company_id == company_id,
        KpiPeriodSetting.period_type == period_type,
        KpiPeriodSetting.year == year,
        KpiPeriodSetting.is_active.is_(True),
    )
    if period_type == PeriodType.QUARTERLY.value:
        query = query.filter(KpiPeriodSetting.quarter == quarter)
    else:
        query = query.filter(KpiPeriodSetting.quarter.is_(None))
    return query.first()


def load_active_rules(
    db: Session,
    company_ids: Iterable[int],
    reminder_type: str = KPI_SETTING_REMINDER,
) -> Dict[int, List[ReminderSetting]]:
    rules: Dict[int, List[ReminderSetting]] = defaultdict(list)
    company_ids = list(company_ids)
    if not company_ids:
        return rules
    rows = (
        db.query(ReminderSetting)
        .filter(
            ReminderSetting.company_id.in_(company_ids),
            ReminderSetting.reminder_type == reminder_type,
            ReminderSetting.is_active.is_(True),
        )
        .order_by(ReminderSetting.company_id, ReminderSetting.reminder_number)
    )
    for rule in rows:
        rules[rule.company_id].append(rule)
    return rules


def load_daily_settings(db: Session, company_ids: Iterable[int]) -> Dict[int, DailyReminderSetting]:
    company_ids = list(company_ids)
    if not company_ids:
        return {}
    rows = db.query(DailyReminderSetting).filter(
        DailyReminderSetting.company_id.in_(company_ids),
        DailyReminderSetting.send_daily_reminders.is_(True),
    )
    return {row.company_id: row for row in rows}


def active_template(db: Session, company_id: int, template_type: str) -> Optional[EmailTemplate]:
    return db.query(EmailTemplate).filter(
        EmailTemplate.company_id == company_id,
        EmailTemplate.template_type == template_type,
        EmailTemplate.is_active.is_(True),
    ).first()


def active_webhook_url(db: Session, company_id: int) -> Optional[str]:
    config = db.query(WebhookConfig).filter(
        WebhookConfig.company_id == company_id,
        WebhookConfig.is_active.is_(True),
    ).first()
    return config.webhook_url if config else None


def normalize_cc_emails(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    addresses = [part.strip() for part in raw.split(",") if part.strip()]
    invalid = []
    for address in addresses:
        try:
            validate_email(address)
        except PydanticCustomError:
            invalid.append(address)
    if invalid:
        raise BusinessValidationError(
            f"Invalid CC email address(es): {', '.join(invalid)}",
            details={"invalid": invalid},
        )
    return ", ".join(addresses) or None


class PolicyService(BaseService):
    """Company-scoped settings writes. Every write commits or rolls back as one unit, audit row included."""

    def __init__(self, db: Session, company_id: int, actor=None):
        super().__init__(db, company_id)
        self.actor = actor

    def _save(self, action: str, entity_type: str, record, after: Optional[dict] = None):
        self.db.flush()
        AuditService(self.db, self.company_id).log_action(
            action=action,
            entity_type=entity_type,
            entity_id=getattr(record, "id", None),
            user_id=self.actor.user_id if self.actor else None,
            user_role=self.actor.role if self.actor else "system",
            after_state=after,
        )
        self.commit()

    # --- Review periods -----------------------------------------------------

    def list_periods(self, period_type: Optional[str] = None, year: Optional[int] = None) -> List[KpiPeriodSetting]:
        query = self.db.query(KpiPeriodSetting).filter(KpiPeriodSetting.company_id == self.company_id)
        if period_type:
            query = query.filter(KpiPeriodSetting.period_type == period_type)
        if year:
            query = query.filter(KpiPeriodSetting.year == year)
        return query.order_by(KpiPeriodSetting.year.desc(), KpiPeriodSetting.quarter).all()

    def available_periods(self, today: Optional[date] = None) -> List[KpiPeriodSetting]:
        query = self.db.query(KpiPeriodSetting).filter(
            KpiPeriodSetting.company_id == self.company_id,
            KpiPeriodSetting.is_active.is_(True),
        )
        if today is not None:
            query = query.filter(KpiPeriodSetting.end_date >= today)
        return query.order_by(KpiPeriodSetting.start_date).all()

    def save_period(self, payload: PeriodSettingIn) -> KpiPeriodSetting:
        if payload.id is not None:
            period = self.db.query(KpiPeriodSetting).filter(
                KpiPeriodSetting.id == payload.id,
                KpiPeriodSetting.company_id == self.company_id,
            ).first()
            if not period:
                raise NotFoundError("Period setting not found")
        else:
            query = self.db.query(KpiPeriodSetting).filter(
                KpiPeriodSetting.company_id == self.company_id,
                KpiPeriodSetting.period_type == payload.period_type.value,
                KpiPeriodSetting.year == payload.year,
            )
            if payload.quarter:
                query = query.filter(KpiPeriodSetting.quarter == payload.quarter)
            else:
                query = query.filter(KpiPeriodSetting.quarter.is_(None))
            period = query.first()
            if period is None:
                period = KpiPeriodSetting(company_id=self.company_id)
                self.db.add(period)

        period.period_type = payload.period_type.value
        period.quarter = payload.quarter
        period.year = payload.year
        period.start_date = payload.start_date
        period.end_date = payload.end_date
        period.is_active = payload.is_active
        self._save("save_period_setting", "kpi_period_setting", period, payload.model_dump(mode="json"))
        self.db.refresh(period)
        return period

    def delete_period(self, period_id: int) -> None:
        period = self.db.query(KpiPeriodSetting).filter(
            KpiPeriodSetting.id == period_id,
            KpiPeriodSetting.company_id == self.company_id,
        ).first()
        if not period:
            raise NotFoundError("Period setting not found")
        self.db.delete(period)
        self._save("delete_period_setting", "kpi_period_setting", period)

    # --- Pre-deadline reminder rules ----------------------------------------

    def list_reminder_settings(
        self,
        reminder_type: Optional[str] = None,
        period_type: Optional[str] = None,
    ) -> List[ReminderSetting]:
        query = self.db.query(ReminderSetting).filter(ReminderSetting.company_id == self.company_id)
        if reminder_type:
            query = query.filter(ReminderSetting.reminder_type == reminder_type)
        if period_type:
            query = query.filter(ReminderSetting.period_type == period_type)
        return query.order_by(ReminderSetting.reminder_type, ReminderSetting.reminder_number).all()

    def save_reminder_setting(self, payload: ReminderSettingIn) -> ReminderSetting:
        period_type = payload.period_type.value if payload.period_type else None
        if payload.id is not None:
            rule = self.db.query(ReminderSetting).filter(
                ReminderSetting.id == payload.id,
                ReminderSetting.company_id == self.company_id,
            ).first()
            if not rule:
                raise NotFoundError("Reminder setting not found")
        else:
            query = self.db.query(ReminderSetting).filter(
                ReminderSetting.company_id == self.company_id,
                ReminderSetting.reminder_type == payload.reminder_type,
                ReminderSetting.reminder_number == payload.reminder_number,
            )
            if period_type:
                query = query.filter(ReminderSetting.period_type == period_type)
            else:
                query = query.filter(ReminderSetting.period_type.is_(None))
            rule = query.first()
            if rule is None:
                rule = ReminderSetting(company_id=self.company_id)
                self.db.add(rule)

        rule.reminder_type = payload.reminder_type
        rule.period_type = period_type
        rule.reminder_number = payload.reminder_number
        rule.reminder_days_before = payload.reminder_days_before
        rule.reminder_label = payload.reminder_label
        rule.is_active = payload.is_active
        self._save("save_reminder_setting", "reminder_setting", rule, payload.model_dump(mode="json"))
        self.db.refresh(rule)
        return rule

    def delete_reminder_setting(self, setting_id: int) -> None:
        rule = self.db.query(ReminderSetting).filter(
            ReminderSetting.id == setting_id,
            ReminderSetting.company_id == self.company_id,
        ).first()
        if not rule:
            raise NotFoundError("Reminder setting not found")
        self.db.delete(rule)
        self._save("delete_reminder_setting", "reminder_setting", rule)

    # --- Overdue reminders ---------------------------------------------------

    def get_daily_settings(self) -> DailyReminderSettingsOut:
        row = self.db.query(DailyReminderSetting).filter(
            DailyReminderSetting.company_id == self.company_id
        ).first()
        if row is None:
            return DailyReminderSettingsOut(
                send_daily_reminders=False,
                days_before_meeting=DEFAULT_DAILY_DAYS_BEFORE_MEETING,
                cc_emails=None,
            )
        return DailyReminderSettingsOut(
            send_daily_reminders=row.send_daily_reminders,
            days_before_meeting=row.days_before_meeting,
            cc_emails=row.cc_emails,
        )

    def save_daily_settings(self, payload: DailyReminderSettingsIn) -> DailyReminderSettingsOut:
        cc_emails = normalize_cc_emails(payload.cc_emails)
        row = self.db.query(DailyReminderSetting).filter(
            DailyReminderSetting.company_id == self.company_id
        ).first()
        if row is None:
            row = DailyReminderSetting(company_id=self.company_id)
            self.db.add(row)
        row.send_daily_reminders = payload.send_daily_reminders
        row.days_before_meeting = payload.days_before_meeting
        row.cc_emails = cc_emails
        self._save("save_daily_reminder_settings", "daily_reminder_setting", row, {
            "send_daily_reminders": row.send_daily_reminders,
            "days_before_meeting": row.days_before_meeting,
            "cc_emails": cc_emails,
        })
        return self.get_daily_settings()

    # --- HR copy preference --------------------------------------------------

    def get_hr_notifications(self) -> bool:
        row = self.db.query(HrNotificationSetting).filter(
            HrNotificationSetting.company_id == self.company_id
        ).first()
        return True if row is None else bool(row.receive_email_notifications)

    def set_hr_notifications(self, enabled: bool) -> bool:
        row = self.db.query(HrNotificationSetting).filter(
            HrNotificationSetting.company_id == self.company_id
        ).first()
        if row is None:
            row = HrNotificationSetting(company_id=self.company_id)
            self.db.add(row)
        row.receive_email_notifications = enabled
        self._save("set_hr_notifications", "hr_notification_setting", row, {"receive_email_notifications": enabled})
        return enabled

    # --- Templates and webhook relay ----------------------------------------

    def list_templates(self) -> List[EmailTemplate]:
        return (
            self.db.query(EmailTemplate)
            .filter(EmailTemplate.company_id == self.company_id)
            .order_by(EmailTemplate.template_type)
            .all()
        )

    def save_template(self, payload: EmailTemplateIn) -> EmailTemplate:
        template = self.db.query(EmailTemplate).filter(
            EmailTemplate.company_id == self.company_id,
            EmailTemplate.template_type == payload.template_type,
        ).first()
        if template is None:
            template = EmailTemplate(company_id=self.company_id, template_type=payload.template_type)
            self.db.add(template)
        template.subject = payload.subject
        template.body_html = payload.body_html
        template.body_text = payload.body_text
        template.is_active = payload.is_active
        self._save("save_email_template", "email_template", template,
                   {"template_type": template.template_type, "is_active": template.is_active})
        self.db.refresh(template)
        return template

    def get_webhook(self) -> Optional[WebhookConfig]:
        return self.db.query(WebhookConfig).filter(WebhookConfig.company_id == self.company_id).first()

    def save_webhook(self, payload: WebhookConfigIn) -> WebhookConfig:
        config = self.get_webhook()
        if config is None:
            config = WebhookConfig(company_id=self.company_id)
            self.db.add(config)
        config.webhook_url = payload.webhook_url
        config.is_active = payload.is_active
        config.description = payload.description
        self._save("save_webhook_config", "webhook_config", config, {"is_active": config.is_active})
        self.db.refresh(config)
        return config
