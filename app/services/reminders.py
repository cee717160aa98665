"""
Scheduled reminder sweeps.

Pre-deadline: for each KPI with a meeting date and an open status, every
active ``kpi_setting`` rule whose days-before equals the days left fires
once per KPI, broadcast to all managers and employees of the company (and
HR when the company has HR notifications on).

Overdue: for companies with daily reminders on, KPIs of periods that ended
at least ``days_before_meeting`` days ago and are still open get a reminder
to their manager, employee, all HR and the configured CC list, at most once
per day.

Both sweeps bulk-load companies, rules, KPIs and recipients up front, then
work company by company. A failing company is rolled back and logged; the
sweep moves on to the next one.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session, aliased

from app.core.config import settings
from app.core.logging import new_request_id, request_id_var
from app.models.kpi import Kpi, KpiStatus, PeriodType
from app.models.kpi_period_setting import KpiPeriodSetting
from app.models.reminder_tracking import DAILY_OVERDUE_REMINDER
from app.models.user import User, UserRole
from app.services import directory, ledger, message_templates as templates, policy
from app.services.dispatcher import DeliveryResult, NotificationDispatcher
from app.services.effects import EffectRunner, SendMessage
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

OPEN_STATUSES = (KpiStatus.PENDING.value, KpiStatus.ACKNOWLEDGED.value)

REMINDER_TAGS = {
    14: "2_weeks",
    7: "1_week",
    3: "3_days",
    2: "2_days",
    1: "1_day",
    0: "meeting_day",
}

Employee = aliased(User, name="reminder_employee")
Manager = aliased(User, name="reminder_manager")


def reminder_tag(days_before: int) -> str:
    return REMINDER_TAGS.get(days_before, f"custom_{days_before}_days")


def sweep_today() -> date:
    return datetime.now(ZoneInfo(settings.scheduler.timezone)).date()


@dataclass
class SweepReport:
    sweep: str
    run_date: date
    companies_processed: int = 0
    companies_failed: List[int] = field(default_factory=list)
    reminders_due: int = 0
    reminders_claimed: int = 0
    notifications_created: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    messages_skipped: int = 0
    stopped_early: bool = False

    def count_deliveries(self, results: List[DeliveryResult]):
        for result in results:
            if result is None:
                continue
            if result.success:
                self.messages_sent += 1
            elif result.skipped:
                self.messages_skipped += 1
            else:
                self.messages_failed += 1


@dataclass
class _DueReminder:
    kpi: Kpi
    employee: User
    manager: User
    tag: str
    label: str
    ledger_date: date
    extra: Dict = field(default_factory=dict)


class ReminderSweeper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        stop_event: Optional[threading.Event] = None,
        max_workers: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.stop_event = stop_event or threading.Event()
        self.runner = EffectRunner(dispatcher, session_factory, max_workers=max_workers)

    # ------------------------------------------------------------------
    # Pre-deadline
    # ------------------------------------------------------------------

    def run_pre_deadline(self, today: Optional[date] = None) -> SweepReport:
        today = today or sweep_today()
        report = SweepReport("pre_deadline", today)
        token = request_id_var.set(new_request_id())
        db = self.session_factory()
        try:
            logger.info(f"Pre-deadline reminder sweep started for {today}")
            companies = directory.list_companies(db)
            company_ids = [c.id for c in companies]
            rules = policy.load_active_rules(db, company_ids)
            if not any(rules.values()):
                logger.info("No active KPI setting reminder rules configured")
                return report

            rows = (
                db.query(Kpi, Employee, Manager)
                .join(Employee, Kpi.employee_id == Employee.id)
                .join(Manager, Kpi.manager_id == Manager.id)
                .filter(
                    Kpi.company_id.in_(list(rules.keys())),
                    Kpi.meeting_date.isnot(None),
                    Kpi.meeting_date >= today,
                    Kpi.status.in_(OPEN_STATUSES),
                )
                .all()
            )
            kpis_by_company = defaultdict(list)
            for row in rows:
                kpis_by_company[row[0].company_id].append(row)
            already_sent = ledger.sent_keys(db, [row[0].id for row in rows])
            people = directory.load_recipients(db, kpis_by_company.keys())
            hr_flags = directory.load_hr_flags(db, kpis_by_company.keys())

            for company in companies:
                if company.id not in kpis_by_company:
                    continue
                if self.stop_event.is_set():
                    report.stopped_early = True
                    logger.info("Reminder sweep stopping before company %s", company.id)
                    break
                due = []
                for kpi, employee, manager in kpis_by_company[company.id]:
                    days_left = (kpi.meeting_date - today).days
                    for rule in rules[company.id]:
                        if rule.reminder_days_before != days_left:
                            continue
                        if rule.period_type and rule.period_type != kpi.period:
                            continue
                        tag = reminder_tag(days_left)
                        if (kpi.id, tag) in already_sent:
                            continue
                        due.append(_DueReminder(
                            kpi, employee, manager, tag,
                            rule.reminder_label or tag.replace("_", " "),
                            kpi.meeting_date,
                        ))
                company_people = people.get(company.id, {})
                recipients = list(company_people.get(UserRole.MANAGER, [])) + list(company_people.get(UserRole.EMPLOYEE, []))
                if hr_flags.get(company.id, True):
                    recipients += list(company_people.get(UserRole.HR, []))
                self._process_company(db, company.id, due, lambda _r: recipients, [], templates.KPI_SETTING_REMINDER, report)
            return report
        except Exception:
            db.rollback()
            logger.exception("Pre-deadline reminder sweep aborted")
            return report
        finally:
            db.close()
            self._log_report(report)
            request_id_var.reset(token)

    # ------------------------------------------------------------------
    # Overdue
    # ------------------------------------------------------------------

    def run_overdue(self, today: Optional[date] = None) -> SweepReport:
        today = today or sweep_today()
        report = SweepReport("daily_overdue", today)
        token = request_id_var.set(new_request_id())
        db = self.session_factory()
        try:
            logger.info(f"Overdue reminder sweep started for {today}")
            companies = directory.list_companies(db)
            daily = policy.load_daily_settings(db, [c.id for c in companies])
            if not daily:
                return report

            periods_by_company = defaultdict(list)
            periods = db.query(KpiPeriodSetting).filter(
                KpiPeriodSetting.company_id.in_(list(daily.keys())),
                KpiPeriodSetting.is_active.is_(True),
            )
            for period in periods:
                if period.end_date <= today - timedelta(days=daily[period.company_id].days_before_meeting):
                    periods_by_company[period.company_id].append(period)
            if not periods_by_company:
                return report

            rows = (
                db.query(Kpi, Employee, Manager)
                .join(Employee, Kpi.employee_id == Employee.id)
                .join(Manager, Kpi.manager_id == Manager.id)
                .filter(
                    Kpi.company_id.in_(list(periods_by_company.keys())),
                    Kpi.status.in_(OPEN_STATUSES),
                )
                .all()
            )
            reminded_today = ledger.sent_on(db, [row[0].id for row in rows], DAILY_OVERDUE_REMINDER, today)
            people = directory.load_recipients(db, periods_by_company.keys(), roles=[UserRole.HR])

            for company in companies:
                if company.id not in periods_by_company:
                    continue
                if self.stop_event.is_set():
                    report.stopped_early = True
                    logger.info("Reminder sweep stopping before company %s", company.id)
                    break
                due = []
                for kpi, employee, manager in rows:
                    if kpi.company_id != company.id or kpi.id in reminded_today:
                        continue
                    period = self._matching_period(kpi, periods_by_company[company.id])
                    if period is None:
                        continue
                    label = f"{period.quarter} {period.year}" if period.quarter else f"{period.year}"
                    due.append(_DueReminder(
                        kpi, employee, manager, DAILY_OVERDUE_REMINDER, label, today,
                        extra={
                            "periodLabel": label,
                            "periodEndDate": period.end_date.isoformat(),
                            "daysPastEndDate": (today - period.end_date).days,
                            "kpiStatus": kpi.status,
                        },
                    ))
                hr = list(people.get(company.id, {}).get(UserRole.HR, []))
                cc = daily[company.id].cc_list
                self._process_company(
                    db, company.id, due,
                    lambda reminder, _hr=hr: [reminder.manager, reminder.employee] + _hr,
                    cc, templates.KPI_OVERDUE_REMINDER, report,
                )
            return report
        except Exception:
            db.rollback()
            logger.exception("Overdue reminder sweep aborted")
            return report
        finally:
            db.close()
            self._log_report(report)
            request_id_var.reset(token)

    @staticmethod
    def _matching_period(kpi: Kpi, periods: List[KpiPeriodSetting]) -> Optional[KpiPeriodSetting]:
        for period in periods:
            if period.period_type != kpi.period or period.year != kpi.year:
                continue
            if kpi.period == PeriodType.QUARTERLY.value and period.quarter != kpi.quarter:
                continue
            return period
        return None

    # ------------------------------------------------------------------
    # Shared per-company step
    # ------------------------------------------------------------------

    def _process_company(
        self,
        db: Session,
        company_id: int,
        due: List[_DueReminder],
        recipients_for: Callable[[_DueReminder], List[User]],
        cc_emails: List[str],
        template_type: str,
        report: SweepReport,
    ):
        unique = {}
        for reminder in due:
            unique.setdefault((reminder.kpi.id, reminder.tag, reminder.ledger_date), reminder)
        due = list(unique.values())
        report.companies_processed += 1
        report.reminders_due += len(due)
        if not due:
            return
        try:
            claimed = ledger.claim(db, company_id, [(r.kpi.id, r.tag, r.ledger_date) for r in due])
            due = [r for r in due if (r.kpi.id, r.tag, r.ledger_date) in claimed]

            notifications = []
            messages = []
            for reminder in due:
                variables = self._variables(reminder)
                seen = set()
                for user in recipients_for(reminder):
                    if user is None or user.id in seen or not user.is_active:
                        continue
                    seen.add(user.id)
                    notifications.append({
                        "user_id": user.id,
                        "company_id": company_id,
                        "title": self._title(template_type, reminder),
                        "message": self._message(template_type, reminder),
                        "type": template_type,
                        "link": variables["link"],
                        "related_kpi_id": reminder.kpi.id,
                    })
                    if user.email:
                        messages.append(SendMessage(company_id, user.email, template_type,
                                                    {**variables, "recipientName": user.name}))
                for address in cc_emails:
                    messages.append(SendMessage(company_id, address, template_type,
                                                {**variables, "recipientName": address}))

            report.notifications_created += NotificationService.bulk_insert(db, notifications)
            db.commit()
            report.reminders_claimed += len(due)
        except Exception:
            db.rollback()
            report.companies_failed.append(company_id)
            logger.exception(f"Reminder processing failed for company {company_id}")
            return

        # Claimed and committed: delivery outcomes no longer affect the ledger
        report.count_deliveries(self.runner.run(messages))

    @staticmethod
    def _variables(reminder: _DueReminder) -> Dict:
        kpi = reminder.kpi
        return {
            "employeeName": reminder.employee.name,
            "managerName": reminder.manager.name,
            "kpiTitle": kpi.title,
            "kpiPeriod": kpi.period,
            "kpiQuarter": kpi.quarter or "",
            "kpiYear": kpi.year or "",
            "meetingDate": kpi.meeting_date.isoformat() if kpi.meeting_date else "",
            "reminderType": reminder.tag,
            "reminderLabel": reminder.label,
            "link": f"{settings.frontend_url}/kpis/{kpi.id}",
            **reminder.extra,
        }

    @staticmethod
    def _title(template_type: str, reminder: _DueReminder) -> str:
        if template_type == templates.KPI_SETTING_REMINDER:
            return f"KPI Setting Reminder: {reminder.label}"
        return "KPI Review Overdue"

    @staticmethod
    def _message(template_type: str, reminder: _DueReminder) -> str:
        if template_type == templates.KPI_SETTING_REMINDER:
            return (
                f"KPI setting meeting for {reminder.employee.name} with {reminder.manager.name} "
                f"is on {reminder.kpi.meeting_date} ({reminder.label})."
            )
        return (
            f"The {reminder.label} KPI for {reminder.employee.name} is still {reminder.kpi.status} "
            f"after the period ended."
        )

    @staticmethod
    def _log_report(report: SweepReport):
        logger.info(
            f"{report.sweep} sweep finished",
            extra={
                "run_date": report.run_date.isoformat(),
                "companies_processed": report.companies_processed,
                "companies_failed": report.companies_failed,
                "reminders_due": report.reminders_due,
                "reminders_claimed": report.reminders_claimed,
                "notifications_created": report.notifications_created,
                "messages_sent": report.messages_sent,
                "messages_failed": report.messages_failed,
                "messages_skipped": report.messages_skipped,
                "stopped_early": report.stopped_early,
            },
        )
