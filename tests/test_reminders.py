import pytest
import threading
from datetime import date, timedelta

from app.models.kpi import Kpi
from app.models.kpi_period_setting import KpiPeriodSetting
from app.models.notification import Notification
from app.models.reminder_setting import DailyReminderSetting, HrNotificationSetting, ReminderSetting
from app.models.reminder_tracking import ReminderTrackingRecord
from app.models.user import UserRole
from app.services import ledger
from app.services.reminders import ReminderSweeper, reminder_tag

TODAY = date(2026, 3, 10)


@pytest.fixture
def make_kpi(db_session):
    def _make(employee, manager, meeting_date=None, status="pending", period="annual", quarter=None, year=2026):
        kpi = Kpi(
            company_id=employee.company_id,
            employee_id=employee.id,
            manager_id=manager.id,
            title=f"KPIs for {employee.name}",
            period=period,
            quarter=quarter,
            year=year,
            meeting_date=meeting_date,
            status=status,
        )
        db_session.add(kpi)
        db_session.commit()
        return kpi
    return _make


@pytest.fixture
def add_rule(db_session):
    def _add(company, days_before, period_type=None, number=1, active=True):
        rule = ReminderSetting(
            company_id=company.id,
            reminder_type="kpi_setting",
            period_type=period_type,
            reminder_number=number,
            reminder_days_before=days_before,
            is_active=active,
        )
        db_session.add(rule)
        db_session.commit()
        return rule
    return _add


@pytest.fixture
def staffed_company(make_company, make_user):
    """3 managers, 5 employees and 2 HR users."""
    def _staff(name=None):
        company = make_company(name)
        managers = [make_user(company, UserRole.MANAGER) for _ in range(3)]
        employees = [make_user(company, UserRole.EMPLOYEE, manager=managers[0]) for _ in range(5)]
        hr = [make_user(company, UserRole.HR) for _ in range(2)]
        return company, managers, employees, hr
    return _staff


def _sweeper(session_factory, dispatcher, **kwargs):
    return ReminderSweeper(session_factory, dispatcher, max_workers=2, **kwargs)


def _ledger_rows(db_session, kpi):
    return db_session.query(ReminderTrackingRecord).filter(ReminderTrackingRecord.kpi_id == kpi.id).all()


# ---------------------------------------------------------------------------
# Pre-deadline
# ---------------------------------------------------------------------------

def test_reminder_tags():
    assert reminder_tag(14) == "2_weeks"
    assert reminder_tag(7) == "1_week"
    assert reminder_tag(0) == "meeting_day"
    assert reminder_tag(5) == "custom_5_days"


def test_pre_deadline_broadcasts_to_whole_company(db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    kpi = make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(company, 3)

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.reminders_claimed == 1
    assert report.notifications_created == 10
    assert report.messages_sent == 10
    expected = {u.email for u in managers + employees + hr}
    assert set(dispatcher.recipients("kpi_setting_reminder")) == expected

    rows = _ledger_rows(db_session, kpi)
    assert [(r.reminder_type, r.reminder_date) for r in rows] == [("3_days", kpi.meeting_date)]


def test_pre_deadline_runs_once_per_kpi(db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    kpi = make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(company, 3)
    sweeper = _sweeper(session_factory, dispatcher)

    sweeper.run_pre_deadline(today=TODAY)
    second = sweeper.run_pre_deadline(today=TODAY)

    assert second.reminders_claimed == 0
    assert second.messages_sent == 0
    assert len(dispatcher.sent) == 10
    assert len(_ledger_rows(db_session, kpi)) == 1


def test_duplicate_rules_send_once(db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    kpi = make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=7))
    add_rule(company, 7, number=1)
    add_rule(company, 7, number=2)

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.reminders_claimed == 1
    assert len(dispatcher.sent) == 10
    assert len(_ledger_rows(db_session, kpi)) == 1


def test_pre_deadline_skips_hr_when_copies_are_off(db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(company, 3)
    db_session.add(HrNotificationSetting(company_id=company.id, receive_email_notifications=False))
    db_session.commit()

    _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert len(dispatcher.sent) == 8
    assert not {u.email for u in hr} & set(dispatcher.recipients())


def test_pre_deadline_ignores_other_days_and_closed_rules(session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=4))
    make_kpi(employees[1], managers[0], meeting_date=TODAY + timedelta(days=3), period="quarterly", quarter="Q1")
    add_rule(company, 3, period_type="annual")
    add_rule(company, 4, active=False)

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.reminders_due == 0
    assert dispatcher.sent == []


def test_meeting_day_reminder(session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    make_kpi(employees[0], managers[0], meeting_date=TODAY, status="acknowledged")
    add_rule(company, 0)

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.reminders_claimed == 1
    variables = dispatcher.sent[0][3]
    assert variables["reminderType"] == "meeting_day"
    assert variables["meetingDate"] == TODAY.isoformat()


def test_failed_recipient_does_not_block_others(db_session, session_factory, make_dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    kpi = make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(company, 3)
    dispatcher = make_dispatcher(fail_for={employees[1].email}, raise_for={hr[0].email})

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert len(dispatcher.sent) == 10
    assert report.messages_sent == 8
    assert report.messages_failed == 2
    # Delivery failures never release the claim
    assert len(_ledger_rows(db_session, kpi)) == 1


def test_one_company_failing_does_not_stop_the_sweep(monkeypatch, db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    broken, b_managers, b_employees, _ = staffed_company("Broken Co")
    healthy, h_managers, h_employees, h_hr = staffed_company("Healthy Co")
    broken_kpi = make_kpi(b_employees[0], b_managers[0], meeting_date=TODAY + timedelta(days=3))
    healthy_kpi = make_kpi(h_employees[0], h_managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(broken, 3)
    add_rule(healthy, 3)

    real_claim = ledger.claim

    def flaky_claim(db, company_id, keys):
        if company_id == broken.id:
            raise RuntimeError("database hiccup")
        return real_claim(db, company_id, keys)

    monkeypatch.setattr(ledger, "claim", flaky_claim)
    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.companies_failed == [broken.id]
    assert report.reminders_claimed == 1
    assert len(_ledger_rows(db_session, broken_kpi)) == 0
    assert len(_ledger_rows(db_session, healthy_kpi)) == 1
    healthy_people = {u.email for u in h_managers + h_employees + h_hr}
    assert set(dispatcher.recipients()) == healthy_people


def test_reminders_stay_inside_their_company(db_session, session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    first, f_managers, f_employees, f_hr = staffed_company()
    second, s_managers, s_employees, s_hr = staffed_company()
    make_kpi(f_employees[0], f_managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(first, 3)
    add_rule(second, 3)

    _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    outsiders = {u.email for u in s_managers + s_employees + s_hr}
    assert not outsiders & set(dispatcher.recipients())
    assert {c for c, _, _, _ in dispatcher.sent} == {first.id}
    assert db_session.query(Notification).filter(Notification.company_id == second.id).count() == 0


def test_stop_event_halts_before_next_company(session_factory, dispatcher, staffed_company, make_kpi, add_rule):
    company, managers, employees, hr = staffed_company()
    make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))
    add_rule(company, 3)
    stop = threading.Event()
    stop.set()

    report = _sweeper(session_factory, dispatcher, stop_event=stop).run_pre_deadline(today=TODAY)

    assert report.stopped_early is True
    assert report.companies_processed == 0
    assert dispatcher.sent == []


def test_no_rules_means_no_work(session_factory, dispatcher, staffed_company, make_kpi):
    company, managers, employees, hr = staffed_company()
    make_kpi(employees[0], managers[0], meeting_date=TODAY + timedelta(days=3))

    report = _sweeper(session_factory, dispatcher).run_pre_deadline(today=TODAY)

    assert report.companies_processed == 0
    assert dispatcher.sent == []


# ---------------------------------------------------------------------------
# Overdue
# ---------------------------------------------------------------------------

@pytest.fixture
def overdue_setup(db_session, company, manager, employee, hr_user, make_kpi):
    db_session.add(KpiPeriodSetting(
        company_id=company.id,
        period_type="quarterly",
        quarter="Q1",
        year=2026,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 3, 31),
        is_active=True,
    ))
    db_session.add(DailyReminderSetting(
        company_id=company.id,
        send_daily_reminders=True,
        days_before_meeting=3,
        cc_emails="people-ops@example.com, audit@example.com",
    ))
    db_session.commit()
    return make_kpi(employee, manager, period="quarterly", quarter="Q1")


def test_overdue_reminds_parties_hr_and_cc(db_session, session_factory, dispatcher, overdue_setup, manager, employee, hr_user):
    report = _sweeper(session_factory, dispatcher).run_overdue(today=date(2026, 4, 5))

    assert report.reminders_claimed == 1
    assert report.notifications_created == 3
    assert set(dispatcher.recipients("kpi_review_reminder")) == {
        manager.email, employee.email, hr_user.email, "people-ops@example.com", "audit@example.com",
    }
    variables = dispatcher.sent[0][3]
    assert variables["periodLabel"] == "Q1 2026"
    assert variables["daysPastEndDate"] == 5

    rows = _ledger_rows(db_session, overdue_setup)
    assert [(r.reminder_type, r.reminder_date) for r in rows] == [("daily_overdue", date(2026, 4, 5))]


def test_overdue_is_at_most_daily(db_session, session_factory, dispatcher, overdue_setup):
    sweeper = _sweeper(session_factory, dispatcher)
    sweeper.run_overdue(today=date(2026, 4, 5))
    again = sweeper.run_overdue(today=date(2026, 4, 5))
    next_day = sweeper.run_overdue(today=date(2026, 4, 6))

    assert again.reminders_claimed == 0
    assert next_day.reminders_claimed == 1
    assert len(_ledger_rows(db_session, overdue_setup)) == 2


def test_overdue_waits_for_grace_days(session_factory, dispatcher, overdue_setup):
    report = _sweeper(session_factory, dispatcher).run_overdue(today=date(2026, 4, 2))
    assert report.reminders_due == 0
    assert dispatcher.sent == []


def test_overdue_off_when_daily_reminders_disabled(db_session, session_factory, dispatcher, overdue_setup, company):
    setting = db_session.query(DailyReminderSetting).filter(DailyReminderSetting.company_id == company.id).one()
    setting.send_daily_reminders = False
    db_session.commit()

    report = _sweeper(session_factory, dispatcher).run_overdue(today=date(2026, 4, 5))
    assert report.companies_processed == 0
    assert dispatcher.sent == []


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def test_claim_returns_only_new_keys(db_session, company, manager, employee, make_kpi):
    kpi = make_kpi(employee, manager, meeting_date=date(2026, 5, 1))
    key = (kpi.id, "1_week", date(2026, 5, 1))

    first = ledger.claim(db_session, company.id, [key, key])
    second = ledger.claim(db_session, company.id, [key, (kpi.id, "1_day", date(2026, 5, 1))])
    db_session.commit()

    assert first == {key}
    assert second == {(kpi.id, "1_day", date(2026, 5, 1))}
    assert ledger.sent_keys(db_session, [kpi.id]) == {(kpi.id, "1_week"), (kpi.id, "1_day")}
    assert ledger.sent_on(db_session, [kpi.id], "1_day", date(2026, 5, 1)) == {kpi.id}
    assert ledger.sent_on(db_session, [], "1_day", date(2026, 5, 1)) == set()
