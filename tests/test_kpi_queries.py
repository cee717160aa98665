import pytest
from datetime import date

from app.core.exceptions import AccessDeniedError, BusinessValidationError, NotFoundError
from app.core.filters import InvalidFilter
from app.models.kpi import Kpi
from app.models.kpi_review import KpiReview
from app.models.user import UserRole
from app.services.access import Actor, EmployeeView, HRView, ManagerView, SuperAdminView, view_for
from app.services.kpi_queries import KPI_FILTERS, KpiQueries, parse_period


@pytest.fixture
def seeded(db_session, make_company, make_user):
    """Two companies, each with one manager and two reports; the first report has a submitted review."""
    data = {}
    for label in ("north", "south"):
        company = make_company(label.title())
        boss = make_user(company, UserRole.MANAGER, name=f"{label} boss")
        reports = [make_user(company, UserRole.EMPLOYEE, name=f"{label} report {i}", manager=boss) for i in range(2)]
        kpis = []
        for report in reports:
            kpi = Kpi(
                company_id=company.id, employee_id=report.id, manager_id=boss.id,
                title=f"Goals of {report.name}", period="annual", year=2026,
                meeting_date=date(2026, 2, 1), status="acknowledged",
            )
            db_session.add(kpi)
            kpis.append(kpi)
        db_session.flush()
        db_session.add(KpiReview(
            kpi_id=kpis[0].id, company_id=company.id, employee_id=reports[0].id,
            manager_id=boss.id, review_status="employee_submitted",
        ))
        db_session.commit()
        data[label] = {"company": company, "boss": boss, "reports": reports, "kpis": kpis}
    return data


def _queries(db_session, user, role=None, company_id="home"):
    actor = Actor(
        user_id=user.id,
        role=role or user.role,
        company_id=user.company_id if company_id == "home" else company_id,
    )
    return KpiQueries(db_session, view_for(actor))


def test_view_for_each_role():
    assert isinstance(view_for(Actor(1, UserRole.EMPLOYEE, 1)), EmployeeView)
    assert isinstance(view_for(Actor(1, UserRole.MANAGER, 1)), ManagerView)
    assert isinstance(view_for(Actor(1, UserRole.HR, 1)), HRView)
    assert isinstance(view_for(Actor(1, UserRole.SUPER_ADMIN, None)), SuperAdminView)


def test_employee_sees_only_own(db_session, seeded):
    me = seeded["north"]["reports"][1]
    entries, total = _queries(db_session, me).list_visible_kpis()
    assert total == 1
    assert entries[0]["employee_id"] == me.id


def test_manager_sees_team_in_own_company(db_session, seeded):
    entries, total = _queries(db_session, seeded["north"]["boss"]).list_visible_kpis()
    assert total == 2
    assert {e["employee_name"] for e in entries} == {"north report 0", "north report 1"}


def test_hr_sees_whole_company_only(db_session, seeded, make_user):
    hr = make_user(seeded["south"]["company"], UserRole.HR)
    entries, total = _queries(db_session, hr).list_visible_kpis()
    assert total == 2
    assert {e["employee_name"] for e in entries} == {"south report 0", "south report 1"}


def test_super_admin_without_company_sees_all(db_session, seeded, make_user):
    admin = make_user(None, UserRole.SUPER_ADMIN)
    _, total = _queries(db_session, admin, company_id=None).list_visible_kpis()
    assert total == 4


def test_status_filter_distinguishes_review_states(db_session, seeded, make_user):
    hr = make_user(seeded["north"]["company"], UserRole.HR)
    queries = _queries(db_session, hr)
    _, submitted = queries.list_visible_kpis({"status": "employee_submitted"})
    _, waiting = queries.list_visible_kpis({"status": "acknowledged"})
    assert (submitted, waiting) == (1, 1)


def test_pagination(db_session, seeded, make_user):
    hr = make_user(seeded["north"]["company"], UserRole.HR)
    queries = _queries(db_session, hr)
    first, total = queries.list_visible_kpis(page=1, page_size=1)
    second, _ = queries.list_visible_kpis(page=2, page_size=1)
    assert total == 2
    assert len(first) == len(second) == 1
    assert first[0]["id"] != second[0]["id"]


def test_bad_filter_becomes_validation_error(db_session, seeded):
    with pytest.raises(BusinessValidationError):
        _queries(db_session, seeded["north"]["boss"]).list_visible_kpis({"status": "archived"})


def test_filter_parsing():
    assert parse_period("quarterly|Q3|2026") == {"period": "quarterly", "quarter": "Q3", "year": 2026}
    assert parse_period("annual||") == {"period": "annual", "quarter": None, "year": None}
    with pytest.raises(ValueError):
        parse_period("annual|2026")
    with pytest.raises(InvalidFilter):
        KPI_FILTERS.predicates({"department_id": "sales"})
    assert KPI_FILTERS.predicates({"search": "", "manager_id": None}) == []


def test_cross_company_review_is_not_found(db_session, seeded):
    south_review = db_session.query(KpiReview).filter(
        KpiReview.company_id == seeded["south"]["company"].id
    ).one()
    with pytest.raises(NotFoundError):
        _queries(db_session, seeded["north"]["boss"]).get_review(south_review.id)


def test_pending_review_count(db_session, seeded):
    assert _queries(db_session, seeded["north"]["boss"]).pending_review_count() == 1


def test_acknowledged_without_review(db_session, seeded):
    kpis = _queries(db_session, seeded["north"]["boss"]).acknowledged_without_review()
    assert [k.id for k in kpis] == [seeded["north"]["kpis"][1].id]


def test_performance_of_non_report_is_denied(db_session, seeded, make_user):
    outsider_boss = make_user(seeded["north"]["company"], UserRole.MANAGER)
    with pytest.raises(AccessDeniedError):
        _queries(db_session, outsider_boss).employee_performance(seeded["north"]["reports"][0].id)
    with pytest.raises(NotFoundError):
        _queries(db_session, seeded["north"]["boss"]).employee_performance(seeded["south"]["reports"][0].id)


def test_performance_is_scoped_to_the_actor_company(db_session, seeded, make_user):
    from app.models.company import UserCompany

    shared = seeded["north"]["reports"][0]
    south = seeded["south"]
    db_session.add(UserCompany(user_id=shared.id, company_id=south["company"].id))
    kpi = Kpi(
        company_id=south["company"].id, employee_id=shared.id, manager_id=south["boss"].id,
        title="South secret goals", period="annual", year=2026, status="acknowledged",
    )
    db_session.add(kpi)
    db_session.flush()
    db_session.add(KpiReview(
        kpi_id=kpi.id, company_id=south["company"].id, employee_id=shared.id,
        manager_id=south["boss"].id, review_status="completed", manager_rating=5,
    ))
    db_session.commit()

    north_hr = make_user(seeded["north"]["company"], UserRole.HR)
    assert _queries(db_session, north_hr).employee_performance(shared.id)["reviews"] == []

    south_hr = make_user(south["company"], UserRole.HR)
    perf = _queries(db_session, south_hr).employee_performance(shared.id)
    assert [r["kpi_title"] for r in perf["reviews"]] == ["South secret goals"]


def test_search_treats_wildcards_literally(db_session, seeded, make_user):
    hr = make_user(seeded["north"]["company"], UserRole.HR)
    queries = _queries(db_session, hr)
    assert queries.list_visible_kpis({"search": "report 0"})[1] == 1
    assert queries.list_visible_kpis({"search": "report_0"})[1] == 0
    assert queries.list_visible_kpis({"search": "%"})[1] == 0
