"""Read paths for KPIs and reviews, always filtered through a RoleView."""
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, aliased, selectinload

from app.core.exceptions import AccessDeniedError, BusinessValidationError, NotFoundError
from app.core.filters import FilterField, FilterSet, InvalidFilter
from app.models.kpi import Kpi, KpiItem, KpiStatus, PeriodType, QUARTERS
from app.models.kpi_review import KpiReview, ReviewStatus
from app.models.user import User
from app.services import directory
from app.services.access import RoleView
from app.services.rating import calculate_final_rating

Employee = aliased(User, name="employee")
Manager = aliased(User, name="manager")

REVIEW_STATUS_FILTERS = {
    ReviewStatus.EMPLOYEE_SUBMITTED.value,
    ReviewStatus.AWAITING_EMPLOYEE_CONFIRMATION.value,
    ReviewStatus.COMPLETED.value,
    ReviewStatus.REJECTED.value,
}


def parse_period(raw: str) -> Dict[str, Any]:
    """
    "annual||2026" or "quarterly|Q1|2026". The year may be left empty.
    """
    parts = str(raw).split("|")
    if len(parts) != 3:
        raise ValueError("expected 'type|quarter|year'")
    period_type, quarter, year = (p.strip() for p in parts)
    if period_type not in (PeriodType.ANNUAL.value, PeriodType.QUARTERLY.value):
        raise ValueError(f"unknown period type '{period_type}'")
    if quarter and quarter not in QUARTERS:
        raise ValueError(f"unknown quarter '{quarter}'")
    return {
        "period": period_type,
        "quarter": quarter or None,
        "year": int(year) if year else None,
    }


def _period_predicate(value):
    clauses = [Kpi.period == value["period"]]
    if value["quarter"]:
        clauses.append(Kpi.quarter == value["quarter"])
    if value["year"] is not None:
        clauses.append(Kpi.year == value["year"])
    return and_(*clauses)


def parse_status(raw: str) -> str:
    value = str(raw).strip()
    allowed = {KpiStatus.PENDING.value, KpiStatus.ACKNOWLEDGED.value} | REVIEW_STATUS_FILTERS
    if value not in allowed:
        raise ValueError(f"unknown status '{value}'")
    return value


def _status_predicate(value: str):
    if value == KpiStatus.PENDING.value:
        return Kpi.status == KpiStatus.PENDING.value
    if value == KpiStatus.ACKNOWLEDGED.value:
        return (Kpi.status == KpiStatus.ACKNOWLEDGED.value) & KpiReview.id.is_(None)
    return KpiReview.review_status == value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_predicate(value: str):
    pattern = f"%{_escape_like(value)}%"
    return or_(
        Employee.name.ilike(pattern, escape="\\"),
        Manager.name.ilike(pattern, escape="\\"),
        Employee.payroll_number.ilike(pattern, escape="\\"),
        Kpi.title.ilike(pattern, escape="\\"),
    )


KPI_FILTERS = FilterSet([
    FilterField("department_id", lambda v: Employee.department_id == v, parse=int),
    FilterField("manager_id", lambda v: Kpi.manager_id == v, parse=int),
    FilterField("employee_id", lambda v: Kpi.employee_id == v, parse=int),
    FilterField("period", _period_predicate, parse=parse_period),
    FilterField("status", _status_predicate, parse=parse_status),
    FilterField("search", _search_predicate, parse=lambda v: str(v).strip()),
])


class KpiQueries:
    def __init__(self, db: Session, view: RoleView):
        self.db = db
        self.view = view

    def list_visible_kpis(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = (
            self.db.query(Kpi, Employee, Manager, KpiReview)
            .join(Employee, Kpi.employee_id == Employee.id)
            .join(Manager, Kpi.manager_id == Manager.id)
            .outerjoin(KpiReview, KpiReview.kpi_id == Kpi.id)
        )
        query = self.view.kpis(query)
        try:
            query = KPI_FILTERS.apply(query, filters or {})
        except InvalidFilter as e:
            raise BusinessValidationError(str(e))

        total = query.count()
        rows = (
            query.order_by(Kpi.created_at.desc(), Kpi.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        entries = [
            {
                "id": kpi.id,
                "title": kpi.title,
                "employee_id": kpi.employee_id,
                "employee_name": employee.name,
                "payroll_number": employee.payroll_number,
                "manager_id": kpi.manager_id,
                "manager_name": manager.name,
                "department_id": employee.department_id,
                "period": kpi.period,
                "quarter": kpi.quarter,
                "year": kpi.year,
                "meeting_date": kpi.meeting_date,
                "status": kpi.status,
                "review_id": review.id if review else None,
                "review_status": review.review_status if review else None,
            }
            for kpi, employee, manager, review in rows
        ]
        return entries, total

    def get_kpi(self, kpi_id: int) -> Kpi:
        query = self.db.query(Kpi).options(selectinload(Kpi.items)).filter(Kpi.id == kpi_id)
        kpi = self.view.kpis(query).first()
        if kpi is None:
            raise NotFoundError("KPI not found")
        return kpi

    def list_reviews(self, review_status: Optional[str] = None) -> List[KpiReview]:
        query = self.view.reviews(self.db.query(KpiReview))
        if review_status:
            query = query.filter(KpiReview.review_status == review_status)
        return query.order_by(KpiReview.updated_at.desc(), KpiReview.id.desc()).all()

    def get_review(self, review_id: int) -> KpiReview:
        review = self.view.reviews(self.db.query(KpiReview).filter(KpiReview.id == review_id)).first()
        if review is None:
            raise NotFoundError("Review not found")
        return review

    def review_for_kpi(self, kpi_id: int) -> Dict[str, Any]:
        """The review row, or a no_review stub when the employee has not rated yet."""
        kpi = self.get_kpi(kpi_id)
        review = self.db.query(KpiReview).filter(KpiReview.kpi_id == kpi.id).first()
        if review is not None:
            return review
        return {
            "id": None,
            "kpi_id": kpi.id,
            "employee_id": kpi.employee_id,
            "manager_id": kpi.manager_id,
            "review_status": ReviewStatus.NO_REVIEW.value,
            "review_period": kpi.period,
            "review_quarter": kpi.quarter,
            "review_year": kpi.year,
        }

    def pending_review_count(self) -> int:
        query = self.view.reviews(self.db.query(func.count(KpiReview.id)))
        return query.filter(
            KpiReview.review_status == ReviewStatus.EMPLOYEE_SUBMITTED.value
        ).scalar() or 0

    def acknowledged_without_review(self) -> List[Kpi]:
        query = (
            self.db.query(Kpi)
            .outerjoin(KpiReview, KpiReview.kpi_id == Kpi.id)
            .filter(Kpi.status == KpiStatus.ACKNOWLEDGED.value, KpiReview.id.is_(None))
        )
        return self.view.kpis(query).order_by(Kpi.meeting_date).all()

    def employee_performance(self, employee_id: int) -> Dict[str, Any]:
        actor = self.view.actor
        if actor.company_id is not None:
            employee = directory.company_members_query(self.db, actor.company_id)
        else:
            employee = self.db.query(User)
        employee = employee.filter(User.id == employee_id).first()
        if employee is None:
            raise NotFoundError("Employee not found")
        if not self.view.can_view_employee(employee):
            raise AccessDeniedError("You can only view performance of your direct reports")

        reviews = self.view.reviews(
            self.db.query(KpiReview, Kpi).join(Kpi, KpiReview.kpi_id == Kpi.id)
        )
        reviews = (
            reviews.filter(
                KpiReview.employee_id == employee.id,
                KpiReview.review_status == ReviewStatus.COMPLETED.value,
            )
            .order_by(Kpi.year.desc(), Kpi.quarter.desc())
            .all()
        )
        results = []
        for review, kpi in reviews:
            items = (
                self.db.query(KpiItem)
                .filter(KpiItem.kpi_id == kpi.id)
                .order_by(KpiItem.item_order)
                .all()
            )
            summary = calculate_final_rating(items)
            results.append({
                "review_id": review.id,
                "kpi_id": kpi.id,
                "kpi_title": kpi.title,
                "period": kpi.period,
                "quarter": kpi.quarter,
                "year": kpi.year,
                **summary,
            })
        return {"employee_id": employee.id, "employee_name": employee.name, "reviews": results}
