"""
Role views.

Each role gets one view class answering the same questions: which KPIs and
reviews can this actor see. The view is picked once, at the request boundary,
by ``view_for``; queries never branch on role themselves.
"""
from dataclasses import dataclass
from typing import Optional

from app.core.exceptions import AccessDeniedError
from app.models.kpi import Kpi
from app.models.kpi_review import KpiReview
from app.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: UserRole
    company_id: Optional[int]

    @property
    def is_hr(self) -> bool:
        return self.role in (UserRole.HR, UserRole.SUPER_ADMIN)


class RoleView:
    def __init__(self, actor: Actor):
        self.actor = actor

    def _company(self, query, company_column):
        if self.actor.company_id is None:
            return query
        return query.filter(company_column == self.actor.company_id)

    def kpis(self, query):
        raise NotImplementedError

    def reviews(self, query):
        raise NotImplementedError

    def can_view_employee(self, employee) -> bool:
        raise NotImplementedError


class EmployeeView(RoleView):
    def kpis(self, query):
        return self._company(query, Kpi.company_id).filter(Kpi.employee_id == self.actor.user_id)

    def reviews(self, query):
        return self._company(query, KpiReview.company_id).filter(KpiReview.employee_id == self.actor.user_id)

    def can_view_employee(self, employee) -> bool:
        return employee.id == self.actor.user_id


class ManagerView(RoleView):
    def kpis(self, query):
        return self._company(query, Kpi.company_id).filter(Kpi.manager_id == self.actor.user_id)

    def reviews(self, query):
        return self._company(query, KpiReview.company_id).filter(KpiReview.manager_id == self.actor.user_id)

    def can_view_employee(self, employee) -> bool:
        return employee.manager_id == self.actor.user_id


class HRView(RoleView):
    def kpis(self, query):
        return self._company(query, Kpi.company_id)

    def reviews(self, query):
        return self._company(query, KpiReview.company_id)

    def can_view_employee(self, employee) -> bool:
        return True


class SuperAdminView(HRView):
    """Company-wide like HR; unrestricted when the token carries no company."""


_VIEWS = {
    UserRole.EMPLOYEE: EmployeeView,
    UserRole.MANAGER: ManagerView,
    UserRole.HR: HRView,
    UserRole.SUPER_ADMIN: SuperAdminView,
}


def view_for(actor: Actor) -> RoleView:
    try:
        return _VIEWS[actor.role](actor)
    except KeyError:
        raise AccessDeniedError(f"No access rules for role {actor.role}")
