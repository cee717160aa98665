"""
Tenant directory: which companies exist and who can be contacted in each.

A user counts as a member of a company through their home company_id or a
user_companies row. Only active users with an email address are returned.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.company import Company, UserCompany
from app.models.reminder_setting import HrNotificationSetting
from app.models.user import User, UserRole


def list_companies(db: Session) -> List[Company]:
    return db.query(Company).order_by(Company.id).all()


def is_member(db: Session, user: User, company_id: int) -> bool:
    if user.company_id == company_id:
        return True
    return db.query(UserCompany.id).filter(
        UserCompany.user_id == user.id,
        UserCompany.company_id == company_id,
    ).first() is not None


def company_members_query(db: Session, company_id: int):
    member_ids = db.query(UserCompany.user_id).filter(UserCompany.company_id == company_id)
    return db.query(User).filter(
        or_(User.company_id == company_id, User.id.in_(member_ids)),
    )


def recipients(db: Session, company_id: int, role: UserRole) -> List[User]:
    return (
        company_members_query(db, company_id)
        .filter(
            User.role == role,
            User.is_active.is_(True),
            User.email.isnot(None),
            User.email != "",
        )
        .order_by(User.id)
        .all()
    )


def hr_users(db: Session, company_id: int) -> List[User]:
    return recipients(db, company_id, UserRole.HR)


def hr_notifications_enabled(db: Session, company_id: int) -> bool:
    setting = db.query(HrNotificationSetting).filter(
        HrNotificationSetting.company_id == company_id
    ).first()
    if setting is None:
        return True
    return bool(setting.receive_email_notifications)


def load_recipients(
    db: Session,
    company_ids: Iterable[int],
    roles: Optional[Iterable[UserRole]] = None,
) -> Dict[int, Dict[UserRole, List[User]]]:
    """
    Bulk variant of ``recipients`` for the scheduler: two queries for every
    company instead of one per company and role.
    """
    company_ids = list(company_ids)
    result: Dict[int, Dict[UserRole, List[User]]] = defaultdict(lambda: defaultdict(list))
    if not company_ids:
        return result
    roles = list(roles or [UserRole.MANAGER, UserRole.EMPLOYEE, UserRole.HR])

    base = db.query(User).filter(
        User.role.in_(roles),
        User.is_active.is_(True),
        User.email.isnot(None),
        User.email != "",
    )
    seen = set()
    for user in base.filter(User.company_id.in_(company_ids)).order_by(User.id):
        result[user.company_id][user.role].append(user)
        seen.add((user.company_id, user.id))

    memberships = (
        base.join(UserCompany, UserCompany.user_id == User.id)
        .filter(UserCompany.company_id.in_(company_ids))
        .with_entities(User, UserCompany.company_id)
        .order_by(User.id)
    )
    for user, company_id in memberships:
        if (company_id, user.id) in seen:
            continue
        result[company_id][user.role].append(user)
        seen.add((company_id, user.id))
    return result


def load_hr_flags(db: Session, company_ids: Iterable[int]) -> Dict[int, bool]:
    company_ids = list(company_ids)
    flags = {company_id: True for company_id in company_ids}
    if not company_ids:
        return flags
    rows = db.query(HrNotificationSetting).filter(
        HrNotificationSetting.company_id.in_(company_ids)
    )
    for row in rows:
        flags[row.company_id] = bool(row.receive_email_notifications)
    return flags
