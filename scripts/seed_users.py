"""Seed a demo company with HR, a manager, employees and an open annual period."""
from datetime import date

from app.database import SessionLocal, init_db
from app.models.company import Company
from app.models.kpi_period_setting import KpiPeriodSetting
from app.models.reminder_setting import ReminderSetting
from app.models.user import User, UserRole

init_db()
db = SessionLocal()


def get_or_create_company(name):
    company = db.query(Company).filter(Company.name == name).first()
    if company:
        print(f"Company {name} already exists. Skipping.")
        return company
    company = Company(name=name)
    db.add(company)
    db.commit()
    db.refresh(company)
    print(f"Created company -> {name}")
    return company


def create_user(company, name, email, role, manager=None):
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        print(f"User {email} already exists. Skipping.")
        return existing_user

    user = User(
        name=name,
        email=email,
        role=role,
        company_id=company.id,
        manager_id=manager.id if manager else None,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"Created {role.value} -> {email}")
    return user


company = get_or_create_company("Demo Company")
create_user(company, "Hannah HR", "hr@example.com", UserRole.HR)
manager = create_user(company, "Mark Manager", "manager@example.com", UserRole.MANAGER)
create_user(company, "Erin Employee", "employee@example.com", UserRole.EMPLOYEE, manager=manager)
create_user(company, "Evan Employee", "employee2@example.com", UserRole.EMPLOYEE, manager=manager)

year = date.today().year
if not db.query(KpiPeriodSetting).filter_by(company_id=company.id, period_type="annual", year=year).first():
    db.add(KpiPeriodSetting(
        company_id=company.id,
        period_type="annual",
        year=year,
        start_date=date(year, 1, 1),
        end_date=date(year, 12, 31),
        is_active=True,
    ))
    print(f"Opened annual period {year}")

for number, days in enumerate((7, 3, 1), start=1):
    exists = db.query(ReminderSetting).filter_by(
        company_id=company.id, reminder_type="kpi_setting", reminder_number=number
    ).first()
    if not exists:
        db.add(ReminderSetting(
            company_id=company.id,
            reminder_type="kpi_setting",
            reminder_number=number,
            reminder_days_before=days,
        ))
        print(f"Added reminder rule {number}: {days} days before")

db.commit()
db.close()
