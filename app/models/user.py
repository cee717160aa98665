"""
User model.
Every user belongs to a home company (super admins may have none) and can be
attached to further companies through UserCompany.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", use_alter=True, name="fk_user_department_id"), nullable=True)

    payroll_number = Column(String, nullable=True, index=True)
    position = Column(String, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    company = relationship("Company", back_populates="users", foreign_keys=[company_id])
    manager = relationship("User", remote_side=[id], foreign_keys=[manager_id])
    department = relationship("Department", foreign_keys=[department_id], back_populates="members")
    memberships = relationship("UserCompany", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def is_hr(self) -> bool:
        return self.role in [UserRole.HR, UserRole.SUPER_ADMIN]

    @property
    def can_manage(self) -> bool:
        """Managers and HR can own direct reports."""
        return self.role in [UserRole.MANAGER, UserRole.HR]
