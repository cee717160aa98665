"""
KPI forms and their weighted items.

A KPI row is one employee's form for one review period (annual, or a quarter
of a year). Items carry the individual goals plus the ratings collected during
the review.
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class KpiStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"


class PeriodType(str, enum.Enum):
    ANNUAL = "annual"
    QUARTERLY = "quarterly"


QUARTERS = ("Q1", "Q2", "Q3", "Q4")


class Kpi(Base):
    __tablename__ = "kpis"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    period = Column(String(20), nullable=False, default=PeriodType.ANNUAL.value)
    quarter = Column(String(2), nullable=True)
    year = Column(Integer, nullable=True)
    meeting_date = Column(Date, nullable=True, index=True)

    status = Column(String(20), nullable=False, default=KpiStatus.PENDING.value, index=True)

    manager_signature = Column(Text, nullable=True)
    manager_signed_at = Column(DateTime(timezone=True), nullable=True)
    employee_signature = Column(Text, nullable=True)
    employee_signed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id])
    manager = relationship("User", foreign_keys=[manager_id])
    items = relationship(
        "KpiItem",
        back_populates="kpi",
        cascade="all, delete-orphan",
        order_by="KpiItem.item_order",
    )
    review = relationship("KpiReview", back_populates="kpi", uselist=False)

    def __repr__(self):
        return f"<Kpi {self.id} employee={self.employee_id} {self.status}>"


class KpiItem(Base):
    __tablename__ = "kpi_items"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    item_order = Column(Integer, nullable=False, default=1)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    current_performance_status = Column(Text, nullable=True)
    target_value = Column(String(255), nullable=True)
    measure_unit = Column(String(100), nullable=True)
    expected_completion_date = Column(Date, nullable=True)
    # Free text as entered: "40%", "0.4" and "40" are all accepted
    goal_weight = Column(String(20), nullable=True)
    is_qualitative = Column(Boolean, default=False, nullable=False)

    employee_rating = Column(String(20), nullable=True)
    employee_comment = Column(Text, nullable=True)
    manager_rating = Column(String(20), nullable=True)
    manager_comment = Column(Text, nullable=True)
    qualitative_rating = Column(String(50), nullable=True)
    qualitative_comment = Column(Text, nullable=True)

    kpi = relationship("Kpi", back_populates="items")
