from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class KpiPeriodSetting(Base):
    """A review window HR has opened (or closed) for KPI setting."""
    __tablename__ = "kpi_period_settings"
    __table_args__ = (
        UniqueConstraint("company_id", "period_type", "quarter", "year", name="uq_period_setting"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    period_type = Column(String(20), nullable=False)
    quarter = Column(String(2), nullable=True)
    year = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
