from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class ReviewStatus(str, enum.Enum):
    # Reported for acknowledged KPIs with no review row yet
    NO_REVIEW = "no_review"
    EMPLOYEE_SUBMITTED = "employee_submitted"
    AWAITING_EMPLOYEE_CONFIRMATION = "awaiting_employee_confirmation"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ConfirmationStatus(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class ResolutionStatus(str, enum.Enum):
    RESOLVED = "resolved"


class KpiReview(Base):
    __tablename__ = "kpi_reviews"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    review_status = Column(String(40), nullable=False, default=ReviewStatus.EMPLOYEE_SUBMITTED.value, index=True)
    review_period = Column(String(20), nullable=True)
    review_quarter = Column(String(2), nullable=True)
    review_year = Column(Integer, nullable=True)

    # Self-rating
    employee_rating = Column(Float, nullable=True)
    employee_comment = Column(Text, nullable=True)
    employee_signature = Column(Text, nullable=True)
    employee_signed_at = Column(DateTime(timezone=True), nullable=True)
    major_accomplishments = Column(Text, nullable=True)
    disappointments = Column(Text, nullable=True)

    # Manager review
    manager_rating = Column(Float, nullable=True)
    manager_comment = Column(Text, nullable=True)
    overall_manager_comment = Column(Text, nullable=True)
    major_accomplishments_manager_comment = Column(Text, nullable=True)
    disappointments_manager_comment = Column(Text, nullable=True)
    manager_signature = Column(Text, nullable=True)
    manager_signed_at = Column(DateTime(timezone=True), nullable=True)

    # Employee confirmation
    employee_confirmation_status = Column(String(20), nullable=True)
    employee_confirmation_note = Column(Text, nullable=True)
    employee_confirmation_signature = Column(Text, nullable=True)
    employee_confirmation_signed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_note = Column(Text, nullable=True)

    # HR resolution of a rejected review
    rejection_resolved_status = Column(String(20), nullable=True)
    rejection_resolved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejection_resolved_note = Column(Text, nullable=True)

    pdf_path = Column(String(500), nullable=True)
    pdf_generated = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    kpi = relationship("Kpi", back_populates="review")
    employee = relationship("User", foreign_keys=[employee_id])
    manager = relationship("User", foreign_keys=[manager_id])
