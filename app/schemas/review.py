from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemRatingIn(BaseModel):
    item_id: int
    rating: Optional[float] = None
    comment: Optional[str] = None


class QualitativeRatingIn(BaseModel):
    item_id: int
    rating: Optional[str] = None
    comment: Optional[str] = None


class SelfRatingIn(BaseModel):
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    employee_signature: Optional[str] = None
    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    item_ratings: List[ItemRatingIn] = Field(default_factory=list)


class ManagerReviewIn(BaseModel):
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None
    overall_manager_comment: Optional[str] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    manager_signature: Optional[str] = None
    item_ratings: List[ItemRatingIn] = Field(default_factory=list)
    qualitative_ratings: List[QualitativeRatingIn] = Field(default_factory=list)


class ConfirmationIn(BaseModel):
    confirmation_status: Optional[str] = None
    signature: Optional[str] = None
    rejection_note: Optional[str] = None
    note: Optional[str] = None


class ResolveRejectionIn(BaseModel):
    note: Optional[str] = None


class ReviewOut(BaseModel):
    id: Optional[int] = None
    kpi_id: int
    employee_id: int
    manager_id: int
    review_status: str
    review_period: Optional[str] = None
    review_quarter: Optional[str] = None
    review_year: Optional[int] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    employee_signed_at: Optional[datetime] = None
    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None
    overall_manager_comment: Optional[str] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    manager_signed_at: Optional[datetime] = None
    employee_confirmation_status: Optional[str] = None
    employee_confirmation_note: Optional[str] = None
    employee_confirmation_signed_at: Optional[datetime] = None
    rejection_note: Optional[str] = None
    rejection_resolved_status: Optional[str] = None
    rejection_resolved_at: Optional[datetime] = None
    rejection_resolved_by: Optional[int] = None
    rejection_resolved_note: Optional[str] = None
    pdf_generated: bool = False

    model_config = ConfigDict(from_attributes=True)


class ReviewPerformance(BaseModel):
    review_id: int
    kpi_id: int
    kpi_title: str
    period: Optional[str] = None
    quarter: Optional[str] = None
    year: Optional[int] = None
    final_rating: float
    total_weight: float
    item_calculations: List[Dict[str, Any]]


class EmployeePerformance(BaseModel):
    employee_id: int
    employee_name: str
    reviews: List[ReviewPerformance]
