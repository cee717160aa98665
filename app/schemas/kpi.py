from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.kpi import PeriodType
from app.schemas.settings import Quarter

T = TypeVar("T")


class KpiItemIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    current_performance_status: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    expected_completion_date: Optional[date] = None
    goal_weight: Optional[Union[str, float, int]] = None
    is_qualitative: bool = False

    @field_validator("goal_weight")
    @classmethod
    def weight_as_text(cls, v):
        return None if v is None else str(v).strip()


class KpiCreate(BaseModel):
    employee_id: int
    period: PeriodType = PeriodType.ANNUAL
    quarter: Optional[Quarter] = None
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    meeting_date: Optional[date] = None
    manager_signature: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    items: List[KpiItemIn] = Field(default_factory=list)


class KpiUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    meeting_date: Optional[date] = None
    manager_signature: Optional[str] = None


class KpiAcknowledge(BaseModel):
    employee_signature: Optional[str] = None


class KpiItemOut(BaseModel):
    id: int
    item_order: int
    title: str
    description: Optional[str] = None
    current_performance_status: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    expected_completion_date: Optional[date] = None
    goal_weight: Optional[str] = None
    is_qualitative: bool
    employee_rating: Optional[str] = None
    employee_comment: Optional[str] = None
    manager_rating: Optional[str] = None
    manager_comment: Optional[str] = None
    qualitative_rating: Optional[str] = None
    qualitative_comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class KpiOut(BaseModel):
    id: int
    company_id: int
    employee_id: int
    manager_id: int
    title: str
    description: Optional[str] = None
    period: str
    quarter: Optional[str] = None
    year: Optional[int] = None
    meeting_date: Optional[date] = None
    status: str
    manager_signed_at: Optional[datetime] = None
    employee_signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[KpiItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class KpiListEntry(BaseModel):
    id: int
    title: str
    employee_id: int
    employee_name: Optional[str] = None
    payroll_number: Optional[str] = None
    manager_id: int
    manager_name: Optional[str] = None
    department_id: Optional[int] = None
    period: str
    quarter: Optional[str] = None
    year: Optional[int] = None
    meeting_date: Optional[date] = None
    status: str
    review_id: Optional[int] = None
    review_status: Optional[str] = None


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int


# Resolve forward references for Pydantic V2
KpiOut.model_rebuild()
