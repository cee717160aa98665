from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.dependencies import get_effect_runner, get_queries, get_workflow
from app.models.user import UserRole
from app.routers.auth_deps import require_role
from app.schemas.kpi import KpiAcknowledge, KpiCreate, KpiListEntry, KpiOut, KpiUpdate, Page
from app.schemas.review import EmployeePerformance
from app.services.effects import EffectRunner
from app.services.kpi_queries import KpiQueries
from app.services.workflow import KpiWorkflowService

router = APIRouter(prefix="/kpis", tags=["KPIs"])


@router.post("", response_model=KpiOut, status_code=status.HTTP_201_CREATED)
def create_kpi(
    payload: KpiCreate,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
):
    result = workflow.create_kpi(payload)
    runner.schedule(background_tasks, result.effects)
    return result.record


@router.get("", response_model=Page[KpiListEntry])
def list_kpis(
    department_id: Optional[int] = None,
    manager_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    period: Optional[str] = Query(None, description="annual||2026 or quarterly|Q1|2026"),
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    queries: KpiQueries = Depends(get_queries),
):
    filters = {
        "department_id": department_id,
        "manager_id": manager_id,
        "employee_id": employee_id,
        "period": period,
        "status": status,
        "search": search,
    }
    items, total = queries.list_visible_kpis(filters, page=page, page_size=page_size)
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/pending-reviews/count")
def pending_review_count(
    queries: KpiQueries = Depends(get_queries),
    _actor=Depends(require_role([UserRole.MANAGER, UserRole.HR, UserRole.SUPER_ADMIN])),
):
    return {"count": queries.pending_review_count()}


@router.get("/acknowledged-without-review", response_model=List[KpiOut])
def acknowledged_without_review(queries: KpiQueries = Depends(get_queries)):
    return queries.acknowledged_without_review()


@router.get("/employee-performance/{employee_id}", response_model=EmployeePerformance)
def employee_performance(
    employee_id: int,
    queries: KpiQueries = Depends(get_queries),
    _actor=Depends(require_role([UserRole.MANAGER, UserRole.HR, UserRole.SUPER_ADMIN])),
):
    return queries.employee_performance(employee_id)


@router.get("/{kpi_id}", response_model=KpiOut)
def get_kpi(kpi_id: int, queries: KpiQueries = Depends(get_queries)):
    return queries.get_kpi(kpi_id)


@router.patch("/{kpi_id}", response_model=KpiOut)
def update_kpi(
    kpi_id: int,
    payload: KpiUpdate,
    workflow: KpiWorkflowService = Depends(get_workflow),
):
    return workflow.update_kpi(kpi_id, payload).record


@router.post("/{kpi_id}/acknowledge", response_model=KpiOut)
def acknowledge_kpi(
    kpi_id: int,
    payload: KpiAcknowledge,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
):
    result = workflow.acknowledge(kpi_id, payload.employee_signature)
    runner.schedule(background_tasks, result.effects)
    return result.record
