from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from app.dependencies import get_effect_runner, get_queries, get_workflow
from app.models.user import UserRole
from app.routers.auth_deps import require_role
from app.schemas.review import ConfirmationIn, ManagerReviewIn, ResolveRejectionIn, ReviewOut, SelfRatingIn
from app.services.effects import EffectRunner
from app.services.kpi_queries import KpiQueries
from app.services.workflow import KpiWorkflowService

router = APIRouter(prefix="/kpi-reviews", tags=["KPI Reviews"])


@router.get("", response_model=List[ReviewOut])
def list_reviews(review_status: Optional[str] = None, queries: KpiQueries = Depends(get_queries)):
    return queries.list_reviews(review_status)


@router.get("/kpi/{kpi_id}", response_model=ReviewOut)
def review_for_kpi(kpi_id: int, queries: KpiQueries = Depends(get_queries)):
    return queries.review_for_kpi(kpi_id)


@router.get("/{review_id}", response_model=ReviewOut)
def get_review(review_id: int, queries: KpiQueries = Depends(get_queries)):
    return queries.get_review(review_id)


@router.post("/kpi/{kpi_id}/self-rating", response_model=ReviewOut)
def submit_self_rating(
    kpi_id: int,
    payload: SelfRatingIn,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
):
    result = workflow.submit_self_rating(kpi_id, payload)
    runner.schedule(background_tasks, result.effects)
    return result.record


@router.post("/{review_id}/manager-review", response_model=ReviewOut)
def submit_manager_review(
    review_id: int,
    payload: ManagerReviewIn,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
):
    result = workflow.submit_manager_review(review_id, payload)
    runner.schedule(background_tasks, result.effects)
    return result.record


@router.post("/{review_id}/confirmation", response_model=ReviewOut)
def confirm_review(
    review_id: int,
    payload: ConfirmationIn,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
):
    result = workflow.confirm(review_id, payload)
    runner.schedule(background_tasks, result.effects)
    return result.record


@router.post("/{review_id}/resolve-rejection", response_model=ReviewOut)
def resolve_rejection(
    review_id: int,
    payload: ResolveRejectionIn,
    background_tasks: BackgroundTasks,
    workflow: KpiWorkflowService = Depends(get_workflow),
    runner: EffectRunner = Depends(get_effect_runner),
    _actor=Depends(require_role([UserRole.HR, UserRole.SUPER_ADMIN])),
):
    result = workflow.resolve_rejection(review_id, payload.note)
    runner.schedule(background_tasks, result.effects)
    return result.record
