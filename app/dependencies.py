"""
Shared request dependencies for services that need application state.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.auth_deps import get_current_actor
from app.services.access import Actor, view_for
from app.services.effects import EffectRunner
from app.services.kpi_queries import KpiQueries
from app.services.workflow import KpiWorkflowService


def get_effect_runner(request: Request) -> EffectRunner:
    return request.app.state.effect_runner


def get_workflow(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> KpiWorkflowService:
    return KpiWorkflowService(db, actor)


def get_queries(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> KpiQueries:
    return KpiQueries(db, view_for(actor))
