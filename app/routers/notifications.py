from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.auth_deps import get_current_actor
from app.schemas.notification import NotificationOut, UnreadCount
from app.services.access import Actor
from app.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationOut])
def get_notifications(
    read: Optional[bool] = None,
    type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return NotificationService.list_for_user(db, actor.user_id, actor.company_id, is_read=read, type=type, limit=limit)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return {"count": NotificationService.unread_count(db, actor.user_id, actor.company_id)}


@router.get("/activity", response_model=List[NotificationOut])
def recent_activity(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """HR sees company-wide activity; everyone else sees their own."""
    if actor.is_hr and actor.company_id is not None:
        return NotificationService.company_activity(db, actor.company_id, limit=limit)
    return NotificationService.list_for_user(db, actor.user_id, actor.company_id, limit=limit)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return NotificationService.mark_read(db, notification_id, actor.user_id)


@router.post("/mark-all-read")
def mark_all_notifications_as_read(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    updated = NotificationService.mark_all_read(db, actor.user_id, actor.company_id)
    return {"message": "All notifications marked as read", "updated": updated}
