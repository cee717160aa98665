from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.notification import Notification


class NotificationService:
    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        type: str = "info",
        link: Optional[str] = None,
        company_id: Optional[int] = None,
        kpi_id: Optional[int] = None,
        review_id: Optional[int] = None,
    ) -> Notification:
        """
        Stage an in-app notification in the caller's transaction.
        """
        notification = Notification(
            user_id=user_id,
            company_id=company_id,
            title=title,
            message=message,
            type=type,
            link=link,
            related_kpi_id=kpi_id,
            related_review_id=review_id,
        )
        db.add(notification)
        return notification

    @staticmethod
    def bulk_insert(db: Session, rows: List[dict]) -> int:
        """Multi-row insert used by the reminder sweeps."""
        if not rows:
            return 0
        db.execute(Notification.__table__.insert(), rows)
        return len(rows)

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: int,
        company_id: Optional[int],
        is_read: Optional[bool] = None,
        type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if company_id is not None:
            query = query.filter(Notification.company_id == company_id)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        if type:
            query = query.filter(Notification.type == type)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def unread_count(db: Session, user_id: int, company_id: Optional[int]) -> int:
        query = db.query(func.count(Notification.id)).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        if company_id is not None:
            query = query.filter(Notification.company_id == company_id)
        return query.scalar() or 0

    @staticmethod
    def company_activity(db: Session, company_id: int, limit: int = 20) -> List[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.company_id == company_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if not notification:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: int, company_id: Optional[int]) -> int:
        query = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        if company_id is not None:
            query = query.filter(Notification.company_id == company_id)
        try:
            updated = query.update({Notification.is_read: True}, synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return updated
