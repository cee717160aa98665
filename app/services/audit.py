from typing import Any, Optional

from app.models.audit_log import AuditLog
from app.services.base import BaseService


def _plain(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "value"):
        return obj.value
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int],
        user_role: Optional[str],
        details: Optional[dict] = None,
        company_id: Optional[int] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> AuditLog:
        """
        Append an audit entry to the current unit of work.
        Nothing is committed here; the row lands or disappears with the transition it describes.
        """
        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            user_role=_plain(user_role),
            details=_plain(details or {}),
            company_id=company_id or self.company_id,
            before_state=_plain(before_state),
            after_state=_plain(after_state)
        )
        self.db.add(db_log)
        return db_log

    @staticmethod
    def log(db, *args, **kwargs):
        return AuditService(db).log_action(*args, **kwargs)
