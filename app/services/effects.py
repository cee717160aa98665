"""
Side effects requested by workflow transitions.

Transitions never talk to mail transports or renderers directly. They return
intents, and the EffectRunner carries them out after the response has been
sent, containing every failure to the intent that caused it.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.kpi import KpiItem
from app.models.kpi_review import KpiReview
from app.models.user import User
from app.services.dispatcher import DeliveryResult, NotificationDispatcher
from app.services.review_document import ReviewDocumentGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendMessage:
    company_id: int
    recipient: str
    template_type: str
    variables: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerateReviewDocument:
    review_id: int


Effect = Union[SendMessage, GenerateReviewDocument]


@dataclass
class TransitionResult:
    record: Any
    effects: List[Effect] = field(default_factory=list)


class EffectRunner:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session_factory: Callable[[], Session],
        document_generator: Optional[ReviewDocumentGenerator] = None,
        max_workers: Optional[int] = None,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.document_generator = document_generator or ReviewDocumentGenerator()
        self.max_workers = max_workers or settings.email.dispatch_workers

    def schedule(self, background_tasks: BackgroundTasks, effects: List[Effect]) -> None:
        if effects:
            background_tasks.add_task(self.run, list(effects))

    def run(self, effects: List[Effect]) -> List[Any]:
        messages = [e for e in effects if isinstance(e, SendMessage)]
        documents = [e for e in effects if isinstance(e, GenerateReviewDocument)]
        outcomes: List[Any] = []

        for effect in documents:
            outcomes.append(self.generate_document(effect))

        if messages:
            workers = max(1, min(self.max_workers, len(messages)))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes.extend(pool.map(self.send_message, messages))
        return outcomes

    def send_message(self, effect: SendMessage) -> DeliveryResult:
        try:
            result = self.dispatcher.send(effect.company_id, effect.recipient, effect.template_type, effect.variables)
        except Exception as e:
            logger.exception(f"Dispatcher failed for {effect.template_type} to {effect.recipient}")
            return DeliveryResult(False, "none", effect.recipient, error=str(e))
        if not result.success and not result.skipped:
            logger.warning(f"Delivery of {effect.template_type} to {effect.recipient} failed: {result.error}")
        return result

    def generate_document(self, effect: GenerateReviewDocument) -> Optional[str]:
        db = self.session_factory()
        try:
            review = db.query(KpiReview).filter(KpiReview.id == effect.review_id).first()
            if review is None:
                logger.warning(f"Review {effect.review_id} vanished before its document was generated")
                return None
            items = db.query(KpiItem).filter(KpiItem.kpi_id == review.kpi_id).order_by(KpiItem.item_order).all()
            employee = db.get(User, review.employee_id)
            manager = db.get(User, review.manager_id)
            path = self.document_generator.generate(review, items, employee, manager)
            review.pdf_path = path
            review.pdf_generated = True
            db.commit()
            return path
        except Exception:
            db.rollback()
            logger.exception(f"Document generation failed for review {effect.review_id}")
            return None
        finally:
            db.close()
