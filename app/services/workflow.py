"""
KPI review workflow.

Every public method is one transition: it validates the actor and the
current state, applies the change together with its audit and in-app
notification rows in a single commit, and returns a TransitionResult whose
effects (emails, the review document) are run later by the EffectRunner.

    KPI:     pending -> acknowledged
    Review:  employee_submitted -> awaiting_employee_confirmation -> completed | rejected
             rejected reviews can be marked resolved by HR without changing review_status
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AccessDeniedError, BusinessValidationError, NotFoundError
from app.models.kpi import Kpi, KpiItem, KpiStatus, PeriodType
from app.models.kpi_review import ConfirmationStatus, KpiReview, ResolutionStatus, ReviewStatus
from app.models.user import User, UserRole
from app.schemas.kpi import KpiCreate, KpiUpdate
from app.schemas.review import ConfirmationIn, ManagerReviewIn, SelfRatingIn
from app.services import directory, message_templates as templates
from app.services.access import Actor
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.effects import GenerateReviewDocument, SendMessage, TransitionResult
from app.services.notification import NotificationService
from app.services.policy import find_active_period

TERMINAL_REVIEW_STATES = (ReviewStatus.COMPLETED.value, ReviewStatus.REJECTED.value)


def _now():
    return datetime.now(timezone.utc)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _rating_text(value) -> Optional[str]:
    if value is None:
        return None
    return str(int(value)) if float(value).is_integer() else str(value)


class KpiWorkflowService(BaseService):
    def __init__(self, db: Session, actor: Actor):
        super().__init__(db, actor.company_id)
        self.actor = actor
        self.audit = AuditService(db, actor.company_id)
        self._effects: List = []

    # ------------------------------------------------------------------
    # Loading and guards
    # ------------------------------------------------------------------

    def _scoped(self, query, company_column):
        if self.actor.company_id is not None:
            query = query.filter(company_column == self.actor.company_id)
        return query

    def _load_kpi(self, kpi_id: int) -> Kpi:
        kpi = self._scoped(self.db.query(Kpi).filter(Kpi.id == kpi_id), Kpi.company_id).first()
        if kpi is None:
            raise NotFoundError("KPI not found")
        return kpi

    def _load_review(self, review_id: int) -> KpiReview:
        review = self._scoped(
            self.db.query(KpiReview).filter(KpiReview.id == review_id), KpiReview.company_id
        ).first()
        if review is None:
            raise NotFoundError("Review not found")
        return review

    def _require_party(self, user_id: int, message: str):
        if self.actor.user_id != user_id:
            raise AccessDeniedError(message)

    def _finish(self, record, action: str, entity_type: str, before: Optional[dict], after: dict, details=None):
        self.audit.log_action(
            action=action,
            entity_type=entity_type,
            entity_id=record.id,
            user_id=self.actor.user_id,
            user_role=self.actor.role,
            details=details or {},
            company_id=record.company_id,
            before_state=before,
            after_state=after,
        )
        self.commit()
        self.db.refresh(record)
        effects, self._effects = self._effects, []
        self.log_info(f"{action} applied to {entity_type} {record.id}")
        return TransitionResult(record=record, effects=effects)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify(
        self,
        user: Optional[User],
        company_id: int,
        title: str,
        message: str,
        type: str,
        variables: Dict,
        kpi_id: Optional[int] = None,
        review_id: Optional[int] = None,
        email: bool = True,
    ):
        if user is None:
            return
        link = variables.get("link")
        NotificationService.create_notification(
            self.db,
            user_id=user.id,
            title=title,
            message=message,
            type=type,
            link=link,
            company_id=company_id,
            kpi_id=kpi_id,
            review_id=review_id,
        )
        if email and user.email:
            self._effects.append(SendMessage(
                company_id=company_id,
                recipient=user.email,
                template_type=type,
                variables={**variables, "recipientName": user.name},
            ))

    def _notify_hr(self, company_id: int, title: str, message: str, type: str, variables: Dict, **kwargs):
        send_email = directory.hr_notifications_enabled(self.db, company_id)
        for hr in directory.hr_users(self.db, company_id):
            if hr.id == self.actor.user_id:
                continue
            self._notify(hr, company_id, title, message, type, variables, email=send_email, **kwargs)

    def _variables(self, kpi: Kpi, employee: User, manager: User, link: str, **extra) -> Dict:
        return {
            "employeeName": employee.name if employee else "",
            "managerName": manager.name if manager else "",
            "kpiTitle": kpi.title,
            "kpiPeriod": kpi.period,
            "kpiQuarter": kpi.quarter or "",
            "kpiYear": kpi.year or "",
            "meetingDate": kpi.meeting_date.isoformat() if kpi.meeting_date else "",
            "link": f"{settings.frontend_url}{link}",
            **extra,
        }

    # ------------------------------------------------------------------
    # KPI transitions
    # ------------------------------------------------------------------

    def create_kpi(self, payload: KpiCreate, today: Optional[date] = None) -> TransitionResult:
        if self.actor.role not in (UserRole.MANAGER, UserRole.HR):
            raise AccessDeniedError("Only managers can set KPIs")
        if self.actor.company_id is None:
            raise BusinessValidationError("A company context is required to set KPIs")

        employee = (
            directory.company_members_query(self.db, self.actor.company_id)
            .filter(User.id == payload.employee_id)
            .first()
        )
        if employee is None:
            raise NotFoundError("Employee not found")
        if employee.manager_id != self.actor.user_id:
            raise AccessDeniedError("You can only set KPIs for your direct reports")

        period = payload.period.value
        quarter = payload.quarter if payload.period == PeriodType.QUARTERLY else None
        if payload.period == PeriodType.QUARTERLY and not quarter:
            raise BusinessValidationError("Quarter is required for quarterly KPIs")
        year = payload.year or (today or date.today()).year

        window = find_active_period(self.db, self.actor.company_id, period, quarter, year)
        if window is None:
            label = f"{quarter} {year}" if quarter else f"{year}"
            raise BusinessValidationError(f"No active {period} KPI period for {label}")

        items = [item for item in payload.items if not _blank(item.title)]
        if not items:
            raise BusinessValidationError("At least one KPI item with a title is required")

        if payload.meeting_date and not (window.start_date <= payload.meeting_date <= window.end_date):
            self.log_warning(
                f"Meeting date {payload.meeting_date} is outside the {period} period window "
                f"{window.start_date} - {window.end_date}"
            )

        if not _blank(payload.title):
            title = payload.title.strip()
        elif len(items) == 1:
            title = items[0].title.strip()
        else:
            title = f"{len(items)} KPIs - {quarter or 'Annual'} {year}"

        manager = self.db.get(User, self.actor.user_id)
        kpi = Kpi(
            company_id=self.actor.company_id,
            employee_id=employee.id,
            manager_id=self.actor.user_id,
            title=title,
            description=payload.description,
            period=period,
            quarter=quarter,
            year=year,
            meeting_date=payload.meeting_date,
            status=KpiStatus.PENDING.value,
            manager_signature=payload.manager_signature,
            manager_signed_at=_now() if not _blank(payload.manager_signature) else None,
        )
        for order, item in enumerate(items, start=1):
            kpi.items.append(KpiItem(
                item_order=order,
                title=item.title.strip(),
                description=item.description,
                current_performance_status=item.current_performance_status,
                target_value=item.target_value,
                measure_unit=item.measure_unit,
                expected_completion_date=item.expected_completion_date,
                goal_weight=item.goal_weight,
                is_qualitative=item.is_qualitative,
            ))
        self.db.add(kpi)
        self.db.flush()

        variables = self._variables(kpi, employee, manager, f"/employee/kpi-acknowledgement/{kpi.id}")
        self._notify(
            employee, kpi.company_id, "New KPI Assigned",
            f"{manager.name} has set KPIs for you: {kpi.title}",
            templates.KPI_ASSIGNED, variables, kpi_id=kpi.id,
        )
        self._notify_hr(
            kpi.company_id, "KPI Set",
            f"{manager.name} has set KPIs for {employee.name}: {kpi.title}",
            templates.KPI_SET, variables, kpi_id=kpi.id,
        )
        return self._finish(
            kpi, "create_kpi", "kpi", None,
            {"status": kpi.status, "items": len(items), "period": period, "quarter": quarter, "year": year},
        )

    def update_kpi(self, kpi_id: int, payload: KpiUpdate) -> TransitionResult:
        kpi = self._load_kpi(kpi_id)
        self._require_party(kpi.manager_id, "Only the KPI's manager can edit it")
        if kpi.status != KpiStatus.PENDING.value:
            raise BusinessValidationError("Only pending KPIs can be edited")

        before = {
            "title": kpi.title,
            "meeting_date": kpi.meeting_date,
            "manager_signed": kpi.manager_signature is not None,
        }
        changes = payload.model_dump(exclude_unset=True)
        if "title" in changes and not _blank(changes["title"]):
            kpi.title = changes["title"].strip()
        if "description" in changes:
            kpi.description = changes["description"]
        if "meeting_date" in changes:
            kpi.meeting_date = changes["meeting_date"]
        if not _blank(changes.get("manager_signature")):
            kpi.manager_signature = changes["manager_signature"]
            kpi.manager_signed_at = _now()

        return self._finish(
            kpi, "update_kpi", "kpi", before,
            {"title": kpi.title, "meeting_date": kpi.meeting_date, "manager_signed": kpi.manager_signature is not None},
        )

    def acknowledge(self, kpi_id: int, employee_signature: Optional[str]) -> TransitionResult:
        kpi = self._load_kpi(kpi_id)
        self._require_party(kpi.employee_id, "Only the assigned employee can acknowledge this KPI")
        if kpi.status != KpiStatus.PENDING.value:
            raise BusinessValidationError("KPI has already been acknowledged")
        if _blank(employee_signature):
            raise BusinessValidationError("Employee signature is required")

        before = {"status": kpi.status}
        kpi.status = KpiStatus.ACKNOWLEDGED.value
        kpi.employee_signature = employee_signature
        kpi.employee_signed_at = _now()

        employee = self.db.get(User, kpi.employee_id)
        manager = self.db.get(User, kpi.manager_id)
        variables = self._variables(kpi, employee, manager, f"/manager/kpi-details/{kpi.id}")
        message = f"{employee.name} has acknowledged the KPI: {kpi.title}"
        self._notify(manager, kpi.company_id, "KPI Acknowledged", message,
                     templates.KPI_ACKNOWLEDGED, variables, kpi_id=kpi.id)
        self._notify_hr(kpi.company_id, "KPI Acknowledged", message,
                        templates.KPI_ACKNOWLEDGED, variables, kpi_id=kpi.id)
        return self._finish(kpi, "acknowledge_kpi", "kpi", before, {"status": kpi.status})

    # ------------------------------------------------------------------
    # Review transitions
    # ------------------------------------------------------------------

    def _check_items(self, kpi: Kpi, *entry_lists):
        known = {item.id for item in kpi.items}
        for entries in entry_lists:
            for entry in entries:
                if entry.item_id not in known:
                    raise BusinessValidationError(f"Item {entry.item_id} does not belong to this KPI")

    def _apply_item_ratings(self, kpi: Kpi, ratings, side: str):
        items = {item.id: item for item in kpi.items}
        for entry in ratings:
            item = items[entry.item_id]
            setattr(item, f"{side}_rating", _rating_text(entry.rating))
            setattr(item, f"{side}_comment", entry.comment)

    def submit_self_rating(self, kpi_id: int, payload: SelfRatingIn) -> TransitionResult:
        kpi = self._load_kpi(kpi_id)
        self._require_party(kpi.employee_id, "Only the assigned employee can rate this KPI")
        if kpi.status != KpiStatus.ACKNOWLEDGED.value:
            raise BusinessValidationError("The KPI must be acknowledged before self-rating")
        if payload.employee_rating is None:
            raise BusinessValidationError("Employee rating is required")
        if _blank(payload.employee_signature):
            raise BusinessValidationError("Employee signature is required")

        review = self.db.query(KpiReview).filter(KpiReview.kpi_id == kpi.id).first()
        if review is not None and review.review_status in TERMINAL_REVIEW_STATES:
            raise BusinessValidationError(f"Review is already {review.review_status}")
        self._check_items(kpi, payload.item_ratings)
        before = {"review_status": review.review_status} if review else None

        self._apply_item_ratings(kpi, payload.item_ratings, "employee")
        if review is None:
            review = KpiReview(
                kpi_id=kpi.id,
                company_id=kpi.company_id,
                employee_id=kpi.employee_id,
                manager_id=kpi.manager_id,
                review_period=kpi.period,
                review_quarter=kpi.quarter,
                review_year=kpi.year,
            )
            self.db.add(review)
        review.employee_rating = payload.employee_rating
        review.employee_comment = payload.employee_comment
        review.employee_signature = payload.employee_signature
        review.employee_signed_at = _now()
        review.major_accomplishments = payload.major_accomplishments
        review.disappointments = payload.disappointments
        review.review_status = ReviewStatus.EMPLOYEE_SUBMITTED.value
        self.db.flush()

        employee = self.db.get(User, kpi.employee_id)
        manager = self.db.get(User, kpi.manager_id)
        variables = self._variables(kpi, employee, manager, f"/manager/kpi-review/{review.id}")
        message = f"{employee.name} has submitted their self-rating for {kpi.title}"
        self._notify(manager, kpi.company_id, "Self-Rating Submitted", message,
                     templates.SELF_RATING_SUBMITTED, variables, kpi_id=kpi.id, review_id=review.id)
        self._notify_hr(kpi.company_id, "Self-Rating Submitted", message,
                        templates.SELF_RATING_SUBMITTED, variables, kpi_id=kpi.id, review_id=review.id)
        return self._finish(review, "submit_self_rating", "kpi_review", before,
                            {"review_status": review.review_status, "employee_rating": review.employee_rating})

    def submit_manager_review(self, review_id: int, payload: ManagerReviewIn) -> TransitionResult:
        review = self._load_review(review_id)
        self._require_party(review.manager_id, "Only the reviewing manager can submit this review")
        if payload.manager_rating is None:
            raise BusinessValidationError("Manager rating is required")
        if _blank(payload.manager_signature):
            raise BusinessValidationError("Manager signature is required")

        kpi = self.db.get(Kpi, review.kpi_id)
        before = {"review_status": review.review_status, "manager_rating": review.manager_rating}
        self._check_items(kpi, payload.item_ratings, payload.qualitative_ratings)

        self._apply_item_ratings(kpi, payload.item_ratings, "manager")
        items = {item.id: item for item in kpi.items}
        for entry in payload.qualitative_ratings:
            item = items[entry.item_id]
            item.qualitative_rating = entry.rating
            item.qualitative_comment = entry.comment

        review.manager_rating = payload.manager_rating
        review.manager_comment = payload.manager_comment
        review.overall_manager_comment = payload.overall_manager_comment
        review.major_accomplishments_manager_comment = payload.major_accomplishments_manager_comment
        review.disappointments_manager_comment = payload.disappointments_manager_comment
        review.manager_signature = payload.manager_signature
        review.manager_signed_at = _now()
        review.review_status = ReviewStatus.AWAITING_EMPLOYEE_CONFIRMATION.value

        employee = self.db.get(User, review.employee_id)
        manager = self.db.get(User, review.manager_id)
        variables = self._variables(kpi, employee, manager, f"/employee/kpi-confirmation/{review.id}")
        self._notify(employee, review.company_id, "Review Awaiting Your Confirmation",
                     f"{manager.name} has completed your review for {kpi.title}. Please confirm it.",
                     templates.MANAGER_REVIEW_SUBMITTED, variables, kpi_id=kpi.id, review_id=review.id)
        self._notify_hr(review.company_id, "Manager Review Submitted",
                        f"{manager.name} has reviewed {employee.name} for {kpi.title}",
                        templates.MANAGER_REVIEW_SUBMITTED, variables, kpi_id=kpi.id, review_id=review.id)
        self._effects.append(GenerateReviewDocument(review_id=review.id))
        return self._finish(review, "submit_manager_review", "kpi_review", before,
                            {"review_status": review.review_status, "manager_rating": review.manager_rating})

    def confirm(self, review_id: int, payload: ConfirmationIn) -> TransitionResult:
        review = self._load_review(review_id)
        self._require_party(review.employee_id, "Only the reviewed employee can confirm this review")
        if review.review_status != ReviewStatus.AWAITING_EMPLOYEE_CONFIRMATION.value:
            raise BusinessValidationError("Review is not awaiting employee confirmation")

        choice = (payload.confirmation_status or "").strip().lower()
        note = payload.rejection_note if not _blank(payload.rejection_note) else payload.note
        if choice == ConfirmationStatus.APPROVED.value:
            if _blank(payload.signature):
                raise BusinessValidationError("Signature is required to approve the review")
        elif choice == ConfirmationStatus.REJECTED.value:
            if _blank(note):
                raise BusinessValidationError("A rejection note is required to reject the review")
        else:
            raise BusinessValidationError("confirmation_status must be 'approved' or 'rejected'")

        before = {"review_status": review.review_status}
        review.employee_confirmation_status = choice
        review.employee_confirmation_signed_at = _now()
        if choice == ConfirmationStatus.APPROVED.value:
            review.employee_confirmation_signature = payload.signature
            review.employee_confirmation_note = note
            review.review_status = ReviewStatus.COMPLETED.value
            template, title = templates.REVIEW_COMPLETED, "KPI Review Completed"
        else:
            review.rejection_note = note
            review.employee_confirmation_note = note
            review.review_status = ReviewStatus.REJECTED.value
            template, title = templates.REVIEW_REJECTED, "KPI Review Rejected"

        kpi = self.db.get(Kpi, review.kpi_id)
        employee = self.db.get(User, review.employee_id)
        manager = self.db.get(User, review.manager_id)
        variables = self._variables(kpi, employee, manager, f"/manager/kpi-review/{review.id}",
                                    rejectionNote=review.rejection_note or "")
        message = f"{employee.name} has {choice} the review for {kpi.title}"
        self._notify(manager, review.company_id, title, message, template, variables,
                     kpi_id=kpi.id, review_id=review.id)
        self._notify_hr(review.company_id, title, message, template, variables,
                        kpi_id=kpi.id, review_id=review.id)
        return self._finish(review, f"employee_{choice}_review", "kpi_review", before,
                            {"review_status": review.review_status})

    def resolve_rejection(self, review_id: int, note: Optional[str] = None) -> TransitionResult:
        if not self.actor.is_hr:
            raise AccessDeniedError("Only HR can resolve rejected reviews")
        review = self._load_review(review_id)
        if review.review_status != ReviewStatus.REJECTED.value:
            raise BusinessValidationError("Only rejected reviews can be resolved")
        if review.rejection_resolved_status == ResolutionStatus.RESOLVED.value:
            raise BusinessValidationError("Rejection has already been resolved")

        before = {"rejection_resolved_status": review.rejection_resolved_status}
        review.rejection_resolved_status = ResolutionStatus.RESOLVED.value
        review.rejection_resolved_at = _now()
        review.rejection_resolved_by = self.actor.user_id
        review.rejection_resolved_note = note

        kpi = self.db.get(Kpi, review.kpi_id)
        employee = self.db.get(User, review.employee_id)
        manager = self.db.get(User, review.manager_id)
        variables = self._variables(kpi, employee, manager, f"/employee/kpi-confirmation/{review.id}",
                                    resolutionNote=note or "")
        message = f"HR has resolved the rejected review for {kpi.title}"
        for user in (employee, manager):
            self._notify(user, review.company_id, "Rejection Resolved", message,
                         templates.REJECTION_RESOLVED, variables, kpi_id=kpi.id, review_id=review.id)
        return self._finish(review, "resolve_rejection", "kpi_review", before,
                            {"rejection_resolved_status": review.rejection_resolved_status,
                             "review_status": review.review_status})
