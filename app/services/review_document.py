import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from app.core.config import settings
from app.models.kpi import KpiItem
from app.models.kpi_review import KpiReview
from app.models.user import User
from app.services.rating import calculate_final_rating

logger = logging.getLogger(__name__)


class ReviewDocumentGenerator:
    """Renders a signed review to a PDF file and returns its path."""

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = output_dir or settings.documents_dir

    def generate(self, review: KpiReview, items: List[KpiItem], employee: User, manager: User) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        path = os.path.join(self.output_dir, f"kpi-review-{review.id}-{stamp}.pdf")

        c = canvas.Canvas(path, pagesize=A4)
        width, height = A4
        y = height - 72

        def line(text, font="Helvetica", size=10, indent=72, step=15):
            nonlocal y
            if y < 90:
                c.showPage()
                y = height - 72
            c.setFont(font, size)
            c.drawString(indent, y, str(text)[:110])
            y -= step

        line("KPI Performance Review", "Helvetica-Bold", 16, step=28)
        period = review.review_period or ""
        if review.review_quarter:
            period = f"{period} {review.review_quarter}"
        line(f"Employee: {employee.name} ({employee.payroll_number or '-'})")
        line(f"Manager: {manager.name}")
        line(f"Period: {period} {review.review_year or ''}", step=25)

        line("Items", "Helvetica-Bold", 12, step=20)
        for item in items:
            line(f"{item.item_order}. {item.title}", "Helvetica-Bold", 10)
            line(
                f"Weight: {item.goal_weight or '-'}   Target: {item.target_value or '-'}   "
                f"Self: {item.employee_rating or '-'}   Manager: {item.manager_rating or '-'}",
                indent=90,
            )
            if item.manager_comment:
                line(f"Manager comment: {item.manager_comment}", indent=90)
            y -= 5

        summary = calculate_final_rating(items)
        y -= 10
        line("Summary", "Helvetica-Bold", 12, step=20)
        line(f"Employee self-rating: {review.employee_rating if review.employee_rating is not None else '-'}")
        line(f"Manager rating: {review.manager_rating if review.manager_rating is not None else '-'}")
        line(f"Weighted final rating: {summary['final_rating']}")
        if review.overall_manager_comment or review.manager_comment:
            line(f"Manager comment: {review.overall_manager_comment or review.manager_comment}")
        y -= 10
        line(f"Employee signed: {review.employee_signed_at or '-'}")
        line(f"Manager signed: {review.manager_signed_at or '-'}")

        c.save()
        logger.info(f"Review document written for review {review.id}: {path}")
        return path
