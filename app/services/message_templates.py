"""
Built-in message templates and the {{placeholder}} renderer.

Companies can override any of these through EmailTemplate rows; anything
without a template falls back to GENERIC_TEMPLATE.
"""
import html
import re
from typing import Any, Dict, NamedTuple

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class RenderedMessage(NamedTuple):
    subject: str
    html: str
    text: str


class _Default(NamedTuple):
    subject: str
    heading: str
    greeting: str
    body: str
    action: str


KPI_SETTING_REMINDER = "kpi_setting_reminder"
KPI_OVERDUE_REMINDER = "kpi_review_reminder"
KPI_ASSIGNED = "kpi_assigned"
KPI_SET = "kpi_set"
KPI_ACKNOWLEDGED = "kpi_acknowledged"
SELF_RATING_SUBMITTED = "self_rating_submitted"
MANAGER_REVIEW_SUBMITTED = "awaiting_employee_confirmation"
REVIEW_COMPLETED = "review_completed"
REVIEW_REJECTED = "review_rejected"
REJECTION_RESOLVED = "rejection_resolved"

DEFAULT_TEMPLATES: Dict[str, _Default] = {
    KPI_SETTING_REMINDER: _Default(
        subject="KPI Setting Reminder: {{reminderLabel}} - {{meetingDate}}",
        heading="KPI Setting Meeting Reminder",
        greeting="Hello {{recipientName}},",
        body=(
            "A KPI setting meeting is scheduled {{reminderLabel}} ({{meetingDate}}). "
            "Employee: {{employeeName}}. Manager: {{managerName}}."
        ),
        action="View KPI Details",
    ),
    KPI_OVERDUE_REMINDER: _Default(
        subject="KPI Review Reminder - {{periodLabel}}",
        heading="KPI Review Overdue",
        greeting="Hello {{recipientName}},",
        body=(
            "The {{periodLabel}} KPI for {{employeeName}} is still {{kpiStatus}}, "
            "{{daysPastEndDate}} days after the period ended on {{periodEndDate}}."
        ),
        action="Open KPI",
    ),
    KPI_ASSIGNED: _Default(
        subject="New KPI Assigned",
        heading="New KPI Assigned",
        greeting="Hello {{employeeName}},",
        body="Your manager {{managerName}} has set new KPIs for you. Please review and acknowledge them.",
        action="Review KPIs",
    ),
    KPI_SET: _Default(
        subject="KPI Set for {{employeeName}}",
        heading="KPI Set",
        greeting="Hello {{recipientName}},",
        body="{{managerName}} has set KPIs for {{employeeName}} ({{kpiTitle}}).",
        action="View KPI",
    ),
    KPI_ACKNOWLEDGED: _Default(
        subject="KPI Acknowledged",
        heading="KPI Acknowledged",
        greeting="Hello {{recipientName}},",
        body="{{employeeName}} has acknowledged the assigned KPIs.",
        action="View KPIs",
    ),
    SELF_RATING_SUBMITTED: _Default(
        subject="Self-Rating Submitted",
        heading="Self-Rating Submitted",
        greeting="Hello {{recipientName}},",
        body="{{employeeName}} has submitted their self-rating. Please review and provide your ratings.",
        action="Review Now",
    ),
    MANAGER_REVIEW_SUBMITTED: _Default(
        subject="KPI Review Ready for Confirmation",
        heading="Manager Review Submitted",
        greeting="Hello {{recipientName}},",
        body="{{managerName}} has completed the review for {{employeeName}}. It is awaiting the employee's confirmation.",
        action="View Review",
    ),
    REVIEW_COMPLETED: _Default(
        subject="KPI Review Completed",
        heading="KPI Review Completed",
        greeting="Hello {{recipientName}},",
        body="{{employeeName}} has approved the KPI review.",
        action="View Review",
    ),
    REVIEW_REJECTED: _Default(
        subject="KPI Review Rejected",
        heading="KPI Review Rejected",
        greeting="Hello {{recipientName}},",
        body="{{employeeName}} has rejected the KPI review. Note: {{rejectionNote}}",
        action="View Review",
    ),
    REJECTION_RESOLVED: _Default(
        subject="KPI Review Rejection Resolved",
        heading="Rejection Resolved",
        greeting="Hello {{recipientName}},",
        body="HR has resolved the rejected review for {{employeeName}}. Note: {{resolutionNote}}",
        action="View Review",
    ),
}

GENERIC_TEMPLATE = _Default(
    subject="KPI Notification",
    heading="KPI Notification",
    greeting="Hello,",
    body="This is a KPI notification.",
    action="Open",
)


def render(template: str, variables: Dict[str, Any], escape: bool = False) -> str:
    """Replace {{name}} placeholders; unknown names render as an empty string."""
    if not template:
        return ""

    def _sub(match):
        value = variables.get(match.group(1))
        if value is None:
            return ""
        value = str(value)
        return html.escape(value) if escape else value

    return PLACEHOLDER.sub(_sub, template)


def _default_html(default: _Default) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #6366f1;">{default.heading}</h2>'
        f"<p>{default.greeting}</p>"
        f"<p>{default.body}</p>"
        f'<a href="{{{{link}}}}">{default.action}</a>'
        '<p style="margin-top: 30px; color: #666; font-size: 12px;">'
        "This is an automated message from the KPI review system.</p>"
        "</div>"
    )


def _default_text(default: _Default) -> str:
    return f"{default.heading}\n\n{default.greeting}\n\n{default.body}\n\n{default.action}: {{{{link}}}}"


def render_default(template_type: str, variables: Dict[str, Any]) -> RenderedMessage:
    default = DEFAULT_TEMPLATES.get(template_type, GENERIC_TEMPLATE)
    return RenderedMessage(
        subject=render(default.subject, variables),
        html=render(_default_html(default), variables, escape=True),
        text=render(_default_text(default), variables),
    )


def render_custom(subject: str, body_html: str, body_text: str, variables: Dict[str, Any]) -> RenderedMessage:
    html_body = render(body_html or "", variables, escape=True)
    text_body = render(body_text or "", variables)
    if not text_body and html_body:
        text_body = re.sub(r"<[^>]*>", "", html_body)
    return RenderedMessage(subject=render(subject, variables), html=html_body, text=text_body)
