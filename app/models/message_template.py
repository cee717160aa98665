from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class EmailTemplate(Base):
    """Company override for one message type. Placeholders use {{name}}."""
    __tablename__ = "email_templates"
    __table_args__ = (UniqueConstraint("company_id", "template_type", name="uq_email_template"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    template_type = Column(String(80), nullable=False)
    subject = Column(String(255), nullable=False)
    body_html = Column(Text, nullable=True)
    body_text = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class WebhookConfig(Base):
    """Outbound mail relay (e.g. a Power Automate flow) used before SMTP."""
    __tablename__ = "webhook_configs"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True, index=True)
    webhook_url = Column(String(1000), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
