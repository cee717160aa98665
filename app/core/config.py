import os
import logging
from pydantic import BaseModel, Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class EmailSettings(BaseModel):
    smtp_host: Optional[str] = Field(default=os.getenv("SMTP_HOST"))
    smtp_port: int = Field(default=int(os.getenv("SMTP_PORT", "587")))
    smtp_user: Optional[str] = Field(default=os.getenv("SMTP_USER"))
    smtp_password: Optional[str] = Field(default=os.getenv("SMTP_PASSWORD"))
    smtp_use_tls: bool = Field(default=_env_bool("SMTP_USE_TLS", "true"))
    from_address: str = Field(default=os.getenv("SMTP_FROM", "noreply@kpi-review.local"))
    smtp_timeout_seconds: float = Field(default=float(os.getenv("SMTP_TIMEOUT", "10")))
    webhook_timeout_seconds: float = Field(default=float(os.getenv("WEBHOOK_TIMEOUT", "30")))
    webhook_attempts: int = Field(default=int(os.getenv("WEBHOOK_ATTEMPTS", "2")))
    dispatch_workers: int = Field(default=int(os.getenv("DISPATCH_WORKERS", "4")))


class SchedulerSettings(BaseModel):
    enabled: bool = Field(default=_env_bool("SCHEDULER_ENABLED", "true"))
    hour: int = Field(default=int(os.getenv("REMINDER_CRON_HOUR", "9")))
    minute: int = Field(default=int(os.getenv("REMINDER_CRON_MINUTE", "0")))
    timezone: str = Field(default=os.getenv("SCHEDULER_TIMEZONE", "UTC"))
    misfire_grace_seconds: int = Field(default=int(os.getenv("SCHEDULER_MISFIRE_GRACE", "3600")))


class Config(BaseModel):
    app_name: str = "KPI Review Platform"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Auth
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # Used to build links inside outgoing messages
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    documents_dir: str = os.getenv("DOCUMENTS_DIR", "./generated/reviews")

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001,"
                "http://127.0.0.1:3000,http://127.0.0.1:3001",
            ).split(",")
            if o.strip()
        ]
    )

    email: EmailSettings = EmailSettings()
    scheduler: SchedulerSettings = SchedulerSettings()


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment != "development":
    if "dev-only" in settings.secret_key or "change-it" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("Using insecure default SECRET_KEY, only acceptable in development.")
