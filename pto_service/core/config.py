import os
import logging
from pydantic import BaseModel, Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


class PtoSettings(BaseModel):
    timezone: str = Field(default=os.getenv("PTO_TIMEZONE", "UTC"))
    self_cancel_notice_hours: int = Field(default=int(os.getenv("PTO_SELF_CANCEL_NOTICE_HOURS", "24")))
    max_hierarchy_levels: int = Field(default=int(os.getenv("PTO_MAX_HIERARCHY_LEVELS", "2")))
    # Approver used when a single-level request has nobody to report to
    fallback_approver_id: Optional[int] = Field(default_factory=lambda: _optional_int("PTO_FALLBACK_APPROVER_ID"))
    lock_retry_attempts: int = Field(default=int(os.getenv("PTO_LOCK_RETRY_ATTEMPTS", "3")))
    lock_retry_backoff: float = Field(default=float(os.getenv("PTO_LOCK_RETRY_BACKOFF", "0.05")))


class Config(BaseModel):
    app_name: str = "PTO Service"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./pto.db")

    # Identity gateway forwards the authenticated user id in this header
    actor_header: str = os.getenv("ACTOR_HEADER", "X-User-ID")

    # PTO workflow
    pto: PtoSettings = PtoSettings()

    # Notifications (email gateway webhook, optional)
    notification_webhook_url: Optional[str] = os.getenv("NOTIFICATION_WEBHOOK_URL") or None
    notification_timeout_seconds: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5"))

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    @property
    def rate_limit_enabled(self) -> bool:
        return self.environment != "testing"


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if settings.database_url.startswith("sqlite"):
        _logger.warning("⚠ Running with SQLite outside development; row locks are not enforced.")
