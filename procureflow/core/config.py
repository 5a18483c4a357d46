from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# Used by the CEO escalation check when an organisation has no
# require_ceo_above_amount configured.
DEFAULT_CEO_APPROVAL_THRESHOLD = Decimal("15000")

# Delegations granting MD approval authority are recorded under this scope.
PO_APPROVAL_SCOPE = "PO_APPROVAL"


class Settings(BaseSettings):
    # App
    app_name: str = "ProcureFlow"
    debug: bool = False
    app_base_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./procureflow.db"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    # Approval rules
    default_ceo_approval_threshold: Decimal = DEFAULT_CEO_APPROVAL_THRESHOLD
    delegation_scope: str = PO_APPROVAL_SCOPE
    delegation_sweep_interval: int = 3600  # seconds

    # Side effects
    side_effect_workers: int = 4
    document_service_url: Optional[str] = None
    email_service_url: Optional[str] = None
    http_timeout: int = 30

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/procureflow"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
