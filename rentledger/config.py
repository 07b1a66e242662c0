# rentledger/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./rentledger.db"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Calendar ----
    # Interactive reads classify against the office's local day; the daily
    # sweep always uses the UTC day.
    local_timezone: str = "America/Argentina/Buenos_Aires"

    # ---- Recompute sweep ----
    recompute_page_size: int = 500
    recompute_schedule_hour: int = 2
    recompute_schedule_minute: int = 30

    # ---- Reminders ----
    pre_due_reminder_days: int = 5
    post_due_reminder_days: int = 1
    guarantor_escalation_days: int = 5
    currency_symbol: str = "$"

    # ---- Auth / tenancy ----
    auth_mode: str = "dev"  # dev only for now
    dev_auto_provision: bool = True

    dev_header_org_slug: str = "X-Org-Slug"
    dev_header_user_email: str = "X-User-Email"
    dev_header_user_role: str = "X-User-Role"

    # ---- Celery ----
    # No broker => contract triggers run inline in the request.
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")

        if int(self.recompute_page_size) < 1:
            raise ValueError("recompute_page_size must be >= 1")


settings = Settings()
