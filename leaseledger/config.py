from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10-18.v1"
    database_url: str = "sqlite:///./leaseledger.db"
    sql_echo: bool = False

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"
    log_to_stderr: bool = False

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Holds ----
    hold_default_minutes: int = 15
    hold_max_minutes: int = 60 * 24

    # ---- Payment policy ----
    late_fee_grace_days: int = 5
    late_fee_rate: float = 0.05  # 5%
    currency_places: int = 2

    # ---- Audit feed ----
    audit_feed_max_batch: int = 500

    # ---- Identity ----
    auth_mode: str = "dev"  # dev|headers
    dev_auto_provision: bool = True
    dev_header_user_email: str = "X-User-Email"
    dev_header_user_role: str = "X-User-Role"

    # ---- Celery ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    repair_interval_seconds: int = 300
    hold_sweep_interval_seconds: int = 60
    jobs_max_retries: int = 3
    jobs_retry_base_seconds: int = 2
    jobs_retry_max_seconds: int = 60

    def model_post_init(self, __context) -> None:
        if not (0.0 <= float(self.late_fee_rate) <= 1.0):
            raise ValueError("late_fee_rate must be within [0, 1]")
        if int(self.late_fee_grace_days) < 0:
            raise ValueError("late_fee_grace_days cannot be negative")
        if int(self.hold_default_minutes) <= 0 or int(self.hold_default_minutes) > int(self.hold_max_minutes):
            raise ValueError("hold_default_minutes must be within (0, hold_max_minutes]")

        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
