"""Agency CRM configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class AgencyCRMSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///agency_crm.db"
    echo_sql: bool = False
    app_title: str = "Agency CRM Activities"
    log_level: str = "INFO"

    # Bearer tokens carrying the acting user (id, role, display name)
    auth_secret: str = ""
    auth_token_ttl_seconds: int = 86400

    # Activity feed
    activity_retention_days: int = 365
    search_default_limit: int = 10

    model_config = {"env_prefix": "AGENCY_CRM_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def alembic_ini(self) -> Path:
        return self.base_dir / "alembic.ini"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = AgencyCRMSettings()
