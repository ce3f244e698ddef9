"""audiencesync — Central Configuration via Pydantic Settings."""

import os
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_ad_account_id: str = ""
    meta_api_version: str = "v22.0"
    meta_base_url: str = "https://graph.facebook.com"

    # ── Database (key-value store backing) ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_hour: int = 3  # Daily sync at 3 AM UTC

    # ── Audience Sync ──
    phone_source_path: Optional[str] = None
    audience_name: str = "Phone Audience"
    audience_description: str = "Custom audience from phone numbers"
    upload_batch_size: int = 10000
    upload_pacing_seconds: float = 1.0
    upload_max_attempts: int = 3
    hash_workers: int = 0  # 0 = hash inline

    # ── Lookalike ──
    lookalike_country: str = "RU"
    lookalike_ratio: float = 0.01

    # ── Metrics ──
    metrics_date_preset: str = "last_7d"

    @field_validator("meta_ad_account_id")
    @classmethod
    def _strip_key_prefix(cls, value: str) -> str:
        """Drop an accidental ``NAME=`` prefix pasted along with the ID."""
        return value.split("=", 1)[1] if "=" in value else value

    @property
    def has_meta_credentials(self) -> bool:
        return bool(self.meta_access_token and self.meta_ad_account_id)

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/audiencesync.db"
        return "sqlite:///./audiencesync.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
