import json
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "MEP Call Tracking"
    environment: str = "development"
    secret_key: str = "change-me"
    access_token_expire_minutes: int = 60 * 24 * 7
    database_url: str = "sqlite:///./mepcalls.db"
    redis_url: str = "redis://redis:6379/0"
    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 1128
    rate_limit_enabled: bool = True
    login_rate_limit: int = 5
    login_rate_window_seconds: int = 300
    heartbeat_backend: str = "memory"
    heartbeat_live_seconds: int = 120
    default_sync_interval_minutes: int = 15
    dedupe_interval_seconds: float = 3600.0
    admin_name: str = "Admin User"
    admin_phone: str = "9999999999"
    admin_password: str = "change-me-now"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_parse_json=False,
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    def parse_cors_origins(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            cleaned = value.strip()
            if cleaned == "":
                return []
            if cleaned.startswith("["):
                return json.loads(cleaned)
            return [item.strip() for item in cleaned.split(",") if item.strip()]
        return [str(value)]


settings = Settings()
