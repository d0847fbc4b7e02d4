from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceSettings(BaseSettings):
    api_base_url: str = "http://localhost:1128"
    database_path: str = "mepcalls-device.db"
    session_path: str = "mepcalls-session.json"
    call_log_path: str = "call_log.json"
    request_timeout_seconds: float = 30.0
    min_sync_interval_minutes: int = 15
    call_log_lookback_seconds: int = 60
    retention_days: int = 30

    model_config = SettingsConfigDict(
        env_prefix="MEP_DEVICE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


device_settings = DeviceSettings()
