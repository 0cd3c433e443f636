# backend/pulse/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, built once at startup and passed to create_app."""

    model_config = SettingsConfigDict(env_prefix="PULSE_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite:///./pulse.db"

    # Storage
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 200 * 1024 * 1024  # 200 MiB

    # Processing
    processing_step_seconds: float = 0.8
    probe_timeout_seconds: float = 30.0
    ffprobe_path: str = "ffprobe"
    shutdown_grace_seconds: float = 10.0  # wait for in-flight runs on shutdown

    # Auth
    secret_key: str = "dev-secret-change-me"
    token_ttl_seconds: int = 3600

    # HTTP
    client_origin: str = "http://localhost:5173"
    log_level: str = "INFO"
