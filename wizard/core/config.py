from pathlib import Path
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_PATH, env_file_encoding="utf-8", extra="ignore")

    # App
    env: str = "dev"
    service_name: str = "listing-wizard"

    # Backend
    api_base_url: str = "http://localhost:3000/api"
    api_token: SecretStr | None = None
    http_timeout_seconds: float = 20.0

    # Auto-save timing (contract values)
    debounce_ms: int = 2000
    status_display_ms: int = 3000

    # Local durable cache
    local_cache_dir: str = ".wizard_cache"
    local_cache_max_bytes: int = 5 * 1024 * 1024
    draft_cache_key: str = "t4bs_draft_meta"

    # Photos
    free_plan_photo_limit: int = 5
    paid_plan_photo_limit: int = 25
    max_photo_bytes: int = 10 * 1024 * 1024

    # Sessions
    max_sessions: int = 200
    session_idle_ttl_seconds: float = 1800.0

    # Option lists
    option_cache_enabled: bool = True

    # Telemetry
    otlp_endpoint: str = ""  # e.g. http://localhost:4318 (Jaeger OTLP HTTP)


settings = Settings()
