"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "FitSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage ---
    database_path: str = ".data/fitsync.sqlite"  # ":memory:" for throwaway stores
    sqlite_busy_timeout_ms: int = 5000

    # --- Rate Limiting (fixed window) ---
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_identities: int = 10_000

    # --- Summaries ---
    summary_max_range_days: int = 92

    # --- Identity ---
    # Set by the upstream gateway after it has validated the session.
    trusted_user_header: str = "X-Authenticated-User"

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
