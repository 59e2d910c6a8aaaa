"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central settings pulled from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    service_name: str = "canvas-lms-mcp"
    service_version: str = "0.1.0"

    # HTTP transport
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins. Empty or '*' allows every origin."""

    max_body_bytes: int = 1024 * 1024
    sse_heartbeat_interval_seconds: float = 15.0

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_bypass: bool = False
    """Keep counting requests but never reject them. Meant for diagnostics."""

    rate_limit_window_ms: int = 60_000
    rate_limit_max_requests: int = 60

    # Shared secret
    shared_secret: str | None = None
    """Expected value of ``shared_secret_header``. Unset disables the guard."""

    shared_secret_header: str = "x-mcp-secret"
    shared_secret_bypass: bool = False

    # Canvas upstream
    canvas_domain: str | None = None
    canvas_api_token: str | None = None
    canvas_max_retries: int = 2
    canvas_retry_delay_ms: int = 250
    canvas_timeout_ms: int = 10_000

    def missing_required(self) -> list[str]:
        """Names of the environment variables that must be set before serving."""
        required = {
            "CANVAS_DOMAIN": self.canvas_domain,
            "CANVAS_API_TOKEN": self.canvas_api_token,
        }
        return [name for name, value in required.items() if not value or not value.strip()]


settings = Settings()
