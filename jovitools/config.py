"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "JoviTools Portal API"
    api_version: str = "0.1.0"
    api_description: str = "Access lifecycle, coins and AI generation for JoviTools"
    cors_allow_origins: list[str] = ["*"]
    # Reverse proxies allowed to set X-Forwarded-Proto/For (comma separated, * = any)
    forwarded_allow_ips: str = "*"

    # Identity provider - user sessions arrive as HS256 JWTs signed with this secret
    auth_jwt_secret: str = ""
    auth_jwt_audience: str | None = "authenticated"
    auth_jwt_algorithm: str = "HS256"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "jovitools-api"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Payment webhook (Cakto) - shared secret sent inside the JSON body
    cakto_webhook_secret: str = ""
    default_access_days: int = 30

    # Image generation - OpenAI-compatible chat completions gateway
    image_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    image_gateway_api_key: str = ""
    prompt_enhancer_model: str = "google/gemini-2.5-flash"
    image_model: str = "google/gemini-2.5-flash-image-preview"

    # Video generation - GeminiGen
    video_api_base_url: str = "https://api.geminigen.ai/uapi/v1"
    video_api_key: str = ""
    video_model: str = "veo-2"
    video_resolution: str = "720p"
    video_poll_interval_seconds: float = 5.0
    video_wait_timeout_seconds: float = 600.0

    provider_timeout_seconds: float = 60.0

    # Coins
    coins_ceiling: int = 20
    coins_reset_period_hours: int = 24

    # Invites
    invite_code_length: int = 8
    invite_default_expiry_days: int = 7
    invite_default_access_days: int = 15

    # Partners (sócios)
    partner_max_clients: int = 50

    # Access logging
    geolocation_url: str = "http://ip-api.com/json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        # Without the identity provider secret no request can be authenticated
        if not self.auth_jwt_secret:
            errors.append("AUTH_JWT_SECRET is required but empty or missing")

        if self.coins_ceiling <= 0:
            errors.append(f"COINS_CEILING must be positive, got: {self.coins_ceiling}")
        if self.coins_reset_period_hours <= 0:
            errors.append(
                f"COINS_RESET_PERIOD_HOURS must be positive, got: {self.coins_reset_period_hours}"
            )

        # If we have errors, fail immediately with clear messaging
        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
