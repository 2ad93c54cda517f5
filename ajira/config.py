"""Configuration settings for the Ajira backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_service_role_key: str | None = None  # Legacy key name

    # JWT session
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week
    session_cookie_name: str = "ajira_session"
    session_cookie_secure: bool = True

    # App
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://ajira.online",
        "https://www.ajira.online",
    ]

    # AzamPay mobile money gateway
    azampay_app_name: str | None = None
    azampay_client_id: str | None = None
    azampay_client_secret: str | None = None
    azampay_auth_url: str = "https://authenticator-sandbox.azampay.co.tz"
    azampay_checkout_url: str = "https://sandbox.azampay.co.tz"
    azampay_timeout_seconds: float = 15.0

    # Scheduled jobs; endpoints are open when unset
    cron_secret: str | None = None

    # AI content generation
    anthropic_api_key: str | None = None
    ai_model_id: str = "claude-sonnet-4-5-20250929"
    ai_max_tokens: int = 4096

    # Commerce
    default_commission_rate: float = 0.15
    default_currency: str = "TZS"
    site_name: str = "Ajira Online"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
