from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Shared secret used by the messaging gateway to sign session events
    WEBHOOK_SECRET: str

    # Messaging gateway (WhatsApp HTTP bridge)
    WHATSAPP_GATEWAY_URL: str = "http://localhost:8002"
    WHATSAPP_API_KEY: str = ""
    WHATSAPP_TIMEOUT_SECONDS: float = 30.0
    WHATSAPP_ADDRESS_SUFFIX: str = "@c.us"

    # Business
    BUSINESS_NAME: str = "Doka Burger"
    BUSINESS_UTC_OFFSET_HOURS: int = -3
    DELIVERY_FEE: str = "5.00"

    # Follow-up notification delays
    CONFIRMATION_DELAY_SECONDS: float = 30.0
    DELIVERY_DELAY_SECONDS: float = 30 * 60.0

    HISTORY_LIMIT: int = 20

    # HTTP surface
    CORS_ORIGINS: str = "*"
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    # Reverse proxies in front of the app whose X-Forwarded-For entries are trusted
    TRUSTED_PROXY_HOPS: int = 0
    # Inline scripts and the CDN are what the /docs page loads
    CONTENT_SECURITY_POLICY: str = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "frame-src 'none'; object-src 'none'"
    )

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
