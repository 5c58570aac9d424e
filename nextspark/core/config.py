import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Auth (HS256 session tokens)
    AUTH_SECRET: Optional[str] = None
    AUTH_TOKEN_TTL_SECONDS: int = 3600
    # Allow X-User-Id header auth (development/tests only)
    ALLOW_HEADER_AUTH: bool = True

    # AI orchestration
    GROQ_API_KEY: Optional[str] = None
    AI_MODEL: str = "llama-3.1-8b-instant"
    AI_ROUTER_MAX_RETRIES: int = 3

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    # App URLs
    BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Scheduled actions
    SCHEDULED_ACTIONS_ENABLED: bool = True
    SCHEDULED_ACTIONS_BATCH_SIZE: int = 10
    SCHEDULED_ACTIONS_DEFAULT_TIMEOUT_MS: int = 30000
    SCHEDULED_ACTIONS_DEDUP_WINDOW_SECONDS: int = 30  # 0 = disabled
    SCHEDULED_ACTIONS_RETENTION_DAYS: int = 7
    CRON_SECRET: Optional[str] = None

    # Webhook egress
    WEBHOOKS_ENABLED: bool = True
    WEBHOOK_TIMEOUT_SECONDS: int = 10
    # Optional HMAC-SHA256 signing of outgoing webhook bodies
    WEBHOOK_SIGNING_SECRET: Optional[str] = None

    model_config = ConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("nextspark")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "AUTH_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
