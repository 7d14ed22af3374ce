import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

# Fixed product constants (not environment-configurable)
FREE_TIER_MESSAGE_LIMIT = 30
HISTORY_PAGE_SIZE = 50
MAX_CONVERSATION_ID_LENGTH = 64
GENERATION_MODEL = "llama-3.1-8b-instant"
PREMIUM_PRODUCT_ID = "com.hunyhun.aisaint.premium.monthly"
PREMIUM_ENTITLEMENT_ID = "Monthly Premium"


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Text generation
    GROQ_API_KEY: Optional[str] = None

    # Clerk Auth
    CLERK_SECRET_KEY: Optional[str] = None
    CLERK_ISSUER: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev
    CLERK_AUDIENCE: Optional[str] = None
    CLERK_JWKS_URL: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev/.well-known/jwks.json

    # Local development / tests only: trust X-User-Id as the caller identity
    AUTH_ALLOW_USER_HEADER: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./aisaint.db"
    TEST_DATABASE_URL: Optional[str] = None

    # Observability / Tracing
    OTEL_ENABLED: bool = False
    OTEL_EXPORTER: str = "console"  # console | memory

    model_config = ConfigDict(
        env_file=".env",
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
    log = logger or logging.getLogger("aisaint")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    missing = []
    if not getattr(cfg, "GROQ_API_KEY", None):
        missing.append("GROQ_API_KEY")
    has_clerk = any(
        getattr(cfg, key, None) for key in ("CLERK_SECRET_KEY", "CLERK_ISSUER", "CLERK_JWKS_URL")
    )
    if not has_clerk:
        missing.append("CLERK_SECRET_KEY|CLERK_ISSUER|CLERK_JWKS_URL")

    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
