import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

DEFAULT_SESSION_SECRET = "dev-session-secret-change-me"


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # Session tokens issued by this service
    SESSION_JWT_SECRET: str = DEFAULT_SESSION_SECRET
    SESSION_TTL_MINUTES: int = 60 * 24 * 7

    # Identity provider (social login) ID tokens
    IDP_JWT_SECRET: Optional[str] = None  # HS256 shared secret
    IDP_JWKS_URL: Optional[str] = None  # RS256 key set, takes precedence over the secret
    IDP_ISSUER: Optional[str] = None
    IDP_AUDIENCE: Optional[str] = None

    # Object storage (deliverables)
    GCS_BUCKET: Optional[str] = None
    GCS_PROJECT: Optional[str] = None
    STORAGE_TIMEOUT_SECONDS: float = 30.0
    DELIVERY_URL_TTL_SECONDS: int = 300  # routine re-download
    DELIVERY_INITIAL_URL_TTL_SECONDS: int = 3600  # link handed back right after delivery
    UPLOAD_URL_TTL_SECONDS: int = 900
    MAX_DELIVERY_BYTES: int = 100 * 1024 * 1024

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    PAYMENT_CURRENCY: str = "jpy"
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    # App URLs
    BASE_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("recreate")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "GCS_BUCKET",
        "STRIPE_SECRET_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if not (getattr(cfg, "IDP_JWT_SECRET", None) or getattr(cfg, "IDP_JWKS_URL", None)):
        missing.append("IDP_JWT_SECRET|IDP_JWKS_URL")
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
