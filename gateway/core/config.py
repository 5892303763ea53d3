import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    SERVICE_NAME: str = "capability-gateway"
    SERVICE_VERSION: str = "1.0.0"

    # Credentials
    FREE_MODE_API_KEY: Optional[str] = None
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_DEFAULT_PLAN: str = "standard"
    TOKEN_TTL_HOURS: int = 24

    # Input limits
    MAX_MESSAGE_LENGTH: int = 2000
    MAX_USERNAME_LENGTH: int = 50
    MAX_PLAN_LENGTH: int = 50

    # Rate limiting (fixed window, per identity)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 3600
    RATE_LIMIT_MAX_ENTRIES: int = 100_000
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: int = 300
    RATE_LIMIT_SWEEP_GRACE_SECONDS: int = 3600

    # Plan / capability tables (JSON file overrides the built-in catalog)
    PLAN_CATALOG_PATH: Optional[str] = None

    # Responder
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    AD_DELIVERY_ENABLED: bool = True
    UPGRADE_URL: str = "https://formul8.ai/plans"

    # HTTP
    CORS_ALLOWED_ORIGINS: str = "*"  # comma-separated
    # Proxies allowed to set X-Forwarded-For (comma-separated IPs/CIDRs, "*" = any); unset = ignore the header
    FORWARDED_ALLOW_IPS: Optional[str] = None
    SECURITY_HEADERS_ENABLED: bool = True

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
    log = logger or logging.getLogger("gateway")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "FREE_MODE_API_KEY",
        "JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True


def cors_origins(settings_obj: Optional[Settings] = None) -> list[str]:
    cfg = settings_obj or settings
    return [origin.strip() for origin in cfg.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]


def forwarded_allow_ips(settings_obj: Optional[Settings] = None) -> list[str]:
    cfg = settings_obj or settings
    raw = cfg.FORWARDED_ALLOW_IPS or ""
    return [host.strip() for host in raw.split(",") if host.strip()]
