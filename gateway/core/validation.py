"""
Environment validation utilities.

Ensures the gateway fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional, Iterable

from gateway.core.config import settings

MIN_JWT_SECRET_BYTES = 32
SUPPORTED_JWT_ALGORITHMS = {"HS256", "HS384", "HS512"}


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required in production")


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to gateway.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()

    algorithm = getattr(cfg, "JWT_ALGORITHM", "HS256")
    if algorithm not in SUPPORTED_JWT_ALGORITHMS:
        raise EnvValidationError(f"JWT_ALGORITHM must be one of {sorted(SUPPORTED_JWT_ALGORITHMS)}")

    for name in ("MAX_MESSAGE_LENGTH", "MAX_USERNAME_LENGTH", "MAX_PLAN_LENGTH", "RATE_LIMIT_WINDOW_SECONDS"):
        value = getattr(cfg, name, None)
        if value is not None and value <= 0:
            raise EnvValidationError(f"{name} must be positive")

    if mode == "production":
        _require(["FREE_MODE_API_KEY", "JWT_SECRET"], cfg)
        secret = getattr(cfg, "JWT_SECRET", "") or ""
        if len(secret.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise EnvValidationError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_BYTES} bytes in production")
        if getattr(cfg, "FREE_MODE_API_KEY", None) == secret:
            raise EnvValidationError("FREE_MODE_API_KEY and JWT_SECRET must differ")
        if not getattr(cfg, "RATE_LIMIT_ENABLED", True):
            raise EnvValidationError("RATE_LIMIT_ENABLED cannot be disabled in production")

    return True
