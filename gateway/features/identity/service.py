"""
gateway/features/identity/service.py

Turns request credentials into an Identity.

Accepted forms (never combined in one request), checked in order:
1. X-API-Key equal to the configured shared free key -> free identity
2. Authorization: Bearer <jwt> signed with JWT_SECRET -> authenticated identity

There is no anonymous fallback: missing credentials raise AuthRequiredError,
a bad token raises InvalidTokenError.
"""

import hmac
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, Optional

import jwt

from gateway.core.config import Settings, settings
from gateway.core.errors import AmbiguousCredentialsError, AuthRequiredError, InvalidTokenError
from gateway.features.plans.catalog import PlanCatalog
from gateway.models.identity import AuthMode, Identity

logger = logging.getLogger("gateway")

API_KEY_HEADER = "X-API-Key"
AUTHORIZATION_HEADER = "Authorization"
FREE_IDENTITY_ID = "anonymous"
FREE_PLAN = "free"

# user_id -> plan name, e.g. a subscription database lookup
PlanLookup = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class Credentials:
    api_key: Optional[str] = None
    authorization: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "Credentials":
        api_key = (headers.get(API_KEY_HEADER) or "").strip() or None
        authorization = (headers.get(AUTHORIZATION_HEADER) or "").strip() or None
        return cls(api_key=api_key, authorization=authorization)

    @property
    def bearer_token(self) -> Optional[str]:
        if not self.authorization:
            return None
        scheme, _, token = self.authorization.partition(" ")
        if scheme.lower() != "bearer":
            return None
        return token.strip()


class IdentityResolver:
    def __init__(
        self,
        catalog: PlanCatalog,
        *,
        free_api_key: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        jwt_algorithm: str = "HS256",
        default_plan: str = "standard",
        plan_lookup: Optional[PlanLookup] = None,
    ):
        self.catalog = catalog
        self.free_api_key = free_api_key
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.default_plan = default_plan
        self.plan_lookup = plan_lookup

    @classmethod
    def from_settings(
        cls,
        catalog: PlanCatalog,
        settings_obj: Optional[Settings] = None,
        plan_lookup: Optional[PlanLookup] = None,
    ) -> "IdentityResolver":
        cfg = settings_obj or settings
        return cls(
            catalog,
            free_api_key=cfg.FREE_MODE_API_KEY,
            jwt_secret=cfg.JWT_SECRET,
            jwt_algorithm=cfg.JWT_ALGORITHM,
            default_plan=cfg.JWT_DEFAULT_PLAN,
            plan_lookup=plan_lookup,
        )

    def resolve(self, credentials: Credentials) -> Identity:
        """
        Resolve credentials into an Identity.

        Raises:
            AmbiguousCredentialsError: both an API key and an Authorization header
            AuthRequiredError: no usable credential
            InvalidTokenError: bearer token failed verification
        """
        if credentials.api_key and credentials.authorization:
            raise AmbiguousCredentialsError(
                "Provide either an X-API-Key (free mode) or a Bearer token, not both"
            )

        if credentials.api_key:
            if self._is_free_key(credentials.api_key):
                return Identity(id=FREE_IDENTITY_ID, mode=AuthMode.FREE, plan=self._known_plan(FREE_PLAN))
            raise AuthRequiredError("Authentication required: unknown API key")

        token = credentials.bearer_token
        if token is None:
            raise AuthRequiredError(
                "Authentication required: provide an X-API-Key (free mode) or a Bearer token"
            )
        return self._resolve_token(token)

    def _is_free_key(self, candidate: str) -> bool:
        if not self.free_api_key:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self.free_api_key.encode("utf-8"))

    def _resolve_token(self, token: str) -> Identity:
        claims = self.verify_token(token)

        user_id = claims.get("userId") or claims.get("sub")
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidTokenError("Invalid authentication token: missing user id")
        user_id = user_id.strip()

        plan_claim = claims.get("plan")
        if isinstance(plan_claim, str) and plan_claim.strip():
            plan = plan_claim
        else:
            plan = (self.plan_lookup(user_id) if self.plan_lookup else None) or self.default_plan

        return Identity(id=user_id, mode=AuthMode.AUTHENTICATED, plan=self._known_plan(plan, user_id))

    def verify_token(self, token: str) -> Dict[str, Any]:
        if not token:
            raise InvalidTokenError("Invalid authentication token")
        if not self.jwt_secret:
            logger.error("[identity] bearer token received but JWT_SECRET is not configured")
            raise InvalidTokenError("Invalid authentication token")
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.jwt_algorithm],
                options={"require": ["exp"], "verify_signature": True, "verify_exp": True},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Authentication token expired")
        except jwt.InvalidTokenError as exc:
            logger.debug(f"[identity] token rejected: {exc}")
            raise InvalidTokenError("Invalid authentication token")

    def _known_plan(self, name: str, user_id: Optional[str] = None) -> str:
        plan = self.catalog.plan(name)
        if plan is not None:
            return plan.name
        lowest = self.catalog.lowest_plan.name
        logger.warning(
            f"[identity] unknown plan '{name}', using '{lowest}'",
            extra={"user_id": user_id, "event_type": "identity.unknown_plan"},
        )
        return lowest


def issue_token(
    user_id: str,
    plan: Optional[str] = None,
    *,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
    now: Optional[float] = None,
) -> str:
    """Sign a bearer token for ``user_id`` (24h by default)."""
    key = secret or settings.JWT_SECRET
    if not key:
        raise RuntimeError("JWT_SECRET must be configured to issue tokens")
    issued_at = int(now if now is not None else time.time())
    ttl = expires_in if expires_in is not None else timedelta(hours=settings.TOKEN_TTL_HOURS)
    payload: Dict[str, Any] = {
        "userId": user_id,
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + int(ttl.total_seconds()),
    }
    if plan:
        payload["plan"] = plan
    return jwt.encode(payload, key, algorithm=algorithm or settings.JWT_ALGORITHM)
