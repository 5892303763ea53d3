"""
gateway/models/identity.py

Resolved caller identity.

Built per request from credentials, never persisted.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class AuthMode(str, Enum):
    FREE = "free"
    AUTHENTICATED = "authenticated"


class Identity(BaseModel):
    """
    Identity is the caller context every later admission stage reads.

    Examples:
    - Identity(id="anonymous", mode=AuthMode.FREE, plan="free")
    - Identity(id="user_42", mode=AuthMode.AUTHENTICATED, plan="enterprise")
    """
    model_config = ConfigDict(frozen=True)

    id: str
    mode: AuthMode
    plan: str

    @property
    def is_free(self) -> bool:
        return self.mode == AuthMode.FREE
