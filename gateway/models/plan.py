"""
gateway/models/plan.py

Plan and capability definitions.

Plans are subscription tiers: a rank, a request quota per window and an
ordered capability set. Capabilities are the responders a caller may invoke.
"""

from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, field_validator


class CapabilityDefinition(BaseModel):
    """A named responder and the keywords that route messages to it."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    keywords: Tuple[str, ...]

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        cleaned = tuple(k.strip().lower() for k in value if k and k.strip())
        if not cleaned:
            raise ValueError("keywords must not be empty")
        return cleaned


class PlanDefinition(BaseModel):
    """
    PlanDefinition is one subscription tier.

    requests_per_window=None means unlimited (reserved for the top
    administrative tier). The first capability is the plan's default
    responder when routing finds no keyword match.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    rank: int
    requests_per_window: Optional[int] = None
    capabilities: Tuple[str, ...]
    display_name: Optional[str] = None

    @property
    def unlimited(self) -> bool:
        return self.requests_per_window is None

    @property
    def default_capability(self) -> str:
        return self.capabilities[0]
