"""
gateway/features/responders/service.py

Responders answer an admitted, sanitized message for one capability.

- GroqResponder: chat completion through the Groq client
- FallbackResponder: deterministic basic-mode reply when no LLM is configured
- UpgradeFooter: rotating upgrade note appended for free-plan callers

Responders run strictly after admission; a responder failure surfaces as
ResponderError, never as a silent canned answer.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

import groq

from gateway.core.config import Settings, settings
from gateway.core.errors import ResponderError
from gateway.models.identity import Identity
from gateway.models.plan import CapabilityDefinition

logger = logging.getLogger("gateway")

FALLBACK_MODEL = "gateway-fallback"


@dataclass(frozen=True)
class ResponderReply:
    text: str
    total_tokens: int
    model: str
    cost: float = 0.0

    def usage(self) -> dict:
        return {"total_tokens": self.total_tokens, "cost": self.cost, "model": self.model}


class Responder(Protocol):
    def respond(self, message: str, capability: CapabilityDefinition, identity: Identity) -> ResponderReply:
        ...


def estimate_tokens(message: str, text: str) -> int:
    """Rough count (~4 characters per token) when the backend reports none."""
    return int(math.ceil((len(message) + len(text)) / 4))


def system_prompt(capability: CapabilityDefinition, identity: Identity) -> str:
    return (
        f"You are the {capability.name} assistant for a cannabis industry platform. "
        f"You specialize in: {capability.description or capability.name}. "
        f"The user is on the '{identity.plan}' plan. "
        "Answer concisely and say when a question is outside your specialty."
    )


class FallbackResponder:
    model = FALLBACK_MODEL

    def respond(self, message: str, capability: CapabilityDefinition, identity: Identity) -> ResponderReply:
        text = (
            f"Hello! I'm the {capability.name} assistant. "
            f"I specialize in {capability.description or capability.name}. "
            f"I can help you with your question about: \"{message}\". "
            "I'm currently running in basic mode; full answers are available once a language model is configured."
        )
        return ResponderReply(text=text, total_tokens=estimate_tokens(message, text), model=self.model)


class GroqResponder:
    def __init__(
        self,
        client: Any,
        *,
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "GroqResponder":
        cfg = settings_obj or settings
        return cls(groq.Groq(api_key=cfg.GROQ_API_KEY), model=cfg.GROQ_MODEL)

    def respond(self, message: str, capability: CapabilityDefinition, identity: Identity) -> ResponderReply:
        try:
            completion = self.client.chat.completions.create(
                messages=[
                    {"role": "system", "content": system_prompt(capability, identity)},
                    {"role": "user", "content": message},
                ],
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            logger.error(
                f"[responders] groq call failed: {exc}",
                extra={"capability": capability.name, "event_type": "responder.failed"},
            )
            raise ResponderError("The responder is temporarily unavailable") from exc

        choices = getattr(completion, "choices", None) or []
        text = (choices[0].message.content or "").strip() if choices else ""
        if not text:
            raise ResponderError("The responder returned an empty answer")

        usage = getattr(completion, "usage", None)
        total = getattr(usage, "total_tokens", None) if usage is not None else None
        return ResponderReply(
            text=text,
            total_tokens=int(total) if total else estimate_tokens(message, text),
            model=getattr(completion, "model", None) or self.model,
        )


DEFAULT_UPGRADE_TEMPLATES = (
    "**Upgrade to unlock more capabilities!** Operations and marketing help start on the Standard plan: {url}",
    "**Need more than {quota} questions an hour?** Paid plans raise your limit: {url}",
    "**Working with suppliers or patents?** Enterprise adds sourcing, patent and spectra experts: {url}",
)


class UpgradeFooter:
    """Rotates an upgrade note (once per minute) onto free-plan answers."""

    def __init__(
        self,
        upgrade_url: str,
        *,
        enabled: bool = True,
        plans: Sequence[str] = ("free",),
        templates: Sequence[str] = DEFAULT_UPGRADE_TEMPLATES,
        time_fn: Callable[[], float] = time.time,
    ):
        self.upgrade_url = upgrade_url
        self.enabled = enabled
        self.plans = set(plans)
        self.templates = tuple(templates)
        self.time_fn = time_fn

    def apply(self, text: str, identity: Identity, quota: Optional[int] = None) -> str:
        if not self.enabled or identity.plan not in self.plans or not self.templates:
            return text
        index = int(self.time_fn() // 60) % len(self.templates)
        note = self.templates[index].format(url=self.upgrade_url, quota=quota if quota is not None else "a few")
        return f"{text}\n\n---\n{note}"


def build_responder(settings_obj: Optional[Settings] = None) -> Responder:
    cfg = settings_obj or settings
    if cfg.GROQ_API_KEY:
        logger.info("[responders] using groq", extra={"event_type": "responder.configured"})
        return GroqResponder.from_settings(cfg)
    logger.info("[responders] GROQ_API_KEY not set, using basic-mode responder", extra={"event_type": "responder.configured"})
    return FallbackResponder()
