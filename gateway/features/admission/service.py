"""
gateway/features/admission/service.py

Admission pipeline: every chat request passes

    Sanitizer -> IdentityResolver -> RateLimiter -> PlanAuthorizer -> ResponderRouter

in that order. Each stage either hands its result forward or raises a typed
AppError; a rejection stops the pipeline and no later stage runs (so bad
input and bad credentials never touch a rate-limit counter).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from gateway.core.config import Settings, settings
from gateway.core.errors import AppError
from gateway.core.logging import log_event
from gateway.core.metrics import routing_decisions_total
from gateway.features.identity.service import Credentials, IdentityResolver, PlanLookup
from gateway.features.plans.catalog import PlanCatalog
from gateway.features.plans.service import PlanAuthorizer
from gateway.features.ratelimit.service import RateLimiter
from gateway.features.ratelimit.store import CounterStore
from gateway.features.routing.service import ResponderRouter
from gateway.features.sanitizer.service import PLAN, FieldLimits, SanitizedText, Sanitizer
from gateway.models.identity import Identity
from gateway.models.rate_limit import RateLimitDecision

logger = logging.getLogger("gateway")


@dataclass(frozen=True)
class Admission:
    identity: Identity
    message: SanitizedText
    username: str
    capability: str
    routed: bool
    decision: RateLimitDecision


class AdmissionPipeline:
    def __init__(
        self,
        sanitizer: Sanitizer,
        resolver: IdentityResolver,
        limiter: RateLimiter,
        authorizer: PlanAuthorizer,
        router: ResponderRouter,
    ):
        self.sanitizer = sanitizer
        self.resolver = resolver
        self.limiter = limiter
        self.authorizer = authorizer
        self.router = router

    @classmethod
    def from_settings(
        cls,
        catalog: PlanCatalog,
        settings_obj: Optional[Settings] = None,
        *,
        store: Optional[CounterStore] = None,
        time_fn=None,
        plan_lookup: Optional[PlanLookup] = None,
    ) -> "AdmissionPipeline":
        cfg = settings_obj or settings
        limiter_kwargs = {"time_fn": time_fn} if time_fn is not None else {}
        return cls(
            sanitizer=Sanitizer(FieldLimits.from_settings(cfg)),
            resolver=IdentityResolver.from_settings(catalog, cfg, plan_lookup=plan_lookup),
            limiter=RateLimiter.from_settings(catalog, cfg, store=store, **limiter_kwargs),
            authorizer=PlanAuthorizer(catalog, upgrade_url=cfg.UPGRADE_URL),
            router=ResponderRouter(catalog),
        )

    def admit(
        self,
        credentials: Credentials,
        message: Optional[str],
        *,
        username: Optional[str] = None,
        capability: Optional[str] = None,
        plan_hint: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> Admission:
        """
        Run one request through every admission stage.

        Raises:
            AppError subclasses from whichever stage rejected the request
        """
        identity: Optional[Identity] = None
        try:
            clean_message = self.sanitizer.sanitize_message(message)
            clean_username = self.sanitizer.sanitize_username(username)
            hint = self._plan_hint(plan_hint)

            identity = self.resolver.resolve(credentials)
            if hint and hint.lower() != identity.plan:
                log_event(
                    "info",
                    "plan.hint_ignored",
                    user_id=identity.id,
                    plan=identity.plan,
                    event_type="plan.hint_ignored",
                    extra={"hint": hint},
                )

            decision = self.limiter.admit(identity, client_ip=client_ip)

            requested = (capability or "").strip().lower() or None
            if requested is not None:
                self.authorizer.authorize(identity, requested)
                selected, routed = requested, False
            else:
                available = self.authorizer.available_capabilities(identity)
                selected = self.router.route(clean_message, available)
                self.authorizer.authorize(identity, selected)
                routed = True
        except AppError as exc:
            log_event(
                "info",
                "admission.rejected",
                user_id=identity.id if identity else None,
                plan=identity.plan if identity else None,
                capability=capability,
                event_type="admission.rejected",
                error_code=exc.code,
            )
            raise

        routing_decisions_total.inc(labels={"capability": selected, "routed": str(routed).lower()})
        log_event(
            "info",
            "routing.selected",
            user_id=identity.id,
            plan=identity.plan,
            capability=selected,
            event_type="routing.selected",
            extra={"routed": routed},
        )
        log_event(
            "info",
            "admission.admitted",
            user_id=identity.id,
            plan=identity.plan,
            capability=selected,
            event_type="admission.admitted",
            extra={"remaining": decision.remaining},
        )
        return Admission(
            identity=identity,
            message=clean_message,
            username=clean_username,
            capability=selected,
            routed=routed,
            decision=decision,
        )

    def _plan_hint(self, plan_hint: Optional[str]) -> Optional[str]:
        if plan_hint is None or not plan_hint.strip():
            return None
        return self.sanitizer.sanitize(plan_hint, PLAN)
