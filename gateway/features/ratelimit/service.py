"""
gateway/features/ratelimit/service.py

Fixed-window request limiter keyed by identity.

- Window of ``window_seconds`` starts at the first request from a key
- The N-th request in a window is admitted, the (N+1)-th is refused
  until the window ends
- Unlimited plans are always admitted and never allocate a counter
- Check-then-increment is one compare-and-swap on the store, so
  concurrent requests from one key cannot both slip past the limit
- Over-limit requests do not consume a slot; admitted ones are never refunded
"""

import logging
import threading
import time
from typing import Callable, Optional

from gateway.core.config import Settings, settings
from gateway.core.errors import RateLimitError
from gateway.core.metrics import ratelimit_block_total
from gateway.features.plans.catalog import PlanCatalog
from gateway.features.ratelimit.store import CounterStore, InMemoryCounterStore
from gateway.models.identity import Identity
from gateway.models.rate_limit import RateLimitCounter, RateLimitDecision

logger = logging.getLogger("gateway")


class RateLimiter:
    def __init__(
        self,
        catalog: PlanCatalog,
        store: Optional[CounterStore] = None,
        *,
        window_seconds: float = 3600,
        enabled: bool = True,
        sweep_interval_seconds: float = 300,
        sweep_grace_seconds: float = 3600,
        time_fn: Callable[[], float] = time.time,
    ):
        self.catalog = catalog
        self.store = store if store is not None else InMemoryCounterStore()
        self.window_seconds = window_seconds
        self.enabled = enabled
        self.sweep_interval_seconds = sweep_interval_seconds
        self.sweep_grace_seconds = sweep_grace_seconds
        self.time_fn = time_fn
        self._last_sweep = time_fn()
        self._sweep_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        catalog: PlanCatalog,
        settings_obj: Optional[Settings] = None,
        store: Optional[CounterStore] = None,
        time_fn: Callable[[], float] = time.time,
    ) -> "RateLimiter":
        cfg = settings_obj or settings
        return cls(
            catalog,
            store if store is not None else InMemoryCounterStore(max_entries=cfg.RATE_LIMIT_MAX_ENTRIES),
            window_seconds=cfg.RATE_LIMIT_WINDOW_SECONDS,
            enabled=cfg.RATE_LIMIT_ENABLED,
            sweep_interval_seconds=cfg.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
            sweep_grace_seconds=cfg.RATE_LIMIT_SWEEP_GRACE_SECONDS,
            time_fn=time_fn,
        )

    @staticmethod
    def key_for(identity: Identity, client_ip: Optional[str] = None) -> str:
        # Free-mode callers all share the "anonymous" id, so they are told apart by address
        if identity.is_free:
            return f"ip:{client_ip or 'unknown'}"
        return f"user:{identity.id}"

    def admit(self, identity: Identity, now: Optional[float] = None, *, client_ip: Optional[str] = None) -> RateLimitDecision:
        """
        Count one request against the identity's plan quota.

        Raises:
            RateLimitError: quota for the current window is used up
        """
        now = self.time_fn() if now is None else now
        plan = self.catalog.resolve_plan(identity.plan)
        limit = plan.requests_per_window

        if not self.enabled or limit is None:
            return RateLimitDecision(key=None, limit=None, remaining=None, reset_at=None, now=now)

        self._maybe_sweep(now)
        key = self.key_for(identity, client_ip)

        while True:
            current = self.store.get(key)
            if current is None or now > current.window_reset_at:
                updated = RateLimitCounter(count=1, window_reset_at=now + self.window_seconds)
            elif current.count < limit:
                updated = RateLimitCounter(count=current.count + 1, window_reset_at=current.window_reset_at)
            else:
                ratelimit_block_total.inc(labels={"plan": plan.name})
                logger.info(
                    "ratelimit.blocked",
                    extra={"user_id": identity.id, "plan": plan.name, "event_type": "ratelimit.blocked"},
                )
                raise RateLimitError(
                    f"Rate limit exceeded for the '{plan.name}' plan",
                    retry_after=current.window_reset_at - now,
                    limit=limit,
                    plan=plan.name,
                )

            if self.store.compare_and_swap(key, current, updated):
                return RateLimitDecision(
                    key=key,
                    limit=limit,
                    remaining=limit - updated.count,
                    reset_at=updated.window_reset_at,
                    now=now,
                )

    def status(self, identity: Identity, now: Optional[float] = None, *, client_ip: Optional[str] = None) -> RateLimitDecision:
        """Current quota position without consuming a request."""
        now = self.time_fn() if now is None else now
        limit = self.catalog.resolve_plan(identity.plan).requests_per_window
        if not self.enabled or limit is None:
            return RateLimitDecision(key=None, limit=None, remaining=None, reset_at=None, now=now)

        key = self.key_for(identity, client_ip)
        current = self.store.get(key)
        if current is None or now > current.window_reset_at:
            return RateLimitDecision(key=key, limit=limit, remaining=limit, reset_at=None, now=now)
        return RateLimitDecision(
            key=key,
            limit=limit,
            remaining=max(0, limit - current.count),
            reset_at=current.window_reset_at,
            now=now,
        )

    def reset(self, identity: Identity, *, client_ip: Optional[str] = None) -> None:
        self.store.delete(self.key_for(identity, client_ip))

    def sweep(self, now: Optional[float] = None) -> int:
        now = self.time_fn() if now is None else now
        removed = self.store.sweep(now - self.sweep_grace_seconds)
        if removed:
            logger.debug(f"[ratelimit] swept {removed} expired counters")
        return removed

    def _maybe_sweep(self, now: float) -> None:
        with self._sweep_lock:
            if now - self._last_sweep < self.sweep_interval_seconds:
                return
            self._last_sweep = now
        self.sweep(now)
