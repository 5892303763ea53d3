"""
gateway/features/plans/service.py

Plan-based capability authorization.

Administrators are checked against their own (large) capability set like
every other plan; there is no bypass.
"""

import logging
from typing import Optional, Tuple

from gateway.core.errors import PlanForbiddenError
from gateway.features.plans.catalog import PlanCatalog
from gateway.models.identity import Identity
from gateway.models.plan import PlanDefinition

logger = logging.getLogger("gateway")


class PlanAuthorizer:
    def __init__(self, catalog: PlanCatalog, upgrade_url: Optional[str] = None):
        self.catalog = catalog
        self.upgrade_url = upgrade_url

    def plan_for(self, identity: Identity) -> PlanDefinition:
        plan = self.catalog.plan(identity.plan)
        if plan is None:
            lowest = self.catalog.lowest_plan
            logger.warning(
                f"[plans] unknown plan '{identity.plan}', using '{lowest.name}'",
                extra={"user_id": identity.id, "plan": identity.plan, "event_type": "plan.unknown"},
            )
            return lowest
        return plan

    def available_capabilities(self, identity: Identity) -> Tuple[str, ...]:
        return self.plan_for(identity).capabilities

    def authorize(self, identity: Identity, capability: str) -> Tuple[str, ...]:
        """
        Confirm the identity's plan includes ``capability``.

        Returns:
            The plan's available capabilities (ordered).

        Raises:
            PlanForbiddenError: capability outside the plan, listing what is available
        """
        plan = self.plan_for(identity)
        if capability in plan.capabilities:
            return plan.capabilities
        raise PlanForbiddenError(
            capability,
            plan.name,
            plan.capabilities,
            upgrade_url=self.upgrade_url,
        )

    def is_authorized(self, identity: Identity, capability: str) -> bool:
        return capability in self.plan_for(identity).capabilities
