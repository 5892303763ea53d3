"""
gateway/features/plans/catalog.py

Plan and capability catalog.

Handles:
- Built-in plan table (free, standard, enterprise, admin) and capability
  registry with routing keywords
- Loading an override catalog from JSON
- Eager validation: bad cross-references fail process startup
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from gateway.core.config import Settings, settings
from gateway.core.errors import ConfigurationError
from gateway.models.plan import CapabilityDefinition, PlanDefinition

logger = logging.getLogger("gateway")


# Capability registry; declaration order is the routing order
DEFAULT_CAPABILITIES: Dict[str, Dict[str, Any]] = {
    "compliance": {
        "description": "Cannabis regulatory compliance expert",
        "keywords": ["compliance", "regulation", "license", "legal", "audit", "inspection", "permit", "regulatory"],
    },
    "formulation": {
        "description": "Product formulation, dosing and extraction",
        "keywords": ["formulation", "recipe", "dosage", "extraction", "ingredient", "thc", "cbd", "concentrate", "edible", "tincture"],
    },
    "science": {
        "description": "Cannabinoid and terpene research",
        "keywords": ["science", "research", "cannabinoid", "terpene", "lab", "testing", "coa", "analysis", "study", "clinical"],
    },
    "operations": {
        "description": "Facility operations and production management",
        "keywords": ["operations", "facility", "management", "production", "quality", "control", "logistics", "manufacturing"],
    },
    "marketing": {
        "description": "Brand, marketing and customer acquisition",
        "keywords": ["marketing", "brand", "advertising", "promotion", "customer", "acquisition", "strategy", "campaign"],
    },
    "sourcing": {
        "description": "Supply chain, vendors and procurement",
        "keywords": ["sourcing", "supply", "chain", "procurement", "vendor", "inventory", "supplier", "purchasing"],
    },
    "patent": {
        "description": "Patents and intellectual property",
        "keywords": ["patent", "intellectual", "property", "ip", "research", "legal", "innovation", "invention"],
    },
    "spectra": {
        "description": "Spectroscopy and lab equipment analysis",
        "keywords": ["spectra", "analysis", "testing", "lab", "equipment", "chemistry", "spectroscopy", "quality"],
    },
    "customer-success": {
        "description": "Customer retention, onboarding and support",
        "keywords": ["customer", "success", "retention", "support", "satisfaction", "onboarding", "service"],
    },
    "f8-slackbot": {
        "description": "Slack integration and team workflows",
        "keywords": ["slack", "integration", "team", "collaboration", "notification", "workflow", "communication"],
    },
    "mcr": {
        "description": "Master control records and documentation",
        "keywords": ["mcr", "master", "control", "record", "documentation", "compliance", "tracking"],
    },
    "ad": {
        "description": "Advertising and promotional content",
        "keywords": ["advertising", "ad", "promotional", "campaign", "media", "strategy", "creative", "content"],
    },
    "editor": {
        "description": "Content editing and document review",
        "keywords": ["edit", "editor", "content", "document", "review", "modify", "update", "version"],
    },
}

# requests_per_window None = unlimited
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "display_name": "Free Plan",
        "rank": 0,
        "requests_per_window": 10,
        "capabilities": ["compliance", "formulation", "science"],
    },
    "standard": {
        "display_name": "Standard Plan",
        "rank": 1,
        "requests_per_window": 100,
        "capabilities": ["compliance", "formulation", "science", "operations", "marketing"],
    },
    "enterprise": {
        "display_name": "Enterprise Plan",
        "rank": 2,
        "requests_per_window": 1000,
        "capabilities": ["compliance", "formulation", "science", "operations", "marketing", "sourcing", "patent", "spectra"],
    },
    "admin": {
        "display_name": "Administrator",
        "rank": 3,
        "requests_per_window": None,
        "capabilities": [
            "compliance", "formulation", "science", "operations", "marketing", "sourcing", "patent",
            "spectra", "customer-success", "f8-slackbot", "mcr", "ad", "editor",
        ],
    },
}


class PlanCatalog:
    """Validated, read-only plan and capability tables."""

    def __init__(self, plans: Iterable[PlanDefinition], capabilities: Iterable[CapabilityDefinition]):
        capability_list = list(capabilities)
        plan_list = sorted(plans, key=lambda p: p.rank)
        _validate(plan_list, capability_list)

        self._capabilities: Dict[str, CapabilityDefinition] = {c.name: c for c in capability_list}
        self._plans: Dict[str, PlanDefinition] = {p.name: p for p in plan_list}
        _warn_on_non_monotonic(plan_list)

    @property
    def plans(self) -> Tuple[PlanDefinition, ...]:
        """Plans in ascending rank order."""
        return tuple(self._plans.values())

    @property
    def capabilities(self) -> Tuple[CapabilityDefinition, ...]:
        """Capabilities in routing (declaration) order."""
        return tuple(self._capabilities.values())

    @property
    def capability_order(self) -> Tuple[str, ...]:
        return tuple(self._capabilities.keys())

    @property
    def lowest_plan(self) -> PlanDefinition:
        return self.plans[0]

    def plan(self, name: Optional[str]) -> Optional[PlanDefinition]:
        if not name:
            return None
        return self._plans.get(name.strip().lower())

    def resolve_plan(self, name: Optional[str]) -> PlanDefinition:
        """Plan by name; unknown names get the lowest-privilege plan."""
        return self.plan(name) or self.lowest_plan

    def capability(self, name: str) -> Optional[CapabilityDefinition]:
        return self._capabilities.get(name)

    def has_plan(self, name: Optional[str]) -> bool:
        return self.plan(name) is not None

    def has_capability(self, name: str) -> bool:
        return name in self._capabilities

    def keywords(self) -> Dict[str, Tuple[str, ...]]:
        return {name: cap.keywords for name, cap in self._capabilities.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlanCatalog":
        """
        Build a catalog from ``{"plans": {...}, "capabilities": {...}}``.

        Raises:
            ConfigurationError: malformed entries or broken cross-references
        """
        raw_plans = data.get("plans")
        raw_capabilities = data.get("capabilities")
        if not isinstance(raw_plans, Mapping) or not isinstance(raw_capabilities, Mapping):
            raise ConfigurationError("catalog must define 'plans' and 'capabilities' mappings")

        try:
            capabilities = [
                CapabilityDefinition(
                    name=name,
                    description=entry.get("description", ""),
                    keywords=tuple(entry.get("keywords") or ()),
                )
                for name, entry in raw_capabilities.items()
            ]
            plans = [
                PlanDefinition(
                    name=name.strip().lower(),
                    rank=entry["rank"],
                    requests_per_window=entry.get("requests_per_window"),
                    capabilities=tuple(entry.get("capabilities") or ()),
                    display_name=entry.get("display_name"),
                )
                for name, entry in raw_plans.items()
            ]
        except (KeyError, TypeError, AttributeError, PydanticValidationError) as exc:
            raise ConfigurationError(f"invalid catalog entry: {exc}") from exc

        return cls(plans, capabilities)

    @classmethod
    def from_json_file(cls, path: str) -> "PlanCatalog":
        try:
            with open(Path(path), "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"cannot load plan catalog from {path}: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plans": {
                p.name: {
                    "display_name": p.display_name,
                    "rank": p.rank,
                    "requests_per_window": p.requests_per_window,
                    "capabilities": list(p.capabilities),
                }
                for p in self.plans
            },
            "capabilities": {
                c.name: {"description": c.description, "keywords": list(c.keywords)}
                for c in self.capabilities
            },
        }


def _validate(plans: List[PlanDefinition], capabilities: List[CapabilityDefinition]) -> None:
    errors: List[str] = []

    if not plans:
        errors.append("at least one plan is required")
    if not capabilities:
        errors.append("at least one capability is required")

    names = [c.name for c in capabilities]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"duplicate capabilities: {', '.join(duplicates)}")

    plan_names = [p.name for p in plans]
    dup_plans = sorted({n for n in plan_names if plan_names.count(n) > 1})
    if dup_plans:
        errors.append(f"duplicate plans: {', '.join(dup_plans)}")

    ranks = [p.rank for p in plans]
    if len(set(ranks)) != len(ranks):
        errors.append("plan ranks must be unique")

    known = set(names)
    reachable = set()
    for plan in plans:
        if not plan.capabilities:
            errors.append(f"plan '{plan.name}' has no capabilities")
        if plan.requests_per_window is not None and plan.requests_per_window <= 0:
            errors.append(f"plan '{plan.name}' quota must be positive or unlimited")
        unknown = [c for c in plan.capabilities if c not in known]
        if unknown:
            errors.append(f"plan '{plan.name}' references unknown capabilities: {', '.join(unknown)}")
        reachable.update(plan.capabilities)

    dead = [n for n in names if n not in reachable]
    if dead:
        errors.append(f"capabilities not reachable by any plan: {', '.join(dead)}")

    if errors:
        raise ConfigurationError("invalid plan catalog: " + "; ".join(errors))


def _warn_on_non_monotonic(plans: List[PlanDefinition]) -> None:
    for lower, higher in zip(plans, plans[1:]):
        missing = set(lower.capabilities) - set(higher.capabilities)
        if missing:
            logger.warning(
                f"[plans] '{higher.name}' lacks capabilities of '{lower.name}': {', '.join(sorted(missing))}",
                extra={"plan": higher.name, "event_type": "catalog.non_monotonic"},
            )


def default_catalog() -> PlanCatalog:
    return PlanCatalog.from_dict({"plans": DEFAULT_PLANS, "capabilities": DEFAULT_CAPABILITIES})


def build_catalog(settings_obj: Optional[Settings] = None) -> PlanCatalog:
    """Load the catalog once at startup (file override or built-in tables)."""
    cfg = settings_obj or settings
    path = getattr(cfg, "PLAN_CATALOG_PATH", None)
    if path:
        catalog = PlanCatalog.from_json_file(path)
        logger.info("[plans] catalog loaded", extra={"event_type": "catalog.loaded", "path": path})
        return catalog
    return default_catalog()
