"""
gateway/features/routing/service.py

Responder selection for messages that do not name a capability.

Matching is first-match by keyword substring in a fixed capability order,
not best-match. The matching step sits behind the Classifier protocol so a
trained classifier can replace it without touching the admission pipeline.
"""

import logging
from typing import Mapping, Optional, Protocol, Sequence, Tuple

from gateway.features.plans.catalog import PlanCatalog

logger = logging.getLogger("gateway")


class Classifier(Protocol):
    def classify(self, text: str, candidates: Sequence[str]) -> Optional[str]:
        """Return one of ``candidates`` or None when nothing fits."""
        ...


class KeywordClassifier:
    """First candidate (in the given order) with any keyword in the text."""

    def __init__(self, keywords: Mapping[str, Sequence[str]]):
        self.keywords = {name: tuple(k.lower() for k in words) for name, words in keywords.items()}

    def classify(self, text: str, candidates: Sequence[str]) -> Optional[str]:
        lowered = text.lower()
        for capability in candidates:
            if any(keyword in lowered for keyword in self.keywords.get(capability, ())):
                return capability
        return None


class ResponderRouter:
    def __init__(self, catalog: PlanCatalog, classifier: Optional[Classifier] = None):
        self.catalog = catalog
        self.classifier = classifier or KeywordClassifier(catalog.keywords())

    def candidates(self, available: Sequence[str]) -> Tuple[str, ...]:
        """Available capabilities in the catalog's fixed routing order."""
        allowed = set(available)
        return tuple(name for name in self.catalog.capability_order if name in allowed)

    def route(self, message: str, available: Sequence[str]) -> str:
        """
        Pick the capability for ``message``.

        Falls back to the first entry of ``available`` (the plan default)
        when no keyword matches.
        """
        if not available:
            raise ValueError("available capabilities must not be empty")

        selected = self.classifier.classify(message, self.candidates(available))
        if selected is None or selected not in available:
            selected = available[0]
            logger.debug("[routing] no keyword match, using plan default", extra={"capability": selected})
        return selected
