import pytest

from gateway.features.routing.service import KeywordClassifier, ResponderRouter

FREE_AVAILABLE = ("compliance", "formulation", "science")


@pytest.fixture
def router(catalog):
    return ResponderRouter(catalog)


@pytest.mark.parametrize("message", [
    "What are the compliance requirements for cannabis businesses in California?",
    "What are the compliance requirements for cannabis licensing in California?",
])
def test_compliance_question_routes_to_compliance(router, catalog, message):
    assert router.route(message, FREE_AVAILABLE) == "compliance"
    assert router.route(message, catalog.plan("admin").capabilities) == "compliance"


@pytest.mark.parametrize("message,expected", [
    ("Best extraction method for a tincture?", "formulation"),
    ("Explain terpene profiles", "science"),
    ("Improve onboarding and retention for our stores", "customer-success"),
    ("Draft a Slack notification", "f8-slackbot"),
])
def test_unique_keyword_routes_to_its_capability(router, catalog, message, expected):
    available = catalog.plan("admin").capabilities
    assert router.route(message, available) == expected


def test_first_match_in_declaration_order(router, catalog):
    # "legal" belongs to compliance and patent; compliance is declared first
    assert router.route("Is this legal?", catalog.plan("enterprise").capabilities) == "compliance"


def test_match_restricted_to_available(router):
    # sourcing keyword, but the plan lacks sourcing
    assert router.route("Find a new vendor", FREE_AVAILABLE) == "compliance"


def test_no_match_uses_plan_default(router):
    assert router.route("Hello there", ("science", "compliance")) == "science"


def test_matching_is_case_insensitive(router):
    assert router.route("TERPENE question", FREE_AVAILABLE) == "science"


def test_routing_is_deterministic(router, catalog):
    available = catalog.plan("admin").capabilities
    message = "Quality control for lab testing equipment"
    assert len({router.route(message, available) for _ in range(20)}) == 1


def test_empty_available_is_an_error(router):
    with pytest.raises(ValueError):
        router.route("anything", ())


def test_custom_classifier_is_used(catalog):
    class AlwaysScience:
        def classify(self, text, candidates):
            return "science" if "science" in candidates else None

    router = ResponderRouter(catalog, classifier=AlwaysScience())
    assert router.route("compliance please", FREE_AVAILABLE) == "science"


def test_candidates_follow_catalog_order(router):
    assert router.candidates(("science", "compliance")) == ("compliance", "science")


def test_keyword_classifier_returns_none_without_match():
    classifier = KeywordClassifier({"a": ["apple"]})
    assert classifier.classify("banana", ["a"]) is None
    assert classifier.classify("Apple pie", ["a"]) == "a"
