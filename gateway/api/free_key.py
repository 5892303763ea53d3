"""Free-mode onboarding: hands out the shared free API key and its limits."""

from fastapi import APIRouter, Request

from gateway.core.errors import FreeModeUnavailableError
from gateway.features.identity.service import API_KEY_HEADER, FREE_PLAN

router = APIRouter(tags=["free-mode"])


@router.get("/free-key")
@router.get("/api/free-key", include_in_schema=False)
@router.post("/api/free-key", include_in_schema=False)
def free_key(request: Request):
    cfg = request.app.state.settings
    if not cfg.FREE_MODE_API_KEY:
        raise FreeModeUnavailableError("Free mode is not configured on this gateway")

    plan = request.app.state.catalog.resolve_plan(FREE_PLAN)
    return {
        "apiKey": cfg.FREE_MODE_API_KEY,
        "plan": plan.name,
        "limits": {
            "requestsPerWindow": plan.requests_per_window,
            "windowSeconds": cfg.RATE_LIMIT_WINDOW_SECONDS,
            "availableCapabilities": list(plan.capabilities),
        },
        "usage": {"header": API_KEY_HEADER, "value": cfg.FREE_MODE_API_KEY},
    }
