"""
Health API for the gateway.

Liveness only; reports the loaded catalog without exposing secrets.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz", include_in_schema=False)
def health(request: Request):
    cfg = request.app.state.settings
    catalog = request.app.state.catalog
    return {
        "status": "ok",
        "service": cfg.SERVICE_NAME,
        "version": cfg.SERVICE_VERSION,
        "capabilities": list(catalog.capability_order),
        "plans": [plan.name for plan in catalog.plans],
    }
