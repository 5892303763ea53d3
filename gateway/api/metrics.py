from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from gateway.core.metrics import METRICS

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics():
    return PlainTextResponse(METRICS.export_prometheus(), media_type="text/plain; version=0.0.4")
