"""Chat API: the admission pipeline in front of the responders."""

import logging
from typing import Optional

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from gateway.core.logging import get_request_id
from gateway.features.identity.service import Credentials
from gateway.models.chat import ChatRequest, ChatResponse, Usage

logger = logging.getLogger("gateway")

router = APIRouter(tags=["chat"])


def client_ip(request: Request) -> Optional[str]:
    """
    Socket peer address.

    Forwarded headers are never read here; behind a proxy, uvicorn's
    ProxyHeadersMiddleware rewrites request.client for trusted peers only.
    """
    return request.client.host if request.client else None


@router.post("/chat", response_model=ChatResponse)
@router.post("/api/chat", response_model=ChatResponse, include_in_schema=False)
async def chat_endpoint(body: ChatRequest, request: Request, response: Response):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    state = request.app.state

    admission = state.pipeline.admit(
        Credentials.from_headers(request.headers),
        body.message,
        username=body.username,
        capability=body.capability,
        plan_hint=body.plan,
        client_ip=client_ip(request),
    )

    capability = state.catalog.capability(admission.capability)
    reply = await run_in_threadpool(
        state.responder.respond,
        str(admission.message),
        capability,
        admission.identity,
    )
    text = state.footer.apply(reply.text, admission.identity, quota=admission.decision.limit)

    for name, value in admission.decision.headers().items():
        response.headers[name] = value

    return ChatResponse(
        response=text,
        capability=admission.capability,
        plan=admission.identity.plan,
        username=admission.username,
        routed=admission.routed,
        usage=Usage(**reply.usage()),
        request_id=rid,
    )
