"""
gateway/models/chat.py

Request/response bodies for the chat surface.
"""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    # Length and content rules are enforced by the sanitizer, not here,
    # so rejections carry the gateway's error codes.
    message: str
    plan: Optional[str] = None
    username: Optional[str] = None
    capability: Optional[str] = Field(default=None, validation_alias=AliasChoices("capability", "agent"))

    model_config = ConfigDict(extra="ignore")


class Usage(BaseModel):
    total_tokens: int
    cost: float = 0.0
    model: str


class ChatResponse(BaseModel):
    response: str
    capability: str
    plan: str
    username: str
    routed: bool
    usage: Usage
    request_id: Optional[str] = None
