from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class InitializeResponse(BaseModel):
    authorization_url: str
    reference: str


class VerifyRequest(BaseModel):
    reference: Optional[str] = None


class VerifyResponse(BaseModel):
    success: bool
    message: str


class WebhookAck(BaseModel):
    received: bool = True
