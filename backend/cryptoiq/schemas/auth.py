from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    role: str
