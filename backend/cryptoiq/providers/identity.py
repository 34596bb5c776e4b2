from __future__ import annotations

import logging

import httpx

from cryptoiq.errors import AuthError
from cryptoiq.schemas.auth import AuthenticatedUser

logger = logging.getLogger(__name__)

_USER_PATH = "/auth/v1/user"


class IdentityClient:
    """Exchanges a bearer token for the user record held by the identity service."""

    def __init__(
        self, client: httpx.AsyncClient, base_url: str | None, service_key: str | None
    ) -> None:
        self._client = client
        self._base_url = (base_url or "").rstrip("/")
        self._service_key = service_key

    async def get_user(self, token: str) -> AuthenticatedUser:
        if not self._base_url or not self._service_key:
            logger.error("Identity service is not configured")
            raise AuthError("Authentication unavailable")

        headers = {"apikey": self._service_key, "Authorization": f"Bearer {token}"}
        try:
            response = await self._client.get(f"{self._base_url}{_USER_PATH}", headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Identity service request failed: %s", exc)
            raise AuthError("Authentication unavailable") from exc

        if response.status_code != 200:
            raise AuthError("Invalid or expired token")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Invalid or expired token") from exc
        if not isinstance(payload, dict) or not payload.get("id"):
            raise AuthError("Invalid or expired token")
        return AuthenticatedUser(id=str(payload["id"]), email=payload.get("email"))
