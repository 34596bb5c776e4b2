from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from cryptoiq.errors import UpstreamError

logger = logging.getLogger(__name__)

_INITIALIZE_PATH = "/transaction/initialize"
_VERIFY_PATH = "/transaction/verify/"


class PaystackClient:
    def __init__(self, client: httpx.AsyncClient, secret_key: str | None, base_url: str) -> None:
        self._client = client
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self._secret_key:
            raise UpstreamError("Payment provider is not configured")
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        headers = self._headers()
        try:
            response = await self._client.request(
                method, f"{self._base_url}{path}", headers=headers, json=json
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Paystack %s %s failed: %s", method, path, exc)
            raise UpstreamError("Payment provider unavailable") from exc

        if response.status_code >= 400 or not isinstance(payload, dict) or not payload.get("status"):
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.warning("Paystack %s %s rejected: %s", method, path, message)
            raise UpstreamError(message or "Payment provider rejected the request")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise UpstreamError("Unexpected payment provider response")
        return data

    async def initialize(
        self,
        email: str,
        amount: int,
        currency: str,
        callback_url: str,
        metadata: dict,
    ) -> dict:
        return await self._request(
            "POST",
            _INITIALIZE_PATH,
            json={
                "email": email,
                "amount": amount,
                "currency": currency,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )

    async def verify(self, reference: str) -> dict:
        return await self._request("GET", _VERIFY_PATH + quote(reference, safe=""))
