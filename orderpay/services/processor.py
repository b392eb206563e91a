"""Transaction Junction HTTP client: OAuth token, hosted session, refund, lookup."""

from typing import Any

import httpx

from orderpay.core.config import Settings
from orderpay.core.logging import get_logger

log = get_logger(__name__)

REFUND_PATH = "/v1/transactions/{transaction_id}/refund"
LOOKUP_PATH = "/v1/transactions/{transaction_id}"


class ProcessorCallError(Exception):
    """A processor call failed. `stage` is "auth", "session", "refund" or "lookup"."""

    def __init__(self, stage: str, message: str, status_code: int | None = None, body: str = ""):
        self.stage = stage
        self.status_code = status_code
        self.body = body[:2000]
        super().__init__(message)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.tj_http_timeout_seconds))


class ProcessorClient:
    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings

    def _url(self, path: str) -> str:
        return f"{self._settings.tj_api_base_url.rstrip('/')}{path}"

    async def _send(self, stage: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProcessorCallError(stage, f"{stage} request timed out") from e
        except httpx.HTTPError as e:
            raise ProcessorCallError(stage, f"{stage} request failed: {e}") from e
        if resp.is_error:
            raise ProcessorCallError(stage, f"{stage} returned {resp.status_code}", resp.status_code, resp.text)
        return resp

    @staticmethod
    def _json(stage: str, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise ProcessorCallError(stage, f"{stage} returned invalid JSON", resp.status_code, resp.text) from e
        if not isinstance(data, dict):
            raise ProcessorCallError(stage, f"{stage} returned unexpected body", resp.status_code, resp.text)
        return data

    async def get_access_token(self) -> str:
        """Client-credentials grant against the OAuth token endpoint."""
        s = self._settings
        resp = await self._send(
            "auth",
            "POST",
            s.tj_oauth_token_url,
            auth=(s.tj_client_id, s.tj_client_secret),
            data={"grant_type": "client_credentials", "scope": "payments"},
        )
        token = self._json("auth", resp).get("access_token")
        if not token:
            raise ProcessorCallError("auth", "token response had no access_token", resp.status_code, resp.text)
        return token

    async def create_session(self, access_token: str, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self._send(
            "session",
            "POST",
            self._url(self._settings.tj_create_session_path),
            headers={"Authorization": f"Bearer {access_token}"},
            json=payload,
        )
        data = self._json("session", resp)
        if not data.get("sessionId"):
            raise ProcessorCallError("session", "session response had no sessionId", resp.status_code, resp.text)
        return data

    async def refund(self, transaction_id: str, amount_minor: int | None, reason: str) -> dict[str, Any]:
        token = await self.get_access_token()
        payload: dict[str, Any] = {"transactionId": transaction_id, "reason": reason}
        if amount_minor is not None:
            payload["amount"] = amount_minor
        resp = await self._send(
            "refund",
            "POST",
            self._url(REFUND_PATH.format(transaction_id=transaction_id)),
            headers={"Authorization": f"Bearer {token}"},
            json=payload,
        )
        return self._json("refund", resp)

    async def lookup_transaction(self, transaction_id: str) -> dict[str, Any]:
        token = await self.get_access_token()
        resp = await self._send(
            "lookup",
            "GET",
            self._url(LOOKUP_PATH.format(transaction_id=transaction_id)),
            headers={"Authorization": f"Bearer {token}"},
        )
        return self._json("lookup", resp)
