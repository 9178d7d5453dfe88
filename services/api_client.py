from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Dict, Optional

import httpx

from db.config import Settings, settings as default_settings
from db.logs import logger
from services.errors import BackendError

# Forwarded so the backend sees the caller's session
CREDENTIAL_HEADERS = ("cookie", "authorization")


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared outbound client. Its jar refuses every cookie: sessions belong to
    the browser, never to the process."""
    jar = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
    return httpx.AsyncClient(transport=transport, cookies=jar, follow_redirects=False)


class ApiClient:
    """Thin wrapper over a shared ``httpx.AsyncClient`` bound to the backend base URL."""

    def __init__(self, client: httpx.AsyncClient, cfg: Settings = default_settings) -> None:
        self.client = client
        self.base_url = cfg.backend_url
        self.timeout_s = cfg.PROXY_TIMEOUT_S
        self.health_timeout_s = cfg.HEALTH_CHECK_TIMEOUT_S

    def url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        credentials: Optional[Dict[str, str]] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        for key, value in (credentials or {}).items():
            if key.lower() in CREDENTIAL_HEADERS and value:
                headers[key] = value
        return await self.client.request(
            method, self.url(path), headers=headers, json=json, params=params, timeout=self.timeout_s
        )

    async def health(self) -> bool:
        try:
            resp = await self.client.get(self.url("health"), timeout=self.health_timeout_s)
            return resp.is_success
        except httpx.HTTPError as e:
            logger.warning("Backend health check failed: %s", e)
            return False

    async def get_credit_balance(self, *, cookie: str) -> Dict[str, Any]:
        resp = await self.request("GET", "credits/balance", credentials={"cookie": cookie})
        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not resp.is_success:
            if resp.status_code == 401:
                raise BackendError("Not logged in or session expired, please log in again", status_code=401)
            message = data.get("message") or data.get("error") or "Failed to fetch credit balance"
            raise BackendError(message, status_code=resp.status_code)

        inner = data.get("data") or {}
        balance = inner.get("balance")
        if balance is None:
            balance = data.get("balance", 0)
        return {
            "balance": balance,
            "currency": inner.get("currency") or data.get("currency") or "credits",
            "userId": inner.get("userId") or data.get("userId"),
        }
