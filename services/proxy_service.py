import asyncio
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from db.config import Settings, settings as default_settings
from db.logs import logger
from services.api_client import ApiClient
from services.health_cache import HealthCache

HOP_HEADERS = {"host", "connection", "content-length"}
BODY_METHODS = {"POST", "PUT", "PATCH"}
PROXY_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-API-Key, Cookie"


@dataclass
class ProxyResult:
    status_code: int
    body: bytes
    content_type: str = "application/json"
    set_cookies: List[str] = field(default_factory=list)
    attempts: int = 0
    json_body: Optional[Dict[str, Any]] = None


def _short(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}... ({len(text)} chars)"


def classify_error(exc: BaseException) -> str:
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        return "connection_refused"
    return "other"


def cors_headers(origin: Optional[str], cfg: Settings = default_settings) -> Dict[str, str]:
    allowed = cfg.allowed_origins
    fallback = allowed[0] if allowed else "http://127.0.0.1:3000"
    return {
        "Access-Control-Allow-Origin": origin if origin in allowed else fallback,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


class ProxyService:
    """Forward REST calls to the backend with health gating and bounded retries.

    Only transport failures are retried. Any received response, whatever its
    status, is final: retrying a business-logic failure could charge credits
    twice.
    """

    def __init__(
        self,
        api: ApiClient,
        health: HealthCache,
        cfg: Settings = default_settings,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api = api
        self.health = health
        self.cfg = cfg
        self.max_retries = cfg.PROXY_MAX_RETRIES
        self.retry_delay_s = cfg.PROXY_RETRY_DELAY_S
        self.timeout_s = cfg.PROXY_TIMEOUT_S
        self._sleep = sleep
        self._clock = clock

    async def backend_healthy(self) -> bool:
        cached = self.health.fresh()
        if cached is not None:
            return cached.healthy
        started = self.health.now()
        healthy = await self.api.health()
        self.health.record(healthy, at=started)
        return healthy

    @staticmethod
    def forward_headers(headers: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        return [(k, v) for k, v in headers if k.lower() not in HOP_HEADERS]

    async def forward(
        self,
        *,
        method: str,
        path: str,
        headers: List[Tuple[str, str]],
        body: Optional[bytes] = None,
        query: str = "",
    ) -> ProxyResult:
        started = self._clock()
        method = method.upper()
        url_path = f"/{path.strip('/')}" if path.strip("/") else ""
        target = f"{self.api.base_url}/api{url_path}"
        if query:
            target = f"{target}?{query}"

        logger.info("[%s] Proxying request to: %s", method, target)

        if "/health" not in url_path and not await self.backend_healthy():
            logger.warning("Backend API at %s appears to be down", self.api.base_url)
            return self._unavailable()

        content = body if method in BODY_METHODS else None
        if content:
            logger.debug("Request body: %s", _short(content.decode("utf-8", errors="replace"), 100))
        out_headers = self.forward_headers(headers)

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info("Attempt %s/%s for %s %s", attempt, self.max_retries, method, target)
                # the deadline covers the whole attempt, body included
                resp = await asyncio.wait_for(
                    self.api.client.request(
                        method, target, headers=out_headers, content=content, timeout=self.timeout_s
                    ),
                    self.timeout_s,
                )
            except (httpx.RequestError, asyncio.TimeoutError) as e:
                last_error = e
                kind = classify_error(e)
                if kind == "timeout":
                    logger.error("Request timeout on attempt %s/%s", attempt, self.max_retries)
                elif kind == "connection_refused":
                    logger.error("Connection refused on attempt %s/%s: %s", attempt, self.max_retries,
                                 self.api.base_url)
                else:
                    logger.error("Fetch error on attempt %s/%s: %s", attempt, self.max_retries, e)

                if attempt < self.max_retries:
                    delay = self.retry_delay_s * attempt
                    logger.info("Retrying in %sms...", int(delay * 1000))
                    await self._sleep(delay)
                continue

            elapsed_ms = int((self._clock() - started) * 1000)
            logger.info("Response status: %s (%sms)", resp.status_code, elapsed_ms)
            self.health.record(True)

            set_cookies = resp.headers.get_list("set-cookie")
            if set_cookies:
                logger.info("Forwarding %s Set-Cookie headers", len(set_cookies))
            return ProxyResult(
                status_code=resp.status_code,
                body=resp.content,
                content_type=resp.headers.get("content-type") or "application/json",
                set_cookies=set_cookies,
                attempts=attempt,
            )

        return self._exhausted(last_error, started)

    def _unavailable(self) -> ProxyResult:
        base = self.api.base_url
        return ProxyResult(
            status_code=503,
            body=b"",
            json_body={
                "error": "Backend API Unavailable",
                "message": f"Cannot connect to backend API at {base}. Please ensure the API server is running.",
                "details": {"apiUrl": base, "healthCheckFailed": True},
            },
        )

    def _exhausted(self, error: Optional[BaseException], started: float) -> ProxyResult:
        duration = f"{int((self._clock() - started) * 1000)}ms"
        base = self.api.base_url
        kind = classify_error(error) if error is not None else "other"
        logger.error("Proxy error after %s: %r", duration, error)

        if kind == "connection_refused":
            status, payload = 503, {
                "error": "Backend API Connection Refused",
                "message": f"Failed to connect to backend API at {base}. The API server is not running.",
                "details": {"apiUrl": base, "errorCode": "ECONNREFUSED",
                            "retries": self.max_retries, "duration": duration},
            }
        elif kind == "timeout":
            status, payload = 504, {
                "error": "Request Timeout",
                "message": f"Request to backend API timed out after {int(self.timeout_s * 1000)}ms",
                "details": {"timeout": int(self.timeout_s * 1000),
                            "retries": self.max_retries, "duration": duration},
            }
        else:
            details: Dict[str, Any] = {
                "errorCode": type(error).__name__ if error is not None else None,
                "retries": self.max_retries,
                "duration": duration,
            }
            if self.cfg.is_development and error is not None:
                details["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            status, payload = 500, {
                "error": "Proxy Request Failed",
                "message": str(error) if error else "An unexpected error occurred",
                "details": details,
            }
        return ProxyResult(status_code=status, body=b"", json_body=payload, attempts=self.max_retries)
