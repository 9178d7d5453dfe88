import asyncio

import httpx
from fastapi.testclient import TestClient

from services.api_client import ApiClient
from services.health_cache import HealthCache
from services.proxy_service import ProxyService, classify_error, cors_headers
from tests.conftest import BACKEND


def test_forwards_method_path_query_and_body(client, backend):
    seen = {}

    def create(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        seen["headers"] = request.headers
        return httpx.Response(201, json={"id": "v1"})

    backend.route("POST", "/api/videos", create)

    resp = client.post(
        "/api/proxy/videos?draft=1",
        content=b'{"prompt": "a calm ocean at dawn"}',
        headers={"Content-Type": "application/json", "Origin": "http://localhost:3000", "X-Trace": "t-1"},
    )

    assert resp.status_code == 201
    assert resp.json() == {"id": "v1"}
    assert seen["url"] == f"{BACKEND}/api/videos?draft=1"
    assert seen["body"] == b'{"prompt": "a calm ocean at dawn"}'
    assert seen["headers"]["x-trace"] == "t-1"
    assert seen["headers"]["host"] == "backend.test"
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_non_2xx_is_passed_through_without_retry(client, backend, sleeps):
    backend.route("POST", "/api/videos/generate",
                  lambda r: httpx.Response(402, json={"error": "Insufficient credits"}))

    resp = client.post("/api/proxy/videos/generate", json={"prompt": "x"})

    assert resp.status_code == 402
    assert resp.json() == {"error": "Insufficient credits"}
    assert len(backend.calls) == 1
    assert sleeps.delays == []


def test_server_error_is_not_retried(client, backend, sleeps):
    backend.route("GET", "/api/videos", lambda r: httpx.Response(500, text="boom"))

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 500
    assert resp.text == "boom"
    assert len(backend.calls) == 1
    assert sleeps.delays == []


def test_every_set_cookie_header_is_kept(client, backend):
    backend.route(
        "POST",
        "/api/auth/login",
        lambda r: httpx.Response(
            200,
            json={"success": True},
            headers=[
                ("Set-Cookie", "token=abc; Path=/; HttpOnly"),
                ("Set-Cookie", "refresh=def; Path=/; Expires=Wed, 21 Oct 2026 07:28:00 GMT"),
            ],
        ),
    )

    resp = client.post("/api/proxy/auth/login", json={"email": "a@b.co", "password": "x1"})

    cookies = resp.headers.get_list("set-cookie")
    assert len(cookies) == 2
    assert cookies[0] == "token=abc; Path=/; HttpOnly"
    assert cookies[1].startswith("refresh=def")


def test_connection_refused_retries_three_times_then_503(client, backend, sleeps):
    def refuse(request):
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    backend.route("GET", "/api/videos", refuse)

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 503
    body = resp.json()
    assert body["error"] == "Backend API Connection Refused"
    assert body["details"]["retries"] == 3
    assert body["details"]["duration"].endswith("ms")
    assert len(backend.calls) == 3
    assert sleeps.delays == [1.0, 2.0]


def test_timeouts_exhaust_to_504(client, backend, sleeps):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend.route("GET", "/api/videos", slow)

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 504
    assert resp.json()["error"] == "Request Timeout"
    assert resp.json()["details"]["timeout"] == 30000
    assert len(backend.calls) == 3
    assert sum(sleeps.delays) == 3.0


def test_other_transport_failure_is_500(client, backend):
    def broken(request):
        raise httpx.RemoteProtocolError("peer closed connection", request=request)

    backend.route("GET", "/api/videos", broken)

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Proxy Request Failed"
    assert resp.json()["details"]["retries"] == 3


def test_transient_failure_then_success(client, backend, sleeps):
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(200, json={"ok": True})

    backend.route("GET", "/api/videos", flaky)

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 200
    assert len(attempts) == 2
    assert sleeps.delays == [1.0]


def test_unhealthy_backend_short_circuits(client, backend):
    backend.health_status = 503

    resp = client.get("/api/proxy/videos")

    assert resp.status_code == 503
    body = resp.json()
    assert body["error"] == "Backend API Unavailable"
    assert body["details"]["healthCheckFailed"] is True
    assert backend.calls == []


def test_health_result_is_memoized(client, backend):
    backend.route("GET", "/api/videos", lambda r: httpx.Response(200, json=[]))

    client.get("/api/proxy/videos")
    client.get("/api/proxy/videos")

    checks = [r for r in backend.requests if r.url.path == "/api/health"]
    assert len(checks) == 1
    assert len(backend.calls) == 2


def test_health_path_skips_the_gate(client, backend):
    backend.health_status = 503

    resp = client.get("/api/proxy/health")

    assert resp.status_code == 503
    assert resp.json() == {"status": "ok"}
    assert len(backend.requests) == 1


def test_preflight_returns_cors_headers(client):
    resp = client.options("/api/proxy/videos", headers={"Origin": "http://localhost:3000"})

    assert resp.status_code in (200, 204)
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


def slow_body(chunks: int, delay: float):
    async def trickle():
        for _ in range(chunks):
            await asyncio.sleep(delay)
            yield b"x"

    return trickle()


def test_attempt_deadline_covers_a_slowly_streamed_body(make_app, backend, sleeps):
    backend.route("GET", "/api/videos", lambda r: httpx.Response(200, content=slow_body(20, 0.05)))

    with TestClient(make_app(PROXY_TIMEOUT_S=0.2)) as c:
        resp = c.get("/api/proxy/videos")

    assert resp.status_code == 504
    assert resp.json()["error"] == "Request Timeout"
    assert resp.json()["details"]["retries"] == 3
    assert len(backend.calls) == 3
    assert sleeps.delays == [1.0, 2.0]


async def test_forward_times_out_when_bytes_keep_arriving(settings, backend, sleeps):
    cfg = settings.model_copy(update={"PROXY_TIMEOUT_S": 0.2})
    backend.route("GET", "/api/videos", lambda r: httpx.Response(200, content=slow_body(12, 0.1)))
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend.handle))
    health = HealthCache(ttl_s=5)
    health.record(True)
    service = ProxyService(ApiClient(http, cfg), health, cfg, sleep=sleeps)

    result = await service.forward(method="GET", path="videos", headers=[])
    await http.aclose()

    assert result.status_code == 504
    assert result.attempts == 3
    assert classify_error(asyncio.TimeoutError()) == "timeout"


def test_preflight_from_unknown_origin_gets_configured_origin(client):
    resp = client.options("/api/proxy/videos", headers={"Origin": "https://evil.example"})

    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_cors_headers_only_echo_configured_origins(settings):
    assert cors_headers("http://localhost:3200", settings)["Access-Control-Allow-Origin"] == "http://localhost:3200"
    assert cors_headers("https://evil.example", settings)["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert cors_headers(None, settings)["Access-Control-Allow-Origin"] == "http://localhost:3000"
