import traceback
from contextlib import asynccontextmanager
from email.utils import formatdate
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from db.config import Settings, settings as default_settings
from db.database import SessionLocal, engine as default_engine, init_db
from db.logs import configure_logging, logger
from routes.auth_routes import router as auth_router
from routes.credit_routes import router as credit_router
from routes.generate_routes import router as generate_router
from routes.proxy_routes import router as proxy_router
from routes.user_routes import router as user_router
from routes.video_routes import router as video_router
from services.api_client import ApiClient, build_http_client
from services.errors import RateLimited, ServiceError
from services.generation_relay import GenerationRelay
from services.health_cache import HealthCache
from services.proxy_service import ProxyService
from services.rate_limiter import FixedWindowRateLimiter
from services.storage_service import StorageService


def create_app(
    cfg: Settings = default_settings,
    *,
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    storage_factory=None,
    proxy_sleep=None,
) -> FastAPI:
    configure_logging(cfg.LOG_LEVEL)
    db_engine = engine or default_engine
    http = http_client or build_http_client()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(db_engine)
        logger.info("%s started (backend=%s, env=%s)", cfg.APP_NAME, cfg.backend_url, cfg.APP_ENV)
        try:
            yield
        finally:
            await http.aclose()

    app = FastAPI(title=cfg.APP_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = ApiClient(http, cfg)
    health = HealthCache(ttl_s=cfg.HEALTH_CHECK_TTL_S)
    proxy_kwargs = {"sleep": proxy_sleep} if proxy_sleep is not None else {}

    app.state.settings = cfg
    app.state.http = http
    app.state.api = api
    app.state.health = health
    app.state.proxy = ProxyService(api, health, cfg, **proxy_kwargs)
    app.state.relay = GenerationRelay(http, cfg)
    app.state.generate_limiter = FixedWindowRateLimiter(
        window_s=cfg.GENERATE_RATE_WINDOW_S, max_requests=cfg.GENERATE_RATE_MAX,
        storage_uri=cfg.RATE_LIMIT_STORAGE_URI, name="generate",
    )
    app.state.register_limiter = FixedWindowRateLimiter(
        window_s=cfg.GENERATE_RATE_WINDOW_S, max_requests=cfg.REGISTER_RATE_MAX,
        storage_uri=cfg.RATE_LIMIT_STORAGE_URI, name="register",
    )
    app.state.session_factory = (
        SessionLocal if engine is None
        else async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)
    )
    app.state.storage_factory = storage_factory or (lambda: StorageService(cfg))

    @app.exception_handler(RateLimited)
    async def rate_limited(request: Request, exc: RateLimited):
        return JSONResponse(
            {"success": False, "error": exc.message, "retryAfter": exc.retry_after},
            status_code=429,
            headers={
                "Retry-After": str(exc.retry_after),
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": formatdate(exc.reset_at, usegmt=True),
            },
        )

    @app.exception_handler(ServiceError)
    async def service_error(request: Request, exc: ServiceError):
        payload = {"success": False, "error": exc.message}
        if exc.details:
            payload["details"] = exc.details
        return JSONResponse(payload, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        payload = {"success": False, "error": str(exc) or "Internal server error"}
        if cfg.is_development:
            payload["details"] = {"stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))}
        return JSONResponse(payload, status_code=500)

    app.include_router(proxy_router)
    app.include_router(generate_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(credit_router)
    app.include_router(video_router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
