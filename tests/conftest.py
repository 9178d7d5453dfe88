from typing import Callable, Dict, List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from db.config import Settings
from db.database import Base
from entities.credit_transaction import CreditTransaction  # noqa: F401
from entities.user import RoleEnum, User, UserStatusEnum
from entities.video import Video  # noqa: F401
from main import create_app
from services.auth_service import hash_password, issue_token

API_KEY = "sk-" + "a1B2c3D4" * 6
BACKEND = "http://backend.test"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeBackend:
    """Stands in for the video backend behind an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []
        self.health_status = 200

    def route(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is not None:
            return handler(request)
        if request.url.path == "/api/health":
            return httpx.Response(self.health_status, json={"status": "ok"})
        return httpx.Response(404, json={"error": "not found"})

    @property
    def calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/api/health"]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        API_URL=BACKEND,
        APP_ENV="test",
        JWT_SECRET="test-secret-key-that-is-long-enough-42",
        ALLOWED_ORIGINS="http://localhost:3000,http://localhost:3200",
        BYPASS_AUTH=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "videogen.db"


@pytest.fixture
def sync_session(db_path):
    """Seed data through a plain sqlite connection on the app's database file."""
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()


@pytest.fixture
def make_app(settings, backend, sleeps, db_path):
    def factory(*, storage_factory=None, **overrides):
        cfg = settings.model_copy(update=overrides) if overrides else settings
        engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
        http = httpx.AsyncClient(transport=httpx.MockTransport(backend.handle))
        return create_app(cfg, engine=engine, http_client=http, storage_factory=storage_factory, proxy_sleep=sleeps)

    return factory


@pytest.fixture
def client(make_app):
    with TestClient(make_app()) as c:
        yield c


@pytest.fixture
def seed_user(sync_session, settings):
    """Insert a user and return ``(user, session_token)``."""

    def factory(email="maria@example.com", password="secret123", *, role=RoleEnum.user,
                status=UserStatusEnum.active, credits=100):
        user = User(email=email, password_hash=hash_password(password), nickname="Maria",
                    role=role, status=status, credits=credits)
        sync_session.add(user)
        sync_session.commit()
        return user, issue_token(user, settings)

    return factory
