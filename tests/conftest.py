# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from board_sentinel.api.v1 import dependencies as api_dependencies
from board_sentinel.core.settings import settings
from board_sentinel.db.session import Base
from board_sentinel.db.session import get_db as app_get_session
from board_sentinel.main import app as fastapi_app
from board_sentinel.models import Post
from board_sentinel.services.content_filter import KeywordConfig
from board_sentinel.services.keyword_config import KeywordConfigResolver, StaticConfigSource
from board_sentinel.services.link_preview import LinkPreviewFetcher
from board_sentinel.services.submission_guard import InMemorySubmissionStore, SubmissionGuard

ADMIN_TOKEN = "test-admin-token-0123456789"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    # File-backed so that a second session (the keyword resolver) gets its own connection.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def guard(clock: FakeClock) -> SubmissionGuard:
    return SubmissionGuard(InMemorySubmissionStore(), clock=clock)


@pytest.fixture()
def static_resolver() -> KeywordConfigResolver:
    """Resolver serving only the bundled keyword snapshot."""
    return KeywordConfigResolver(StaticConfigSource(), StaticConfigSource())


@pytest.fixture()
def keyword_config(static_resolver: KeywordConfigResolver) -> KeywordConfig:
    return static_resolver.get()


@pytest.fixture()
def offline_fetcher() -> LinkPreviewFetcher:
    """Fetcher whose resolver refuses every host, so no request leaves the process."""

    async def _refuse(hostname: str) -> list[str]:
        raise OSError(f"resolution disabled in tests: {hostname}")

    return LinkPreviewFetcher(resolver=_refuse)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    guard: SubmissionGuard,
    static_resolver: KeywordConfigResolver,
    offline_fetcher: LinkPreviewFetcher,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    overrides: dict[Callable[..., object], Callable[..., object]] = {
        app_get_session: _get_session_override,
        api_dependencies.get_submission_guard_dep: lambda: guard,
        api_dependencies.get_keyword_resolver_dep: lambda: static_resolver,
        api_dependencies.get_link_preview_fetcher_dep: lambda: offline_fetcher,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def admin_headers(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Configure the admin token and return matching request headers."""
    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture()
def make_post(db_session: Session) -> Callable[..., Post]:
    """Factory persisting posts with sensible defaults."""

    def _make_post(content: str = "Test post content", **fields: object) -> Post:
        post = Post(
            content=content,
            content_hash=fields.pop("content_hash", "0" * 64),
            author_fingerprint=fields.pop("author_fingerprint", "author-fp"),
            **fields,
        )
        db_session.add(post)
        db_session.commit()
        db_session.refresh(post)
        return post

    return _make_post
