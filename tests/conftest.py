"""
Pytest configuration and fixtures for backend tests.
"""
import os
import sys
from typing import Generator, Optional

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# The app must not touch the on-disk database during tests
os.environ["AUTO_CREATE_TABLES"] = "false"

from bookwatch.core.book_cache import BookIdentityCache, get_book_cache
from bookwatch.core.database import Base, configure_sqlite, get_db
from bookwatch.core.locks import BookLockRegistry, get_book_locks
from bookwatch.schemas.book import BookPayload, ChapterPayload, ParagraphPayload
from bookwatch.services.provider import get_book_source
from main import app

# Use in-memory SQLite for tests; StaticPool keeps one connection so the
# TestClient worker thread sees the same database
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)
configure_sqlite(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_book(code: str, title: str, chapters: dict[int, list[tuple[Optional[str], str]]]) -> BookPayload:
    """Build a provider-shaped book from {chapter_number: [(refcode, content), ...]}."""
    return BookPayload(
        title=title,
        code=code,
        chapters=[
            ChapterPayload(
                number=number,
                title=f"Capítulo {number}",
                paragraphs=[ParagraphPayload(refcode=refcode, content=content) for refcode, content in paragraphs],
            )
            for number, paragraphs in chapters.items()
        ],
    )


class FakeProvider:
    """Stands in for the remote content provider."""

    def __init__(self):
        self.books: dict[str, BookPayload] = {}
        self.calls: list[str] = []

    def publish(self, payload: BookPayload) -> None:
        self.books[payload.code.upper()] = payload

    async def fetch_book(self, code: str, language: Optional[str] = None) -> BookPayload:
        self.calls.append(code.upper())
        payload = self.books.get(code.upper())
        if payload is None:
            raise HTTPException(status_code=502, detail="内容提供方请求失败 (404)")
        return payload.model_copy(deep=True)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def book_locks() -> BookLockRegistry:
    return BookLockRegistry()


@pytest.fixture
def book_cache() -> BookIdentityCache:
    return BookIdentityCache(ttl_seconds=300)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(scope="function")
def client(
    db_session: Session,
    book_locks: BookLockRegistry,
    book_cache: BookIdentityCache,
    provider: FakeProvider,
) -> TestClient:
    """Create a test client with overridden dependencies."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_book_locks] = lambda: book_locks
    app.dependency_overrides[get_book_cache] = lambda: book_cache
    app.dependency_overrides[get_book_source] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def cs_book() -> BookPayload:
    """A small two-chapter book with stable refcodes."""
    return build_book(
        "CS",
        "El Conflicto de los Siglos",
        {
            1: [
                ("CS 1.1", "En el principio era el Verbo y el Verbo era con Dios."),
                ("CS 1.2", "Este era en el principio con Dios."),
            ],
            3: [
                ("CS 3.1", "La tierra estaba desordenada y vacía."),
                ("CS 3.2", "El cielo es azul."),
                ("CS 3.3", "Y dijo Dios: Sea la luz; y fue la luz."),
            ],
        },
    )


@pytest.fixture
def make_book():
    """Factory fixture for provider-shaped books."""
    return build_book
