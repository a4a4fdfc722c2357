"""
Pytest configuration and fixtures for BookDrop tests.
"""

import io
import sys
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bookdrop.api.dependencies import ServiceContainer, Settings, get_service_container, get_settings
from bookdrop.api.main import create_app
from bookdrop.identification.book import Book
from bookdrop.identification.extraction import RawMention
from bookdrop.identification.metadata_enricher import EnrichmentResult, EnrichmentStatus
from bookdrop.lists.service import ListService
from bookdrop.storage.book_repository import BookRepository
from bookdrop.storage.list_repository import ListRepository
from bookdrop.storage.models import create_database_engine


# =============================================================================
# Test Settings
# =============================================================================

def get_test_settings() -> Settings:
    """Return settings configured for testing."""
    return Settings(
        database_url="sqlite://",
        database_echo=False,
        gemini_api_key=None,
        google_books_api_key=None,
        google_maps_api_key=None,
        environment="test",
        debug=True,
        rate_limit_enabled=False,
    )


# =============================================================================
# Fakes
# =============================================================================

class FakeExtractor:
    """Vision extractor returning canned mentions."""

    def __init__(self, mentions: Optional[list[RawMention]] = None):
        self.mentions = mentions or []
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return True

    async def extract(self, image_bytes: bytes, mime_type: str) -> list[RawMention]:
        self.calls += 1
        return list(self.mentions)


class FakeEnricher:
    """Enricher that fills in a publisher and never touches the network."""

    def __init__(self, unknown_titles: tuple[str, ...] = ()):
        self.unknown_titles = set(unknown_titles)
        self.enriched: list[str] = []

    async def enrich_mention(self, mention: RawMention) -> EnrichmentResult:
        self.enriched.append(mention.title)
        book = Book(title=mention.title, author=mention.author or "Unknown")
        if mention.title in self.unknown_titles:
            return EnrichmentResult(book=book, status=EnrichmentStatus.FALLBACK)

        book.publisher = mention.publisher or "Catalog Press"
        return EnrichmentResult(
            book=book,
            status=EnrichmentStatus.ENRICHED,
            sources=["catalog_a:search"],
        )

    async def enrich_manual(self, title: str, author: Optional[str] = None) -> Book:
        result = await self.enrich_mention(RawMention(title=title, author=author))
        return result.book

    async def search_candidates(self, query: str, limit: Optional[int] = None) -> list:
        return []

    async def close(self):
        pass


@pytest.fixture
def shelf_mentions() -> list[RawMention]:
    """Mentions a vision model might read from a small shelf."""
    return [
        RawMention(title="Dune", author="Frank Herbert", confidence=0.9),
        RawMention(title="Neuromancer", author="William Gibson", confidence=0.8),
        RawMention(title="Paris", publisher="DK Eyewitness", confidence=0.7),
    ]


@pytest.fixture
def fake_extractor(shelf_mentions) -> FakeExtractor:
    return FakeExtractor(shelf_mentions)


@pytest.fixture
def fake_enricher() -> FakeEnricher:
    return FakeEnricher()


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_database_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def book_repository(engine) -> BookRepository:
    return BookRepository(engine=engine)


@pytest.fixture
def list_repository(engine) -> ListRepository:
    return ListRepository(engine=engine)


@pytest.fixture
def list_service(book_repository, list_repository) -> ListService:
    return ListService(books=book_repository, lists=list_repository)


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def services(test_settings, engine, fake_extractor, fake_enricher) -> ServiceContainer:
    """Service container wired to the test database and fakes."""
    container = ServiceContainer(test_settings)
    container._engine = engine
    container._vision_extractor = fake_extractor
    container._metadata_enricher = fake_enricher
    return container


@pytest_asyncio.fixture(scope="function")
async def app(test_settings, services):
    """Create FastAPI application for testing."""
    application = create_app(test_settings)

    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_service_container] = lambda: services

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture
def shelf_image_bytes() -> bytes:
    """Small JPEG standing in for a shelf photo."""
    img = Image.new("RGB", (320, 240), color=(240, 240, 240))
    for i, color in enumerate([(150, 50, 50), (50, 150, 50), (50, 50, 150)]):
        img.paste(color, (40 + i * 60, 40, 80 + i * 60, 200))

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return buffer.getvalue()


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def sample_books() -> list[Book]:
    """Books as they come out of enrichment."""
    return [
        Book(title="Dune", author="Frank Herbert", publication_year=1965, isbn="9780441172719"),
        Book(title="Neuromancer", author="William Gibson", publisher="Ace"),
        Book(title="The Left Hand of Darkness", author="Ursula K. Le Guin"),
    ]


@pytest.fixture
def sample_book_payloads() -> list[dict]:
    """Book payloads as a client would send them."""
    return [
        {"title": "Dune", "author": "Frank Herbert", "publication_year": 1965},
        {"title": "Neuromancer", "author": "William Gibson"},
        {"title": "Kindred", "author": "Octavia E. Butler"},
    ]


@pytest.fixture
def here() -> dict:
    return {"latitude": 37.8716, "longitude": -122.2727, "location_name": "Corner of Oak St"}
