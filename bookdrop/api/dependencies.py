"""
Dependency injection for FastAPI routes.

Provides injectable dependencies for:
- Configuration
- Service instances (extraction, enrichment, storage, lists)
- The authenticated actor
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from bookdrop.exceptions import AuthenticationRequired


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class Settings:
    """Application settings loaded from environment."""

    # Database
    database_url: str = "sqlite:///./bookdrop.db"
    database_echo: bool = False

    # Vision model
    gemini_api_key: Optional[str] = None
    vision_model: str = "gemini-2.0-flash"

    # External APIs
    google_books_api_key: Optional[str] = None
    google_maps_api_key: Optional[str] = None
    catalog_timeout_seconds: float = 10.0
    search_result_limit: int = 8

    # Duplicate list creation guard
    duplicate_window_seconds: float = 5.0
    duplicate_evict_seconds: float = 60.0

    # Rate limiting (image endpoints)
    rate_limit_enabled: bool = True
    rate_limit_requests_per_minute: int = 20

    # File uploads
    max_upload_size_mb: int = 10
    allowed_image_types: str = "image/jpeg,image/png,image/webp,image/heic"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def allowed_image_type_set(self) -> set[str]:
        return {t.strip() for t in self.allowed_image_types.split(",") if t.strip()}

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            vision_model=os.getenv("VISION_MODEL", cls.vision_model),
            google_books_api_key=os.getenv("GOOGLE_BOOKS_API_KEY"),
            google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY"),
            catalog_timeout_seconds=float(os.getenv("CATALOG_TIMEOUT_SECONDS", cls.catalog_timeout_seconds)),
            search_result_limit=int(os.getenv("SEARCH_RESULT_LIMIT", cls.search_result_limit)),
            duplicate_window_seconds=float(os.getenv("DUPLICATE_WINDOW_SECONDS", cls.duplicate_window_seconds)),
            duplicate_evict_seconds=float(os.getenv("DUPLICATE_EVICT_SECONDS", cls.duplicate_evict_seconds)),
            rate_limit_enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
            rate_limit_requests_per_minute=int(os.getenv("RATE_LIMIT_RPM", cls.rate_limit_requests_per_minute)),
            max_upload_size_mb=int(os.getenv("MAX_UPLOAD_SIZE_MB", cls.max_upload_size_mb)),
            allowed_image_types=os.getenv("ALLOWED_IMAGE_TYPES", cls.allowed_image_types),
            environment=os.getenv("BOOKDROP_ENV", cls.environment),
            debug=os.getenv("DEBUG", "true").lower() == "true",
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings.from_env()


# =============================================================================
# Service Dependencies (Lazy Loading)
# =============================================================================

class ServiceContainer:
    """
    Container for lazy-loaded service instances.

    Services are initialized on first access to avoid startup delays.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._engine = None
        self._book_repository = None
        self._list_repository = None
        self._vision_extractor = None
        self._metadata_enricher = None
        self._identification_service = None
        self._change_detector = None
        self._geocoder = None
        self._list_service = None
        self._duplicate_guard = None

    @property
    def engine(self):
        """Shared database engine."""
        if self._engine is None:
            from bookdrop.storage.models import create_database_engine
            self._engine = create_database_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
            )
        return self._engine

    @property
    def book_repository(self):
        """Get book repository instance."""
        if self._book_repository is None:
            from bookdrop.storage.book_repository import BookRepository
            self._book_repository = BookRepository(engine=self.engine)
        return self._book_repository

    @property
    def list_repository(self):
        """Get list repository instance."""
        if self._list_repository is None:
            from bookdrop.storage.list_repository import ListRepository
            self._list_repository = ListRepository(engine=self.engine)
        return self._list_repository

    @property
    def vision_extractor(self):
        """Get Gemini vision extractor."""
        if self._vision_extractor is None:
            from bookdrop.identification.extraction import VisionExtractor
            self._vision_extractor = VisionExtractor(
                api_key=self.settings.gemini_api_key,
                model=self.settings.vision_model,
            )
        return self._vision_extractor

    @property
    def metadata_enricher(self):
        """Get metadata enricher instance."""
        if self._metadata_enricher is None:
            from bookdrop.identification.metadata_enricher import MetadataEnricher
            self._metadata_enricher = MetadataEnricher(
                google_api_key=self.settings.google_books_api_key,
                timeout=self.settings.catalog_timeout_seconds,
                result_limit=self.settings.search_result_limit,
            )
        return self._metadata_enricher

    @property
    def identification_service(self):
        """Get identification service instance."""
        if self._identification_service is None:
            from bookdrop.identification.service import IdentificationService
            self._identification_service = IdentificationService(
                extractor=self.vision_extractor,
                enricher=self.metadata_enricher,
                max_image_bytes=self.settings.max_upload_bytes,
            )
        return self._identification_service

    @property
    def change_detector(self):
        """Get mini-library change detector."""
        if self._change_detector is None:
            from bookdrop.identification.change_detector import ChangeDetector
            self._change_detector = ChangeDetector()
        return self._change_detector

    @property
    def geocoder(self):
        """Get geocoding client."""
        if self._geocoder is None:
            from bookdrop.lists.location import GeocodingClient
            self._geocoder = GeocodingClient(
                api_key=self.settings.google_maps_api_key,
                timeout=self.settings.catalog_timeout_seconds,
            )
        return self._geocoder

    @property
    def list_service(self):
        """Get list service instance."""
        if self._list_service is None:
            from bookdrop.lists.service import ListService
            self._list_service = ListService(
                books=self.book_repository,
                lists=self.list_repository,
                geocoder=self.geocoder,
            )
        return self._list_service

    @property
    def duplicate_guard(self):
        """Guard against repeated list creation."""
        if self._duplicate_guard is None:
            from bookdrop.api.middleware.rate_limit import DuplicateRequestGuard
            self._duplicate_guard = DuplicateRequestGuard(
                window_seconds=self.settings.duplicate_window_seconds,
                evict_after_seconds=self.settings.duplicate_evict_seconds,
            )
        return self._duplicate_guard

    async def close(self):
        """Close HTTP clients and dispose of the engine."""
        if self._metadata_enricher is not None:
            await self._metadata_enricher.close()
        if self._geocoder is not None:
            await self._geocoder.close()
        if self._engine is not None:
            self._engine.dispose()


# Global service container
_service_container: Optional[ServiceContainer] = None


def init_services(settings: Settings) -> ServiceContainer:
    """Initialize service container."""
    global _service_container
    _service_container = ServiceContainer(settings)
    return _service_container


def get_service_container() -> ServiceContainer:
    """Get service container instance."""
    if _service_container is None:
        # Auto-initialize with default settings if not explicitly initialized
        return init_services(get_settings())
    return _service_container


# =============================================================================
# Individual Service Dependencies
# =============================================================================

def get_identification_service(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for identification service."""
    return container.identification_service


def get_metadata_enricher(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for metadata enricher."""
    return container.metadata_enricher


def get_list_service(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for list service."""
    return container.list_service


def get_change_detector(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for change detector."""
    return container.change_detector


def get_geocoder(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for geocoding client."""
    return container.geocoder


def get_duplicate_guard(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for the duplicate list-creation guard."""
    return container.duplicate_guard


# =============================================================================
# Authentication Dependencies
# =============================================================================

async def get_optional_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """
    Actor ID set by the upstream session layer.

    Returns None for anonymous requests (public endpoints).
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None


async def get_current_user(
    user_id: Optional[str] = Depends(get_optional_user),
) -> str:
    """
    Require an authenticated actor.

    Raises:
        AuthenticationRequired: No actor on the request.
    """
    if not user_id:
        raise AuthenticationRequired()
    return user_id

