"""
API Schemas for BookDrop

Pydantic models for request validation and response serialization:
- Book models
- List models
- Mini-library models
- Geocoding models

Design Decisions:
1. Separate Request/Response: Clear distinction between inputs and outputs
2. Optional fields: Catalog data is often partial
3. Domain conversion lives next to the schema that needs it
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookdrop.identification.book import Book
from bookdrop.identification.catalogs import CandidateResult
from bookdrop.identification.change_detector import BookChange, ChangeAction
from bookdrop.lists.purposes import ListPurpose
from bookdrop.storage.list_repository import FavoriteEntry, StoredList


# =============================================================================
# Book Schemas
# =============================================================================

class BookBase(BaseModel):
    """Base book fields."""

    title: str = Field(..., min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=500)

    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = Field(None, ge=0, le=2100)
    publisher: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None

    average_rating: Optional[float] = Field(None, ge=0, le=5)
    ratings_count: Optional[int] = Field(None, ge=0)
    page_count: Optional[int] = Field(None, ge=0)
    language: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    maturity_rating: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("title must not be blank")
        return v


class BookInput(BookBase):
    """A book submitted by the client, possibly already enriched."""

    id: Optional[str] = None

    def to_book(self) -> Book:
        data = self.model_dump(exclude_none=True)
        if not data.get("id"):
            data.pop("id", None)
        return Book.from_dict(data)


class BookResponse(BookBase):
    """Book response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    author: str

    @classmethod
    def from_book(cls, book: Book) -> "BookResponse":
        return cls(**book.to_dict())


class BookSearchRequest(BaseModel):
    """Manual catalog search."""

    query: str = Field(..., min_length=1, max_length=300)
    limit: int = Field(8, ge=1, le=40)


class CandidateResponse(BaseModel):
    """One catalog search result."""

    id: str
    title: str
    author: str
    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    source: str
    search_strategy: str
    relevance_score: float

    @classmethod
    def from_candidate(cls, candidate: CandidateResult) -> "CandidateResponse":
        return cls(**candidate.to_dict())


class BookSearchResponse(BaseModel):
    """Search results."""

    query: str
    results: list[CandidateResponse]
    total: int


class EnrichRequest(BaseModel):
    """Manual title/author entry."""

    title: str = Field(..., min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=500)


class DetectionResponse(BaseModel):
    """Books identified in an uploaded image."""

    books: list[BookResponse]
    total_detected: int
    without_catalog_data: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    processing_time_ms: float


# =============================================================================
# List Schemas
# =============================================================================

class LocationInput(BaseModel):
    """Exact coordinates; only the fuzzed position is ever public."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    location_name: Optional[str] = Field(None, max_length=300)


class ListCreateRequest(BaseModel):
    """Create a list from books."""

    books: list[BookInput] = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    purpose: ListPurpose = ListPurpose.SHARING
    location: Optional[LocationInput] = None


class ListUpdateRequest(BaseModel):
    """Rename, describe, or change purpose."""

    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    purpose: Optional[ListPurpose] = None


class ListBooksRequest(BaseModel):
    """Replace or append books."""

    books: list[BookInput] = Field(default_factory=list)


class LocationUpdateRequest(BaseModel):
    """Set or remove a list's location."""

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location_name: Optional[str] = Field(None, max_length=300)
    remove: bool = False


class ListResponse(BaseModel):
    """A list as seen by the caller."""

    id: str
    name: str
    description: Optional[str] = None
    share_url: str
    purpose: ListPurpose
    purpose_label: str
    requires_location: bool

    public_latitude: Optional[float] = None
    public_longitude: Optional[float] = None
    exact_latitude: Optional[float] = None
    exact_longitude: Optional[float] = None
    location_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    books: list[BookResponse] = Field(default_factory=list)
    book_count: int = 0

    is_owner: bool = False
    can_edit: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_stored(
        cls,
        stored: StoredList,
        is_owner: bool = False,
        can_edit: bool = False,
    ) -> "ListResponse":
        """Build the view; exact coordinates only where the purpose shows them."""
        purpose = ListPurpose.parse(stored.purpose)
        exact = purpose.shows_exact_location

        return cls(
            id=stored.id,
            name=stored.name,
            description=stored.description,
            share_url=stored.share_url,
            purpose=purpose,
            purpose_label=purpose.label,
            requires_location=purpose.requires_location,
            public_latitude=stored.public_latitude,
            public_longitude=stored.public_longitude,
            exact_latitude=stored.exact_latitude if exact else None,
            exact_longitude=stored.exact_longitude if exact else None,
            location_name=stored.location_name,
            city=stored.city,
            country=stored.country,
            books=[BookResponse.from_book(b) for b in stored.books],
            book_count=len(stored.books),
            is_owner=is_owner,
            can_edit=can_edit,
            created_at=stored.created_at,
            updated_at=stored.updated_at,
        )


class ListMutationResponse(BaseModel):
    """Result of a batch change to a list."""

    book_list: ListResponse
    skipped: list[str] = Field(default_factory=list)
    removed_book_ids: list[str] = Field(default_factory=list)


class ListSummary(BaseModel):
    """Entry in the caller's own lists."""

    id: str
    name: str
    share_url: str
    purpose: ListPurpose
    book_count: int
    city: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_stored(cls, stored: StoredList) -> "ListSummary":
        return cls(
            id=stored.id,
            name=stored.name,
            share_url=stored.share_url,
            purpose=ListPurpose.parse(stored.purpose),
            book_count=len(stored.books),
            city=stored.city,
            updated_at=stored.updated_at,
        )


class DeleteResponse(BaseModel):
    deleted: bool
    removed_book_ids: list[str] = Field(default_factory=list)


class FavoriteRequest(BaseModel):
    share_url: str = Field(..., min_length=1, max_length=64)


class FavoriteSummary(ListSummary):
    """Entry in the caller's favorites."""

    favorited_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: FavoriteEntry) -> "FavoriteSummary":
        summary = ListSummary.from_stored(entry.book_list)
        return cls(**summary.model_dump(), favorited_at=entry.favorited_at)


class FavoriteDeleteResponse(BaseModel):
    removed: bool


# =============================================================================
# Mini-library Schemas
# =============================================================================

class BookChangeSchema(BaseModel):
    """Proposed or confirmed change to a mini-library."""

    book: BookInput
    action: ChangeAction
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    @classmethod
    def from_change(cls, change: BookChange) -> "BookChangeSchema":
        return cls(
            book=BookInput(**change.book.to_dict()),
            action=change.action,
            confidence=change.confidence,
        )

    def to_change(self) -> BookChange:
        return BookChange(book=self.book.to_book(), action=self.action, confidence=self.confidence)


class DetectChangesResponse(BaseModel):
    changes: list[BookChangeSchema]
    detected_books: int
    current_books: int
    message: str


class ApplyChangesRequest(BaseModel):
    changes: list[BookChangeSchema] = Field(..., min_length=1)


# =============================================================================
# Geocoding Schemas
# =============================================================================

class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=500)


class GeocodeResponse(BaseModel):
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    location_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


# =============================================================================
# System Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error envelope."""

    error: str
    code: str
    detail: Optional[str] = None
    timestamp: Optional[datetime] = None
