"""
Catalog Search Clients

Async clients for the external book catalogs:
- Google Books: the rich-metadata catalog (descriptions, ratings, images)
- Open Library: the broad-coverage catalog
- Bookcover API: best-guess cover by title and author

Clients raise CatalogUnavailable for any failed call; the search layer
decides whether that costs anything more than an empty result.
"""

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from bookdrop.exceptions import CatalogUnavailable
from bookdrop.identification.isbn import clean_isbn


class CatalogSource(str, Enum):
    """Originating catalog of a search result."""
    CATALOG_A = "catalog_a"  # Google Books
    CATALOG_B = "catalog_b"  # Open Library


RICH_CATALOG = CatalogSource.CATALOG_A


class SearchStrategy(str, Enum):
    """Query rewrite applied before a catalog call."""
    ORIGINAL = "original"
    NORMALIZED = "normalized"
    QUOTED = "quoted"

    @property
    def weight(self) -> int:
        return STRATEGY_WEIGHTS[self]


# Original query first, then disambiguated quoting, then the mangled form.
STRATEGY_WEIGHTS = {
    SearchStrategy.ORIGINAL: 3,
    SearchStrategy.QUOTED: 2,
    SearchStrategy.NORMALIZED: 1,
}

LEADING_ARTICLES = {"the", "a", "an", "de", "la", "le", "el", "das", "der", "die"}

PLACEHOLDER_TITLES = {"unknown title"}
PLACEHOLDER_AUTHORS = {"unknown author"}


def rewrite_query(query: str, strategy: SearchStrategy) -> str:
    """
    Rewrite a free-text query for one search strategy.

    - original: the literal query
    - normalized: lowercased, one leading article removed
    - quoted: first two tokens quoted, the rest appended unquoted
    """
    text = " ".join(query.split())

    if strategy == SearchStrategy.NORMALIZED:
        words = text.lower().split()
        if len(words) > 1 and words[0] in LEADING_ARTICLES:
            words = words[1:]
        return " ".join(words)

    if strategy == SearchStrategy.QUOTED:
        words = text.split()
        if not words:
            return text
        head = " ".join(words[:2])
        rest = " ".join(words[2:])
        return f'"{head}" {rest}'.strip()

    return text


def clean_cover_url(url: Optional[str]) -> Optional[str]:
    """Strip the page-curl effect and force https on catalog image URLs."""
    if not url:
        return None
    url = re.sub(r"&edge=curl", "", url)
    if url.startswith("http:"):
        url = "https:" + url[len("http:"):]
    return url


def is_placeholder(title: Optional[str], author: Optional[str]) -> bool:
    """Reject results with placeholder or degenerate titles/authors."""
    if not title or len(title.strip()) <= 1:
        return True
    if title.strip().lower() in PLACEHOLDER_TITLES:
        return True
    if author and author.strip().lower() in PLACEHOLDER_AUTHORS:
        return True
    return False


def _year_from_date(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = re.match(r"^\s*(\d{4})", str(value))
    return int(match.group(1)) if match else None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> Optional[str]:
    """A non-blank string, or None for anything else."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def _texts(values: Any) -> list[str]:
    """Non-blank strings of a list-valued field; nulls and objects are dropped."""
    if not isinstance(values, list):
        return []
    return [value for value in values if _text(value)]


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _entries(payload: Any, key: str) -> list[dict]:
    """The object entries of a result array; anything else is skipped."""
    entries = _as_dict(payload).get(key) or []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


@dataclass
class CandidateResult:
    """One catalog hit for one query strategy."""

    id: str
    title: str
    author: str
    source: CatalogSource
    search_strategy: SearchStrategy
    relevance_score: float = 0.0

    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "cover_url": self.cover_url,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "publisher": self.publisher,
            "description": self.description,
            "genre": self.genre,
            "source": self.source.value,
            "search_strategy": self.search_strategy.value,
            "relevance_score": self.relevance_score,
        }


@dataclass
class VolumeDetails:
    """Full volume record from the rich catalog."""

    title: str
    authors: list[str] = field(default_factory=list)
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    image_links: dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    maturity_rating: Optional[str] = None
    volume_id: Optional[str] = None

    IMAGE_PREFERENCE = ("extraLarge", "large", "medium", "small", "thumbnail", "smallThumbnail")

    @property
    def author(self) -> Optional[str]:
        return ", ".join(self.authors) if self.authors else None

    @property
    def isbn(self) -> Optional[str]:
        return self.isbn_13 or self.isbn_10

    @property
    def publication_year(self) -> Optional[int]:
        return _year_from_date(self.published_date)

    def best_image(self) -> Optional[str]:
        """Highest-resolution image link, cleaned."""
        for size in self.IMAGE_PREFERENCE:
            if self.image_links.get(size):
                return clean_cover_url(self.image_links[size])
        return None


class _CatalogClient:
    """Shared httpx plumbing for catalog clients."""

    name = "catalog"

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": "BookDrop/1.0"},
            )
        return self._client

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        """GET and decode JSON; every failure becomes CatalogUnavailable."""
        client = await self._get_client()

        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise CatalogUnavailable(self.name, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise CatalogUnavailable(self.name, f"HTTP {response.status_code} from {url}")

        try:
            return response.json()
        except ValueError as e:
            raise CatalogUnavailable(self.name, f"Malformed payload: {e}") from e

    def _parse(self, parse: Callable[..., Any], *args: Any) -> Any:
        """Run a payload parser; a shape it cannot read becomes CatalogUnavailable."""
        try:
            return parse(*args)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CatalogUnavailable(self.name, f"Malformed payload: {e}") from e

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


class GoogleBooksClient(_CatalogClient):
    """
    Client for the Google Books volumes API.

    Provides descriptions, ratings and high-resolution cover links.
    Rate limit: 1000 requests/day without API key.
    """

    name = "google_books"
    BASE_URL = "https://www.googleapis.com/books/v1/volumes"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key

    async def _volumes(self, query: str, limit: int) -> list[dict]:
        params = {
            "q": query,
            "maxResults": min(max(limit, 1), 40),
            "printType": "books",
        }
        if self.api_key:
            params["key"] = self.api_key

        data = await self._get_json(self.BASE_URL, params=params)
        if not isinstance(data, dict):
            raise CatalogUnavailable(self.name, "Unexpected payload shape")
        return _entries(data, "items")

    async def search(
        self,
        query: str,
        strategy: SearchStrategy = SearchStrategy.ORIGINAL,
        limit: int = 10,
    ) -> list[CandidateResult]:
        """Free-text search, results tagged with ``strategy``."""
        items = await self._volumes(query, limit)

        results = []
        for item in items:
            candidate = self._parse(self._parse_candidate, item, strategy)
            if candidate:
                results.append(candidate)
        return results

    async def lookup_isbn(self, isbn: str) -> Optional[VolumeDetails]:
        """Direct ISBN lookup."""
        items = await self._volumes(f"isbn:{isbn}", 1)
        return self._parse(self.parse_volume, items[0]) if items else None

    async def fetch_volume_details(
        self,
        title: str,
        author: Optional[str] = None,
        isbn: Optional[str] = None,
    ) -> Optional[VolumeDetails]:
        """Best volume for an ISBN or title/author pair."""
        if isbn:
            details = await self.lookup_isbn(isbn)
            if details:
                return details

        query = f'intitle:"{title}"'
        if author:
            query += f' inauthor:"{author}"'
        items = await self._volumes(query, 1)
        return self._parse(self.parse_volume, items[0]) if items else None

    def parse_volume(self, item: dict) -> Optional[VolumeDetails]:
        """Parse a volume resource into VolumeDetails; unusable fields are dropped."""
        info = _as_dict(item.get("volumeInfo"))
        title = _text(info.get("title"))
        if not title:
            return None

        isbn_10 = None
        isbn_13 = None
        for identifier in info.get("industryIdentifiers") or []:
            if not isinstance(identifier, dict):
                continue
            if identifier.get("type") == "ISBN_10":
                isbn_10 = _text(identifier.get("identifier"))
            elif identifier.get("type") == "ISBN_13":
                isbn_13 = _text(identifier.get("identifier"))

        image_links = {
            size: url
            for size, url in _as_dict(info.get("imageLinks")).items()
            if _text(url)
        }

        return VolumeDetails(
            title=title,
            authors=_texts(info.get("authors")),
            publisher=_text(info.get("publisher")),
            published_date=_text(info.get("publishedDate")),
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            image_links=image_links,
            description=_text(info.get("description")),
            categories=_texts(info.get("categories")),
            average_rating=_number(info.get("averageRating")),
            ratings_count=_number(info.get("ratingsCount")),
            page_count=_number(info.get("pageCount")),
            language=_text(info.get("language")),
            maturity_rating=_text(info.get("maturityRating")),
            volume_id=_text(item.get("id")),
        )

    def _parse_candidate(self, item: dict, strategy: SearchStrategy) -> Optional[CandidateResult]:
        details = self.parse_volume(item)
        if details is None:
            return None

        return CandidateResult(
            id=details.volume_id or str(uuid.uuid4()),
            title=details.title,
            author=details.author or "",
            source=CatalogSource.CATALOG_A,
            search_strategy=strategy,
            relevance_score=strategy.weight,
            cover_url=details.best_image(),
            isbn=details.isbn,
            publication_year=details.publication_year,
            publisher=details.publisher,
            description=details.description,
            genre=details.categories[0] if details.categories else None,
        )


class OpenLibraryClient(_CatalogClient):
    """
    Client for the Open Library search API.

    Broad coverage, no descriptions in search results.
    Rate limits: no official limit, be respectful.
    """

    name = "open_library"
    BASE_URL = "https://openlibrary.org"
    COVERS_URL = "https://covers.openlibrary.org"
    SEARCH_FIELDS = "key,title,author_name,cover_i,first_publish_year,isbn,publisher,subject"

    async def _docs(self, params: dict) -> list[dict]:
        params = {**params, "fields": self.SEARCH_FIELDS}
        data = await self._get_json(f"{self.BASE_URL}/search.json", params=params)
        if not isinstance(data, dict):
            raise CatalogUnavailable(self.name, "Unexpected payload shape")
        return _entries(data, "docs")

    async def search(
        self,
        query: str,
        strategy: SearchStrategy = SearchStrategy.ORIGINAL,
        limit: int = 10,
    ) -> list[CandidateResult]:
        """Free-text search, results tagged with ``strategy``."""
        docs = await self._docs({"q": query, "limit": limit})

        results = []
        for doc in docs:
            candidate = self._parse(self.parse_doc, doc, strategy)
            if candidate:
                results.append(candidate)
        return results

    async def lookup_isbn(self, isbn: str) -> Optional[CandidateResult]:
        """ISBN lookup through the search endpoint (includes author names)."""
        docs = await self._docs({"isbn": isbn, "limit": 1})
        if not docs:
            return None
        candidate = self._parse(self.parse_doc, docs[0], SearchStrategy.ORIGINAL)
        if candidate and not candidate.isbn:
            candidate.isbn = clean_isbn(isbn)
        return candidate

    def cover_url_for_id(self, cover_id: Any, size: str = "L") -> str:
        """Cover-by-id endpoint."""
        return f"{self.COVERS_URL}/b/id/{cover_id}-{size}.jpg"

    def parse_doc(self, doc: dict, strategy: SearchStrategy) -> Optional[CandidateResult]:
        """Parse a search document; unusable fields are dropped."""
        title = _text(doc.get("title"))
        if not title:
            return None

        isbn = None
        for raw in _texts(doc.get("isbn")):
            isbn = clean_isbn(raw)
            if isbn:
                break

        publishers = _texts(doc.get("publisher"))
        subjects = _texts(doc.get("subject"))
        cover_id = doc.get("cover_i")
        if isinstance(cover_id, bool) or not isinstance(cover_id, (int, str)):
            cover_id = None

        return CandidateResult(
            id=(_text(doc.get("key")) or "").replace("/works/", "") or str(uuid.uuid4()),
            title=title,
            author=", ".join(_texts(doc.get("author_name"))),
            source=CatalogSource.CATALOG_B,
            search_strategy=strategy,
            relevance_score=strategy.weight,
            cover_url=self.cover_url_for_id(cover_id) if cover_id else None,
            isbn=isbn,
            publication_year=_year_from_date(doc.get("first_publish_year")),
            publisher=publishers[0] if publishers else None,
            genre=subjects[0] if subjects else None,
        )


class BookCoverClient(_CatalogClient):
    """Cover lookup by title and author (Goodreads-backed bookcover API)."""

    name = "bookcover"
    BASE_URL = "https://bookcover.longitood.com/bookcover"
    NOT_FOUND = "N/A"

    async def find_cover(self, title: str, author: Optional[str] = None) -> Optional[str]:
        """Return a cover URL, or None when the service has nothing."""
        params = {"book_title": title}
        if author:
            params["author_name"] = author

        data = await self._get_json(self.BASE_URL, params=params)
        url = _text(_as_dict(data).get("url"))
        if not url or url == self.NOT_FOUND:
            logger.debug(f"No bookcover match for '{title}'")
            return None
        return url
