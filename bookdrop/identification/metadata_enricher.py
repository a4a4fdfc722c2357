"""
Metadata Enricher

Turns a raw mention into a full Book using the catalogs:
ISBN lookup first, then a context-aware catalog search, then secondary
metadata from Google Books and a cover from the best available source.

Enrichment never fails the request. A network failure costs only the
data that call would have provided.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional

import httpx
from loguru import logger

from bookdrop.exceptions import CatalogUnavailable
from bookdrop.identification.book import Book
from bookdrop.identification.candidate_ranker import CandidateRanker
from bookdrop.identification.catalogs import (
    BookCoverClient,
    CandidateResult,
    GoogleBooksClient,
    OpenLibraryClient,
    VolumeDetails,
    is_placeholder,
)
from bookdrop.identification.extraction import RawMention
from bookdrop.identification.search import CatalogSearch


# Substring (lowercase) -> canonical series name used to prefix the query.
TRAVEL_SERIES = (
    ("eyewitness", "DK Eyewitness"),
    ("lonely planet", "Lonely Planet"),
    ("rick steves", "Rick Steves"),
    ("rough guide", "Rough Guide"),
    ("fodor", "Fodor's"),
    ("frommer", "Frommer's"),
    ("insight guides", "Insight Guides"),
    ("moon", "Moon"),
    ("michelin", "Michelin"),
    ("national geographic", "National Geographic"),
    ("bradt", "Bradt"),
)


class EnrichmentStatus(str, Enum):
    ENRICHED = "enriched"
    FALLBACK = "fallback"


@dataclass
class EnrichmentResult:
    """Enriched book plus where its data came from."""

    book: Book
    status: EnrichmentStatus
    sources: list[str] = field(default_factory=list)
    query: Optional[str] = None


def match_travel_series(*hints: Optional[str]) -> Optional[str]:
    """Canonical travel-guide series name for the first matching hint."""
    for hint in hints:
        if not hint:
            continue
        lowered = hint.lower()
        for pattern, canonical in TRAVEL_SERIES:
            if pattern in lowered:
                return canonical
    return None


def build_search_query(mention: RawMention) -> str:
    """
    Context-aware query for a mention without a usable ISBN.

    Travel guides search as "<Series> <title>"; everything else as
    title + author, title + publisher, or the title alone.
    """
    series = match_travel_series(mention.series, mention.publisher)
    if series:
        if series.lower() in mention.title.lower():
            return mention.title
        return f"{series} {mention.title}"
    if mention.author:
        return f"{mention.title} {mention.author}"
    if mention.publisher:
        return f"{mention.title} {mention.publisher}"
    return mention.title


def resolve_author(
    given: Optional[str],
    catalog_author: Optional[str] = None,
    publisher: Optional[str] = None,
) -> str:
    """Author as persisted: given, else catalog, else publisher, else 'Unknown'."""
    for value in (given, catalog_author, publisher):
        if value and value.strip():
            return value.strip()
    return "Unknown"


class MetadataEnricher:
    """
    Enrichment orchestrator.

    Usage:
        enricher = MetadataEnricher(google_api_key="...")
        book = await enricher.enrich(mention)
        candidates = await enricher.search_candidates("dune herbert")
    """

    def __init__(
        self,
        google_books: Optional[GoogleBooksClient] = None,
        open_library: Optional[OpenLibraryClient] = None,
        bookcover: Optional[BookCoverClient] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 10.0,
        result_limit: int = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize enricher.

        Args:
            google_books: Rich catalog client (built if omitted)
            open_library: Broad catalog client (built if omitted)
            bookcover: Cover lookup client (built if omitted)
            google_api_key: Google Books API key for the default client
            timeout: Per-call timeout in seconds for default clients
            result_limit: Default number of search candidates returned
            transport: httpx transport shared by default clients (tests)
        """
        self.google_books = google_books or GoogleBooksClient(
            api_key=google_api_key, timeout=timeout, transport=transport
        )
        self.open_library = open_library or OpenLibraryClient(
            timeout=timeout, transport=transport
        )
        self.bookcover = bookcover or BookCoverClient(timeout=timeout, transport=transport)
        self.result_limit = result_limit
        self.search = CatalogSearch(
            [self.google_books, self.open_library],
            ranker=CandidateRanker(default_top_k=result_limit),
        )

    async def _safe(self, label: str, call: Awaitable[Any]) -> Any:
        """Await a catalog call; failures are logged and become None."""
        try:
            return await call
        except (CatalogUnavailable, httpx.HTTPError) as e:
            logger.warning(f"{label} failed: {e}")
            return None

    async def enrich(self, mention: RawMention) -> Book:
        """Enrich a mention; always returns a Book."""
        result = await self.enrich_mention(mention)
        return result.book

    async def enrich_manual(self, title: str, author: Optional[str] = None) -> Book:
        """Enrich a manually entered title/author pair."""
        mention = RawMention(title=" ".join(title.split()), author=(author or "").strip() or None)
        return await self.enrich(mention)

    async def search_candidates(self, query: str, limit: Optional[int] = None) -> list[CandidateResult]:
        """Ranked, deduplicated catalog candidates for a free-text query."""
        ranking = await self.search.search(query, top_k=limit or self.result_limit)
        return ranking.results

    async def enrich_mention(self, mention: RawMention) -> EnrichmentResult:
        """
        Run the full enrichment pipeline for one mention.

        1. ISBN lookup (Google Books, then Open Library)
        2. Catalog search when there was no ISBN hit, or the hit lacks a
           cover or publisher
        3. Secondary metadata from Google Books
        4. Cover resolution: bookcover service, Google Books image links,
           Open Library cover by id, including an Open Library hit that
           lost deduplication to a coverless Google Books record
        """
        title = mention.title
        author = mention.author
        sources: list[str] = []
        details: Optional[VolumeDetails] = None
        primary: Optional[CandidateResult] = None
        catalog_author: Optional[str] = None
        broad_cover: Optional[str] = None
        query: Optional[str] = None

        # Extracted publisher and ISBN are kept over catalog values.
        book = Book(title=title, author="Unknown")
        book.fill_missing(publisher=mention.publisher, isbn=mention.isbn)

        isbn_hit = False
        if mention.isbn:
            details = await self._safe(
                f"Google Books ISBN lookup {mention.isbn}",
                self.google_books.lookup_isbn(mention.isbn),
            )
            if details and not is_placeholder(details.title, details.author):
                isbn_hit = True
                sources.append("catalog_a:isbn")
                title = details.title
                author = details.author or author
                self._merge_volume(book, details)
            else:
                details = None
                hit = await self._safe(
                    f"Open Library ISBN lookup {mention.isbn}",
                    self.open_library.lookup_isbn(mention.isbn),
                )
                if hit and not is_placeholder(hit.title, hit.author):
                    isbn_hit = True
                    sources.append("catalog_b:isbn")
                    title = hit.title
                    author = hit.author or author
                    primary = hit
                    self._merge_candidate(book, hit)

        if not isbn_hit or not book.publisher or not self._has_cover_source(details, primary):
            if isbn_hit:
                query = f"{title} {author}" if author else title
            else:
                query = build_search_query(mention)

            ranking = await self.search.search(query)
            best = ranking.best_match
            if best:
                sources.append(f"{best.source.value}:search")
                if primary is None:
                    primary = best
                catalog_author = best.author or None
                broad_cover = ranking.broad_cover_for(best)
                self._merge_candidate(book, best)

        book.title = title
        book.author = resolve_author(author, catalog_author, mention.publisher)

        if details is None:
            details = await self._safe(
                f"Google Books details for '{title}'",
                self.google_books.fetch_volume_details(title, author, book.isbn),
            )
            if details:
                sources.append("catalog_a:details")
        if details:
            self._merge_secondary(book, details)

        cover = await self._resolve_cover(book, details, primary, broad_cover)
        if cover:
            book.fill_missing(cover_url=cover)

        status = EnrichmentStatus.ENRICHED if sources else EnrichmentStatus.FALLBACK
        if status == EnrichmentStatus.FALLBACK:
            logger.info(f"No catalog data for '{title}', keeping extracted fields")
        else:
            logger.info(f"Enriched '{book.title}' by {book.author} from {', '.join(sources)}")

        return EnrichmentResult(book=book, status=status, sources=sources, query=query)

    def _has_cover_source(
        self,
        details: Optional[VolumeDetails],
        primary: Optional[CandidateResult],
    ) -> bool:
        if details and details.best_image():
            return True
        return bool(primary and primary.cover_url)

    def _merge_candidate(self, book: Book, candidate: CandidateResult):
        """Fill primary fields from a search candidate; cover is resolved later."""
        book.fill_missing(
            isbn=candidate.isbn,
            publication_year=candidate.publication_year,
            publisher=candidate.publisher,
            description=candidate.description,
            genre=candidate.genre,
        )

    def _merge_volume(self, book: Book, details: VolumeDetails):
        """Fill primary fields from a Google Books volume."""
        book.fill_missing(
            isbn=details.isbn,
            publication_year=details.publication_year,
            publisher=details.publisher,
            description=details.description,
            genre=details.categories[0] if details.categories else None,
        )

    def _merge_secondary(self, book: Book, details: VolumeDetails):
        """Layer secondary metadata in without overwriting anything."""
        filled = book.fill_missing(
            average_rating=details.average_rating,
            ratings_count=details.ratings_count,
            page_count=details.page_count,
            language=details.language,
            categories=list(details.categories),
            maturity_rating=details.maturity_rating,
            description=details.description,
            genre=details.categories[0] if details.categories else None,
            publication_year=details.publication_year,
            publisher=details.publisher,
        )
        if filled:
            logger.debug(f"Secondary metadata for '{book.title}': {', '.join(filled)}")

    async def _resolve_cover(
        self,
        book: Book,
        details: Optional[VolumeDetails],
        primary: Optional[CandidateResult],
        broad_cover: Optional[str] = None,
    ) -> Optional[str]:
        """First non-empty cover in preference order."""
        cover = await self._safe(
            f"Cover lookup for '{book.title}'",
            self.bookcover.find_cover(book.title, book.author if book.author != "Unknown" else None),
        )
        if cover:
            return cover

        if details:
            cover = details.best_image()
            if cover:
                return cover

        # Google Books image links, or the Open Library cover-by-id URL
        if primary and primary.cover_url:
            return primary.cover_url

        return broad_cover

    async def close(self):
        """Close all catalog clients."""
        await self.google_books.close()
        await self.open_library.close()
        await self.bookcover.close()
