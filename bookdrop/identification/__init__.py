"""
Book Identification Module

Reads books out of photos and resolves them against public catalogs.
"""

from bookdrop.identification.book import Book
from bookdrop.identification.extraction import (
    RawMention,
    VisionExtractor,
    parse_extraction_response,
)
from bookdrop.identification.catalogs import (
    BookCoverClient,
    CandidateResult,
    CatalogSource,
    GoogleBooksClient,
    OpenLibraryClient,
    SearchStrategy,
)
from bookdrop.identification.candidate_ranker import (
    CandidateRanker,
    RankedCandidate,
    RankingResult,
)
from bookdrop.identification.search import CatalogSearch
from bookdrop.identification.metadata_enricher import (
    EnrichmentResult,
    EnrichmentStatus,
    MetadataEnricher,
)
from bookdrop.identification.change_detector import (
    BookChange,
    ChangeAction,
    ChangeDetector,
)
from bookdrop.identification.service import (
    IdentificationReport,
    IdentificationService,
)

__all__ = [
    "Book",
    # Extraction
    "RawMention",
    "VisionExtractor",
    "parse_extraction_response",
    # Catalogs
    "BookCoverClient",
    "CandidateResult",
    "CatalogSource",
    "GoogleBooksClient",
    "OpenLibraryClient",
    "SearchStrategy",
    # Ranking
    "CandidateRanker",
    "RankedCandidate",
    "RankingResult",
    "CatalogSearch",
    # Enrichment
    "EnrichmentResult",
    "EnrichmentStatus",
    "MetadataEnricher",
    # Mini-library
    "BookChange",
    "ChangeAction",
    "ChangeDetector",
    # Service
    "IdentificationReport",
    "IdentificationService",
]
