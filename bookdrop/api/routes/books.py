"""
Book API Routes

Manual catalog search, manual entry enrichment, and stored book lookup.
"""

from fastapi import APIRouter, Depends
from loguru import logger

from bookdrop.api.dependencies import get_list_service, get_metadata_enricher
from bookdrop.api.schemas import (
    BookResponse,
    BookSearchRequest,
    BookSearchResponse,
    CandidateResponse,
    EnrichRequest,
    ErrorResponse,
)
from bookdrop.identification.metadata_enricher import MetadataEnricher
from bookdrop.lists.service import ListService


router = APIRouter(prefix="/books", tags=["books"])


@router.post("/search", response_model=BookSearchResponse)
async def search_books(
    request: BookSearchRequest,
    enricher: MetadataEnricher = Depends(get_metadata_enricher),
):
    """
    Search every catalog with every query strategy and return ranked,
    de-duplicated candidates. A failing catalog only shrinks the result.
    """
    candidates = await enricher.search_candidates(request.query, limit=request.limit)
    logger.info(f"Search '{request.query}' returned {len(candidates)} candidates")

    return BookSearchResponse(
        query=request.query,
        results=[CandidateResponse.from_candidate(c) for c in candidates],
        total=len(candidates),
    )


@router.post("/enrich", response_model=BookResponse)
async def enrich_book(
    request: EnrichRequest,
    enricher: MetadataEnricher = Depends(get_metadata_enricher),
):
    """Enrich a manually entered title and author."""
    book = await enricher.enrich_manual(request.title, request.author)
    return BookResponse.from_book(book)


@router.get(
    "/{book_id}",
    response_model=BookResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_book(
    book_id: str,
    list_service: ListService = Depends(get_list_service),
):
    """Get a stored book by ID."""
    return BookResponse.from_book(list_service.get_book(book_id))
