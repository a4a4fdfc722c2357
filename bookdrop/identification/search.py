"""
Multi-catalog search.

Fans a single query out over every catalog and every query strategy,
then deduplicates and ranks the combined hits.
"""

import asyncio
from typing import Optional, Protocol

from loguru import logger

from bookdrop.identification.candidate_ranker import CandidateRanker, RankingResult
from bookdrop.identification.catalogs import (
    CandidateResult,
    SearchStrategy,
    is_placeholder,
    rewrite_query,
)


class SearchableCatalog(Protocol):
    name: str

    async def search(
        self,
        query: str,
        strategy: SearchStrategy = SearchStrategy.ORIGINAL,
        limit: int = 10,
    ) -> list[CandidateResult]:
        ...


class CatalogSearch:
    """
    Concurrent search across catalogs and strategies.

    A failed call (timeout, bad status, malformed payload) costs only its
    own results; the search as a whole never fails on network errors.

    Usage:
        search = CatalogSearch([google_books, open_library])
        result = await search.search("the hobbit tolkien")
        best = result.best_match
    """

    def __init__(
        self,
        catalogs: list[SearchableCatalog],
        ranker: Optional[CandidateRanker] = None,
        strategies: tuple[SearchStrategy, ...] = tuple(SearchStrategy),
        per_call_limit: int = 10,
    ):
        self.catalogs = catalogs
        self.ranker = ranker or CandidateRanker()
        self.strategies = strategies
        self.per_call_limit = per_call_limit

    async def gather_candidates(self, query: str) -> list[CandidateResult]:
        """Run every (catalog, strategy) pair concurrently and pool the hits."""
        query = query.strip()
        if not query:
            return []

        calls = []
        labels = []
        for catalog in self.catalogs:
            for strategy in self.strategies:
                calls.append(
                    catalog.search(
                        rewrite_query(query, strategy),
                        strategy=strategy,
                        limit=self.per_call_limit,
                    )
                )
                labels.append(f"{catalog.name}/{strategy.value}")

        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        candidates: list[CandidateResult] = []
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Catalog search {label} failed for '{query}': {outcome}")
                continue
            candidates.extend(
                c for c in outcome if not is_placeholder(c.title, c.author)
            )

        logger.debug(f"Pooled {len(candidates)} catalog results for '{query}'")
        return candidates

    async def search(self, query: str, top_k: Optional[int] = None) -> RankingResult:
        """Search all catalogs and return the ranked, deduplicated top-K."""
        candidates = await self.gather_candidates(query)
        return self.ranker.rank(candidates, top_k=top_k)

    async def close(self):
        for catalog in self.catalogs:
            close = getattr(catalog, "close", None)
            if close:
                await close()
