"""
Candidate Ranker for BookDrop

Merges catalog results gathered across catalogs and query strategies into
one deduplicated, ranked list.

Design Decisions:
1. Identity key: normalized title + lowercased author
2. Preference score: prefer the rich catalog, complete records, and the
   least-mangled query
3. Stable ordering: ties keep their input order
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from bookdrop.identification.catalogs import RICH_CATALOG, CandidateResult, CatalogSource


class TextNormalizer:
    """Normalize text for comparison."""

    ARTICLES = {"the", "a", "an", "el", "la", "le", "der", "die", "das", "de"}

    @classmethod
    def normalize_title(cls, title: str, strip_articles: bool = False) -> str:
        """
        Normalize book title for comparison.

        Lowercases, removes punctuation and collapses whitespace.

        Args:
            title: Original title
            strip_articles: Also drop one leading article
        """
        if not title:
            return ""

        text = title.lower().strip()

        # Remove punctuation (keep alphanumeric and spaces)
        text = re.sub(r"[^\w\s]", "", text)

        words = text.split()
        if strip_articles and len(words) > 1 and words[0] in cls.ARTICLES:
            words = words[1:]

        return " ".join(words)

    @classmethod
    def normalize_author(cls, author: Optional[str]) -> str:
        """Lowercase and trim an author name."""
        if not author:
            return ""
        return " ".join(author.lower().split())


def dedup_key(title: str, author: Optional[str]) -> str:
    """Identity key used to collapse duplicates across catalogs."""
    return f"{TextNormalizer.normalize_title(title)}_{(author or '').lower()}"


@dataclass
class ScoringComponents:
    """Breakdown of the preference score for transparency."""

    strategy_weight: float = 0.0
    source_bonus: float = 0.0
    description_bonus: float = 0.0
    cover_bonus: float = 0.0
    year_bonus: float = 0.0
    isbn_bonus: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.strategy_weight
            + self.source_bonus
            + self.description_bonus
            + self.cover_bonus
            + self.year_bonus
            + self.isbn_bonus
        )

    def to_dict(self) -> dict:
        return {
            "strategy_weight": self.strategy_weight,
            "source_bonus": self.source_bonus,
            "description_bonus": self.description_bonus,
            "cover_bonus": self.cover_bonus,
            "year_bonus": self.year_bonus,
            "isbn_bonus": self.isbn_bonus,
            "total": self.total,
        }


@dataclass
class RankedCandidate:
    """Candidate with its preference score and final rank."""

    candidate: CandidateResult
    score: float
    scoring_components: ScoringComponents
    original_index: int
    final_rank: int = 0
    duplicates_merged: int = 0


@dataclass
class RankingResult:
    """Result of ranking operation."""

    candidates: list[RankedCandidate]
    total_considered: int = 0
    duplicates_removed: int = 0
    pool: list[CandidateResult] = field(default_factory=list)

    @property
    def best_match(self) -> Optional[CandidateResult]:
        if self.candidates:
            return self.candidates[0].candidate
        return None

    @property
    def results(self) -> list[CandidateResult]:
        return [ranked.candidate for ranked in self.candidates]

    def broad_cover_for(self, candidate: CandidateResult) -> Optional[str]:
        """
        Open Library cover for the same book, including hits collapsed
        into a Google Books result during deduplication.
        """
        key = dedup_key(candidate.title, candidate.author)
        for hit in self.pool:
            if (
                hit.source == CatalogSource.CATALOG_B
                and hit.cover_url
                and dedup_key(hit.title, hit.author) == key
            ):
                return hit.cover_url
        return None


class CandidateRanker:
    """
    Deduplicate and rank catalog results.

    Usage:
        ranker = CandidateRanker()
        result = ranker.rank(candidates, top_k=8)
        best = result.best_match
    """

    SOURCE_BONUS = 2.0
    DESCRIPTION_BONUS = 1.0
    COVER_BONUS = 1.0
    YEAR_BONUS = 0.5
    ISBN_BONUS = 0.5

    def __init__(self, rich_catalog=RICH_CATALOG, default_top_k: int = 8):
        self.rich_catalog = rich_catalog
        self.default_top_k = default_top_k

    def score(self, candidate: CandidateResult) -> ScoringComponents:
        """Preference score for a single candidate."""
        return ScoringComponents(
            strategy_weight=float(candidate.search_strategy.weight),
            source_bonus=self.SOURCE_BONUS if candidate.source == self.rich_catalog else 0.0,
            description_bonus=self.DESCRIPTION_BONUS if candidate.description else 0.0,
            cover_bonus=self.COVER_BONUS if candidate.cover_url else 0.0,
            year_bonus=self.YEAR_BONUS if candidate.publication_year else 0.0,
            isbn_bonus=self.ISBN_BONUS if candidate.isbn else 0.0,
        )

    def rank(
        self,
        candidates: list[CandidateResult],
        top_k: Optional[int] = None,
    ) -> RankingResult:
        """
        Collapse duplicates and sort by preference score.

        For each identity key the highest-scoring candidate survives; on
        equal scores the earlier one wins. The output is sorted by score,
        descending, with ties in input order.

        Args:
            candidates: Results from all catalogs and strategies
            top_k: Limit results (None = default_top_k, 0 = all)
        """
        best_by_key: dict[str, RankedCandidate] = {}

        for index, candidate in enumerate(candidates):
            components = self.score(candidate)
            ranked = RankedCandidate(
                candidate=candidate,
                score=components.total,
                scoring_components=components,
                original_index=index,
            )
            key = dedup_key(candidate.title, candidate.author)
            current = best_by_key.get(key)

            if current is None:
                best_by_key[key] = ranked
            elif ranked.score > current.score:
                ranked.duplicates_merged = current.duplicates_merged + 1
                ranked.original_index = current.original_index
                best_by_key[key] = ranked
            else:
                current.duplicates_merged += 1

        # The group's first appearance fixes its tie-break position.
        survivors = sorted(best_by_key.values(), key=lambda r: r.original_index)
        survivors.sort(key=lambda r: r.score, reverse=True)

        for rank, ranked in enumerate(survivors):
            ranked.final_rank = rank
            ranked.candidate.relevance_score = ranked.score

        limit = self.default_top_k if top_k is None else top_k
        if limit:
            survivors = survivors[:limit]

        removed = len(candidates) - len(best_by_key)
        if removed:
            logger.debug(f"Ranking collapsed {removed} duplicate catalog results")

        return RankingResult(
            candidates=survivors,
            total_considered=len(candidates),
            duplicates_removed=removed,
            pool=list(candidates),
        )

    def explain_ranking(self, result: RankingResult) -> str:
        """Human-readable ranking explanation."""
        lines = [
            f"Candidates considered: {result.total_considered}",
            f"Duplicates removed: {result.duplicates_removed}",
            "",
        ]

        for ranked in result.candidates:
            c = ranked.candidate
            lines.append(f"Rank {ranked.final_rank}: {c.title} by {c.author}")
            lines.append(
                f"  Score: {ranked.score:.1f} "
                f"({c.source.value}, {c.search_strategy.value})"
            )

        return "\n".join(lines)
