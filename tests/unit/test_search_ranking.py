"""
Unit tests for candidate ranking and multi-catalog search.
"""

import pytest

from bookdrop.exceptions import CatalogUnavailable
from bookdrop.identification.candidate_ranker import CandidateRanker, TextNormalizer, dedup_key
from bookdrop.identification.catalogs import CandidateResult, CatalogSource, SearchStrategy
from bookdrop.identification.search import CatalogSearch

pytestmark = pytest.mark.asyncio


def candidate(
    title,
    author="Frank Herbert",
    source=CatalogSource.CATALOG_B,
    strategy=SearchStrategy.ORIGINAL,
    **extra,
) -> CandidateResult:
    return CandidateResult(
        id=f"{source.value}-{strategy.value}-{title}",
        title=title,
        author=author,
        source=source,
        search_strategy=strategy,
        **extra,
    )


class TestTextNormalizer:

    async def test_title_normalization(self):
        assert TextNormalizer.normalize_title("  Dune: Messiah! ") == "dune messiah"
        assert TextNormalizer.normalize_title("The Hobbit", strip_articles=True) == "hobbit"
        assert TextNormalizer.normalize_title("") == ""

    async def test_dedup_key_ignores_case_and_punctuation(self):
        assert dedup_key("DUNE.", "Frank Herbert") == dedup_key("dune", "frank herbert")
        assert dedup_key("Dune", "Frank Herbert") != dedup_key("Dune", "Brian Herbert")


class TestCandidateRanker:
    """Deduplication and preference ordering."""

    @pytest.fixture
    def ranker(self):
        return CandidateRanker()

    async def test_score_components(self, ranker):
        c = candidate(
            "Dune",
            source=CatalogSource.CATALOG_A,
            strategy=SearchStrategy.QUOTED,
            description="Desert planet.",
            cover_url="https://img",
            publication_year=1965,
            isbn="9780441172719",
        )

        components = ranker.score(c)

        assert components.strategy_weight == 2
        assert components.source_bonus == 2
        assert components.total == 2 + 2 + 1 + 1 + 0.5 + 0.5

    async def test_duplicates_keep_highest_score(self, ranker):
        plain = candidate("Dune")
        rich = candidate("dune!", source=CatalogSource.CATALOG_A, description="Desert planet.")

        result = ranker.rank([plain, rich])

        assert result.duplicates_removed == 1
        assert result.results == [rich]
        assert result.candidates[0].duplicates_merged == 1

    async def test_equal_scores_keep_earlier_candidate(self, ranker):
        first = candidate("Dune")
        second = candidate("DUNE")

        result = ranker.rank([first, second])

        assert result.best_match is first

    async def test_ties_keep_input_order(self, ranker):
        books = [candidate(title) for title in ("Dune", "Children of Dune", "Dune Messiah")]

        result = ranker.rank(books)

        assert [c.title for c in result.results] == ["Dune", "Children of Dune", "Dune Messiah"]

    async def test_sorted_by_score_descending(self, ranker):
        low = candidate("Low", strategy=SearchStrategy.NORMALIZED)
        high = candidate("High", source=CatalogSource.CATALOG_A)
        mid = candidate("Mid", cover_url="https://img")

        result = ranker.rank([low, mid, high])

        assert [c.title for c in result.results] == ["High", "Mid", "Low"]
        assert high.relevance_score == 5.0

    async def test_top_k(self, ranker):
        books = [candidate(f"Book {i}") for i in range(12)]

        assert len(ranker.rank(books).results) == 8
        assert len(ranker.rank(books, top_k=3).results) == 3
        assert len(ranker.rank(books, top_k=0).results) == 12

    async def test_explain_ranking(self, ranker):
        result = ranker.rank([candidate("Dune")])

        assert "Rank 0: Dune by Frank Herbert" in ranker.explain_ranking(result)


class FakeCatalog:
    def __init__(self, name, results=None, error=None):
        self.name = name
        self.results = results or {}
        self.error = error
        self.queries = []

    async def search(self, query, strategy=SearchStrategy.ORIGINAL, limit=10):
        self.queries.append((query, strategy))
        if self.error:
            raise self.error
        return [
            CandidateResult(
                id=f"{self.name}-{strategy.value}-{i}",
                title=title,
                author=author,
                source=CatalogSource.CATALOG_A if self.name == "rich" else CatalogSource.CATALOG_B,
                search_strategy=strategy,
            )
            for i, (title, author) in enumerate(self.results.get(strategy, []))
        ]


class TestCatalogSearch:
    """Fan-out over catalogs and strategies."""

    async def test_every_catalog_and_strategy_is_queried(self):
        a = FakeCatalog("rich")
        b = FakeCatalog("broad")
        search = CatalogSearch([a, b])

        await search.search("The Hobbit Tolkien")

        assert {q for q, _ in a.queries} == {
            "The Hobbit Tolkien",
            "hobbit tolkien",
            '"The Hobbit" Tolkien',
        }
        assert len(b.queries) == 3

    async def test_failing_catalog_only_costs_its_results(self):
        good = FakeCatalog("broad", {SearchStrategy.ORIGINAL: [("The Hobbit", "J.R.R. Tolkien")]})
        bad = FakeCatalog("rich", error=CatalogUnavailable("rich", "HTTP 500"))
        search = CatalogSearch([bad, good])

        result = await search.search("the hobbit")

        assert [c.title for c in result.results] == ["The Hobbit"]

    async def test_all_catalogs_failing_returns_empty(self):
        search = CatalogSearch([
            FakeCatalog("rich", error=CatalogUnavailable("rich")),
            FakeCatalog("broad", error=TimeoutError()),
        ])

        result = await search.search("the hobbit")

        assert result.results == []
        assert result.best_match is None

    async def test_placeholders_are_filtered(self):
        catalog = FakeCatalog("broad", {
            SearchStrategy.ORIGINAL: [("Unknown Title", "Anon"), ("Dune", "Unknown Author"), ("Dune", "Frank Herbert")],
        })

        result = await CatalogSearch([catalog]).search("dune")

        assert [(c.title, c.author) for c in result.results] == [("Dune", "Frank Herbert")]

    async def test_same_book_across_strategies_is_collapsed(self):
        hits = [("Dune", "Frank Herbert")]
        catalog = FakeCatalog("broad", {strategy: hits for strategy in SearchStrategy})

        result = await CatalogSearch([catalog]).search("dune")

        assert len(result.results) == 1
        assert result.best_match.search_strategy == SearchStrategy.ORIGINAL
        assert result.duplicates_removed == 2

    async def test_blank_query_short_circuits(self):
        catalog = FakeCatalog("broad")

        result = await CatalogSearch([catalog]).search("   ")

        assert result.results == []
        assert catalog.queries == []
