"""
Unit tests for image identification batches.
"""

import pytest

from bookdrop.exceptions import CatalogUnavailable
from bookdrop.identification.book import Book
from bookdrop.identification.metadata_enricher import EnrichmentResult, EnrichmentStatus
from bookdrop.identification.service import IdentificationService

pytestmark = pytest.mark.asyncio


class FlakyEnricher:
    """Fails for chosen titles, enriches everything else."""

    def __init__(self, failures: dict):
        self.failures = failures

    async def enrich_mention(self, mention):
        error = self.failures.get(mention.title)
        if error:
            raise error
        book = Book(title=mention.title, author=mention.author or "Unknown", publisher="Catalog Press")
        return EnrichmentResult(book=book, status=EnrichmentStatus.ENRICHED, sources=["catalog_a:search"])


class TestIdentifyImage:

    async def test_unexpected_error_skips_only_that_mention(self, fake_extractor, shelf_image_bytes):
        service = IdentificationService(
            extractor=fake_extractor,
            enricher=FlakyEnricher({"Neuromancer": AttributeError("'str' object has no attribute 'get'")}),
        )

        report = await service.identify_image(shelf_image_bytes, "image/jpeg")

        assert [book.title for book in report.books] == ["Dune", "Paris"]
        assert report.skipped == ["Neuromancer"]
        assert report.total_detected == 3

    async def test_catalog_error_skips_only_that_mention(self, fake_extractor, shelf_image_bytes):
        service = IdentificationService(
            extractor=fake_extractor,
            enricher=FlakyEnricher({"Dune": CatalogUnavailable("google_books", "HTTP 500")}),
        )

        report = await service.identify_image(shelf_image_bytes, "image/jpeg")

        assert [book.title for book in report.books] == ["Neuromancer", "Paris"]
        assert report.skipped == ["Dune"]
