"""
Identification Service

Runs book identification from a shelf photo: vision extraction, then
sequential enrichment of every mention.
"""

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from bookdrop.exceptions import BookDropException, ExtractionParseError
from bookdrop.identification.book import Book
from bookdrop.identification.extraction import RawMention, VisionExtractor, validate_image
from bookdrop.identification.metadata_enricher import EnrichmentStatus, MetadataEnricher


@dataclass
class IdentificationReport:
    """Books identified from one image."""

    books: list[Book] = field(default_factory=list)
    mentions: list[RawMention] = field(default_factory=list)
    fallback_titles: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_detected(self) -> int:
        return len(self.mentions)


class IdentificationService:
    """Service for identifying books in images."""

    def __init__(
        self,
        extractor: VisionExtractor,
        enricher: MetadataEnricher,
        max_image_bytes: Optional[int] = None,
    ):
        """
        Initialize service.

        Args:
            extractor: Vision model adapter
            enricher: Enrichment orchestrator
            max_image_bytes: Upload size limit enforced before extraction
        """
        self.extractor = extractor
        self.enricher = enricher
        self.max_image_bytes = max_image_bytes

    async def extract_mentions(self, image_bytes: bytes, mime_type: str) -> list[RawMention]:
        """
        Validate the image and extract mentions.

        Raises:
            ValidationError: Bad upload.
            ExtractionParseError: No books could be read from the image.
        """
        validate_image(image_bytes, mime_type, self.max_image_bytes)
        mentions = await self.extractor.extract(image_bytes, mime_type)
        if not mentions:
            raise ExtractionParseError("The vision model did not report any readable books")
        return mentions

    async def identify_image(self, image_bytes: bytes, mime_type: str) -> IdentificationReport:
        """Extract and enrich all books in an image, one mention at a time."""
        mentions = await self.extract_mentions(image_bytes, mime_type)
        report = IdentificationReport(mentions=mentions)

        for mention in mentions:
            try:
                result = await self.enricher.enrich_mention(mention)
            except BookDropException as e:
                logger.warning(f"Skipping '{mention.title}': {e.message}")
                report.skipped.append(mention.title)
                continue
            except Exception as e:
                logger.exception(f"Enrichment crashed for '{mention.title}': {e}")
                report.skipped.append(mention.title)
                continue

            report.books.append(result.book)
            if result.status == EnrichmentStatus.FALLBACK:
                report.fallback_titles.append(mention.title)

        logger.info(
            f"Identified {len(report.books)}/{report.total_detected} books "
            f"({len(report.fallback_titles)} without catalog data)"
        )
        return report
