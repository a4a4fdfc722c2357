"""
Image Extraction Adapter

Sends a shelf photo to a Gemini vision model and turns the reply into
raw book mentions. The model is a black box: this module owns the prompt,
the response parsing and the acceptance rules, nothing else.
"""

import io
import json
import os
import re
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger
from PIL import Image, UnidentifiedImageError

from bookdrop.exceptions import ConfigurationError, ExtractionParseError, ValidationError
from bookdrop.identification.isbn import clean_isbn


SUPPORTED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp", "image/heic"}

POSITION_HINTS = {"left", "center", "right"}

EXTRACTION_PROMPT = """
You are reading the books visible in a photo of a shelf, a stack or a
little free library box.

1. Scan the image left to right, then top to bottom, and count every
   separate book (spines, covers, rotated or partially hidden books).
   If the two scans disagree by more than one or two books, scan again.
2. For each book position, read ONLY that book:
   - title: usually the largest text
   - author: smaller text, drop any leading "by"
   - publisher: often at the foot of the spine or a cover corner
   - series: e.g. "Lonely Planet", "Rick Steves", "DK Eyewitness"
   - isbn: 10 or 13 digits, usually near a barcode
3. Never combine text from two different books. If unsure about a
   field, leave it out instead of guessing.

Return ONLY a JSON array, one object per physical book, with the fields
title (required), author, publisher, series, isbn (digits only),
type ("spine_text" or "isbn_code"), position ("left", "center" or
"right") and confidence (0.1 to 1.0).

Example:
[
  {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "type": "spine_text", "position": "left", "confidence": 0.9},
  {"title": "Rome", "publisher": "Lonely Planet", "series": "Lonely Planet", "type": "spine_text", "position": "center", "confidence": 0.8}
]
"""

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class RawMention:
    """A single physical book read from an image, before enrichment."""

    title: str
    author: Optional[str] = None
    publisher: Optional[str] = None
    series: Optional[str] = None
    isbn: Optional[str] = None
    confidence: Optional[float] = None
    position: Optional[str] = None
    kind: Optional[str] = None

    @property
    def is_reliable(self) -> bool:
        """A title alone is not enough to identify a book."""
        return bool(self.title) and bool(self.author or self.publisher or self.isbn)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _clean_confidence(value: Any) -> Optional[float]:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(1.0, confidence))


def mention_from_dict(item: dict) -> Optional[RawMention]:
    """
    Build a RawMention from one parsed JSON object.

    Invalid ISBNs are dropped rather than rejecting the mention; the
    mention survives if it still has an author or publisher.
    """
    title = _clean_text(item.get("title"))
    if not title:
        return None

    author = _clean_text(item.get("author"))
    if author and author.lower().startswith("by "):
        author = author[3:].strip() or None

    raw_isbn = _clean_text(item.get("isbn"))
    isbn = clean_isbn(raw_isbn)
    if raw_isbn and not isbn:
        logger.debug(f"Dropping invalid ISBN '{raw_isbn}' for '{title}'")

    position = _clean_text(item.get("position"))
    if position:
        position = position.lower()
        if position not in POSITION_HINTS:
            position = None

    mention = RawMention(
        title=title,
        author=author,
        publisher=_clean_text(item.get("publisher")),
        series=_clean_text(item.get("series")),
        isbn=isbn,
        confidence=_clean_confidence(item.get("confidence")),
        position=position,
        kind=_clean_text(item.get("type")),
    )

    if not mention.is_reliable:
        logger.debug(f"Rejecting title-only mention '{title}'")
        return None
    return mention


def parse_extraction_response(text: str) -> list[RawMention]:
    """
    Parse the model's reply into accepted mentions.

    Raises:
        ExtractionParseError: No JSON array could be read from the reply.
    """
    if not text:
        raise ExtractionParseError("Empty response from vision model")

    match = _JSON_ARRAY.search(text)
    if not match:
        raise ExtractionParseError("No JSON array found in vision response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f"Malformed JSON in vision response: {e}") from e

    if not isinstance(data, list):
        raise ExtractionParseError("Vision response is not a list")

    mentions = []
    for item in data:
        if not isinstance(item, dict):
            continue
        mention = mention_from_dict(item)
        if mention:
            mentions.append(mention)

    return mentions


def validate_image(image_bytes: bytes, mime_type: str, max_size_bytes: Optional[int] = None) -> None:
    """
    Check that the upload is an image we can send to the model.

    Raises:
        ValidationError: Unsupported type, too large, or undecodable.
    """
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ValidationError(
            f"Unsupported image format: {mime_type}",
            detail=f"Supported: {', '.join(sorted(SUPPORTED_MIME_TYPES))}",
        )

    if not image_bytes:
        raise ValidationError("No image file provided")

    if max_size_bytes and len(image_bytes) > max_size_bytes:
        raise ValidationError(
            "Image too large",
            detail=f"Image exceeds maximum size of {max_size_bytes // (1024 * 1024)}MB",
        )

    # HEIC needs a plugin Pillow does not ship with; trust the declared type.
    if mime_type == "image/heic":
        return

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("Could not decode image", detail=str(e)) from e


class VisionExtractor:
    """
    Gemini-backed book extractor.

    Usage:
        extractor = VisionExtractor(api_key="...")
        mentions = await extractor.extract(image_bytes, "image/jpeg")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.0-flash",
        model_client: Any = None,
    ):
        """
        Initialize extractor.

        Args:
            api_key: Gemini API key. Falls back to GEMINI_API_KEY / GOOGLE_API_KEY.
            model: Gemini model name
            model_client: Pre-built model exposing ``generate_content_async``
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model = model
        self._model = model_client

    @property
    def is_configured(self) -> bool:
        return self._model is not None or bool(self.api_key)

    def _get_model(self):
        """Lazy initialization of the Gemini model."""
        if self._model is None:
            if not self.api_key:
                raise ConfigurationError("Vision", "GEMINI_API_KEY is not configured")
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model)
        return self._model

    async def extract(self, image_bytes: bytes, mime_type: str) -> list[RawMention]:
        """
        Extract book mentions from an image.

        Raises:
            ConfigurationError: The vision model is not configured.
            ExtractionParseError: The reply could not be parsed.
        """
        model = self._get_model()

        try:
            response = await model.generate_content_async(
                [
                    EXTRACTION_PROMPT,
                    {"mime_type": mime_type, "data": image_bytes},
                ],
                generation_config={"temperature": 0.1},
            )
            text = response.text
        except ValueError as e:
            # Blocked or empty candidates surface as ValueError on .text
            raise ExtractionParseError(f"Vision model returned no text: {e}") from e

        mentions = parse_extraction_response(text)
        logger.info(f"Vision model extracted {len(mentions)} book mentions")
        return mentions
