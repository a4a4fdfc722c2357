"""
Book record shared by the enrichment pipeline, the store and the API.
"""

import uuid
from dataclasses import dataclass, field, fields
from typing import Optional


# Fields a merge may fill in; identity fields are excluded.
MERGEABLE_FIELDS = (
    "cover_url",
    "isbn",
    "publication_year",
    "publisher",
    "genre",
    "description",
    "average_rating",
    "ratings_count",
    "page_count",
    "language",
    "categories",
    "maturity_rating",
)


@dataclass
class Book:
    """
    An enriched book.

    Identity in the store is (title, author); ``id`` is only meaningful
    once the book has been reconciled.
    """

    title: str
    author: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None

    # Secondary metadata
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    maturity_rating: Optional[str] = None

    def fill_missing(self, **values) -> list[str]:
        """
        Set fields that are currently empty; never overwrite.

        Returns the names of the fields that were filled.
        """
        filled = []
        for name, value in values.items():
            if name not in MERGEABLE_FIELDS or value in (None, "", []):
                continue
            if getattr(self, name) in (None, "", []):
                setattr(self, name, value)
                filled.append(name)
        return filled

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "Book":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        values.setdefault("author", "Unknown")
        return cls(**values)
