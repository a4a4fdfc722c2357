"""
Mini-library change detection.

Compares the books detected in a fresh photo of a shelf with the books
currently on the list and proposes additions and removals. Nothing is
applied here; callers confirm changes before they reach the store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from bookdrop.identification.book import Book
from bookdrop.identification.candidate_ranker import TextNormalizer


class ChangeAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass
class ChangeDetectorConfig:
    """Similarity scores and decision thresholds."""

    full_match_score: float = 0.95
    partial_match_score: float = 0.7
    word_overlap_weight: float = 0.8
    word_overlap_min_ratio: float = 0.5
    min_word_length: int = 3
    match_threshold: float = 0.6
    add_confidence: float = 0.8
    # Lower because a book may only be hidden from the camera
    remove_confidence: float = 0.6


@dataclass
class BookChange:
    book: Book
    action: ChangeAction
    confidence: float

    def to_dict(self) -> dict:
        return {
            "book": self.book.to_dict(),
            "action": self.action.value,
            "confidence": self.confidence,
        }


def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a == b or a in b or b in a


class ChangeDetector:
    """
    Propose add/remove deltas between a detected and a current book set.

    Usage:
        detector = ChangeDetector()
        changes = detector.detect_changes(detected_books, current_books)
    """

    def __init__(self, config: Optional[ChangeDetectorConfig] = None):
        self.config = config or ChangeDetectorConfig()

    def similarity(self, a: Book, b: Book) -> float:
        """
        Similarity between two books in [0, 1].

        Title and author both matching (equal or one containing the other)
        scores highest, one of them matching scores lower, otherwise the
        share of common significant title words is used.
        """
        cfg = self.config
        title_a = TextNormalizer.normalize_title(a.title)
        title_b = TextNormalizer.normalize_title(b.title)
        author_a = TextNormalizer.normalize_author(a.author)
        author_b = TextNormalizer.normalize_author(b.author)

        title_match = _contains_either(title_a, title_b)
        author_match = _contains_either(author_a, author_b)

        if title_match and author_match:
            return cfg.full_match_score
        if title_match or author_match:
            return cfg.partial_match_score

        words_a = [w for w in title_a.split() if len(w) >= cfg.min_word_length]
        words_b = [w for w in title_b.split() if len(w) >= cfg.min_word_length]
        longest = max(len(words_a), len(words_b))
        if longest == 0:
            return 0.0

        shared = sum(1 for w in words_a if w in words_b)
        ratio = shared / longest
        if ratio > cfg.word_overlap_min_ratio:
            return ratio * cfg.word_overlap_weight
        return 0.0

    def _best_similarity(self, book: Book, others: list[Book]) -> float:
        return max((self.similarity(book, other) for other in others), default=0.0)

    def detect_changes(self, detected: list[Book], current: list[Book]) -> list[BookChange]:
        """
        Additions first (detected books with no good match on the list),
        then removals (listed books with no good match in the photo).
        """
        cfg = self.config
        changes: list[BookChange] = []

        for book in detected:
            if self._best_similarity(book, current) < cfg.match_threshold:
                changes.append(BookChange(book, ChangeAction.ADD, cfg.add_confidence))

        for book in current:
            if self._best_similarity(book, detected) < cfg.match_threshold:
                changes.append(BookChange(book, ChangeAction.REMOVE, cfg.remove_confidence))

        logger.info(
            f"Detected {len(changes)} potential changes "
            f"({len(detected)} detected, {len(current)} on list)"
        )
        return changes
