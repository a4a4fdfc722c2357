"""
List Service

Reconciles enriched books with the store and maintains list membership.

Rules:
- Every mutation is authorized first: the owner, or any authenticated
  user when the list is a mini-library. Renaming, changing purpose,
  moving and deleting stay owner-only.
- Book identity is (title, author); existing records are reused.
- Positions are rewritten 0..n-1 whenever the book set changes.
- Books no list references any more are deleted.
"""

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from bookdrop.exceptions import (
    AuthenticationRequired,
    NotFoundError,
    Unauthorized,
    ValidationError,
)
from bookdrop.identification.book import Book
from bookdrop.identification.change_detector import BookChange, ChangeAction
from bookdrop.lists.location import GeocodingClient, LocationRecord
from bookdrop.lists.purposes import ListPurpose
from bookdrop.storage.book_repository import BookRepository
from bookdrop.storage.list_repository import FavoriteEntry, ListRepository, StoredList


@dataclass
class ReconcileReport:
    """Outcome of a batch operation on a list."""

    books: list[Book] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    removed_book_ids: list[str] = field(default_factory=list)
    book_list: Optional[StoredList] = None

    def to_dict(self) -> dict:
        return {
            "books": [book.to_dict() for book in self.books],
            "skipped": self.skipped,
            "removed_book_ids": self.removed_book_ids,
        }


class ListService:
    """
    Lists and their books.

    Usage:
        service = ListService(book_repo, list_repo)
        report = service.create_list("user-1", books)
        service.replace_books(report.book_list.share_url, books, "user-1")
    """

    def __init__(
        self,
        books: BookRepository,
        lists: ListRepository,
        geocoder: Optional[GeocodingClient] = None,
    ):
        self.books = books
        self.lists = lists
        self.geocoder = geocoder

    # Access

    def get_list(self, share_url: str) -> StoredList:
        stored = self.lists.get_by_share_url(share_url)
        if stored is None:
            raise NotFoundError("List", share_url)
        return stored

    def get_book(self, book_id: str) -> Book:
        book = self.books.get(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    def lists_for_owner(self, owner_id: str) -> list[StoredList]:
        return self.lists.list_for_owner(owner_id)

    @staticmethod
    def is_owner(stored: StoredList, actor_id: Optional[str]) -> bool:
        return bool(actor_id) and stored.owner_id == actor_id

    @classmethod
    def can_edit(cls, stored: StoredList, actor_id: Optional[str]) -> bool:
        if not actor_id:
            return False
        return cls.is_owner(stored, actor_id) or ListPurpose.parse(stored.purpose).community_editable

    def authorize(self, stored: StoredList, actor_id: Optional[str], owner_only: bool = False):
        """
        Raises:
            AuthenticationRequired: No actor.
            Unauthorized: Actor may not perform this change.
        """
        if not actor_id:
            raise AuthenticationRequired()

        allowed = self.is_owner(stored, actor_id) if owner_only else self.can_edit(stored, actor_id)
        if not allowed:
            logger.warning(f"Actor {actor_id} denied on list {stored.share_url}")
            raise Unauthorized(
                "Only the list owner can do this" if owner_only else "You cannot edit this list"
            )

    # Reconciliation

    def reconcile(self, books: list[Book]) -> ReconcileReport:
        """Map books onto stored records, skipping any that cannot be resolved."""
        report = ReconcileReport()

        for book in books:
            book.author = (book.author or "").strip() or "Unknown"
            try:
                stored = self.books.insert_or_get(book)
            except SQLAlchemyError as e:
                logger.error(f"Could not save '{book.title}' by {book.author}: {e}")
                stored = None
            if stored is None:
                report.skipped.append(book.title)
                continue
            report.books.append(stored)

        if report.skipped:
            logger.warning(f"Skipped {len(report.skipped)} books during reconciliation")
        return report

    def _cleanup(self, book_ids: list[str]) -> list[str]:
        return self.books.delete_orphans(book_ids)

    # List lifecycle

    def create_list(
        self,
        owner_id: str,
        books: list[Book],
        name: Optional[str] = None,
        purpose: ListPurpose = ListPurpose.SHARING,
        description: Optional[str] = None,
        location: Optional[LocationRecord] = None,
    ) -> ReconcileReport:
        """
        Create a list holding ``books`` in the given order.

        Raises:
            ValidationError: No books, or a location-bound purpose without location.
        """
        if not owner_id:
            raise AuthenticationRequired()
        if not books:
            raise ValidationError("At least one book is required")

        purpose = ListPurpose.parse(purpose)
        if purpose.requires_location and location is None:
            raise ValidationError(
                "Location required",
                detail=f"Lists for '{purpose.value}' need a location",
            )

        report = self.reconcile(books)
        if not report.books:
            raise ValidationError("None of the books could be saved", detail=", ".join(report.skipped))

        stored = self.lists.create(
            owner_id=owner_id,
            name=(name or "").strip() or "My Book List",
            purpose=purpose.value,
            description=description,
            location=location.as_columns() if location else None,
        )
        self.lists.replace_memberships(stored.id, [book.id for book in report.books])

        report.book_list = self.get_list(stored.share_url)
        return report

    def update_details(
        self,
        share_url: str,
        actor_id: Optional[str],
        name: Optional[str] = None,
        description: Optional[str] = None,
        purpose: Optional[ListPurpose] = None,
    ) -> StoredList:
        """Rename, describe, or change purpose. Name and purpose are owner-only."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id, owner_only=name is not None or purpose is not None)

        fields = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("List name cannot be empty")
            fields["name"] = name
        if description is not None:
            fields["description"] = description.strip() or None
        if purpose is not None:
            purpose = ListPurpose.parse(purpose)
            if purpose.requires_location and not stored.has_location:
                raise ValidationError(
                    "Location required",
                    detail=f"Set a location before changing purpose to '{purpose.value}'",
                )
            fields["purpose"] = purpose.value

        return self.lists.update(stored.id, **fields)

    async def build_location(
        self,
        latitude: float,
        longitude: float,
        location_name: Optional[str] = None,
    ) -> LocationRecord:
        """Fuzzed location with place names when a geocoder is available."""
        geocode = None
        if self.geocoder is not None:
            geocode = await self.geocoder.reverse_geocode(latitude, longitude)
        return LocationRecord.build(latitude, longitude, geocode=geocode, location_name=location_name)

    async def update_location(
        self,
        share_url: str,
        actor_id: Optional[str],
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        location_name: Optional[str] = None,
        remove: bool = False,
    ) -> StoredList:
        """Set or clear a list's location. Owner-only."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id, owner_only=True)

        if remove:
            if ListPurpose.parse(stored.purpose).requires_location:
                raise ValidationError(
                    "Location required",
                    detail=f"Lists for '{stored.purpose}' need a location",
                )
            return self.lists.update_location(stored.id, None)

        if latitude is None or longitude is None:
            raise ValidationError("Invalid location data")

        record = await self.build_location(latitude, longitude, location_name)
        return self.lists.update_location(stored.id, record.as_columns())

    def delete_list(self, share_url: str, actor_id: Optional[str]) -> ReconcileReport:
        """Delete a list and any books only it referenced. Owner-only."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id, owner_only=True)

        book_ids = self.lists.delete(stored.id)
        return ReconcileReport(removed_book_ids=self._cleanup(book_ids))

    # Membership

    def replace_books(self, share_url: str, books: list[Book], actor_id: Optional[str]) -> ReconcileReport:
        """Replace the list's books; positions follow the given order."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id)

        report = self.reconcile(books)
        report.books = list({book.id: book for book in report.books}.values())
        ordered = self.lists.replace_memberships(stored.id, [book.id for book in report.books])

        kept = set(ordered)
        dropped = [book_id for book_id in stored.book_ids if book_id not in kept]
        report.removed_book_ids = self._cleanup(dropped)
        report.book_list = self.get_list(share_url)

        logger.info(f"List {share_url} now holds {len(ordered)} books")
        return report

    def add_books(self, share_url: str, books: list[Book], actor_id: Optional[str]) -> ReconcileReport:
        """Append books after the current ones. Books already listed are skipped."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id)

        if not books:
            raise ValidationError("At least one book is required")

        report = self.reconcile(books)
        added = set(self.lists.append_memberships(stored.id, [book.id for book in report.books]))
        report.books = [book for book in report.books if book.id in added]
        report.book_list = self.get_list(share_url)

        logger.info(f"Added {len(added)} books to list {share_url}")
        return report

    def remove_book(self, share_url: str, book_id: str, actor_id: Optional[str]) -> ReconcileReport:
        """Remove one book and close the gap it leaves."""
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id)

        if book_id not in stored.book_ids:
            raise NotFoundError("Book", book_id)

        remaining = [existing for existing in stored.book_ids if existing != book_id]
        self.lists.replace_memberships(stored.id, remaining)

        report = ReconcileReport(removed_book_ids=self._cleanup([book_id]))
        report.book_list = self.get_list(share_url)
        return report

    def apply_changes(
        self,
        share_url: str,
        changes: list[BookChange],
        actor_id: Optional[str],
    ) -> ReconcileReport:
        """
        Apply confirmed mini-library changes.

        Removals match by book ID, or by (title, author) for books that
        were never stored under the given ID. Additions go to the end.
        """
        stored = self.get_list(share_url)
        self.authorize(stored, actor_id)

        if not ListPurpose.parse(stored.purpose).community_editable:
            raise ValidationError("This feature is only available for mini libraries")

        current = stored.book_ids
        by_identity = {(book.title, book.author): book.id for book in stored.books}

        to_remove = set()
        for change in changes:
            if change.action != ChangeAction.REMOVE:
                continue
            book_id = change.book.id if change.book.id in current else by_identity.get(
                (change.book.title, change.book.author)
            )
            if book_id:
                to_remove.add(book_id)

        additions = [change.book for change in changes if change.action == ChangeAction.ADD]
        report = self.reconcile(additions)

        ordered = [book_id for book_id in current if book_id not in to_remove]
        ordered.extend(book.id for book in report.books)
        self.lists.replace_memberships(stored.id, ordered)

        report.removed_book_ids = self._cleanup(list(to_remove))
        report.book_list = self.get_list(share_url)

        logger.info(
            f"Mini-library {share_url}: +{len(report.books)} / -{len(to_remove)} books"
        )
        return report

    # Favorites

    def favorites(self, actor_id: Optional[str]) -> list[FavoriteEntry]:
        if not actor_id:
            raise AuthenticationRequired()
        return self.lists.favorites_for_user(actor_id)

    def add_favorite(self, share_url: str, actor_id: Optional[str]) -> FavoriteEntry:
        """
        Favorite someone else's list.

        Raises:
            ValidationError: The actor owns the list.
            UniquenessConflict: Already a favorite.
        """
        if not actor_id:
            raise AuthenticationRequired()
        stored = self.get_list(share_url)
        if self.is_owner(stored, actor_id):
            raise ValidationError("Cannot favorite your own list")

        entry = self.lists.add_favorite(actor_id, stored.id)
        logger.info(f"User {actor_id} favorited list {share_url}")
        return entry

    def remove_favorite(self, share_url: str, actor_id: Optional[str]) -> bool:
        if not actor_id:
            raise AuthenticationRequired()
        stored = self.get_list(share_url)
        return self.lists.remove_favorite(actor_id, stored.id)
