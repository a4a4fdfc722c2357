"""
List Repository for BookDrop

Lists and their ordered book memberships. Membership positions are
always rewritten as 0..n-1 so a list never has gaps.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from loguru import logger
from sqlalchemy import delete, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from bookdrop.exceptions import UniquenessConflict
from bookdrop.identification.book import Book
from bookdrop.storage.book_repository import book_from_model
from bookdrop.storage.models import (
    BookListModel,
    FavoriteModel,
    ListBookModel,
    create_database_engine,
)


LOCATION_COLUMNS = (
    "exact_latitude",
    "exact_longitude",
    "public_latitude",
    "public_longitude",
    "location_name",
    "city",
    "country",
)

EDITABLE_COLUMNS = ("name", "description", "purpose")


@dataclass
class StoredList:
    """Data class for list data transfer."""

    id: str
    name: str
    share_url: str
    purpose: str
    owner_id: str
    description: Optional[str] = None

    exact_latitude: Optional[float] = None
    exact_longitude: Optional[float] = None
    public_latitude: Optional[float] = None
    public_longitude: Optional[float] = None
    location_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    books: list[Book] = field(default_factory=list)

    @property
    def book_ids(self) -> list[str]:
        return [book.id for book in self.books]

    @property
    def has_location(self) -> bool:
        return self.public_latitude is not None and self.public_longitude is not None

    @classmethod
    def from_model(cls, model: BookListModel, with_books: bool = True) -> "StoredList":
        """Create from SQLAlchemy model."""
        books = []
        if with_books:
            books = [book_from_model(m.book) for m in model.memberships if m.book is not None]

        return cls(
            id=model.id,
            name=model.name,
            share_url=model.share_url,
            purpose=model.purpose,
            owner_id=model.owner_id,
            description=model.description,
            exact_latitude=model.exact_latitude,
            exact_longitude=model.exact_longitude,
            public_latitude=model.public_latitude,
            public_longitude=model.public_longitude,
            location_name=model.location_name,
            city=model.city,
            country=model.country,
            created_at=model.created_at,
            updated_at=model.updated_at,
            books=books,
        )

    def to_dict(self, include_exact_location: bool = False) -> dict:
        """Convert to dictionary. Exact coordinates only on request."""
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "share_url": self.share_url,
            "purpose": self.purpose,
            "owner_id": self.owner_id,
            "public_latitude": self.public_latitude,
            "public_longitude": self.public_longitude,
            "location_name": self.location_name,
            "city": self.city,
            "country": self.country,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "books": [book.to_dict() for book in self.books],
        }
        if include_exact_location:
            data["exact_latitude"] = self.exact_latitude
            data["exact_longitude"] = self.exact_longitude
        return data


@dataclass
class FavoriteEntry:
    """A favorited list and when it was favorited."""

    book_list: StoredList
    favorited_at: Optional[datetime] = None


class ListRepository:
    """
    Repository for lists and list memberships.

    Usage:
        repo = ListRepository(engine=book_repo.engine)
        stored = repo.create(owner_id="user-1", name="Hallway shelf")
        repo.replace_memberships(stored.id, [book.id for book in books])
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        echo: bool = False,
    ):
        self.engine = engine or create_database_engine(database_url or "sqlite:///:memory:", echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def get_session(self) -> Session:
        """Get database session."""
        return self.SessionLocal()

    def create(
        self,
        owner_id: str,
        name: str = "My Book List",
        purpose: str = "sharing",
        description: Optional[str] = None,
        location: Optional[dict[str, Any]] = None,
        share_url: Optional[str] = None,
    ) -> StoredList:
        """
        Create an empty list.

        Args:
            owner_id: Actor that owns the list
            name: Display name
            purpose: ListPurpose value
            description: Optional description
            location: Location column values (see LOCATION_COLUMNS)
            share_url: Public identifier (generated if omitted)
        """
        location = {k: v for k, v in (location or {}).items() if k in LOCATION_COLUMNS}

        with self.get_session() as session:
            model = BookListModel(
                id=str(uuid.uuid4()),
                name=name,
                description=description,
                share_url=share_url or str(uuid.uuid4()),
                purpose=purpose,
                owner_id=owner_id,
                **location,
            )
            session.add(model)
            session.commit()
            session.refresh(model)

            logger.info(f"Created list {model.share_url} ({purpose}) for {owner_id}")
            return StoredList.from_model(model, with_books=False)

    def get_by_share_url(self, share_url: str) -> Optional[StoredList]:
        """Get list with its books in position order."""
        with self.get_session() as session:
            model = session.query(BookListModel).filter(
                BookListModel.share_url == share_url,
            ).first()
            return StoredList.from_model(model) if model else None

    def list_for_owner(self, owner_id: str) -> list[StoredList]:
        """Lists owned by ``owner_id``, newest first."""
        with self.get_session() as session:
            models = session.query(BookListModel).filter(
                BookListModel.owner_id == owner_id,
            ).order_by(BookListModel.created_at.desc()).all()
            return [StoredList.from_model(m) for m in models]

    def book_ids(self, list_id: str) -> list[str]:
        """Book IDs of a list in position order."""
        with self.get_session() as session:
            rows = session.query(ListBookModel.book_id).filter(
                ListBookModel.list_id == list_id,
            ).order_by(ListBookModel.position).all()
            return [row.book_id for row in rows]

    def replace_memberships(self, list_id: str, book_ids: list[str]) -> list[str]:
        """
        Replace a list's books, positioned 0..n-1 in the given order.

        Duplicate IDs keep their first position. Returns the stored order.
        """
        ordered = list(dict.fromkeys(book_ids))

        with self.get_session() as session:
            session.execute(delete(ListBookModel).where(ListBookModel.list_id == list_id))
            for position, book_id in enumerate(ordered):
                session.add(ListBookModel(list_id=list_id, book_id=book_id, position=position))
            self._touch(session, list_id)
            session.commit()

        return ordered

    def append_memberships(self, list_id: str, book_ids: list[str]) -> list[str]:
        """
        Append books after the current last position.

        Books already on the list are skipped. Returns the IDs added.
        """
        with self.get_session() as session:
            existing = {
                row.book_id
                for row in session.query(ListBookModel.book_id).filter(
                    ListBookModel.list_id == list_id,
                )
            }
            last = session.query(func.max(ListBookModel.position)).filter(
                ListBookModel.list_id == list_id,
            ).scalar()
            next_position = 0 if last is None else last + 1

            added = []
            for book_id in dict.fromkeys(book_ids):
                if book_id in existing:
                    continue
                session.add(ListBookModel(list_id=list_id, book_id=book_id, position=next_position))
                next_position += 1
                added.append(book_id)

            if added:
                self._touch(session, list_id)
            session.commit()

        return added

    def update(self, list_id: str, **fields) -> Optional[StoredList]:
        """Update name, description or purpose."""
        with self.get_session() as session:
            model = session.get(BookListModel, list_id)
            if not model:
                return None

            for key, value in fields.items():
                if key in EDITABLE_COLUMNS:
                    setattr(model, key, value)

            model.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(model)
            return StoredList.from_model(model)

    def update_location(self, list_id: str, location: Optional[dict[str, Any]]) -> Optional[StoredList]:
        """Set location columns, or clear them all when ``location`` is None."""
        location = location or {}

        with self.get_session() as session:
            model = session.get(BookListModel, list_id)
            if not model:
                return None

            for column in LOCATION_COLUMNS:
                setattr(model, column, location.get(column))

            model.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(model)
            return StoredList.from_model(model)

    def delete(self, list_id: str) -> list[str]:
        """Delete a list and its memberships. Returns the book IDs it held."""
        with self.get_session() as session:
            model = session.get(BookListModel, list_id)
            if not model:
                return []

            book_ids = [m.book_id for m in model.memberships]
            session.delete(model)
            session.commit()

            logger.info(f"Deleted list {model.share_url} ({len(book_ids)} books)")
            return book_ids

    def _touch(self, session: Session, list_id: str):
        model = session.get(BookListModel, list_id)
        if model:
            model.updated_at = datetime.utcnow()

    # Favorites

    def add_favorite(self, user_id: str, list_id: str) -> FavoriteEntry:
        """
        Favorite a list for ``user_id``.

        Raises:
            UniquenessConflict: The list is already a favorite.
        """
        with self.get_session() as session:
            favorite = FavoriteModel(user_id=user_id, list_id=list_id)
            session.add(favorite)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise UniquenessConflict("favorite", list_id) from e

            session.refresh(favorite)
            return FavoriteEntry(
                book_list=StoredList.from_model(favorite.book_list),
                favorited_at=favorite.created_at,
            )

    def remove_favorite(self, user_id: str, list_id: str) -> bool:
        """Remove a favorite. Returns True if it existed."""
        with self.get_session() as session:
            result = session.execute(
                delete(FavoriteModel).where(
                    FavoriteModel.user_id == user_id,
                    FavoriteModel.list_id == list_id,
                )
            )
            session.commit()
            return result.rowcount > 0

    def favorites_for_user(self, user_id: str) -> list[FavoriteEntry]:
        """Favorited lists, most recently favorited first."""
        with self.get_session() as session:
            favorites = session.query(FavoriteModel).filter(
                FavoriteModel.user_id == user_id,
            ).order_by(FavoriteModel.created_at.desc()).all()
            return [
                FavoriteEntry(
                    book_list=StoredList.from_model(favorite.book_list),
                    favorited_at=favorite.created_at,
                )
                for favorite in favorites
            ]
