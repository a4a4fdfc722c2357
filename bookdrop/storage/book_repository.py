"""
Book Repository for BookDrop

Persistent book records shared by all lists.

Design Decisions:
1. Identity: (title, author) is unique at the store level
2. Insert-or-get: a unique violation means "already exists", resolved by
   a single re-fetch, never by retrying in a loop
3. Reference counting: a book is deleted once no list holds it
"""

from typing import Optional

from loguru import logger
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bookdrop.exceptions import UniquenessConflict
from bookdrop.identification.book import Book
from bookdrop.storage.models import BookModel, ListBookModel, create_database_engine


def book_from_model(model: BookModel) -> Book:
    """Create a Book from its SQLAlchemy model."""
    return Book(
        id=model.id,
        title=model.title,
        author=model.author,
        cover_url=model.cover_url,
        isbn=model.isbn,
        publication_year=model.publication_year,
        publisher=model.publisher,
        genre=model.genre,
        description=model.description,
        average_rating=model.average_rating,
        ratings_count=model.ratings_count,
        page_count=model.page_count,
        language=model.language,
        categories=list(model.categories or []),
        maturity_rating=model.maturity_rating,
    )


def model_from_book(book: Book) -> BookModel:
    return BookModel(
        id=book.id,
        title=book.title,
        author=book.author,
        cover_url=book.cover_url,
        isbn=book.isbn,
        publication_year=book.publication_year,
        publisher=book.publisher,
        genre=book.genre,
        description=book.description,
        average_rating=book.average_rating,
        ratings_count=book.ratings_count,
        page_count=book.page_count,
        language=book.language,
        categories=list(book.categories or []),
        maturity_rating=book.maturity_rating,
    )


class BookRepository:
    """
    Repository for book records.

    Usage:
        repo = BookRepository("sqlite:///./bookdrop.db")

        stored = repo.insert_or_get(book)
        same = repo.get_by_title_author(book.title, book.author)
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        echo: bool = False,
    ):
        """
        Initialize repository.

        Args:
            database_url: SQLAlchemy database URL (default: in-memory SQLite)
            engine: Existing engine to share with other repositories
            echo: Log SQL statements
        """
        self.engine = engine or create_database_engine(database_url or "sqlite:///:memory:", echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        logger.info(f"BookRepository initialized: {str(self.engine.url)[:50]}...")

    def get_session(self) -> Session:
        """Get database session."""
        return self.SessionLocal()

    def get(self, book_id: str) -> Optional[Book]:
        """Get book by ID."""
        with self.get_session() as session:
            model = session.get(BookModel, book_id)
            return book_from_model(model) if model else None

    def get_by_title_author(self, title: str, author: str) -> Optional[Book]:
        """Get book by its (title, author) identity."""
        with self.get_session() as session:
            model = session.query(BookModel).filter(
                BookModel.title == title,
                BookModel.author == author,
            ).first()
            return book_from_model(model) if model else None

    def insert(self, book: Book) -> Book:
        """
        Insert a new book.

        Raises:
            UniquenessConflict: A book with the same (title, author) exists.
        """
        with self.get_session() as session:
            session.add(model_from_book(book))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise UniquenessConflict("book", f"{book.title} / {book.author}") from e
        return book

    def insert_or_get(self, book: Book) -> Optional[Book]:
        """
        Return the stored book for ``book``'s identity, inserting it if new.

        A concurrent insert of the same identity is recovered with one
        re-fetch. Returns None if the book still cannot be resolved.
        """
        existing = self.get_by_title_author(book.title, book.author)
        if existing:
            return existing

        try:
            return self.insert(book)
        except UniquenessConflict:
            logger.debug(f"'{book.title}' by {book.author} inserted concurrently, re-fetching")

        existing = self.get_by_title_author(book.title, book.author)
        if existing is None:
            logger.error(f"Could not resolve '{book.title}' by {book.author} after conflict, skipping")
        return existing

    def is_referenced(self, book_id: str) -> bool:
        """True if any list holds the book."""
        with self.get_session() as session:
            return session.query(ListBookModel).filter(
                ListBookModel.book_id == book_id,
            ).first() is not None

    def delete(self, book_id: str) -> bool:
        """Delete a book. Returns True if it existed."""
        with self.get_session() as session:
            model = session.get(BookModel, book_id)
            if not model:
                return False
            session.delete(model)
            session.commit()
            return True

    def delete_orphans(self, book_ids: list[str]) -> list[str]:
        """
        Delete those of ``book_ids`` that no list references any more.

        Failures are logged and skipped. Returns the deleted IDs.
        """
        deleted = []
        for book_id in dict.fromkeys(book_ids):
            try:
                if not self.is_referenced(book_id) and self.delete(book_id):
                    deleted.append(book_id)
            except SQLAlchemyError as e:
                logger.warning(f"Orphan cleanup failed for book {book_id}: {e}")

        if deleted:
            logger.info(f"Removed {len(deleted)} orphaned books")
        return deleted

    def count(self) -> int:
        """Get total book count."""
        with self.get_session() as session:
            return session.query(BookModel).count()
