"""
Database models for BookDrop.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class BookModel(Base):
    """SQLAlchemy model for books. A book is identified by (title, author)."""

    __tablename__ = "books"

    id = Column(String(36), primary_key=True)

    # Core fields
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(500), nullable=False, index=True)

    cover_url = Column(String(1000))
    isbn = Column(String(13), index=True)
    publication_year = Column(Integer)
    publisher = Column(String(300))
    genre = Column(String(200))
    description = Column(Text)

    # Secondary metadata
    average_rating = Column(Float)
    ratings_count = Column(Integer)
    page_count = Column(Integer)
    language = Column(String(10))
    categories = Column(JSON, default=list)
    maturity_rating = Column(String(50))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("title", "author", name="uq_books_title_author"),
    )


class BookListModel(Base):
    """A shareable list of books."""

    __tablename__ = "lists"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, default="My Book List")
    description = Column(Text)
    share_url = Column(String(64), unique=True, nullable=False, index=True)
    purpose = Column(String(20), nullable=False, default="sharing")
    owner_id = Column(String(64), nullable=False, index=True)

    # Exact coordinates are private; public ones are fuzzed.
    exact_latitude = Column(Float)
    exact_longitude = Column(Float)
    public_latitude = Column(Float)
    public_longitude = Column(Float)
    location_name = Column(String(300))
    city = Column(String(200))
    country = Column(String(200))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship(
        "ListBookModel",
        back_populates="book_list",
        cascade="all, delete-orphan",
        order_by="ListBookModel.position",
    )
    favorites = relationship(
        "FavoriteModel",
        back_populates="book_list",
        cascade="all, delete-orphan",
    )


class ListBookModel(Base):
    """Ordered membership of a book in a list."""

    __tablename__ = "list_books"

    list_id = Column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), primary_key=True)
    book_id = Column(String(36), ForeignKey("books.id"), primary_key=True)
    position = Column(Integer, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    book_list = relationship("BookListModel", back_populates="memberships")
    book = relationship("BookModel", lazy="joined")

    __table_args__ = (
        UniqueConstraint("list_id", "position", name="uq_list_books_position"),
        Index("idx_list_books_book", "book_id"),
    )


class FavoriteModel(Base):
    """A list bookmarked by a user other than its owner."""

    __tablename__ = "favorites"

    user_id = Column(String(64), primary_key=True)
    list_id = Column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    book_list = relationship("BookListModel", back_populates="favorites", lazy="joined")


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine and make sure all tables exist.

    In-memory SQLite shares one connection so every session sees the
    same database.
    """
    # Strip async drivers for sync engine
    database_url = database_url.replace("+aiosqlite", "").replace("+asyncpg", "")

    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)
    return engine
