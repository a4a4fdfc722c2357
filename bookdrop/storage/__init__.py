"""
Storage Module for BookDrop

Relational storage for books, lists and list membership.
"""

from bookdrop.storage.models import create_database_engine
from bookdrop.storage.book_repository import BookRepository
from bookdrop.storage.list_repository import FavoriteEntry, ListRepository, StoredList

__all__ = [
    "create_database_engine",
    "BookRepository",
    "FavoriteEntry",
    "ListRepository",
    "StoredList",
]
