"""
API Routes for BookDrop

Route modules:
- books: Catalog search, manual enrichment, stored book lookup
- detection: Identify books in an uploaded photo
- lists: List creation, sharing and editing
- users: The caller's own lists
- mini_library: Community change detection for little free libraries
- geocode: Address lookup for list locations
"""

from bookdrop.api.routes.books import router as books_router
from bookdrop.api.routes.detection import router as detection_router
from bookdrop.api.routes.geocode import router as geocode_router
from bookdrop.api.routes.lists import router as lists_router
from bookdrop.api.routes.mini_library import router as mini_library_router
from bookdrop.api.routes.users import router as users_router

__all__ = [
    "books_router",
    "detection_router",
    "geocode_router",
    "lists_router",
    "mini_library_router",
    "users_router",
]
