"""
List API Routes

Create lists from books or straight from a photo, share them by URL,
and edit their books, details and location.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from loguru import logger

from bookdrop.api.dependencies import (
    Settings,
    get_current_user,
    get_duplicate_guard,
    get_identification_service,
    get_list_service,
    get_optional_user,
    get_settings,
)
from bookdrop.api.middleware.rate_limit import DuplicateRequestGuard
from bookdrop.api.routes.detection import read_image_upload
from bookdrop.api.schemas import (
    BookResponse,
    DeleteResponse,
    ErrorResponse,
    ListBooksRequest,
    ListCreateRequest,
    ListMutationResponse,
    ListResponse,
    ListUpdateRequest,
    LocationUpdateRequest,
)
from bookdrop.identification.service import IdentificationService
from bookdrop.lists.purposes import ListPurpose
from bookdrop.lists.service import ListService, ReconcileReport
from bookdrop.storage.list_repository import StoredList


router = APIRouter(prefix="/lists", tags=["lists"])


def list_view(stored: StoredList, actor_id: Optional[str]) -> ListResponse:
    return ListResponse.from_stored(
        stored,
        is_owner=ListService.is_owner(stored, actor_id),
        can_edit=ListService.can_edit(stored, actor_id),
    )


def mutation_view(report: ReconcileReport, actor_id: Optional[str]) -> ListMutationResponse:
    return ListMutationResponse(
        book_list=list_view(report.book_list, actor_id),
        skipped=report.skipped,
        removed_book_ids=report.removed_book_ids,
    )


# =============================================================================
# Creation
# =============================================================================

@router.post(
    "",
    response_model=ListMutationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "No books or missing location"},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse, "description": "Duplicate submission"},
    },
)
async def create_list(
    request: ListCreateRequest,
    user_id: str = Depends(get_current_user),
    guard: DuplicateRequestGuard = Depends(get_duplicate_guard),
    list_service: ListService = Depends(get_list_service),
):
    """Create a list from books the client already holds (e.g. after /detect)."""
    guard.check(user_id)

    location = None
    if request.location is not None:
        location = await list_service.build_location(
            request.location.latitude,
            request.location.longitude,
            request.location.location_name,
        )

    report = list_service.create_list(
        owner_id=user_id,
        books=[book.to_book() for book in request.books],
        name=request.name,
        purpose=request.purpose,
        description=request.description,
        location=location,
    )
    logger.info(f"User {user_id} created list {report.book_list.share_url} with {len(report.books)} books")
    return mutation_view(report, user_id)


@router.post(
    "/from-image",
    response_model=ListMutationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse, "description": "No books found"},
        429: {"model": ErrorResponse},
    },
)
async def create_list_from_image(
    file: UploadFile = File(..., description="Photo of books"),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    purpose: ListPurpose = Form(ListPurpose.SHARING),
    latitude: Optional[float] = Form(None, ge=-90, le=90),
    longitude: Optional[float] = Form(None, ge=-180, le=180),
    location_name: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    guard: DuplicateRequestGuard = Depends(get_duplicate_guard),
    identification_service: IdentificationService = Depends(get_identification_service),
    list_service: ListService = Depends(get_list_service),
):
    """Identify the books in a photo and store them as a new list."""
    start_time = time.time()
    guard.check(user_id)

    content = await read_image_upload(file, settings)
    identified = await identification_service.identify_image(content, file.content_type)

    location = None
    if latitude is not None and longitude is not None:
        location = await list_service.build_location(latitude, longitude, location_name)

    report = list_service.create_list(
        owner_id=user_id,
        books=identified.books,
        name=name,
        purpose=purpose,
        description=description,
        location=location,
    )
    report.skipped = identified.skipped + report.skipped

    logger.info(
        f"List {report.book_list.share_url} created from image in "
        f"{(time.time() - start_time) * 1000:.0f}ms"
    )
    return mutation_view(report, user_id)


# =============================================================================
# Access and details
# =============================================================================

@router.get(
    "/{share_url}",
    response_model=ListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_list(
    share_url: str,
    user_id: Optional[str] = Depends(get_optional_user),
    list_service: ListService = Depends(get_list_service),
):
    """Public view of a shared list."""
    return list_view(list_service.get_list(share_url), user_id)


@router.patch(
    "/{share_url}",
    response_model=ListResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_list(
    share_url: str,
    request: ListUpdateRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Rename, describe or repurpose a list."""
    stored = list_service.update_details(
        share_url,
        user_id,
        name=request.name,
        description=request.description,
        purpose=request.purpose,
    )
    return list_view(stored, user_id)


@router.delete(
    "/{share_url}",
    response_model=DeleteResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_list(
    share_url: str,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Delete a list. Books no other list holds are deleted with it."""
    report = list_service.delete_list(share_url, user_id)
    logger.info(f"User {user_id} deleted list {share_url}")
    return DeleteResponse(deleted=True, removed_book_ids=report.removed_book_ids)


@router.put(
    "/{share_url}/location",
    response_model=ListResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def update_location(
    share_url: str,
    request: LocationUpdateRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Set or remove the list's location."""
    stored = await list_service.update_location(
        share_url,
        user_id,
        latitude=request.latitude,
        longitude=request.longitude,
        location_name=request.location_name,
        remove=request.remove,
    )
    return list_view(stored, user_id)


# =============================================================================
# Books
# =============================================================================

@router.get("/{share_url}/books", response_model=list[BookResponse])
async def list_books(
    share_url: str,
    list_service: ListService = Depends(get_list_service),
):
    """Books on a list, in list order."""
    stored = list_service.get_list(share_url)
    return [BookResponse.from_book(book) for book in stored.books]


@router.put(
    "/{share_url}/books",
    response_model=ListMutationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def replace_books(
    share_url: str,
    request: ListBooksRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Replace the list's books; the request order becomes the list order."""
    report = list_service.replace_books(
        share_url,
        [book.to_book() for book in request.books],
        user_id,
    )
    return mutation_view(report, user_id)


@router.post(
    "/{share_url}/books",
    response_model=ListMutationResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def add_books(
    share_url: str,
    request: ListBooksRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Append books to the end of the list."""
    report = list_service.add_books(
        share_url,
        [book.to_book() for book in request.books],
        user_id,
    )
    return mutation_view(report, user_id)


@router.delete(
    "/{share_url}/books/{book_id}",
    response_model=ListMutationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def remove_book(
    share_url: str,
    book_id: str,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Remove one book from the list."""
    report = list_service.remove_book(share_url, book_id, user_id)
    return mutation_view(report, user_id)
