"""
Mini-library API Routes

Community upkeep of little free libraries: photograph the box, review the
proposed additions and removals, then apply the confirmed ones.
"""

from fastapi import APIRouter, Depends, File, UploadFile
from loguru import logger

from bookdrop.api.dependencies import (
    Settings,
    get_change_detector,
    get_current_user,
    get_identification_service,
    get_list_service,
    get_settings,
)
from bookdrop.api.routes.detection import read_image_upload
from bookdrop.api.routes.lists import mutation_view
from bookdrop.api.schemas import (
    ApplyChangesRequest,
    BookChangeSchema,
    DetectChangesResponse,
    ErrorResponse,
    ListMutationResponse,
)
from bookdrop.exceptions import ValidationError
from bookdrop.identification.change_detector import ChangeDetector
from bookdrop.identification.service import IdentificationService
from bookdrop.lists.purposes import ListPurpose
from bookdrop.lists.service import ListService


router = APIRouter(prefix="/mini-library", tags=["mini-library"])


@router.post(
    "/{share_url}/detect-changes",
    response_model=DetectChangesResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Not a mini-library"},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def detect_changes(
    share_url: str,
    file: UploadFile = File(..., description="Current photo of the mini-library"),
    user_id: str = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    identification_service: IdentificationService = Depends(get_identification_service),
    change_detector: ChangeDetector = Depends(get_change_detector),
    list_service: ListService = Depends(get_list_service),
):
    """
    Compare a new photo with the stored list.

    Nothing is written; the client confirms changes through /apply.
    """
    stored = list_service.get_list(share_url)
    if not ListPurpose.parse(stored.purpose).community_editable:
        raise ValidationError("This feature is only available for mini libraries")
    list_service.authorize(stored, user_id)

    content = await read_image_upload(file, settings)
    report = await identification_service.identify_image(content, file.content_type)

    changes = change_detector.detect_changes(report.books, stored.books)
    logger.info(f"User {user_id} proposed {len(changes)} changes for mini-library {share_url}")

    return DetectChangesResponse(
        changes=[BookChangeSchema.from_change(change) for change in changes],
        detected_books=len(report.books),
        current_books=len(stored.books),
        message=f"Found {len(changes)} potential changes" if changes else "No changes detected",
    )


@router.post(
    "/{share_url}/apply",
    response_model=ListMutationResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def apply_changes(
    share_url: str,
    request: ApplyChangesRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Apply confirmed additions and removals."""
    report = list_service.apply_changes(
        share_url,
        [change.to_change() for change in request.changes],
        user_id,
    )
    return mutation_view(report, user_id)
