"""
Detection API Routes

Upload a photo of books and get enriched metadata back. Nothing is stored.
"""

import time

from fastapi import APIRouter, Depends, File, UploadFile
from loguru import logger

from bookdrop.api.dependencies import (
    Settings,
    get_identification_service,
    get_settings,
)
from bookdrop.api.schemas import BookResponse, DetectionResponse, ErrorResponse
from bookdrop.exceptions import ValidationError
from bookdrop.identification.service import IdentificationReport, IdentificationService


router = APIRouter(prefix="/detect", tags=["detection"])


async def read_image_upload(file: UploadFile, settings: Settings) -> bytes:
    """
    Read an uploaded image after checking its declared type and size.

    Raises:
        ValidationError: Unsupported type, empty, or too large.
    """
    if file.content_type not in settings.allowed_image_type_set:
        raise ValidationError(
            f"Unsupported image format: {file.content_type}",
            detail=f"Supported: {', '.join(sorted(settings.allowed_image_type_set))}",
        )

    content = await file.read()
    if not content:
        raise ValidationError("No image file provided")
    if len(content) > settings.max_upload_bytes:
        raise ValidationError(
            "Image too large",
            detail=f"Image exceeds maximum size of {settings.max_upload_size_mb}MB",
        )

    logger.info(f"Processing image: {file.filename}, size={len(content) // 1024}KB")
    return content


def detection_response(report: IdentificationReport, start_time: float) -> DetectionResponse:
    return DetectionResponse(
        books=[BookResponse.from_book(book) for book in report.books],
        total_detected=report.total_detected,
        without_catalog_data=report.fallback_titles,
        skipped=report.skipped,
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@router.post(
    "",
    response_model=DetectionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid image"},
        422: {"model": ErrorResponse, "description": "No books found"},
        503: {"model": ErrorResponse, "description": "Vision model not configured"},
    },
)
async def detect_books(
    file: UploadFile = File(..., description="Photo of books"),
    settings: Settings = Depends(get_settings),
    identification_service: IdentificationService = Depends(get_identification_service),
):
    """
    Identify the books in an uploaded image.

    Books the catalogs know nothing about are still returned with the
    extracted title; their titles are listed in ``without_catalog_data``.
    """
    start_time = time.time()
    content = await read_image_upload(file, settings)

    report = await identification_service.identify_image(content, file.content_type)
    return detection_response(report, start_time)
