"""
User API Routes

The caller's own lists and the lists they have favorited.
"""

from fastapi import APIRouter, Depends, status

from bookdrop.api.dependencies import get_current_user, get_list_service
from bookdrop.api.schemas import (
    ErrorResponse,
    FavoriteDeleteResponse,
    FavoriteRequest,
    FavoriteSummary,
    ListSummary,
)
from bookdrop.lists.service import ListService


router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/me/lists",
    response_model=list[ListSummary],
    responses={401: {"model": ErrorResponse}},
)
async def my_lists(
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Lists owned by the caller, newest first."""
    return [ListSummary.from_stored(stored) for stored in list_service.lists_for_owner(user_id)]


@router.get(
    "/me/favorites",
    response_model=list[FavoriteSummary],
    responses={401: {"model": ErrorResponse}},
)
async def my_favorites(
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Favorited lists, most recently favorited first."""
    return [FavoriteSummary.from_entry(entry) for entry in list_service.favorites(user_id)]


@router.post(
    "/me/favorites",
    response_model=FavoriteSummary,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Own list"},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Already a favorite"},
    },
)
async def add_favorite(
    request: FavoriteRequest,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    return FavoriteSummary.from_entry(list_service.add_favorite(request.share_url, user_id))


@router.delete(
    "/me/favorites/{share_url}",
    response_model=FavoriteDeleteResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def remove_favorite(
    share_url: str,
    user_id: str = Depends(get_current_user),
    list_service: ListService = Depends(get_list_service),
):
    """Unfavorite a list. Removing a list that was not a favorite is not an error."""
    return FavoriteDeleteResponse(removed=list_service.remove_favorite(share_url, user_id))
