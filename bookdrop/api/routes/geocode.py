"""
Geocoding API Routes

Turns a typed address into coordinates for the list location picker.
"""

from fastapi import APIRouter, Depends

from bookdrop.api.dependencies import get_geocoder
from bookdrop.api.schemas import ErrorResponse, GeocodeRequest, GeocodeResponse
from bookdrop.lists.location import GeocodingClient


router = APIRouter(prefix="/geocode", tags=["geocoding"])


@router.post(
    "/address",
    response_model=GeocodeResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Address not found"},
        503: {"model": ErrorResponse, "description": "Geocoding not configured"},
    },
)
async def geocode_address(
    request: GeocodeRequest,
    geocoder: GeocodingClient = Depends(get_geocoder),
):
    """Forward-geocode an address."""
    result = await geocoder.geocode_address(request.address)
    return GeocodeResponse(**result.to_dict())
