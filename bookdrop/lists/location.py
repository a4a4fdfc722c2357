"""
List locations.

Exact coordinates stay private; the public position is a random point
within roughly 300 m of the real one. Place names come from the Google
Maps Geocoding API.
"""

import math
import random
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from bookdrop.exceptions import CatalogUnavailable, ConfigurationError, NotFoundError, ValidationError


# ~300 m in degrees at the equator
FUZZ_RADIUS_DEGREES = 0.0027


def validate_coordinates(latitude: float, longitude: float) -> None:
    if not (-90.0 <= latitude <= 90.0) or not (-180.0 <= longitude <= 180.0):
        raise ValidationError(
            "Invalid coordinates",
            detail=f"latitude={latitude}, longitude={longitude}",
        )


def fuzz_location(
    latitude: float,
    longitude: float,
    radius: float = FUZZ_RADIUS_DEGREES,
    rng: Callable[[], float] = random.random,
) -> tuple[float, float]:
    """
    Random point within ``radius`` degrees of (latitude, longitude).

    The longitude offset is stretched by 1/cos(latitude) so the public
    point stays within the same ground distance away from the equator.
    """
    angle = rng() * 2 * math.pi
    distance = rng() * radius

    lat_offset = distance * math.cos(angle)
    lng_offset = distance * math.sin(angle) / max(math.cos(math.radians(latitude)), 1e-6)

    return latitude + lat_offset, longitude + lng_offset


@dataclass
class GeocodeResult:
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    location_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LocationRecord:
    """Location fields stored on a list."""

    exact_latitude: float
    exact_longitude: float
    public_latitude: float
    public_longitude: float
    location_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    def as_columns(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def build(
        cls,
        latitude: float,
        longitude: float,
        geocode: Optional[GeocodeResult] = None,
        location_name: Optional[str] = None,
    ) -> "LocationRecord":
        """Fuzz the exact position and attach place names."""
        validate_coordinates(latitude, longitude)
        public_lat, public_lng = fuzz_location(latitude, longitude)

        return cls(
            exact_latitude=latitude,
            exact_longitude=longitude,
            public_latitude=public_lat,
            public_longitude=public_lng,
            location_name=location_name or (geocode.location_name if geocode else None),
            city=geocode.city if geocode else None,
            country=geocode.country if geocode else None,
        )


def parse_geocode_result(result: dict) -> GeocodeResult:
    """Pull city, country and a place name out of one geocoder result."""
    city = None
    country = None
    location_name = None

    for component in result.get("address_components") or []:
        types = component.get("types") or []
        if "locality" in types:
            city = component.get("long_name")
        elif "administrative_area_level_1" in types and not city:
            city = component.get("long_name")
        elif "country" in types:
            country = component.get("long_name")
        elif "establishment" in types or "point_of_interest" in types:
            location_name = component.get("long_name")

    formatted = result.get("formatted_address")
    if not location_name and formatted:
        location_name = formatted.split(",")[0].strip() or None

    point = (result.get("geometry") or {}).get("location") or {}

    return GeocodeResult(
        latitude=point.get("lat"),
        longitude=point.get("lng"),
        formatted_address=formatted,
        location_name=location_name,
        city=city,
        country=country,
    )


class GeocodingClient:
    """
    Client for the Google Maps Geocoding API.

    Usage:
        geocoder = GeocodingClient(api_key="...")
        place = await geocoder.geocode_address("Berkeley, CA")
        names = await geocoder.reverse_geocode(37.87, -122.27)
    """

    BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def _request(self, params: dict) -> list[dict]:
        if not self.api_key:
            raise ConfigurationError("Geocoding", "GOOGLE_MAPS_API_KEY is not configured")

        client = await self._get_client()
        try:
            response = await client.get(self.BASE_URL, params={**params, "key": self.api_key})
        except httpx.HTTPError as e:
            raise CatalogUnavailable("geocoding", f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise CatalogUnavailable("geocoding", f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogUnavailable("geocoding", f"Malformed payload: {e}") from e

        if data.get("status") != "OK":
            return []
        return data.get("results") or []

    async def geocode_address(self, address: str) -> GeocodeResult:
        """
        Forward geocode an address.

        Raises:
            ConfigurationError: No API key.
            NotFoundError: The address matched nothing.
            CatalogUnavailable: The geocoder could not be reached.
        """
        address = address.strip()
        if not address:
            raise ValidationError("Address is required")

        results = await self._request({"address": address})
        if not results:
            raise NotFoundError("Address", address)
        return parse_geocode_result(results[0])

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodeResult]:
        """Place names for a coordinate. Returns None when unavailable."""
        try:
            results = await self._request({"latlng": f"{latitude},{longitude}"})
        except (ConfigurationError, CatalogUnavailable) as e:
            logger.warning(f"Reverse geocoding skipped: {e.message}")
            return None

        if not results:
            return None

        place = parse_geocode_result(results[0])
        place.latitude = latitude
        place.longitude = longitude
        return place

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
